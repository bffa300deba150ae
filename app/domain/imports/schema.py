"""
Canonical target schema for facility imports.

A ``TargetSchema`` is an ordered list of ``FieldSpec`` entries. The schema is
chosen once per import session by version identifier and never changes while
the session is running.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .errors import UnknownSchemaVersionError


class FieldKind(str, Enum):
    STRING = "string"
    ENUM = "enum"
    NUMBER = "number"
    PHONE = "phone"
    ZIP = "zip"
    EMAIL = "email"
    DELIMITED_LIST = "delimited_list"


@dataclass(frozen=True)
class FieldSpec:
    name: str
    label: str
    kind: FieldKind = FieldKind.STRING
    required: bool = False
    allowed_values: Optional[Tuple[str, ...]] = None
    # Name of a preset in validators.PRESET_PATTERNS
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    # Invalid values on a strict optional field reject the row instead of being dropped
    strict: bool = False

    @property
    def repeatable(self) -> bool:
        """List fields may be fed by more than one source column."""
        return self.kind is FieldKind.DELIMITED_LIST


@dataclass(frozen=True)
class TargetSchema:
    version: str
    fields: Tuple[FieldSpec, ...]
    _by_name: Dict[str, FieldSpec] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_by_name", {spec.name: spec for spec in self.fields})

    @property
    def field_names(self) -> List[str]:
        return [spec.name for spec in self.fields]

    @property
    def required_fields(self) -> List[str]:
        return [spec.name for spec in self.fields if spec.required]

    def get(self, name: str) -> Optional[FieldSpec]:
        return self._by_name.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name


FACILITY_TYPES = ("landfill", "transfer_station", "construction_landfill")

PAYMENT_OPTIONS = (
    "Cash",
    "Credit Card",
    "Debit Card",
    "Check",
    "Account",
    "Mobile Payment",
)

DEBRIS_OPTIONS = (
    "General Waste",
    "Construction Debris",
    "Yard Waste",
    "Electronics",
    "Appliances",
    "Metal",
    "Wood",
    "Concrete",
    "Asphalt",
    "Recyclables",
)

US_STATES = (
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "DC", "FL", "GA", "HI",
    "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD", "MA", "MI", "MN",
    "MS", "MO", "MT", "NE", "NV", "NH", "NJ", "NM", "NY", "NC", "ND", "OH",
    "OK", "OR", "PA", "RI", "SC", "SD", "TN", "TX", "UT", "VT", "VA", "WA",
    "WV", "WI", "WY",
)


FACILITY_SCHEMA_V1 = TargetSchema(
    version="facility-v1",
    fields=(
        FieldSpec("name", "Location Name", required=True, min_length=3, max_length=200),
        FieldSpec("address", "Street Address", required=True, min_length=5, max_length=300),
        FieldSpec("city", "City", required=True, min_length=2, max_length=100),
        FieldSpec("state", "State", FieldKind.ENUM, required=True, allowed_values=US_STATES),
        FieldSpec("zipCode", "ZIP Code", FieldKind.ZIP, required=True),
        FieldSpec("phone", "Phone Number", FieldKind.PHONE),
        FieldSpec("email", "Email", FieldKind.EMAIL),
        FieldSpec("website", "Website", pattern="url", max_length=500),
        FieldSpec("facilityType", "Location Type", FieldKind.ENUM, required=True, allowed_values=FACILITY_TYPES),
        FieldSpec("paymentTypes", "Payment Methods", FieldKind.DELIMITED_LIST, allowed_values=PAYMENT_OPTIONS),
        FieldSpec("debrisTypes", "Debris Types", FieldKind.DELIMITED_LIST, allowed_values=DEBRIS_OPTIONS),
        FieldSpec("operatingHours", "Operating Hours", max_length=200),
        FieldSpec("notes", "Notes", max_length=1000),
        FieldSpec("latitude", "Latitude", FieldKind.NUMBER, min_value=-90, max_value=90, strict=True),
        FieldSpec("longitude", "Longitude", FieldKind.NUMBER, min_value=-180, max_value=180, strict=True),
    ),
)

SCHEMAS: Dict[str, TargetSchema] = {
    FACILITY_SCHEMA_V1.version: FACILITY_SCHEMA_V1,
}


def get_schema(version: Optional[str] = None) -> TargetSchema:
    """Return the target schema for ``version`` (default: the current one)."""
    if not version:
        return FACILITY_SCHEMA_V1
    schema = SCHEMAS.get(version)
    if schema is None:
        raise UnknownSchemaVersionError(version)
    return schema
