"""
Heuristic column mapping from uploaded headers onto canonical facility fields.

Headers are normalized (lowercase, alphanumerics only) and looked up in a
static alias table. Operators can then override any entry; the result is
checked for blocking problems before validation may start.
"""
import logging
import re
from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Optional, Union

from .models import ColumnMapping, MappingError, MappingErrorKind
from .schema import TargetSchema

logger = logging.getLogger(__name__)


def normalize_header(name: str) -> str:
    """Normalize a header: lowercase, alphanumeric only."""
    if not name:
        return ""
    return re.sub(r'[^a-z0-9]', '', str(name).lower())


# Normalized header -> canonical field. Canonical names map to themselves so a
# file built from the download template needs no overrides.
HEADER_ALIASES: Dict[str, str] = {
    # name
    "name": "name",
    "locationname": "name",
    "facility": "name",
    "facilityname": "name",
    "sitename": "name",
    "location": "name",
    # address
    "address": "address",
    "streetaddress": "address",
    "street": "address",
    "address1": "address",
    "addressline1": "address",
    # city
    "city": "city",
    "town": "city",
    # state
    "state": "state",
    "st": "state",
    "province": "state",
    # zipCode
    "zip": "zipCode",
    "zipcode": "zipCode",
    "zip5": "zipCode",
    "postal": "zipCode",
    "postalcode": "zipCode",
    "postcode": "zipCode",
    # phone
    "phone": "phone",
    "phonenumber": "phone",
    "telephone": "phone",
    "tel": "phone",
    "contactphone": "phone",
    # email
    "email": "email",
    "emailaddress": "email",
    "contactemail": "email",
    # website
    "website": "website",
    "url": "website",
    "web": "website",
    "homepage": "website",
    # facilityType
    "facilitytype": "facilityType",
    "type": "facilityType",
    "locationtype": "facilityType",
    "sitetype": "facilityType",
    # paymentTypes
    "paymenttypes": "paymentTypes",
    "payment": "paymentTypes",
    "paymentmethods": "paymentTypes",
    "paymentmethod": "paymentTypes",
    "paymentoptions": "paymentTypes",
    # debrisTypes
    "debristypes": "debrisTypes",
    "debris": "debrisTypes",
    "waste": "debrisTypes",
    "wastetypes": "debrisTypes",
    "acceptedmaterials": "debrisTypes",
    "materials": "debrisTypes",
    # operatingHours
    "operatinghours": "operatingHours",
    "hours": "operatingHours",
    "businesshours": "operatingHours",
    "openhours": "operatingHours",
    # notes
    "notes": "notes",
    "note": "notes",
    "description": "notes",
    "comments": "notes",
    # coordinates
    "latitude": "latitude",
    "lat": "latitude",
    "longitude": "longitude",
    "lng": "longitude",
    "lon": "longitude",
    "long": "longitude",
}


def suggest_target_field(header: str, schema: TargetSchema) -> Optional[str]:
    """Return the canonical field a header most likely means, or None."""
    target = HEADER_ALIASES.get(normalize_header(header))
    if target is None or target not in schema:
        return None
    return target


def propose_mapping(header: List[str], schema: TargetSchema) -> List[ColumnMapping]:
    """
    Build one mapping per source column from the alias table.

    When several headers alias the same non-repeatable field, the first one
    wins and the rest are skipped so the proposal is always consistent.
    """
    claimed = set()
    mappings: List[ColumnMapping] = []
    for index, source_header in enumerate(header):
        target = suggest_target_field(source_header, schema)
        if target is not None:
            spec = schema.get(target)
            if target in claimed and not spec.repeatable:
                logger.info(
                    "Header '%s' also aliases '%s'; keeping the earlier column and skipping this one",
                    source_header,
                    target,
                )
                target = None
            else:
                claimed.add(target)
        mappings.append(ColumnMapping(source_index=index, source_header=source_header, target_field=target))

    mapped = sum(1 for mapping in mappings if not mapping.is_skipped)
    logger.info("Proposed mapping for %d/%d columns", mapped, len(mappings))
    return mappings


OverrideKey = Union[int, str]


def apply_overrides(
    mappings: List[ColumnMapping],
    overrides: Optional[Mapping[OverrideKey, Optional[str]]],
) -> List[ColumnMapping]:
    """
    Replace proposal entries with operator choices.

    Keys are source indexes or source header text; a value of None (or "")
    skips the column. Unknown sources are ignored here and reported by
    ``check_mapping`` via ``find_unknown_sources``.
    """
    if not overrides:
        return list(mappings)

    by_index: Dict[int, Optional[str]] = {}
    for key, target in overrides.items():
        target = target or None
        if isinstance(key, int):
            by_index[key] = target
            continue
        key_text = str(key)
        if key_text.isdigit():
            by_index[int(key_text)] = target
            continue
        for mapping in mappings:
            if mapping.source_header == key_text:
                by_index[mapping.source_index] = target

    return [
        ColumnMapping(
            source_index=mapping.source_index,
            source_header=mapping.source_header,
            target_field=by_index[mapping.source_index],
        )
        if mapping.source_index in by_index
        else mapping
        for mapping in mappings
    ]


def find_unknown_sources(
    mappings: List[ColumnMapping],
    overrides: Optional[Mapping[OverrideKey, Optional[str]]],
) -> List[MappingError]:
    if not overrides:
        return []
    indexes = {mapping.source_index for mapping in mappings}
    headers = {mapping.source_header for mapping in mappings}
    errors = []
    for key in overrides:
        key_text = str(key)
        known = (
            (isinstance(key, int) and key in indexes)
            or (key_text.isdigit() and int(key_text) in indexes)
            or key_text in headers
        )
        if not known:
            errors.append(MappingError(
                kind=MappingErrorKind.UNKNOWN_SOURCE,
                message=f"Override refers to column '{key_text}', which is not in the uploaded file",
                source_headers=(key_text,),
            ))
    return errors


def check_mapping(mappings: Iterable[ColumnMapping], schema: TargetSchema) -> List[MappingError]:
    """
    Return blocking problems with a mapping; an empty list means it may proceed.

    Detects targets outside the schema, two source columns assigned to one
    non-repeatable field, and required fields that no column feeds.
    """
    errors: List[MappingError] = []
    sources_by_target: Dict[str, List[str]] = defaultdict(list)

    for mapping in mappings:
        if mapping.is_skipped:
            continue
        if mapping.target_field not in schema:
            errors.append(MappingError(
                kind=MappingErrorKind.UNKNOWN_FIELD,
                message=f"Column '{mapping.source_header}' is mapped to unknown field '{mapping.target_field}'",
                target_field=mapping.target_field,
                source_headers=(mapping.source_header,),
            ))
            continue
        sources_by_target[mapping.target_field].append(mapping.source_header)

    for target, sources in sources_by_target.items():
        if len(sources) > 1 and not schema.get(target).repeatable:
            errors.append(MappingError(
                kind=MappingErrorKind.DUPLICATE_TARGET,
                message=f"Field '{target}' is assigned to {len(sources)} columns: {', '.join(sources)}",
                target_field=target,
                source_headers=tuple(sources),
            ))

    for spec in schema.fields:
        if spec.required and spec.name not in sources_by_target:
            errors.append(MappingError(
                kind=MappingErrorKind.MISSING_REQUIRED,
                message=f"Required field '{spec.name}' ({spec.label}) is not mapped to any column",
                target_field=spec.name,
            ))

    if errors:
        logger.info("Mapping check found %d blocking problem(s)", len(errors))
    return errors
