"""
Tests for heuristic column mapping, operator overrides and mapping checks.
"""

from app.domain.imports.mapper import (
    apply_overrides,
    check_mapping,
    find_unknown_sources,
    normalize_header,
    propose_mapping,
    suggest_target_field,
)
from app.domain.imports.models import MappingErrorKind
from app.domain.imports.schema import FACILITY_SCHEMA_V1


def targets(mappings):
    return [mapping.target_field for mapping in mappings]


class TestNormalizeHeader:

    def test_lowercases_and_strips_punctuation(self):
        assert normalize_header("Location Name") == "locationname"
        assert normalize_header(" ZIP-Code ") == "zipcode"
        assert normalize_header("Payment_Types") == "paymenttypes"

    def test_empty(self):
        assert normalize_header("") == ""


class TestProposeMapping:
    """Default proposals from the alias table."""

    def test_common_spellings(self):
        mappings = propose_mapping(["Location Name", "zip", "Random Column"], FACILITY_SCHEMA_V1)
        assert targets(mappings) == ["name", "zipCode", None]
        assert mappings[2].is_skipped

    def test_canonical_names_map_to_themselves(self):
        mappings = propose_mapping(FACILITY_SCHEMA_V1.field_names, FACILITY_SCHEMA_V1)
        assert targets(mappings) == FACILITY_SCHEMA_V1.field_names

    def test_aliases(self):
        assert suggest_target_field("Postal Code", FACILITY_SCHEMA_V1) == "zipCode"
        assert suggest_target_field("Type", FACILITY_SCHEMA_V1) == "facilityType"
        assert suggest_target_field("Lng", FACILITY_SCHEMA_V1) == "longitude"
        assert suggest_target_field("Telephone", FACILITY_SCHEMA_V1) == "phone"
        assert suggest_target_field("Hours", FACILITY_SCHEMA_V1) == "operatingHours"
        assert suggest_target_field("Favorite Color", FACILITY_SCHEMA_V1) is None

    def test_first_alias_wins_for_scalar_fields(self):
        mappings = propose_mapping(["Facility Name", "Location", "City"], FACILITY_SCHEMA_V1)
        assert targets(mappings) == ["name", None, "city"]
        errors = check_mapping(mappings, FACILITY_SCHEMA_V1)
        assert all(error.kind is MappingErrorKind.MISSING_REQUIRED for error in errors)

    def test_list_fields_may_take_several_columns(self):
        mappings = propose_mapping(["Payment", "Payment Methods"], FACILITY_SCHEMA_V1)
        assert targets(mappings) == ["paymentTypes", "paymentTypes"]

    def test_source_index_and_header_preserved(self):
        mappings = propose_mapping(["City", "Name"], FACILITY_SCHEMA_V1)
        assert [(m.source_index, m.source_header) for m in mappings] == [(0, "City"), (1, "Name")]


class TestOverrides:
    """Operator choices replace proposal entries."""

    def setup_method(self):
        self.header = ["Site", "Street", "Town", "St", "Zip", "Kind", "Extra"]
        self.proposal = propose_mapping(self.header, FACILITY_SCHEMA_V1)

    def test_override_by_header(self):
        mappings = apply_overrides(self.proposal, {"Site": "name", "Kind": "facilityType"})
        assert targets(mappings) == ["name", "address", "city", "state", "zipCode", "facilityType", None]
        assert check_mapping(mappings, FACILITY_SCHEMA_V1) == []

    def test_override_by_index(self):
        mappings = apply_overrides(self.proposal, {0: "name", "5": "facilityType"})
        assert mappings[0].target_field == "name"
        assert mappings[5].target_field == "facilityType"

    def test_override_to_skip(self):
        mappings = apply_overrides(self.proposal, {"Town": None, "Zip": ""})
        assert mappings[2].is_skipped
        assert mappings[4].is_skipped

    def test_proposal_is_not_mutated(self):
        apply_overrides(self.proposal, {"Site": "name"})
        assert self.proposal[0].target_field is None

    def test_unknown_source_reported(self):
        errors = find_unknown_sources(self.proposal, {"Nope": "name", 42: "city", "Site": "name"})
        assert [error.kind for error in errors] == [MappingErrorKind.UNKNOWN_SOURCE] * 2
        assert {error.source_headers[0] for error in errors} == {"Nope", "42"}


class TestCheckMapping:
    """Blocking conditions are returned, never raised."""

    def test_missing_required_fields(self):
        mappings = propose_mapping(["name", "city"], FACILITY_SCHEMA_V1)
        errors = check_mapping(mappings, FACILITY_SCHEMA_V1)
        missing = {error.target_field for error in errors if error.kind is MappingErrorKind.MISSING_REQUIRED}
        assert missing == {"address", "state", "zipCode", "facilityType"}

    def test_duplicate_target(self):
        proposal = propose_mapping(FACILITY_SCHEMA_V1.field_names + ["Other Name"], FACILITY_SCHEMA_V1)
        mappings = apply_overrides(proposal, {"Other Name": "name"})
        errors = check_mapping(mappings, FACILITY_SCHEMA_V1)
        assert len(errors) == 1
        assert errors[0].kind is MappingErrorKind.DUPLICATE_TARGET
        assert errors[0].target_field == "name"
        assert set(errors[0].source_headers) == {"name", "Other Name"}

    def test_unknown_field(self):
        proposal = propose_mapping(FACILITY_SCHEMA_V1.field_names + ["Region"], FACILITY_SCHEMA_V1)
        mappings = apply_overrides(proposal, {"Region": "region"})
        errors = check_mapping(mappings, FACILITY_SCHEMA_V1)
        assert [error.kind for error in errors] == [MappingErrorKind.UNKNOWN_FIELD]

    def test_clean_mapping(self):
        mappings = propose_mapping(FACILITY_SCHEMA_V1.field_names, FACILITY_SCHEMA_V1)
        assert check_mapping(mappings, FACILITY_SCHEMA_V1) == []
