"""
Tests for duplicate facility detection within a file and against stored facilities.
"""

from app.domain.imports.mapper import propose_mapping
from app.domain.imports.models import CommitAuthorization, IssueCode, Verdict
from app.domain.imports.orchestrator import execute_facility_import
from app.domain.imports.row_validator import apply_duplicate_rules, validate_row
from app.domain.imports.schema import FACILITY_SCHEMA_V1
from tests.utils.facility_csv import facility_row, make_csv

MAPPINGS = propose_mapping(FACILITY_SCHEMA_V1.field_names, FACILITY_SCHEMA_V1)


def results_for(*rows):
    return [
        validate_row(number, row.split(","), MAPPINGS, FACILITY_SCHEMA_V1, len(MAPPINGS))
        for number, row in enumerate(rows, start=1)
    ]


def ten_row_file():
    rows = [facility_row(name=f"Facility Number {n}", zip_code=f"627{n:02d}") for n in range(1, 11)]
    rows[4] = facility_row(name="Facility Number 5", zip_code="ABCDE")
    rows[6] = facility_row(name="Facility Number 2", zip_code="62702")
    return make_csv(*rows)


class TestWithinFile:

    def test_exactly_one_of_two_duplicates_is_kept(self):
        results = apply_duplicate_rules(results_for(
            facility_row(name="Alpha Dump", zip_code="62701"),
            facility_row(name="alpha   dump", zip_code="62701-9999", address="999 Other Rd"),
        ), set())
        assert [result.verdict for result in results] == [Verdict.ACCEPTED, Verdict.REJECTED]
        issue = results[1].issues[0]
        assert issue.code is IssueCode.DUPLICATE
        assert issue.field == "name"
        assert issue.message == "duplicate: same name and ZIP code as row 1"

    def test_same_name_different_zip_is_not_duplicate(self):
        results = apply_duplicate_rules(results_for(
            facility_row(name="Alpha Dump", zip_code="62701"),
            facility_row(name="Alpha Dump", zip_code="62702"),
        ), set())
        assert all(result.verdict is Verdict.ACCEPTED for result in results)

    def test_rejected_row_does_not_claim_its_key(self):
        """An invalid first copy must not knock out the valid second copy."""
        results = apply_duplicate_rules(results_for(
            facility_row(name="Alpha Dump", zip_code="62701", state="ZZ"),
            facility_row(name="Alpha Dump", zip_code="62701"),
        ), set())
        assert [result.verdict for result in results] == [Verdict.REJECTED, Verdict.ACCEPTED]
        assert not results[0].is_duplicate

    def test_warned_row_claims_its_key(self):
        results = apply_duplicate_rules(results_for(
            facility_row(name="Alpha Dump", zip_code="62701", phone="123"),
            facility_row(name="Alpha Dump", zip_code="62701"),
        ), set())
        assert [result.verdict for result in results] == [Verdict.WARNING, Verdict.REJECTED]


class TestAgainstExistingFacilities:

    def test_existing_key_rejects_row(self):
        results = apply_duplicate_rules(
            results_for(facility_row(name="Alpha Dump", zip_code="62701")),
            {"name:alpha dump|62701"},
        )
        assert results[0].verdict is Verdict.REJECTED
        assert results[0].issues[0].message == "duplicate: same name and ZIP code as an existing facility"

    def test_second_upload_of_same_file_is_all_duplicates(self, store):
        content = make_csv(
            facility_row(name="Alpha Dump", zip_code="62701"),
            facility_row(name="Beta Dump", zip_code="62702"),
        )
        first = execute_facility_import(content, store=store, authorization=CommitAuthorization())
        second = execute_facility_import(content, store=store, authorization=CommitAuthorization())

        assert first.report.successful_imports == 2
        assert second.report.successful_imports == 0
        assert second.report.duplicates == 2
        assert store.count() == 2


class TestTenRowScenario:

    def test_invalid_zip_and_duplicate(self, store):
        outcome = execute_facility_import(ten_row_file(), store=store, authorization=CommitAuthorization())
        report = outcome.report

        assert report.total_rows == 10
        assert report.successful_imports == 8
        assert report.rejected == 2
        assert report.duplicates == 1

        flagged = {(issue["row"], issue["field"], issue["code"]) for issue in report.flat_issues()}
        assert flagged == {(5, "zipCode", "invalid_format"), (7, "name", "duplicate")}
        assert store.count() == 8
