"""
Tests for the downloadable template and the rejected-row export.
"""

import csv
from io import StringIO

from app.domain.imports.mapper import propose_mapping
from app.domain.imports.models import Verdict
from app.domain.imports.orchestrator import ImportSession, execute_facility_import
from app.domain.imports.processors.csv_processor import parse_csv_grid
from app.domain.imports.row_validator import apply_duplicate_rules, validate_row
from app.domain.imports.schema import FACILITY_SCHEMA_V1
from app.domain.imports.template import (
    ERRORS_COLUMN,
    TEMPLATE_FILENAME,
    export_rejected_rows,
    generate_template,
    list_field_hint,
)
from tests.utils.facility_csv import facility_row, make_csv


def read_csv(text):
    return list(csv.reader(StringIO(text)))


class TestGenerateTemplate:

    def test_filename_and_header(self):
        filename, content = generate_template()
        assert filename == TEMPLATE_FILENAME == "location_upload_template.csv"
        assert read_csv(content)[0] == FACILITY_SCHEMA_V1.field_names

    def test_every_cell_is_quoted(self):
        _, content = generate_template()
        first_line = content.splitlines()[0]
        assert first_line == ",".join(f'"{name}"' for name in FACILITY_SCHEMA_V1.field_names)

    def test_embedded_quotes_are_doubled(self):
        _, content = generate_template()
        assert '""call ahead""' in content

    def test_round_trip_has_no_issues(self):
        _, content = generate_template()
        grid = parse_csv_grid(content.encode("utf-8"))
        mappings = propose_mapping(grid.header, FACILITY_SCHEMA_V1)
        results = [
            validate_row(number, cells, mappings, FACILITY_SCHEMA_V1, grid.column_count)
            for number, cells in enumerate(grid.rows, start=1)
        ]
        results = apply_duplicate_rules(results, set())

        assert len(results) >= 2
        assert all(result.issues == () for result in results)
        assert all(result.verdict is Verdict.ACCEPTED for result in results)

    def test_round_trip_through_session(self):
        _, content = generate_template()
        session = ImportSession()
        session.select_file(content.encode("utf-8"))
        assert not session.confirm_mapping().is_blocked
        session.validate()
        report = session.preview_report()
        assert report.rejected == report.warned == 0


class TestFieldHints:

    def test_required_and_options(self):
        hints = list_field_hint(FACILITY_SCHEMA_V1)
        assert hints["facilityType"] == "required, one of: landfill, transfer_station, construction_landfill"
        assert hints["zipCode"] == "required, 12345 or 12345-6789"
        assert hints["latitude"] == "number between -90 and 90"


class TestExportRejectedRows:

    def test_only_failing_rows_with_errors_column(self):
        content = make_csv(
            facility_row(name="Alpha Dump", zip_code="62701"),
            facility_row(name="Beta Dump", zip_code="ABCDE"),
            facility_row(name="Gamma Dump", zip_code="62703", phone="12"),
            facility_row(name="Alpha Dump", zip_code="62701"),
        )
        outcome = execute_facility_import(content, store=None, dry_run=True)
        filename, exported = export_rejected_rows(outcome.session.grid, outcome.report)

        rows = read_csv(exported)
        assert filename.endswith(".csv")
        assert rows[0] == FACILITY_SCHEMA_V1.field_names + [ERRORS_COLUMN]
        assert [row[0] for row in rows[1:]] == ["Beta Dump", "Alpha Dump"]
        assert "zipCode: ZIP code must be in format 12345 or 12345-6789" in rows[1][-1]
        assert "duplicate" in rows[2][-1]

    def test_fixed_export_can_be_resubmitted(self):
        content = make_csv(facility_row(name="Beta Dump", zip_code="ABCDE"))
        outcome = execute_facility_import(content, store=None, dry_run=True)
        _, exported = export_rejected_rows(outcome.session.grid, outcome.report)

        fixed = exported.replace('"ABCDE"', '"62702"')
        retry = execute_facility_import(fixed.encode("utf-8"), store=None, dry_run=True)
        assert retry.report.accepted == 1
        assert retry.session.mappings[-1].is_skipped

    def test_short_rows_are_padded(self):
        content = make_csv("Alpha Dump,123 Main St", header="name,address,city,state,zipCode,facilityType")
        outcome = execute_facility_import(content, store=None, dry_run=True)
        _, exported = export_rejected_rows(outcome.session.grid, outcome.report)
        rows = read_csv(exported)
        assert rows[1][:6] == ["Alpha Dump", "123 Main St", "", "", "", ""]
