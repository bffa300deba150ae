"""
CSV template and rejected-row export for facility imports.

Both outputs use the dialect the ingestor reads: comma-delimited, every cell
double-quoted, embedded quotes doubled.
"""
import csv
import logging
from io import StringIO
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from .models import Grid, ImportReport, Verdict
from .schema import FieldKind, TargetSchema, get_schema

logger = logging.getLogger(__name__)

TEMPLATE_FILENAME = "location_upload_template.csv"
REJECTED_ROWS_FILENAME = "location_upload_rejected_rows.csv"
ERRORS_COLUMN = "importErrors"

TEMPLATE_EXAMPLE_ROWS: List[Dict[str, Any]] = [
    {
        "name": "Sample Landfill",
        "address": "123 Main St",
        "city": "Springfield",
        "state": "IL",
        "zipCode": "62701",
        "phone": "(555) 123-4567",
        "email": "info@sample.com",
        "website": "https://sample.com",
        "facilityType": "landfill",
        "paymentTypes": ["Cash", "Credit Card"],
        "debrisTypes": ["General Waste", "Yard Waste"],
        "operatingHours": "Mon-Fri 7AM-5PM",
        "notes": "Sample notes",
        "latitude": "39.7817",
        "longitude": "-89.6501",
    },
    {
        "name": "Sample Transfer Station",
        "address": "456 Oak Ave",
        "city": "Springfield",
        "state": "IL",
        "zipCode": "62702-1234",
        "phone": "(555) 987-6543",
        "email": "contact@transfer.com",
        "website": "",
        "facilityType": "transfer_station",
        "paymentTypes": ["Cash", "Check"],
        "debrisTypes": ["General Waste", "Electronics"],
        "operatingHours": "Mon-Sat 6AM-6PM",
        "notes": 'Transfer station example, "call ahead" for large loads',
        "latitude": "39.7567",
        "longitude": "-89.6301",
    },
    {
        "name": "Sample C&D Landfill",
        "address": "789 Quarry Rd",
        "city": "Chatham",
        "state": "IL",
        "zipCode": "62629",
        "phone": "",
        "email": "",
        "website": "http://cd-landfill.example.com",
        "facilityType": "construction_landfill",
        "paymentTypes": ["Account"],
        "debrisTypes": ["Construction Debris", "Concrete", "Asphalt"],
        "operatingHours": "",
        "notes": "",
        "latitude": "",
        "longitude": "",
    },
]


def _to_csv(frame: pd.DataFrame) -> str:
    buffer = StringIO()
    frame.to_csv(buffer, index=False, quoting=csv.QUOTE_ALL, doublequote=True, lineterminator="\n")
    return buffer.getvalue()


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ",".join(str(item) for item in value)
    return str(value)


def generate_template(schema: Optional[TargetSchema] = None) -> Tuple[str, str]:
    """
    Build the downloadable template.

    Returns:
        Tuple of (filename, csv_text). The header lists every canonical field
        in schema order; example rows pass every validation rule.
    """
    schema = schema or get_schema()
    columns = schema.field_names
    rows = [[_cell_text(example.get(column)) for column in columns] for example in TEMPLATE_EXAMPLE_ROWS]
    frame = pd.DataFrame(rows, columns=columns, dtype=str)
    logger.info("Generated import template with %d columns and %d example rows", len(columns), len(rows))
    return TEMPLATE_FILENAME, _to_csv(frame)


def list_field_hint(schema: TargetSchema) -> Dict[str, str]:
    """Short per-field guidance shown next to the template download."""
    hints = {}
    for spec in schema.fields:
        if spec.kind is FieldKind.ENUM and spec.allowed_values and len(spec.allowed_values) <= 10:
            hint = "one of: " + ", ".join(spec.allowed_values)
        elif spec.kind is FieldKind.DELIMITED_LIST:
            hint = "comma or semicolon separated"
            if spec.allowed_values:
                hint += ": " + ", ".join(spec.allowed_values)
        elif spec.kind is FieldKind.ZIP:
            hint = "12345 or 12345-6789"
        elif spec.kind is FieldKind.PHONE:
            hint = "10 to 15 digits, any punctuation"
        elif spec.kind is FieldKind.NUMBER and spec.min_value is not None and spec.max_value is not None:
            hint = f"number between {spec.min_value:g} and {spec.max_value:g}"
        else:
            hint = spec.kind.value
        hints[spec.name] = ("required, " if spec.required else "") + hint
    return hints


def export_rejected_rows(grid: Grid, report: ImportReport) -> Tuple[str, str]:
    """
    Export the source rows that were not imported, with their problems.

    The original header is kept and an ``importErrors`` column is appended,
    so the operator can fix the cells and upload the file again; the extra
    column maps to SKIP on the way back in.
    """
    failed = {
        result.row_number: "; ".join(f"{issue.field}: {issue.message}" for issue in result.issues)
        for result in report.results
        if result.verdict is Verdict.REJECTED
    }
    width = len(grid.header)
    rows = []
    for row_number in sorted(failed):
        cells = list(grid.rows[row_number - 1][:width])
        cells += [""] * (width - len(cells))
        rows.append(cells + [failed[row_number]])

    frame = pd.DataFrame(rows, columns=list(grid.header) + [ERRORS_COLUMN], dtype=str)
    logger.info("Exported %d rejected rows for correction", len(rows))
    return REJECTED_ROWS_FILENAME, _to_csv(frame)
