"""Builders for facility CSV uploads used across the import tests."""

from app.domain.imports.schema import FACILITY_SCHEMA_V1


CANONICAL_HEADER = ",".join(FACILITY_SCHEMA_V1.field_names)


def make_csv(*rows, header=CANONICAL_HEADER, line_ending="\n") -> bytes:
    """Join a header and raw CSV row strings into upload bytes."""
    return (line_ending.join([header, *rows]) + line_ending).encode("utf-8")


def facility_row(
    name="Springfield Landfill",
    address="123 Main St",
    city="Springfield",
    state="IL",
    zip_code="62701",
    phone="(217) 555-0100",
    email="info@springfield.example.com",
    website="https://springfield.example.com",
    facility_type="landfill",
    payment_types="Cash;Check",
    debris_types="General Waste;Yard Waste",
    operating_hours="Mon-Fri 7AM-5PM",
    notes="",
    latitude="39.78",
    longitude="-89.65",
) -> str:
    """One CSV line in canonical column order; list values use ';' so no quoting is needed."""
    return ",".join([
        name, address, city, state, zip_code, phone, email, website, facility_type,
        payment_types, debris_types, operating_hours, notes, latitude, longitude,
    ])
