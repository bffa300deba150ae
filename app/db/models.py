from datetime import datetime, timezone
import logging
from typing import Any, Dict

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String, Text
from sqlalchemy.engine import Engine

from app.db.session import Base

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Facility(Base):
    __tablename__ = "facilities"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    address = Column(String(300), nullable=False)
    city = Column(String(100), nullable=False)
    state = Column(String(2), nullable=False)
    zip_code = Column(String(10), nullable=False, index=True)
    phone = Column(String(15), nullable=True)
    email = Column(String(320), nullable=True)
    website = Column(String(500), nullable=True)
    facility_type = Column(String(50), nullable=False)
    payment_types = Column(JSON, nullable=False, default=list)
    debris_types = Column(JSON, nullable=False, default=list)
    operating_hours = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    # Composite duplicate key (normalized name or address + ZIP5)
    dedupe_key = Column(String(400), nullable=False, unique=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


# Canonical import field -> Facility column
FIELD_COLUMNS = {
    "name": "name",
    "address": "address",
    "city": "city",
    "state": "state",
    "zipCode": "zip_code",
    "phone": "phone",
    "email": "email",
    "website": "website",
    "facilityType": "facility_type",
    "paymentTypes": "payment_types",
    "debrisTypes": "debris_types",
    "operatingHours": "operating_hours",
    "notes": "notes",
    "latitude": "latitude",
    "longitude": "longitude",
}


def facility_from_record(record: Dict[str, Any], dedupe_key: str) -> Facility:
    """Build a Facility row from a validated import record."""
    values = {
        column: record.get(field)
        for field, column in FIELD_COLUMNS.items()
        if record.get(field) is not None
    }
    values.setdefault("payment_types", [])
    values.setdefault("debris_types", [])
    return Facility(dedupe_key=dedupe_key, **values)


def create_facilities_table_if_not_exists(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine, tables=[Facility.__table__])
    logger.info("facilities table ready")
