"""
Facility store used by the import coordinator's commit stage.

The coordinator only relies on the ``FacilityStore`` protocol: a
transactional flag, the set of existing duplicate keys, and create-or-reject
inserts. ``SqlFacilityStore`` implements it on SQLAlchemy with a unique
constraint on the duplicate key, so concurrent imports from other processes
still cannot create the same facility twice.
"""
import logging
from typing import Any, Dict, List, Protocol, Sequence, Set

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models import Facility, create_facilities_table_if_not_exists, facility_from_record
from app.domain.imports.errors import DuplicateFacilityError, StorageError
from app.domain.imports.row_validator import duplicate_key_for

logger = logging.getLogger(__name__)


class FacilityStore(Protocol):
    transactional: bool

    def existing_keys(self) -> Set[str]:
        ...

    def create(self, record: Dict[str, Any]) -> Any:
        ...

    def create_many(self, records: Sequence[Dict[str, Any]]) -> List[Any]:
        ...


def _require_key(record: Dict[str, Any]) -> str:
    key = duplicate_key_for(record)
    if key is None:
        raise StorageError("Record has no duplicate key (name/address and ZIP code are required)")
    return key


class SqlFacilityStore:
    """SQLAlchemy-backed facility store."""

    def __init__(self, engine: Engine, *, transactional: bool = False, ensure_table: bool = True):
        self.engine = engine
        self.transactional = transactional
        if ensure_table:
            create_facilities_table_if_not_exists(engine)

    def existing_keys(self) -> Set[str]:
        try:
            with Session(self.engine) as session:
                return set(session.scalars(select(Facility.dedupe_key)))
        except SQLAlchemyError as e:
            raise StorageError(f"Could not read existing facilities: {e}") from e

    def create(self, record: Dict[str, Any]) -> int:
        """Insert one facility; raise DuplicateFacilityError if its key exists."""
        key = _require_key(record)
        try:
            with Session(self.engine) as session:
                facility = facility_from_record(record, key)
                session.add(facility)
                session.commit()
                return facility.id
        except IntegrityError as e:
            raise DuplicateFacilityError(key) from e
        except SQLAlchemyError as e:
            raise StorageError(f"Could not save facility '{record.get('name')}': {e}") from e

    def create_many(self, records: Sequence[Dict[str, Any]]) -> List[int]:
        """Insert all facilities in one transaction; nothing is kept on failure."""
        try:
            with Session(self.engine) as session, session.begin():
                facilities = []
                for record in records:
                    facility = facility_from_record(record, _require_key(record))
                    session.add(facility)
                    facilities.append(facility)
                session.flush()
                ids = [facility.id for facility in facilities]
            logger.info("Committed %d facilities in one transaction", len(ids))
            return ids
        except IntegrityError as e:
            raise StorageError(f"Batch rejected by the facility store (duplicate or constraint violation): {e.orig}") from e
        except SQLAlchemyError as e:
            raise StorageError(f"Batch could not be saved: {e}") from e

    def count(self) -> int:
        with Session(self.engine) as session:
            return session.query(Facility).count()
