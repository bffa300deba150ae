"""
Shared dependencies for the API routers.

Routers obtain the facility store and the commit capability through these
functions so tests can swap them with ``app.dependency_overrides``.
"""
import hmac
import json
import logging
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException
from fastapi.security import APIKeyHeader

from app.core.config import settings
from app.db.facility_store import FacilityStore, SqlFacilityStore
from app.db.session import get_engine
from app.domain.imports.models import CommitAuthorization

logger = logging.getLogger(__name__)

# Security scheme for the commit key in header
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_facility_store() -> FacilityStore:
    # The facilities table is created once at startup
    return SqlFacilityStore(
        get_engine(),
        transactional=settings.commit_mode == "transactional",
        ensure_table=False,
    )


def get_commit_authorization(
    api_key: Optional[str] = Depends(api_key_header),
) -> Optional[CommitAuthorization]:
    """
    Resolve the commit capability from the X-API-Key header.

    Returns None (rather than raising) when the key is missing or wrong, so
    dry runs stay available; the commit itself refuses a missing capability.
    With no ``import_api_key`` configured every caller may commit.
    """
    expected = settings.import_api_key
    if not expected:
        return CommitAuthorization(granted_to="anonymous")
    if api_key and hmac.compare_digest(api_key, expected):
        return CommitAuthorization(granted_to="api-key")
    if api_key:
        logger.warning("Rejected facility import commit with an invalid API key")
    return None


def parse_mapping_json(mapping_json: Optional[str]) -> Dict[str, Any]:
    """
    Decode the optional mapping override form field.

    Raises:
        HTTPException: 400 if the value is not a JSON object
    """
    if not mapping_json:
        return {}
    try:
        data = json.loads(mapping_json)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail=f"Invalid mapping_json: {e}") from e
    if not isinstance(data, dict):
        raise HTTPException(
            status_code=400,
            detail="mapping_json must be an object of source column -> field name (or null to skip)",
        )
    return data
