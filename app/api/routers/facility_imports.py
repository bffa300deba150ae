"""
Bulk facility import endpoints: schema, template, mapping proposal, import
and rejected-row export.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile

from app.api.dependencies import get_commit_authorization, get_facility_store, parse_mapping_json
from app.api.schemas.facility_imports import (
    BlockedMappingDetail,
    ColumnMappingDetail,
    FacilityImportResponse,
    FieldSpecResponse,
    MappingErrorDetail,
    MappingProposalResponse,
    SchemaResponse,
    parse_overrides,
)
from app.core.config import settings
from app.db.facility_store import FacilityStore
from app.domain.imports.errors import (
    CommitNotAuthorizedError,
    FacilityImportError,
    ImportCancelledError,
    ImportTimeoutError,
    ParseError,
    SizeLimitError,
    StorageError,
    UnknownSchemaVersionError,
)
from app.domain.imports.models import CommitAuthorization
from app.domain.imports.orchestrator import ImportOutcome, ImportSession, execute_facility_import
from app.domain.imports.schema import get_schema
from app.domain.imports.template import export_rejected_rows, generate_template, list_field_hint

router = APIRouter(prefix="/api/facility-imports", tags=["facility-imports"])

logger = logging.getLogger(__name__)

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"


def _http_error(error: FacilityImportError) -> HTTPException:
    """Translate a fatal pipeline error into the matching HTTP status."""
    if isinstance(error, (ParseError, UnknownSchemaVersionError)):
        code = 400
    elif isinstance(error, SizeLimitError):
        code = 413
    elif isinstance(error, ImportTimeoutError):
        code = 504
    elif isinstance(error, CommitNotAuthorizedError):
        code = 403
    elif isinstance(error, ImportCancelledError):
        code = 409
    elif isinstance(error, StorageError):
        code = 503
    else:
        code = 500
    return HTTPException(status_code=code, detail=error.message)


def _blocked_mapping(outcome: ImportOutcome) -> HTTPException:
    detail = BlockedMappingDetail(
        message="Column mapping must be corrected before rows can be validated",
        mapping_errors=[MappingErrorDetail.from_error(error) for error in outcome.mapping_errors],
        mappings=[ColumnMappingDetail.from_mapping(mapping) for mapping in outcome.session.mappings],
    )
    return HTTPException(status_code=422, detail=detail.model_dump())


def _csv_download(filename: str, content: str) -> Response:
    return Response(
        content=content,
        media_type=CSV_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/schema", response_model=SchemaResponse)
async def get_import_schema(schema_version: Optional[str] = None):
    """Return the canonical field list, in template order, for a schema version."""
    try:
        schema = get_schema(schema_version or settings.default_schema_version)
    except UnknownSchemaVersionError as e:
        raise _http_error(e) from e
    hints = list_field_hint(schema)
    return SchemaResponse(
        version=schema.version,
        fields=[FieldSpecResponse.from_spec(spec, hints.get(spec.name)) for spec in schema.fields],
        required_fields=schema.required_fields,
    )


@router.get("/template")
async def download_template(schema_version: Optional[str] = None):
    """Download the CSV template with the canonical header and example rows."""
    try:
        schema = get_schema(schema_version or settings.default_schema_version)
    except UnknownSchemaVersionError as e:
        raise _http_error(e) from e
    filename, content = generate_template(schema)
    return _csv_download(filename, content)


@router.post("/mapping", response_model=MappingProposalResponse)
async def propose_import_mapping(
    file: UploadFile = File(...),
    schema_version: Optional[str] = Form(None),
    encoding: Optional[str] = Form(None),
):
    """
    Parse an upload and propose a column mapping.

    Parameters:
    - file: CSV upload
    - schema_version: target schema (default: current)
    - encoding: declared text encoding (default: detected)

    Returns:
    - Proposed mapping per source column, blocking mapping errors and a
      preview of the first rows
    """
    file_content = await file.read()
    logger.info("Received mapping proposal request for '%s'", getattr(file, "filename", "unknown"))
    try:
        session = ImportSession(schema_version or settings.default_schema_version)
        grid = session.select_file(file_content, encoding)
    except FacilityImportError as e:
        raise _http_error(e) from e

    return MappingProposalResponse(
        schema_version=session.schema.version,
        header=grid.header,
        total_rows=grid.total_rows,
        mappings=[ColumnMappingDetail.from_mapping(mapping) for mapping in session.mappings],
        errors=[MappingErrorDetail.from_error(error) for error in session.mapping_errors],
        preview_rows=grid.rows[:settings.preview_row_limit],
    )


@router.post("", response_model=FacilityImportResponse, response_model_by_alias=True)
async def import_facilities(
    file: UploadFile = File(...),
    mapping_json: Optional[str] = Form(None),
    schema_version: Optional[str] = Form(None),
    encoding: Optional[str] = Form(None),
    dry_run: bool = Form(False),
    store: FacilityStore = Depends(get_facility_store),
    authorization: Optional[CommitAuthorization] = Depends(get_commit_authorization),
):
    """
    Validate and import facilities from a CSV upload.

    Parameters:
    - file: CSV upload
    - mapping_json: optional JSON object of source column (index or header) ->
      canonical field, null to skip
    - schema_version: target schema (default: current)
    - encoding: declared text encoding (default: detected)
    - dry_run: validate and report without writing anything

    Returns:
    - Import summary with per-row issues
    """
    overrides = parse_overrides(parse_mapping_json(mapping_json))
    if not dry_run and authorization is None:
        raise _http_error(CommitNotAuthorizedError())

    file_content = await file.read()
    logger.info(
        "Received facility import for '%s' (%d bytes, dry_run=%s)",
        getattr(file, "filename", "unknown"),
        len(file_content),
        dry_run,
    )
    try:
        outcome = execute_facility_import(
            file_content,
            store=store,
            authorization=authorization,
            overrides=overrides,
            schema_version=schema_version or settings.default_schema_version,
            encoding=encoding,
            dry_run=dry_run,
        )
    except FacilityImportError as e:
        logger.warning("Facility import failed: %s", e.message)
        raise _http_error(e) from e

    if outcome.is_blocked:
        raise _blocked_mapping(outcome)
    return FacilityImportResponse.from_report(outcome.report, dry_run=dry_run)


@router.post("/rejected-rows")
async def download_rejected_rows(
    file: UploadFile = File(...),
    mapping_json: Optional[str] = Form(None),
    schema_version: Optional[str] = Form(None),
    encoding: Optional[str] = Form(None),
    store: FacilityStore = Depends(get_facility_store),
):
    """
    Validate an upload without committing and download only the rows that
    would be rejected, each with an ``importErrors`` column.
    """
    overrides = parse_overrides(parse_mapping_json(mapping_json))
    file_content = await file.read()
    try:
        outcome = execute_facility_import(
            file_content,
            store=store,
            overrides=overrides,
            schema_version=schema_version or settings.default_schema_version,
            encoding=encoding,
            dry_run=True,
        )
    except FacilityImportError as e:
        raise _http_error(e) from e

    if outcome.is_blocked:
        raise _blocked_mapping(outcome)
    filename, content = export_rejected_rows(outcome.session.grid, outcome.report)
    return _csv_download(filename, content)
