from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.domain.imports.models import ColumnMapping, ImportReport, MappingError
from app.domain.imports.schema import FieldSpec


class FieldSpecResponse(BaseModel):
    name: str
    label: str
    kind: str
    required: bool
    allowed_values: Optional[List[str]] = None
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    hint: Optional[str] = None

    @classmethod
    def from_spec(cls, spec: FieldSpec, hint: Optional[str] = None) -> "FieldSpecResponse":
        return cls(
            name=spec.name,
            label=spec.label,
            kind=spec.kind.value,
            required=spec.required,
            allowed_values=list(spec.allowed_values) if spec.allowed_values else None,
            pattern=spec.pattern,
            min_length=spec.min_length,
            max_length=spec.max_length,
            min_value=spec.min_value,
            max_value=spec.max_value,
            hint=hint,
        )


class SchemaResponse(BaseModel):
    version: str
    fields: List[FieldSpecResponse]
    required_fields: List[str]


class ColumnMappingDetail(BaseModel):
    source_index: int
    source_header: str
    target_field: Optional[str] = None

    @classmethod
    def from_mapping(cls, mapping: ColumnMapping) -> "ColumnMappingDetail":
        return cls(
            source_index=mapping.source_index,
            source_header=mapping.source_header,
            target_field=mapping.target_field,
        )


class MappingErrorDetail(BaseModel):
    kind: str
    message: str
    target_field: Optional[str] = None
    source_headers: List[str] = Field(default_factory=list)

    @classmethod
    def from_error(cls, error: MappingError) -> "MappingErrorDetail":
        return cls(
            kind=error.kind.value,
            message=error.message,
            target_field=error.target_field,
            source_headers=list(error.source_headers),
        )


class MappingProposalResponse(BaseModel):
    schema_version: str
    header: List[str]
    total_rows: int
    mappings: List[ColumnMappingDetail]
    errors: List[MappingErrorDetail]
    preview_rows: List[List[str]]


class ImportIssue(BaseModel):
    row: int
    field: str
    value: Optional[str] = None
    message: str
    code: str
    severity: str


class FacilityImportResponse(BaseModel):
    """Import summary in the shape the bulk upload page renders."""

    model_config = ConfigDict(populate_by_name=True)

    total_rows: int = Field(alias="totalRows")
    successful_imports: int = Field(alias="successfulImports")
    errors: int
    warnings: int
    duplicates: int
    committed: int
    dry_run: bool = Field(default=False, alias="dryRun")
    commit_mode: Optional[str] = Field(default=None, alias="commitMode")
    storage_error: Optional[str] = Field(default=None, alias="storageError")
    schema_version: Optional[str] = Field(default=None, alias="schemaVersion")
    issues: List[ImportIssue] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: ImportReport, dry_run: bool = False) -> "FacilityImportResponse":
        return cls(
            total_rows=report.total_rows,
            successful_imports=report.successful_imports,
            errors=report.rejected,
            warnings=report.warned,
            duplicates=report.duplicates,
            committed=report.committed,
            dry_run=dry_run,
            commit_mode=report.commit_mode.value if report.commit_mode else None,
            storage_error=report.storage_error,
            schema_version=report.schema_version,
            issues=[ImportIssue(**issue) for issue in report.flat_issues()],
        )


class BlockedMappingDetail(BaseModel):
    message: str
    mapping_errors: List[MappingErrorDetail]
    mappings: List[ColumnMappingDetail]


def parse_overrides(raw: Optional[Dict[str, Any]]) -> Dict[str, Optional[str]]:
    """Override keys arrive as JSON object keys (strings); values may be null to skip."""
    if not raw:
        return {}
    return {str(key): (str(value) if value is not None else None) for key, value in raw.items()}
