"""
Session-scoped value types for the facility import pipeline.

Grid, mappings, row results and the final report are created per upload and
discarded once the report is returned. Results and the report are frozen;
the coordinator builds them with folds instead of mutating shared lists.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple


ROW_FIELD = "_row"


@dataclass(frozen=True)
class Grid:
    header: List[str]
    rows: List[List[str]]
    encoding: str = "utf-8"

    @property
    def total_rows(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return len(self.header)


@dataclass(frozen=True)
class ColumnMapping:
    source_index: int
    source_header: str
    # None means the column is skipped
    target_field: Optional[str] = None

    @property
    def is_skipped(self) -> bool:
        return self.target_field is None


class MappingErrorKind(str, Enum):
    DUPLICATE_TARGET = "duplicate_target"
    MISSING_REQUIRED = "missing_required"
    UNKNOWN_FIELD = "unknown_field"
    UNKNOWN_SOURCE = "unknown_source"


@dataclass(frozen=True)
class MappingError:
    """Blocking mapping condition; reported to the operator, never raised."""
    kind: MappingErrorKind
    message: str
    target_field: Optional[str] = None
    source_headers: Tuple[str, ...] = ()


class Verdict(str, Enum):
    ACCEPTED = "accepted"
    WARNING = "warning"
    REJECTED = "rejected"


class Severity(str, Enum):
    SOFT = "soft"
    HARD = "hard"


class IssueCode(str, Enum):
    REQUIRED = "required"
    INVALID_FORMAT = "invalid_format"
    INVALID_OPTION = "invalid_option"
    OUT_OF_RANGE = "out_of_range"
    CELL_COUNT_MISMATCH = "cell_count_mismatch"
    DUPLICATE = "duplicate"
    STORAGE_FAILURE = "storage_failure"


@dataclass(frozen=True)
class RowIssue:
    field: str
    raw_value: Optional[str]
    message: str
    code: IssueCode
    severity: Severity = Severity.HARD


@dataclass(frozen=True)
class RowResult:
    row_number: int
    mapped_record: Dict[str, Any]
    verdict: Verdict
    issues: Tuple[RowIssue, ...] = ()
    duplicate_key: Optional[str] = None

    @property
    def is_importable(self) -> bool:
        return self.verdict is not Verdict.REJECTED

    @property
    def is_duplicate(self) -> bool:
        return any(issue.code is IssueCode.DUPLICATE for issue in self.issues)

    def with_issue(self, issue: RowIssue) -> "RowResult":
        """Return a copy carrying ``issue`` with the verdict recomputed."""
        issues = self.issues + (issue,)
        return RowResult(
            row_number=self.row_number,
            mapped_record=self.mapped_record,
            verdict=verdict_for(issues),
            issues=issues,
            duplicate_key=self.duplicate_key,
        )


def verdict_for(issues: Iterable[RowIssue]) -> Verdict:
    verdict = Verdict.ACCEPTED
    for issue in issues:
        if issue.severity is Severity.HARD:
            return Verdict.REJECTED
        verdict = Verdict.WARNING
    return verdict


class CommitMode(str, Enum):
    TRANSACTIONAL = "transactional"
    PER_ROW = "per_row"


@dataclass(frozen=True)
class ImportReport:
    total_rows: int
    accepted: int
    warned: int
    rejected: int
    duplicates: int
    results: Tuple[RowResult, ...] = ()
    committed: int = 0
    commit_mode: Optional[CommitMode] = None
    storage_error: Optional[str] = None
    schema_version: Optional[str] = None

    @property
    def successful_imports(self) -> int:
        return self.committed

    @property
    def issues(self) -> List[RowResult]:
        """Rows that carry at least one issue, in row order."""
        return [result for result in self.results if result.issues]

    def flat_issues(self) -> List[Dict[str, Any]]:
        return [
            {
                "row": result.row_number,
                "field": issue.field,
                "value": issue.raw_value,
                "message": issue.message,
                "code": issue.code.value,
                "severity": issue.severity.value,
            }
            for result in self.results
            for issue in result.issues
        ]


def build_report(
    results: Iterable[RowResult],
    *,
    committed: int = 0,
    commit_mode: Optional[CommitMode] = None,
    storage_error: Optional[str] = None,
    schema_version: Optional[str] = None,
) -> ImportReport:
    """Fold row results into a report; tallies always sum to ``total_rows``."""
    ordered = tuple(sorted(results, key=lambda result: result.row_number))
    tallies = {verdict: 0 for verdict in Verdict}
    duplicates = 0
    for result in ordered:
        tallies[result.verdict] += 1
        if result.verdict is Verdict.REJECTED and result.is_duplicate:
            duplicates += 1
    return ImportReport(
        total_rows=len(ordered),
        accepted=tallies[Verdict.ACCEPTED],
        warned=tallies[Verdict.WARNING],
        rejected=tallies[Verdict.REJECTED],
        duplicates=duplicates,
        results=ordered,
        committed=committed,
        commit_mode=commit_mode,
        storage_error=storage_error,
        schema_version=schema_version,
    )


@dataclass(frozen=True)
class CommitAuthorization:
    """Opaque capability handed in by whoever authenticated the operator."""
    granted_to: str = field(default="operator")
