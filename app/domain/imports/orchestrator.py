"""
Facility import coordination.

``ImportSession`` drives one upload through the pipeline as a state machine:

    IDLE -> FILE_SELECTED -> MAPPED -> VALIDATING -> READY_TO_COMMIT
         -> COMMITTING -> COMPLETED | ABORTED

``execute_facility_import`` runs a whole session in one call for the API.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait, FIRST_COMPLETED

from app.core.config import settings
from app.db.facility_store import FacilityStore
from app.utils.locks import KeyLockManager
from .errors import (
    CommitNotAuthorizedError,
    DuplicateFacilityError,
    FacilityImportError,
    ImportCancelledError,
    ImportTimeoutError,
    InvalidStateError,
    StorageError,
)
from .mapper import OverrideKey, apply_overrides, check_mapping, find_unknown_sources, propose_mapping
from .models import (
    ROW_FIELD,
    ColumnMapping,
    CommitAuthorization,
    CommitMode,
    Grid,
    ImportReport,
    IssueCode,
    MappingError,
    RowIssue,
    RowResult,
    build_report,
)
from .processors.csv_processor import parse_csv_grid
from .row_validator import apply_duplicate_rules, validate_row
from .schema import TargetSchema, get_schema

logger = logging.getLogger(__name__)


class ImportState(str, Enum):
    IDLE = "idle"
    FILE_SELECTED = "file_selected"
    MAPPED = "mapped"
    VALIDATING = "validating"
    READY_TO_COMMIT = "ready_to_commit"
    COMMITTING = "committing"
    COMPLETED = "completed"
    ABORTED = "aborted"


CANCELLABLE_STATES = {
    ImportState.IDLE,
    ImportState.FILE_SELECTED,
    ImportState.MAPPED,
    ImportState.VALIDATING,
    ImportState.READY_TO_COMMIT,
}


class _ValidationStopped(Exception):
    """Internal signal from a worker that the deadline passed or the operator cancelled."""


def _validate_chunk(
    chunk_num: int,
    rows: Sequence[List[str]],
    first_row_number: int,
    mappings: Sequence[ColumnMapping],
    schema: TargetSchema,
    expected_cells: int,
    cancel_event: threading.Event,
    deadline: Optional[float],
) -> Tuple[int, List[RowResult]]:
    """
    Validate a single chunk of rows. Designed to be called in parallel.

    Returns:
        Tuple of (chunk_num, row_results)
    """
    chunk_start = time.time()
    results: List[RowResult] = []
    for offset, cells in enumerate(rows):
        if cancel_event.is_set() or (deadline is not None and time.monotonic() > deadline):
            raise _ValidationStopped()
        results.append(validate_row(first_row_number + offset, cells, mappings, schema, expected_cells))
    chunk_time = time.time() - chunk_start
    logger.debug(f"Chunk {chunk_num}: validated {len(results)} rows in {chunk_time:.2f}s")
    return chunk_num, results


def _validate_chunks_parallel(
    grid: Grid,
    mappings: Sequence[ColumnMapping],
    schema: TargetSchema,
    *,
    chunk_size: int,
    max_workers: int,
    cancel_event: threading.Event,
    deadline: Optional[float],
    timeout_seconds: float,
    on_progress=None,
) -> List[RowResult]:
    """
    Validate every grid row across a thread pool and merge by row number.

    Raises:
        ImportTimeoutError: the shared deadline passed before all chunks finished
        ImportCancelledError: the operator cancelled while validating
    """
    chunks = [grid.rows[start:start + chunk_size] for start in range(0, len(grid.rows), chunk_size)]
    if not chunks:
        return []

    workers = max(1, min(max_workers, len(chunks)))
    logger.info(f"Validating {grid.total_rows} rows in {len(chunks)} chunks with {workers} workers")
    chunk_results: Dict[int, List[RowResult]] = {}

    def _stop(pending, error: FacilityImportError):
        for future in pending:
            future.cancel()
        cancel_event.set()
        raise error

    def _stop_error() -> FacilityImportError:
        if deadline is not None and time.monotonic() > deadline:
            return ImportTimeoutError("validation", timeout_seconds)
        return ImportCancelledError(ImportState.VALIDATING.value)

    with ThreadPoolExecutor(max_workers=workers) as executor:
        pending = {
            executor.submit(
                _validate_chunk,
                chunk_num,
                chunk_rows,
                chunk_num * chunk_size + 1,
                mappings,
                schema,
                grid.column_count,
                cancel_event,
                deadline,
            )
            for chunk_num, chunk_rows in enumerate(chunks)
        }

        while pending:
            wait_timeout = None
            if deadline is not None:
                wait_timeout = deadline - time.monotonic()
                if wait_timeout <= 0:
                    logger.error("Validation timed out after %s seconds", timeout_seconds)
                    _stop(pending, ImportTimeoutError("validation", timeout_seconds))

            done, pending = wait(pending, timeout=wait_timeout, return_when=FIRST_COMPLETED)
            if not done:
                continue

            for future in done:
                try:
                    chunk_num, results = future.result()
                except _ValidationStopped:
                    _stop(pending, _stop_error())
                chunk_results[chunk_num] = results
                if on_progress is not None:
                    on_progress(len(chunk_results), len(chunks))

    merged = [result for chunk_num in sorted(chunk_results) for result in chunk_results[chunk_num]]
    logger.info(f"Parallel validation completed: {len(merged)} rows")
    return merged


@dataclass
class MappingCheck:
    mappings: List[ColumnMapping]
    errors: List[MappingError] = field(default_factory=list)

    @property
    def is_blocked(self) -> bool:
        return bool(self.errors)


class ImportSession:
    """One upload moving through parse, map, validate and commit."""

    def __init__(
        self,
        schema_version: Optional[str] = None,
        *,
        timeout_seconds: Optional[float] = None,
        max_workers: Optional[int] = None,
        chunk_size: Optional[int] = None,
    ):
        self.schema = get_schema(schema_version)
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.import_timeout_seconds
        self.max_workers = max(1, max_workers or settings.validation_parallel_max_workers)
        self.chunk_size = max(1, chunk_size or settings.validation_chunk_size)

        self.state = ImportState.IDLE
        self.grid: Optional[Grid] = None
        self.proposed_mappings: List[ColumnMapping] = []
        self.mappings: List[ColumnMapping] = []
        self.mapping_errors: List[MappingError] = []
        self.results: List[RowResult] = []
        self.report: Optional[ImportReport] = None
        self.error: Optional[Exception] = None

        self._cancel_event = threading.Event()
        self._deadline: Optional[float] = None
        self._progress = 0

    @property
    def progress(self) -> int:
        """Advisory completion percentage; carries no correctness guarantee."""
        return self._progress

    def _require_state(self, operation: str, *allowed: ImportState) -> None:
        if self.state not in allowed:
            expected = " or ".join(state.value for state in allowed)
            raise InvalidStateError(operation, self.state.value, expected)

    def _abort(self, error: Exception) -> None:
        self.state = ImportState.ABORTED
        self.error = error
        logger.warning("Import aborted: %s", error)

    def _check_deadline(self, stage: str) -> None:
        if self._deadline is not None and time.monotonic() > self._deadline:
            raise ImportTimeoutError(stage, self.timeout_seconds)

    def select_file(self, file_content: bytes, encoding: Optional[str] = None) -> Grid:
        """Parse the upload and propose a default mapping."""
        self._require_state("select a file", ImportState.IDLE, ImportState.FILE_SELECTED, ImportState.MAPPED)
        if self.timeout_seconds and self.timeout_seconds > 0:
            self._deadline = time.monotonic() + self.timeout_seconds
        try:
            grid = parse_csv_grid(file_content, encoding)
            self._check_deadline("parse")
        except FacilityImportError as e:
            self._abort(e)
            raise

        self.grid = grid
        self.proposed_mappings = propose_mapping(grid.header, self.schema)
        self.mappings = list(self.proposed_mappings)
        self.mapping_errors = check_mapping(self.mappings, self.schema)
        self.state = ImportState.FILE_SELECTED
        self._progress = 10
        return grid

    def confirm_mapping(
        self,
        overrides: Optional[Mapping[OverrideKey, Optional[str]]] = None,
    ) -> MappingCheck:
        """
        Apply operator overrides to the proposal and check the result.

        With blocking errors the session stays in FILE_SELECTED and keeps the
        attempted mapping so the operator can correct it.
        """
        self._require_state("confirm a mapping", ImportState.FILE_SELECTED, ImportState.MAPPED)
        mappings = apply_overrides(self.proposed_mappings, overrides)
        errors = find_unknown_sources(self.proposed_mappings, overrides) + check_mapping(mappings, self.schema)
        self.mappings = mappings
        self.mapping_errors = errors
        if errors:
            self.state = ImportState.FILE_SELECTED
            logger.info("Mapping blocked by %d error(s)", len(errors))
        else:
            self.state = ImportState.MAPPED
            self._progress = 20
        return MappingCheck(mappings=list(mappings), errors=list(errors))

    def validate(self, existing_keys: Optional[Set[str]] = None) -> List[RowResult]:
        """
        Validate every row, then apply duplicate detection against
        ``existing_keys`` and earlier rows of the same file.
        """
        self._require_state("validate", ImportState.MAPPED)
        self.state = ImportState.VALIDATING
        # Parse and validation each get the full budget; mapping review time is not counted
        if self.timeout_seconds and self.timeout_seconds > 0:
            self._deadline = time.monotonic() + self.timeout_seconds
        def _on_progress(done: int, total: int) -> None:
            self._progress = 20 + int(60 * done / total)

        try:
            if self._cancel_event.is_set():
                raise ImportCancelledError(ImportState.VALIDATING.value)
            results = _validate_chunks_parallel(
                self.grid,
                self.mappings,
                self.schema,
                chunk_size=self.chunk_size,
                max_workers=self.max_workers,
                cancel_event=self._cancel_event,
                deadline=self._deadline,
                timeout_seconds=self.timeout_seconds,
                on_progress=_on_progress,
            )
            self._check_deadline("validation")
            # Workers only poll between rows, so a cancel during a chunk's last row lands here
            if self._cancel_event.is_set():
                raise ImportCancelledError(ImportState.VALIDATING.value)
        except FacilityImportError as e:
            self._abort(e)
            raise

        self.results = apply_duplicate_rules(results, set(existing_keys or ()))
        self.state = ImportState.READY_TO_COMMIT
        self._progress = 80
        return list(self.results)

    def cancel(self) -> bool:
        """
        Request cancellation. Honored up to READY_TO_COMMIT; once committing
        has begun the in-flight writes finish and the partial result stands.
        """
        if self.state not in CANCELLABLE_STATES:
            logger.info("Cancel ignored while import is %s", self.state.value)
            return False
        self._cancel_event.set()
        if self.state is not ImportState.VALIDATING:
            self._abort(ImportCancelledError(self.state.value))
        return True

    def preview_report(self) -> ImportReport:
        """Report for the validated rows without committing anything."""
        self._require_state("preview", ImportState.READY_TO_COMMIT)
        return build_report(self.results, schema_version=self.schema.version)

    def commit(self, store: FacilityStore, authorization: Optional[CommitAuthorization]) -> ImportReport:
        """
        Persist the accepted and warned rows and return the final report.

        Transactional stores get the whole batch at once and any failure
        leaves nothing committed. Otherwise rows are written one at a time and
        a failing row turns into a post-hoc rejection.
        """
        self._require_state("commit", ImportState.READY_TO_COMMIT)
        if self._cancel_event.is_set():
            error = ImportCancelledError(self.state.value)
            self._abort(error)
            raise error
        if not isinstance(authorization, CommitAuthorization):
            raise CommitNotAuthorizedError()

        self.state = ImportState.COMMITTING
        commit_mode = CommitMode.TRANSACTIONAL if getattr(store, "transactional", False) else CommitMode.PER_ROW
        commit_start = time.time()

        try:
            if commit_mode is CommitMode.TRANSACTIONAL:
                results, committed, storage_error = self._commit_transactional(store)
            else:
                results, committed, storage_error = self._commit_per_row(store)
        except Exception as e:
            self._abort(e)
            raise

        self.results = results
        self.report = build_report(
            results,
            committed=committed,
            commit_mode=commit_mode,
            storage_error=storage_error,
            schema_version=self.schema.version,
        )
        self.state = ImportState.COMPLETED
        self._progress = 100
        logger.info(
            "⏱️  Commit finished in %.2fs: %d committed, %d accepted, %d warned, %d rejected (%d duplicates)",
            time.time() - commit_start,
            committed,
            self.report.accepted,
            self.report.warned,
            self.report.rejected,
            self.report.duplicates,
        )
        return self.report

    def _commit_transactional(self, store: FacilityStore) -> Tuple[List[RowResult], int, Optional[str]]:
        importable = [result for result in self.results if result.is_importable]
        if not importable:
            return list(self.results), 0, None
        keys = [result.duplicate_key for result in importable if result.duplicate_key]
        with KeyLockManager.acquire_many(keys):
            try:
                store.create_many([result.mapped_record for result in importable])
            except StorageError as e:
                logger.error("Transactional commit failed, nothing persisted: %s", e.message)
                return list(self.results), 0, e.message
        return list(self.results), len(importable), None

    def _commit_per_row(self, store: FacilityStore) -> Tuple[List[RowResult], int, Optional[str]]:
        committed = 0
        final: List[RowResult] = []
        importable_total = sum(1 for result in self.results if result.is_importable)
        for result in self.results:
            if not result.is_importable:
                final.append(result)
                continue
            lock_key = result.duplicate_key or f"row:{result.row_number}"
            with KeyLockManager.acquire(lock_key):
                try:
                    store.create(result.mapped_record)
                    committed += 1
                except DuplicateFacilityError:
                    result = result.with_issue(RowIssue(
                        field="name",
                        raw_value=str(result.mapped_record.get("name", "")),
                        message="duplicate: facility was created by another import before this row was saved",
                        code=IssueCode.DUPLICATE,
                    ))
                except StorageError as e:
                    logger.warning("Row %d failed to persist: %s", result.row_number, e.message)
                    result = result.with_issue(RowIssue(
                        field=ROW_FIELD,
                        raw_value=None,
                        message=f"storage failure: {e.message}",
                        code=IssueCode.STORAGE_FAILURE,
                    ))
            final.append(result)
            if importable_total:
                self._progress = 80 + int(20 * committed / importable_total)
        return final, committed, None


@dataclass
class ImportOutcome:
    session: ImportSession
    report: Optional[ImportReport] = None

    @property
    def mapping_errors(self) -> List[MappingError]:
        return self.session.mapping_errors

    @property
    def is_blocked(self) -> bool:
        return self.report is None and bool(self.session.mapping_errors)


def execute_facility_import(
    file_content: bytes,
    *,
    store: Optional[FacilityStore],
    authorization: Optional[CommitAuthorization] = None,
    overrides: Optional[Mapping[OverrideKey, Optional[str]]] = None,
    schema_version: Optional[str] = None,
    encoding: Optional[str] = None,
    dry_run: bool = False,
    session: Optional[ImportSession] = None,
) -> ImportOutcome:
    """
    Run a full import: parse, map, validate and (unless ``dry_run``) commit.

    Fatal errors (parse, size, timeout, cancellation, authorization) raise.
    A blocked mapping returns an outcome with no report and the mapping
    errors preserved on the session.
    """
    session = session or ImportSession(schema_version)
    logger.info("Starting facility import (%d bytes, schema %s, dry_run=%s)", len(file_content), session.schema.version, dry_run)

    session.select_file(file_content, encoding)
    check = session.confirm_mapping(overrides)
    if check.is_blocked:
        return ImportOutcome(session=session)

    existing_keys = store.existing_keys() if store is not None else set()
    session.validate(existing_keys)

    if dry_run:
        return ImportOutcome(session=session, report=session.preview_report())
    return ImportOutcome(session=session, report=session.commit(store, authorization))
