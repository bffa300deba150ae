"""
Fatal error kinds raised by the facility import pipeline.

Non-fatal conditions (mapping problems, per-row issues) are never raised;
they travel inside the mapping check result and the import report.
"""
from typing import Optional


class FacilityImportError(Exception):
    """Base class for errors that interrupt an import."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ParseError(FacilityImportError):
    """Raised when the upload cannot be decoded into a grid."""

    EMPTY_FILE = "empty file"
    ENCODING_ERROR = "encoding error"
    MALFORMED_QUOTING = "malformed quoting"

    def __init__(self, reason: str, detail: Optional[str] = None, line_number: Optional[int] = None):
        self.reason = reason
        self.detail = detail
        self.line_number = line_number
        message = reason
        if line_number is not None:
            message = f"{message} (line {line_number})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class SizeLimitError(FacilityImportError):
    """Raised before parsing when the upload exceeds the configured ceiling."""

    def __init__(self, limit_name: str, limit: int, actual: int):
        self.limit_name = limit_name
        self.limit = limit
        self.actual = actual
        super().__init__(f"Upload exceeds {limit_name} limit: {actual} > {limit}")


class ImportTimeoutError(FacilityImportError, TimeoutError):
    """Raised when parsing or validation exceeds the wall-clock budget."""

    def __init__(self, stage: str, timeout_seconds: float):
        self.stage = stage
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{stage} stage timed out after {timeout_seconds:g} seconds")


class ImportCancelledError(FacilityImportError):
    """Raised when the operator cancels before any write has happened."""

    def __init__(self, stage: str):
        self.stage = stage
        super().__init__(f"Import cancelled during {stage}")


class InvalidStateError(FacilityImportError):
    """Raised when a session operation is called from the wrong state."""

    def __init__(self, operation: str, state: str, expected: str):
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while import is {state}; expected {expected}")


class UnknownSchemaVersionError(FacilityImportError):
    """Raised when a caller asks for a target schema that does not exist."""

    def __init__(self, version: str):
        self.version = version
        super().__init__(f"Unknown schema version '{version}'")


class CommitNotAuthorizedError(FacilityImportError):
    """Raised when commit is attempted without a commit capability."""

    def __init__(self):
        super().__init__("Caller is not authorized to commit facility records")


class StorageError(FacilityImportError):
    """Raised by a facility store when a record cannot be persisted."""

    def __init__(self, message: str, row_number: Optional[int] = None):
        self.row_number = row_number
        super().__init__(message)


class DuplicateFacilityError(StorageError):
    """Raised by a facility store when the composite key already exists."""

    def __init__(self, duplicate_key: str, row_number: Optional[int] = None):
        self.duplicate_key = duplicate_key
        super().__init__(f"Facility with key '{duplicate_key}' already exists", row_number=row_number)
