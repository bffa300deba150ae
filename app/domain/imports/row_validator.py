"""
Per-row validation of mapped facility records.

``validate_row`` is a pure function of (row cells, mapping, schema): it never
touches shared state, so the coordinator can fan rows out across worker
threads. Duplicate detection needs row order and the store's existing keys,
so it runs afterwards as a fold over the merged results.
"""
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from app.utils.phone import normalize_phone
from .models import (
    ROW_FIELD,
    ColumnMapping,
    IssueCode,
    RowIssue,
    RowResult,
    Severity,
    verdict_for,
)
from .schema import FieldKind, FieldSpec, TargetSchema
from .validators import validate_with_preset

logger = logging.getLogger(__name__)

LIST_DELIMITERS = re.compile(r"[;,]")
OPTION_SEPARATORS = re.compile(r"[\s\-]+")
MAX_LISTED_OPTIONS = 10


def _split_list_value(raw_value: str) -> List[str]:
    return [item.strip() for item in LIST_DELIMITERS.split(raw_value) if item.strip()]


def build_raw_record(
    cells: Sequence[str],
    mappings: Iterable[ColumnMapping],
    schema: TargetSchema,
) -> Dict[str, Any]:
    """
    Read each mapped column out of a row.

    Scalar fields hold the trimmed cell text; list fields hold the items of
    every column mapped to them, split on commas and semicolons. Missing
    trailing cells read as empty.
    """
    record: Dict[str, Any] = {}
    for mapping in mappings:
        if mapping.is_skipped:
            continue
        spec = schema.get(mapping.target_field)
        if spec is None:
            continue
        cell = cells[mapping.source_index] if mapping.source_index < len(cells) else ""
        if spec.kind is FieldKind.DELIMITED_LIST:
            record.setdefault(spec.name, []).extend(_split_list_value(cell))
        else:
            record[spec.name] = cell
    return record


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, list):
        return not value
    return not str(value).strip()


def _option_key(value: str) -> str:
    return OPTION_SEPARATORS.sub("_", value.strip().lower())


def _match_option(value: str, allowed_values: Sequence[str]) -> Optional[str]:
    """Case-insensitive match that treats spaces and hyphens like underscores."""
    key = _option_key(value)
    for option in allowed_values:
        if _option_key(option) == key:
            return option
    return None


def _options_hint(spec: FieldSpec) -> str:
    if len(spec.allowed_values) <= MAX_LISTED_OPTIONS:
        return f"Must be: {', '.join(spec.allowed_values)}"
    return f"Must be a valid {spec.label} value"


def _display(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(value)
    return str(value)


def _check_string(spec: FieldSpec, value: str) -> Tuple[Any, Optional[Tuple[IssueCode, str]]]:
    if spec.min_length is not None and len(value) < spec.min_length:
        return None, (IssueCode.INVALID_FORMAT, f"{spec.label} must be at least {spec.min_length} characters long")
    if spec.max_length is not None and len(value) > spec.max_length:
        return None, (IssueCode.INVALID_FORMAT, f"{spec.label} must be at most {spec.max_length} characters long")
    if spec.pattern:
        is_valid, message = validate_with_preset(value, spec.pattern)
        if not is_valid:
            return None, (IssueCode.INVALID_FORMAT, message)
    return value, None


def _check_number(spec: FieldSpec, value: str) -> Tuple[Any, Optional[Tuple[IssueCode, str]]]:
    is_valid, _ = validate_with_preset(value, "decimal")
    if not is_valid:
        return None, (IssueCode.INVALID_FORMAT, f"{spec.label} must be a number")
    number = float(value)
    too_low = spec.min_value is not None and number < spec.min_value
    too_high = spec.max_value is not None and number > spec.max_value
    if too_low or too_high:
        if spec.min_value is not None and spec.max_value is not None:
            bounds = f"between {spec.min_value:g} and {spec.max_value:g}"
        elif spec.min_value is not None:
            bounds = f"at least {spec.min_value:g}"
        else:
            bounds = f"at most {spec.max_value:g}"
        return None, (IssueCode.OUT_OF_RANGE, f"{spec.label} must be {bounds}")
    return number, None


def _check_scalar(spec: FieldSpec, value: str) -> Tuple[Any, Optional[Tuple[IssueCode, str]]]:
    """Return (normalized value, problem) for one non-empty scalar cell."""
    if spec.kind is FieldKind.STRING:
        return _check_string(spec, value)

    if spec.kind is FieldKind.ENUM:
        option = _match_option(value, spec.allowed_values or ())
        if option is None:
            return None, (IssueCode.INVALID_OPTION, f"Invalid {spec.label}. {_options_hint(spec)}")
        return option, None

    if spec.kind is FieldKind.ZIP:
        is_valid, _ = validate_with_preset(value, "postal_code_us")
        if not is_valid:
            return None, (IssueCode.INVALID_FORMAT, "ZIP code must be in format 12345 or 12345-6789")
        return value, None

    if spec.kind is FieldKind.PHONE:
        digits = normalize_phone(value)
        if digits is None:
            return None, (IssueCode.INVALID_FORMAT, "Phone number must contain 10 to 15 digits")
        return digits, None

    if spec.kind is FieldKind.EMAIL:
        is_valid, _ = validate_with_preset(value, "email")
        if not is_valid:
            return None, (IssueCode.INVALID_FORMAT, "Invalid email format")
        return value.lower(), None

    if spec.kind is FieldKind.NUMBER:
        return _check_number(spec, value)

    raise ValueError(f"Field '{spec.name}' has non-scalar kind {spec.kind.value}")


def _field_severity(spec: FieldSpec) -> Severity:
    return Severity.HARD if spec.required or spec.strict else Severity.SOFT


def validate_field(spec: FieldSpec, raw_value: Any) -> Tuple[Any, List[RowIssue]]:
    """
    Validate one field value.

    Returns the normalized value (None when empty or dropped) and any issues.
    Problems on required or strict fields are hard; on other optional fields
    they are soft and the offending value is dropped.
    """
    if _is_empty(raw_value):
        if spec.required:
            return None, [RowIssue(
                field=spec.name,
                raw_value="",
                message=f"{spec.label} is required",
                code=IssueCode.REQUIRED,
            )]
        return None, []

    severity = _field_severity(spec)
    dropped_suffix = "" if severity is Severity.HARD else " (value dropped)"

    if spec.kind is FieldKind.DELIMITED_LIST:
        if not spec.allowed_values:
            return list(dict.fromkeys(raw_value)), []
        matched: List[str] = []
        unknown: List[str] = []
        for item in raw_value:
            option = _match_option(item, spec.allowed_values)
            if option is None:
                unknown.append(item)
            elif option not in matched:
                matched.append(option)
        if not unknown:
            return matched, []
        if spec.required and not matched:
            item_severity = Severity.HARD
        else:
            item_severity = Severity.SOFT
        issue = RowIssue(
            field=spec.name,
            raw_value=", ".join(unknown),
            message=f"Unknown {spec.label}: {', '.join(unknown)}. {_options_hint(spec)}"
            + ("" if item_severity is Severity.HARD else " (values dropped)"),
            code=IssueCode.INVALID_OPTION,
            severity=item_severity,
        )
        return matched or None, [issue]

    value, problem = _check_scalar(spec, str(raw_value).strip())
    if problem is None:
        return value, []
    code, message = problem
    return None, [RowIssue(
        field=spec.name,
        raw_value=_display(raw_value),
        message=message + dropped_suffix,
        code=code,
        severity=severity,
    )]


def _normalize_key_text(value: str) -> str:
    return " ".join(re.sub(r"[^a-z0-9]+", " ", value.lower()).split())


def duplicate_key_for(record: Dict[str, Any]) -> Optional[str]:
    """
    Composite key used to spot repeated facilities.

    Normalized name plus 5-digit ZIP; when the name is missing the normalized
    street address stands in. Records without a ZIP have no key.
    """
    zip_code = str(record.get("zipCode") or "").strip()
    if not zip_code:
        return None
    zip5 = zip_code[:5]
    name = _normalize_key_text(str(record.get("name") or ""))
    if name:
        return f"name:{name}|{zip5}"
    address = _normalize_key_text(str(record.get("address") or ""))
    if address:
        return f"address:{address}|{zip5}"
    return None


def validate_row(
    row_number: int,
    cells: Sequence[str],
    mappings: Sequence[ColumnMapping],
    schema: TargetSchema,
    expected_cells: Optional[int] = None,
) -> RowResult:
    """Validate one data row (1-indexed, header excluded) into a RowResult."""
    issues: List[RowIssue] = []

    if expected_cells is not None and len(cells) != expected_cells:
        issues.append(RowIssue(
            field=ROW_FIELD,
            raw_value=None,
            message=f"Row has {len(cells)} cells but the header has {expected_cells}",
            code=IssueCode.CELL_COUNT_MISMATCH,
            severity=Severity.SOFT,
        ))

    raw_record = build_raw_record(cells, mappings, schema)
    mapped_record: Dict[str, Any] = {}
    for spec in schema.fields:
        value, field_issues = validate_field(spec, raw_record.get(spec.name))
        issues.extend(field_issues)
        if value is not None:
            mapped_record[spec.name] = value

    issues_tuple = tuple(issues)
    return RowResult(
        row_number=row_number,
        mapped_record=mapped_record,
        verdict=verdict_for(issues_tuple),
        issues=issues_tuple,
        duplicate_key=duplicate_key_for(mapped_record),
    )


def _duplicate_issue(result: RowResult, conflict: str) -> RowIssue:
    key_field = "name" if (result.duplicate_key or "").startswith("name:") else "address"
    return RowIssue(
        field=key_field,
        raw_value=_display(result.mapped_record.get(key_field, "")),
        message=f"duplicate: same {key_field} and ZIP code as {conflict}",
        code=IssueCode.DUPLICATE,
    )


def apply_duplicate_rules(results: Iterable[RowResult], existing_keys: Set[str]) -> List[RowResult]:
    """
    Reject rows whose composite key is already stored or was claimed earlier
    in the same file.

    Only rows that will actually be imported claim a key, so when two rows
    share a key exactly one of them is retained.
    """
    claimed: Dict[str, int] = {}
    checked: List[RowResult] = []
    for result in sorted(results, key=lambda item: item.row_number):
        key = result.duplicate_key
        if key is not None:
            if key in existing_keys:
                result = result.with_issue(_duplicate_issue(
                    result, "an existing facility",
                ))
            elif key in claimed:
                result = result.with_issue(_duplicate_issue(
                    result, f"row {claimed[key]}",
                ))
            elif result.is_importable:
                claimed[key] = result.row_number
        checked.append(result)

    duplicates = sum(1 for result in checked if result.is_duplicate)
    if duplicates:
        logger.info("Duplicate detection rejected %d row(s)", duplicates)
    return checked
