import codecs
import csv
import logging
from io import StringIO
from typing import List, Optional

from app.core.config import settings
from ..errors import ParseError, SizeLimitError
from ..models import Grid

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


def detect_encoding(file_content: bytes, declared_encoding: Optional[str] = None) -> str:
    """
    Pick the codec used to decode an upload.

    A declared encoding always wins. Otherwise a UTF-16 byte order mark selects
    UTF-16 and everything else is read as UTF-8 (with an optional BOM).
    """
    if declared_encoding:
        try:
            return codecs.lookup(declared_encoding).name
        except LookupError as e:
            raise ParseError(ParseError.ENCODING_ERROR, f"unknown encoding '{declared_encoding}'") from e
    if file_content.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return "utf-16"
    return "utf-8-sig"


def check_upload_limits(
    file_content: bytes,
    encoding: Optional[str] = None,
    *,
    max_bytes: Optional[int] = None,
    max_rows: Optional[int] = None,
) -> None:
    """
    Enforce the upload ceiling before any row is parsed.

    The row check counts line breaks in the decoded text, so quoted multi-line
    cells make it conservative rather than exact.
    """
    if max_bytes is None:
        max_bytes = settings.upload_max_file_size_mb * BYTES_PER_MB
    if max_rows is None:
        max_rows = settings.upload_max_rows

    if len(file_content) > max_bytes:
        raise SizeLimitError("file size", max_bytes, len(file_content))

    # Header line plus one line per data row, counted in characters so UTF-16
    # line breaks are not split into stray bytes
    text = file_content.decode(detect_encoding(file_content, encoding), errors="replace")
    lines = text.split("\n")
    if len(lines) > max_rows + 1:
        non_blank = sum(1 for line in lines if line.strip())
        if non_blank > max_rows + 1:
            raise SizeLimitError("row count", max_rows, non_blank - 1)


def _is_blank(row: List[str]) -> bool:
    return all(not cell.strip() for cell in row)


def parse_csv_grid(
    file_content: bytes,
    encoding: Optional[str] = None,
    *,
    max_bytes: Optional[int] = None,
    max_rows: Optional[int] = None,
) -> Grid:
    """
    Decode an upload into a header row plus raw string cells.

    Cells are whitespace-trimmed and trailing blank lines are dropped. Rows
    whose cell count differs from the header are kept as-is; the row
    validator reports the mismatch.

    Raises:
        SizeLimitError: upload exceeds the size or row ceiling
        ParseError: empty file, undecodable bytes, or malformed quoting
    """
    check_upload_limits(file_content, encoding, max_bytes=max_bytes, max_rows=max_rows)

    if not file_content or not file_content.strip():
        raise ParseError(ParseError.EMPTY_FILE)

    codec = detect_encoding(file_content, encoding)
    try:
        text_content = file_content.decode(codec)
    except UnicodeDecodeError as e:
        raise ParseError(ParseError.ENCODING_ERROR, f"{codec} cannot decode byte at position {e.start}") from e

    reader = csv.reader(StringIO(text_content, newline=""), strict=True)
    raw_rows: List[List[str]] = []
    try:
        for row in reader:
            raw_rows.append([cell.strip() for cell in row])
    except csv.Error as e:
        raise ParseError(ParseError.MALFORMED_QUOTING, str(e), line_number=reader.line_num) from e

    while raw_rows and _is_blank(raw_rows[-1]):
        raw_rows.pop()

    # Leading blank lines never hold the header
    while raw_rows and _is_blank(raw_rows[0]):
        raw_rows.pop(0)

    if not raw_rows:
        raise ParseError(ParseError.EMPTY_FILE)

    header, rows = raw_rows[0], raw_rows[1:]
    mismatched = sum(1 for row in rows if len(row) != len(header))
    logger.info(
        "Parsed CSV upload: %d data rows, %d columns, encoding=%s, %d rows with cell-count mismatch",
        len(rows),
        len(header),
        codec,
        mismatched,
    )
    return Grid(header=header, rows=rows, encoding=codec)
