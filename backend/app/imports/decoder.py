"""File decoding: uploaded CSV/XLSX bytes → ordered RawRows.

Any failure here is fatal for the whole operation; no rows are returned.
"""
import csv
import io
import logging
import re
import zipfile
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import PurePath
from types import MappingProxyType

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from app.imports.errors import (
    FileDecodeError,
    FileTooLargeError,
    MissingColumnsError,
    TooManyRowsError,
    UnsupportedMediaTypeError,
)
from app.imports.specs import ImportSpec

logger = logging.getLogger(__name__)

CSV = "csv"
XLSX = "xlsx"

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MEDIA_TYPES = frozenset({"text/csv", "application/csv", "text/plain"})
# Browsers send these for .csv as often as for spreadsheets; the extension decides.
AMBIGUOUS_MEDIA_TYPES = frozenset({"", "application/octet-stream", "application/vnd.ms-excel"})
EXTENSION_FORMATS = {".csv": CSV, ".xlsx": XLSX}

TEXT_ENCODINGS = ("utf-8-sig", "cp1252")


@dataclass(frozen=True)
class RawRow:
    """One data record as the operator typed it. row_number is 1-based, header excluded."""

    row_number: int
    fields: Mapping[str, str]


# ─── Format detection ───

def resolve_format(content_type: str | None, filename: str | None) -> str:
    media_type = (content_type or "").split(";")[0].strip().lower()
    if media_type in CSV_MEDIA_TYPES:
        return CSV
    if media_type == XLSX_MEDIA_TYPE:
        return XLSX
    if media_type in AMBIGUOUS_MEDIA_TYPES:
        ext = PurePath(filename or "").suffix.lower()
        if ext in EXTENSION_FORMATS:
            return EXTENSION_FORMATS[ext]
        label = ext or "unknown"
    else:
        label = media_type
    raise UnsupportedMediaTypeError(
        f"Unsupported file type '{label}'. Only .csv and .xlsx files are allowed."
    )


# ─── Table readers ───

def _decode_text(content: bytes) -> str:
    for encoding in TEXT_ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise FileDecodeError("Could not decode file: expected UTF-8 or Windows-1252 text")


def _guess_delimiter(text: str) -> str:
    first_line = text.split("\n", 1)[0]
    if "," not in first_line:
        for candidate in (";", "\t"):
            if candidate in first_line:
                return candidate
    return ","


def _read_csv(content: bytes) -> Iterator[list[str]]:
    text = _decode_text(content)
    if "\x00" in text:
        raise FileDecodeError("File contains binary data and is not a valid CSV file")
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=_guess_delimiter(text))
    try:
        yield from reader
    except csv.Error as exc:
        raise FileDecodeError(f"Malformed CSV near line {reader.line_num}: {exc}") from exc


def _cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        if (value.hour, value.minute, value.second, value.microsecond) == (0, 0, 0, 0):
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _read_xlsx(content: bytes) -> Iterator[list[str]]:
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise FileDecodeError(f"Failed to parse Excel file: {exc}") from exc
    try:
        if not workbook.worksheets:
            return
        for values in workbook.worksheets[0].iter_rows(values_only=True):
            yield [_cell_text(v) for v in values]
    except (zipfile.BadZipFile, KeyError, ValueError) as exc:
        raise FileDecodeError(f"Failed to parse Excel file: {exc}") from exc
    finally:
        workbook.close()


# ─── Header mapping ───

def _header_token(value: str) -> str:
    """'Admission Number', 'admission_number' and 'admissionNumber' all map to 'admissionnumber'."""
    return re.sub(r"[^a-z0-9]", "", value.strip().lower())


def _map_header(header: list[str], spec: ImportSpec) -> dict[str, int]:
    positions: dict[str, int] = {}
    for idx, cell in enumerate(header):
        positions.setdefault(_header_token(cell), idx)

    mapping: dict[str, int] = {}
    for col in spec.columns:
        for token in (_header_token(col.key), _header_token(col.label)):
            if token in positions:
                mapping[col.key] = positions[token]
                break

    missing = [key for key in spec.required_keys if key not in mapping]
    if missing:
        raise MissingColumnsError(missing)
    return mapping


def _is_blank(cells: list[str]) -> bool:
    return all(not (c or "").strip() for c in cells)


# ─── Public API ───

def decode_file(
    content: bytes,
    spec: ImportSpec,
    *,
    content_type: str | None = None,
    filename: str | None = None,
) -> list[RawRow]:
    """Decode an uploaded file into RawRows in file order.

    Raises:
        FileTooLargeError, UnsupportedMediaTypeError, FileDecodeError,
        MissingColumnsError, TooManyRowsError.
    """
    if len(content) > spec.max_file_bytes:
        raise FileTooLargeError(
            f"File is {len(content)} bytes; the limit is {spec.max_file_bytes} bytes"
        )

    fmt = resolve_format(content_type, filename)
    table: Iterable[list[str]] = _read_csv(content) if fmt == CSV else _read_xlsx(content)
    rows_iter = iter(table)

    header = None
    for cells in rows_iter:
        if not _is_blank(cells):
            header = cells
            break
    if header is None:
        raise FileDecodeError("File has no header row")

    mapping = _map_header(header, spec)

    rows: list[RawRow] = []
    for row_number, cells in enumerate(rows_iter, start=1):
        if _is_blank(cells):
            continue
        if len(rows) >= spec.max_rows:
            raise TooManyRowsError(f"File has more than {spec.max_rows} data rows")
        fields = {
            key: (cells[idx].strip() if idx < len(cells) and cells[idx] is not None else "")
            for key, idx in mapping.items()
        }
        rows.append(RawRow(row_number=row_number, fields=MappingProxyType(fields)))

    logger.info(
        "decode_file: %s %s file → %d data rows (columns matched: %d/%d)",
        spec.entity_type, fmt, len(rows), len(mapping), len(spec.columns),
    )
    return rows
