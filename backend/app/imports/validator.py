"""Row validation: RawRow → ValidatedRow or a list of FieldErrors.

Rules run column by column in declaration order. The first failing rule of a
column produces that column's single error, but every column is checked, so
the operator sees all of a row's defects at once.
"""
import logging
import re
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime
from typing import Any

from email_validator import EmailNotValidError, validate_email

from app.imports.decoder import RawRow
from app.imports.specs import BOOLEAN, CHOICE, DATE, EMAIL, INTEGER, LOWER, UPPER, ColumnSpec, ImportSpec
from app.schemas.imports import FieldError, ValidatedRow

logger = logging.getLogger(__name__)

DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%d/%m/%Y", "%Y/%m/%d")
TRUE_VALUES = frozenset({"true", "yes", "y", "1"})
FALSE_VALUES = frozenset({"false", "no", "n", "0"})
_INTEGER = re.compile(r"^[+-]?\d+$")

Clock = Callable[[], date]


class _Invalid(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ─── Parsers ───

def _parse_date(value: str) -> date | None:
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            pass
    return None


def _join_or(choices: Iterable[str]) -> str:
    items = list(choices)
    if len(items) <= 2:
        return " or ".join(items)
    return f"{', '.join(items[:-1])}, or {items[-1]}"


def _check_text(col: ColumnSpec, value: str) -> str:
    if col.min_length is not None and len(value) < col.min_length:
        raise _Invalid(f"{col.label} must be at least {col.min_length} characters")
    if col.max_length is not None and len(value) > col.max_length:
        raise _Invalid(f"{col.label} cannot exceed {col.max_length} characters")
    if col.pattern is not None and not col.pattern.match(value):
        raise _Invalid(col.pattern_message or f"{col.label} has an invalid format")
    return value


def _check_date(col: ColumnSpec, value: str, today: date) -> date:
    parsed = _parse_date(value)
    if parsed is None:
        raise _Invalid(f"Invalid {col.label.lower()}")
    if col.min_date is not None and parsed < col.min_date:
        raise _Invalid(f"{col.label} seems too old")
    if col.not_after_today and parsed > today:
        raise _Invalid(f"{col.label} cannot be in the future")
    return parsed


def _check_integer(col: ColumnSpec, value: str) -> int:
    if not _INTEGER.match(value):
        raise _Invalid(f"{col.label} must be a number")
    number = int(value)
    if col.min_value is not None and number < col.min_value:
        raise _Invalid(f"{col.label} must be at least {col.min_value}")
    return number


def _check_choice(col: ColumnSpec, value: str) -> str:
    for choice in col.choices:
        if value.lower() == choice.lower():
            return choice
    raise _Invalid(f"{col.label} must be {_join_or(col.choices)}")


def _check_boolean(col: ColumnSpec, value: str) -> bool:
    lowered = value.lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise _Invalid(f"{col.label} must be true or false")


def _check_email(col: ColumnSpec, value: str) -> str:
    value = value.lower()
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        raise _Invalid(f"Invalid {col.label.lower()} format")
    return value


def _check_column(col: ColumnSpec, raw: str, today: date) -> Any:
    value = raw.strip()
    if not value:
        if col.required:
            raise _Invalid(f"{col.label} is required")
        return col.default

    if col.case == UPPER:
        value = value.upper()
    elif col.case == LOWER:
        value = value.lower()

    if col.kind == DATE:
        return _check_date(col, value, today)
    if col.kind == INTEGER:
        return _check_integer(col, value)
    if col.kind == CHOICE:
        return _check_choice(col, value)
    if col.kind == BOOLEAN:
        return _check_boolean(col, value)
    if col.kind == EMAIL:
        return _check_email(col, value)
    return _check_text(col, value)


# ─── Public API ───

def validate_row(raw: RawRow, spec: ImportSpec, *, today: date) -> tuple[ValidatedRow | None, list[FieldError]]:
    """Validate one row. Returns (ValidatedRow, []) or (None, errors)."""
    normalized: dict[str, Any] = {}
    errors: list[FieldError] = []

    for col in spec.columns:
        raw_value = raw.fields.get(col.key) or ""
        try:
            normalized[col.key] = _check_column(col, raw_value, today)
        except _Invalid as exc:
            normalized[col.key] = None
            errors.append(FieldError(
                row_number=raw.row_number,
                field=col.key,
                message=exc.message,
                invalid_value=raw_value.strip() or None,
            ))

    failed = {e.field for e in errors}
    for check in spec.row_checks:
        violation = check(normalized)
        if violation is not None and violation[0] not in failed:
            field, message = violation
            failed.add(field)
            errors.append(FieldError(
                row_number=raw.row_number,
                field=field,
                message=message,
                invalid_value=(raw.fields.get(field) or "").strip() or None,
            ))

    if errors:
        errors.sort(key=lambda e: spec.column_index(e.field))
        logger.debug("validate_row: row %d rejected (%d errors)", raw.row_number, len(errors))
        return None, errors

    return ValidatedRow(row_number=raw.row_number, normalized_fields=normalized, is_duplicate=False), []


def validate_rows(
    rows: Iterable[RawRow],
    spec: ImportSpec,
    *,
    clock: Clock = date.today,
) -> tuple[list[ValidatedRow], list[FieldError]]:
    """Validate a batch. Both outputs are in ascending row order.

    ``clock`` is read once, so every row in the batch sees the same 'today'.
    """
    today = clock()
    valid: list[ValidatedRow] = []
    errors: list[FieldError] = []
    for raw in sorted(rows, key=lambda r: r.row_number):
        row, row_errors = validate_row(raw, spec, today=today)
        if row is not None:
            valid.append(row)
        errors.extend(row_errors)

    logger.info(
        "validate_rows: %s → %d valid, %d errors",
        spec.entity_type, len(valid), len(errors),
    )
    return valid, errors


def _to_raw_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def revalidate(row: ValidatedRow, spec: ImportSpec, *, today: date) -> tuple[ValidatedRow | None, list[FieldError]]:
    """Re-run validation on a row echoed back by the client at commit time.

    The duplicate flag the client sent is preserved; everything else is
    recomputed from the submitted values.
    """
    fields: Mapping[str, str] = {
        key: _to_raw_text(row.normalized_fields.get(key)) for key in spec.column_keys
    }
    checked, errors = validate_row(RawRow(row_number=row.row_number, fields=fields), spec, today=today)
    if checked is not None:
        checked.is_duplicate = row.is_duplicate
    return checked, errors
