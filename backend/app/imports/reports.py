"""CSV documents handed to operators: import templates and error reports.

Both layouts are consumed by operator tooling, so column order and header
text are fixed.
"""
import csv
import io
from collections.abc import Iterable

from app.imports.specs import ImportSpec
from app.schemas.imports import FieldError

ERROR_REPORT_HEADER = ("Row Number", "Field", "Error", "Invalid Value")
ERROR_REPORT_FILENAME = "error_report.csv"


def _writer(buffer: io.StringIO):
    return csv.writer(buffer, lineterminator="\n")


def template_filename(spec: ImportSpec) -> str:
    return f"{spec.entity_type}_import_template.csv"


def render_template(spec: ImportSpec) -> str:
    """Header row of column keys plus one example row."""
    buffer = io.StringIO()
    writer = _writer(buffer)
    writer.writerow([col.key for col in spec.columns])
    writer.writerow([col.example for col in spec.columns])
    return buffer.getvalue()


def render_error_report(errors: Iterable[FieldError]) -> str:
    """One line per error, in the order given."""
    buffer = io.StringIO()
    writer = _writer(buffer)
    writer.writerow(ERROR_REPORT_HEADER)
    for error in errors:
        writer.writerow([
            error.row_number,
            error.field,
            error.message,
            "" if error.invalid_value is None else error.invalid_value,
        ])
    return buffer.getvalue()
