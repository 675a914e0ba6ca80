"""Preview assembly: validator + duplicate resolver output → PreviewResult."""
import logging

from app.core.config import settings
from app.imports.errors import ImportAccountingError
from app.imports.specs import ImportSpec
from app.schemas.imports import FieldError, ImportSummary, PreviewResult, ValidatedRow

logger = logging.getLogger(__name__)


def build_summary(total_rows: int, valid_rows: list[ValidatedRow]) -> ImportSummary:
    duplicates = sum(1 for row in valid_rows if row.is_duplicate)
    summary = ImportSummary(
        total_rows=total_rows,
        valid_rows=len(valid_rows),
        invalid_rows=total_rows - len(valid_rows),
        duplicates_in_db=duplicates,
    )
    if summary.invalid_rows < 0:
        raise ImportAccountingError(f"{len(valid_rows)} valid rows but only {total_rows} rows decoded")
    return summary


def assemble_preview(
    spec: ImportSpec,
    total_rows: int,
    valid_rows: list[ValidatedRow],
    errors: list[FieldError],
    *,
    sample_size: int | None = None,
) -> PreviewResult:
    """Combine stage outputs into the artifact returned to the operator. No side effects."""
    sample_size = settings.IMPORT_PREVIEW_SAMPLE_SIZE if sample_size is None else sample_size
    ordered_rows = sorted(valid_rows, key=lambda r: r.row_number)
    ordered_errors = sorted(errors, key=lambda e: (e.row_number, spec.column_index(e.field)))

    result = PreviewResult(
        entity_type=spec.entity_type,
        summary=build_summary(total_rows, ordered_rows),
        sample_valid_rows=ordered_rows[:sample_size],
        errors=ordered_errors,
        valid_rows=ordered_rows,
    )
    logger.info(
        "assemble_preview: %s total=%d valid=%d invalid=%d duplicates=%d errors=%d",
        spec.entity_type,
        result.summary.total_rows,
        result.summary.valid_rows,
        result.summary.invalid_rows,
        result.summary.duplicates_in_db,
        len(ordered_errors),
    )
    return result
