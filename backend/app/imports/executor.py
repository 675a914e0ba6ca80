"""Commit executor: create one record per approved row, each row isolated.

The rows come back from the client, so the preview may be stale by now.
Every row is re-validated, and duplicates are decided here rather than taken
from the client's flags: with skip_duplicates=True the submitted keys are
looked up again and any row whose key is already stored (or repeats an
earlier row) is skipped. Without it, the store's uniqueness constraint is the
final word and a collision is a failed row, never an aborted batch.

Cancellation does not roll back rows that were already created; re-running
the same rows with skip_duplicates=True skips them.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import date

from app.core.config import settings
from app.imports.duplicates import resolve_duplicates
from app.imports.errors import DuplicateRecordError, ImportAccountingError, RecordStoreError
from app.imports.specs import ImportSpec
from app.imports.store import RecordStore
from app.imports.validator import Clock, revalidate
from app.schemas.imports import ExecutionOptions, ExecutionSummary, FieldError, ValidatedRow

logger = logging.getLogger(__name__)

CREATED = "created"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass(frozen=True)
class RowOutcome:
    row_number: int
    status: str
    record_id: str | None = None
    error: FieldError | None = None


def _failed(row: ValidatedRow, field: str, message: str) -> RowOutcome:
    value = row.normalized_fields.get(field)
    return RowOutcome(
        row_number=row.row_number,
        status=FAILED,
        error=FieldError(
            row_number=row.row_number,
            field=field,
            message=message,
            invalid_value=None if value is None else str(value),
        ),
    )


def _skipped(row: ValidatedRow) -> RowOutcome:
    return RowOutcome(row_number=row.row_number, status=SKIPPED)


async def _duplicate_row_numbers(
    spec: ImportSpec,
    rows: list[ValidatedRow],
    store: RecordStore,
    pool_size: int | None,
) -> set[int]:
    """Rows whose business key is stored now, or repeats an earlier submitted row."""
    resolved = await resolve_duplicates(rows, spec, store, pool_size=pool_size)
    return {row.row_number for row in resolved if row.is_duplicate}


async def _commit_row(
    row: ValidatedRow,
    checked: ValidatedRow | None,
    errors: list[FieldError],
    spec: ImportSpec,
    options: ExecutionOptions,
    store: RecordStore,
    semaphore: asyncio.Semaphore,
    is_duplicate: bool,
) -> RowOutcome:
    if options.skip_duplicates and is_duplicate:
        return _skipped(row)

    if checked is None:
        first = errors[0]
        return _failed(row, first.field, first.message)

    async with semaphore:
        try:
            record_id = await store.create_record(spec.entity_type, checked.normalized_fields)
        except DuplicateRecordError as exc:
            field = exc.field or spec.business_key
            if options.skip_duplicates and field == spec.business_key:
                logger.info("execute: %s row %d stored concurrently; skipped", spec.entity_type, row.row_number)
                return _skipped(row)
            logger.info("execute: %s row %d collided at commit: %s", spec.entity_type, row.row_number, exc)
            return _failed(checked, field, str(exc))
        except RecordStoreError as exc:
            logger.warning("execute: %s row %d rejected: %s", spec.entity_type, row.row_number, exc)
            return _failed(checked, spec.business_key, str(exc))
        except Exception as exc:
            logger.error(
                "execute: %s row %d failed unexpectedly", spec.entity_type, row.row_number, exc_info=True,
            )
            return _failed(checked, spec.business_key, f"Unexpected error: {exc}")

    return RowOutcome(row_number=row.row_number, status=CREATED, record_id=record_id)


def summarize(spec: ImportSpec, outcomes: list[RowOutcome]) -> ExecutionSummary:
    summary = ExecutionSummary(entity_type=spec.entity_type)
    for outcome in sorted(outcomes, key=lambda o: o.row_number):
        if outcome.status == CREATED:
            summary.success_count += 1
            summary.created_ids.append(outcome.record_id)
        elif outcome.status == SKIPPED:
            summary.skipped_count += 1
        else:
            summary.failed_count += 1
            summary.failures.append(outcome.error)
    return summary


async def execute_rows(
    spec: ImportSpec,
    rows: list[ValidatedRow],
    options: ExecutionOptions,
    store: RecordStore,
    *,
    pool_size: int | None = None,
    clock: Clock = date.today,
) -> ExecutionSummary:
    """Attempt every row and return the ExecutionSummary.

    success_count + skipped_count + failed_count always equals len(rows).
    """
    today = clock()
    semaphore = asyncio.Semaphore(pool_size or settings.IMPORT_WORKER_POOL_SIZE)
    ordered = sorted(rows, key=lambda r: r.row_number)
    checked = [revalidate(row, spec, today=today) for row in ordered]

    duplicates: set[int] = set()
    if options.skip_duplicates:
        duplicates = await _duplicate_row_numbers(
            spec, [row for row, _ in checked if row is not None], store, pool_size,
        )

    outcomes = await asyncio.gather(*(
        _commit_row(
            row, valid, errors, spec, options, store, semaphore,
            is_duplicate=row.is_duplicate or row.row_number in duplicates,
        )
        for row, (valid, errors) in zip(ordered, checked)
    ))
    summary = summarize(spec, list(outcomes))

    attempted = summary.success_count + summary.skipped_count + summary.failed_count
    if attempted != len(rows):
        raise ImportAccountingError(f"row accounting mismatch: {attempted} outcomes for {len(rows)} rows")

    logger.info(
        "execute: %s submitted=%d created=%d skipped=%d failed=%d",
        spec.entity_type, len(rows), summary.success_count, summary.skipped_count, summary.failed_count,
    )
    return summary
