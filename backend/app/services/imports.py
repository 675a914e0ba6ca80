"""Bulk import service: the four operations behind the import API.

    get_template(entity_type)                    → (filename, csv text)
    preview(entity_type, content, ..., store)    → PreviewResult
    execute(entity_type, rows, options, store)   → ExecutionSummary
    export_errors(errors)                        → csv text

Nothing is persisted before execute(); the preview is a stateless artifact
that the caller sends back with the rows it approved.
"""
import logging
from datetime import date

from app.imports.decoder import decode_file
from app.imports.duplicates import resolve_duplicates
from app.imports.executor import execute_rows
from app.imports.preview import assemble_preview
from app.imports.reports import render_error_report, render_template, template_filename
from app.imports.specs import get_import_spec
from app.imports.store import RecordStore
from app.imports.validator import Clock, validate_rows
from app.schemas.imports import ExecutionOptions, ExecutionSummary, FieldError, PreviewResult, ValidatedRow

logger = logging.getLogger(__name__)


def get_template(entity_type: str) -> tuple[str, str]:
    spec = get_import_spec(entity_type)
    return template_filename(spec), render_template(spec)


async def preview(
    entity_type: str,
    content: bytes,
    *,
    store: RecordStore,
    content_type: str | None = None,
    filename: str | None = None,
    clock: Clock = date.today,
) -> PreviewResult:
    """Decode, validate and duplicate-check an upload. Never writes to the store.

    Raises ImportOperationError subclasses for fatal, operation-level problems.
    """
    spec = get_import_spec(entity_type)
    raw_rows = decode_file(content, spec, content_type=content_type, filename=filename)
    valid_rows, errors = validate_rows(raw_rows, spec, clock=clock)
    valid_rows = await resolve_duplicates(valid_rows, spec, store)
    return assemble_preview(spec, len(raw_rows), valid_rows, errors)


async def execute(
    entity_type: str,
    rows: list[ValidatedRow],
    options: ExecutionOptions,
    *,
    store: RecordStore,
    clock: Clock = date.today,
) -> ExecutionSummary:
    spec = get_import_spec(entity_type)
    if not options.skip_errors:
        logger.debug("execute: skip_errors=False has no effect; only validated rows are committed")
    return await execute_rows(spec, rows, options, store, clock=clock)


def export_errors(errors: list[FieldError]) -> str:
    return render_error_report(errors)
