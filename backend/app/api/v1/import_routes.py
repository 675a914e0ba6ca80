"""Staged CSV/XLSX bulk import endpoints for students and employees.

GET  /import/{entity_type}/template   blank template with one example row
POST /import/{entity_type}/preview   validate + duplicate-check an upload (no writes)
POST /import/{entity_type}/execute   commit the rows approved from a preview
POST /import/errors/export           download an error list as CSV
"""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, HTTPException, Request, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.deps import get_current_user, require_role
from app.core.limiter import limiter
from app.db.session import get_session, get_session_factory
from app.imports.errors import ImportOperationError
from app.imports.reports import ERROR_REPORT_FILENAME
from app.imports.specs import get_import_spec
from app.imports.store import RecordStore, SqlRecordStore
from app.schemas.imports import ErrorReportRequest, ExecuteRequest, ExecutionSummary, PreviewResult
from app.services import audit as audit_svc
from app.services import imports as import_svc

logger = logging.getLogger(__name__)

router = APIRouter()


# ─── Helpers ───

async def get_record_store(current_user=Depends(get_current_user)) -> RecordStore:
    """Record store scoped to the operator's school."""
    return SqlRecordStore(get_session_factory(), tenant_id=current_user.tenant_id)


def _http_error(exc: ImportOperationError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


def _csv_attachment(filename: str, content: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# ─── POST /import/errors/export ───

@router.post("/errors/export", summary="Download validation/commit errors as CSV (ADMIN)")
async def export_errors(
    body: ErrorReportRequest,
    current_user: Annotated[object, Depends(require_role("ADMIN"))],
):
    return _csv_attachment(ERROR_REPORT_FILENAME, import_svc.export_errors(body.errors))


# ─── GET /import/{entity_type}/template ───

@router.get("/{entity_type}/template", summary="Download the CSV import template (ADMIN)")
async def get_template(
    entity_type: str,
    current_user: Annotated[object, Depends(require_role("ADMIN"))],
):
    try:
        filename, content = import_svc.get_template(entity_type)
    except ImportOperationError as exc:
        raise _http_error(exc)
    return _csv_attachment(filename, content)


# ─── POST /import/{entity_type}/preview ───

@router.post(
    "/{entity_type}/preview",
    response_model=PreviewResult,
    summary="Validate an upload and report errors/duplicates without importing (ADMIN)",
)
@limiter.limit(settings.IMPORT_PREVIEW_RATE_LIMIT)
async def preview_import(
    request: Request,
    entity_type: str,
    current_user: Annotated[object, Depends(require_role("ADMIN"))],
    store: Annotated[RecordStore, Depends(get_record_store)],
    file: UploadFile = File(...),
):
    try:
        spec = get_import_spec(entity_type)
        # One byte past the ceiling is enough to know the file is too large.
        content = await file.read(spec.max_file_bytes + 1)
        result = await import_svc.preview(
            spec.entity_type,
            content,
            store=store,
            content_type=file.content_type,
            filename=file.filename,
        )
    except ImportOperationError as exc:
        logger.warning("preview %s aborted (%s): %s", entity_type, file.filename, exc.message)
        raise _http_error(exc)
    return result


# ─── POST /import/{entity_type}/execute ───

@router.post(
    "/{entity_type}/execute",
    response_model=ExecutionSummary,
    summary="Create records for the approved rows; failures are reported per row (ADMIN)",
)
async def execute_import(
    entity_type: str,
    body: ExecuteRequest,
    db: Annotated[AsyncSession, Depends(get_session)],
    current_user: Annotated[object, Depends(require_role("ADMIN"))],
    store: Annotated[RecordStore, Depends(get_record_store)],
):
    if not body.rows:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No valid data to import")

    try:
        summary = await import_svc.execute(entity_type, body.rows, body.options, store=store)
    except ImportOperationError as exc:
        raise _http_error(exc)

    await audit_svc.log(
        db,
        action="import.executed",
        entity_type=summary.entity_type,
        tenant_id=current_user.tenant_id,
        actor_id=current_user.id,
        actor_email=current_user.email,
        after={
            "submitted": len(body.rows),
            "success_count": summary.success_count,
            "skipped_count": summary.skipped_count,
            "failed_count": summary.failed_count,
            "skip_duplicates": body.options.skip_duplicates,
        },
    )
    await db.commit()
    return summary
