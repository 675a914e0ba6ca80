"""Pydantic schemas for the staged bulk import (preview → execute) API.

Field names are snake_case in Python and camelCase on the wire.
"""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FieldError(_CamelModel):
    row_number: int
    field: str
    message: str
    invalid_value: str | None = None


class ValidatedRow(_CamelModel):
    row_number: int = Field(ge=1)
    normalized_fields: dict[str, Any]
    is_duplicate: bool = False


class ImportSummary(_CamelModel):
    total_rows: int = 0
    valid_rows: int = 0
    invalid_rows: int = 0
    duplicates_in_db: int = Field(0, alias="duplicatesInDB")


class PreviewResult(_CamelModel):
    entity_type: str
    summary: ImportSummary
    sample_valid_rows: list[ValidatedRow]
    errors: list[FieldError]
    # Full accepted set; the client echoes this back to /execute.
    valid_rows: list[ValidatedRow] = []


class ExecutionOptions(_CamelModel):
    # Accepted for compatibility; only validated rows ever reach commit.
    skip_errors: bool = True
    skip_duplicates: bool = False


class ExecutionSummary(_CamelModel):
    entity_type: str
    success_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    created_ids: list[str] = []
    failures: list[FieldError] = []


# ─── Request bodies ───

class ExecuteRequest(_CamelModel):
    rows: list[ValidatedRow]
    options: ExecutionOptions = ExecutionOptions()


class ErrorReportRequest(_CamelModel):
    errors: list[FieldError]
