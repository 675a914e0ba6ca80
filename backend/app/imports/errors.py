"""Exceptions for the bulk import pipeline.

ImportOperationError and its subclasses are fatal: the whole operation is
aborted before any row is processed. RecordStoreError is raised by the store
collaborator for a single row and is always contained by the commit executor.
"""
from fastapi import status


class ImportOperationError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnknownEntityTypeError(ImportOperationError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity_type: str):
        super().__init__(f"Unknown import entity type: '{entity_type}'")
        self.entity_type = entity_type


class UnsupportedMediaTypeError(ImportOperationError):
    status_code = status.HTTP_415_UNSUPPORTED_MEDIA_TYPE


class FileTooLargeError(ImportOperationError):
    status_code = 413


class TooManyRowsError(ImportOperationError):
    status_code = 413


class FileDecodeError(ImportOperationError):
    status_code = status.HTTP_400_BAD_REQUEST


class MissingColumnsError(ImportOperationError):
    status_code = 422

    def __init__(self, missing: list[str]):
        super().__init__(f"Missing required columns: {', '.join(missing)}")
        self.missing = missing


# ─── Store collaborator ───

class RecordStoreError(Exception):
    """A single create failed; the message is shown to the operator as the row's reason."""


class DuplicateRecordError(RecordStoreError):
    """A uniqueness constraint rejected the create. ``field`` is the colliding column key."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


# ─── Internal consistency ───

class ImportAccountingError(RuntimeError):
    """Stage outputs do not add up (e.g. more valid rows than decoded rows)."""
