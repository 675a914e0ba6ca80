"""Duplicate detection for validated import rows.

Flags rows whose business key already exists in the store and, when the
ImportSpec asks for batch uniqueness, every repeat of a key after its first
occurrence in the file. Flagged rows are not rejected here; the operator
decides at commit time whether to skip them.
"""
import asyncio
import logging

from app.core.config import settings
from app.imports.specs import ImportSpec
from app.imports.store import RecordStore
from app.schemas.imports import ValidatedRow

logger = logging.getLogger(__name__)


def _chunks(keys: list[str], size: int) -> list[list[str]]:
    return [keys[i:i + size] for i in range(0, len(keys), size)]


async def find_existing_keys(
    spec: ImportSpec,
    keys: list[str],
    store: RecordStore,
    *,
    chunk_size: int | None = None,
    pool_size: int | None = None,
) -> set[str]:
    """Look up ``keys`` in chunks, a bounded number of lookups in flight at once."""
    if not keys:
        return set()

    chunk_size = chunk_size or settings.IMPORT_LOOKUP_CHUNK_SIZE
    semaphore = asyncio.Semaphore(pool_size or settings.IMPORT_WORKER_POOL_SIZE)

    async def lookup(chunk: list[str]) -> set[str]:
        async with semaphore:
            return await store.find_by_business_key(spec.entity_type, set(chunk))

    found = await asyncio.gather(*(lookup(chunk) for chunk in _chunks(keys, chunk_size)))
    return set().union(*found)


async def resolve_duplicates(
    rows: list[ValidatedRow],
    spec: ImportSpec,
    store: RecordStore,
    *,
    chunk_size: int | None = None,
    pool_size: int | None = None,
) -> list[ValidatedRow]:
    """Return copies of ``rows`` (in row order) with ``is_duplicate`` set.

    Never writes to the store.
    """
    ordered = sorted(rows, key=lambda r: r.row_number)
    keys = list(dict.fromkeys(
        key for key in (row.normalized_fields.get(spec.business_key) for row in ordered) if key
    ))

    existing = await find_existing_keys(spec, keys, store, chunk_size=chunk_size, pool_size=pool_size)

    seen: set[str] = set()
    resolved: list[ValidatedRow] = []
    in_db = in_batch = 0
    for row in ordered:
        key = row.normalized_fields.get(spec.business_key)
        is_duplicate = False
        if key in existing:
            is_duplicate = True
            in_db += 1
        elif spec.unique_within_batch and key in seen:
            # Repeats within the file are reported the same way as store collisions.
            is_duplicate = True
            in_batch += 1
        if key:
            seen.add(key)
        resolved.append(row.model_copy(update={"is_duplicate": is_duplicate}))

    logger.info(
        "resolve_duplicates: %s %d keys checked → %d already stored, %d repeated in file",
        spec.entity_type, len(keys), in_db, in_batch,
    )
    return resolved
