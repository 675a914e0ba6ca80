"""Tests for the commit executor: per-row isolation, skipping, and re-commit safety."""
import asyncio
from datetime import date
from unittest.mock import patch

import pytest

from app.imports.decoder import RawRow
from app.imports.errors import DuplicateRecordError, ImportAccountingError, RecordStoreError
from app.imports.executor import CREATED, FAILED, SKIPPED, RowOutcome, execute_rows, summarize
from app.imports.specs import EMPLOYEES, STUDENTS
from app.imports.validator import validate_rows
from app.schemas.imports import ExecutionOptions, FieldError, ValidatedRow
from app.services import imports as import_svc

HEADER = "admissionNumber,firstName,lastName,dateOfBirth,gender,class,section"


# ─── Helpers ──────────────────────────────────────────────────────────────────

class FakeRecordStore:
    """In-memory store that enforces business-key uniqueness like the database does."""

    def __init__(self, existing=(), failing=None, exploding=None, emails=()):
        self.keys = set(existing)
        self.emails = set(emails)
        self.failing = set(failing or ())
        self.exploding = set(exploding or ())
        self.created: list[dict] = []
        self.attempts: list[str] = []

    async def find_by_business_key(self, entity_type, keys):
        return {k for k in keys if k in self.keys}

    async def create_record(self, entity_type, fields):
        key = fields["admissionNumber"] if entity_type == "students" else fields["employeeId"]
        self.attempts.append(key)
        if key in self.exploding:
            raise RuntimeError("connection reset")
        if key in self.failing:
            raise RecordStoreError(f'Class "{fields.get("class")}" Section "{fields.get("section")}" not found')
        if key in self.keys:
            raise DuplicateRecordError(f"Admission number already exists: {key}")
        if fields.get("email") in self.emails:
            raise DuplicateRecordError(f"Email already exists: {fields['email']}", field="email")
        self.keys.add(key)
        self.created.append(dict(fields))
        return f"id-{key}"


class InFlightCountingStore(FakeRecordStore):
    """Tracks how many creates are in flight at once."""

    def __init__(self):
        super().__init__()
        self.in_flight = 0
        self.max_in_flight = 0

    async def create_record(self, entity_type, fields):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        try:
            return await super().create_record(entity_type, fields)
        finally:
            self.in_flight -= 1


def _clock():
    return date(2025, 6, 1)


def _students(count: int) -> list[ValidatedRow]:
    raw = [
        RawRow(row_number=i, fields={
            "admissionNumber": f"ANE{i:03d}",
            "firstName": "John",
            "lastName": "Doe",
            "dateOfBirth": "2010-05-15",
            "gender": "male",
            "class": "10",
            "section": "A",
        })
        for i in range(1, count + 1)
    ]
    valid, errors = validate_rows(raw, STUDENTS, clock=_clock)
    assert errors == []
    return valid


def _csv(count: int) -> bytes:
    lines = [HEADER] + [f"ANE{i:03d},John,Doe,2010-05-15,male,10,A" for i in range(1, count + 1)]
    return ("\n".join(lines) + "\n").encode("utf-8")


def _assert_accounted(summary, submitted: int):
    assert summary.success_count + summary.skipped_count + summary.failed_count == submitted


# ─── Scenarios ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_existing_key_fails_at_commit_when_not_skipping():
    store = FakeRecordStore(existing={"ANE005"})
    preview = await import_svc.preview("students", _csv(6), store=store, content_type="text/csv", clock=_clock)
    assert preview.valid_rows[4].is_duplicate is True

    summary = await import_svc.execute(
        "students", preview.valid_rows, ExecutionOptions(skip_duplicates=False), store=store, clock=_clock,
    )

    assert summary.success_count == 5
    assert summary.failed_count == 1
    assert summary.skipped_count == 0
    failure = summary.failures[0]
    assert failure.row_number == 5
    assert failure.field == "admissionNumber"
    assert failure.message == "Admission number already exists: ANE005"
    assert "ANE005" in store.attempts
    _assert_accounted(summary, 6)


@pytest.mark.asyncio
async def test_existing_key_skipped_when_skipping_duplicates():
    store = FakeRecordStore(existing={"ANE005"})
    preview = await import_svc.preview("students", _csv(6), store=store, content_type="text/csv", clock=_clock)

    summary = await import_svc.execute(
        "students", preview.valid_rows, ExecutionOptions(skip_duplicates=True), store=store, clock=_clock,
    )

    assert summary.success_count == 5
    assert summary.skipped_count == 1
    assert summary.failed_count == 0
    assert "ANE005" not in store.attempts
    _assert_accounted(summary, 6)


@pytest.mark.asyncio
async def test_recommitting_same_rows_creates_nothing_new():
    store = FakeRecordStore()
    rows = _students(4)

    first = await execute_rows(STUDENTS, rows, ExecutionOptions(), store, clock=_clock)
    store.attempts.clear()
    second = await execute_rows(STUDENTS, rows, ExecutionOptions(skip_duplicates=True), store, clock=_clock)

    assert first.success_count == 4
    assert (second.success_count, second.skipped_count, second.failed_count) == (0, 4, 0)
    assert store.attempts == []
    assert len(store.created) == 4


@pytest.mark.asyncio
async def test_recommitting_without_skip_fails_every_row():
    store = FakeRecordStore()
    rows = _students(3)

    await execute_rows(STUDENTS, rows, ExecutionOptions(), store, clock=_clock)
    second = await execute_rows(STUDENTS, rows, ExecutionOptions(skip_duplicates=False), store, clock=_clock)

    assert (second.success_count, second.skipped_count, second.failed_count) == (0, 0, 3)
    assert {f.field for f in second.failures} == {"admissionNumber"}
    assert len(store.created) == 3


@pytest.mark.asyncio
async def test_skip_rechecks_store_when_client_flag_is_stale():
    # Preview said nothing was a duplicate; ANE002 was stored afterwards.
    rows = _students(3)
    assert not any(r.is_duplicate for r in rows)
    store = FakeRecordStore(existing={"ANE002"})

    summary = await execute_rows(STUDENTS, rows, ExecutionOptions(skip_duplicates=True), store, clock=_clock)

    assert (summary.success_count, summary.skipped_count, summary.failed_count) == (2, 1, 0)
    assert "ANE002" not in store.attempts


@pytest.mark.asyncio
async def test_skip_drops_repeated_key_within_submission():
    rows = _students(3)
    repeat = rows[0].model_copy(update={"row_number": 4})
    store = FakeRecordStore()

    summary = await execute_rows(
        STUDENTS, rows + [repeat], ExecutionOptions(skip_duplicates=True), store, clock=_clock,
    )

    assert (summary.success_count, summary.skipped_count, summary.failed_count) == (3, 1, 0)
    assert store.attempts.count("ANE001") == 1
    _assert_accounted(summary, 4)


@pytest.mark.asyncio
async def test_business_key_collision_at_create_is_skipped_when_skipping():
    class RacingStore(FakeRecordStore):
        # Lookup misses the key; another writer stores it before the create.
        async def find_by_business_key(self, entity_type, keys):
            return set()

    store = RacingStore(existing={"ANE001"})
    summary = await execute_rows(STUDENTS, _students(2), ExecutionOptions(skip_duplicates=True), store, clock=_clock)

    assert (summary.success_count, summary.skipped_count, summary.failed_count) == (1, 1, 0)
    assert "ANE001" in store.attempts


@pytest.mark.asyncio
async def test_email_collision_reported_on_email_field():
    rows = [
        r.model_copy(update={"normalized_fields": {**r.normalized_fields, "email": f"kid{r.row_number}@school.edu"}})
        for r in _students(2)
    ]
    store = FakeRecordStore(emails={"kid2@school.edu"})

    summary = await execute_rows(STUDENTS, rows, ExecutionOptions(skip_duplicates=True), store, clock=_clock)

    assert (summary.success_count, summary.skipped_count, summary.failed_count) == (1, 0, 1)
    assert summary.failures == [
        FieldError(
            row_number=2, field="email", message="Email already exists: kid2@school.edu",
            invalid_value="kid2@school.edu",
        ),
    ]


@pytest.mark.asyncio
async def test_rerun_after_partial_commit_with_fresh_preview():
    store = FakeRecordStore()
    # A previous run was cancelled after the first two rows were created.
    await execute_rows(STUDENTS, _students(2), ExecutionOptions(), store, clock=_clock)

    preview = await import_svc.preview("students", _csv(5), store=store, content_type="text/csv", clock=_clock)
    assert preview.summary.duplicates_in_db == 2

    summary = await import_svc.execute(
        "students", preview.valid_rows, ExecutionOptions(skip_duplicates=True), store=store, clock=_clock,
    )

    assert (summary.success_count, summary.skipped_count, summary.failed_count) == (3, 2, 0)
    assert sorted(r["admissionNumber"] for r in store.created) == [f"ANE{i:03d}" for i in range(1, 6)]


# ─── Failure isolation ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_store_rejection_is_a_failed_row():
    store = FakeRecordStore(failing={"ANE002"})
    summary = await execute_rows(STUDENTS, _students(3), ExecutionOptions(), store, clock=_clock)

    assert summary.success_count == 2
    assert summary.failures[0].row_number == 2
    assert summary.failures[0].message == 'Class "10" Section "A" not found'
    assert summary.failures[0].invalid_value == "ANE002"


@pytest.mark.asyncio
async def test_unexpected_store_exception_does_not_abort_batch():
    store = FakeRecordStore(exploding={"ANE001"})
    summary = await execute_rows(STUDENTS, _students(3), ExecutionOptions(), store, clock=_clock)

    assert summary.success_count == 2
    assert summary.failed_count == 1
    assert summary.failures[0].message == "Unexpected error: connection reset"


@pytest.mark.asyncio
async def test_tampered_row_fails_revalidation_without_store_call():
    rows = _students(2)
    rows[1] = rows[1].model_copy(update={"normalized_fields": {**rows[1].normalized_fields, "firstName": ""}})
    store = FakeRecordStore()

    summary = await execute_rows(STUDENTS, rows, ExecutionOptions(), store, clock=_clock)

    assert summary.success_count == 1
    assert summary.failures == [
        FieldError(row_number=2, field="firstName", message="First name is required", invalid_value=""),
    ]
    assert store.attempts == ["ANE001"]


@pytest.mark.asyncio
async def test_duplicate_flag_without_skip_still_attempts_create():
    rows = [r.model_copy(update={"is_duplicate": True}) for r in _students(2)]
    store = FakeRecordStore()

    summary = await execute_rows(STUDENTS, rows, ExecutionOptions(skip_duplicates=False), store, clock=_clock)

    assert summary.success_count == 2


# ─── Ordering and bounds ──────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_created_ids_follow_row_order():
    rows = list(reversed(_students(5)))
    summary = await execute_rows(STUDENTS, rows, ExecutionOptions(), FakeRecordStore(), clock=_clock)

    assert summary.created_ids == [f"id-ANE{i:03d}" for i in range(1, 6)]


@pytest.mark.asyncio
async def test_creates_bounded_by_pool_size():
    store = InFlightCountingStore()
    summary = await execute_rows(STUDENTS, _students(10), ExecutionOptions(), store, pool_size=3, clock=_clock)

    assert summary.success_count == 10
    assert 1 <= store.max_in_flight <= 3


@pytest.mark.asyncio
async def test_empty_submission():
    summary = await execute_rows(EMPLOYEES, [], ExecutionOptions(), FakeRecordStore(), clock=_clock)
    assert summary.entity_type == "employees"
    _assert_accounted(summary, 0)


def test_summarize_tallies_outcomes():
    error = FieldError(row_number=2, field="admissionNumber", message="nope")
    outcomes = [
        RowOutcome(row_number=3, status=SKIPPED),
        RowOutcome(row_number=2, status=FAILED, error=error),
        RowOutcome(row_number=1, status=CREATED, record_id="abc"),
    ]
    summary = summarize(STUDENTS, outcomes)

    assert (summary.success_count, summary.skipped_count, summary.failed_count) == (1, 1, 1)
    assert summary.created_ids == ["abc"]
    assert summary.failures == [error]


@pytest.mark.asyncio
async def test_lost_outcome_raises_accounting_error():
    def _drop_last(spec, outcomes):
        return summarize(spec, outcomes[:-1])

    with patch("app.imports.executor.summarize", side_effect=_drop_last):
        with pytest.raises(ImportAccountingError):
            await execute_rows(STUDENTS, _students(2), ExecutionOptions(), FakeRecordStore(), clock=_clock)
