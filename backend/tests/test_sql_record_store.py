"""Tests for SqlRecordStore against mocked async sessions."""
import uuid
from datetime import date
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.imports.errors import DuplicateRecordError, RecordStoreError, UnknownEntityTypeError
from app.imports.store import SqlRecordStore
from app.models.employee import Employee
from app.models.student import Student

TENANT_ID = uuid.UUID("6f1c2a8e-3d4b-4f5a-9c7e-1b2d3e4f5a6b")
CLASS_ID = uuid.UUID("0b9d7a52-8c1e-4e53-a1f4-5c7d2e9b8a10")


# ─── Helpers ──────────────────────────────────────────────────────────────────

class FakeSession:
    """Async-session stand-in usable as ``async with factory() as session``."""

    def __init__(self, class_id=CLASS_ID, keys=(), flush_error=None):
        self.class_id = class_id
        self.keys = list(keys)
        self.flush_error = flush_error
        self.added = []
        self.executed = []
        self.committed = False
        self.rolled_back = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, stmt):
        self.executed.append(stmt)
        result = MagicMock()
        result.scalar_one_or_none.return_value = self.class_id
        result.scalars.return_value.all.return_value = self.keys
        return result

    def add(self, obj):
        if obj.id is None:
            obj.id = uuid.uuid4()
        self.added.append(obj)

    async def flush(self):
        if self.flush_error is not None:
            raise self.flush_error

    async def commit(self):
        self.committed = True

    async def rollback(self):
        self.rolled_back = True


def _store(session: FakeSession) -> SqlRecordStore:
    return SqlRecordStore(lambda: session, tenant_id=TENANT_ID)


def _student_fields(**overrides) -> dict:
    fields = {
        "admissionNumber": "ANE001",
        "firstName": "John",
        "lastName": "Doe",
        "dateOfBirth": date(2010, 5, 15),
        "gender": "male",
        "email": None,
        "phone": None,
        "class": "10",
        "section": "A",
        "rollNumber": 4,
        "bloodGroup": None,
        "address": None,
        "city": None,
        "state": None,
        "pincode": None,
        "guardianName": None,
        "guardianPhone": None,
        "guardianEmail": None,
        "isActive": True,
    }
    fields.update(overrides)
    return fields


def _integrity_error(detail: str) -> IntegrityError:
    return IntegrityError("INSERT INTO students ...", {}, Exception(detail))


@pytest.fixture(autouse=True)
def fast_hash():
    with patch("app.imports.store.hash_password", side_effect=lambda pw: f"hashed:{pw}"):
        yield


# ─── Lookups ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_find_by_business_key_returns_existing_subset():
    session = FakeSession(keys=["ANE002"])
    found = await _store(session).find_by_business_key("students", {"ANE001", "ANE002"})

    assert found == {"ANE002"}
    assert len(session.executed) == 1


@pytest.mark.asyncio
async def test_find_by_business_key_empty_keys_skips_query():
    session = FakeSession()
    assert await _store(session).find_by_business_key("employees", set()) == set()
    assert session.executed == []


@pytest.mark.asyncio
async def test_unknown_entity_type():
    with pytest.raises(UnknownEntityTypeError):
        await _store(FakeSession()).find_by_business_key("parents", {"X"})
    with pytest.raises(UnknownEntityTypeError):
        await _store(FakeSession()).create_record("parents", {})


# ─── Creates ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_student_resolves_class_and_sets_portal_password():
    session = FakeSession()
    record_id = await _store(session).create_record("students", _student_fields())

    student = session.added[0]
    assert isinstance(student, Student)
    assert record_id == str(student.id)
    assert student.tenant_id == TENANT_ID
    assert student.class_id == CLASS_ID
    assert student.admission_number == "ANE001"
    assert student.roll_number == 4
    assert student.password_hash == "hashed:ANE001@123"
    assert session.committed is True


@pytest.mark.asyncio
async def test_class_lookup_is_cached_per_store():
    session = FakeSession()
    store = _store(session)
    await store.create_record("students", _student_fields(admissionNumber="ANE001"))
    await store.create_record("students", _student_fields(admissionNumber="ANE002", section="a"))

    assert len(session.executed) == 1


@pytest.mark.asyncio
async def test_missing_class_is_store_error():
    session = FakeSession(class_id=None)
    with pytest.raises(RecordStoreError) as exc_info:
        await _store(session).create_record("students", _student_fields(**{"class": "12", "section": "Z"}))

    assert str(exc_info.value) == 'Class "12" Section "Z" not found'
    assert not isinstance(exc_info.value, DuplicateRecordError)
    assert session.rolled_back is True
    assert session.added == []


@pytest.mark.asyncio
async def test_create_employee_maps_fields():
    session = FakeSession()
    fields = {
        "employeeId": "EMP001",
        "firstName": "Alice",
        "lastName": "Smith",
        "email": "alice@greenvalley.edu",
        "phone": "9876543210",
        "role": "teacher",
        "department": None,
        "dateOfJoining": date(2024, 1, 15),
        "dateOfBirth": date(1990, 3, 20),
        "gender": "female",
        "isActive": None,
    }
    await _store(session).create_record("employees", fields)

    employee = session.added[0]
    assert isinstance(employee, Employee)
    assert employee.employee_id == "EMP001"
    assert employee.date_of_joining == date(2024, 1, 15)
    assert employee.is_active is True
    assert employee.password_hash == "hashed:EMP001@123"


# ─── Error translation ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_business_key_collision_becomes_duplicate_error():
    error = _integrity_error(
        'duplicate key value violates unique constraint "uq_students_tenant_admission_number"'
    )
    session = FakeSession(flush_error=error)

    with pytest.raises(DuplicateRecordError) as exc_info:
        await _store(session).create_record("students", _student_fields())

    assert str(exc_info.value) == "Admission number already exists: ANE001"
    assert exc_info.value.field == "admissionNumber"
    assert session.rolled_back is True


@pytest.mark.asyncio
async def test_email_collision_names_the_email():
    error = _integrity_error('duplicate key value violates unique constraint "uq_students_tenant_email"')
    session = FakeSession(flush_error=error)

    with pytest.raises(DuplicateRecordError) as exc_info:
        await _store(session).create_record("students", _student_fields(email="john@greenvalley.edu"))

    assert str(exc_info.value) == "Email already exists: john@greenvalley.edu"
    assert exc_info.value.field == "email"


@pytest.mark.asyncio
async def test_other_integrity_error_is_plain_store_error():
    session = FakeSession(flush_error=_integrity_error('null value in column "gender"\nDETAIL: ...'))

    with pytest.raises(RecordStoreError) as exc_info:
        await _store(session).create_record("students", _student_fields())

    assert not isinstance(exc_info.value, DuplicateRecordError)
    assert str(exc_info.value) == 'Rejected by record store: null value in column "gender"'


@pytest.mark.asyncio
async def test_connection_failure_is_store_error():
    session = FakeSession(flush_error=OperationalError("INSERT", {}, Exception("server closed the connection")))

    with pytest.raises(RecordStoreError) as exc_info:
        await _store(session).create_record("students", _student_fields())

    assert str(exc_info.value) == "Record store unavailable: OperationalError"
