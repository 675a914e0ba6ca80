"""Record store collaborator for the import pipeline.

The pipeline only needs two operations: a bulk business-key lookup and a
single-record create. SqlRecordStore implements them against Postgres, scoped
to one tenant, opening a fresh session per call so that rows committed
concurrently never share a transaction.
"""
import asyncio
import logging
import re
import uuid
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.security import default_portal_password, hash_password
from app.db.base import Base
from app.imports.errors import DuplicateRecordError, RecordStoreError, UnknownEntityTypeError
from app.models.employee import Employee
from app.models.student import SchoolClass, Student

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    async def find_by_business_key(self, entity_type: str, keys: set[str]) -> set[str]:
        """Return the subset of ``keys`` that already exist."""
        ...

    async def create_record(self, entity_type: str, fields: Mapping[str, Any]) -> str:
        """Persist one record and return its id.

        Raises DuplicateRecordError on a business-key collision and
        RecordStoreError for any other store-level failure.
        """
        ...


def _snake(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


# Unique constraint name → (column key, message template)
_UNIQUE_CONSTRAINTS: dict[str, tuple[str, str]] = {
    "uq_students_tenant_admission_number": ("admissionNumber", "Admission number already exists: {value}"),
    "uq_students_tenant_email": ("email", "Email already exists: {value}"),
    "uq_employees_tenant_employee_id": ("employeeId", "Employee ID already exists: {value}"),
    "uq_employees_tenant_email": ("email", "Email already exists: {value}"),
}


class SqlRecordStore:
    """RecordStore over the SQLAlchemy models, scoped to one school (tenant)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], tenant_id: uuid.UUID):
        self._session_factory = session_factory
        self._tenant_id = tenant_id
        self._class_ids: dict[tuple[str, str], uuid.UUID] = {}
        self._builders: dict[str, Callable[[AsyncSession, Mapping[str, Any]], Awaitable[Base]]] = {
            "students": self._build_student,
            "employees": self._build_employee,
        }
        self._key_columns = {
            "students": (Student, Student.admission_number),
            "employees": (Employee, Employee.employee_id),
        }

    # ─── Lookups ───

    async def find_by_business_key(self, entity_type: str, keys: set[str]) -> set[str]:
        if entity_type not in self._key_columns:
            raise UnknownEntityTypeError(entity_type)
        if not keys:
            return set()
        model, column = self._key_columns[entity_type]
        stmt = select(column).where(
            model.tenant_id == self._tenant_id,
            column.in_(sorted(keys)),
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return set(result.scalars().all())

    # ─── Creates ───

    async def create_record(self, entity_type: str, fields: Mapping[str, Any]) -> str:
        builder = self._builders.get(entity_type)
        if builder is None:
            raise UnknownEntityTypeError(entity_type)

        try:
            async with self._session_factory() as session:
                try:
                    record = await builder(session, fields)
                    session.add(record)
                    await session.flush()
                    record_id = record.id
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
        except IntegrityError as exc:
            raise self._translate_integrity_error(exc, fields) from exc
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("create_record: %s store failure: %s", entity_type, exc)
            raise RecordStoreError(f"Record store unavailable: {exc.__class__.__name__}") from exc

        logger.debug("create_record: %s %s created", entity_type, record_id)
        return str(record_id)

    def _translate_integrity_error(self, exc: IntegrityError, fields: Mapping[str, Any]) -> RecordStoreError:
        detail = str(exc.orig)
        for name, (column_key, template) in _UNIQUE_CONSTRAINTS.items():
            if name in detail:
                return DuplicateRecordError(template.format(value=fields.get(column_key)), field=column_key)
        return RecordStoreError(f"Rejected by record store: {detail.splitlines()[0] if detail else 'integrity error'}")

    async def _portal_password_hash(self, business_key: str) -> str:
        # bcrypt blocks; hash in a worker thread.
        return await asyncio.to_thread(hash_password, default_portal_password(business_key))

    async def _resolve_class_id(self, session: AsyncSession, name: str, section: str) -> uuid.UUID:
        cache_key = (name.strip().lower(), section.strip().upper())
        if cache_key in self._class_ids:
            return self._class_ids[cache_key]

        result = await session.execute(
            select(SchoolClass.id).where(
                SchoolClass.tenant_id == self._tenant_id,
                func.lower(SchoolClass.name) == cache_key[0],
                func.upper(SchoolClass.section) == cache_key[1],
                SchoolClass.is_active.is_(True),
            )
        )
        class_id = result.scalar_one_or_none()
        if class_id is None:
            raise RecordStoreError(f'Class "{name}" Section "{section}" not found')
        self._class_ids[cache_key] = class_id
        return class_id

    async def _build_student(self, session: AsyncSession, fields: Mapping[str, Any]) -> Student:
        values = {_snake(k): v for k, v in fields.items() if k != "class"}
        values["class_id"] = await self._resolve_class_id(session, str(fields["class"]), str(fields["section"]))
        values["password_hash"] = await self._portal_password_hash(fields["admissionNumber"])
        values["is_active"] = True if values.get("is_active") is None else values["is_active"]
        return Student(tenant_id=self._tenant_id, **values)

    async def _build_employee(self, session: AsyncSession, fields: Mapping[str, Any]) -> Employee:
        values = {_snake(k): v for k, v in fields.items()}
        values["password_hash"] = await self._portal_password_hash(fields["employeeId"])
        values["is_active"] = True if values.get("is_active") is None else values["is_active"]
        return Employee(tenant_id=self._tenant_id, **values)
