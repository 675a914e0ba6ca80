"""Per-entity import configuration (ImportSpec) and the registry of supported entity types.

The registry is built once at import time and exposed read-only; nothing in
the pipeline mutates it.
"""
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Any

from app.core.config import settings
from app.imports.errors import UnknownEntityTypeError

# ─── Column kinds ───

TEXT = "text"
DATE = "date"
INTEGER = "integer"
CHOICE = "choice"
BOOLEAN = "boolean"
EMAIL = "email"

UPPER = "upper"
LOWER = "lower"

# A cross-field check receives the normalized fields of an otherwise valid row
# and returns (column_key, message) when the row violates it.
RowCheck = Callable[[Mapping[str, Any]], tuple[str, str] | None]


@dataclass(frozen=True)
class ColumnSpec:
    key: str
    label: str
    required: bool = False
    kind: str = TEXT
    case: str | None = None
    min_length: int | None = None
    max_length: int | None = None
    pattern: re.Pattern | None = None
    pattern_message: str | None = None
    choices: tuple[str, ...] = ()
    min_value: int | None = None
    min_date: date | None = None
    # "Not after today" rules are the only clock-dependent checks in the pipeline.
    not_after_today: bool = False
    default: Any = None
    example: str = ""


@dataclass(frozen=True)
class ImportSpec:
    entity_type: str
    label: str
    columns: tuple[ColumnSpec, ...]
    business_key: str
    unique_within_batch: bool = True
    row_checks: tuple[RowCheck, ...] = ()
    max_rows: int = field(default_factory=lambda: settings.IMPORT_MAX_ROWS)
    max_file_bytes: int = field(default_factory=lambda: settings.IMPORT_MAX_FILE_BYTES)

    @property
    def column_keys(self) -> list[str]:
        return [c.key for c in self.columns]

    @property
    def required_keys(self) -> list[str]:
        return [c.key for c in self.columns if c.required]

    def column_index(self, key: str) -> int:
        """Declaration position of a column; unknown keys sort last."""
        for idx, col in enumerate(self.columns):
            if col.key == key:
                return idx
        return len(self.columns)


# ─── Shared column rules ───

_CODE = re.compile(r"^[A-Z0-9]+$")
_PHONE = re.compile(r"^[0-9]{10}$")
_PINCODE = re.compile(r"^[0-9]{6}$")

GENDERS = ("male", "female", "other")
BLOOD_GROUPS = ("A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-")
EMPLOYEE_ROLES = ("teacher", "admin", "accountant", "librarian", "staff")


def _name(key: str, label: str, example: str) -> ColumnSpec:
    return ColumnSpec(key, label, required=True, min_length=2, max_length=50, example=example)


def _phone(key: str, label: str, example: str, required: bool = False) -> ColumnSpec:
    return ColumnSpec(
        key, label, required=required, pattern=_PHONE,
        pattern_message=f"{label} must be 10 digits", example=example,
    )


def _code(key: str, label: str, example: str) -> ColumnSpec:
    return ColumnSpec(
        key, label, required=True, case=UPPER, min_length=3, max_length=20,
        pattern=_CODE, pattern_message=f"{label} must be alphanumeric", example=example,
    )


def _pincode(example: str) -> ColumnSpec:
    return ColumnSpec(
        "pincode", "Pincode", pattern=_PINCODE,
        pattern_message="Pincode must be 6 digits", example=example,
    )


def _is_active() -> ColumnSpec:
    return ColumnSpec("isActive", "Active", kind=BOOLEAN, default=True, example="true")


def _joined_after_birth(fields: Mapping[str, Any]) -> tuple[str, str] | None:
    joined, born = fields.get("dateOfJoining"), fields.get("dateOfBirth")
    if joined and born and joined <= born:
        return "dateOfJoining", "Date of joining must be after date of birth"
    return None


# ─── Entity specs ───

STUDENTS = ImportSpec(
    entity_type="students",
    label="Students",
    business_key="admissionNumber",
    columns=(
        _code("admissionNumber", "Admission number", "ANE2024001"),
        _name("firstName", "First name", "John"),
        _name("lastName", "Last name", "Doe"),
        ColumnSpec(
            "dateOfBirth", "Date of birth", required=True, kind=DATE,
            min_date=date(1990, 1, 1), not_after_today=True, example="2010-05-15",
        ),
        ColumnSpec("gender", "Gender", required=True, kind=CHOICE, choices=GENDERS, example="male"),
        ColumnSpec("email", "Email", kind=EMAIL, example="john@example.com"),
        _phone("phone", "Phone number", "9876543210"),
        ColumnSpec("class", "Class", required=True, max_length=50, example="10"),
        ColumnSpec("section", "Section", required=True, case=UPPER, max_length=10, example="A"),
        ColumnSpec("rollNumber", "Roll number", kind=INTEGER, min_value=1, example="1"),
        ColumnSpec("bloodGroup", "Blood group", kind=CHOICE, choices=BLOOD_GROUPS, example="O+"),
        ColumnSpec("address", "Address", max_length=200, example="123 Main St"),
        ColumnSpec("city", "City", max_length=50, example="Mumbai"),
        ColumnSpec("state", "State", max_length=50, example="Maharashtra"),
        _pincode("400001"),
        ColumnSpec("guardianName", "Guardian name", max_length=100, example="Jane Doe"),
        _phone("guardianPhone", "Guardian phone", "9876543211"),
        ColumnSpec("guardianEmail", "Guardian email", kind=EMAIL, example="jane@example.com"),
        _is_active(),
    ),
)

EMPLOYEES = ImportSpec(
    entity_type="employees",
    label="Employees",
    business_key="employeeId",
    columns=(
        _code("employeeId", "Employee ID", "EMP001"),
        _name("firstName", "First name", "Alice"),
        _name("lastName", "Last name", "Smith"),
        ColumnSpec("email", "Email", required=True, kind=EMAIL, example="alice@school.com"),
        _phone("phone", "Phone number", "9876543210", required=True),
        ColumnSpec("role", "Role", required=True, kind=CHOICE, choices=EMPLOYEE_ROLES, example="teacher"),
        ColumnSpec("department", "Department", max_length=50, example="Science"),
        ColumnSpec(
            "dateOfJoining", "Date of joining", required=True, kind=DATE,
            not_after_today=True, example="2024-01-15",
        ),
        ColumnSpec(
            "dateOfBirth", "Date of birth", required=True, kind=DATE,
            min_date=date(1950, 1, 1), not_after_today=True, example="1990-03-20",
        ),
        ColumnSpec("gender", "Gender", required=True, kind=CHOICE, choices=GENDERS, example="female"),
        ColumnSpec("qualification", "Qualification", max_length=100, example="M.Sc"),
        ColumnSpec("address", "Address", max_length=200, example="456 Park Ave"),
        ColumnSpec("city", "City", max_length=50, example="Delhi"),
        ColumnSpec("state", "State", max_length=50, example="Delhi"),
        _pincode("110001"),
        ColumnSpec("emergencyContact", "Emergency contact", max_length=100, example="Bob Smith"),
        _phone("emergencyPhone", "Emergency phone", "9876543211"),
        _is_active(),
    ),
    row_checks=(_joined_after_birth,),
)

IMPORT_SPECS: Mapping[str, ImportSpec] = MappingProxyType({
    spec.entity_type: spec for spec in (STUDENTS, EMPLOYEES)
})


def get_import_spec(entity_type: str) -> ImportSpec:
    """Raises UnknownEntityTypeError for anything not in the registry."""
    spec = IMPORT_SPECS.get((entity_type or "").strip().lower())
    if spec is None:
        raise UnknownEntityTypeError(entity_type)
    return spec
