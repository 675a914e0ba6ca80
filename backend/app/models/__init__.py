from app.models.user import User
from app.models.student import SchoolClass, Student
from app.models.employee import Employee
from app.models.audit import AuditLog

__all__ = [
    "User",
    "SchoolClass", "Student",
    "Employee",
    "AuditLog",
]
