"""Tests for the CSV template and error report documents."""
import csv
import io

from app.imports.reports import render_error_report, render_template, template_filename
from app.imports.specs import EMPLOYEES, STUDENTS
from app.schemas.imports import FieldError
from app.services import imports as import_svc


def test_student_template_header_and_example():
    lines = render_template(STUDENTS).splitlines()

    assert lines[0] == (
        "admissionNumber,firstName,lastName,dateOfBirth,gender,email,phone,class,section,"
        "rollNumber,bloodGroup,address,city,state,pincode,guardianName,guardianPhone,"
        "guardianEmail,isActive"
    )
    assert lines[1].startswith("ANE2024001,John,Doe,2010-05-15,male,")
    assert len(lines) == 2


def test_template_columns_match_spec():
    for spec in (STUDENTS, EMPLOYEES):
        header, example = list(csv.reader(io.StringIO(render_template(spec))))
        assert header == spec.column_keys
        assert len(example) == len(header)


def test_get_template_returns_filename():
    filename, content = import_svc.get_template("Employees")

    assert filename == "employees_import_template.csv"
    assert content.startswith("employeeId,firstName,lastName,email,phone,role,")
    assert template_filename(STUDENTS) == "students_import_template.csv"


def test_error_report_layout():
    errors = [
        FieldError(row_number=2, field="firstName", message="First name is required"),
        FieldError(
            row_number=4, field="gender", message="Gender must be male, female, or other", invalid_value="robot",
        ),
    ]

    assert render_error_report(errors) == (
        "Row Number,Field,Error,Invalid Value\n"
        "2,firstName,First name is required,\n"
        '4,gender,"Gender must be male, female, or other",robot\n'
    )


def test_error_report_empty_list_is_header_only():
    assert import_svc.export_errors([]) == "Row Number,Field,Error,Invalid Value\n"
