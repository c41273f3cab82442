"""
Upload and contact detail validation
"""
import pytest

from core.validators import (
    sanitize_filename, validate_material_extension, validate_file_size,
    validate_email, validate_indian_phone, format_indian_phone
)

ALLOWED = {".pdf", ".docx", ".pptx"}


def test_sanitize_filename_strips_paths():
    assert sanitize_filename("../../etc/passwd") == "passwd"
    assert sanitize_filename("C:\\Users\\me\\notes.pdf") == "notes.pdf"
    assert sanitize_filename("week 1 (intro).pdf") == "week_1__intro_.pdf"


@pytest.mark.parametrize("name", ["", "...", "../"])
def test_sanitize_filename_rejects_empty_results(name):
    with pytest.raises(ValueError):
        sanitize_filename(name)


def test_material_extension_is_case_insensitive():
    assert validate_material_extension("Lecture.PDF", ALLOWED)
    assert not validate_material_extension("script.exe", ALLOWED)
    assert not validate_material_extension("", ALLOWED)


def test_file_size_limits():
    assert validate_file_size(1024, 2048) == (True, None)
    assert validate_file_size(0, 2048)[0] is False
    ok, error = validate_file_size(3 * 1024 * 1024, 1024 * 1024)
    assert not ok
    assert "max: 1.00MB" in error


@pytest.mark.parametrize("email,valid", [
    ("student@studyq.edu", True),
    (" student@studyq.edu ", True),
    ("student@localhost", False),
    ("no-at-sign.edu", False),
    ("", False),
])
def test_validate_email(email, valid):
    assert validate_email(email) is valid


@pytest.mark.parametrize("phone,valid", [
    ("9876543210", True),
    ("+919876543210", True),
    ("919876543210", True),
    ("+91 98765-43210", True),
    ("(987) 654-3210", True),
    ("5876543210", False),
    ("98765", False),
    ("+14155238886", False),
    ("", False),
])
def test_validate_indian_phone(phone, valid):
    assert validate_indian_phone(phone) is valid


@pytest.mark.parametrize("phone,expected", [
    ("9876543210", "+919876543210"),
    ("919876543210", "+919876543210"),
    ("+91 98765 43210", "+919876543210"),
])
def test_format_indian_phone(phone, expected):
    assert format_indian_phone(phone) == expected
