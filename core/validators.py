"""
Input validation utilities for uploads and contact details.
"""
import os
import re
from pathlib import Path
from typing import Tuple, Optional

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
INDIAN_PHONE_PATTERN = re.compile(r"^(\+91|91)?[6-9]\d{9}$")


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename to prevent path traversal attacks.

    Args:
        filename: Original filename

    Returns:
        Sanitized filename safe for use
    """
    if not filename:
        raise ValueError("Filename cannot be empty")

    # Remove directory separators and path components
    filename = os.path.basename(filename.replace("\\", "/"))

    # Keep alphanumeric, dots, dashes, underscores
    sanitized = "".join(char if char.isalnum() or char in "._-" else "_" for char in filename)

    if len(sanitized) > 255:
        sanitized = sanitized[:255]

    if not sanitized or sanitized.strip(".") == "":
        raise ValueError("Filename became empty after sanitization")

    return sanitized


def validate_material_extension(filename: str, allowed_extensions: set) -> bool:
    """
    Validate file extension.

    Args:
        filename: Filename to check
        allowed_extensions: Set of allowed extensions (e.g., {".pdf", ".pptx"})

    Returns:
        True if extension is allowed
    """
    if not filename:
        return False
    return Path(filename).suffix.lower() in allowed_extensions


def validate_file_size(file_size: int, max_size_bytes: int) -> Tuple[bool, Optional[str]]:
    """
    Validate file size.

    Args:
        file_size: File size in bytes
        max_size_bytes: Maximum allowed size in bytes

    Returns:
        Tuple of (is_valid, error_message)
    """
    if file_size <= 0:
        return False, "File size must be greater than 0"

    if file_size > max_size_bytes:
        max_size_mb = max_size_bytes / (1024 * 1024)
        actual_size_mb = file_size / (1024 * 1024)
        return False, f"File too large: {actual_size_mb:.2f}MB (max: {max_size_mb:.2f}MB)"

    return True, None


def validate_email(email: str) -> bool:
    return bool(email) and bool(EMAIL_PATTERN.match(email.strip()))


def _strip_phone(phone: str) -> str:
    return re.sub(r"[\s\-()]", "", phone or "")


def validate_indian_phone(phone: str) -> bool:
    """Indian mobile number, optionally prefixed with +91 or 91."""
    return bool(INDIAN_PHONE_PATTERN.match(_strip_phone(phone)))


def format_indian_phone(phone: str) -> str:
    """
    Normalize an Indian mobile number to ``+91XXXXXXXXXX``.

    Numbers that already carry a country code are returned cleaned but otherwise unchanged.
    """
    cleaned = _strip_phone(phone)
    if cleaned.startswith("+91"):
        return cleaned
    if cleaned.startswith("91") and len(cleaned) == 12:
        return f"+{cleaned}"
    if len(cleaned) == 10:
        return f"+91{cleaned}"
    return cleaned
