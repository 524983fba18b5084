"""
Validation utilities for input validation and error handling.
"""
import re
from typing import Any
from fastapi import HTTPException

MAX_ATTACHMENTS = 5
MAX_ATTACHMENT_BYTES = 5 * 1024 * 1024  # 5MB per file


def validate_email(email: str) -> str:
    """Validate email format."""
    if not email or not isinstance(email, str):
        raise HTTPException(status_code=400, detail="Email is required")

    email = email.strip().lower()
    if len(email) > 255:
        raise HTTPException(status_code=400, detail="Email too long (max 255 characters)")

    # Basic email regex
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    if not re.match(pattern, email):
        raise HTTPException(status_code=400, detail="Invalid email format")

    return email


def validate_string_field(
    value: Any,
    field_name: str,
    min_length: int = 1,
    max_length: int = 1000,
    required: bool = True,
) -> str | None:
    """Validate a string field with common rules."""
    if value is None:
        if required:
            raise HTTPException(status_code=400, detail=f"{field_name} is required")
        return None

    if not isinstance(value, str):
        raise HTTPException(status_code=400, detail=f"{field_name} must be a string")

    value = value.strip()

    if required and not value:
        raise HTTPException(status_code=400, detail=f"{field_name} cannot be empty")

    if len(value) < min_length:
        raise HTTPException(
            status_code=400,
            detail=f"{field_name} must be at least {min_length} characters"
        )

    if len(value) > max_length:
        raise HTTPException(
            status_code=400,
            detail=f"{field_name} must not exceed {max_length} characters"
        )

    return value


def validate_skills_field(value: Any, field_name: str) -> str | None:
    """
    Normalize a skills payload (list or comma-delimited string) to the stored
    comma-delimited form. Empty input becomes None.
    """
    if value is None:
        return None
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(v) for v in value]
    else:
        raise HTTPException(status_code=400, detail=f"{field_name} must be a list or comma-separated string")

    cleaned = [i.strip() for i in items if i and i.strip()]
    for item in cleaned:
        if len(item) > 100:
            raise HTTPException(status_code=400, detail=f"{field_name} entries must not exceed 100 characters")
    return ", ".join(cleaned) or None


def sanitize_filename(filename: str) -> str:
    """Sanitize filename to prevent directory traversal and other attacks."""
    if not filename:
        raise HTTPException(status_code=400, detail="Filename is required")

    # Remove any path separators
    filename = filename.replace("/", "_").replace("\\", "_")

    # Remove any null bytes
    filename = filename.replace("\x00", "")

    # Remove directory traversal sequences
    filename = filename.replace("..", "_")

    # Remove leading dots to prevent hidden files
    filename = filename.lstrip(".")

    if len(filename) > 255:
        raise HTTPException(status_code=400, detail="Filename too long")

    if not filename or filename == "_":
        raise HTTPException(status_code=400, detail="Invalid filename")

    return filename
