"""Minimal row and header checks applied before rows reach a destination."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import PurePosixPath, PureWindowsPath
from typing import Any


class ValidationError(ValueError):
    """Raised when a row, header list or name cannot be processed."""

    pass


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_row(row: Mapping[str, Any] | None) -> None:
    """Reject null rows and rows without a single non-blank cell."""
    if row is None or all(is_blank(value) for value in row.values()):
        raise ValidationError("Empty row")


def validate_headers(headers: list[str] | None) -> list[str]:
    """Ensure export headers are a non-empty list of distinct column names."""
    if not headers:
        raise ValidationError("Export requires a non-empty 'headers' list")
    cleaned = [str(header).strip() for header in headers]
    if any(not header for header in cleaned):
        raise ValidationError("Export headers must not be blank")
    duplicates = sorted({header for header in cleaned if cleaned.count(header) > 1})
    if duplicates:
        raise ValidationError(f"Duplicate export header(s): {', '.join(duplicates)}")
    return cleaned


def safe_segment(value: str | None, field: str) -> str:
    """Reduce a caller-supplied name to a single safe storage path segment."""
    if value is None or not str(value).strip():
        raise ValidationError(f"'{field}' is required")
    name = PureWindowsPath(PurePosixPath(str(value).strip()).name).name
    if name in ("", ".", ".."):
        raise ValidationError(f"Invalid {field}: {value!r}")
    return name
