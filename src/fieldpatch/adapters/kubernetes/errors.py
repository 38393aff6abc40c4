"""Decoding of failed Kubernetes API responses into store errors."""

from __future__ import annotations

import re
from typing import Final

from pydantic import ValidationError

from fieldpatch.domain.errors import (
    ApplyConflictError,
    FieldValidationError,
    ImmutableFieldError,
    ObjectNotFoundError,
    ResourceTypeNotFoundError,
    StoreAccessError,
    StoreError,
    StoreRejectionError,
)

from .schema import StatusModel

TYPE_NOT_FOUND_MARKERS: Final[tuple[str, ...]] = (
    "no matches for kind",
    "could not find the requested resource",
)
IMMUTABLE_MARKERS: Final[tuple[str, ...]] = (
    "immutable",
    "cannot be changed",
    "may not be modified",
    "forbidden",
)
FIELD_VALIDATION_MARKERS: Final[tuple[str, ...]] = (
    "unknown field",
    "duplicate field",
    "strict decoding error",
    "field not declared in schema",
)

_CONFLICT_PATTERN = re.compile(r'conflict with "([^"]+)"[^:]*: ([.\w\[\]=-]+)')
_UNKNOWN_FIELD_PATTERN = re.compile(r'(?:unknown|duplicate) field\s*"([^"]+)"')
_UNDECLARED_FIELD_PATTERN = re.compile(r"([\w\[\]\.]+):\s*field not declared in schema")
_INVALID_FIELD_PATTERN = re.compile(r"([\w\[\]\.]+):\s*(?:Invalid value|Forbidden|Required value)")


def parse_status(text: str) -> StatusModel | None:
    try:
        return StatusModel.model_validate_json(text)
    except ValidationError:
        return None


def decode_store_error(status_code: int, text: str) -> StoreError:
    """Map a failed response to the most specific ``StoreError`` subclass."""

    status = parse_status(text)
    message = status.message if status is not None and status.message else text.strip()
    lowered = message.lower()
    summary = f"HTTP {status_code}: {message}" if message else f"HTTP {status_code}"

    if status_code == 404:
        if any(marker in lowered for marker in TYPE_NOT_FOUND_MARKERS):
            return ResourceTypeNotFoundError(summary, status_code=status_code)
        return ObjectNotFoundError(summary, status_code=status_code)
    if status_code in {401, 403}:
        return StoreAccessError(summary, status_code=status_code)
    if status_code == 409:
        conflicts = _conflicts(status, message)
        if conflicts or "conflict with" in lowered:
            return ApplyConflictError(summary, conflicts=conflicts, status_code=status_code)
        return StoreRejectionError(summary, status_code=status_code)
    if status_code == 400 and any(marker in lowered for marker in FIELD_VALIDATION_MARKERS):
        fields = [
            *_UNKNOWN_FIELD_PATTERN.findall(message),
            *_UNDECLARED_FIELD_PATTERN.findall(message),
        ]
        return FieldValidationError(summary, fields=fields, status_code=status_code)
    if status_code == 422:
        fields = _cause_fields(status) or _INVALID_FIELD_PATTERN.findall(message)
        if any(marker in lowered for marker in IMMUTABLE_MARKERS):
            return ImmutableFieldError(summary, fields=fields, status_code=status_code)
        return StoreRejectionError(summary, fields=fields, status_code=status_code)
    if 400 <= status_code < 500:
        return StoreRejectionError(summary, status_code=status_code)
    return StoreError(summary, status_code=status_code)


def _cause_fields(status: StatusModel | None) -> list[str]:
    if status is None or status.details is None:
        return []
    return [cause.field for cause in status.details.causes if cause.field]


def _conflicts(status: StatusModel | None, message: str) -> list[tuple[str, str]]:
    conflicts: list[tuple[str, str]] = []
    if status is not None and status.details is not None:
        for cause in status.details.causes:
            match = re.search(r'conflict with "([^"]+)"', cause.message)
            if match and cause.field:
                conflicts.append((match.group(1), cause.field))
    if conflicts:
        return conflicts
    return [(manager, path) for manager, path in _CONFLICT_PATTERN.findall(message)]
