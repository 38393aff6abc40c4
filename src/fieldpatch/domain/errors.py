"""Error taxonomy for patch planning, apply and reconciliation.

Configuration, target and store-rejection errors abort a cycle. Ownership warnings and
failed drift corrections are reported as diagnostics instead (see ``diagnostics``).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .conflicts import ConflictRecord


class PatchError(RuntimeError):
    """Base class for every error raised by the patch engine."""


class PatchConfigurationError(PatchError):
    """Raised when the patch specification itself is invalid."""


class TargetError(PatchError):
    """Raised when the target object cannot be patched by this binding."""


class TargetNotFoundError(TargetError):
    """Raised when the target object is absent at apply time."""


class SelfManagedTargetError(TargetError):
    """Raised when the target is already managed as a whole object by this tool."""

    def __init__(self, message: str, *, manager: str | None = None) -> None:
        super().__init__(message)
        self.manager = manager


class CrossBindingConflictError(TargetError):
    """Raised when another patch binding already owns fields this patch touches."""

    def __init__(self, message: str, *, conflicts: Sequence[ConflictRecord]) -> None:
        super().__init__(message)
        self.conflicts = tuple(conflicts)

    @property
    def managers(self) -> tuple[str, ...]:
        return tuple(sorted({c.current_owner for c in self.conflicts if c.current_owner}))


class TargetChangedError(TargetError):
    """Raised when an existing binding is pointed at a different object."""


class StoreError(PatchError):
    """Raised by resource-store adapters for failed store calls."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ObjectNotFoundError(StoreError):
    """Raised when the requested object does not exist."""


class ResourceTypeNotFoundError(ObjectNotFoundError):
    """Raised when the store does not serve the requested kind (e.g. a missing CRD)."""


class StoreAccessError(StoreError):
    """Raised when the store refuses the credentials or the operation."""


class StoreRejectionError(StoreError):
    """Raised when the store rejects a write, decoded into field names where possible."""

    def __init__(
        self,
        message: str,
        *,
        fields: Sequence[str] = (),
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.fields = tuple(fields)


class ImmutableFieldError(StoreRejectionError):
    """Raised when the patch changes a field the store treats as immutable."""


class FieldValidationError(StoreRejectionError):
    """Raised when the store's schema validation rejects unknown or invalid fields."""


class ApplyConflictError(StoreRejectionError):
    """Raised when a non-forced apply conflicts with other field managers."""

    def __init__(
        self,
        message: str,
        *,
        conflicts: Sequence[tuple[str, str]] = (),
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, fields=[path for _, path in conflicts], status_code=status_code)
        self.conflicts = tuple(conflicts)
