"""Ports for persisting binding state."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from fieldpatch.domain.state import BindingState


@runtime_checkable
class BindingStateRepository(Protocol):
    """Persistence contract for per-binding state."""

    def get(self, binding_id: str) -> BindingState | None: ...

    def save(self, state: BindingState) -> None: ...

    def delete(self, binding_id: str) -> bool: ...

    def list_ids(self) -> list[str]: ...
