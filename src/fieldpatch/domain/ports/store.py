"""Resource-store port consumed by the patch engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from fieldpatch.domain.objects import StoreObject, TargetRef


@runtime_checkable
class ResourceStore(Protocol):
    """Synchronous access to a Kubernetes-style object store.

    Implementations raise ``ObjectNotFoundError`` for absent objects and other
    ``StoreError`` subclasses for everything else; cancellation is never swallowed.
    """

    def get(self, target: TargetRef) -> StoreObject: ...

    def dry_run_apply(
        self,
        obj: Mapping[str, object],
        *,
        manager: str,
        force: bool = True,
    ) -> StoreObject: ...

    def apply(
        self,
        obj: Mapping[str, object],
        *,
        manager: str,
        force: bool = True,
    ) -> StoreObject: ...

    def patch(
        self,
        target: TargetRef,
        *,
        body: str,
        content_type: str,
        manager: str,
        dry_run: bool = False,
    ) -> StoreObject: ...

    def drain_warnings(self) -> list[str]:
        """Return and forget warnings the store attached to responses so far."""
        ...
