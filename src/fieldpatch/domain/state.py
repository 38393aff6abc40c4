"""Patch bindings and the durable state recorded for them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .errors import TargetChangedError
from .identity import ManagerIdentity

if TYPE_CHECKING:
    from datetime import datetime

    from .objects import TargetRef
    from .patches import PatchKind, PatchSpec
    from .projection import PlannedProjection


@dataclass(slots=True, frozen=True)
class PatchBinding:
    """One patch applied to one target under one manager identity."""

    target: TargetRef
    patch: PatchSpec
    identity: ManagerIdentity = field(default_factory=ManagerIdentity)

    @property
    def manager(self) -> str:
        return self.identity.name


@dataclass(slots=True, kw_only=True)
class BindingState:
    """What a successful apply leaves behind for the next cycle."""

    binding_id: str
    manager: str
    target: TargetRef
    patch_kind: PatchKind
    content_digest: str
    projection: PlannedProjection
    ownership: dict[str, str] = field(default_factory=dict)
    previous_owners: dict[str, str] = field(default_factory=dict)
    updated_at: datetime | None = None


def ensure_same_target(state: BindingState | None, target: TargetRef) -> None:
    """Targets are immutable per binding; a change requires replacing the binding."""

    if state is None or state.target == target:
        return
    raise TargetChangedError(
        f"Patch target changed from {state.target} to {target}; "
        "the binding must be replaced rather than updated in place"
    )
