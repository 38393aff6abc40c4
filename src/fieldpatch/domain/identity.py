"""Field-manager identities used by patch bindings and by the full-object subsystem."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final
from uuid import uuid4

LIFECYCLE_MANAGER: Final[str] = "fieldpatch"
PATCH_MANAGER_PREFIX: Final[str] = "fieldpatch-patch"
PLACEHOLDER_ID: Final[str] = "temp"

RESERVED_ANNOTATION_PREFIX: Final[str] = "fieldpatch.io/"
OWNERSHIP_ANNOTATIONS: Final[tuple[str, ...]] = (
    "fieldpatch.io/object-id",
    "fieldpatch.io/owned-by",
)


def new_binding_id() -> str:
    return uuid4().hex[:12]


def is_patch_manager(manager: str) -> bool:
    """Whether ``manager`` belongs to any patch binding."""

    return manager.startswith(f"{PATCH_MANAGER_PREFIX}-")


def is_lifecycle_manager(manager: str) -> bool:
    """Whether ``manager`` is the full-object lifecycle subsystem of this tool."""

    if manager == LIFECYCLE_MANAGER:
        return True
    return manager.startswith(f"{LIFECYCLE_MANAGER}-") and not is_patch_manager(manager)


@dataclass(slots=True, frozen=True)
class ManagerEquivalence:
    """Manager names that denote the same eventual writer."""

    names: frozenset[str]

    def __call__(self, manager: str | None) -> bool:
        return manager is not None and manager in self.names


@dataclass(slots=True, frozen=True)
class ManagerIdentity:
    """Identity a binding writes under.

    Before the binding exists (plan time) it has no id and writes under a placeholder;
    afterwards it writes under ``<prefix>-<binding id>``. Both names are one writer.
    """

    binding_id: str | None = None
    prefix: str = PATCH_MANAGER_PREFIX

    @property
    def placeholder(self) -> str:
        return f"{self.prefix}-{PLACEHOLDER_ID}"

    @property
    def name(self) -> str:
        if self.binding_id is None:
            return self.placeholder
        return f"{self.prefix}-{self.binding_id}"

    @property
    def is_placeholder(self) -> bool:
        return self.binding_id is None

    def equivalence(self) -> ManagerEquivalence:
        return ManagerEquivalence(frozenset({self.name, self.placeholder}))

    def __str__(self) -> str:
        return self.name
