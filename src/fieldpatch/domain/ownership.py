"""Ownership map builder.

Turns an object's managed-fields entries into a ``path -> managers`` index, dropping
paths that would otherwise produce a conflict or drift signal on every cycle: the
status subtree and annotations the store's own controllers rewrite.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Final

from .paths import FieldPath, owned_paths

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .identity import ManagerEquivalence
    from .objects import ManagedFieldsEntry

log = getLogger(__name__)

VOLATILE_ROOTS: Final[frozenset[str]] = frozenset({"status"})
SYSTEM_ANNOTATIONS: Final[frozenset[str]] = frozenset(
    {
        "kubectl.kubernetes.io/last-applied-configuration",
        "endpoints.kubernetes.io/last-change-trigger-time",
    }
)
SYSTEM_ANNOTATION_PREFIXES: Final[tuple[str, ...]] = (
    "deployment.kubernetes.io/",
    "control-plane.alpha.kubernetes.io/",
    "autoscaling.alpha.kubernetes.io/",
    "pv.kubernetes.io/",
    "volume.kubernetes.io/",
    "volume.beta.kubernetes.io/",
)


def is_volatile(path: FieldPath) -> bool:
    return path.root in VOLATILE_ROOTS


def is_system_annotation(key: str) -> bool:
    return key in SYSTEM_ANNOTATIONS or key.startswith(SYSTEM_ANNOTATION_PREFIXES)


def is_system_managed(path: FieldPath) -> bool:
    segments = path.segments
    return (
        len(segments) >= 3
        and segments[0] == "metadata"
        and segments[1] == "annotations"
        and isinstance(segments[2], str)
        and is_system_annotation(segments[2])
    )


def is_noise(path: FieldPath) -> bool:
    return is_volatile(path) or is_system_managed(path)


@dataclass(slots=True)
class OwnershipIndex:
    """``path -> managers`` in the order the store lists its entries."""

    managers_by_path: dict[str, list[str]] = field(default_factory=dict)
    paths: dict[str, FieldPath] = field(default_factory=dict)

    def add(self, path: FieldPath, manager: str) -> None:
        key = str(path)
        managers = self.managers_by_path.setdefault(key, [])
        if manager not in managers:
            managers.append(manager)
        self.paths.setdefault(key, path)

    def managers(self, path: str) -> list[str]:
        return list(self.managers_by_path.get(path, ()))

    def __contains__(self, path: object) -> bool:
        return path in self.managers_by_path

    def __len__(self) -> int:
        return len(self.managers_by_path)

    def paths_owned_by(self, matches: ManagerEquivalence) -> list[FieldPath]:
        return [
            self.paths[key]
            for key, managers in self.managers_by_path.items()
            if any(matches(manager) for manager in managers)
        ]

    def resolve(self, *, prefer: ManagerEquivalence | None = None) -> dict[str, str]:
        """Collapse to ``path -> manager``.

        Without ``prefer`` the first listed manager wins. Ownership snapshots pass the
        binding's own equivalence as ``prefer``: a field it shares with another manager
        still counts as its own, so the transition diff never reports a co-owned field
        as lost. Shared paths are logged, never merged.
        """

        resolved: dict[str, str] = {}
        for key, managers in self.managers_by_path.items():
            owner = managers[0]
            if prefer is not None:
                owner = next((manager for manager in managers if prefer(manager)), owner)
            if len(managers) > 1:
                log.debug(
                    "Path %s is claimed by %d managers (%s); using %s",
                    key,
                    len(managers),
                    ", ".join(managers),
                    owner,
                )
            resolved[key] = owner
        return resolved


def build_ownership_index(
    entries: Iterable[ManagedFieldsEntry],
    *,
    leaves_only: bool = False,
) -> OwnershipIndex:
    index = OwnershipIndex()
    for entry in entries:
        if not entry.manager:
            log.debug("Skipping managed-fields entry without a manager name")
            continue
        for path in owned_paths(entry.fields, leaves_only=leaves_only):
            if is_noise(path):
                continue
            index.add(path, entry.manager)
    return index
