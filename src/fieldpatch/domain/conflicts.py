"""Conflict and self-management detection.

Pre-write checks (both fatal):

- the target must not be managed as a whole object by this tool's lifecycle subsystem
- no field the patch touches may be owned by a different patch binding

Post-dry-run, ownership transitions are diffed and reported as ``ConflictRecord``s;
takeovers from unrelated managers are warnings, never errors.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Final

from .errors import CrossBindingConflictError, SelfManagedTargetError
from .identity import OWNERSHIP_ANNOTATIONS, is_lifecycle_manager, is_patch_manager
from .paths import document_overlaps

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from .identity import ManagerEquivalence
    from .objects import StoreObject
    from .ownership import OwnershipIndex
    from .paths import FieldPath

CONFLICT_DISPLAY_LIMIT: Final[int] = 5


class TransitionKind(StrEnum):
    FIRST_OWNERSHIP = "first_ownership"
    TAKEOVER = "takeover"
    RELEASED = "released"
    CROSS_BINDING = "cross_binding"


@dataclass(slots=True, frozen=True, kw_only=True)
class ConflictRecord:
    path: str
    current_owner: str | None
    incoming_owner: str
    kind: TransitionKind

    def describe(self) -> str:
        if self.current_owner is None:
            return f"{self.path} (previously unowned)"
        return f"{self.path} (currently owned by {self.current_owner})"


def format_conflicts(
    records: Sequence[ConflictRecord],
    *,
    limit: int = CONFLICT_DISPLAY_LIMIT,
) -> str:
    lines = [f"  - {record.describe()}" for record in records[:limit]]
    if len(records) > limit:
        lines.append(f"  ... and {len(records) - limit} more")
    return "\n".join(lines)


def check_self_management(live: StoreObject) -> None:
    """Refuse targets that this tool already manages as whole objects."""

    annotations = live.annotations
    for key in OWNERSHIP_ANNOTATIONS:
        if key in annotations:
            raise SelfManagedTargetError(
                f"{live.ref()} is managed as a whole object by this tool "
                f"(annotation {key}={annotations[key]}); change that object's configuration "
                "instead of patching it"
            )
    for entry in live.managed_fields:
        if is_lifecycle_manager(entry.manager):
            raise SelfManagedTargetError(
                f"{live.ref()} is managed as a whole object by this tool "
                f"(field manager {entry.manager}); change that object's configuration "
                "instead of patching it",
                manager=entry.manager,
            )


def check_cross_binding(
    paths: Iterable[FieldPath],
    index: OwnershipIndex,
    *,
    ours: ManagerEquivalence,
    incoming_owner: str,
    document: object = None,
) -> None:
    """Refuse patches touching fields owned by another patch binding.

    ``index`` should be built from leaves so that a parent map's existence marker does
    not count as owning every key below it. When ``paths`` were taken from a literal
    ``document``, pass it so list positions can be matched against merge keys.
    """

    conflicts: list[ConflictRecord] = []
    seen: set[tuple[str, str]] = set()
    for path in paths:
        for key, owned in index.paths.items():
            overlapping = (
                path.overlaps(owned)
                if document is None
                else document_overlaps(document, path, owned)
            )
            if not overlapping:
                continue
            for manager in index.managers(key):
                if ours(manager) or not is_patch_manager(manager) or (key, manager) in seen:
                    continue
                seen.add((key, manager))
                conflicts.append(
                    ConflictRecord(
                        path=key,
                        current_owner=manager,
                        incoming_owner=incoming_owner,
                        kind=TransitionKind.CROSS_BINDING,
                    )
                )
    if not conflicts:
        return
    managers = sorted({record.current_owner for record in conflicts if record.current_owner})
    raise CrossBindingConflictError(
        f"Patch fields are already managed by another patch binding ({', '.join(managers)}):\n"
        f"{format_conflicts(conflicts)}\n"
        "Two patch bindings must not manage the same fields.",
        conflicts=conflicts,
    )


def diff_ownership(
    previous: Mapping[str, str],
    current: Mapping[str, str],
    *,
    ours: ManagerEquivalence,
    incoming_owner: str,
) -> list[ConflictRecord]:
    """Report every path whose ownership moved to or away from this binding."""

    records: list[ConflictRecord] = []
    for path in sorted(set(previous) | set(current)):
        before = previous.get(path)
        after = current.get(path)
        was_ours = ours(before)
        is_ours = ours(after)
        if is_ours and not was_ours:
            kind = TransitionKind.FIRST_OWNERSHIP if before is None else TransitionKind.TAKEOVER
            records.append(
                ConflictRecord(
                    path=path,
                    current_owner=before,
                    incoming_owner=incoming_owner,
                    kind=kind,
                )
            )
        elif was_ours and not is_ours and after is not None:
            records.append(
                ConflictRecord(
                    path=path,
                    current_owner=before,
                    incoming_owner=after,
                    kind=TransitionKind.RELEASED,
                )
            )
    return records
