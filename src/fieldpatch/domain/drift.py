"""Drift detection between declared and live field values."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .conflicts import CONFLICT_DISPLAY_LIMIT
from .documents import canonical_string
from .ownership import build_ownership_index
from .paths import MISSING, resolve_path

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from .identity import ManagerEquivalence
    from .objects import StoreObject
    from .paths import FieldPath


@dataclass(slots=True, frozen=True, kw_only=True)
class DriftedField:
    path: str
    declared: str
    live: str | None
    managers: tuple[str, ...] = ()

    def describe(self) -> str:
        live = "<absent>" if self.live is None else repr(self.live)
        writers = ", ".join(self.managers) if self.managers else "an unknown writer"
        return f"{self.path}: declared {self.declared!r}, live {live} (changed by {writers})"


@dataclass(slots=True)
class DriftReport:
    fields: list[DriftedField] = field(default_factory=list)

    @property
    def detected(self) -> bool:
        return bool(self.fields)

    @property
    def interfering_managers(self) -> list[str]:
        return sorted({manager for drifted in self.fields for manager in drifted.managers})

    def summary(self, *, limit: int = CONFLICT_DISPLAY_LIMIT) -> str:
        lines = [f"  - {drifted.describe()}" for drifted in self.fields[:limit]]
        if len(self.fields) > limit:
            lines.append(f"  ... and {len(self.fields) - limit} more")
        return "\n".join(lines)


def detect_drift(
    *,
    declared: Mapping[str, str],
    paths: Iterable[FieldPath],
    live: StoreObject,
    ours: ManagerEquivalence,
) -> DriftReport:
    """Compare declared values against the live object, path by path.

    Values are compared, not ownership: a non-apply write can clobber a field while
    the store still lists this binding as its owner.
    """

    live_index = build_ownership_index(live.managed_fields, leaves_only=True)
    paths_by_key = {str(path): path for path in paths}
    report = DriftReport()
    for key, expected in sorted(declared.items()):
        path = paths_by_key.get(key)
        if path is None:
            continue
        value = resolve_path(live.body, path)
        actual = None if value is MISSING else canonical_string(value)
        if actual == expected:
            continue
        writers: list[str] = []
        for owned_key, owned in live_index.paths.items():
            if not owned.overlaps(path):
                continue
            writers.extend(
                manager
                for manager in live_index.managers(owned_key)
                if not ours(manager) and manager not in writers
            )
        report.fields.append(
            DriftedField(path=key, declared=expected, live=actual, managers=tuple(writers))
        )
    return report
