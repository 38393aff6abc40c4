"""Projection flattener.

A projection is the planned outcome of a binding: ``path -> string value`` for every
leaf this binding's manager owns on the (simulated or real) result object. Plan and
apply compare projections as plain dicts, so ordering never matters.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING, Literal

from .documents import canonical_string
from .ownership import build_ownership_index
from .paths import MISSING, resolve_path

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .identity import ManagerEquivalence
    from .objects import StoreObject
    from .patches import PatchKind
    from .paths import FieldPath

log = getLogger(__name__)


class ProjectionStatus(StrEnum):
    KNOWN = "known"
    UNKNOWN = "unknown"
    NOT_APPLICABLE = "not_applicable"


@dataclass(slots=True, frozen=True, kw_only=True)
class KnownProjection:
    values: dict[str, str] = field(default_factory=dict)
    status: Literal[ProjectionStatus.KNOWN] = ProjectionStatus.KNOWN

    def differing_paths(self, other: KnownProjection) -> list[str]:
        return sorted(
            path
            for path in set(self.values) | set(other.values)
            if self.values.get(path) != other.values.get(path)
        )


@dataclass(slots=True, frozen=True, kw_only=True)
class UnknownProjection:
    """Outcome cannot be predicted yet (e.g. the target does not exist at plan time)."""

    reason: str
    status: Literal[ProjectionStatus.UNKNOWN] = ProjectionStatus.UNKNOWN


@dataclass(slots=True, frozen=True, kw_only=True)
class NotApplicableProjection:
    """Patch kind produces no ownership metadata, so idempotence cannot be proven."""

    kind: PatchKind
    status: Literal[ProjectionStatus.NOT_APPLICABLE] = ProjectionStatus.NOT_APPLICABLE


type PlannedProjection = KnownProjection | UnknownProjection | NotApplicableProjection


def projection_paths(result: StoreObject, ours: ManagerEquivalence) -> list[FieldPath]:
    """Leaf paths owned by this binding on ``result``, noise filtered."""

    own_entries = (entry for entry in result.managed_fields if ours(entry.manager))
    index = build_ownership_index(own_entries, leaves_only=True)
    return list(index.paths.values())


def flatten_projection(result: StoreObject, paths: Iterable[FieldPath]) -> dict[str, str]:
    values: dict[str, str] = {}
    for path in paths:
        value = resolve_path(result.body, path)
        if value is MISSING:
            log.debug("Owned path %s has no value on %s/%s", path, result.kind, result.name)
            continue
        values[str(path)] = canonical_string(value)
    return values


def project(result: StoreObject, ours: ManagerEquivalence) -> KnownProjection:
    return KnownProjection(values=flatten_projection(result, projection_paths(result, ours)))
