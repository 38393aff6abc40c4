"""Domain port definitions for adapters."""

from __future__ import annotations

from .persistence import BindingStateRepository
from .store import ResourceStore
from .unit_of_work import (
    PatchStateRepositories,
    PatchStateUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
)

__all__ = [
    "BindingStateRepository",
    "PatchStateRepositories",
    "PatchStateUnitOfWork",
    "RepositoryCollection",
    "ResourceStore",
    "UnitOfWork",
]
