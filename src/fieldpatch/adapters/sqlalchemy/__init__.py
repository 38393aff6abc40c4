"""SQLAlchemy adapter package for fieldpatch."""

from __future__ import annotations

from .mappings import metadata, patch_binding_state_table
from .repositories import SqlAlchemyBindingStateRepository
from .unit_of_work import SqlAlchemyPatchStateUnitOfWork, shutdown, startup

__all__ = [
    "SqlAlchemyBindingStateRepository",
    "SqlAlchemyPatchStateUnitOfWork",
    "metadata",
    "patch_binding_state_table",
    "shutdown",
    "startup",
]
