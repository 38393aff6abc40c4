"""SQLAlchemy repository for patch binding state."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, cast

from sqlalchemy import delete, insert, select, update

from fieldpatch.domain.objects import TargetRef
from fieldpatch.domain.patches import PatchKind
from fieldpatch.domain.ports.persistence import BindingStateRepository
from fieldpatch.domain.projection import (
    KnownProjection,
    NotApplicableProjection,
    ProjectionStatus,
    UnknownProjection,
)
from fieldpatch.domain.state import BindingState

from .mappings import patch_binding_state_table

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from sqlalchemy.orm import Session

    from fieldpatch.domain.projection import PlannedProjection

log = getLogger(__name__)

_table = patch_binding_state_table


class SqlAlchemyBindingStateRepository(BindingStateRepository):
    """Persist one row of state per patch binding."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, binding_id: str) -> BindingState | None:
        stmt = select(_table).where(_table.c.binding_id == binding_id)
        row = self.session.execute(stmt).mappings().one_or_none()
        if row is None:
            return None
        return _state_from_row(row)

    def save(self, state: BindingState) -> None:
        values = _row_from_state(state)
        exists_stmt = select(_table.c.binding_id).where(_table.c.binding_id == state.binding_id)
        if self.session.execute(exists_stmt).scalar_one_or_none() is None:
            self.session.execute(insert(_table).values(**values))
            log.debug("Inserted state for %s", state.binding_id)
            return
        self.session.execute(
            update(_table).where(_table.c.binding_id == state.binding_id).values(**values)
        )
        log.debug("Updated state for %s", state.binding_id)

    def delete(self, binding_id: str) -> bool:
        result = self.session.execute(delete(_table).where(_table.c.binding_id == binding_id))
        return bool(getattr(result, "rowcount", 0))

    def list_ids(self) -> list[str]:
        stmt = select(_table.c.binding_id).order_by(_table.c.binding_id)
        return list(self.session.execute(stmt).scalars())


def _projection_payload(projection: PlannedProjection) -> dict[str, object]:
    if isinstance(projection, KnownProjection):
        return {"values": dict(projection.values)}
    if isinstance(projection, UnknownProjection):
        return {"reason": projection.reason}
    return {"kind": projection.kind.value}


def _projection_from_payload(status: str, payload: Mapping[str, object]) -> PlannedProjection:
    projection_status = ProjectionStatus(status)
    if projection_status is ProjectionStatus.KNOWN:
        values = cast("Mapping[str, object]", payload.get("values") or {})
        return KnownProjection(values={str(key): str(value) for key, value in values.items()})
    if projection_status is ProjectionStatus.UNKNOWN:
        return UnknownProjection(reason=str(payload.get("reason") or ""))
    return NotApplicableProjection(kind=PatchKind(str(payload.get("kind"))))


def _row_from_state(state: BindingState) -> dict[str, object]:
    return {
        "binding_id": state.binding_id,
        "manager": state.manager,
        "api_version": state.target.api_version,
        "kind": state.target.kind,
        "name": state.target.name,
        "namespace": state.target.namespace,
        "patch_kind": state.patch_kind.value,
        "content_digest": state.content_digest,
        "projection_status": state.projection.status.value,
        "projection": _projection_payload(state.projection),
        "ownership": dict(state.ownership),
        "previous_owners": dict(state.previous_owners),
        "updated_at": state.updated_at,
    }


def _state_from_row(row: Mapping[str, object]) -> BindingState:
    namespace = row["namespace"]
    return BindingState(
        binding_id=str(row["binding_id"]),
        manager=str(row["manager"]),
        target=TargetRef(
            api_version=str(row["api_version"]),
            kind=str(row["kind"]),
            name=str(row["name"]),
            namespace=str(namespace) if namespace else None,
        ),
        patch_kind=PatchKind(str(row["patch_kind"])),
        content_digest=str(row["content_digest"]),
        projection=_projection_from_payload(
            str(row["projection_status"]),
            cast("Mapping[str, object]", row["projection"] or {}),
        ),
        ownership=_string_map(row["ownership"]),
        previous_owners=_string_map(row["previous_owners"]),
        updated_at=cast("datetime | None", row["updated_at"]),
    )


def _string_map(value: object) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    mapping = cast("dict[object, object]", value)
    return {str(key): str(item) for key, item in mapping.items()}
