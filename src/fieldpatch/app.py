"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import contextmanager
from dataclasses import replace
from logging import getLogger
from typing import TYPE_CHECKING

from fieldpatch.adapters.kubernetes import KubernetesResourceStore
from fieldpatch.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyPatchStateUnitOfWork,
    is_started,
    startup,
)
from fieldpatch.config import get_kubernetes_config
from fieldpatch.domain.engine import PatchEngine
from fieldpatch.domain.errors import PatchConfigurationError
from fieldpatch.domain.identity import ManagerIdentity, new_binding_id
from fieldpatch.domain.ports.unit_of_work import PatchStateUnitOfWork

if TYPE_CHECKING:
    from collections.abc import Iterator

    from fieldpatch.domain.engine import ApplyResult, PlanResult, ReconcileResult, ReleaseResult
    from fieldpatch.domain.ports.store import ResourceStore
    from fieldpatch.domain.projection import PlannedProjection
    from fieldpatch.domain.state import BindingState, PatchBinding

UnitOfWorkFactory = Callable[[], PatchStateUnitOfWork]

log = getLogger(__name__)


def build_kubernetes_store() -> KubernetesResourceStore:
    return KubernetesResourceStore(config=get_kubernetes_config())


@contextmanager
def _store_scope(store: ResourceStore | None) -> Iterator[ResourceStore]:
    if store is not None:
        yield store
        return
    with build_kubernetes_store() as owned:
        yield owned


def _unit_of_work_factory(factory: UnitOfWorkFactory | None) -> UnitOfWorkFactory:
    if factory is not None:
        return factory
    if not is_started():
        startup()
    return SqlAlchemyPatchStateUnitOfWork


def _load_state(factory: UnitOfWorkFactory, binding: PatchBinding) -> BindingState | None:
    binding_id = binding.identity.binding_id
    if binding_id is None:
        return None
    with factory() as uow:
        return uow.repositories.states.get(binding_id)


def _require_state(factory: UnitOfWorkFactory, binding: PatchBinding) -> BindingState:
    state = _load_state(factory, binding)
    if state is None:
        raise PatchConfigurationError(
            f"No recorded state for binding {binding.identity.binding_id or '<unset>'}; "
            "apply the patch first"
        )
    return state


def plan_patch(
    binding: PatchBinding,
    *,
    store: ResourceStore | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> PlanResult:
    """Predict the outcome of applying ``binding`` without writing anything."""

    factory = _unit_of_work_factory(unit_of_work_factory)
    prior = _load_state(factory, binding)
    if prior is None:
        # Not created yet: plan under the placeholder identity apply will be equivalent to.
        binding = replace(binding, identity=ManagerIdentity(prefix=binding.identity.prefix))
    with _store_scope(store) as resolved:
        result = PatchEngine(resolved).compute_projection(binding, prior)
    log.info("Plan for %s finished with %d diagnostic(s)", binding.target, len(result.diagnostics))
    return result


def apply_patch(
    binding: PatchBinding,
    *,
    store: ResourceStore | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    planned: PlannedProjection | None = None,
) -> ApplyResult:
    """Apply ``binding`` and persist its new state once the write succeeded."""

    factory = _unit_of_work_factory(unit_of_work_factory)
    if binding.identity.is_placeholder:
        binding = replace(
            binding,
            identity=ManagerIdentity(binding_id=new_binding_id(), prefix=binding.identity.prefix),
        )
        log.info("Assigned binding id %s", binding.identity.binding_id)
    prior = _load_state(factory, binding)

    with _store_scope(store) as resolved:
        engine = PatchEngine(resolved)
        result = engine.apply_and_update_projection(binding, prior, planned=planned)
    with factory() as uow:
        uow.repositories.states.save(result.state)
        uow.commit()
    log.info("Stored state for %s (%s)", result.state.binding_id, result.projection.status)
    return result


def refresh_patch(
    binding: PatchBinding,
    *,
    store: ResourceStore | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> ReconcileResult:
    """Run a read-time cycle: detect drift, correct it, and store what was verified."""

    factory = _unit_of_work_factory(unit_of_work_factory)
    state = _require_state(factory, binding)
    with _store_scope(store) as resolved:
        result = PatchEngine(resolved).reconcile(binding, state)
    with factory() as uow:
        if result.state is None:
            uow.repositories.states.delete(state.binding_id)
            log.info("Removed state for %s: target is gone", state.binding_id)
        else:
            uow.repositories.states.save(result.state)
        uow.commit()
    return result


def release_patch(
    binding: PatchBinding,
    *,
    store: ResourceStore | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> ReleaseResult:
    """Hand fields back to their previous owners and forget the binding."""

    factory = _unit_of_work_factory(unit_of_work_factory)
    state = _require_state(factory, binding)
    with _store_scope(store) as resolved:
        result = PatchEngine(resolved).release(binding, state)
    with factory() as uow:
        uow.repositories.states.delete(state.binding_id)
        uow.commit()
    log.info(
        "Released %s: %d owner(s) received fields back", state.binding_id, len(result.released)
    )
    return result
