"""Patch engine.

Composes the ownership builder, conflict detector, merge simulator, projection flattener
and drift reconciler into the four operations a calling tool drives:

- ``compute_projection`` at plan time
- ``apply_and_update_projection`` at apply time
- ``reconcile`` at read time
- ``release`` when a binding is removed

Every call re-fetches the target; nothing about the live object survives between calls.
Configuration, target and store-rejection errors propagate, except in ``reconcile``:
there a target that may no longer be written and a failed drift correction become
error diagnostics and the stored state is kept. Ownership warnings are diagnostics too.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, cast

from .conflicts import (
    CONFLICT_DISPLAY_LIMIT,
    TransitionKind,
    check_cross_binding,
    check_self_management,
    diff_ownership,
    format_conflicts,
)
from .diagnostics import Diagnostics
from .drift import DriftReport, detect_drift
from .errors import (
    ObjectNotFoundError,
    PatchConfigurationError,
    ResourceTypeNotFoundError,
    StoreError,
    TargetError,
    TargetNotFoundError,
)
from .ownership import build_ownership_index
from .paths import MISSING, assign_path, resolve_path
from .projection import (
    KnownProjection,
    NotApplicableProjection,
    UnknownProjection,
    flatten_projection,
    project,
    projection_paths,
)
from .simulate import MergeSimulator, identity_skeleton
from .state import BindingState, ensure_same_target

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .conflicts import ConflictRecord
    from .identity import ManagerEquivalence
    from .objects import StoreObject
    from .patches import MergeDocument
    from .ports.store import ResourceStore
    from .projection import PlannedProjection
    from .state import PatchBinding

log = getLogger(__name__)


@dataclass(slots=True, kw_only=True)
class PlanResult:
    projection: PlannedProjection
    records: list[ConflictRecord] = field(default_factory=list)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


@dataclass(slots=True, kw_only=True)
class ApplyResult:
    projection: PlannedProjection
    state: BindingState
    records: list[ConflictRecord] = field(default_factory=list)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


@dataclass(slots=True, kw_only=True)
class ReconcileResult:
    """Outcome of a read-time cycle.

    ``state`` is ``None`` when the target no longer exists; otherwise it is the state to
    persist (unchanged when nothing could be verified or corrected).
    """

    projection: PlannedProjection
    drift_detected: bool
    state: BindingState | None
    drift: DriftReport = field(default_factory=DriftReport)
    corrected: bool = False
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


@dataclass(slots=True, kw_only=True)
class ReleaseResult:
    released: dict[str, list[str]] = field(default_factory=dict)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


def _now() -> datetime:
    return datetime.now(UTC)


def ownership_snapshot(obj: StoreObject, ours: ManagerEquivalence) -> dict[str, str]:
    """Resolved ``path -> manager`` map of ``obj``, preferring this binding on shared paths."""

    return build_ownership_index(obj.managed_fields).resolve(prefer=ours)


@dataclass(slots=True)
class PatchEngine:
    store: ResourceStore
    simulator: MergeSimulator = field(init=False)

    def __post_init__(self) -> None:
        self.simulator = MergeSimulator(self.store)

    def compute_projection(
        self,
        binding: PatchBinding,
        prior: BindingState | None = None,
    ) -> PlanResult:
        """Predict what applying ``binding`` would leave owned by it."""

        diagnostics = Diagnostics()
        ensure_same_target(prior, binding.target)
        self._discard_stale_warnings()
        self._report_patch_warnings(binding, diagnostics)
        log.info(
            "Planning %s for %s as %s", binding.patch.kind, binding.target, binding.manager
        )

        try:
            live = self.store.get(binding.target)
        except ObjectNotFoundError as exc:
            reason = f"{binding.target} does not exist yet ({exc})"
            diagnostics.info(
                "Patch target not found",
                f"{reason}; the projection will be computed at apply time.",
            )
            return PlanResult(projection=UnknownProjection(reason=reason), diagnostics=diagnostics)

        ours = binding.identity.equivalence()
        self._check_target(binding, live, ours)

        capabilities = binding.patch.capabilities()
        if not capabilities.supports_projection:
            diagnostics.info(
                f"{binding.patch.kind} cannot be projected",
                "The store produces no ownership prediction for this patch kind; "
                "the outcome is only known after apply.",
            )
            self._collect_store_warnings(diagnostics)
            return PlanResult(
                projection=NotApplicableProjection(kind=binding.patch.kind),
                diagnostics=diagnostics,
            )

        patch = cast("MergeDocument", binding.patch)
        result = self.simulator.predict(live, patch.document, manager=binding.manager)
        previous = prior.ownership if prior is not None else ownership_snapshot(live, ours)
        records = diff_ownership(
            previous,
            ownership_snapshot(result, ours),
            ours=ours,
            incoming_owner=binding.manager,
        )
        self._report_records(records, diagnostics)
        self._collect_store_warnings(diagnostics)

        projection = project(result, ours)
        log.info("Planned %d field(s) for %s", len(projection.values), binding.target)
        return PlanResult(projection=projection, records=records, diagnostics=diagnostics)

    def apply_and_update_projection(
        self,
        binding: PatchBinding,
        prior: BindingState | None = None,
        *,
        planned: PlannedProjection | None = None,
    ) -> ApplyResult:
        """Write the patch and return the state to persist for the binding."""

        binding_id = binding.identity.binding_id
        if binding_id is None:
            raise PatchConfigurationError(
                "Applying requires a binding id; the placeholder identity is for planning only"
            )
        diagnostics = Diagnostics()
        ensure_same_target(prior, binding.target)
        self._discard_stale_warnings()
        self._report_patch_warnings(binding, diagnostics)
        log.info("Applying %s to %s as %s", binding.patch.kind, binding.target, binding.manager)

        try:
            live = self.store.get(binding.target)
        except ObjectNotFoundError as exc:
            raise TargetNotFoundError(
                f"Patch target {binding.target} not found: {exc}. "
                "Patches modify existing objects; create the object first."
            ) from exc

        ours = binding.identity.equivalence()
        self._check_target(binding, live, ours)
        previous = prior.ownership if prior is not None else ownership_snapshot(live, ours)

        capabilities = binding.patch.capabilities()
        projection: PlannedProjection
        if capabilities.supports_projection:
            patch = cast("MergeDocument", binding.patch)
            result = self.simulator.enforce(live, patch.document, manager=binding.manager)
            known = project(result, ours)
            if isinstance(planned, KnownProjection):
                self._compare_with_plan(planned, known, diagnostics)
            projection = known
        else:
            result = self.store.patch(
                binding.target,
                body=binding.patch.wire_body(),
                content_type=capabilities.content_type,
                manager=binding.manager,
            )
            projection = NotApplicableProjection(kind=binding.patch.kind)
            diagnostics.info(
                "Patch applied without projection",
                f"{binding.patch.kind} carries no ownership prediction; every apply is "
                "treated as a potential change.",
            )

        ownership = ownership_snapshot(result, ours)
        records = diff_ownership(previous, ownership, ours=ours, incoming_owner=binding.manager)
        self._report_records(records, diagnostics)
        self._collect_store_warnings(diagnostics)

        state = BindingState(
            binding_id=binding_id,
            manager=binding.manager,
            target=binding.target,
            patch_kind=binding.patch.kind,
            content_digest=binding.patch.digest,
            projection=projection,
            ownership=ownership,
            previous_owners=self._previous_owners(live, result, ours, prior),
            updated_at=_now(),
        )
        log.info("Applied %s to %s (%d record(s))", binding.manager, binding.target, len(records))
        return ApplyResult(
            projection=projection,
            state=state,
            records=records,
            diagnostics=diagnostics,
        )

    def reconcile(self, binding: PatchBinding, state: BindingState) -> ReconcileResult:
        """Detect drift on owned fields and force-apply the patch again if any is found."""

        diagnostics = Diagnostics()
        ensure_same_target(state, binding.target)
        self._discard_stale_warnings()
        log.info("Reconciling %s on %s", binding.manager, binding.target)

        try:
            live = self.store.get(binding.target)
        except ResourceTypeNotFoundError as exc:
            diagnostics.error(
                "Drift check failed",
                f"The kind of {binding.target} cannot be resolved: {exc}. "
                "Keeping the stored projection.",
            )
            return ReconcileResult(
                projection=state.projection,
                drift_detected=False,
                state=state,
                diagnostics=diagnostics,
            )
        except ObjectNotFoundError:
            diagnostics.warning(
                "Patch target no longer exists",
                f"{binding.target} was deleted outside this tool; the binding is gone with it.",
            )
            return ReconcileResult(
                projection=state.projection,
                drift_detected=False,
                state=None,
                diagnostics=diagnostics,
            )

        ours = binding.identity.equivalence()
        refreshed = replace(state, ownership=ownership_snapshot(live, ours))

        if not binding.patch.capabilities().supports_projection:
            diagnostics.info(
                "Drift detection unavailable",
                f"{binding.patch.kind} carries no projection, so drift cannot be detected.",
            )
            return ReconcileResult(
                projection=state.projection,
                drift_detected=False,
                state=refreshed,
                diagnostics=diagnostics,
            )

        if binding.patch.digest != state.content_digest:
            diagnostics.info(
                "Patch content changed",
                "The patch differs from the last applied one; drift is checked after the next "
                "apply.",
            )
            return ReconcileResult(
                projection=state.projection,
                drift_detected=False,
                state=refreshed,
                diagnostics=diagnostics,
            )

        try:
            self._check_target(binding, live, ours)
        except TargetError as exc:
            diagnostics.error(
                "Drift check refused",
                f"{binding.target} can no longer be written by {binding.manager}: {exc}. "
                "Keeping the stored projection.",
            )
            self._collect_store_warnings(diagnostics)
            return ReconcileResult(
                projection=state.projection,
                drift_detected=False,
                state=state,
                diagnostics=diagnostics,
            )

        patch = cast("MergeDocument", binding.patch)
        try:
            declared_result = self.simulator.predict(live, patch.document, manager=binding.manager)
        except StoreError as exc:
            diagnostics.error(
                "Drift check failed",
                f"Could not simulate the patch against {binding.target}: {exc}. "
                "Keeping the stored projection.",
            )
            self._collect_store_warnings(diagnostics)
            return ReconcileResult(
                projection=state.projection,
                drift_detected=False,
                state=state,
                diagnostics=diagnostics,
            )

        paths = projection_paths(declared_result, ours)
        declared = flatten_projection(declared_result, paths)
        report = detect_drift(declared=declared, paths=paths, live=live, ours=ours)
        if not report.detected:
            self._collect_store_warnings(diagnostics)
            return ReconcileResult(
                projection=state.projection,
                drift_detected=False,
                state=refreshed,
                drift=report,
                diagnostics=diagnostics,
            )

        writers = ", ".join(report.interfering_managers) or "an unknown writer"
        diagnostics.warning(
            "Drift detected",
            f"{len(report.fields)} field(s) managed by {binding.manager} on {binding.target} "
            f"were changed by {writers}:\n{report.summary()}",
        )
        try:
            result = self.simulator.enforce(live, patch.document, manager=binding.manager)
        except StoreError as exc:
            diagnostics.error(
                "Drift correction failed",
                f"Could not restore {binding.target}: {exc}. "
                "The stored projection is kept until the next successful cycle.",
            )
            self._collect_store_warnings(diagnostics)
            return ReconcileResult(
                projection=state.projection,
                drift_detected=True,
                state=state,
                drift=report,
                diagnostics=diagnostics,
            )

        projection = project(result, ours)
        diagnostics.info(
            "Drift corrected",
            f"Restored {len(report.fields)} field(s) on {binding.target}.",
        )
        self._collect_store_warnings(diagnostics)
        corrected_state = replace(
            state,
            projection=projection,
            ownership=ownership_snapshot(result, ours),
            updated_at=_now(),
        )
        return ReconcileResult(
            projection=projection,
            drift_detected=True,
            state=corrected_state,
            drift=report,
            corrected=True,
            diagnostics=diagnostics,
        )

    def release(self, binding: PatchBinding, state: BindingState) -> ReleaseResult:
        """Hand fields back to the managers that owned them before this binding."""

        diagnostics = Diagnostics()
        ensure_same_target(state, binding.target)
        self._discard_stale_warnings()
        result = ReleaseResult(diagnostics=diagnostics)
        if not state.previous_owners:
            diagnostics.warning(
                "No previous owners recorded",
                f"Fields on {binding.target} stay owned by {binding.manager}; "
                "nothing is handed back.",
            )
            return result

        paths_by_owner: dict[str, list[str]] = {}
        for path, owner in state.previous_owners.items():
            paths_by_owner.setdefault(owner, []).append(path)

        ours = binding.identity.equivalence()
        for owner, paths in sorted(paths_by_owner.items()):
            try:
                live = self.store.get(binding.target)
            except ResourceTypeNotFoundError as exc:
                diagnostics.warning("Ownership transfer failed", f"Could not resolve target: {exc}")
                return result
            except ObjectNotFoundError:
                diagnostics.info(
                    "Patch target no longer exists",
                    f"{binding.target} is gone; there is no ownership to hand back.",
                )
                return result
            except StoreError as exc:
                diagnostics.warning("Ownership transfer failed", f"Could not read target: {exc}")
                return result

            owned = build_ownership_index(live.managed_fields, leaves_only=True)
            still_ours = {str(path): path for path in owned.paths_owned_by(ours)}
            partial = identity_skeleton(live)
            transferred: list[str] = []
            for key in sorted(paths):
                path = still_ours.get(key)
                if path is None:
                    continue
                value = resolve_path(live.body, path)
                if value is MISSING:
                    continue
                assign_path(partial, path, value)
                transferred.append(key)
            if not transferred:
                log.debug("No fields left to hand back to %s", owner)
                continue

            try:
                self.store.apply(partial, manager=owner, force=True)
            except StoreError as exc:
                diagnostics.warning(
                    "Ownership transfer failed",
                    f"Could not hand {len(transferred)} field(s) back to {owner}: {exc}",
                )
                continue
            result.released[owner] = transferred
            diagnostics.info(
                "Ownership handed back",
                f"{len(transferred)} field(s) on {binding.target} returned to {owner}.",
            )

        self._collect_store_warnings(diagnostics)
        return result

    def _check_target(
        self,
        binding: PatchBinding,
        live: StoreObject,
        ours: ManagerEquivalence,
    ) -> None:
        check_self_management(live)
        source = binding.patch.source_document()
        check_cross_binding(
            binding.patch.touched_paths(live.body),
            build_ownership_index(live.managed_fields, leaves_only=True),
            ours=ours,
            incoming_owner=binding.manager,
            document=source if source is not None else live.body,
        )

    @staticmethod
    def _previous_owners(
        live: StoreObject,
        result: StoreObject,
        ours: ManagerEquivalence,
        prior: BindingState | None,
    ) -> dict[str, str]:
        # The earliest known owner wins; later cycles only see this binding.
        owners = dict(prior.previous_owners) if prior is not None else {}
        before = build_ownership_index(live.managed_fields, leaves_only=True)
        after = build_ownership_index(result.managed_fields, leaves_only=True)
        for path in after.paths_owned_by(ours):
            key = str(path)
            if key in owners:
                continue
            external = [manager for manager in before.managers(key) if not ours(manager)]
            if external:
                owners[key] = external[0]
        return owners

    @staticmethod
    def _compare_with_plan(
        planned: KnownProjection,
        applied: KnownProjection,
        diagnostics: Diagnostics,
    ) -> None:
        differing = planned.differing_paths(applied)
        if not differing:
            return
        lines = [f"  - {path}" for path in differing[:CONFLICT_DISPLAY_LIMIT]]
        if len(differing) > CONFLICT_DISPLAY_LIMIT:
            lines.append(f"  ... and {len(differing) - CONFLICT_DISPLAY_LIMIT} more")
        diagnostics.warning(
            "Applied result differs from plan",
            "The object changed between plan and apply; affected fields:\n" + "\n".join(lines),
        )

    @staticmethod
    def _report_patch_warnings(binding: PatchBinding, diagnostics: Diagnostics) -> None:
        for warning in binding.patch.warnings:
            diagnostics.warning("Patch targets a server-managed field", warning)

    @staticmethod
    def _report_records(records: Sequence[ConflictRecord], diagnostics: Diagnostics) -> None:
        takeovers = [record for record in records if record.kind is TransitionKind.TAKEOVER]
        released = [record for record in records if record.kind is TransitionKind.RELEASED]
        acquired = [record for record in records if record.kind is TransitionKind.FIRST_OWNERSHIP]
        if takeovers:
            diagnostics.warning(
                "Field Ownership Takeover",
                f"{len(takeovers)} field(s) will be taken over from other managers:\n"
                f"{format_conflicts(takeovers)}",
            )
        if released:
            diagnostics.warning(
                "Field Ownership Lost",
                f"{len(released)} field(s) are now owned by other managers:\n"
                f"{format_conflicts(released)}",
            )
        if acquired:
            diagnostics.info(
                "Field ownership acquired",
                f"{len(acquired)} previously unowned field(s):\n{format_conflicts(acquired)}",
            )

    def _discard_stale_warnings(self) -> None:
        stale = self.store.drain_warnings()
        if stale:
            log.debug("Discarding %d store warning(s) from an earlier cycle", len(stale))

    def _collect_store_warnings(self, diagnostics: Diagnostics) -> None:
        for warning in self.store.drain_warnings():
            diagnostics.warning("Store warning", warning)
