from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from fieldpatch.domain.diagnostics import Diagnostics
from fieldpatch.domain.engine import ApplyResult, PlanResult, ReconcileResult, ReleaseResult
from fieldpatch.domain.errors import TargetNotFoundError
from fieldpatch.domain.patches import PatchKind
from fieldpatch.domain.projection import KnownProjection, UnknownProjection
from fieldpatch.domain.state import BindingState
from fieldpatch.ui import cli as cli_module
from tests.helpers.bindings import CONFIG_MAP

if TYPE_CHECKING:
    from pathlib import Path

    from fieldpatch.domain.state import PatchBinding

BINDING = """\
{binding_id}target:
  apiVersion: v1
  kind: ConfigMap
  name: settings
  namespace: apps
patch:
  data:
    a: "2"
"""


def _write(tmp_path: Path, binding_id: str | None = "b1") -> str:
    path = tmp_path / "binding.yaml"
    prefix = f"id: {binding_id}\n" if binding_id else ""
    path.write_text(BINDING.format(binding_id=prefix), encoding="utf-8")
    return str(path)


def _applied_state() -> BindingState:
    return BindingState(
        binding_id="b1",
        manager="fieldpatch-patch-b1",
        target=CONFIG_MAP,
        patch_kind=PatchKind.MERGE,
        content_digest="d",
        projection=KnownProjection(values={"data.a": "2"}),
    )


def test_plan_prints_projection(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    captured: list[PatchBinding] = []

    def fake_plan(binding: PatchBinding, **_: object) -> PlanResult:
        captured.append(binding)
        diagnostics = Diagnostics()
        diagnostics.warning("Field Ownership Takeover", "  - data.a")
        return PlanResult(
            projection=KnownProjection(values={"data.a": "2"}), diagnostics=diagnostics
        )

    monkeypatch.setattr(cli_module, "plan_patch", fake_plan)

    cli_module.main(["plan", _write(tmp_path)])

    output = capsys.readouterr().out
    assert "Projection: 1 owned field(s)" in output
    assert "  data.a = 2" in output
    assert "warning: Field Ownership Takeover" in output
    assert captured[0].identity.binding_id == "b1"


def test_apply_requires_id(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["apply", _write(tmp_path, binding_id=None)])

    assert excinfo.value.code == 2


def test_apply_passes_plan_to_apply(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    planned = KnownProjection(values={"data.a": "2"})
    seen: dict[str, object] = {}

    def fake_plan(binding: PatchBinding, **_: object) -> PlanResult:
        return PlanResult(projection=planned)

    def fake_apply(binding: PatchBinding, **kwargs: object) -> ApplyResult:
        seen.update(kwargs)
        return ApplyResult(projection=planned, state=_applied_state())

    monkeypatch.setattr(cli_module, "plan_patch", fake_plan)
    monkeypatch.setattr(cli_module, "apply_patch", fake_apply)

    cli_module.main(["apply", _write(tmp_path)])

    assert seen["planned"] is planned
    assert "Binding id: b1" in capsys.readouterr().out


def test_refresh_with_errors_exits_one(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    def fake_refresh(binding: PatchBinding, **_: object) -> ReconcileResult:
        diagnostics = Diagnostics()
        diagnostics.error("Drift correction failed", "admission webhook denied")
        return ReconcileResult(
            projection=KnownProjection(values={"data.a": "2"}),
            drift_detected=True,
            state=_applied_state(),
            diagnostics=diagnostics,
        )

    monkeypatch.setattr(cli_module, "refresh_patch", fake_refresh)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["refresh", _write(tmp_path)])

    assert excinfo.value.code == 1
    output = capsys.readouterr().out
    assert "Drift: detected" in output
    assert "error: Drift correction failed" in output


def test_release_lists_owners(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    def fake_release(binding: PatchBinding, **_: object) -> ReleaseResult:
        return ReleaseResult(released={"kubectl": ["data.a"]})

    monkeypatch.setattr(cli_module, "release_patch", fake_release)

    cli_module.main(["release", _write(tmp_path)])

    assert "  kubectl: 1 field(s)" in capsys.readouterr().out


def test_engine_errors_exit_one(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def fake_plan(binding: PatchBinding, **_: object) -> PlanResult:
        raise TargetNotFoundError("gone")

    monkeypatch.setattr(cli_module, "plan_patch", fake_plan)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["plan", _write(tmp_path)])

    assert excinfo.value.code == 1


def test_invalid_binding_file_exits_two(tmp_path: Path) -> None:
    path = tmp_path / "binding.yaml"
    path.write_text("target: {}\n", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["plan", str(path)])

    assert excinfo.value.code == 2


def test_unknown_projection_is_rendered() -> None:
    lines = cli_module._render_projection(UnknownProjection(reason="missing"))  # noqa: SLF001

    assert lines == ["Projection: unknown (missing)"]
