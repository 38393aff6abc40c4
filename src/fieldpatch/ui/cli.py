# ruff: noqa: T201

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from fieldpatch.app import apply_patch, plan_patch, refresh_patch, release_patch
from fieldpatch.config import ConfigurationError, configure_logging
from fieldpatch.domain.errors import PatchConfigurationError
from fieldpatch.domain.identity import new_binding_id
from fieldpatch.domain.projection import KnownProjection, NotApplicableProjection
from fieldpatch.ui.binding_file import load_binding

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from fieldpatch.domain.diagnostics import Diagnostics
    from fieldpatch.domain.projection import PlannedProjection
    from fieldpatch.domain.state import PatchBinding

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="fieldpatch",
        description="Plan, apply and reconcile field patches on Kubernetes objects",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    commands = {
        "plan": "Predict the fields the patch will own, without writing",
        "apply": "Apply the patch and record its state",
        "refresh": "Detect and correct drift on fields the patch owns",
        "release": "Hand fields back to their previous owners and forget the binding",
    }
    for name, help_text in commands.items():
        command = subparsers.add_parser(name, help=help_text)
        command.add_argument("binding_file", type=Path, help="YAML binding file")

    return parser.parse_args(list(argv))


def _render_projection(projection: PlannedProjection) -> list[str]:
    if isinstance(projection, KnownProjection):
        lines = [f"Projection: {len(projection.values)} owned field(s)"]
        lines.extend(f"  {path} = {value}" for path, value in sorted(projection.values.items()))
        return lines
    if isinstance(projection, NotApplicableProjection):
        return [f"Projection: not applicable for {projection.kind}"]
    return [f"Projection: unknown ({projection.reason})"]


def _render_diagnostics(diagnostics: Diagnostics) -> list[str]:
    return [str(diagnostic) for diagnostic in diagnostics]


def _emit(lines: Sequence[str]) -> None:
    for line in lines:
        print(line)


def _run_command(command: str, binding: PatchBinding) -> bool:
    """Run one cycle and print its outcome; return whether it finished without errors."""

    if command == "plan":
        plan = plan_patch(binding)
        _emit(
            [
                f"Plan for {binding.target}",
                *_render_projection(plan.projection),
                *_render_diagnostics(plan.diagnostics),
            ]
        )
        return not plan.diagnostics.has_errors

    if command == "apply":
        if binding.identity.binding_id is None:
            raise PatchConfigurationError(
                f"Binding file has no id; add `id: {new_binding_id()}` (any stable value) "
                "so later runs write under the same field manager"
            )
        plan = plan_patch(binding)
        applied = apply_patch(binding, planned=plan.projection)
        _emit(
            [
                f"Applied {applied.state.manager} to {binding.target}",
                f"Binding id: {applied.state.binding_id}",
                *_render_projection(applied.projection),
                *_render_diagnostics(plan.diagnostics),
                *_render_diagnostics(applied.diagnostics),
            ]
        )
        return not applied.diagnostics.has_errors

    if command == "refresh":
        refreshed = refresh_patch(binding)
        status = "corrected" if refreshed.corrected else "detected"
        _emit(
            [
                f"Refreshed {binding.target}",
                f"Drift: {status if refreshed.drift_detected else 'none'}",
                *_render_projection(refreshed.projection),
                *_render_diagnostics(refreshed.diagnostics),
            ]
        )
        return not refreshed.diagnostics.has_errors

    if command == "release":
        released = release_patch(binding)
        lines = [f"Released binding on {binding.target}"]
        for owner, paths in sorted(released.released.items()):
            lines.append(f"  {owner}: {len(paths)} field(s)")
        _emit([*lines, *_render_diagnostics(released.diagnostics)])
        return not released.diagnostics.has_errors

    raise ValueError(f"Unsupported command: {command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        binding = load_binding(parsed_args.binding_file)
    except PatchConfigurationError:
        log.exception("Invalid binding file")
        sys.exit(2)

    try:
        succeeded = _run_command(parsed_args.command, binding)
    except (PatchConfigurationError, ConfigurationError):
        log.exception("Invalid configuration for %s", parsed_args.command)
        sys.exit(2)
    except Exception:
        log.exception("Fatal error during %s", parsed_args.command)
        sys.exit(1)
    if not succeeded:
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(130)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
