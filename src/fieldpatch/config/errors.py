"""Errors raised while reading settings from the environment."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class ConfigurationError(RuntimeError):
    """A setting is present but unusable; ``variable`` names where it came from."""

    def __init__(self, message: str, *, variable: str | None = None) -> None:
        super().__init__(message)
        self.variable = variable


class MissingConfigurationError(ConfigurationError):
    """Required settings are absent or blank.

    With ``any_of`` one of ``variables`` is enough, e.g. a token or a token file.
    """

    def __init__(self, variables: Sequence[str], *, any_of: bool = False) -> None:
        joiner = " or " if any_of else ", "
        super().__init__(f"Missing configuration for: {joiner.join(variables)}")
        self.variables = tuple(variables)
        self.any_of = any_of
