"""Diagnostics returned to the calling tool alongside projections."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

log = getLogger(__name__)


class Severity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class Diagnostic:
    severity: Severity
    summary: str
    detail: str = ""

    def __str__(self) -> str:
        if not self.detail:
            return f"{self.severity}: {self.summary}"
        return f"{self.severity}: {self.summary}\n{self.detail}"


@dataclass(slots=True)
class Diagnostics:
    """Ordered diagnostics; every entry is also logged under the engine's logger."""

    items: list[Diagnostic] = field(default_factory=list)

    def info(self, summary: str, detail: str = "") -> None:
        self._add(Diagnostic(Severity.INFO, summary, detail))

    def warning(self, summary: str, detail: str = "") -> None:
        self._add(Diagnostic(Severity.WARNING, summary, detail))

    def error(self, summary: str, detail: str = "") -> None:
        self._add(Diagnostic(Severity.ERROR, summary, detail))

    def extend(self, diagnostics: Iterable[Diagnostic]) -> None:
        for diagnostic in diagnostics:
            self._add(diagnostic)

    def by_severity(self, severity: Severity) -> list[Diagnostic]:
        return [item for item in self.items if item.severity is severity]

    @property
    def has_errors(self) -> bool:
        return any(item.severity is Severity.ERROR for item in self.items)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def _add(self, diagnostic: Diagnostic) -> None:
        if diagnostic.severity is Severity.ERROR:
            log.error("%s %s", diagnostic.summary, diagnostic.detail)
        elif diagnostic.severity is Severity.WARNING:
            log.warning("%s %s", diagnostic.summary, diagnostic.detail)
        else:
            log.info("%s %s", diagnostic.summary, diagnostic.detail)
        self.items.append(diagnostic)
