"""Logging setup for command-line entry points."""

from __future__ import annotations

import logging


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Initialise the root logger once.

    Defaults to INFO and a terse format for CLI output. Pass ``force=True`` to
    reconfigure from tests or when ``--verbose`` raises the level after startup.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    # httpx logs every request at INFO; keep it for --verbose only.
    httpx_level = logging.NOTSET if level <= logging.DEBUG else logging.WARNING
    logging.getLogger("httpx").setLevel(httpx_level)
