"""Location of the binding-state database.

``DATABASE_URI`` wins when set. Otherwise state lives in a sqlite file under
``FIELDPATCH_DATA_DIR``, falling back to ``$XDG_DATA_HOME/fieldpatch``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import optional_env_var
from .errors import ConfigurationError

STATE_DIR_NAME: Final[str] = "fieldpatch"
STATE_DB_FILENAME: Final[str] = "fieldpatch.db"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str
    state_file: Path | None = None


def state_dir() -> Path:
    configured = optional_env_var("FIELDPATCH_DATA_DIR")
    if configured is not None:
        return Path(configured).expanduser().resolve()
    base = optional_env_var("XDG_DATA_HOME")
    base_path = Path(base) if base else Path.home() / ".local" / "share"
    return (base_path / STATE_DIR_NAME).expanduser().resolve()


def get_database_config(*, create: bool = True) -> DatabaseConfig:
    uri = optional_env_var("DATABASE_URI")
    if uri is not None:
        return DatabaseConfig(uri=uri)

    directory = state_dir()
    if directory.exists() and not directory.is_dir():
        raise ConfigurationError(
            f"State directory {directory} is not a directory", variable="FIELDPATCH_DATA_DIR"
        )
    if create:
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigurationError(
                f"Cannot create state directory {directory}: {exc}",
                variable="FIELDPATCH_DATA_DIR",
            ) from exc
    state_file = directory / STATE_DB_FILENAME
    return DatabaseConfig(uri=f"sqlite+pysqlite:///{state_file}", state_file=state_file)
