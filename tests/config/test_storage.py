from __future__ import annotations

from pathlib import Path  # noqa: TC003

import pytest

from fieldpatch.config import ConfigurationError, get_database_config, state_dir
from fieldpatch.config.storage import STATE_DB_FILENAME


@pytest.fixture(autouse=True)
def clean_storage_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("DATABASE_URI", "FIELDPATCH_DATA_DIR", "XDG_DATA_HOME"):
        monkeypatch.delenv(name, raising=False)


def test_state_dir_prefers_explicit_data_dir(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    custom = tmp_path / "custom-data"
    monkeypatch.setenv("FIELDPATCH_DATA_DIR", str(custom))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg"))

    assert state_dir() == custom.resolve()


def test_state_dir_follows_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))

    assert state_dir() == (tmp_path / "fieldpatch").resolve()


def test_database_uri_override_skips_state_file(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("DATABASE_URI", "sqlite:///override.db")
    monkeypatch.setenv("FIELDPATCH_DATA_DIR", str(tmp_path / "unused"))

    config = get_database_config()

    assert config.uri == "sqlite:///override.db"
    assert config.state_file is None
    assert not (tmp_path / "unused").exists()


def test_state_file_lives_in_created_state_dir(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("FIELDPATCH_DATA_DIR", str(tmp_path / "state"))

    config = get_database_config()

    expected = (tmp_path / "state" / STATE_DB_FILENAME).resolve()
    assert config.state_file == expected
    assert config.uri == f"sqlite+pysqlite:///{expected}"
    assert expected.parent.is_dir()


def test_state_dir_is_not_created_on_request(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("FIELDPATCH_DATA_DIR", str(tmp_path / "state"))

    get_database_config(create=False)

    assert not (tmp_path / "state").exists()


def test_state_dir_that_is_a_file_is_rejected(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    blocker = tmp_path / "state"
    blocker.write_text("not a directory", encoding="utf-8")
    monkeypatch.setenv("FIELDPATCH_DATA_DIR", str(blocker))

    with pytest.raises(ConfigurationError, match="is not a directory") as excinfo:
        get_database_config()

    assert excinfo.value.variable == "FIELDPATCH_DATA_DIR"
