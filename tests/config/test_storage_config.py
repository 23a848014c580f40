from __future__ import annotations

from pathlib import Path  # noqa: TC003

import pytest

from histomerge.config import storage


def test_data_dir_prefers_explicit_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    custom = tmp_path / "custom-data"
    monkeypatch.setenv("HISTOMERGE_DATA_DIR", str(custom))

    assert storage.data_dir() == custom.resolve()


def test_data_dir_falls_back_to_xdg_data_home(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.delenv("HISTOMERGE_DATA_DIR", raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))

    assert storage.data_dir() == (tmp_path / storage.APP_DIR_NAME).resolve()


def test_database_config_uses_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URI", "sqlite:///override.db")

    config = storage.get_database_config()

    assert config.uri == "sqlite:///override.db"


def test_database_config_creates_data_dir(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.delenv("DATABASE_URI", raising=False)
    monkeypatch.setenv("HISTOMERGE_DATA_DIR", str(tmp_path / "data-dir"))

    config = storage.get_database_config()

    expected_path = (tmp_path / "data-dir" / storage.DEFAULT_DB_FILENAME).resolve()
    assert config.uri == f"sqlite+pysqlite:///{expected_path}"
    assert expected_path.parent.exists()
