from __future__ import annotations

from pathlib import Path

import pytest

from histomerge.config import (
    DEFAULT_MAX_WORKERS,
    ConfigurationError,
    MissingConfigurationError,
    get_pipeline_config,
    int_from_env,
)


def test_int_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SOME_NUMBER", raising=False)
    assert int_from_env("SOME_NUMBER", 7) == 7

    monkeypatch.setenv("SOME_NUMBER", "12")
    assert int_from_env("SOME_NUMBER", 7) == 12

    monkeypatch.setenv("SOME_NUMBER", "twelve")
    with pytest.raises(ConfigurationError, match="SOME_NUMBER must be an integer"):
        int_from_env("SOME_NUMBER", 7)


def test_pipeline_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("HISTOMERGE_CONFIG", raising=False)
    monkeypatch.delenv("HISTOMERGE_MAX_WORKERS", raising=False)

    config = get_pipeline_config()

    assert config.engine_config_path is None
    assert config.max_workers == DEFAULT_MAX_WORKERS
    with pytest.raises(MissingConfigurationError, match="HISTOMERGE_CONFIG"):
        config.require_engine_config_path()


def test_pipeline_config_reads_environment(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("HISTOMERGE_CONFIG", str(tmp_path / "engine.toml"))
    monkeypatch.setenv("HISTOMERGE_MAX_WORKERS", "4")

    config = get_pipeline_config()

    assert config.require_engine_config_path() == tmp_path / "engine.toml"
    assert config.max_workers == 4


def test_pipeline_config_rejects_non_positive_workers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HISTOMERGE_MAX_WORKERS", "0")

    with pytest.raises(ConfigurationError, match="at least 1"):
        get_pipeline_config()
