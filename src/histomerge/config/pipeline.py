"""Batch pipeline defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .env import int_from_env
from .errors import ConfigurationError, MissingConfigurationError

DEFAULT_MAX_WORKERS = 1


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    engine_config_path: Path | None = None
    max_workers: int = DEFAULT_MAX_WORKERS

    def require_engine_config_path(self) -> Path:
        if self.engine_config_path is None:
            raise MissingConfigurationError(
                "Missing engine configuration: pass --config or set HISTOMERGE_CONFIG"
            )
        return self.engine_config_path


def get_pipeline_config() -> PipelineConfig:
    raw_path = os.getenv("HISTOMERGE_CONFIG")
    max_workers = int_from_env("HISTOMERGE_MAX_WORKERS", DEFAULT_MAX_WORKERS)
    if max_workers < 1:
        raise ConfigurationError("HISTOMERGE_MAX_WORKERS must be at least 1")
    return PipelineConfig(
        engine_config_path=Path(raw_path).expanduser() if raw_path else None,
        max_workers=max_workers,
    )
