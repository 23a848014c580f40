"""Application configuration helpers."""

from __future__ import annotations

from .env import int_from_env
from .errors import ConfigurationError, MissingConfigurationError
from .logging import configure_logging
from .pipeline import DEFAULT_MAX_WORKERS, PipelineConfig, get_pipeline_config
from .storage import DatabaseConfig, get_database_config

__all__ = [
    "DEFAULT_MAX_WORKERS",
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "PipelineConfig",
    "configure_logging",
    "get_database_config",
    "get_pipeline_config",
    "int_from_env",
]
