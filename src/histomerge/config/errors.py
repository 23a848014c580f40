"""Errors raised while reading histomerge settings."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """A config file, input file or environment value cannot be used."""


class MissingConfigurationError(ConfigurationError):
    """A setting the requested command depends on was not given."""
