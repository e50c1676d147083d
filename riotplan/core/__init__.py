"""Core types shared across riotplan packages."""

from riotplan.core.errors import ConfigError, RiotPlanError

__all__ = [
    "ConfigError",
    "RiotPlanError",
]
