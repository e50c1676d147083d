"""Typed exception hierarchy for riotplan."""

from __future__ import annotations


class RiotPlanError(Exception):
    """Base class for all riotplan errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigError(RiotPlanError):
    """Raised for configuration issues (missing file, invalid JSON, validation failure)."""
