"""Configuration loading and validation."""

from riotplan.config.loader import load_config
from riotplan.config.schema import DEFAULT_SERVER_URL, ClientConfig

__all__ = [
    "ClientConfig",
    "DEFAULT_SERVER_URL",
    "load_config",
]
