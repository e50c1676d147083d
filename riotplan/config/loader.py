"""Configuration loading with fail-fast behavior.

The client itself never looks for configuration on disk: callers either build
a ClientConfig directly or point load_config() at an explicit JSON file.
"""

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from riotplan.config.schema import ClientConfig
from riotplan.core.errors import ConfigError

logger = logging.getLogger(__name__)


def load_config(path: Path | None = None) -> ClientConfig:
    """Load client configuration.

    Args:
        path: Explicit JSON config file. If None, pydantic defaults are used.
            An empty file also yields the defaults.

    Raises:
        ConfigError: If the file is missing or unreadable, isn't a JSON
            object, or fails validation.
    """
    if path is None:
        logger.debug("No config file given, using defaults")
        return ClientConfig()

    try:
        content = path.read_text(encoding="utf-8-sig").strip()
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config {path}: {e}") from e

    try:
        data = json.loads(content) if content else {}
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Expected object in config {path}, got {type(data).__name__}")

    logger.debug("Config loaded from: %s", path)

    try:
        return ClientConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Config validation failed for {path}: {e}") from e
