"""
Configuration loader — reads rootpatch.yml into the Settings model.

Reads YAML, validates against the Pydantic schema, and returns typed
settings.  A missing file is not an error: defaults describe the
standard host layout.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from rootpatch.core.config.settings import Settings

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "rootpatch.yml"


class ConfigError(Exception):
    """Raised when configuration is invalid or unreadable."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for rootpatch.yml starting from the given directory, walking up.

    Falls back to ``~/.rootpatch/rootpatch.yml`` when nothing is found
    on the way up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to rootpatch.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    home_candidate = Path.home() / ".rootpatch" / CONFIG_FILE
    if home_candidate.is_file():
        return home_candidate

    return None


def load_settings(path: Path | None = None, *, search: bool = True) -> Settings:
    """Load and validate settings.

    Args:
        path: Explicit path to rootpatch.yml.  When given, the file must exist.
        search: When ``path`` is None, search upward from cwd.

    Returns:
        Validated Settings model (defaults when no file was found).

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    if path is None:
        path = find_config_file() if search else None
        if path is None:
            logger.debug("No %s found — using defaults", CONFIG_FILE)
            return Settings()
    elif not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading settings from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return Settings()

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "rootpatch" key or be flat
    settings_data = data.get("rootpatch", data)

    try:
        settings = Settings.model_validate(settings_data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    logger.info("Loaded settings from %s (privilege=%s)", path, settings.privilege.mode)
    return settings
