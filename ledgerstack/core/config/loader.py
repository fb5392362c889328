"""
Settings loader — where stacks live and how long to wait for things.

Resolution order (later wins):
    defaults  <  <home>/settings.yml  <  LSTACK_* environment variables

The home directory itself comes from ``--home`` or ``LSTACK_HOME`` and
defaults to ``~/.ledgerstack``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.yml"
DEFAULT_HOME = Path("~/.ledgerstack")

# env var → settings field
_ENV_OVERRIDES = {
    "LSTACK_READINESS_RETRIES": "readiness_retries",
    "LSTACK_READINESS_PERIOD": "readiness_period",
    "LSTACK_HTTP_RETRIES": "http_retries",
    "LSTACK_HTTP_RETRY_PERIOD": "http_retry_period",
    "LSTACK_MANIFEST_URL": "manifest_url",
}


class ConfigError(Exception):
    """Raised when the settings file or environment is invalid."""


class Settings(BaseModel):
    """Process-wide settings."""

    home: Path = DEFAULT_HOME

    # Readiness prober: 120 × 1s ≈ 2 minutes
    readiness_retries: int = 120
    readiness_period: float = 1.0

    # HTTP control-surface retries
    http_retries: int = 30
    http_retry_period: float = 1.0
    registration_retries: int = 60
    unlock_retries: int = 10

    pull_retries: int = 2

    manifest_url: str = (
        "https://raw.githubusercontent.com/hyperledger/firefly/{release}/manifest.json"
    )
    releases_url: str = "https://api.github.com/repos/hyperledger/firefly/releases/latest"

    @property
    def stacks_dir(self) -> Path:
        return self.home / "stacks"

    @property
    def logs_dir(self) -> Path:
        return self.home / "logs"


def resolve_home(home: str | Path | None = None) -> Path:
    """Pick the home directory: explicit > LSTACK_HOME > default."""
    raw = home or os.environ.get("LSTACK_HOME") or DEFAULT_HOME
    return Path(raw).expanduser()


def load_settings(home: str | Path | None = None) -> Settings:
    """Load settings for the given (or resolved) home directory.

    Raises:
        ConfigError: If settings.yml or an override is invalid.
    """
    home_dir = resolve_home(home)
    data: dict = {}

    path = home_dir / SETTINGS_FILE
    if path.is_file():
        logger.debug("Loading settings from %s", path)
        try:
            loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Invalid settings file {path}: {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError(
                f"Expected a YAML mapping in {path}, got {type(loaded).__name__}"
            )
        data.update(loaded or {})

    for env_name, field in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            data[field] = value

    data["home"] = home_dir
    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e
