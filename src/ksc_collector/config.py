"""Collector settings: YAML file, then environment, then CLI overrides."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ksc_collector.aggregation import SumPolicy
from ksc_collector.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "KSC_COLLECTOR_CONFIG"

# User-level config file, used when present and no explicit path is given
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "ksc_collector" / "config.yaml"

# Environment variable -> settings field
ENV_OVERRIDES: dict[str, str] = {
    "KSC_URL": "url",
    "KSC_USER": "user",
    "KSC_PASSWORD": "password",
    "KSC_DOMAIN": "domain",
}


class CollectorSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Administration server Open API endpoint
    url: str = "https://127.0.0.1:13299"
    user: str = ""
    password: str = Field(default="", repr=False)
    domain: str = ""
    # Authenticate as an internal KSC user rather than a domain account.
    internal: bool = True
    vserver: str = "x"
    verify_ssl: bool = True
    timeout: int = 15
    chunk_size: int = 100

    # Output defaults
    error_code: str = ""
    pretty: bool = False
    sum_policy: SumPolicy = SumPolicy.ZERO

    @field_validator("url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("timeout", "chunk_size")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be positive")
        return value


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read config {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} is not a YAML mapping")
    return data


def _config_path(explicit: str | Path | None) -> Path | None:
    if explicit:
        return Path(explicit)
    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        return Path(from_env)
    if DEFAULT_CONFIG_PATH.is_file():
        return DEFAULT_CONFIG_PATH
    return None


def load_settings(path: str | Path | None = None, **overrides: Any) -> CollectorSettings:
    """
    Build settings from the config file, the KSC_* environment variables and
    *overrides* (None values are ignored), in increasing precedence.
    """
    data: dict[str, Any] = {}

    config_path = _config_path(path)
    if config_path is not None:
        logger.debug("Loading config from %s", config_path)
        data.update(_read_yaml(config_path))

    for env_name, field_name in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            data[field_name] = value

    data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return CollectorSettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
