"""Config Loader - Loads client configuration from YAML.

A config file describes one API: where it lives, which headers every call
carries, how long the transport may wait, and how dates are encoded.

    base_url: https://api.example.com/v1
    headers:
      Authorization: Bearer ${API_TOKEN}
    timeout: 10
    codec:
      date_encoding: seconds_since_1970
      date_decoding: iso8601

String values support ${ENV_VAR} substitution.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from convapi.codec import CodecSettings
from convapi.errors import ConfigError
from convapi.transport import DEFAULT_TIMEOUT

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


class ClientConfig(BaseModel):
    """Top-level client configuration file structure."""

    model_config = ConfigDict(extra="forbid")

    base_url: str = Field(description="Base URL every resource is appended to")
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Headers sent with every call (supports ${ENV_VAR} substitution)",
    )
    timeout: float | None = Field(
        default=DEFAULT_TIMEOUT, description="Transport timeout in seconds (null = none)"
    )
    codec: CodecSettings = Field(default_factory=CodecSettings, description="Codec settings")


def load_client_config(config_path: Path | str) -> ClientConfig:
    """Load client configuration from YAML with ${ENV_VAR} substitution.

    Raises:
        ConfigError: If the file is missing, is not a YAML mapping, references
                     an unset environment variable, or fails validation.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    try:
        return ClientConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable not set: {var_name}")
        return value

    return _ENV_VAR_PATTERN.sub(replacer, s)
