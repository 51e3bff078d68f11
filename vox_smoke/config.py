# vox_smoke/config.py
"""
Configuration Loading

Reads the YAML service configuration, expanding ``${VAR}`` references from
the environment, and validates it into typed settings.
"""

import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

_PLACEHOLDER = re.compile(r"\$\{(\w+)\}")


class ConfigError(Exception):
    """Raised when the configuration file is missing or invalid."""
    pass


def expand_env_vars(obj):
    """
    Recursively expand environment variables in a parsed configuration.

    Strings of the form ``${VAR_NAME}`` are replaced with the value of the
    environment variable; unknown variables are left as-is.
    """
    if isinstance(obj, str):
        return _PLACEHOLDER.sub(lambda m: os.environ.get(m.group(1), m.group(0)), obj)
    elif isinstance(obj, dict):
        return {k: expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [expand_env_vars(v) for v in obj]
    return obj


def _unset_if_placeholder(value: Any) -> Any:
    # An unresolved ${VAR} means the variable is not set.
    if isinstance(value, str) and (not value.strip() or _PLACEHOLDER.fullmatch(value.strip())):
        return None
    return value


def normalize_e164(value: str) -> str:
    """Strip everything but digits and prefix ``+``; values without digits pass through."""
    digits = re.sub(r"\D", "", value)
    return f"+{digits}" if digits else value


def parse_number_list(raw: str | list[str] | None) -> list[str]:
    """Turn a comma-separated string (or list) into normalized E.164 numbers."""
    if not raw:
        return []
    items = raw.split(",") if isinstance(raw, str) else raw
    return [normalize_e164(s) for s in (str(i).strip() for i in items) if re.search(r"\d", s)]


class ProviderConfig(BaseModel):
    type: Literal["voximplant"] = "voximplant"
    account_id: str
    api_key: str
    application_id: str
    scenario_name: str
    rule_name: str | None = None
    rule_id: str | None = None
    caller_id: str | None = None
    api_url: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _drop_placeholders(cls, v):
        return _unset_if_placeholder(v)


class BatchDefaults(BaseModel):
    repeat: int = Field(default=2, ge=0)
    min_delay_sec: float = Field(default=20, ge=0)
    max_delay_sec: float = Field(default=90, ge=0)
    daily_cap: int = Field(default=5, ge=0)

    @model_validator(mode="after")
    def _check_delays(self):
        if self.max_delay_sec < self.min_delay_sec:
            raise ValueError("max_delay_sec must be >= min_delay_sec")
        return self


class AppConfig(BaseModel):
    provider: ProviderConfig
    public_base_url: str
    out_dir: str = "./out"
    caps_file: str | None = None
    api_key: str | None = None
    test_numbers: list[str] = Field(default_factory=list)
    test_to: str | None = None
    batch: BatchDefaults = Field(default_factory=BatchDefaults)

    @field_validator("public_base_url", "caps_file", "api_key", "test_to", mode="before")
    @classmethod
    def _drop_placeholders(cls, v):
        return _unset_if_placeholder(v)

    @field_validator("out_dir", mode="before")
    @classmethod
    def _default_out_dir(cls, v):
        return _unset_if_placeholder(v) or "./out"

    @field_validator("public_base_url")
    @classmethod
    def _check_url(cls, v: str) -> str:
        if not re.match(r"^https?://\S+$", v):
            raise ValueError(f"public_base_url must be an http(s) URL: {v!r}")
        return v.rstrip("/")

    @field_validator("test_numbers", mode="before")
    @classmethod
    def _split_numbers(cls, v):
        return parse_number_list(_unset_if_placeholder(v) if isinstance(v, str) else v)

    @field_validator("test_to")
    @classmethod
    def _normalize_test_to(cls, v: str | None) -> str | None:
        return normalize_e164(v) if v else None

    @property
    def caps_path(self) -> Path:
        return Path(self.caps_file) if self.caps_file else Path(self.out_dir) / "daily_caps_vox.json"

    @property
    def event_url(self) -> str:
        return f"{self.public_base_url}/webhooks/vox"

    @property
    def default_to(self) -> str | None:
        return self.test_to or (self.test_numbers[0] if self.test_numbers else None)


def load_config(path: str | Path) -> AppConfig:
    """
    Load and validate the YAML configuration file.

    Args:
        path: Path to the YAML file.

    Returns:
        AppConfig: The validated configuration with environment variables expanded.

    Raises:
        ConfigError: If the file is missing, not a mapping, or fails validation.
    """
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file is not valid YAML: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must contain a mapping: {path}")

    try:
        return AppConfig.model_validate(expand_env_vars(raw))
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}:\n{e}") from e
