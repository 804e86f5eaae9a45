"""Configuration types with environment variable support.

Guard settings are read from environment variables with the IPGATE_ prefix
(and from a local .env file). The unprefixed names DEFAULT_IP,
ALLOW_IP_PATH and DEFAULT_FILE_NAME are accepted as well.
Example: IPGATE_DEFAULT_IP="10.0.0.0/8|192.168.1.*" replaces the built-in
RFC1918 default rules.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

import yaml
from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_IP_RULES = "10.0.0.0~10.255.255.255|172.16.0.0~172.31.255.255|192.168.0.0~192.168.255.255"
DEFAULT_ALLOW_DIR = "Desktop"
DEFAULT_ALLOW_FILE_NAME = "allow-ip.txt"


def load_config_from_file(path: str | Path) -> dict[str, Any]:
    """Load configuration from a YAML or TOML file.

    Args:
        path: Path to the configuration file (.yaml, .yml, or .toml)

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config file has encoding errors, invalid syntax, or unsupported format
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"Config file encoding error in {path}: {e}") from e

    try:
        if path.suffix in (".yaml", ".yml"):
            return yaml.safe_load(content) or {}
        elif path.suffix == ".toml":
            return tomllib.loads(content)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {path}: {e}") from e


def flatten_config(config: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in config.items():
        full_key = f"{prefix}_{key}" if prefix else key
        if isinstance(value, dict):
            result.update(flatten_config(value, full_key))
        else:
            result[full_key] = value
    return result


class GuardSettings(BaseSettings):
    """Rule sources and caching behaviour of the IP guard.

    Environment variables:
    - IPGATE_DEFAULT_IP / DEFAULT_IP: default rule string
    - IPGATE_ALLOW_IP_PATH / ALLOW_IP_PATH: directory hint for the rule file
    - IPGATE_DEFAULT_FILE_NAME / DEFAULT_FILE_NAME: rule file name
    - IPGATE_ALLOW_FILE: explicit rule file path (skips the directory search)
    - IPGATE_CACHE_RULES, IPGATE_CACHE_TTL: rule set caching
    """

    model_config = SettingsConfigDict(
        env_prefix="IPGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    default_ip: str = Field(
        default=DEFAULT_IP_RULES,
        validation_alias=AliasChoices("IPGATE_DEFAULT_IP", "DEFAULT_IP"),
        description="Default rule string. Falls back to the RFC1918 ranges when unset or blank.",
    )
    allow_ip_path: str = Field(
        default=DEFAULT_ALLOW_DIR,
        validation_alias=AliasChoices("IPGATE_ALLOW_IP_PATH", "ALLOW_IP_PATH"),
        description="Directory hint for the rule file (absolute, or relative to cwd/home).",
    )
    allow_file_name: str = Field(
        default=DEFAULT_ALLOW_FILE_NAME,
        validation_alias=AliasChoices("IPGATE_DEFAULT_FILE_NAME", "DEFAULT_FILE_NAME"),
        description="Rule file name.",
    )
    allow_file: str | None = Field(
        default=None,
        description="Explicit rule file path. Takes precedence over the directory search.",
    )
    cache_rules: bool = Field(
        default=False,
        description="Keep one resolved rule set instead of re-reading the rule file per request.",
    )
    cache_ttl: float | None = Field(
        default=None,
        ge=0,
        description="Seconds before a cached rule set is reloaded. None keeps it until refreshed.",
    )

    @field_validator("default_ip", mode="before")
    @classmethod
    def _default_ip_fallback(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_IP_RULES
        return value.strip() if isinstance(value, str) else value

    @field_validator("allow_ip_path", mode="before")
    @classmethod
    def _allow_dir_fallback(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_ALLOW_DIR
        return value.strip() if isinstance(value, str) else value

    @field_validator("allow_file_name", mode="before")
    @classmethod
    def _file_name_fallback(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_ALLOW_FILE_NAME
        return value.strip() if isinstance(value, str) else value

    @field_validator("allow_file", mode="before")
    @classmethod
    def _blank_allow_file(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def to_display_dict(self) -> dict[str, Any]:
        """Export current settings as a dictionary for display."""
        return {
            "default_ip": self.default_ip,
            "allow_ip_path": self.allow_ip_path,
            "allow_file_name": self.allow_file_name,
            "allow_file": self.allow_file,
            "cache_rules": self.cache_rules,
            "cache_ttl": self.cache_ttl,
        }


class ServerConfig(BaseModel):
    """Gate server configuration."""

    host: str = "0.0.0.0"
    port: int = Field(
        default=8081,
        ge=0,
        le=65535,
        description="HTTP listen port.",
    )
    enforce: bool = Field(
        default=False,
        description="Reject denied clients with 403 instead of only annotating the request.",
    )
    trust_proxy_headers: bool = Field(
        default=False,
        description="Take the client address from X-Forwarded-For / X-Real-IP.",
    )
    strict_rules: bool = Field(
        default=False,
        description="Validate default and file rules at startup and refuse to start on errors.",
    )
    cache_rules: bool = Field(
        default=False,
        description="Cache the resolved rule set across requests.",
    )
    cache_ttl: float | None = Field(
        default=None,
        description="Seconds before the cached rule set is reloaded.",
    )


_settings: GuardSettings | None = None


def get_settings() -> GuardSettings:
    """Get the global guard settings instance.

    The instance is created once from the environment and cached for the
    lifetime of the process. Call clear_settings() to force a reload
    (e.g. in tests).
    """
    global _settings
    if _settings is None:
        _settings = GuardSettings()
    return _settings


def clear_settings() -> None:
    """Clear the cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
