"""Core."""

from .config import (
    GuardSettings,
    ServerConfig,
    clear_settings,
    flatten_config,
    get_settings,
    load_config_from_file,
)
from .errors import ErrorCode, IpGateError, RuleValidationError

__all__ = [
    "ErrorCode",
    "GuardSettings",
    "IpGateError",
    "RuleValidationError",
    "ServerConfig",
    "clear_settings",
    "flatten_config",
    "get_settings",
    "load_config_from_file",
]
