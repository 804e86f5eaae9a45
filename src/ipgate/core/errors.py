"""Error codes and exceptions shared across ipgate."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Machine-readable error codes with a default message."""

    INVALID_IP_FORMAT = ("IP001", "Invalid IP rule format.")
    ALLOW_FILE_NOT_FOUND = ("IP002", "Allow-list rule file not found.")
    USER_IP_NOT_FOUND = ("IP003", "Client IP address not found.")
    ENV_VARIABLE_MISSING = ("ENV001", "Required environment variable is missing.")

    def __init__(self, code: str, default_message: str) -> None:
        self.code = code
        self.default_message = default_message


class IpGateError(Exception):
    """Base error carrying an ErrorCode, an optional detail and debug context."""

    def __init__(
        self,
        error_code: ErrorCode,
        detail: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(detail if detail and detail.strip() else error_code.default_message)
        self.error_code = error_code
        self.detail = detail
        self.context: dict[str, Any] = dict(context or {})

    @property
    def code(self) -> str:
        return self.error_code.code


class RuleValidationError(IpGateError, ValueError):
    """A rule string contains a token that fits no supported notation."""

    def __init__(self, position: int, token: str) -> None:
        super().__init__(
            ErrorCode.INVALID_IP_FORMAT,
            f"Invalid rule token at #{position}: [{token}]",
            {"position": position, "token": token},
        )
        self.position = position
        self.token = token
