"""Strict validation of rule strings.

Matching is lenient and skips tokens it cannot classify. Operators who
want configuration hygiene validate rule strings up front, e.g. at
startup or from ``ipgate validate``:

    assert_valid_rules("10.0.0.0/8|192.168.1.*")      # ok
    assert_valid_rules("10.0.0.0/8|hello-world")      # RuleValidationError at #2
"""

from __future__ import annotations

from dataclasses import dataclass

from ipgate.core.errors import RuleValidationError
from ipgate.guard.rules import classify_token, split_rules


@dataclass(frozen=True)
class InvalidRuleToken:
    """First unclassifiable token of a rule string."""

    position: int
    """1-indexed position among the non-empty tokens."""

    token: str


def find_invalid_token(rules: str | None) -> InvalidRuleToken | None:
    """Return the first unclassifiable token, or None if every token is valid."""
    for position, token in enumerate(split_rules(rules), start=1):
        if classify_token(token) is None:
            return InvalidRuleToken(position=position, token=token)
    return None


def assert_valid_rules(rules: str | None) -> None:
    """Raise RuleValidationError for the first unclassifiable token.

    None and blank rule strings are valid.
    """
    invalid = find_invalid_token(rules)
    if invalid is not None:
        raise RuleValidationError(invalid.position, invalid.token)
