"""IP guard decisions over the merged rule set.

The verdict walks the merged rule string (default rules first, then file
rules) and stops at the first matching token. The reason is derived
separately: file rules are searched first, so an address covered by both
halves is reported as ``allowed:user(...)``.

Example:
    guard = create_ip_guard()
    result = guard.check("192.168.1.50")
    if not result.allowed:
        return 403  # Forbidden
    print(result.reason)  # allowed:default(192.168.0.0-192.168.255.255)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ipgate.core.config import GuardSettings, get_settings
from ipgate.guard.address import normalize_address
from ipgate.guard.rules import classify_token, rule_matches, split_rules
from ipgate.guard.ruleset import (
    RuleSet,
    RuleSetProvider,
    StaticRuleSetProvider,
    create_ruleset_provider,
)
from ipgate.observability.metrics import GUARD_DECISIONS


class ReasonKind(Enum):
    """Why a candidate was allowed or denied."""

    ALLOWED_USER = "allowed:user"
    ALLOWED_DEFAULT = "allowed:default"
    DENIED_NO_MATCH = "denied:no-match"
    DENIED_UNSUPPORTED_FORMAT = "denied:ip-format-not-supported"


@dataclass(frozen=True)
class GuardReason:
    """Reason of a decision: a kind plus the matched token or rejected address."""

    kind: ReasonKind
    detail: str | None = None

    def __str__(self) -> str:
        if self.detail is None:
            return self.kind.value
        return f"{self.kind.value}({self.detail})"


@dataclass(frozen=True)
class GuardResult:
    """Result of an IP guard check."""

    client_ip: str
    allowed: bool
    reason: GuardReason

    @property
    def reason_text(self) -> str:
        return str(self.reason)

    def to_dict(self) -> dict[str, str | bool]:
        return {
            "client": self.client_ip,
            "allowed": self.allowed,
            "reason": self.reason_text,
        }


def find_matched_token(candidate: str | None, rules: str | None) -> str | None:
    """Return the first token of rules that matches candidate, or None."""
    if not candidate or ":" in candidate:
        return None
    for token in split_rules(rules):
        rule = classify_token(token)
        if rule is not None and rule_matches(rule, candidate):
            return token
    return None


def is_allowed(candidate: str | None, rules: str | None) -> bool:
    """Check a candidate against a rule string. Blank input is never allowed."""
    if candidate is None or not candidate.strip():
        return False
    if rules is None or not rules.strip():
        return False
    return find_matched_token(candidate.strip(), rules) is not None


def decide(candidate: str | None, ruleset: RuleSet) -> GuardResult:
    """Decide a candidate against a rule set, with the reason for the verdict."""
    client_ip = normalize_address(candidate)
    allowed = is_allowed(client_ip, ruleset.merged)

    user_token = find_matched_token(client_ip, ruleset.file_rules)
    if user_token is not None:
        reason = GuardReason(ReasonKind.ALLOWED_USER, user_token)
    else:
        default_token = find_matched_token(client_ip, ruleset.default_rules)
        if default_token is not None:
            reason = GuardReason(ReasonKind.ALLOWED_DEFAULT, default_token)
        elif ":" in client_ip:
            reason = GuardReason(ReasonKind.DENIED_UNSUPPORTED_FORMAT, client_ip)
        else:
            reason = GuardReason(ReasonKind.DENIED_NO_MATCH)

    return GuardResult(client_ip=client_ip, allowed=allowed, reason=reason)


class IpGuard:
    """Checks client addresses against the rule set of a provider.

    The provider is consulted on every call, so a fresh provider picks up
    rule file edits immediately and a cached one serves its snapshot.
    """

    def __init__(self, provider: RuleSetProvider) -> None:
        self.provider = provider

    @property
    def ruleset(self) -> RuleSet:
        return self.provider.current()

    def check(self, ip: str | None) -> GuardResult:
        """Check if an address is allowed, with a detailed result."""
        result = decide(ip, self.provider.current())
        GUARD_DECISIONS.labels(
            allowed=str(result.allowed).lower(),
            reason=result.reason.kind.value,
        ).inc()
        return result

    def is_allowed(self, ip: str | None) -> bool:
        """Quick verdict-only check."""
        return self.check(ip).allowed


def create_ip_guard(settings: GuardSettings | None = None) -> IpGuard:
    """Create an IP guard reading its rule sources from settings.

    Args:
        settings: Guard settings; the global settings when omitted.

    Returns:
        IpGuard with a cached or fresh rule set provider, per settings.
    """
    return IpGuard(create_ruleset_provider(settings or get_settings()))


def create_static_guard(default_rules: str | None, file_rules: str | None = None) -> IpGuard:
    """Create an IP guard over fixed rule strings."""
    return IpGuard(StaticRuleSetProvider(RuleSet.from_strings(default_rules, file_rules)))
