"""ipgate IP guard.

Decides whether a client address may reach a service by matching it
against an allow-list built from two sources: default rules from the
environment and rules from an allow-list file.

Features:
- CIDR blocks (10.0.0.0/8)
- Inclusive ranges (172.30.1.10-172.30.1.20, ``~`` accepted as separator)
- Per-octet wildcards (192.168.1.*)
- Exact addresses (203.0.113.7)
- IPv6 loopback and IPv4-mapped addresses folded to IPv4
- Strict validation of rule strings

Usage:
    from ipgate.guard import create_ip_guard

    guard = create_ip_guard()
    result = guard.check("10.1.2.3")
    print(result.allowed, result.reason)
"""

from .address import client_ipv4, normalize_address, parse_ipv4, to_ipv4_if_possible
from .engine import (
    GuardReason,
    GuardResult,
    IpGuard,
    ReasonKind,
    create_ip_guard,
    create_static_guard,
    decide,
    find_matched_token,
    is_allowed,
)
from .rules import (
    CidrRule,
    ExactRule,
    RangeRule,
    RuleKind,
    RuleToken,
    WildcardRule,
    classify_token,
    matches_token,
    normalize_rules,
    rule_matches,
    split_rules,
)
from .ruleset import (
    CachedRuleSetProvider,
    FreshRuleSetProvider,
    Provenance,
    RuleSet,
    RuleSetProvider,
    RuleSource,
    StaticRuleSetProvider,
    merge_rules,
)
from .validation import InvalidRuleToken, assert_valid_rules, find_invalid_token

__all__ = [
    # Addresses
    "client_ipv4",
    "normalize_address",
    "parse_ipv4",
    "to_ipv4_if_possible",
    # Rules
    "CidrRule",
    "ExactRule",
    "RangeRule",
    "RuleKind",
    "RuleToken",
    "WildcardRule",
    "classify_token",
    "matches_token",
    "normalize_rules",
    "rule_matches",
    "split_rules",
    # Rule sets
    "CachedRuleSetProvider",
    "FreshRuleSetProvider",
    "Provenance",
    "RuleSet",
    "RuleSetProvider",
    "RuleSource",
    "StaticRuleSetProvider",
    "merge_rules",
    # Decisions
    "GuardReason",
    "GuardResult",
    "IpGuard",
    "ReasonKind",
    "create_ip_guard",
    "create_static_guard",
    "decide",
    "find_matched_token",
    "is_allowed",
    # Validation
    "InvalidRuleToken",
    "assert_valid_rules",
    "find_invalid_token",
]
