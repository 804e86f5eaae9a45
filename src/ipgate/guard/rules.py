"""IP allow-list rule notation: tokenizing, classification and matching.

Rule Types:
- CidrRule: network block (e.g. 10.0.0.0/8)
- RangeRule: inclusive range (e.g. 172.30.1.10-172.30.1.20 or 172.30.1.10~172.30.1.20)
- WildcardRule: per-octet wildcard (e.g. 192.168.1.*)
- ExactRule: single address (e.g. 203.0.113.7)

A rule string holds any number of tokens separated by runs of ``,``,
``|``, ``;`` or line breaks. Classification tries CIDR, range, wildcard
and exact in that order and keeps the first that fits. Tokens fitting
none of them are unclassifiable: matching skips them, strict validation
reports them (see ipgate.guard.validation).

Example:
    >>> rule = classify_token("192.168.1.*")
    >>> rule_matches(rule, "192.168.1.200")
    True
    >>> matches_token("10.1.2.3", "10.0.0.0/8")
    True
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ipgate.guard.address import (
    IPV4_PATTERN,
    OCTET_PATTERN,
    format_ipv4,
    is_ipv4,
    parse_ipv4,
)

# Token separators: comma, pipe, semicolon and every line terminator, in runs.
RULE_SEPARATOR = re.compile(r"(?:,|\||;|\r\n|[\n\x0b\x0c\r\x85\u2028\u2029])+")

_TILDE_RE = re.compile(r"\s*~\s*")
_CIDR_RE = re.compile(rf"({IPV4_PATTERN})/(\d{{1,2}})", re.ASCII)
_RANGE_RE = re.compile(rf"({IPV4_PATTERN})\s*[-~]\s*({IPV4_PATTERN})", re.ASCII)
_WILDCARD_FIELD = rf"(?:{OCTET_PATTERN}|\*)"
_WILDCARD_RE = re.compile(rf"{_WILDCARD_FIELD}(?:\.{_WILDCARD_FIELD}){{3}}", re.ASCII)

WILDCARD = "*"
MAX_PREFIX = 32


class RuleKind(Enum):
    """Notations an allow-list token can take."""

    CIDR = "cidr"
    RANGE = "range"
    WILDCARD = "wildcard"
    EXACT = "exact"


@dataclass(frozen=True)
class CidrRule:
    """Network block in address/prefix notation.

    Example:
        >>> rule = classify_token("10.0.0.0/8")
        >>> rule_matches(rule, "10.255.0.1")
        True
    """

    text: str
    network: int
    prefix: int

    @property
    def kind(self) -> RuleKind:
        return RuleKind.CIDR


@dataclass(frozen=True)
class RangeRule:
    """Inclusive address range. Endpoints are stored ordered (lo <= hi)."""

    text: str
    lo: int
    hi: int

    @property
    def kind(self) -> RuleKind:
        return RuleKind.RANGE


@dataclass(frozen=True)
class WildcardRule:
    """Dotted quad where any octet may be ``*``.

    Fixed octets are kept as written; ``None`` stands for ``*``.
    """

    text: str
    octets: tuple[str | None, str | None, str | None, str | None]

    @property
    def kind(self) -> RuleKind:
        return RuleKind.WILDCARD


@dataclass(frozen=True)
class ExactRule:
    """Single address, matched by its literal text."""

    text: str
    address: int

    @property
    def kind(self) -> RuleKind:
        return RuleKind.EXACT


RuleToken = CidrRule | RangeRule | WildcardRule | ExactRule


def split_rules(rules: str | None) -> list[str]:
    """Split a rule string into trimmed, non-empty tokens, keeping their order."""
    if not rules:
        return []
    tokens = (piece.strip() for piece in RULE_SEPARATOR.split(rules))
    return [token for token in tokens if token]


def normalize_rules(rules: str | None) -> str | None:
    """Rewrite ``~`` range separators (and surrounding spaces) to ``-``.

    None and blank strings are returned unchanged; anything else is trimmed.
    """
    if rules is None or not rules.strip():
        return rules
    return _TILDE_RE.sub("-", rules).strip()


def cidr_mask(prefix: int) -> int:
    """Return the 32-bit network mask for a prefix length (0 gives 0)."""
    if not 0 <= prefix <= MAX_PREFIX:
        raise ValueError(f"CIDR prefix out of range: {prefix}")
    if prefix == 0:
        return 0
    return (0xFFFFFFFF << (MAX_PREFIX - prefix)) & 0xFFFFFFFF


def classify_token(token: str) -> RuleToken | None:
    """Classify a single token, or return None if it is unclassifiable."""
    text = token.strip()
    if not text:
        return None

    cidr = _CIDR_RE.fullmatch(text)
    if cidr:
        prefix = int(cidr.group(2))
        if prefix > MAX_PREFIX:
            return None
        return CidrRule(text=text, network=parse_ipv4(cidr.group(1)), prefix=prefix)

    span = _RANGE_RE.fullmatch(text)
    if span:
        start = parse_ipv4(span.group(1))
        end = parse_ipv4(span.group(2))
        return RangeRule(text=text, lo=min(start, end), hi=max(start, end))

    if WILDCARD in text and _WILDCARD_RE.fullmatch(text):
        a, b, c, d = (None if field == WILDCARD else field for field in text.split("."))
        return WildcardRule(text=text, octets=(a, b, c, d))

    if is_ipv4(text):
        return ExactRule(text=text, address=parse_ipv4(text))

    return None


def rule_matches(rule: RuleToken, candidate: str) -> bool:
    """Check whether a candidate address falls under a classified rule.

    Never raises: a candidate that is not a dotted-quad IPv4 address
    simply does not match.
    """
    if isinstance(rule, ExactRule):
        return candidate == rule.text

    if isinstance(rule, WildcardRule):
        if not is_ipv4(candidate):
            return False
        return all(
            expected is None or expected == octet
            for expected, octet in zip(rule.octets, candidate.split("."), strict=True)
        )

    try:
        value = parse_ipv4(candidate)
    except ValueError:
        return False

    if isinstance(rule, CidrRule):
        if not 0 <= rule.prefix <= MAX_PREFIX:
            return False
        mask = cidr_mask(rule.prefix)
        return (value & mask) == (rule.network & mask)

    if isinstance(rule, RangeRule):
        return min(rule.lo, rule.hi) <= value <= max(rule.lo, rule.hi)

    return False


def matches_token(candidate: str | None, token: str) -> bool:
    """Classify a raw token and match it; unclassifiable tokens never match."""
    if not candidate or ":" in candidate:
        return False
    rule = classify_token(token)
    if rule is None:
        return False
    return rule_matches(rule, candidate)


def address_span(rule: RuleToken) -> tuple[int, int] | None:
    """Return the first and last address a rule covers (None for wildcards)."""
    if isinstance(rule, CidrRule):
        mask = cidr_mask(rule.prefix)
        first = rule.network & mask
        return first, first | (~mask & 0xFFFFFFFF)
    if isinstance(rule, RangeRule):
        return rule.lo, rule.hi
    if isinstance(rule, ExactRule):
        return rule.address, rule.address
    return None


def rule_to_dict(rule: RuleToken) -> dict[str, Any]:
    """Convert a rule to a dictionary for display and JSON output."""
    data: dict[str, Any] = {"type": rule.kind.value, "token": rule.text}
    span = address_span(rule)
    if span is not None:
        data["first"] = format_ipv4(span[0])
        data["last"] = format_ipv4(span[1])
    return data
