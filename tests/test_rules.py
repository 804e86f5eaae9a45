"""Tests for rule tokenizing, classification and matching."""

from __future__ import annotations

import pytest

from ipgate.guard.address import format_ipv4, parse_ipv4
from ipgate.guard.rules import (
    CidrRule,
    ExactRule,
    RangeRule,
    RuleKind,
    WildcardRule,
    address_span,
    cidr_mask,
    classify_token,
    matches_token,
    normalize_rules,
    rule_matches,
    rule_to_dict,
    split_rules,
)


class TestSplitRules:
    """Tests for the rule tokenizer."""

    def test_empty(self):
        """Test None and empty input give no tokens."""
        assert split_rules(None) == []
        assert split_rules("") == []
        assert split_rules(" ,|; \n") == []

    def test_all_separators(self):
        """Test every separator splits and runs collapse."""
        rules = "1.1.1.1,2.2.2.2|3.3.3.3;4.4.4.4\n5.5.5.5\r\n6.6.6.6\r7.7.7.7,,|;8.8.8.8"
        assert split_rules(rules) == [
            "1.1.1.1",
            "2.2.2.2",
            "3.3.3.3",
            "4.4.4.4",
            "5.5.5.5",
            "6.6.6.6",
            "7.7.7.7",
            "8.8.8.8",
        ]

    def test_unicode_line_separators(self):
        """Test unicode line terminators split tokens."""
        assert split_rules("1.1.1.1\u20282.2.2.2\u20293.3.3.3\x854.4.4.4") == [
            "1.1.1.1",
            "2.2.2.2",
            "3.3.3.3",
            "4.4.4.4",
        ]

    def test_tokens_trimmed(self):
        """Test surrounding whitespace is dropped and inner spaces kept."""
        assert split_rules("  10.0.0.0/8 ,  1.1.1.1 - 1.1.1.9  ") == ["10.0.0.0/8", "1.1.1.1 - 1.1.1.9"]


class TestNormalizeRules:
    """Tests for tilde normalization."""

    def test_tilde_rewritten(self):
        """Test tilde and surrounding spaces become a dash."""
        assert normalize_rules("10.0.0.0 ~ 10.255.255.255") == "10.0.0.0-10.255.255.255"
        assert normalize_rules(" 1.1.1.1~1.1.1.9|2.2.2.2  ~2.2.2.9 ") == "1.1.1.1-1.1.1.9|2.2.2.2-2.2.2.9"

    def test_blank_unchanged(self):
        """Test None and blank strings are returned unchanged."""
        assert normalize_rules(None) is None
        assert normalize_rules("") == ""
        assert normalize_rules("   ") == "   "

    def test_other_notations_untouched(self):
        """Test slashes and stars are not rewritten."""
        assert normalize_rules("10.0.0.0/8|192.168.1.*") == "10.0.0.0/8|192.168.1.*"

    def test_tilde_range_equivalent(self):
        """Test a tilde range classifies the same as the dashed range."""
        tilde = classify_token("172.30.1.20~172.30.1.10")
        dashed = classify_token(normalize_rules("172.30.1.20 ~ 172.30.1.10"))
        assert isinstance(tilde, RangeRule)
        assert isinstance(dashed, RangeRule)
        assert (tilde.lo, tilde.hi) == (dashed.lo, dashed.hi)


class TestClassifyToken:
    """Tests for token classification."""

    def test_cidr(self):
        """Test CIDR notation."""
        rule = classify_token("10.0.0.0/8")
        assert isinstance(rule, CidrRule)
        assert rule.kind == RuleKind.CIDR
        assert rule.prefix == 8
        assert rule.network == parse_ipv4("10.0.0.0")

    def test_range(self):
        """Test range notation with dash and tilde."""
        rule = classify_token("172.30.1.10-172.30.1.20")
        assert isinstance(rule, RangeRule)
        assert rule.kind == RuleKind.RANGE
        assert isinstance(classify_token("172.30.1.10 ~ 172.30.1.20"), RangeRule)

    def test_range_reversed_endpoints(self):
        """Test reversed endpoints are stored ordered."""
        rule = classify_token("172.30.1.20-172.30.1.10")
        assert isinstance(rule, RangeRule)
        assert rule.lo == parse_ipv4("172.30.1.10")
        assert rule.hi == parse_ipv4("172.30.1.20")

    def test_wildcard(self):
        """Test wildcard notation."""
        rule = classify_token("192.168.*.*")
        assert isinstance(rule, WildcardRule)
        assert rule.kind == RuleKind.WILDCARD
        assert rule.octets == ("192", "168", None, None)

    def test_exact(self):
        """Test a plain address."""
        rule = classify_token("203.0.113.7")
        assert isinstance(rule, ExactRule)
        assert rule.kind == RuleKind.EXACT
        assert rule.address == parse_ipv4("203.0.113.7")

    @pytest.mark.parametrize(
        "token",
        [
            "hello-world",
            "999.999.1.1",
            "10.0.0.0/33",
            "10.0.0/8",
            "1.2.3.4-",
            "1.2.3.256-1.2.3.4",
            "192.168.1.**",
            "192.168.*",
            "2001:db8::/32",
            "",
            "   ",
        ],
    )
    def test_unclassifiable(self, token):
        """Test tokens that fit no notation."""
        assert classify_token(token) is None


class TestRuleMatches:
    """Tests for the matcher."""

    def test_cidr_mask(self):
        """Test mask computation."""
        assert cidr_mask(0) == 0
        assert cidr_mask(8) == 0xFF000000
        assert cidr_mask(24) == 0xFFFFFF00
        assert cidr_mask(32) == 0xFFFFFFFF
        with pytest.raises(ValueError):
            cidr_mask(33)

    @pytest.mark.parametrize(
        "token,candidate,expected",
        [
            ("10.0.0.0/8", "10.123.45.67", True),
            ("10.0.0.0/8", "11.0.0.1", False),
            ("10.1.2.3/8", "10.200.0.1", True),
            ("0.0.0.0/0", "8.8.8.8", True),
            ("192.168.1.1/32", "192.168.1.1", True),
            ("192.168.1.1/32", "192.168.1.2", False),
        ],
    )
    def test_cidr(self, token, candidate, expected):
        """Test CIDR matching compares masked networks."""
        assert matches_token(candidate, token) is expected

    def test_cidr_property(self):
        """Test CIDR matching equals the mask comparison."""
        network = parse_ipv4("172.16.0.0")
        for prefix in (0, 1, 12, 16, 31, 32):
            rule = CidrRule(text=f"172.16.0.0/{prefix}", network=network, prefix=prefix)
            mask = cidr_mask(prefix)
            for candidate in ("172.16.0.1", "172.31.255.255", "172.32.0.0", "8.8.8.8"):
                expected = (parse_ipv4(candidate) & mask) == (network & mask)
                assert rule_matches(rule, candidate) is expected

    def test_cidr_prefix_out_of_range_never_matches(self):
        """Test a hand-built rule with a bad prefix does not match."""
        rule = CidrRule(text="10.0.0.0/40", network=parse_ipv4("10.0.0.0"), prefix=40)
        assert rule_matches(rule, "10.0.0.1") is False

    def test_range_either_order(self):
        """Test range matching is inclusive regardless of authoring order."""
        for token in ("172.30.1.10-172.30.1.20", "172.30.1.20-172.30.1.10"):
            assert matches_token("172.30.1.10", token) is True
            assert matches_token("172.30.1.15", token) is True
            assert matches_token("172.30.1.20", token) is True
            assert matches_token("172.30.1.9", token) is False
            assert matches_token("172.30.1.21", token) is False

    def test_range_across_octets(self):
        """Test ranges compare whole addresses, not octets."""
        assert matches_token("172.31.0.1", "172.30.1.10-173.30.1.45") is True
        assert matches_token("173.30.1.46", "172.30.1.10-173.30.1.45") is False

    def test_wildcard_last_octet(self):
        """Test a trailing wildcard covers exactly its /24."""
        rule = classify_token("1.2.3.*")
        for last in (0, 128, 255):
            assert rule_matches(rule, f"1.2.3.{last}") is True
        assert rule_matches(rule, "1.2.4.0") is False
        assert rule_matches(rule, "1.2.2.255") is False

    def test_wildcard_inner_octet(self):
        """Test a wildcard in the middle."""
        assert matches_token("10.99.0.1", "10.*.0.1") is True
        assert matches_token("10.99.0.2", "10.*.0.1") is False

    def test_wildcard_compares_text(self):
        """Test fixed wildcard fields compare octet text."""
        assert matches_token("10.00.0.1", "10.0.0.*") is False
        assert matches_token("010.0.0.1", "10.*.*.*") is False

    def test_exact(self):
        """Test exact matching compares the text."""
        assert matches_token("203.0.113.7", "203.0.113.7") is True
        assert matches_token("203.0.113.8", "203.0.113.7") is False

    def test_invalid_candidate(self):
        """Test candidates that are not IPv4 never match."""
        for token in ("0.0.0.0/0", "0.0.0.0-255.255.255.255", "*.*.*.*"):
            assert matches_token("2001:db8::1", token) is False
            assert matches_token("not-an-ip", token) is False
            assert matches_token("", token) is False
            assert matches_token(None, token) is False

    def test_unclassifiable_token(self):
        """Test unclassifiable tokens never match."""
        assert matches_token("10.0.0.1", "hello-world") is False


class TestRuleDisplay:
    """Tests for rule spans and dictionaries."""

    def test_cidr_span(self):
        """Test the span of a network block."""
        first, last = address_span(classify_token("10.1.2.3/16"))
        assert format_ipv4(first) == "10.1.0.0"
        assert format_ipv4(last) == "10.1.255.255"

    def test_wildcard_has_no_span(self):
        """Test wildcards have no contiguous span."""
        assert address_span(classify_token("10.*.0.1")) is None

    def test_rule_to_dict(self):
        """Test dictionary conversion."""
        assert rule_to_dict(classify_token("172.30.1.20-172.30.1.10")) == {
            "type": "range",
            "token": "172.30.1.20-172.30.1.10",
            "first": "172.30.1.10",
            "last": "172.30.1.20",
        }
        assert rule_to_dict(classify_token("192.168.1.*")) == {
            "type": "wildcard",
            "token": "192.168.1.*",
        }
