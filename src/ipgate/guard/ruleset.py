"""Merged rule set with provenance, rule sources and rule set providers.

Two rule strings feed the guard:

- the default rules, from settings (environment), RFC1918 when unset;
- the file rules, read from an allow-list file the operator drops in place.

The merged string is ``default`` alone when there are no file rules and
``default + "|" + file`` otherwise. Provenance of each token is kept for
the reason string of a decision; the verdict itself only needs the merged
string.

Example:
    source = RuleSource(get_settings())
    provider = CachedRuleSetProvider(source, ttl=30.0)
    ruleset = provider.current()
    print(ruleset.merged)
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from pathlib import Path
from time import monotonic
from typing import Protocol

import structlog

from ipgate.core.config import GuardSettings
from ipgate.guard.rules import RuleToken, classify_token, normalize_rules, split_rules
from ipgate.observability.metrics import RULE_FILE_ERRORS

logger = structlog.get_logger()

MERGE_SEPARATOR = "|"


class Provenance(Enum):
    """Which source contributed a rule token."""

    DEFAULT = "default"
    FILE = "user"

    @property
    def label(self) -> str:
        return self.value


def merge_rules(default_rules: str | None, file_rules: str | None) -> str:
    """Append file rules after default rules, separated by ``|``."""
    default_rules = default_rules or ""
    if file_rules is None or not file_rules.strip():
        return default_rules
    return default_rules + MERGE_SEPARATOR + file_rules


@dataclass(frozen=True)
class RuleSet:
    """Immutable snapshot of the default and file rules.

    Both strings are stored normalized (``~`` rewritten to ``-``).
    """

    default_rules: str = ""
    file_rules: str = ""
    source_path: Path | None = None
    """Rule file the file rules were read from, if any (diagnostics only)."""

    @classmethod
    def from_strings(
        cls,
        default_rules: str | None,
        file_rules: str | None = None,
        source_path: Path | None = None,
    ) -> RuleSet:
        """Build a rule set from raw strings, normalizing both halves."""
        return cls(
            default_rules=normalize_rules(default_rules) or "",
            file_rules=normalize_rules(file_rules) or "",
            source_path=source_path,
        )

    @property
    def merged(self) -> str:
        return merge_rules(self.default_rules, self.file_rules)

    @cached_property
    def tokens(self) -> tuple[tuple[Provenance, str], ...]:
        """All tokens in merged (default-then-file) order with their provenance."""
        return tuple(
            [(Provenance.DEFAULT, token) for token in split_rules(self.default_rules)]
            + [(Provenance.FILE, token) for token in split_rules(self.file_rules)]
        )

    @cached_property
    def rules(self) -> tuple[tuple[Provenance, RuleToken], ...]:
        """Classified tokens in merged order; unclassifiable tokens are left out."""
        classified = []
        for provenance, token in self.tokens:
            rule = classify_token(token)
            if rule is not None:
                classified.append((provenance, rule))
        return tuple(classified)

    def rules_for(self, provenance: Provenance) -> str:
        """Return the rule string of one half."""
        return self.file_rules if provenance is Provenance.FILE else self.default_rules


def expand_placeholders(hint: str) -> str:
    """Expand ``~``, ``$VAR`` and ``${VAR}`` in a directory hint.

    Unknown ``${VAR}`` placeholders expand to an empty string.
    """
    if not hint:
        return hint
    expanded = os.path.expandvars(os.path.expanduser(hint))
    # os.path.expandvars leaves unknown variables in place
    while "${" in expanded:
        start = expanded.index("${")
        end = expanded.find("}", start)
        if end == -1:
            break
        expanded = expanded[:start] + expanded[end + 1 :]
    return expanded


class RuleSource:
    """Resolves the default rules and the rule file from guard settings."""

    def __init__(
        self,
        settings: GuardSettings,
        cwd: Path | None = None,
        home: Path | None = None,
    ) -> None:
        self.settings = settings
        self._cwd = cwd
        self._home = home

    @property
    def cwd(self) -> Path:
        return self._cwd if self._cwd is not None else Path.cwd()

    @property
    def home(self) -> Path:
        return self._home if self._home is not None else Path.home()

    def default_rules(self) -> str:
        """Normalized default rules."""
        return normalize_rules(self.settings.default_ip) or ""

    def candidate_paths(self) -> list[Path]:
        """Rule file locations in lookup order, without duplicates."""
        name = self.settings.allow_file_name
        candidates: list[Path] = []

        if self.settings.allow_file:
            candidates.append(Path(expand_placeholders(self.settings.allow_file)))

        hint = expand_placeholders(self.settings.allow_ip_path.strip())
        if hint:
            hint_path = Path(hint)
            if hint_path.is_absolute():
                candidates.append(hint_path / name)
            else:
                candidates.append(self.cwd / hint_path / name)
                candidates.append(self.home / hint_path / name)

        candidates.append(self.cwd / name)
        candidates.append(self.home / name)

        unique: list[Path] = []
        for path in candidates:
            if path not in unique:
                unique.append(path)
        return unique

    def resolve_rule_file(self) -> Path | None:
        """Return the first candidate that is a readable regular file."""
        for path in self.candidate_paths():
            try:
                if path.is_file() and os.access(path, os.R_OK):
                    return path.absolute()
            except OSError:
                continue
        return None

    def read_rule_file(self, path: Path | None) -> str:
        """Read a rule file as UTF-8, returning an empty string on any failure."""
        if path is None:
            logger.debug("No rule file found", name=self.settings.allow_file_name)
            return ""
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            RULE_FILE_ERRORS.labels(kind="decode").inc()
            logger.warning("Rule file is not valid UTF-8", path=str(path), error=str(e))
        except OSError as e:
            RULE_FILE_ERRORS.labels(kind="unreadable").inc()
            logger.warning("Rule file unreadable", path=str(path), error=str(e))
        return ""

    def file_rules(self) -> tuple[str, Path | None]:
        """Normalized file rules and the file they came from."""
        path = self.resolve_rule_file()
        return normalize_rules(self.read_rule_file(path)) or "", path

    def load(self) -> RuleSet:
        """Resolve both sources into a fresh rule set."""
        file_rules, path = self.file_rules()
        return RuleSet(
            default_rules=self.default_rules(),
            file_rules=file_rules,
            source_path=path,
        )


class RuleSetProvider(Protocol):
    """Anything that can hand out the rule set to evaluate against."""

    def current(self) -> RuleSet: ...


@dataclass(frozen=True)
class StaticRuleSetProvider:
    """Always returns the same rule set (tests, one-off CLI checks)."""

    ruleset: RuleSet

    def current(self) -> RuleSet:
        return self.ruleset


class FreshRuleSetProvider:
    """Re-resolves the rule sources on every evaluation."""

    def __init__(self, source: RuleSource) -> None:
        self.source = source

    def current(self) -> RuleSet:
        return self.source.load()


@dataclass
class CachedRuleSetProvider:
    """Keeps one immutable rule set snapshot and swaps it wholesale.

    Readers only ever see a complete snapshot. Loads are serialized by a
    lock; reading a fresh snapshot takes no lock.
    """

    source: RuleSource
    ttl: float | None = None
    """Seconds before the snapshot is reloaded. None keeps it until refresh()."""

    _snapshot: RuleSet | None = field(default=None, init=False, repr=False)
    _loaded_at: float = field(default=0.0, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def _is_stale(self) -> bool:
        if self._snapshot is None:
            return True
        if self.ttl is None:
            return False
        return monotonic() - self._loaded_at >= self.ttl

    def current(self) -> RuleSet:
        snapshot = self._snapshot
        if snapshot is not None and not self._is_stale():
            return snapshot
        with self._lock:
            if self._is_stale():
                self._publish(self.source.load())
            snapshot = self._snapshot
        assert snapshot is not None
        return snapshot

    def refresh(self) -> RuleSet:
        """Reload the rule sources and publish the new snapshot."""
        with self._lock:
            ruleset = self.source.load()
            self._publish(ruleset)
        return ruleset

    def _publish(self, ruleset: RuleSet) -> None:
        self._loaded_at = monotonic()
        self._snapshot = ruleset
        logger.info(
            "Rule set loaded",
            default_tokens=len(split_rules(ruleset.default_rules)),
            file_tokens=len(split_rules(ruleset.file_rules)),
            rule_file=str(ruleset.source_path) if ruleset.source_path else None,
        )


def create_ruleset_provider(settings: GuardSettings) -> RuleSetProvider:
    """Create the provider the settings ask for (cached or fresh)."""
    source = RuleSource(settings)
    if settings.cache_rules:
        return CachedRuleSetProvider(source, ttl=settings.cache_ttl)
    return FreshRuleSetProvider(source)
