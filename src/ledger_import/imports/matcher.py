"""
Deterministic entity matching against the cached lookup tables.

Strategies run in strict priority order and the first hit wins:

1. Exact    - description equals a canonical name
2. Prefix   - description starts with a canonical name (longest wins)
3. Alias    - description contains an alias (resolved to its owner)
4. Contains - canonical name appears inside the description (longest wins)

All comparisons are case-insensitive. When nothing hits, exact, prefix and
contains are retried once with apostrophes and backticks removed from both
sides ("MCDONALDS" vs "McDonald's").
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field

from ..ledger_client import page_url
from ..schemas import EntityMatch, MatchType

logger = logging.getLogger(__name__)

_PUNCTUATION_RE = re.compile(r"['`‘’]")

# Canonical names shorter than this never match by containment
MIN_CONTAINS_LENGTH = 4


def normalize(text: str) -> str:
    return text.strip().upper()


def strip_punctuation(text: str) -> str:
    return _PUNCTUATION_RE.sub("", text)


@dataclass(frozen=True)
class EntityTables:
    """Read-only snapshot of the entity lookup tables.

    name_to_id maps canonical entity name → ledger id; alias_to_name maps a
    trimmed alias → canonical name.
    """

    name_to_id: Mapping[str, str] = field(default_factory=dict)
    alias_to_name: Mapping[str, str] = field(default_factory=dict)

    def resolve_name(self, name: str) -> tuple[str, str] | None:
        """Case-insensitive canonical lookup. Returns (name, id)."""
        if name in self.name_to_id:
            return name, self.name_to_id[name]
        upper = name.upper()
        for canonical, entity_id in self.name_to_id.items():
            if canonical.upper() == upper:
                return canonical, entity_id
        return None


@dataclass(frozen=True)
class Candidate:
    """A strategy hit before it becomes an EntityMatch."""

    name: str
    entity_id: str
    match_type: MatchType


class MatchStrategy:
    """One matching tier."""

    match_type: MatchType = MatchType.NONE
    # Whether the tier takes part in the punctuation-stripped retry
    retry_stripped: bool = True

    def try_match(
        self, description: str, tables: EntityTables, stripped: bool = False
    ) -> Candidate | None:
        raise NotImplementedError

    @staticmethod
    def _key(name: str, stripped: bool) -> str:
        upper = name.upper()
        return strip_punctuation(upper) if stripped else upper

    @staticmethod
    def _longest(candidates: list[tuple[str, str]]) -> tuple[str, str] | None:
        if not candidates:
            return None
        return max(candidates, key=lambda c: len(c[0]))


class ExactStrategy(MatchStrategy):
    match_type = MatchType.EXACT

    def try_match(self, description, tables, stripped=False):
        for name, entity_id in tables.name_to_id.items():
            if description == self._key(name, stripped):
                return Candidate(name, entity_id, self.match_type)
        return None


class PrefixStrategy(MatchStrategy):
    match_type = MatchType.PREFIX

    def try_match(self, description, tables, stripped=False):
        hits = [
            (name, entity_id)
            for name, entity_id in tables.name_to_id.items()
            if name and description.startswith(self._key(name, stripped))
        ]
        best = self._longest(hits)
        return Candidate(best[0], best[1], self.match_type) if best else None


class AliasStrategy(MatchStrategy):
    """Alias substring match, resolved to the alias owner's canonical entry.

    Aliases whose owner is missing from the name table are ignored. When
    several aliases hit, the longest one wins.
    """

    match_type = MatchType.ALIAS
    retry_stripped = False

    def try_match(self, description, tables, stripped=False):
        hits: list[tuple[str, str, str]] = []
        for alias, owner in tables.alias_to_name.items():
            alias_key = alias.strip().upper()
            if not alias_key or alias_key not in description:
                continue
            resolved = tables.resolve_name(owner)
            if resolved is None:
                logger.debug("Alias '%s' points at unknown entity '%s'", alias, owner)
                continue
            hits.append((alias_key, resolved[0], resolved[1]))
        if not hits:
            return None
        _, name, entity_id = max(hits, key=lambda h: len(h[0]))
        return Candidate(name, entity_id, self.match_type)


class ContainsStrategy(MatchStrategy):
    match_type = MatchType.CONTAINS

    def try_match(self, description, tables, stripped=False):
        hits = [
            (name, entity_id)
            for name, entity_id in tables.name_to_id.items()
            if len(name) >= MIN_CONTAINS_LENGTH and self._key(name, stripped) in description
        ]
        best = self._longest(hits)
        return Candidate(best[0], best[1], self.match_type) if best else None


DEFAULT_STRATEGIES: tuple[MatchStrategy, ...] = (
    ExactStrategy(),
    PrefixStrategy(),
    AliasStrategy(),
    ContainsStrategy(),
)


class EntityMatcher:
    """Runs the strategies in order and stops at the first hit."""

    def __init__(
        self,
        strategies: tuple[MatchStrategy, ...] = DEFAULT_STRATEGIES,
        page_base_url: str = "https://www.notion.so",
    ):
        self.strategies = strategies
        self.page_base_url = page_base_url

    def match(self, description: str, tables: EntityTables) -> EntityMatch | None:
        """
        Match a description against the lookup tables.

        Returns:
            EntityMatch, or None when no tier hits (deferring to AI)
        """
        normalized = normalize(description)
        if not normalized:
            return None

        candidate = self._run(normalized, tables, stripped=False)
        if candidate is None:
            stripped = strip_punctuation(normalized)
            if stripped != normalized or self._has_punctuated_names(tables):
                candidate = self._run(stripped, tables, stripped=True)

        if candidate is None:
            return None

        logger.debug(
            "Matched '%s' to %s (%s)",
            description[:50],
            candidate.name,
            candidate.match_type.value,
        )
        return EntityMatch(
            match_type=candidate.match_type,
            entity_id=candidate.entity_id,
            entity_name=candidate.name,
            entity_url=page_url(candidate.entity_id, self.page_base_url),
        )

    def _run(self, description: str, tables: EntityTables, stripped: bool) -> Candidate | None:
        for strategy in self.strategies:
            if stripped and not strategy.retry_stripped:
                continue
            candidate = strategy.try_match(description, tables, stripped=stripped)
            if candidate is not None:
                return candidate
        return None

    @staticmethod
    def _has_punctuated_names(tables: EntityTables) -> bool:
        return any(_PUNCTUATION_RE.search(name) for name in tables.name_to_id)


def match_entity(
    description: str,
    name_to_id: Mapping[str, str],
    alias_to_name: Mapping[str, str],
    page_base_url: str = "https://www.notion.so",
) -> EntityMatch | None:
    """Match a description with the default strategies."""
    matcher = EntityMatcher(page_base_url=page_base_url)
    return matcher.match(description, EntityTables(name_to_id, alias_to_name))
