"""
Tests for deterministic entity matching.
"""

import pytest

from ledger_import.imports.matcher import (
    AliasStrategy,
    ContainsStrategy,
    EntityMatcher,
    EntityTables,
    ExactStrategy,
    PrefixStrategy,
    match_entity,
)
from ledger_import.schemas import MatchType

from conftest import SAMPLE_ENTITIES

ALIASES = {"WOW": "Woolworths", "WOOLIES": "Woolworths"}


@pytest.fixture
def tables() -> EntityTables:
    return EntityTables(name_to_id=SAMPLE_ENTITIES, alias_to_name=ALIASES)


@pytest.fixture
def matcher() -> EntityMatcher:
    return EntityMatcher()


class TestTierOrder:
    """Each tier and the order they are tried in."""

    def test_exact_match_is_case_insensitive(self, matcher, tables):
        """A description equal to a canonical name matches exactly."""
        match = matcher.match("  woolworths ", tables)
        assert match.match_type == MatchType.EXACT
        assert match.entity_id == "woolworths-id"
        assert match.entity_name == "Woolworths"

    def test_prefix_match(self, matcher, tables):
        """Store numbers after the name still resolve by prefix."""
        match = matcher.match("WOOLWORTHS 1234", tables)
        assert match.match_type == MatchType.PREFIX
        assert match.entity_id == "woolworths-id"

    def test_longest_prefix_wins(self, matcher, tables):
        """The more specific canonical name beats a shorter prefix."""
        match = matcher.match("TRANSPORT FOR NSW OPAL", tables)
        assert match.match_type == MatchType.PREFIX
        assert match.entity_name == "Transport for NSW"
        assert match.entity_id == "tfnsw-id"

    def test_alias_match(self, matcher, tables):
        """An alias substring resolves to its owning entity."""
        match = matcher.match("WOW METRO", tables)
        assert match.match_type == MatchType.ALIAS
        assert match.entity_name == "Woolworths"
        assert match.entity_id == "woolworths-id"

    def test_alias_beats_contains(self, matcher, tables):
        """Alias tier is tried before contains."""
        match = matcher.match("PAYPAL *WOW ONLINE COLES", tables)
        assert match.match_type == MatchType.ALIAS
        assert match.entity_name == "Woolworths"

    def test_prefix_beats_alias(self, matcher, tables):
        """Prefix tier is tried before alias."""
        match = matcher.match("COLES WOW", tables)
        assert match.match_type == MatchType.PREFIX
        assert match.entity_name == "Coles"

    def test_contains_longest_wins(self, matcher, tables):
        """Containment picks the longest canonical name."""
        match = matcher.match("SQ *TRANSPORT FOR NSW SYDNEY", tables)
        assert match.match_type == MatchType.CONTAINS
        assert match.entity_name == "Transport for NSW"

    def test_no_match_returns_none(self, matcher, tables):
        """Unknown merchants defer to AI."""
        assert matcher.match("UNKNOWN MERCHANT 42", tables) is None

    def test_empty_description(self, matcher, tables):
        """Blank descriptions never match."""
        assert matcher.match("   ", tables) is None


class TestMatcherEdgeCases:
    """Normalization details."""

    def test_short_names_never_match_by_containment(self, matcher, tables):
        """Two-letter names would hit inside unrelated words."""
        assert matcher.match("SHELL BP STATION", tables) is None

    def test_short_names_still_match_by_prefix(self, matcher, tables):
        """Prefix has no minimum length."""
        match = matcher.match("BP CONNECT 123", tables)
        assert match.match_type == MatchType.PREFIX
        assert match.entity_id == "bp-id"

    def test_apostrophes_are_ignored_on_retry(self, matcher, tables):
        """Bank text drops apostrophes present in canonical names."""
        match = matcher.match("MCDONALDS SYDNEY", tables)
        assert match.match_type == MatchType.PREFIX
        assert match.entity_name == "McDonald's"

    def test_alias_owner_resolved_case_insensitively(self, matcher):
        """Alias targets need not match the canonical casing."""
        tables = EntityTables({"Woolworths": "w-id"}, {"WOOLIES": "woolworths"})
        match = matcher.match("WOOLIES METRO", tables)
        assert match.entity_name == "Woolworths"
        assert match.entity_id == "w-id"

    def test_alias_with_unknown_owner_is_ignored(self, matcher):
        """Aliases pointing at missing entities fall through."""
        tables = EntityTables({"Coles": "coles-id"}, {"WOW": "Woolworths"})
        assert matcher.match("WOW METRO", tables) is None

    def test_entity_url_uses_id_without_hyphens(self):
        """Matches carry a navigable page URL."""
        tables = EntityTables({"Coles": "1234-abcd-5678"}, {})
        match = EntityMatcher(page_base_url="https://www.notion.so").match("COLES 99", tables)
        assert match.entity_url == "https://www.notion.so/1234abcd5678"

    def test_match_entity_helper(self):
        """Convenience function uses the default strategies."""
        match = match_entity("WOOLWORTHS 1234", SAMPLE_ENTITIES, {})
        assert match.entity_id == "woolworths-id"
        assert match.confidence is None


class TestStrategies:
    """Strategies in isolation."""

    def test_custom_strategy_order(self, tables):
        """A matcher runs only the strategies it is given."""
        matcher = EntityMatcher(strategies=(ContainsStrategy(),))
        match = matcher.match("WOOLWORTHS 1234", tables)
        assert match.match_type == MatchType.CONTAINS

    def test_exact_strategy_miss(self, tables):
        """Exact requires equality."""
        assert ExactStrategy().try_match("WOOLWORTHS 1", tables) is None

    def test_prefix_strategy_hit(self, tables):
        candidate = PrefixStrategy().try_match("COLES 1", tables)
        assert candidate.entity_id == "coles-id"

    def test_alias_strategy_skips_stripped_retry(self):
        assert AliasStrategy.retry_stripped is False
