"""
Unit tests for the synonym resolver.

Tests for region-scoped, exact-match regional term resolution.
"""

import logging

import pytest

from src.schemas.taxonomy import SynonymEntry
from src.taxonomy.errors import UnknownTermError
from src.taxonomy.synonyms import SynonymResolver


class TestResolve:
    """Tests for SynonymResolver.resolve."""

    def test_resolve_known_term(self, resolver):
        assert resolver.resolve("IN", "Mandap") == "banquet_wedding.ceremony_pavilion"

    def test_case_and_whitespace_insensitive(self, resolver):
        assert resolver.resolve(" in ", "  MANDAP ") == "banquet_wedding.ceremony_pavilion"
        assert (
            resolver.resolve("us", "convention   center")
            == "convention_exhibition.convention_center"
        )

    def test_no_cross_region_fallback(self, resolver):
        """Shamiana is an Indian term; the US lookup must not guess."""
        with pytest.raises(UnknownTermError) as exc_info:
            resolver.resolve("US", "Shamiana")
        assert exc_info.value.region_code == "US"
        assert exc_info.value.local_term == "Shamiana"

    def test_no_fuzzy_matching(self, resolver):
        with pytest.raises(UnknownTermError):
            resolver.resolve("IN", "Mandapam")

    def test_unknown_term_is_lookup_error(self, resolver):
        with pytest.raises(LookupError):
            resolver.resolve("IN", "Gazebo")

    def test_many_terms_to_one_node(self, resolver):
        assert resolver.resolve("IN", "Shamiana") == resolver.resolve("GB", "Marquee")


class TestResolveMany:
    """Tests for SynonymResolver.resolve_many."""

    def test_collects_unresolved(self, resolver):
        resolved, unresolved = resolver.resolve_many(
            "IN", ["Mandap", "Shamiana", "Marquee", "Gazebo "]
        )
        assert resolved == {
            "banquet_wedding.ceremony_pavilion",
            "temporary_structure.marquee_tent",
        }
        assert unresolved == ["Gazebo", "Marquee"]

    def test_unresolved_logged(self, resolver, caplog):
        with caplog.at_level(logging.INFO, logger="src.taxonomy.synonyms"):
            resolver.resolve_many("US", ["Shamiana"])
        assert "Unresolved terms for region US" in caplog.text

    def test_empty_terms(self, resolver):
        assert resolver.resolve_many("IN", []) == (set(), [])


class TestIntrospection:
    """Tests for terms_for and regions."""

    def test_terms_for_node(self, resolver):
        assert resolver.terms_for("temporary_structure.marquee_tent") == [
            "Marquee",
            "Shamiana",
        ]

    def test_terms_for_node_in_region(self, resolver):
        assert resolver.terms_for("temporary_structure.marquee_tent", "gb") == ["Marquee"]

    def test_regions(self, resolver):
        assert resolver.regions() == ["GB", "IN", "US"]

    def test_len(self, resolver):
        assert len(resolver) == 4

    def test_first_entry_wins_on_duplicate_key(self):
        resolver = SynonymResolver(
            [
                SynonymEntry(region_code="IN", local_term="Pandal", canonical_node_id="a"),
                SynonymEntry(region_code="IN", local_term="pandal", canonical_node_id="a"),
            ]
        )
        assert len(resolver) == 1
        assert resolver.terms_for("a") == ["Pandal"]


class TestReferenceSynonyms:
    """Regional terms from the shipped reference taxonomy."""

    def test_majlis_gulf_regions(self, reference_registry):
        resolver = SynonymResolver.from_registry(reference_registry)
        for region in ("AE", "SA", "QA"):
            assert (
                resolver.resolve(region, "Majlis")
                == "community_gathering.traditional_majlis"
            )

    def test_shamiana_not_resolvable_in_us(self, reference_registry):
        resolver = SynonymResolver.from_registry(reference_registry)
        with pytest.raises(UnknownTermError):
            resolver.resolve("US", "Shamiana")
