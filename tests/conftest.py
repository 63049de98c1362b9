"""
Shared pytest fixtures for the Venue Matching Engine test suite.

Provides a small taxonomy snapshot, the registry / resolver built from it,
and a factory fixture for VenueProfile test objects.
"""

import copy
from typing import Iterable, Optional

import pytest

from src.configs.config import Config
from src.schemas.taxonomy import VenueType
from src.schemas.venue import VenueProfile
from src.taxonomy.registry import TaxonomyRegistry
from src.taxonomy.synonyms import SynonymResolver
from src.taxonomy.validator import TaxonomyValidator

SNAPSHOT = {
    "version": "test-1",
    "published_at": "2026-10-01",
    "amenity_tags": [
        "av.pa_system",
        "av.projector",
        "av.simultaneous_interpretation",
        "av.broadcast_studio",
        "space.breakout_rooms",
        "space.loading_dock",
        "catering.in_house",
        "outdoor.lawn",
        "power.generator",
    ],
    "retired_amenity_tags": ["av.overhead_projector"],
    "categories": [
        {
            "id": "convention_exhibition",
            "name": "Convention & Exhibition Complexes",
            "venue_type": "indoor",
            "subcategories": [
                {
                    "id": "convention_exhibition.convention_center",
                    "name": "Convention Center",
                    "required_amenity_tags": [
                        "av.simultaneous_interpretation",
                        "space.loading_dock",
                    ],
                    "exemplars": ["ExCeL London"],
                },
                {
                    "id": "convention_exhibition.exhibition_hall",
                    "name": "Exhibition Hall",
                    "required_amenity_tags": ["space.loading_dock"],
                },
                {
                    "id": "convention_exhibition.trade_fair_grounds",
                    "name": "Trade Fair Grounds",
                    "venue_type": "hybrid",
                },
            ],
        },
        {
            "id": "banquet_wedding",
            "name": "Banquet & Wedding Venues",
            "subcategories": [
                {"id": "banquet_wedding.banquet_hall", "name": "Banquet Hall"},
                {
                    "id": "banquet_wedding.wedding_lawn",
                    "name": "Wedding Lawn",
                    "venue_type": "outdoor",
                    "required_amenity_tags": ["outdoor.lawn"],
                },
                {
                    "id": "banquet_wedding.ceremony_pavilion",
                    "name": "Ceremony Pavilion",
                    "venue_type": "outdoor",
                },
            ],
        },
        {
            "id": "temporary_structure",
            "name": "Temporary Structures",
            "venue_type": "outdoor",
            "subcategories": [
                {
                    "id": "temporary_structure.marquee_tent",
                    "name": "Marquee Tent",
                    "venue_type": "outdoor",
                    "required_amenity_tags": ["power.generator"],
                },
                {"id": "temporary_structure.geodesic_dome", "name": "Geodesic Dome"},
                {
                    "id": "temporary_structure.desert_camp",
                    "name": "Desert Camp",
                    "retracted": True,
                },
            ],
        },
    ],
    "synonyms": [
        {
            "region_code": "IN",
            "local_term": "Mandap",
            "canonical_node_id": "banquet_wedding.ceremony_pavilion",
        },
        {
            "region_code": "IN",
            "local_term": "Shamiana",
            "canonical_node_id": "temporary_structure.marquee_tent",
        },
        {
            "region_code": "GB",
            "local_term": "Marquee",
            "canonical_node_id": "temporary_structure.marquee_tent",
        },
        {
            "region_code": "US",
            "local_term": "Convention Center",
            "canonical_node_id": "convention_exhibition.convention_center",
        },
    ],
}


@pytest.fixture
def snapshot_data():
    """Return a fresh, mutable copy of the small test snapshot."""
    return copy.deepcopy(SNAPSHOT)


@pytest.fixture
def registry(snapshot_data):
    """Return a TaxonomyRegistry built from the small test snapshot."""
    return TaxonomyRegistry.load_snapshot(snapshot_data)


@pytest.fixture
def resolver(registry):
    """Return the SynonymResolver of the small test snapshot."""
    return SynonymResolver.from_registry(registry)


@pytest.fixture(scope="session")
def reference_registry():
    """
    Return the registry of the shipped reference taxonomy.

    Session-scoped: loading it is the slowest fixture in the suite.
    """
    return TaxonomyRegistry.from_file(
        Config.get_taxonomy_path(),
        validator=TaxonomyValidator(expected_subcategories_per_category=3),
    )


@pytest.fixture
def create_venue():
    """
    Return a function that creates VenueProfile objects with sensible defaults.

    Example:
        venue = create_venue("v-1", nodes=["banquet_wedding.banquet_hall"])
    """

    def _create_venue(
        venue_id: str = "venue-1",
        nodes: Iterable[str] = ("convention_exhibition.convention_center",),
        tags: Iterable[str] = (),
        capacity: int = 1000,
        venue_type: VenueType = VenueType.INDOOR,
        name: Optional[str] = None,
        **kwargs,
    ) -> VenueProfile:
        return VenueProfile(
            venue_id=venue_id,
            name=name or f"Venue {venue_id}",
            assigned_node_ids=list(nodes),
            amenity_tags=list(tags),
            capacity=capacity,
            venue_type=venue_type,
            **kwargs,
        )

    return _create_venue
