"""
Unit tests for the taxonomy registry.

Tests for snapshot loading, integrity checks, lookups and immutability.
"""

import json

import pytest

from src.schemas.taxonomy import NodeKind, TaxonomySnapshotDocument
from src.schemas.venue import FindingCode
from src.taxonomy.errors import NotFoundError, SchemaError
from src.taxonomy.registry import TaxonomyRegistry, parse_snapshot_document
from src.taxonomy.validator import TaxonomyValidator


class TestLoadSnapshot:
    """Tests for TaxonomyRegistry.load_snapshot."""

    def test_load_from_dict(self, snapshot_data):
        registry = TaxonomyRegistry.load_snapshot(snapshot_data)
        assert registry.version == "test-1"
        assert registry.published_at == "2026-10-01"
        assert len(registry) == 12
        assert len(registry.categories()) == 3

    def test_load_from_json_text(self, snapshot_data):
        registry = TaxonomyRegistry.load_snapshot(json.dumps(snapshot_data))
        assert "banquet_wedding.banquet_hall" in registry

    def test_load_from_document(self, snapshot_data):
        document = TaxonomySnapshotDocument.model_validate(snapshot_data)
        registry = TaxonomyRegistry.load_snapshot(document)
        assert registry.version == "test-1"

    def test_version_argument_overrides_document(self, snapshot_data):
        registry = TaxonomyRegistry.load_snapshot(snapshot_data, version="2027.01")
        assert registry.version == "2027.01"

    def test_missing_version_rejected(self, snapshot_data):
        del snapshot_data["version"]
        with pytest.raises(SchemaError, match="no version"):
            TaxonomyRegistry.load_snapshot(snapshot_data)

    def test_malformed_document(self):
        """Pydantic failures are wrapped into SchemaError with locations."""
        with pytest.raises(SchemaError) as exc_info:
            TaxonomyRegistry.load_snapshot({"version": "x", "categories": [{"id": "a"}]})
        assert any(p.startswith("categories.0.name") for p in exc_info.value.problems)

    def test_invalid_json_text(self):
        with pytest.raises(SchemaError):
            TaxonomyRegistry.load_snapshot("{not json")

    def test_orphan_subcategory(self, snapshot_data):
        snapshot_data["nodes"] = [
            {
                "id": "ghost.hall",
                "kind": "subcategory",
                "parent_id": "ghost",
                "name": "Ghost Hall",
            }
        ]
        with pytest.raises(SchemaError, match="orphan subcategory 'ghost.hall'"):
            TaxonomyRegistry.load_snapshot(snapshot_data)

    def test_duplicate_node_id(self, snapshot_data):
        subs = snapshot_data["categories"][1]["subcategories"]
        subs.append(dict(subs[0]))
        with pytest.raises(SchemaError, match="duplicate node id"):
            TaxonomyRegistry.load_snapshot(snapshot_data)

    def test_unknown_required_tag(self, snapshot_data):
        sub = snapshot_data["categories"][0]["subcategories"][2]
        sub["required_amenity_tags"] = ["space.helipad"]
        with pytest.raises(SchemaError, match="unknown tag 'space.helipad'"):
            TaxonomyRegistry.load_snapshot(snapshot_data)

    def test_retired_required_tag(self, snapshot_data):
        sub = snapshot_data["categories"][0]["subcategories"][2]
        sub["required_amenity_tags"] = ["av.overhead_projector"]
        with pytest.raises(SchemaError, match="retired tag"):
            TaxonomyRegistry.load_snapshot(snapshot_data)

    def test_category_without_subcategories(self, snapshot_data):
        snapshot_data["categories"].append({"id": "empty", "name": "Empty"})
        with pytest.raises(SchemaError, match="'empty' has no subcategories"):
            TaxonomyRegistry.load_snapshot(snapshot_data)

    def test_synonym_to_unknown_node(self, snapshot_data):
        snapshot_data["synonyms"].append(
            {"region_code": "AE", "local_term": "Majlis", "canonical_node_id": "nope"}
        )
        with pytest.raises(SchemaError, match="unknown node 'nope'"):
            TaxonomyRegistry.load_snapshot(snapshot_data)

    def test_conflicting_synonym(self, snapshot_data):
        """One (region, term) pair may not map to two nodes."""
        snapshot_data["synonyms"].append(
            {
                "region_code": "in",
                "local_term": "mandap ",
                "canonical_node_id": "banquet_wedding.banquet_hall",
            }
        )
        with pytest.raises(SchemaError, match="maps to both"):
            TaxonomyRegistry.load_snapshot(snapshot_data)

    def test_identical_synonym_collapses(self, snapshot_data):
        snapshot_data["synonyms"].append(dict(snapshot_data["synonyms"][0]))
        registry = TaxonomyRegistry.load_snapshot(snapshot_data)
        assert len(registry.synonyms) == 4

    def test_all_problems_reported(self, snapshot_data):
        snapshot_data["categories"].append({"id": "empty", "name": "Empty"})
        snapshot_data["synonyms"].append(
            {"region_code": "AE", "local_term": "Majlis", "canonical_node_id": "nope"}
        )
        with pytest.raises(SchemaError) as exc_info:
            TaxonomyRegistry.load_snapshot(snapshot_data)
        assert len(exc_info.value.problems) == 2

    def test_unexpected_subcategory_count_is_finding(self, snapshot_data):
        """A count deviation is reported, not fatal."""
        snapshot_data["categories"][1]["subcategories"].pop(0)
        registry = TaxonomyRegistry.load_snapshot(
            snapshot_data,
            validator=TaxonomyValidator(expected_subcategories_per_category=3),
        )
        assert [f.code for f in registry.load_findings] == [
            FindingCode.UNEXPECTED_SUBCATEGORY_COUNT
        ]
        assert registry.load_findings[0].subject == "banquet_wedding"


class TestFromFile:
    """Tests for TaxonomyRegistry.from_file."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            TaxonomyRegistry.from_file(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{")
        with pytest.raises(SchemaError, match="not valid JSON"):
            TaxonomyRegistry.from_file(path)

    def test_round_trip_file(self, tmp_path, snapshot_data):
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps(snapshot_data))
        registry = TaxonomyRegistry.from_file(path, version="file-1")
        assert registry.version == "file-1"


class TestReferenceTaxonomy:
    """Tests against the shipped reference taxonomy."""

    def test_fifteen_categories_of_three(self, reference_registry):
        categories = reference_registry.categories()
        assert len(categories) == 15
        for category in categories:
            assert len(reference_registry.descendants_of(category.id)) == 3
        assert reference_registry.load_findings == ()

    def test_convention_center_tags(self, reference_registry):
        node = reference_registry.resolve("convention_exhibition.convention_center")
        assert node.required_amenity_tags == {
            "av.simultaneous_interpretation",
            "space.breakout_rooms",
            "space.loading_dock",
        }

    def test_retired_tags_resolvable(self, reference_registry):
        assert "av.overhead_projector" in reference_registry.retired_amenity_tags
        assert not reference_registry.is_known_tag("av.overhead_projector")


class TestLookups:
    """Tests for registry lookups."""

    def test_resolve(self, registry):
        node = registry.resolve("banquet_wedding.ceremony_pavilion")
        assert node.kind == NodeKind.SUBCATEGORY
        assert node.parent_id == "banquet_wedding"

    def test_resolve_unknown(self, registry):
        with pytest.raises(NotFoundError) as exc_info:
            registry.resolve("nope")
        assert exc_info.value.node_id == "nope"
        assert "not found" in str(exc_info.value)

    def test_not_found_is_key_error(self, registry):
        with pytest.raises(KeyError):
            registry.resolve("nope")

    def test_descendants_in_declaration_order(self, registry):
        ids = [n.id for n in registry.descendants_of("banquet_wedding")]
        assert ids == [
            "banquet_wedding.banquet_hall",
            "banquet_wedding.wedding_lawn",
            "banquet_wedding.ceremony_pavilion",
        ]

    def test_descendants_of_subcategory(self, registry):
        with pytest.raises(NotFoundError, match="is not a category"):
            registry.descendants_of("banquet_wedding.banquet_hall")

    def test_descendants_of_unknown(self, registry):
        with pytest.raises(NotFoundError):
            registry.descendants_of("nope")

    def test_parent_and_family(self, registry):
        assert registry.parent_of("banquet_wedding") is None
        assert registry.parent_of("banquet_wedding.banquet_hall").id == "banquet_wedding"
        assert registry.family_of("banquet_wedding.banquet_hall") == "banquet_wedding"
        assert registry.family_of("banquet_wedding") == "banquet_wedding"

    def test_retracted_node_still_resolvable(self, registry):
        assert registry.resolve("temporary_structure.desert_camp").retracted

    def test_iteration_in_declaration_order(self, registry):
        assert [n.id for n in registry][0] == "convention_exhibition"

    def test_to_summary(self, registry):
        summary = registry.to_summary()
        assert [c["id"] for c in summary] == [
            "convention_exhibition",
            "banquet_wedding",
            "temporary_structure",
        ]
        assert summary[0]["venue_type"] == "indoor"
        assert len(summary[0]["subcategories"]) == 3


class TestImmutability:
    """The registry cannot be mutated after load."""

    def test_nodes_mapping_read_only(self, registry):
        with pytest.raises(TypeError):
            registry.nodes["new"] = registry.resolve("banquet_wedding")

    def test_vocabulary_frozen(self, registry):
        assert isinstance(registry.amenity_vocabulary, frozenset)

    def test_parse_returns_same_document(self, snapshot_data):
        document = TaxonomySnapshotDocument.model_validate(snapshot_data)
        assert parse_snapshot_document(document) is document
