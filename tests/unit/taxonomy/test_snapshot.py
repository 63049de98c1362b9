"""
Unit tests for snapshot publication and reload.
"""

import json
import threading

import pytest

from src.taxonomy.errors import SchemaError, TaxonomyError
from src.taxonomy.snapshot import TaxonomySnapshot, TaxonomySnapshotHolder


class TestTaxonomySnapshot:
    """Tests for TaxonomySnapshot.build."""

    def test_build_bundles_registry_and_resolver(self, snapshot_data):
        snapshot = TaxonomySnapshot.build(snapshot_data, version="v1")
        assert snapshot.version == "v1"
        assert snapshot.resolver.resolve("IN", "Mandap") in snapshot.registry
        assert snapshot.loaded_at.tzinfo is not None


class TestTaxonomySnapshotHolder:
    """Tests for TaxonomySnapshotHolder."""

    def test_current_before_load(self):
        holder = TaxonomySnapshotHolder()
        assert not holder.is_loaded
        with pytest.raises(TaxonomyError, match="No taxonomy snapshot"):
            holder.current()

    def test_load_publishes(self, snapshot_data):
        holder = TaxonomySnapshotHolder()
        snapshot = holder.load("v1", snapshot_data)
        assert holder.current() is snapshot
        assert holder.history() == ["v1"]

    def test_load_uses_document_version(self, snapshot_data):
        holder = TaxonomySnapshotHolder()
        assert holder.load(None, snapshot_data).version == "test-1"

    def test_failed_reload_keeps_previous(self, snapshot_data):
        """A rejected snapshot never replaces the active one."""
        holder = TaxonomySnapshotHolder()
        first = holder.load("v1", snapshot_data)

        snapshot_data["categories"].append({"id": "empty", "name": "Empty"})
        with pytest.raises(SchemaError):
            holder.load("v2", snapshot_data)

        assert holder.current() is first
        assert holder.history() == ["v1"]

    def test_reader_keeps_grabbed_snapshot(self, snapshot_data):
        """A request holding v1 is unaffected by a reload to v2."""
        holder = TaxonomySnapshotHolder()
        holder.load("v1", snapshot_data)
        in_flight = holder.current()

        snapshot_data["categories"][1]["subcategories"][0]["retracted"] = True
        holder.load("v2", snapshot_data)

        assert in_flight.version == "v1"
        assert not in_flight.registry.resolve("banquet_wedding.banquet_hall").retracted
        assert holder.current().registry.resolve("banquet_wedding.banquet_hall").retracted

    def test_known_term_stable_across_reloads(self, snapshot_data):
        """A reload that keeps a synonym entry resolves it to the same node."""
        holder = TaxonomySnapshotHolder()
        holder.load("v1", snapshot_data)
        before = holder.current().resolver.resolve("IN", "Mandap")

        snapshot_data["categories"][1]["subcategories"][1]["retracted"] = True
        snapshot_data["synonyms"].append(
            {
                "region_code": "IN",
                "local_term": "Banquet Lawn",
                "canonical_node_id": "banquet_wedding.banquet_hall",
            }
        )
        holder.load("v2", snapshot_data)

        assert holder.current().version == "v2"
        assert holder.current().resolver.resolve("IN", "Mandap") == before
        assert before == "banquet_wedding.ceremony_pavilion"

    def test_concurrent_reloads_serialize(self, snapshot_data):
        holder = TaxonomySnapshotHolder()
        versions = [f"v{i}" for i in range(8)]
        threads = [
            threading.Thread(target=holder.load, args=(v, snapshot_data))
            for v in versions
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert sorted(holder.history()) == sorted(versions)
        assert holder.current().version == holder.history()[-1]

    def test_load_file(self, tmp_path, snapshot_data):
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps(snapshot_data))
        holder = TaxonomySnapshotHolder()
        assert holder.load_file(path).version == "test-1"

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            TaxonomySnapshotHolder().load_file(tmp_path / "missing.json")

    def test_initial_snapshot(self, snapshot_data):
        snapshot = TaxonomySnapshot.build(snapshot_data)
        holder = TaxonomySnapshotHolder(snapshot=snapshot)
        assert holder.is_loaded
        assert holder.history() == ["test-1"]
