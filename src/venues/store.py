"""
Venue Profile Store.

Abstract base class defining the read interface the matching engine uses
over persisted venue records, plus two concrete stores.

Stores are read-only from the engine's perspective; retries on transient
read failures belong to the concrete store, never to the scoring loop.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union

from pydantic import ValidationError

from src.schemas.venue import VenueProfile
from src.taxonomy.errors import VenueNotFoundError


class VenueProfileStore(ABC):
    """
    Abstract base class for venue profile stores.

    Subclasses must implement:
        - stream_all_venues(): Lazily yield every venue
        - get_venues_by_node(): Venues assigned to a taxonomy node
        - get_venue(): Single venue by id
    """

    def __init__(self, store_id: str = "venues"):
        self.store_id = store_id
        self.logger = logging.getLogger(f"src.venues.{store_id}")

    @abstractmethod
    def stream_all_venues(self) -> Iterator[VenueProfile]:
        """Yield every venue in the store (pull-based, single pass)."""
        pass

    @abstractmethod
    def get_venues_by_node(self, node_id: str) -> List[VenueProfile]:
        """Get all venues whose assigned_node_ids contain node_id."""
        pass

    @abstractmethod
    def get_venue(self, venue_id: str) -> VenueProfile:
        """
        Get a venue by id.

        Raises:
            VenueNotFoundError: If the venue does not exist
        """
        pass

    def stream_venues_for_nodes(self, node_ids: Iterable[str]) -> Iterator[VenueProfile]:
        """
        Yield venues assigned to any of node_ids, each venue once.

        Nodes are visited in sorted order so the pool order is reproducible.
        """
        seen = set()
        for node_id in sorted(set(node_ids)):
            for venue in self.get_venues_by_node(node_id):
                if venue.venue_id not in seen:
                    seen.add(venue.venue_id)
                    yield venue

    def close(self) -> None:
        """
        Release any resources held by the store.

        Override in subclasses that hold resources (e.g., connections).
        """
        pass

    def __enter__(self) -> "VenueProfileStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class InMemoryVenueStore(VenueProfileStore):
    """
    Dict-backed venue store with a node -> venue ids index.

    upsert() is the write path used by the ingestion collaborator.
    """

    def __init__(self, venues: Optional[Iterable[VenueProfile]] = None, store_id: str = "memory"):
        super().__init__(store_id)
        self._venues: Dict[str, VenueProfile] = {}
        self._node_index: Dict[str, List[str]] = {}
        for venue in venues or []:
            self.upsert(venue)

    def __len__(self) -> int:
        return len(self._venues)

    def upsert(self, venue: VenueProfile) -> None:
        """Insert or replace a venue and re-index its node assignments."""
        previous = self._venues.get(venue.venue_id)
        if previous is not None:
            for node_id in previous.assigned_node_ids:
                ids = self._node_index.get(node_id, [])
                if venue.venue_id in ids:
                    ids.remove(venue.venue_id)
        self._venues[venue.venue_id] = venue
        for node_id in venue.assigned_node_ids:
            self._node_index.setdefault(node_id, []).append(venue.venue_id)

    def remove(self, venue_id: str) -> None:
        venue = self.get_venue(venue_id)
        for node_id in venue.assigned_node_ids:
            self._node_index[node_id].remove(venue_id)
        del self._venues[venue_id]

    def stream_all_venues(self) -> Iterator[VenueProfile]:
        # Snapshot the values so concurrent upserts don't break iteration
        yield from list(self._venues.values())

    def get_venues_by_node(self, node_id: str) -> List[VenueProfile]:
        return [self._venues[vid] for vid in self._node_index.get(node_id, [])]

    def get_venue(self, venue_id: str) -> VenueProfile:
        try:
            return self._venues[venue_id]
        except KeyError:
            raise VenueNotFoundError(venue_id) from None


class JsonFileVenueStore(VenueProfileStore):
    """
    Venue store over a JSON file.

    Supports a JSON array of venue objects (``.json``) or one venue object
    per line (``.jsonl``). Records that fail validation are logged and
    skipped; they are the ingestion collaborator's to fix.
    """

    def __init__(self, path: Union[str, Path], store_id: str = "json_file"):
        super().__init__(store_id)
        self.path = Path(path)
        if not self.path.exists():
            raise FileNotFoundError(f"Venue data not found: {self.path}")

    def _iter_raw(self) -> Iterator[dict]:
        with open(self.path, "r", encoding="utf-8") as f:
            if self.path.suffix == ".jsonl":
                for line_no, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        yield json.loads(line)
                    except json.JSONDecodeError as e:
                        self.logger.warning(
                            f"Skipping malformed line {line_no} in {self.path}: {e}"
                        )
            else:
                data = json.load(f)
                if isinstance(data, dict):
                    data = data.get("venues", [])
                yield from data

    def stream_all_venues(self) -> Iterator[VenueProfile]:
        for raw in self._iter_raw():
            if not isinstance(raw, dict):
                self.logger.warning(
                    f"Skipping non-object venue record in {self.path}: {raw!r}"
                )
                continue
            try:
                yield VenueProfile.model_validate(raw)
            except ValidationError as e:
                self.logger.warning(
                    f"Skipping invalid venue record {raw.get('venue_id', '?')}: "
                    f"{e.error_count()} error(s)"
                )

    def get_venues_by_node(self, node_id: str) -> List[VenueProfile]:
        return [v for v in self.stream_all_venues() if node_id in v.assigned_node_ids]

    def stream_venues_for_nodes(self, node_ids: Iterable[str]) -> Iterator[VenueProfile]:
        """Yield venues assigned to any of node_ids in one pass over the file."""
        wanted = frozenset(node_ids)
        seen = set()
        for venue in self.stream_all_venues():
            if venue.venue_id in seen or wanted.isdisjoint(venue.assigned_node_ids):
                continue
            seen.add(venue.venue_id)
            yield venue

    def get_venue(self, venue_id: str) -> VenueProfile:
        for venue in self.stream_all_venues():
            if venue.venue_id == venue_id:
                return venue
        raise VenueNotFoundError(venue_id)
