"""
src.api.service.

In-process facade behind the Matching and Admin APIs.

Responsibilities
----------------
• Taxonomy snapshot loading and atomic reload
• Venue tagging and tagging validation
• Matching requests against the active snapshot
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from src.configs.config import Config
from src.configs.settings import Settings, get_settings
from src.matching.engine import CancellationToken, MatchingEngine, partition_pool
from src.matching.scoring import ScoringConfig
from src.schemas.taxonomy import TaxonomyNode
from src.schemas.venue import (
    EventRequirement,
    MatchResponse,
    ValidationFinding,
    VenueProfile,
)
from src.taxonomy.registry import SnapshotData
from src.taxonomy.snapshot import TaxonomySnapshot, TaxonomySnapshotHolder
from src.taxonomy.validator import TaxonomyValidator
from src.venues.store import InMemoryVenueStore, JsonFileVenueStore, VenueProfileStore

logger = logging.getLogger(__name__)


class VenueMatchingService:
    """
    Wires the taxonomy snapshot, venue store and matching engine together.

    Every request grabs the active snapshot once and uses it to the end,
    so a concurrent reload never mixes two taxonomy versions in one answer.
    """

    def __init__(
        self,
        holder: TaxonomySnapshotHolder,
        store: VenueProfileStore,
        scoring: Optional[ScoringConfig] = None,
        match_timeout_seconds: Optional[float] = None,
        max_workers: int = 1,
        partition_size: int = 500,
    ):
        self.holder = holder
        self.store = store
        self.scoring = scoring or ScoringConfig()
        self.match_timeout_seconds = match_timeout_seconds
        self.max_workers = max_workers
        self.partition_size = partition_size

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "VenueMatchingService":
        """
        Build the service from application settings.

        Loads matching.yaml, publishes the taxonomy snapshot found at
        TAXONOMY_SNAPSHOT_PATH and opens the venue store at VENUE_DATA_PATH
        (an empty in-memory store when unset).
        """
        settings = settings or get_settings()
        config = Config.load_matching_config(settings.MATCHING_CONFIG_PATH)
        taxonomy_cfg = config.get("taxonomy") or {}
        matching_cfg = config.get("matching") or {}

        validator = TaxonomyValidator(
            expected_subcategories_per_category=taxonomy_cfg.get(
                "expected_subcategories_per_category"
            )
        )
        holder = TaxonomySnapshotHolder(validator=validator)
        holder.load_file(settings.TAXONOMY_SNAPSHOT_PATH)

        if settings.VENUE_DATA_PATH is not None:
            store: VenueProfileStore = JsonFileVenueStore(settings.VENUE_DATA_PATH)
        else:
            store = InMemoryVenueStore()

        return cls(
            holder=holder,
            store=store,
            scoring=ScoringConfig.from_config(config),
            match_timeout_seconds=settings.MATCH_TIMEOUT_SECONDS,
            max_workers=matching_cfg.get("max_workers", 1),
            partition_size=matching_cfg.get("partition_size", 500),
        )

    # ------------------------------------------------------------------
    # ADMIN
    # ------------------------------------------------------------------

    def load_taxonomy_snapshot(
        self, version: Optional[str], data: SnapshotData
    ) -> TaxonomySnapshot:
        """
        Validate and atomically publish a taxonomy snapshot.

        Raises
        ------
        SchemaError
            If the snapshot is invalid; the active snapshot is unchanged.
        """
        return self.holder.load(version, data)

    def validate_venue_tagging(self, venue_id: str) -> List[ValidationFinding]:
        """
        Check a stored venue's tagging against the active snapshot.

        Raises
        ------
        VenueNotFoundError
            If the venue is not in the store.
        """
        venue = self.store.get_venue(venue_id)
        snapshot = self.holder.current()
        return self.holder.validator.validate_venue(venue, snapshot.registry)

    def tag_venue(self, venue: VenueProfile) -> List[ValidationFinding]:
        """
        Store a venue and return its tagging findings.

        Findings never block the write; they flag the venue for re-tagging.
        """
        if not isinstance(self.store, InMemoryVenueStore):
            raise TypeError(f"Store {self.store.store_id!r} is read-only")
        snapshot = self.holder.current()
        findings = self.holder.validator.validate_venue(venue, snapshot.registry)
        self.store.upsert(venue)
        return findings

    # ------------------------------------------------------------------
    # MATCHING
    # ------------------------------------------------------------------

    def engine(self, snapshot: Optional[TaxonomySnapshot] = None) -> MatchingEngine:
        snapshot = snapshot or self.holder.current()
        return MatchingEngine(snapshot.registry, snapshot.resolver, self.scoring)

    def match(
        self,
        requirement: EventRequirement,
        limit: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> MatchResponse:
        """
        Rank stored venues for an event requirement.

        Raises
        ------
        NotFoundError
            If a desired node id is not in the active snapshot.
        MatchCancelled
            If the request timed out or was cancelled.
        """
        snapshot = self.holder.current()
        engine = self.engine(snapshot)
        validator = self.holder.validator

        validator.validate_requirement(requirement, snapshot.registry)
        prepared = engine.prepare(requirement)
        pool = self.store.stream_venues_for_nodes(engine.candidate_node_ids(prepared))

        if cancel_token is None and self.match_timeout_seconds is not None:
            cancel_token = CancellationToken(self.match_timeout_seconds)

        if self.max_workers > 1:
            response = engine.run_partitioned(
                requirement,
                partition_pool(pool, self.partition_size),
                max_workers=self.max_workers,
                cancel_token=cancel_token,
                limit=limit,
                prepared=prepared,
            )
        else:
            response = engine.run_prepared(
                prepared, pool, cancel_token=cancel_token, limit=limit
            )

        logger.info(
            f"Match returned {len(response.results)} venues "
            f"({response.candidates_seen} candidates seen)",
            extra={
                "taxonomy_version": snapshot.version,
                "region_code": requirement.region_code,
            },
        )
        return response

    # ------------------------------------------------------------------
    # READS
    # ------------------------------------------------------------------

    def resolve_term(self, region_code: str, term: str) -> TaxonomyNode:
        """
        Resolve a regional term to its taxonomy node.

        Raises
        ------
        UnknownTermError
            If the term has no entry for the region.
        """
        snapshot = self.holder.current()
        return snapshot.registry.resolve(snapshot.resolver.resolve(region_code, term))

    def get_node(self, node_id: str) -> TaxonomyNode:
        return self.holder.current().registry.resolve(node_id)

    def list_categories(self) -> List[Dict[str, Any]]:
        return self.holder.current().registry.to_summary()
