"""
Matching & Scoring Engine.

Given an EventRequirement and a pull-based candidate pool, produces a ranked,
explainable list of ScoredVenue results.

Algorithm:
1. Hard filter (silent): taxonomy family, required amenities, capacity
   bounds, venue type preference.
2. Soft score: weighted sum of category_match, amenity_coverage and
   capacity_fit (see src.matching.scoring).
3. Ranking: score desc, amenity_coverage desc, venue_id asc.

The engine is pure and synchronous. It holds a reference to one immutable
taxonomy snapshot, so a reload never changes the outcome of a request that
is already running.
"""

import heapq
import itertools
import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple

from src.matching.scoring import (
    PreparedRequirement,
    ScoringConfig,
    TaxonomyMatch,
    amenity_coverage,
    capacity_fit,
    combine,
    passes_amenity_filter,
    passes_capacity_filter,
    passes_venue_type_filter,
    round_breakdown,
)
from src.schemas.venue import EventRequirement, MatchResponse, ScoredVenue, VenueProfile
from src.taxonomy.errors import MatchCancelled
from src.taxonomy.registry import TaxonomyRegistry
from src.taxonomy.synonyms import SynonymResolver

logger = logging.getLogger(__name__)


# ============================================================================
# CANCELLATION
# ============================================================================


class CancellationToken:
    """
    Cooperative cancellation for a match call.

    The engine checks the token before pulling each candidate, so a
    cancelled or timed-out match stops reading the pool promptly.
    """

    def __init__(self, timeout_seconds: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = (
            time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        )

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def check(self, candidates_seen: int = 0) -> None:
        """
        Raises:
            MatchCancelled: If cancelled or past the deadline
        """
        if self._event.is_set():
            raise MatchCancelled(candidates_seen, "cancelled")
        if self.expired:
            raise MatchCancelled(candidates_seen, "timed out")


# ============================================================================
# RESULTS
# ============================================================================


@dataclass
class ScanStats:
    """Counters for one pass over a candidate pool."""

    candidates_seen: int = 0
    candidates_rejected: int = 0

    def merge(self, other: "ScanStats") -> None:
        self.candidates_seen += other.candidates_seen
        self.candidates_rejected += other.candidates_rejected


def _dedupe_key(result: ScoredVenue) -> Tuple:
    return result.rank_key + (tuple(result.matched_node_ids),)


def partition_pool(
    pool: Iterable[VenueProfile], partition_size: int
) -> Iterator[List[VenueProfile]]:
    """Split a candidate pool into lists of at most partition_size venues."""
    if partition_size < 1:
        raise ValueError("partition_size must be >= 1")
    iterator = iter(pool)
    try:
        while True:
            chunk = list(itertools.islice(iterator, partition_size))
            if not chunk:
                return
            yield chunk
    finally:
        close = getattr(iterator, "close", None)
        if close is not None:
            close()


# ============================================================================
# ENGINE
# ============================================================================


class MatchingEngine:
    """
    Scores and ranks venues for an event requirement against one snapshot.

    Cheap to construct; build one per request from the current snapshot.
    """

    def __init__(
        self,
        registry: TaxonomyRegistry,
        resolver: Optional[SynonymResolver] = None,
        config: Optional[ScoringConfig] = None,
    ):
        self.registry = registry
        self.resolver = resolver or SynonymResolver.from_registry(registry)
        self.config = config or ScoringConfig()

    # ========================================================================
    # PREPARATION
    # ========================================================================

    def prepare(self, requirement: EventRequirement) -> PreparedRequirement:
        """
        Resolve desired ids and regional terms against the snapshot.

        Raises:
            NotFoundError: If a desired node id does not exist

        Unknown regional terms do not raise; they are carried in
        PreparedRequirement.unresolved_terms.
        """
        desired = set(requirement.desired_node_ids)
        unresolved: List[str] = []
        if requirement.desired_terms:
            resolved, unresolved = self.resolver.resolve_many(
                requirement.region_code, requirement.desired_terms
            )
            desired |= resolved

        exact: set = set()
        families: set = set()
        for node_id in sorted(desired):
            node = self.registry.resolve(node_id)
            exact.add(node.id)
            if node.is_category:
                exact.update(sub.id for sub in self.registry.descendants_of(node.id))
            else:
                families.add(node.parent_id)

        return PreparedRequirement(
            resolved_node_ids=frozenset(desired),
            exact_node_ids=frozenset(exact),
            family_ids=frozenset(families),
            required_amenity_tags=requirement.required_amenity_tags,
            preferred_amenity_tags=requirement.preferred_amenity_tags,
            min_capacity=requirement.min_capacity,
            max_capacity=requirement.max_capacity,
            venue_type_preference=requirement.venue_type_preference,
            unresolved_terms=tuple(unresolved),
        )

    def candidate_node_ids(self, prepared: PreparedRequirement) -> FrozenSet[str]:
        """
        Every node a matching venue could be assigned to.

        Used to pull a narrowed candidate pool from a venue store: each
        category touched by the requirement plus all of its subcategories.
        """
        families = set(prepared.family_ids)
        families.update(self.registry.family_of(n) for n in prepared.exact_node_ids)
        node_ids = set(families)
        for category_id in families:
            node_ids.update(sub.id for sub in self.registry.descendants_of(category_id))
        return frozenset(node_ids)

    # ========================================================================
    # PER-VENUE SCORING
    # ========================================================================

    def taxonomy_match(
        self, venue: VenueProfile, prepared: PreparedRequirement
    ) -> Optional[TaxonomyMatch]:
        """
        Apply the taxonomy filter to one venue.

        Assigned nodes unknown to the snapshot or retracted from it never
        match; the validator reports them separately.

        Returns:
            TaxonomyMatch, or None if the venue is outside every desired family
        """
        live = [
            node_id
            for node_id in venue.assigned_node_ids
            if node_id in self.registry and not self.registry.resolve(node_id).retracted
        ]

        exact = sorted(n for n in live if n in prepared.exact_node_ids)
        if exact:
            return TaxonomyMatch(category_match=1.0, matched_node_ids=tuple(exact))

        family = sorted(
            n for n in live if self.registry.family_of(n) in prepared.family_ids
        )
        if family:
            return TaxonomyMatch(
                category_match=self.config.category_partial_credit,
                matched_node_ids=tuple(family),
            )
        return None

    def score_venue(
        self, venue: VenueProfile, prepared: PreparedRequirement
    ) -> Optional[ScoredVenue]:
        """
        Score one venue.

        Returns:
            ScoredVenue, or None if the venue fails any hard filter
        """
        if not passes_capacity_filter(
            venue.capacity, prepared.min_capacity, prepared.max_capacity
        ):
            return None
        if not passes_venue_type_filter(venue, prepared.venue_type_preference):
            return None
        if not passes_amenity_filter(venue, prepared.required_amenity_tags):
            return None
        match = self.taxonomy_match(venue, prepared)
        if match is None:
            return None

        precision = self.config.score_precision
        breakdown = round_breakdown(
            match.category_match,
            amenity_coverage(prepared.preferred_amenity_tags, venue.amenity_tags),
            capacity_fit(venue.capacity, prepared.min_capacity, prepared.max_capacity),
            precision,
        )
        return ScoredVenue(
            venue_id=venue.venue_id,
            score=combine(breakdown, self.config.weights, precision),
            subscores=breakdown,
            matched_node_ids=list(match.matched_node_ids),
        )

    # ========================================================================
    # POOL SCANS
    # ========================================================================

    def _scan(
        self,
        prepared: PreparedRequirement,
        pool: Iterable[VenueProfile],
        cancel_token: Optional[CancellationToken] = None,
    ) -> Tuple[List[ScoredVenue], ScanStats]:
        """Single pass over a pool; keeps the best-ranked record per venue_id."""
        stats = ScanStats()
        best: Dict[str, ScoredVenue] = {}
        iterator = iter(pool)
        try:
            while True:
                if cancel_token is not None:
                    cancel_token.check(stats.candidates_seen)
                try:
                    venue = next(iterator)
                except StopIteration:
                    break
                stats.candidates_seen += 1

                result = self.score_venue(venue, prepared)
                if result is None:
                    stats.candidates_rejected += 1
                    continue
                current = best.get(result.venue_id)
                if current is None or _dedupe_key(result) < _dedupe_key(current):
                    best[result.venue_id] = result
        finally:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()

        return sorted(best.values(), key=_dedupe_key), stats

    @staticmethod
    def _apply_limit(
        ranked: Iterable[ScoredVenue], limit: Optional[int]
    ) -> List[ScoredVenue]:
        if limit is None:
            return list(ranked)
        if limit < 0:
            raise ValueError("limit must be >= 0")
        return list(itertools.islice(ranked, limit))

    def run(
        self,
        requirement: EventRequirement,
        candidate_pool: Iterable[VenueProfile],
        *,
        cancel_token: Optional[CancellationToken] = None,
        limit: Optional[int] = None,
    ) -> MatchResponse:
        """
        Match and return the full response (results plus scan details).

        Raises:
            NotFoundError: A desired node id does not exist
            MatchCancelled: The token was cancelled or timed out mid-scan
        """
        return self.run_prepared(
            self.prepare(requirement),
            candidate_pool,
            cancel_token=cancel_token,
            limit=limit,
        )

    def run_prepared(
        self,
        prepared: PreparedRequirement,
        candidate_pool: Iterable[VenueProfile],
        *,
        cancel_token: Optional[CancellationToken] = None,
        limit: Optional[int] = None,
    ) -> MatchResponse:
        """run() for a requirement already resolved with prepare()."""
        if not prepared.resolved_node_ids:
            # Nothing to match against, every term was unresolved
            return self._response(prepared, [], ScanStats())

        ranked, stats = self._scan(prepared, candidate_pool, cancel_token)
        results = self._apply_limit(ranked, limit)
        logger.debug(
            f"Matched {len(ranked)} of {stats.candidates_seen} candidates "
            f"({stats.candidates_rejected} rejected) on taxonomy {self.registry.version}"
        )
        return self._response(prepared, results, stats)

    def match(
        self,
        requirement: EventRequirement,
        candidate_pool: Iterable[VenueProfile],
        *,
        cancel_token: Optional[CancellationToken] = None,
        limit: Optional[int] = None,
    ) -> List[ScoredVenue]:
        """
        Rank the venues of candidate_pool for requirement.

        The pool is consumed in a single pass. An empty list is a valid
        outcome, never an error.
        """
        return self.run(
            requirement, candidate_pool, cancel_token=cancel_token, limit=limit
        ).results

    def run_partitioned(
        self,
        requirement: EventRequirement,
        partitions: Iterable[Iterable[VenueProfile]],
        *,
        max_workers: int = 4,
        cancel_token: Optional[CancellationToken] = None,
        limit: Optional[int] = None,
        prepared: Optional[PreparedRequirement] = None,
    ) -> MatchResponse:
        """
        Score partitions of the pool in parallel and k-way merge the results.

        Each partition is ranked independently; heapq.merge combines them
        with the same ranking key, so the output is identical to a
        single-pass match over the concatenated pool.

        Pass prepared to reuse a requirement already resolved with prepare().
        """
        prepared = prepared or self.prepare(requirement)
        if not prepared.resolved_node_ids:
            return self._response(prepared, [], ScanStats())

        token = cancel_token or CancellationToken()
        partials: List[List[ScoredVenue]] = []
        stats = ScanStats()
        parts = iter(partitions)
        pending: Set[Future] = set()
        exhausted = False

        try:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                try:
                    while True:
                        # At most max_workers partitions are pulled ahead of the workers
                        while not exhausted and len(pending) < max_workers:
                            token.check(stats.candidates_seen)
                            part = next(parts, None)
                            if part is None:
                                exhausted = True
                                break
                            pending.add(executor.submit(self._scan, prepared, part, token))
                        if not pending:
                            break

                        done, pending = wait(pending, return_when=FIRST_COMPLETED)
                        for future in done:
                            ranked, part_stats = future.result()
                            partials.append(ranked)
                            stats.merge(part_stats)
                except MatchCancelled:
                    # Stop the remaining workers before the executor joins them
                    token.cancel()
                    for future in pending:
                        future.cancel()
                    raise
        finally:
            close = getattr(parts, "close", None)
            if close is not None:
                close()

        merged = heapq.merge(*partials, key=_dedupe_key)
        seen = set()
        deduped = []
        for result in merged:
            if result.venue_id in seen:
                continue
            seen.add(result.venue_id)
            deduped.append(result)

        results = self._apply_limit(deduped, limit)
        logger.debug(
            f"Partitioned match over {len(partials)} partitions: "
            f"{len(deduped)} of {stats.candidates_seen} candidates kept"
        )
        return self._response(prepared, results, stats)

    def match_partitioned(
        self,
        requirement: EventRequirement,
        partitions: Iterable[Iterable[VenueProfile]],
        *,
        max_workers: int = 4,
        cancel_token: Optional[CancellationToken] = None,
        limit: Optional[int] = None,
    ) -> List[ScoredVenue]:
        """Partitioned variant of match(); same ordering guarantees."""
        return self.run_partitioned(
            requirement,
            partitions,
            max_workers=max_workers,
            cancel_token=cancel_token,
            limit=limit,
        ).results

    def _response(
        self,
        prepared: PreparedRequirement,
        results: List[ScoredVenue],
        stats: ScanStats,
    ) -> MatchResponse:
        return MatchResponse(
            taxonomy_version=self.registry.version,
            results=results,
            resolved_node_ids=sorted(prepared.resolved_node_ids),
            unresolved_terms=list(prepared.unresolved_terms),
            candidates_seen=stats.candidates_seen,
            candidates_rejected=stats.candidates_rejected,
        )
