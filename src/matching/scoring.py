"""
Scoring primitives for venue matching.

Hard filters decide whether a venue is a candidate at all; soft scores rank
the survivors. Every soft score term is normalized to [0, 1] and combined
with configurable weights:

    score = w_category * category_match
          + w_amenity  * amenity_coverage
          + w_capacity * capacity_fit
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, Field, model_validator

from src.configs.config import Config
from src.schemas.taxonomy import VenueType
from src.schemas.venue import ScoreBreakdown, VenueProfile

logger = logging.getLogger(__name__)


# ============================================================================
# CONFIGURATION
# ============================================================================


class ScoringWeights(BaseModel):
    """Relative weights of the soft score terms."""

    category_match: float = Field(default=0.45, ge=0.0)
    amenity_coverage: float = Field(default=0.35, ge=0.0)
    capacity_fit: float = Field(default=0.20, ge=0.0)

    @model_validator(mode="after")
    def validate_total(self) -> "ScoringWeights":
        if self.total <= 0:
            raise ValueError("At least one scoring weight must be positive")
        return self

    @property
    def total(self) -> float:
        return self.category_match + self.amenity_coverage + self.capacity_fit

    def normalized(self) -> "ScoringWeights":
        """Weights rescaled to sum to 1.0 so final scores stay in [0, 1]."""
        total = self.total
        return ScoringWeights(
            category_match=self.category_match / total,
            amenity_coverage=self.amenity_coverage / total,
            capacity_fit=self.capacity_fit / total,
        )


class ScoringConfig(BaseModel):
    """
    Operator-tunable scoring configuration (see src/configs/matching.yaml).
    """

    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    category_partial_credit: float = Field(default=0.6, ge=0.0, le=1.0)
    score_precision: int = Field(default=6, ge=1, le=12)

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]]) -> "ScoringConfig":
        """Build from the ``scoring`` section of the matching config."""
        section = (config or {}).get("scoring") or {}
        return cls.model_validate(section)


def load_scoring_config(path: Optional[Path] = None) -> ScoringConfig:
    """Load ScoringConfig from matching.yaml (or the given path)."""
    return ScoringConfig.from_config(Config.load_matching_config(path))


# ============================================================================
# REQUIREMENT PREPARED FOR SCORING
# ============================================================================


@dataclass(frozen=True)
class PreparedRequirement:
    """
    An EventRequirement with taxonomy ids resolved against one snapshot.

    exact_node_ids: nodes that count as an exact match (desired ids plus
        the subcategories of desired categories)
    family_ids: categories of desired subcategories, for partial credit
    """

    resolved_node_ids: FrozenSet[str]
    exact_node_ids: FrozenSet[str]
    family_ids: FrozenSet[str]
    required_amenity_tags: FrozenSet[str]
    preferred_amenity_tags: FrozenSet[str]
    min_capacity: int
    max_capacity: Optional[int]
    venue_type_preference: Optional[VenueType]
    unresolved_terms: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TaxonomyMatch:
    """Outcome of the taxonomy filter for one venue."""

    category_match: float
    matched_node_ids: Tuple[str, ...]


# ============================================================================
# HARD FILTERS
# ============================================================================


def passes_amenity_filter(venue: VenueProfile, required: FrozenSet[str]) -> bool:
    return required <= venue.amenity_tags


def passes_capacity_filter(
    capacity: int, min_capacity: int, max_capacity: Optional[int]
) -> bool:
    if capacity < min_capacity:
        return False
    if max_capacity is not None and capacity > max_capacity:
        return False
    return True


def passes_venue_type_filter(
    venue: VenueProfile, preference: Optional[VenueType]
) -> bool:
    return preference is None or venue.venue_type == preference


# ============================================================================
# SOFT SCORE TERMS
# ============================================================================


def amenity_coverage(preferred: FrozenSet[str], venue_tags: FrozenSet[str]) -> float:
    """|preferred ∩ venue| / max(1, |preferred|)."""
    return len(preferred & venue_tags) / max(1, len(preferred))


def capacity_fit(capacity: int, min_capacity: int, max_capacity: Optional[int]) -> float:
    """
    How close a venue's capacity is to the requested capacity midpoint.

    With both bounds: 1 - |capacity - midpoint| / range, clamped to [0, 1];
    a zero-width range scores 1.0 on the exact capacity. With only a lower
    bound the venue closest to it scores best (min / capacity); with no
    usable bounds every capacity fits equally (1.0).
    """
    if max_capacity is not None:
        span = max_capacity - min_capacity
        if span <= 0:
            return 1.0 if capacity == min_capacity else 0.0
        midpoint = (min_capacity + max_capacity) / 2
        fit = 1.0 - abs(capacity - midpoint) / span
    elif min_capacity > 0 and capacity > 0:
        fit = min_capacity / capacity
    else:
        fit = 1.0
    return max(0.0, min(1.0, fit))


def combine(breakdown: ScoreBreakdown, weights: ScoringWeights, precision: int) -> float:
    """Weighted sum of subscores, rounded so equal inputs give exact ties."""
    w = weights.normalized()
    score = (
        w.category_match * breakdown.category_match
        + w.amenity_coverage * breakdown.amenity_coverage
        + w.capacity_fit * breakdown.capacity_fit
    )
    return round(max(0.0, min(1.0, score)), precision)


def round_breakdown(
    category: float, coverage: float, fit: float, precision: int
) -> ScoreBreakdown:
    return ScoreBreakdown(
        category_match=round(category, precision),
        amenity_coverage=round(coverage, precision),
        capacity_fit=round(fit, precision),
    )


def explain(breakdown: ScoreBreakdown, weights: ScoringWeights) -> List[Dict[str, float]]:
    """
    Per-term contribution to the final score, for explainability.

    Returns:
        List of {"term", "value", "weight", "contribution"} dicts
    """
    w = weights.normalized()
    rows = []
    for term in ("category_match", "amenity_coverage", "capacity_fit"):
        value = getattr(breakdown, term)
        weight = getattr(w, term)
        rows.append(
            {
                "term": term,
                "value": value,
                "weight": round(weight, 6),
                "contribution": round(value * weight, 6),
            }
        )
    return rows
