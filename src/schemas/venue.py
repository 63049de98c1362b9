# src/schemas/venue.py
"""
Venue, event requirement and match result models.

VenueProfile records are produced by the ingestion collaborator and are
read-only here. EventRequirement is built per matching request and thrown
away after scoring. ScoredVenue / MatchResponse carry the ranked output with
per-component subscores so every ranking can be explained.
"""

from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from src.schemas.taxonomy import (
    VenueType,
    normalize_region_code,
    normalize_tag,
)


def _normalize_tag_set(v) -> FrozenSet[str]:
    if v is None:
        return frozenset()
    if isinstance(v, str):
        v = [v]
    return frozenset(normalize_tag(t) for t in v if t and t.strip())


def _normalize_id_set(v) -> FrozenSet[str]:
    if v is None:
        return frozenset()
    if isinstance(v, str):
        v = [v]
    return frozenset(i.strip() for i in v if i and i.strip())


# ============================================================================
# LOCATION
# ============================================================================


class Coordinates(BaseModel):
    """
    Geographic coordinates.
    """

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float

    @field_validator("latitude")
    def validate_latitude(cls, v):
        if not -90 <= v <= 90:
            raise ValueError("Latitude must be between -90 and 90")
        return v

    @field_validator("longitude")
    def validate_longitude(cls, v):
        if not -180 <= v <= 180:
            raise ValueError("Longitude must be between -180 and 180")
        return v


class LocationInfo(BaseModel):
    """
    Normalized venue location.
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "street_address": "1 Western Gateway",
                "city": "London",
                "region_code": "GB",
                "country_code": "GB",
                "coordinates": {"latitude": 51.5081, "longitude": 0.0294},
            }
        },
    )

    street_address: Optional[str] = None
    city: str
    state_or_region: Optional[str] = None
    region_code: Optional[str] = Field(
        default=None,
        description="Region used for synonym scoping (usually the ISO country code)",
    )
    country_code: str = Field(
        default="US", description="ISO 3166-1 alpha-2 country code"
    )
    coordinates: Optional[Coordinates] = None

    @field_validator("region_code", "country_code")
    @classmethod
    def upper_codes(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return normalize_region_code(v)


# ============================================================================
# VENUE PROFILE
# ============================================================================


class VenueProfile(BaseModel):
    """
    A real venue record tagged against the taxonomy.

    A venue may belong to several nodes (e.g. a resort that is both
    "Integrated Resort" and "Beachfront"); all assignments have equal standing.
    """

    model_config = ConfigDict(frozen=True)

    venue_id: str = Field(min_length=1)
    name: Optional[str] = None
    assigned_node_ids: FrozenSet[str] = Field(default_factory=frozenset)
    amenity_tags: FrozenSet[str] = Field(default_factory=frozenset)
    capacity: int = Field(ge=0)
    location: Optional[LocationInfo] = None
    venue_type: VenueType = VenueType.INDOOR

    @field_validator("assigned_node_ids", mode="before")
    @classmethod
    def clean_node_ids(cls, v):
        return _normalize_id_set(v)

    @field_validator("amenity_tags", mode="before")
    @classmethod
    def clean_tags(cls, v):
        return _normalize_tag_set(v)


# ============================================================================
# EVENT REQUIREMENT
# ============================================================================


class EventRequirement(BaseModel):
    """
    An event's venue requirements for one matching request.

    desired_node_ids are OR-matched. desired_terms are regional terms
    (e.g. "Mandap", "Majlis") resolved through the synonym table of
    region_code before matching.
    """

    model_config = ConfigDict(frozen=True)

    desired_node_ids: FrozenSet[str] = Field(default_factory=frozenset)
    desired_terms: FrozenSet[str] = Field(default_factory=frozenset)
    required_amenity_tags: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Hard filter: venue must have every one of these tags",
    )
    preferred_amenity_tags: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Soft preference: contributes to amenity_coverage",
    )
    min_capacity: int = Field(default=0, ge=0)
    max_capacity: Optional[int] = Field(default=None, ge=0)
    venue_type_preference: Optional[VenueType] = None
    region_code: Optional[str] = None

    @field_validator("desired_node_ids", mode="before")
    @classmethod
    def clean_node_ids(cls, v):
        return _normalize_id_set(v)

    @field_validator("desired_terms", mode="before")
    @classmethod
    def clean_terms(cls, v):
        if v is None:
            return frozenset()
        if isinstance(v, str):
            v = [v]
        return frozenset(t.strip() for t in v if t and t.strip())

    @field_validator("required_amenity_tags", "preferred_amenity_tags", mode="before")
    @classmethod
    def clean_tags(cls, v):
        return _normalize_tag_set(v)

    @field_validator("region_code")
    @classmethod
    def upper_region(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return normalize_region_code(v)

    @model_validator(mode="after")
    def validate_requirement(self) -> "EventRequirement":
        if not self.desired_node_ids and not self.desired_terms:
            raise ValueError(
                "At least one desired_node_id or desired_term is required"
            )
        if self.desired_terms and self.region_code is None:
            raise ValueError("region_code is required to resolve desired_terms")
        if self.max_capacity is not None and self.max_capacity < self.min_capacity:
            raise ValueError("max_capacity cannot be less than min_capacity")
        return self


# ============================================================================
# MATCH RESULTS
# ============================================================================


class ScoreBreakdown(BaseModel):
    """Component subscores of a ranked venue, each in [0, 1]."""

    model_config = ConfigDict(frozen=True)

    category_match: float = Field(ge=0.0, le=1.0)
    amenity_coverage: float = Field(ge=0.0, le=1.0)
    capacity_fit: float = Field(ge=0.0, le=1.0)


class ScoredVenue(BaseModel):
    """One ranked, explainable match result."""

    model_config = ConfigDict(frozen=True)

    venue_id: str
    score: float = Field(ge=0.0, le=1.0)
    subscores: ScoreBreakdown
    matched_node_ids: List[str] = Field(
        default_factory=list,
        description="Venue node ids that satisfied the taxonomy filter (sorted)",
    )

    @property
    def rank_key(self) -> tuple:
        """Sort key: score desc, amenity_coverage desc, venue_id asc."""
        return (-self.score, -self.subscores.amenity_coverage, self.venue_id)


class MatchResponse(BaseModel):
    """
    Response of the Matching API.
    """

    taxonomy_version: Optional[str] = None
    results: List[ScoredVenue] = Field(default_factory=list)
    resolved_node_ids: List[str] = Field(default_factory=list)
    unresolved_terms: List[str] = Field(
        default_factory=list,
        description="Regional terms that had no synonym entry for the region",
    )
    candidates_seen: int = 0
    candidates_rejected: int = 0


# ============================================================================
# VALIDATION FINDINGS
# ============================================================================


class FindingCode(str, Enum):
    """Kinds of non-fatal tagging inconsistencies."""

    UNKNOWN_NODE = "unknown_node"
    RETRACTED_NODE = "retracted_node"
    UNKNOWN_AMENITY_TAG = "unknown_amenity_tag"
    RETIRED_AMENITY_TAG = "retired_amenity_tag"
    UNEXPECTED_SUBCATEGORY_COUNT = "unexpected_subcategory_count"


class FindingSeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


class ValidationFinding(BaseModel):
    """
    A reported (never silently dropped) inconsistency found by the validator.

    Findings do not block matching; they flag data for re-tagging.
    """

    model_config = ConfigDict(frozen=True)

    code: FindingCode
    subject: str = Field(description="Offending node id, tag or category id")
    message: str
    severity: FindingSeverity = FindingSeverity.WARNING
    venue_id: Optional[str] = None
    taxonomy_version: Optional[str] = None

    def to_log_dict(self) -> Dict[str, Optional[str]]:
        return {
            "code": self.code.value,
            "subject": self.subject,
            "venue_id": self.venue_id,
            "severity": self.severity.value,
        }
