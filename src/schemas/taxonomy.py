# src/schemas/taxonomy.py
"""
Data model for the Venue Taxonomy.

Two groups of models live here:
- Published reference data (TaxonomyNode, SynonymEntry), frozen once loaded.
- The snapshot document shape (TaxonomySnapshotDocument and its records),
  i.e. the machine-readable form of the category / subcategory / amenity /
  regional-terminology tables that the registry is built from.
"""

import re
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_term(term: str) -> str:
    """Normalize a regional term for lookup (trim, collapse spaces, casefold)."""
    return _WHITESPACE_RE.sub(" ", term.strip()).casefold()


def normalize_region_code(region_code: str) -> str:
    """Normalize a region code to its canonical upper-case form."""
    return region_code.strip().upper()


def normalize_tag(tag: str) -> str:
    """Normalize an amenity tag identifier (lowercase, trimmed)."""
    return tag.strip().lower()


# ============================================================================
# ENUMS
# ============================================================================


class NodeKind(str, Enum):
    """Level of a node in the two-level venue hierarchy."""

    CATEGORY = "category"
    SUBCATEGORY = "subcategory"


class VenueType(str, Enum):
    """
    Physical setting of a venue or taxonomy node.
    """

    INDOOR = "indoor"
    OUTDOOR = "outdoor"
    HYBRID = "hybrid"


# ============================================================================
# PUBLISHED REFERENCE DATA
# ============================================================================


class TaxonomyNode(BaseModel):
    """
    A Category or Subcategory entry in the published venue hierarchy.

    Nodes are immutable once published; the registry never mutates them.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    kind: NodeKind
    parent_id: Optional[str] = None
    name: str
    required_amenity_tags: FrozenSet[str] = Field(default_factory=frozenset)
    venue_type: VenueType = VenueType.INDOOR
    description: Optional[str] = None
    exemplars: Tuple[str, ...] = Field(
        default_factory=tuple,
        description="Exemplar venue names listed for this node",
    )
    retracted: bool = Field(
        default=False,
        description="Retracted nodes stay resolvable but may no longer be assigned",
    )

    @property
    def is_category(self) -> bool:
        return self.kind == NodeKind.CATEGORY

    @property
    def family_id(self) -> str:
        """Category id this node belongs to (itself for categories)."""
        return self.id if self.is_category else self.parent_id


class SynonymEntry(BaseModel):
    """
    Region-scoped mapping from a colloquial venue term to a canonical node.

    (region_code, local_term) is unique within a snapshot; many terms may
    point at the same node but one term never points at several.
    """

    model_config = ConfigDict(frozen=True)

    region_code: str = Field(min_length=1)
    local_term: str = Field(min_length=1)
    canonical_node_id: str = Field(min_length=1)

    @field_validator("region_code")
    @classmethod
    def upper_region(cls, v: str) -> str:
        return normalize_region_code(v)

    @field_validator("local_term")
    @classmethod
    def strip_term(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("local_term must not be blank")
        return v

    @property
    def lookup_key(self) -> tuple:
        return (self.region_code, normalize_term(self.local_term))


# ============================================================================
# SNAPSHOT DOCUMENT
# ============================================================================


class SubcategoryRecord(BaseModel):
    """Subcategory entry as it appears in a snapshot document."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    venue_type: VenueType = VenueType.INDOOR
    description: Optional[str] = None
    required_amenity_tags: List[str] = Field(default_factory=list)
    exemplars: List[str] = Field(default_factory=list)
    retracted: bool = False

    @field_validator("required_amenity_tags")
    @classmethod
    def normalize_tags(cls, v: List[str]) -> List[str]:
        return [normalize_tag(t) for t in v]


class CategoryRecord(BaseModel):
    """Category entry, with its subcategories in declaration order."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    venue_type: VenueType = VenueType.HYBRID
    description: Optional[str] = None
    required_amenity_tags: List[str] = Field(default_factory=list)
    exemplars: List[str] = Field(default_factory=list)
    retracted: bool = False
    subcategories: List[SubcategoryRecord] = Field(default_factory=list)

    @field_validator("required_amenity_tags")
    @classmethod
    def normalize_tags(cls, v: List[str]) -> List[str]:
        return [normalize_tag(t) for t in v]


class NodeRecord(BaseModel):
    """
    Flat node entry, an alternative to nesting subcategories under categories.

    Subcategories must name an existing category as parent_id.
    """

    id: str = Field(min_length=1)
    kind: NodeKind
    parent_id: Optional[str] = None
    name: str = Field(min_length=1)
    venue_type: VenueType = VenueType.INDOOR
    description: Optional[str] = None
    required_amenity_tags: List[str] = Field(default_factory=list)
    exemplars: List[str] = Field(default_factory=list)
    retracted: bool = False

    @field_validator("required_amenity_tags")
    @classmethod
    def normalize_tags(cls, v: List[str]) -> List[str]:
        return [normalize_tag(t) for t in v]


class TaxonomySnapshotDocument(BaseModel):
    """
    Machine-readable taxonomy snapshot as published by the authoring process.

    Example:
        {
            "version": "2026.10",
            "amenity_tags": ["av.pa_system", ...],
            "retired_amenity_tags": ["av.overhead_projector"],
            "categories": [{"id": "...", "subcategories": [...]}],
            "synonyms": [{"region_code": "IN", "local_term": "Mandap", ...}]
        }
    """

    version: Optional[str] = None
    published_at: Optional[str] = None
    amenity_tags: List[str] = Field(default_factory=list)
    retired_amenity_tags: List[str] = Field(default_factory=list)
    categories: List[CategoryRecord] = Field(default_factory=list)
    nodes: List[NodeRecord] = Field(
        default_factory=list,
        description="Flat node entries, appended after nested categories",
    )
    synonyms: List[SynonymEntry] = Field(default_factory=list)

    @field_validator("amenity_tags", "retired_amenity_tags")
    @classmethod
    def normalize_vocabulary(cls, v: List[str]) -> List[str]:
        return [normalize_tag(t) for t in v]

    def iter_node_records(self) -> List[NodeRecord]:
        """
        Flatten nested categories and flat nodes into declaration order.

        Each category is followed by its own subcategories, then flat
        ``nodes`` entries follow in the order they were declared.
        """
        records: List[NodeRecord] = []
        for cat in self.categories:
            records.append(
                NodeRecord(
                    id=cat.id,
                    kind=NodeKind.CATEGORY,
                    name=cat.name,
                    venue_type=cat.venue_type,
                    description=cat.description,
                    required_amenity_tags=cat.required_amenity_tags,
                    exemplars=cat.exemplars,
                    retracted=cat.retracted,
                )
            )
            for sub in cat.subcategories:
                records.append(
                    NodeRecord(
                        id=sub.id,
                        kind=NodeKind.SUBCATEGORY,
                        parent_id=cat.id,
                        name=sub.name,
                        venue_type=sub.venue_type,
                        description=sub.description,
                        required_amenity_tags=sub.required_amenity_tags,
                        exemplars=sub.exemplars,
                        retracted=sub.retracted,
                    )
                )
        records.extend(self.nodes)
        return records
