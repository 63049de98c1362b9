# src/taxonomy/registry.py
"""
Builds and provides access to the Venue Taxonomy index.

A TaxonomyRegistry is one immutable, versioned snapshot of the hierarchy:
Category -> Subcategory -> required amenity tags, plus the shared tag
vocabulary and the regional synonym table. It is never mutated after load;
a reload builds a new registry (see src.taxonomy.snapshot).
"""

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from src.schemas.taxonomy import (
    NodeKind,
    SynonymEntry,
    TaxonomyNode,
    TaxonomySnapshotDocument,
)
from src.schemas.venue import ValidationFinding
from src.taxonomy.errors import NotFoundError, SchemaError
from src.taxonomy.validator import TaxonomyValidator

logger = logging.getLogger(__name__)

SnapshotData = Union[TaxonomySnapshotDocument, Mapping[str, Any], str, bytes]


def parse_snapshot_document(data: SnapshotData) -> TaxonomySnapshotDocument:
    """
    Parse raw snapshot data into a TaxonomySnapshotDocument.

    Accepts an already-built document, a dict, or a JSON string/bytes.

    Raises:
        SchemaError: If the payload does not match the document shape
    """
    if isinstance(data, TaxonomySnapshotDocument):
        return data
    try:
        if isinstance(data, (str, bytes)):
            return TaxonomySnapshotDocument.model_validate_json(data)
        return TaxonomySnapshotDocument.model_validate(data)
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise SchemaError("Malformed taxonomy snapshot", problems) from e


class TaxonomyRegistry:
    """
    Immutable, versioned in-memory venue hierarchy.

    Provides:
    - resolve(node_id) -> TaxonomyNode
    - descendants_of(category_id) -> subcategories in declaration order
    - family lookups used by the matching engine
    - the amenity tag vocabulary and synonym entries of the snapshot

    Use TaxonomyRegistry.load_snapshot() to build one.
    """

    def __init__(
        self,
        version: str,
        nodes: List[TaxonomyNode],
        amenity_vocabulary: FrozenSet[str],
        retired_amenity_tags: FrozenSet[str] = frozenset(),
        synonyms: Tuple[SynonymEntry, ...] = (),
        load_findings: Tuple[ValidationFinding, ...] = (),
        published_at: Optional[str] = None,
    ):
        self._version = version
        self._published_at = published_at
        self._nodes: Mapping[str, TaxonomyNode] = MappingProxyType(
            {node.id: node for node in nodes}
        )
        self._children = MappingProxyType(self._build_children_index(nodes))
        self._amenity_vocabulary = frozenset(amenity_vocabulary)
        self._retired_amenity_tags = frozenset(retired_amenity_tags)
        self._synonyms = tuple(synonyms)
        self._load_findings = tuple(load_findings)

    @staticmethod
    def _build_children_index(
        nodes: List[TaxonomyNode],
    ) -> Dict[str, Tuple[TaxonomyNode, ...]]:
        """Build category_id -> subcategories, preserving declaration order."""
        index: Dict[str, List[TaxonomyNode]] = {
            n.id: [] for n in nodes if n.kind == NodeKind.CATEGORY
        }
        for node in nodes:
            if node.kind == NodeKind.SUBCATEGORY:
                index[node.parent_id].append(node)
        return {k: tuple(v) for k, v in index.items()}

    # ========================================================================
    # LOADING
    # ========================================================================

    @classmethod
    def load_snapshot(
        cls,
        data: SnapshotData,
        version: Optional[str] = None,
        validator: Optional[TaxonomyValidator] = None,
    ) -> "TaxonomyRegistry":
        """
        Build a registry from a snapshot document.

        Args:
            data: Snapshot document (model, dict or JSON text)
            version: Version label; overrides the document's own version
            validator: Validator for structural checks (default: no count check)

        Returns:
            A fully built, immutable TaxonomyRegistry

        Raises:
            SchemaError: Malformed document or broken referential integrity
        """
        document = parse_snapshot_document(data)
        version = version or document.version
        if not version:
            raise SchemaError("Taxonomy snapshot has no version")
        if document.version != version:
            document = document.model_copy(update={"version": version})

        validator = validator or TaxonomyValidator()
        findings = validator.check_document(document)

        nodes = [
            TaxonomyNode(
                id=record.id,
                kind=record.kind,
                parent_id=record.parent_id,
                name=record.name,
                required_amenity_tags=frozenset(record.required_amenity_tags),
                venue_type=record.venue_type,
                description=record.description,
                exemplars=tuple(record.exemplars),
                retracted=record.retracted,
            )
            for record in document.iter_node_records()
        ]

        # Identical (region, term, node) duplicates collapse to one entry
        synonyms: Dict[tuple, SynonymEntry] = {}
        for entry in document.synonyms:
            synonyms.setdefault(entry.lookup_key, entry)

        registry = cls(
            version=version,
            nodes=nodes,
            amenity_vocabulary=frozenset(document.amenity_tags),
            retired_amenity_tags=frozenset(document.retired_amenity_tags),
            synonyms=tuple(synonyms.values()),
            load_findings=tuple(findings),
            published_at=document.published_at,
        )

        for finding in findings:
            logger.warning(finding.message, extra={"taxonomy_version": version})
        logger.info(
            f"Loaded taxonomy {version}: {len(registry.categories())} categories, "
            f"{len(registry) - len(registry.categories())} subcategories, "
            f"{len(registry.amenity_vocabulary)} amenity tags, "
            f"{len(registry.synonyms)} synonyms",
            extra={"taxonomy_version": version},
        )
        return registry

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        version: Optional[str] = None,
        validator: Optional[TaxonomyValidator] = None,
    ) -> "TaxonomyRegistry":
        """Load a registry from a JSON snapshot file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Taxonomy snapshot not found at: {path}")
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise SchemaError(f"Taxonomy snapshot {path} is not valid JSON") from e
        return cls.load_snapshot(data, version=version, validator=validator)

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    @property
    def version(self) -> str:
        return self._version

    @property
    def published_at(self) -> Optional[str]:
        return self._published_at

    @property
    def nodes(self) -> Mapping[str, TaxonomyNode]:
        """Read-only mapping node_id -> TaxonomyNode, in declaration order."""
        return self._nodes

    @property
    def amenity_vocabulary(self) -> FrozenSet[str]:
        return self._amenity_vocabulary

    @property
    def retired_amenity_tags(self) -> FrozenSet[str]:
        return self._retired_amenity_tags

    @property
    def synonyms(self) -> Tuple[SynonymEntry, ...]:
        return self._synonyms

    @property
    def load_findings(self) -> Tuple[ValidationFinding, ...]:
        """Non-fatal findings reported while this snapshot was loaded."""
        return self._load_findings

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[TaxonomyNode]:
        return iter(self._nodes.values())

    def resolve(self, node_id: str) -> TaxonomyNode:
        """
        Get a node by id.

        Raises:
            NotFoundError: If the id does not exist in this snapshot
        """
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NotFoundError(node_id) from None

    def descendants_of(self, category_id: str) -> Tuple[TaxonomyNode, ...]:
        """
        Get the subcategories of a category, in declaration order.

        The order is stable and is used for deterministic tie-breaking.

        Raises:
            NotFoundError: If the id is unknown or is not a category
        """
        node = self.resolve(category_id)
        if not node.is_category:
            raise NotFoundError(category_id, "is not a category")
        return self._children[category_id]

    def categories(self) -> Tuple[TaxonomyNode, ...]:
        """All categories in declaration order."""
        return tuple(n for n in self._nodes.values() if n.is_category)

    def parent_of(self, node_id: str) -> Optional[TaxonomyNode]:
        """Parent category of a subcategory; None for categories."""
        node = self.resolve(node_id)
        if node.parent_id is None:
            return None
        return self._nodes[node.parent_id]

    def family_of(self, node_id: str) -> str:
        """Category id a node belongs to (the node itself for categories)."""
        return self.resolve(node_id).family_id

    def is_known_tag(self, tag: str) -> bool:
        return tag in self._amenity_vocabulary

    def to_summary(self) -> List[Dict[str, Any]]:
        """
        Flat category summary, e.g. for listing endpoints.

        Returns:
            List of {"id", "name", "venue_type", "subcategories": [{id, name}]}
        """
        return [
            {
                "id": cat.id,
                "name": cat.name,
                "venue_type": cat.venue_type.value,
                "subcategories": [
                    {"id": sub.id, "name": sub.name}
                    for sub in self._children[cat.id]
                ],
            }
            for cat in self.categories()
        ]
