"""
Synonym Resolver.

Maps regional venue terms ("Mandap", "Majlis", "Barn") to canonical
taxonomy node ids, scoped by region code.

Resolution is deliberately conservative: case-insensitive and
whitespace-trimmed, but exact-match only and never across regions. A term
that is unknown for the requested region is surfaced to the caller instead
of being guessed, so culturally distinct venue types are not conflated.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from src.schemas.taxonomy import (
    SynonymEntry,
    normalize_region_code,
    normalize_term,
)
from src.taxonomy.errors import UnknownTermError

logger = logging.getLogger(__name__)


class SynonymResolver:
    """
    Region-scoped, many-to-one lookup of local terms.

    Built once per taxonomy snapshot and read-only afterwards.
    """

    def __init__(self, entries: Iterable[SynonymEntry]):
        self._index: Dict[Tuple[str, str], SynonymEntry] = {}
        for entry in entries:
            self._index.setdefault(entry.lookup_key, entry)

    @classmethod
    def from_registry(cls, registry) -> "SynonymResolver":
        """Build a resolver over the synonym table of a TaxonomyRegistry."""
        return cls(registry.synonyms)

    def __len__(self) -> int:
        return len(self._index)

    def resolve(self, region_code: str, local_term: str) -> str:
        """
        Resolve a regional term to its canonical node id.

        Args:
            region_code: Region the term is used in (e.g. "IN", "AE")
            local_term: The colloquial term (e.g. "Shamiana")

        Returns:
            Canonical taxonomy node id

        Raises:
            UnknownTermError: If the term has no entry for that region
        """
        key = (normalize_region_code(region_code), normalize_term(local_term))
        entry = self._index.get(key)
        if entry is None:
            raise UnknownTermError(key[0], local_term.strip())
        return entry.canonical_node_id

    def resolve_many(
        self, region_code: str, terms: Iterable[str]
    ) -> Tuple[Set[str], List[str]]:
        """
        Resolve several terms, collecting misses instead of raising.

        Returns:
            Tuple of (resolved node ids, sorted unresolved terms)
        """
        resolved: Set[str] = set()
        unresolved: List[str] = []
        for term in terms:
            try:
                resolved.add(self.resolve(region_code, term))
            except UnknownTermError:
                unresolved.append(term.strip())

        if unresolved:
            logger.info(
                f"Unresolved terms for region {normalize_region_code(region_code)}: "
                f"{sorted(unresolved)}",
                extra={"region_code": normalize_region_code(region_code)},
            )
        return resolved, sorted(unresolved)

    def terms_for(self, node_id: str, region_code: Optional[str] = None) -> List[str]:
        """
        List local terms pointing at a node, optionally for one region.

        Returns:
            Sorted list of terms as originally spelled
        """
        region = normalize_region_code(region_code) if region_code else None
        return sorted(
            entry.local_term
            for entry in self._index.values()
            if entry.canonical_node_id == node_id
            and (region is None or entry.region_code == region)
        )

    def regions(self) -> List[str]:
        """Sorted list of region codes that have at least one synonym."""
        return sorted({entry.region_code for entry in self._index.values()})
