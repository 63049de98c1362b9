"""
Taxonomy validator.

Runs at snapshot load (structural invariants, fatal) and whenever a venue
is tagged (tagging consistency, reported as findings). Tags unknown to the
current taxonomy version are flagged for re-tagging, never dropped.
"""

import logging
from collections import Counter
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from src.schemas.taxonomy import NodeKind, TaxonomySnapshotDocument
from src.schemas.venue import (
    EventRequirement,
    FindingCode,
    FindingSeverity,
    ValidationFinding,
    VenueProfile,
)
from src.taxonomy.errors import SchemaError

if TYPE_CHECKING:
    from src.taxonomy.registry import TaxonomyRegistry

logger = logging.getLogger(__name__)


class TaxonomyValidator:
    """
    Enforces structural invariants on snapshot documents and checks venue
    tagging against a loaded registry.

    The number of subcategories per category is validated against
    ``expected_subcategories_per_category`` rather than assumed; a deviation
    is reported as a finding so the hierarchy can grow in a controlled way.
    """

    def __init__(self, expected_subcategories_per_category: Optional[int] = None):
        self.expected_subcategories_per_category = expected_subcategories_per_category

    # ========================================================================
    # SNAPSHOT DOCUMENT
    # ========================================================================

    def check_document(
        self, document: TaxonomySnapshotDocument
    ) -> List[ValidationFinding]:
        """
        Check referential integrity of a snapshot document.

        Returns:
            Non-fatal findings (e.g. unexpected subcategory counts)

        Raises:
            SchemaError: Listing every integrity problem found
        """
        problems: List[str] = []
        records = document.iter_node_records()

        if not records:
            raise SchemaError("Taxonomy snapshot declares no nodes")

        vocabulary = set(document.amenity_tags)
        retired = set(document.retired_amenity_tags)
        overlap = vocabulary & retired
        if overlap:
            problems.append(
                f"tags both active and retired: {sorted(overlap)}"
            )

        id_counts = Counter(r.id for r in records)
        for node_id, count in id_counts.items():
            if count > 1:
                problems.append(f"duplicate node id '{node_id}' ({count}x)")

        kinds = {r.id: r.kind for r in records}
        children: Dict[str, int] = {
            r.id: 0 for r in records if r.kind == NodeKind.CATEGORY
        }

        for record in records:
            if record.kind == NodeKind.CATEGORY:
                if record.parent_id is not None:
                    problems.append(
                        f"category '{record.id}' must not have a parent "
                        f"(got '{record.parent_id}')"
                    )
            else:
                parent_kind = kinds.get(record.parent_id) if record.parent_id else None
                if parent_kind != NodeKind.CATEGORY:
                    problems.append(
                        f"orphan subcategory '{record.id}' "
                        f"(parent '{record.parent_id}' is not a category)"
                    )
                else:
                    children[record.parent_id] += 1

            for tag in record.required_amenity_tags:
                if tag in retired:
                    problems.append(
                        f"node '{record.id}' requires retired tag '{tag}'"
                    )
                elif tag not in vocabulary:
                    problems.append(
                        f"node '{record.id}' references unknown tag '{tag}'"
                    )

        for category_id, count in children.items():
            if count == 0:
                problems.append(f"category '{category_id}' has no subcategories")

        problems.extend(self._check_synonyms(document, kinds))

        if problems:
            raise SchemaError("Invalid taxonomy snapshot", problems)

        return self._subcategory_count_findings(children, document.version)

    @staticmethod
    def _check_synonyms(
        document: TaxonomySnapshotDocument, kinds: Dict[str, NodeKind]
    ) -> List[str]:
        problems: List[str] = []
        targets: Dict[tuple, str] = {}
        for entry in document.synonyms:
            if entry.canonical_node_id not in kinds:
                problems.append(
                    f"synonym '{entry.local_term}' ({entry.region_code}) points at "
                    f"unknown node '{entry.canonical_node_id}'"
                )
                continue
            key = entry.lookup_key
            previous = targets.get(key)
            if previous is None:
                targets[key] = entry.canonical_node_id
            elif previous != entry.canonical_node_id:
                problems.append(
                    f"synonym '{entry.local_term}' ({entry.region_code}) maps to "
                    f"both '{previous}' and '{entry.canonical_node_id}'"
                )
        return problems

    def _subcategory_count_findings(
        self, children: Dict[str, int], version: Optional[str]
    ) -> List[ValidationFinding]:
        expected = self.expected_subcategories_per_category
        if expected is None:
            return []
        findings = []
        for category_id, count in children.items():
            if count != expected:
                findings.append(
                    ValidationFinding(
                        code=FindingCode.UNEXPECTED_SUBCATEGORY_COUNT,
                        subject=category_id,
                        message=(
                            f"category '{category_id}' has {count} subcategories, "
                            f"expected {expected}"
                        ),
                        taxonomy_version=version,
                    )
                )
        return findings

    # ========================================================================
    # VENUE TAGGING
    # ========================================================================

    def validate_venue(
        self, venue: VenueProfile, registry: "TaxonomyRegistry"
    ) -> List[ValidationFinding]:
        """
        Check a venue's assigned nodes and amenity tags against the registry.

        Returns:
            List of findings (empty = consistent)
        """
        findings: List[ValidationFinding] = []
        version = registry.version

        for node_id in sorted(venue.assigned_node_ids):
            if node_id not in registry:
                findings.append(
                    ValidationFinding(
                        code=FindingCode.UNKNOWN_NODE,
                        subject=node_id,
                        message=f"assigned node '{node_id}' does not exist",
                        severity=FindingSeverity.ERROR,
                        venue_id=venue.venue_id,
                        taxonomy_version=version,
                    )
                )
            elif registry.resolve(node_id).retracted:
                findings.append(
                    ValidationFinding(
                        code=FindingCode.RETRACTED_NODE,
                        subject=node_id,
                        message=f"assigned node '{node_id}' has been retracted",
                        severity=FindingSeverity.ERROR,
                        venue_id=venue.venue_id,
                        taxonomy_version=version,
                    )
                )

        for tag in sorted(venue.amenity_tags):
            finding = self._check_tag(tag, registry, venue_id=venue.venue_id)
            if finding:
                findings.append(finding)

        if findings:
            logger.info(
                f"Venue {venue.venue_id} has {len(findings)} tagging finding(s) "
                f"against taxonomy {version}",
                extra={
                    "venue_id": venue.venue_id,
                    "taxonomy_version": version,
                    "payload": {"findings": [f.to_log_dict() for f in findings]},
                },
            )
        return findings

    def validate_batch(
        self, venues: Iterable[VenueProfile], registry: "TaxonomyRegistry"
    ) -> Dict[str, List[ValidationFinding]]:
        """
        Validate a batch of venues.

        Returns:
            Dict mapping venue_id -> findings, for venues with findings only
        """
        results: Dict[str, List[ValidationFinding]] = {}
        for venue in venues:
            venue_findings = self.validate_venue(venue, registry)
            if venue_findings:
                results[venue.venue_id] = venue_findings
        return results

    def validate_requirement(
        self, requirement: EventRequirement, registry: "TaxonomyRegistry"
    ) -> List[ValidationFinding]:
        """
        Check an event requirement before matching.

        Raises:
            NotFoundError: If a desired node id does not exist

        Returns:
            Findings for amenity tags unknown to (or retired from) the taxonomy
        """
        for node_id in sorted(requirement.desired_node_ids):
            registry.resolve(node_id)

        findings = []
        tags = requirement.required_amenity_tags | requirement.preferred_amenity_tags
        for tag in sorted(tags):
            finding = self._check_tag(tag, registry)
            if finding:
                findings.append(finding)
        if findings:
            logger.warning(
                f"Requirement references {len(findings)} tag(s) outside "
                f"taxonomy {registry.version}: {[f.subject for f in findings]}"
            )
        return findings

    @staticmethod
    def _check_tag(
        tag: str, registry: "TaxonomyRegistry", venue_id: Optional[str] = None
    ) -> Optional[ValidationFinding]:
        if tag in registry.retired_amenity_tags:
            return ValidationFinding(
                code=FindingCode.RETIRED_AMENITY_TAG,
                subject=tag,
                message=f"amenity tag '{tag}' is retired and needs re-tagging",
                venue_id=venue_id,
                taxonomy_version=registry.version,
            )
        if tag not in registry.amenity_vocabulary:
            return ValidationFinding(
                code=FindingCode.UNKNOWN_AMENITY_TAG,
                subject=tag,
                message=f"amenity tag '{tag}' is not in the taxonomy vocabulary",
                venue_id=venue_id,
                taxonomy_version=registry.version,
            )
        return None
