"""
Taxonomy layer for the Venue Matching Engine.

This package holds the versioned venue hierarchy and everything that reads it.

Key Components:
- TaxonomyRegistry: Immutable Category -> Subcategory -> amenity index
- TaxonomySnapshotHolder: Atomic publish/reload of registry snapshots
- SynonymResolver: Region-scoped regional term -> canonical node lookup
- TaxonomyValidator: Structural checks on load and venue tagging checks
"""
