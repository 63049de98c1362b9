# src/taxonomy/errors.py
"""
Exception hierarchy for taxonomy loading, lookup and matching.

Data-integrity failures (SchemaError, NotFoundError) are raised loudly.
Data-quality issues are reported as ValidationFinding records instead
(see src.schemas.venue).
"""

from typing import Optional


class TaxonomyError(Exception):
    """Base class for all taxonomy engine errors."""


class SchemaError(TaxonomyError):
    """
    Raised when a taxonomy snapshot is malformed or breaks referential integrity.

    Fatal to the load attempt only; the previously published snapshot stays active.
    """

    def __init__(self, message: str, problems: Optional[list] = None):
        self.problems = list(problems or [])
        if self.problems:
            message = f"{message}: " + "; ".join(self.problems)
        super().__init__(message)


class NotFoundError(TaxonomyError, KeyError):
    """Raised when a node id does not exist in the current registry."""

    def __init__(self, node_id: str, detail: Optional[str] = None):
        self.node_id = node_id
        self.detail = detail
        super().__init__(node_id)

    def __str__(self) -> str:
        if self.detail:
            return f"Taxonomy node '{self.node_id}' {self.detail}"
        return f"Taxonomy node '{self.node_id}' not found"


class UnknownTermError(TaxonomyError, LookupError):
    """Raised when a regional term has no synonym entry for the given region."""

    def __init__(self, region_code: str, local_term: str):
        self.region_code = region_code
        self.local_term = local_term
        super().__init__(
            f"Unknown term '{local_term}' for region '{region_code}'"
        )


class MatchCancelled(TaxonomyError):
    """Raised when a caller cancels a match or its deadline passes mid-scan."""

    def __init__(self, candidates_seen: int = 0, reason: str = "cancelled"):
        self.candidates_seen = candidates_seen
        self.reason = reason
        super().__init__(
            f"Match {reason} after {candidates_seen} candidates"
        )


class VenueNotFoundError(TaxonomyError, KeyError):
    """Raised when a venue id is not present in the venue store."""

    def __init__(self, venue_id: str):
        self.venue_id = venue_id
        super().__init__(venue_id)

    def __str__(self) -> str:
        return f"Venue '{self.venue_id}' not found"
