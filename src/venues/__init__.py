"""
Venue Profile Store adapters.

Read interfaces over persisted venue records. The engine only needs a
key-value / document read path, so the concrete store is pluggable:
- InMemoryVenueStore: dict-backed store, also used by tests
- JsonFileVenueStore: JSON array or JSON Lines file, streamed lazily
"""

from src.venues.store import (
    InMemoryVenueStore,
    JsonFileVenueStore,
    VenueProfileStore,
)

__all__ = ["VenueProfileStore", "InMemoryVenueStore", "JsonFileVenueStore"]
