"""
Atomic publication of taxonomy snapshots.

A TaxonomySnapshot bundles a registry with the synonym resolver built from
it. The holder publishes a new snapshot with a single reference swap:
readers never lock and keep whichever snapshot they picked up, and a failed
load leaves the previous snapshot active.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from src.taxonomy.errors import SchemaError, TaxonomyError
from src.taxonomy.registry import SnapshotData, TaxonomyRegistry
from src.taxonomy.synonyms import SynonymResolver
from src.taxonomy.validator import TaxonomyValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaxonomySnapshot:
    """One published, immutable taxonomy version."""

    registry: TaxonomyRegistry
    resolver: SynonymResolver
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def version(self) -> str:
        return self.registry.version

    @classmethod
    def build(
        cls,
        data: SnapshotData,
        version: Optional[str] = None,
        validator: Optional[TaxonomyValidator] = None,
    ) -> "TaxonomySnapshot":
        registry = TaxonomyRegistry.load_snapshot(data, version=version, validator=validator)
        return cls(registry=registry, resolver=SynonymResolver.from_registry(registry))


class TaxonomySnapshotHolder:
    """
    Holds the currently active TaxonomySnapshot.

    Writers serialize on a lock; readers call current() without locking.
    """

    def __init__(
        self,
        snapshot: Optional[TaxonomySnapshot] = None,
        validator: Optional[TaxonomyValidator] = None,
    ):
        self._snapshot = snapshot
        self._validator = validator or TaxonomyValidator()
        self._write_lock = threading.Lock()
        self._history: List[str] = [snapshot.version] if snapshot else []

    @property
    def validator(self) -> TaxonomyValidator:
        return self._validator

    @property
    def is_loaded(self) -> bool:
        return self._snapshot is not None

    def current(self) -> TaxonomySnapshot:
        """
        Get the active snapshot.

        Raises:
            TaxonomyError: If no snapshot has been loaded yet
        """
        snapshot = self._snapshot
        if snapshot is None:
            raise TaxonomyError("No taxonomy snapshot has been loaded")
        return snapshot

    def load(self, version: Optional[str], data: SnapshotData) -> TaxonomySnapshot:
        """
        Validate, build and publish a new snapshot.

        The new snapshot is fully built before it becomes visible. When
        version is None the document's own version is used.

        Raises:
            SchemaError: The snapshot is invalid; the active one is kept
        """
        with self._write_lock:
            previous = self._snapshot
            try:
                snapshot = TaxonomySnapshot.build(
                    data, version=version, validator=self._validator
                )
            except SchemaError:
                logger.error(
                    f"Rejected taxonomy snapshot {version}; keeping "
                    f"{previous.version if previous else 'no snapshot'}",
                    exc_info=True,
                    extra={"taxonomy_version": version},
                )
                raise

            self._snapshot = snapshot
            self._history.append(snapshot.version)

        logger.info(
            f"Published taxonomy snapshot {snapshot.version} "
            f"(replaced {previous.version if previous else 'none'})",
            extra={"taxonomy_version": snapshot.version},
        )
        return snapshot

    def load_file(
        self, path: Union[str, Path], version: Optional[str] = None
    ) -> TaxonomySnapshot:
        """Load and publish a snapshot from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Taxonomy snapshot not found at: {path}")
        return self.load(version, path.read_text(encoding="utf-8"))

    def history(self) -> List[str]:
        """Versions published by this holder, oldest first."""
        return list(self._history)
