"""In-memory deduplication index over external identifiers."""

from __future__ import annotations

from typing import Iterable, Optional, TYPE_CHECKING

from esp.utils.text import identifier_key

if TYPE_CHECKING:
    from esp.db.repository import StagingRepository


class DedupIndex:
    """Admit/skip decisions against known canonical and staged identifiers.

    The index is a per-run fast path. Storage keeps its own unique
    constraint because concurrent runs do not share an index.
    """

    def __init__(
        self,
        canonical_ids: Iterable[Optional[str]] = (),
        staged_ids: Iterable[Optional[str]] = (),
    ) -> None:
        self._canonical = {key for key in map(identifier_key, canonical_ids) if key}
        self._staged = {key for key in map(identifier_key, staged_ids) if key}

    @classmethod
    def from_repository(cls, repository: "StagingRepository") -> "DedupIndex":
        """Build the index from one bulk read of each store."""
        known = repository.load_identifiers()
        return cls(canonical_ids=known.canonical, staged_ids=known.staged)

    def should_admit(self, identifier: Optional[str]) -> bool:
        """Return True if the identifier is unknown, recording it as staged."""
        key = identifier_key(identifier)
        if key is None:
            return True
        if key in self._canonical or key in self._staged:
            return False
        self._staged.add(key)
        return True

    def is_known(self, identifier: Optional[str]) -> bool:
        key = identifier_key(identifier)
        return key is not None and (key in self._canonical or key in self._staged)

    @property
    def canonical_count(self) -> int:
        return len(self._canonical)

    @property
    def staged_count(self) -> int:
        return len(self._staged)
