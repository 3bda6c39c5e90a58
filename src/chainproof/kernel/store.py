"""Append-only content-addressed stores.

Entries are never evicted or replaced. Inserts go through dict.setdefault,
which is atomic, so concurrent readers and writers need no lock: two
writers racing on the same key carry the same content (the key is its hash).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Generic, Iterator, List, Optional, TypeVar

from .errors import StoreConflict, UnknownCommitment, UnknownProof
from .hash_utils import canonicalize_json
from .values import Value

if TYPE_CHECKING:
    from .commitment import Commitment


logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


class _AppendOnlyStore(Generic[K, V]):
    def __init__(self):
        self._entries: Dict[K, V] = {}
        self._listeners: List[Callable[[K, V], None]] = []

    def subscribe(self, listener: Callable[[K, V], None]) -> None:
        """Register a callback invoked once per newly inserted entry."""
        self._listeners.append(listener)

    def _same(self, a: V, b: V) -> bool:
        return a == b

    def _put(self, key: K, value: V) -> bool:
        existing = self._entries.setdefault(key, value)
        if existing is not value:
            if not self._same(existing, value):
                raise StoreConflict(f"Different content offered for existing key {key}")
            return False
        for listener in self._listeners:
            listener(key, value)
        return True

    def contains(self, key: K) -> bool:
        return key in self._entries

    def __contains__(self, key: K) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> List[K]:
        return list(self._entries)

    def __iter__(self) -> Iterator[K]:
        return iter(list(self._entries))


@dataclass(frozen=True)
class StoredPayload:
    """A committed payload together with its canonical encoding."""
    value: Value
    encoding: Any

    def canonical(self) -> str:
        return canonicalize_json(self.encoding)


class CommitmentStore(_AppendOnlyStore["Commitment", StoredPayload]):
    """Commitment -> payload mapping (the audit trail of every committed value)."""

    def _same(self, a: StoredPayload, b: StoredPayload) -> bool:
        return a.canonical() == b.canonical()

    def put(self, commitment: "Commitment", payload: StoredPayload) -> bool:
        """Insert a pair; returns True if it was new. Idempotent for identical content."""
        inserted = self._put(commitment, payload)
        if inserted:
            logger.debug("stored commitment %s", commitment.hex)
        return inserted

    def get(self, commitment: "Commitment") -> StoredPayload:
        try:
            return self._entries[commitment]
        except KeyError:
            raise UnknownCommitment(commitment.hex) from None

    def find(self, commitment: "Commitment") -> Optional[StoredPayload]:
        return self._entries.get(commitment)


class ProofStore(_AppendOnlyStore[str, bytes]):
    """Proof identifier -> artifact bytes."""

    def put(self, identifier: str, artifact: bytes) -> bool:
        inserted = self._put(identifier, artifact)
        if inserted:
            logger.debug("stored proof %s (%d bytes)", identifier, len(artifact))
        return inserted

    def get(self, identifier: str) -> bytes:
        try:
            return self._entries[identifier]
        except KeyError:
            raise UnknownProof(identifier) from None

    def find(self, identifier: str) -> Optional[bytes]:
        return self._entries.get(identifier)
