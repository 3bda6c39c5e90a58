"""Commitment engine: value -> digest, digest -> value."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .encoding import decode_value, encode_value
from .errors import SerializationError
from .hash_utils import (
    COMMIT_DOMAIN,
    CanonicalizationError,
    canonical_bytes,
    from_commitment_hex,
    tagged_digest,
    to_commitment_hex,
)
from .store import CommitmentStore, StoredPayload
from .values import Value


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Commitment:
    """Fixed-width (32 byte) digest binding one payload."""
    digest: bytes

    def __post_init__(self):
        if len(self.digest) != 32:
            raise ValueError(f"Commitment digest must be 32 bytes, got {len(self.digest)}")

    @property
    def hex(self) -> str:
        return to_commitment_hex(self.digest)

    @classmethod
    def from_hex(cls, text: str) -> "Commitment":
        return cls(from_commitment_hex(text))

    def __str__(self) -> str:
        return self.hex

    def __repr__(self) -> str:
        return f"Commitment({self.hex})"


def commitment_of_encoding(encoding: Any) -> Commitment:
    """Commitment over an already-canonical value encoding.

    Raises:
        SerializationError: If the encoding is not canonicalizable
    """
    try:
        data = canonical_bytes(encoding)
    except CanonicalizationError as e:
        raise SerializationError(str(e)) from e
    return Commitment(tagged_digest(COMMIT_DOMAIN, data))


class CommitmentEngine:
    """Builds commitments into, and opens them from, a CommitmentStore."""

    def __init__(self, store: CommitmentStore):
        self.store = store

    def commitment_for(self, payload: Value) -> Commitment:
        """Compute the commitment without storing anything."""
        return commitment_of_encoding(encode_value(payload, strict=True))

    def commit(self, payload: Value) -> Commitment:
        """Canonically encode, hash and store payload.

        Raises:
            SerializationError: If payload is outside the representable subset
        """
        encoding = encode_value(payload, strict=True)
        commitment = commitment_of_encoding(encoding)
        if self.store.put(commitment, StoredPayload(value=payload, encoding=encoding)):
            logger.info("committed %s", commitment.hex)
        return commitment

    def open(self, commitment: Commitment) -> Value:
        """Recover the payload; raises UnknownCommitment if absent."""
        return self.store.get(commitment).value

    def encoding_of(self, commitment: Commitment) -> Any:
        return self.store.get(commitment).encoding

    def restore(self, encoding: Any) -> Commitment:
        """Re-insert a persisted encoding (decoding it back to a value).

        The value is re-encoded, so a non-canonical file yields the
        commitment of its canonical form, not of its bytes.
        """
        payload = decode_value(encoding)
        return self.commit(payload)
