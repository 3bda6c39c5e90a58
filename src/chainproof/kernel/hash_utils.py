"""Hash utilities with explicit canonicalization rules for stable hashing.

Commitments, machine-state digests and proof identifiers are all computed
here so that every component (and any third-party verifier) derives the
same bytes from the same logical value.

Key rules:
- Object keys sorted recursively
- Arrays preserve order
- Floats BANNED (hard validation error)
- Strings normalized to NFC
- Non-JSON types forbidden
- Every digest is domain-tagged, so a commitment can never be replayed
  as a state digest or a proof identifier
"""

import base64
import hashlib
import json
import re
import unicodedata
from typing import Any


COMMIT_DOMAIN = "chainproof.commit.v1"
STATE_DOMAIN = "chainproof.state.v1"
CLAIM_DOMAIN = "chainproof.claim.v1"
FOLD_DOMAIN = "chainproof.fold.v1"
SEAL_DOMAIN = "chainproof.seal.v1"
PARAMS_DOMAIN = "chainproof.params.v1"

DIGEST_SIZE = 32
PROOF_ID_PREFIX = "cp_"

_COMMITMENT_RE = re.compile(r"^0x[0-9a-f]{64}$")
_PROOF_ID_RE = re.compile(r"^cp_[a-z2-7]{52}$")


class CanonicalizationError(ValueError):
    """Raised when an object cannot be canonicalized."""
    pass


def _normalize_string(s: str) -> str:
    """Normalize string to NFC (Unicode Normalization Form Canonical Composition)."""
    return unicodedata.normalize('NFC', s)


def _validate_json_type(obj: Any, path: str = "") -> None:
    """Validate that object contains only JSON-compatible types.

    Raises CanonicalizationError if non-JSON types are found.
    Tuples are accepted and treated as arrays.
    """
    if obj is None or isinstance(obj, (bool, int, str)):
        return
    elif isinstance(obj, float):
        raise CanonicalizationError(
            f"Floats are not allowed in canonical encodings (at {path or '<root>'})."
        )
    elif isinstance(obj, dict):
        for key, value in obj.items():
            if not isinstance(key, str):
                raise CanonicalizationError(
                    f"Dictionary keys must be strings at {path or '<root>'}, got {type(key).__name__}"
                )
            _validate_json_type(value, f"{path}.{key}" if path else key)
    elif isinstance(obj, (list, tuple)):
        for i, item in enumerate(obj):
            _validate_json_type(item, f"{path}[{i}]")
    else:
        raise CanonicalizationError(
            f"Non-JSON type at {path or '<root>'}: {type(obj).__name__}. "
            f"Only None, bool, int, str, dict, and list are allowed."
        )


def _canonicalize_value(obj: Any) -> Any:
    if isinstance(obj, str):
        return _normalize_string(obj)
    elif isinstance(obj, dict):
        return {
            _normalize_string(k): _canonicalize_value(v)
            for k, v in sorted(obj.items())
        }
    elif isinstance(obj, (list, tuple)):
        return [_canonicalize_value(item) for item in obj]
    return obj


def canonicalize_json(obj: Any) -> str:
    """Canonicalize a JSON-serializable object to a stable string representation.

    Args:
        obj: The object to canonicalize

    Returns:
        Canonical JSON string

    Raises:
        CanonicalizationError: If object contains floats or non-JSON types,
            or cannot be serialized at all
    """
    try:
        _validate_json_type(obj)
        canonicalized = _canonicalize_value(obj)
        return json.dumps(canonicalized, sort_keys=True, ensure_ascii=False, separators=(',', ':'))
    except RecursionError:
        raise CanonicalizationError("Object is nested too deeply to canonicalize") from None
    except CanonicalizationError:
        raise
    except ValueError as e:
        raise CanonicalizationError(f"Cannot serialize object: {e}") from e


def canonical_bytes(obj: Any) -> bytes:
    """UTF-8 bytes of canonicalize_json(obj)."""
    return canonicalize_json(obj).encode('utf-8')


def tagged_digest(domain: str, *parts: bytes) -> bytes:
    """SHA-256 over a domain tag followed by length-prefixed parts."""
    h = hashlib.sha256()
    h.update(domain.encode('utf-8'))
    h.update(b"\x00")
    for part in parts:
        h.update(len(part).to_bytes(8, "big"))
        h.update(part)
    return h.digest()


def digest_json(domain: str, obj: Any) -> bytes:
    """Domain-tagged SHA-256 of the canonical encoding of obj."""
    return tagged_digest(domain, canonical_bytes(obj))


def state_digest(state_encoding: Any) -> str:
    """Hex digest of an evaluator machine state encoding."""
    return digest_json(STATE_DOMAIN, state_encoding).hex()


def to_commitment_hex(digest: bytes) -> str:
    if len(digest) != DIGEST_SIZE:
        raise ValueError(f"expected {DIGEST_SIZE}-byte digest, got {len(digest)}")
    return "0x" + digest.hex()


def from_commitment_hex(text: str) -> bytes:
    """Parse a 0x-prefixed commitment; case-insensitive on input."""
    normalized = text.strip().lower()
    if not _COMMITMENT_RE.match(normalized):
        raise ValueError(
            f"Commitment must be '0x' followed by 64 hex characters, got '{text}'"
        )
    return bytes.fromhex(normalized[2:])


def is_commitment_hex(text: str) -> bool:
    return bool(_COMMITMENT_RE.match(text))


def proof_identifier(artifact: bytes) -> str:
    """Content-derived proof identifier: 'cp_' + unpadded base32 of SHA-256.

    The base32 alphabet (a-z, 2-7) never collides with a 0x hex commitment.
    """
    digest = hashlib.sha256(artifact).digest()
    encoded = base64.b32encode(digest).decode('ascii').rstrip('=').lower()
    return f"{PROOF_ID_PREFIX}{encoded}"


def is_proof_identifier(text: str) -> bool:
    return bool(_PROOF_ID_RE.match(text))
