"""Exception taxonomy for the commitment/chain/proof kernel.

Every engine-level failure is a ChainProofError carrying an ErrorCode.
A failed verification is NOT an exception; see VerificationResult.
"""

from typing import Optional

from chainproof.codes import ErrorCode


class ChainProofError(Exception):
    """Base class for all engine-level errors."""

    code: ErrorCode = ErrorCode.EVALUATION_ERROR

    def __init__(self, message: str, *, code: Optional[ErrorCode] = None):
        super().__init__(message)
        if code is not None:
            self.code = code

    @property
    def message(self) -> str:
        return self.args[0] if self.args else ""


class SerializationError(ChainProofError, ValueError):
    """Raised when a payload has no canonical encoding."""
    code = ErrorCode.SERIALIZATION_ERROR


class UnknownCommitment(ChainProofError, LookupError):
    """Raised when a commitment is not present in the store."""
    code = ErrorCode.UNKNOWN_COMMITMENT

    def __init__(self, commitment_hex: str):
        super().__init__(f"Unknown commitment: {commitment_hex}")
        self.commitment_hex = commitment_hex


class StoreConflict(ChainProofError):
    """Raised when a different payload is offered under an existing key."""
    code = ErrorCode.STORE_CONFLICT


class HeadMismatch(ChainProofError):
    """Raised when chain() is called with a commitment other than the head."""
    code = ErrorCode.HEAD_MISMATCH

    def __init__(self, expected: str, head: str):
        super().__init__(
            f"Commitment {expected} is not the chain head (head is {head})"
        )
        self.expected = expected
        self.head = head


class AlreadyInitialized(ChainProofError):
    code = ErrorCode.ALREADY_INITIALIZED


class NotInitialized(ChainProofError):
    code = ErrorCode.NOT_INITIALIZED


class ChainFaulted(ChainProofError):
    """Raised once the controller has observed an invariant violation."""
    code = ErrorCode.CHAIN_FAULTED


class EvaluationError(ChainProofError):
    """Raised by the evaluator: type errors, unbound names, step budget exceeded."""
    code = ErrorCode.EVALUATION_ERROR


class ReadError(EvaluationError):
    """Raised when expression text cannot be read."""
    code = ErrorCode.READ_ERROR


class ProvingError(ChainProofError):
    """Raised when the backend cannot produce a proof (malformed trace, limits, timeout)."""
    code = ErrorCode.PROVING_ERROR


class NothingToProve(ProvingError):
    code = ErrorCode.NOTHING_TO_PROVE


class UnknownProof(ChainProofError, LookupError):
    """Raised by verify() when an identifier resolves to no artifact."""
    code = ErrorCode.UNKNOWN_PROOF

    def __init__(self, identifier: str):
        super().__init__(f"Unknown proof identifier: {identifier}")
        self.identifier = identifier
