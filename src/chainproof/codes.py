"""Error and verification code constants for chainproof.

These constants prevent stringly-typed codes and ensure client code
uses the same codes the engine reports.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Engine-level error codes (carried by ChainProofError subclasses)."""

    # Commitment layer
    SERIALIZATION_ERROR = "SERIALIZATION_ERROR"
    UNKNOWN_COMMITMENT = "UNKNOWN_COMMITMENT"
    STORE_CONFLICT = "STORE_CONFLICT"

    # Chain controller
    HEAD_MISMATCH = "HEAD_MISMATCH"
    ALREADY_INITIALIZED = "ALREADY_INITIALIZED"
    NOT_INITIALIZED = "NOT_INITIALIZED"
    CHAIN_FAULTED = "CHAIN_FAULTED"

    # Evaluator
    EVALUATION_ERROR = "EVALUATION_ERROR"
    READ_ERROR = "READ_ERROR"

    # Proof manager
    PROVING_ERROR = "PROVING_ERROR"
    NOTHING_TO_PROVE = "NOTHING_TO_PROVE"
    UNKNOWN_PROOF = "UNKNOWN_PROOF"


class VerificationCode(str, Enum):
    """Outcome codes of verify(); only OK means the proof was accepted."""

    OK = "OK"
    MALFORMED_PROOF = "MALFORMED_PROOF"
    HASH_MISMATCH = "HASH_MISMATCH"
    INVALID_TRACE = "INVALID_TRACE"
    CLAIM_MISMATCH = "CLAIM_MISMATCH"
    PARAMS_MISMATCH = "PARAMS_MISMATCH"


class AuditCode(str, Enum):
    """Issue codes reported by a store directory audit."""

    UNREADABLE_FILE = "UNREADABLE_FILE"
    COMMITMENT_MISMATCH = "COMMITMENT_MISMATCH"
    PROOF_ID_MISMATCH = "PROOF_ID_MISMATCH"
    STEP_GAP = "STEP_GAP"
    STEP_LINK_BROKEN = "STEP_LINK_BROKEN"
    MISSING_PAYLOAD = "MISSING_PAYLOAD"
    HEAD_MISMATCH = "HEAD_MISMATCH"
