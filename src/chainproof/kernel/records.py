"""Immutable records exchanged between the chain controller and the proof manager."""

from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .encoding import decode_value
from .hash_utils import CLAIM_DOMAIN, canonicalize_json, digest_json, is_commitment_hex


def check_digest(v: str) -> str:
    if len(v) != 64 or not all(c in "0123456789abcdef" for c in v):
        raise ValueError(f"digest must be 64 lowercase hex characters, got '{v}'")
    return v


def _check_commitment(v: str) -> str:
    if not is_commitment_hex(v):
        raise ValueError(f"commitment must be '0x' + 64 lowercase hex characters, got '{v}'")
    return v


def _check_value_encoding(v: Any) -> Any:
    # SerializationError and CanonicalizationError are ValueErrors
    decode_value(v)
    canonicalize_json(v)
    return v


class Frame(BaseModel):
    """One reduction of the evaluator: machine state digest before and after.

    meta names the reduction family: "core" for control flow and
    application, or a builtin family ("arith", "cmp", "pair").
    """
    index: int = Field(..., ge=0)
    input: str
    output: str
    meta: str = "core"

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("input", "output")
    @classmethod
    def validate_digest(cls, v: str) -> str:
        return check_digest(v)


class Trace(BaseModel):
    """Machine-checkable record of one evaluation.

    result is the canonical encoding of the value the evaluation halted with.
    """
    frames: Tuple[Frame, ...]
    result: Any

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def num_frames(self) -> int:
        return len(self.frames)

    @property
    def z0(self) -> str:
        """Digest of the initial machine state."""
        return self.frames[0].input

    @property
    def zi(self) -> str:
        """Digest of the final machine state."""
        return self.frames[-1].output


class Claim(BaseModel):
    """Public statement proven about one chain step.

    "Applying the function committed under prior to input yields output,
    and the next function is committed under new_head."
    """
    prior: str
    input: Any
    output: Any
    new_head: str

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("prior", "new_head")
    @classmethod
    def validate_commitment(cls, v: str) -> str:
        return _check_commitment(v)

    @field_validator("input", "output")
    @classmethod
    def validate_value(cls, v: Any) -> Any:
        return _check_value_encoding(v)

    def digest(self) -> bytes:
        return digest_json(CLAIM_DOMAIN, self.model_dump(mode="json"))


class VerificationResult(BaseModel):
    """Outcome of verify(). A negative result is a reportable outcome, not a fault."""
    identifier: str
    ok: bool
    code: str  # VerificationCode value
    reason: Optional[str] = None
    claim: Optional[Claim] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class StepRecord(BaseModel):
    """Result of one chain() invocation; consumed by the proof manager."""
    index: int = Field(..., ge=1)
    prior: str
    input: Any
    output: Any
    new_head: str
    trace: Trace

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("prior", "new_head")
    @classmethod
    def validate_commitment(cls, v: str) -> str:
        return _check_commitment(v)

    @field_validator("input", "output")
    @classmethod
    def validate_value(cls, v: Any) -> Any:
        return _check_value_encoding(v)

    def claim(self) -> Claim:
        return Claim(
            prior=self.prior,
            input=self.input,
            output=self.output,
            new_head=self.new_head,
        )
