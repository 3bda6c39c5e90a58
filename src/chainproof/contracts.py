"""Public result models for chainproof sessions."""

from typing import Any, List, Optional

from pydantic import BaseModel, Field


class CommitResult(BaseModel):
    """Result of committing an expression's value."""
    commitment: str  # 0x + 64 hex
    payload: str  # printed form of the committed value
    new: bool  # False if the value was already committed


class ChainResult(BaseModel):
    """Result of one chain step."""
    index: int
    prior: str
    output: str  # printed output value
    output_encoding: Any
    new_head: str
    num_frames: int


class ProveResult(BaseModel):
    """Result of proving one step record."""
    identifier: str  # cp_ + 52 base32
    step_index: int
    num_bytes: int


class AuditIssue(BaseModel):
    """A single problem found in a store directory."""
    code: str  # AuditCode value
    path: str
    message: str


class AuditReport(BaseModel):
    """Audit of a store directory. ok is True only if no issue was found."""
    ok: bool
    commitments_checked: int
    proofs_checked: int
    steps_checked: int
    head: Optional[str] = None
    issues: List[AuditIssue] = Field(default_factory=list)
