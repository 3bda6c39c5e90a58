"""chainproof: chained functional commitments with per-step proofs."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("chainproof")
except PackageNotFoundError:
    __version__ = "dev"

# Public API exports
from chainproof.api import Session, open_session
from chainproof.config import EngineConfig
from chainproof.contracts import AuditIssue, AuditReport, ChainResult, CommitResult, ProveResult
from chainproof.codes import AuditCode, ErrorCode, VerificationCode
from chainproof.kernel.records import VerificationResult

__all__ = [
    "__version__",
    "Session",
    "open_session",
    "EngineConfig",
    "CommitResult",
    "ChainResult",
    "ProveResult",
    "AuditIssue",
    "AuditReport",
    "VerificationResult",
    "ErrorCode",
    "VerificationCode",
    "AuditCode",
]
