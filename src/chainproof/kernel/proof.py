"""Proof manager and the proof backend contract.

A backend turns (claim, trace) into opaque artifact bytes and later checks
artifact bytes against a claim without the trace. The manager addresses
artifacts by a content-derived identifier, so proving the same step
record twice gives the same identifier.

The reference backend (HashFoldBackend) follows the shape of a folding
prover: frames are grouped into multiframes per circuit (IVC: one
circuit; NIVC: a core circuit plus one per builtin family), each
multiframe is folded into a running accumulator, and the running
accumulator is re-verified after every fold step. Its artifacts are
transparent: the accumulator and seal are plain hashes, not a SNARK.
"""

from __future__ import annotations

import concurrent.futures
import json
import logging
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import List, Literal, Optional, Protocol, Tuple, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from chainproof.codes import VerificationCode
from .chain import ChainController
from .commitment import commitment_of_encoding
from .errors import ProvingError, NothingToProve, SerializationError, UnknownProof
from .evaluator import call_state, halt_state
from .hash_utils import (
    FOLD_DOMAIN,
    PARAMS_DOMAIN,
    SEAL_DOMAIN,
    canonical_bytes,
    canonicalize_json,
    digest_json,
    proof_identifier,
    state_digest,
    tagged_digest,
)
from .records import Claim, Frame, StepRecord, Trace, VerificationResult, check_digest
from .store import ProofStore
from .syntax import BUILTIN_FAMILIES, CORE_META


logger = logging.getLogger(__name__)

PROOF_FORMAT = "chainproof.proof"
PROOF_VERSION = "0.1"


# --- folding configuration ---------------------------------------------------

@dataclass(frozen=True)
class FoldingConfig:
    """How frames map onto step circuits.

    IVC: a single circuit implements every reduction.
    NIVC: circuit 0 implements core reductions; builtin families get
    their own circuits (1 + family index), like coprocessors.
    """
    kind: Literal["ivc", "nivc"] = "nivc"
    reduction_count: int = 10

    def __post_init__(self):
        if self.kind not in ("ivc", "nivc"):
            raise ValueError(f"folding kind must be 'ivc' or 'nivc', got '{self.kind}'")
        if self.reduction_count < 1:
            raise ValueError("reduction_count must be at least 1")

    def circuit_index(self, meta: str) -> int:
        if self.kind == "ivc":
            return 0
        if meta == CORE_META:
            return 0
        if meta not in BUILTIN_FAMILIES:
            raise ProvingError(f"Frame meta '{meta}' has no circuit")
        return 1 + BUILTIN_FAMILIES.index(meta)

    @property
    def num_circuits(self) -> int:
        return 1 if self.kind == "ivc" else 1 + len(BUILTIN_FAMILIES)


@dataclass(frozen=True)
class PublicParams:
    backend: str
    folding: str
    reduction_count: int
    num_circuits: int
    digest: str


@lru_cache(maxsize=32)
def public_params(backend: str, config: FoldingConfig) -> PublicParams:
    """Public parameters for a backend/folding pair (cached; derivation is deterministic)."""
    body = {
        "backend": backend,
        "folding": config.kind,
        "reduction_count": config.reduction_count,
        "num_circuits": config.num_circuits,
    }
    return PublicParams(
        backend=backend,
        folding=config.kind,
        reduction_count=config.reduction_count,
        num_circuits=config.num_circuits,
        digest=digest_json(PARAMS_DOMAIN, body).hex(),
    )


@dataclass(frozen=True)
class MultiFrame:
    """One folding step: up to reduction_count frames run by one circuit."""
    circuit_index: int
    frames: Tuple[Frame, ...]
    next_circuit_index: int = 0

    @property
    def input(self) -> str:
        return self.frames[0].input

    @property
    def output(self) -> str:
        return self.frames[-1].output

    def encode(self):
        return {
            "circuit": self.circuit_index,
            "next": self.next_circuit_index,
            "frames": [[f.input, f.output] for f in self.frames],
        }


def _pad(chunk: List[Frame], size: int) -> Tuple[Frame, ...]:
    last = chunk[-1]
    padding = Frame(index=last.index, input=last.output, output=last.output, meta=last.meta)
    return tuple(chunk + [padding] * (size - len(chunk)))


def build_steps(frames: Tuple[Frame, ...], config: FoldingConfig) -> List[MultiFrame]:
    """Group frames into multiframes.

    Consecutive frames on the same circuit are grouped; core groups are cut
    into chunks of reduction_count, builtin groups into single-frame steps.
    Each chunk is padded with identity frames to its chunk size.
    """
    groups: List[Tuple[int, List[Frame]]] = []
    for frame in frames:
        index = config.circuit_index(frame.meta)
        if groups and groups[-1][0] == index:
            groups[-1][1].append(frame)
        else:
            groups.append((index, [frame]))

    steps: List[MultiFrame] = []
    for circuit, group in groups:
        size = config.reduction_count if circuit == 0 else 1
        for start in range(0, len(group), size):
            chunk = group[start:start + size]
            steps.append(MultiFrame(circuit_index=circuit, frames=_pad(chunk, size)))

    for i in range(len(steps) - 1):
        steps[i] = replace(steps[i], next_circuit_index=steps[i + 1].circuit_index)
    return steps


# --- artifacts ---------------------------------------------------------------

class ProofArtifact(BaseModel):
    """Parsed content of proof artifact bytes."""
    format: str = PROOF_FORMAT
    version: str = PROOF_VERSION
    backend: str
    params: str
    claim: Claim
    num_steps: int = Field(..., ge=1)
    num_frames: int = Field(..., ge=1)
    z0: str
    zi: str
    accumulator: str
    seal: str

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("params", "z0", "zi", "accumulator", "seal")
    @classmethod
    def validate_digest(cls, v: str) -> str:
        return check_digest(v)

    def to_bytes(self) -> bytes:
        return canonical_bytes(self.model_dump(mode="json"))

    @classmethod
    def from_bytes(cls, data: bytes) -> "ProofArtifact":
        """Parse artifact bytes; raises ValueError on any malformation."""
        try:
            obj = json.loads(data.decode("utf-8"))
        except UnicodeDecodeError as e:
            raise ValueError(f"artifact is not UTF-8: {e}") from e
        except RecursionError:
            raise ValueError("artifact JSON is nested too deeply") from None
        return cls.model_validate(obj)


@dataclass(frozen=True)
class Proof:
    identifier: str
    artifact: bytes
    claim: Claim
    step_index: Optional[int] = None


@dataclass(frozen=True)
class BackendVerdict:
    ok: bool
    code: VerificationCode
    reason: Optional[str] = None


@runtime_checkable
class ProofBackend(Protocol):
    """Capability interface of a proof backend."""

    name: str

    @property
    def public_params(self) -> PublicParams:
        ...

    def prove(self, claim: Claim, trace: Trace) -> bytes:
        """Produce artifact bytes; raises ProvingError on malformed traces or limits."""
        ...

    def verify(self, claim: Claim, artifact: bytes) -> BackendVerdict:
        """Check artifact bytes against claim without the trace. Never raises for bad input."""
        ...


# --- reference backend ---------------------------------------------------------

def _fold(accumulator: bytes, step: MultiFrame) -> bytes:
    return tagged_digest(FOLD_DOMAIN, accumulator, canonical_bytes(step.encode()))


def _seal(params: str, claim: Claim, z0: str, zi: str, num_steps: int, num_frames: int, accumulator: str) -> str:
    return tagged_digest(
        SEAL_DOMAIN,
        params.encode("ascii"),
        claim.digest(),
        z0.encode("ascii"),
        zi.encode("ascii"),
        str(num_steps).encode("ascii"),
        str(num_frames).encode("ascii"),
        accumulator.encode("ascii"),
    ).hex()


def expected_z0(claim: Claim) -> str:
    """Digest of the call state a step must start from."""
    return state_digest(call_state(claim.prior, [claim.input]))


class HashFoldBackend:
    """Transparent hash-folding reference backend.

    Artifacts prove integrity only, not soundness: the seal is an unkeyed
    hash, so anyone can seal an artifact for a claim that was never
    evaluated. verify() catches any edit to an artifact made by this
    backend; it cannot tell an honest artifact from a freshly forged one.
    Accept proofs only from a prover you trust, or plug in a real folding
    backend through ProofBackend.

    Args:
        config: Folding configuration (part of the public parameters)
        max_frames: Resource limit; larger traces are rejected with ProvingError
    """

    name = "hashfold"

    def __init__(self, config: Optional[FoldingConfig] = None, max_frames: int = 1_000_000):
        self.config = config or FoldingConfig()
        self.max_frames = max_frames

    @property
    def public_params(self) -> PublicParams:
        return public_params(self.name, self.config)

    def check_trace(self, claim: Claim, trace: Trace) -> None:
        """Reject traces that do not connect the claim's boundary states.

        Raises:
            ProvingError: With the failing condition in the message
        """
        frames = trace.frames
        if not frames:
            raise ProvingError("INVALID_TRACE: trace has no frames")
        if len(frames) > self.max_frames:
            raise ProvingError(
                f"Trace has {len(frames)} frames, over the backend limit of {self.max_frames}"
            )
        for position, frame in enumerate(frames):
            if frame.index != position:
                raise ProvingError(f"INVALID_TRACE: frame {position} has index {frame.index}")
            if position and frames[position - 1].output != frame.input:
                raise ProvingError(f"INVALID_TRACE: frame {position} does not link to frame {position - 1}")
        if frames[0].input != expected_z0(claim):
            raise ProvingError("INVALID_TRACE: trace does not start from the claimed call")
        if frames[-1].output != state_digest(halt_state(trace.result)):
            raise ProvingError("INVALID_TRACE: trace does not halt with the recorded result")

        result = trace.result
        if not (isinstance(result, list) and len(result) == 3 and result[0] == "cons"
                and isinstance(result[1], list) and len(result[1]) == 1):
            raise ProvingError("INVALID_TRACE: result is not a pair (output . next-function)")
        output, next_fn = result[1][0], result[2]
        if canonicalize_json(output) != canonicalize_json(claim.output):
            raise ProvingError("INVALID_TRACE: result output differs from the claimed output")
        if not (isinstance(next_fn, list) and next_fn and next_fn[0] in ("fun", "fix")):
            raise ProvingError("INVALID_TRACE: result tail is not a function")
        try:
            next_commitment = commitment_of_encoding(next_fn)
        except SerializationError as e:
            raise ProvingError(f"INVALID_TRACE: next function is not encodable: {e}") from e
        if next_commitment.hex != claim.new_head:
            raise ProvingError("INVALID_TRACE: next function does not hash to the claimed new head")

    def prove(self, claim: Claim, trace: Trace) -> bytes:
        self.check_trace(claim, trace)
        params = self.public_params
        steps = build_steps(trace.frames, self.config)
        logger.info("proving %d frame(s) in %d folding step(s)", trace.num_frames, len(steps))

        accumulator = tagged_digest(FOLD_DOMAIN, params.digest.encode("ascii"), trace.z0.encode("ascii"))
        previous_output = trace.z0
        for i, step in enumerate(steps):
            if step.input != previous_output:
                raise ProvingError(f"INVALID_TRACE: folding step {i} does not continue step {i - 1}")
            # running check: every frame of the step links to the one before it
            for a, b in zip(step.frames, step.frames[1:]):
                if a.output != b.input:
                    raise ProvingError(f"Folding step {i} failed its running verification")
            accumulator = _fold(accumulator, step)
            logger.debug("folded step %d on circuit %d", i, step.circuit_index)
            previous_output = step.output

        accumulator_hex = accumulator.hex()
        artifact = ProofArtifact(
            backend=self.name,
            params=params.digest,
            claim=claim,
            num_steps=len(steps),
            num_frames=trace.num_frames,
            z0=trace.z0,
            zi=trace.zi,
            accumulator=accumulator_hex,
            seal=_seal(params.digest, claim, trace.z0, trace.zi, len(steps), trace.num_frames, accumulator_hex),
        )
        return artifact.to_bytes()

    def verify(self, claim: Claim, artifact: bytes) -> BackendVerdict:
        try:
            parsed = ProofArtifact.from_bytes(artifact)
        except (ValueError, ValidationError) as e:
            return BackendVerdict(False, VerificationCode.MALFORMED_PROOF, f"Cannot parse proof: {e}")
        if parsed.format != PROOF_FORMAT or parsed.version != PROOF_VERSION:
            return BackendVerdict(
                False, VerificationCode.MALFORMED_PROOF,
                f"Unsupported proof format {parsed.format} {parsed.version}",
            )
        if parsed.backend != self.name:
            return BackendVerdict(
                False, VerificationCode.MALFORMED_PROOF,
                f"Proof was produced by backend '{parsed.backend}', not '{self.name}'",
            )
        if parsed.params != self.public_params.digest:
            return BackendVerdict(
                False, VerificationCode.PARAMS_MISMATCH,
                "Proof was produced under different public parameters",
            )
        if parsed.claim != claim:
            return BackendVerdict(False, VerificationCode.CLAIM_MISMATCH, "Proof does not prove this claim")
        if parsed.z0 != expected_z0(claim):
            return BackendVerdict(
                False, VerificationCode.INVALID_TRACE,
                "Proof does not start from the claimed call",
            )
        expected_seal = _seal(
            parsed.params, claim, parsed.z0, parsed.zi,
            parsed.num_steps, parsed.num_frames, parsed.accumulator,
        )
        if parsed.seal != expected_seal:
            return BackendVerdict(False, VerificationCode.HASH_MISMATCH, "Proof seal does not match its content")
        return BackendVerdict(True, VerificationCode.OK)


# --- manager -------------------------------------------------------------------

class ProofManager:
    """Proves step records and verifies proofs by identifier.

    Args:
        backend: Proof backend
        proofs: Proof store (identifier -> artifact bytes)
        controller: When given, only records produced by this controller are
            provable, and proven records leave its pending queue
        default_timeout: Seconds allowed per prove() call (None: unbounded)
    """

    def __init__(
        self,
        backend: ProofBackend,
        proofs: ProofStore,
        controller: Optional[ChainController] = None,
        default_timeout: Optional[float] = None,
    ):
        self.backend = backend
        self.proofs = proofs
        self.controller = controller
        self.default_timeout = default_timeout

    def prove(self, record: StepRecord, timeout: Optional[float] = None) -> Proof:
        """Prove one step record.

        Retrying after a failure is safe: nothing is stored until the
        backend has produced a complete artifact.

        Raises:
            ProvingError: On foreign records, malformed traces, backend limits or timeout
        """
        if self.controller is not None and not self.controller.owns(record):
            raise ProvingError(
                f"Step record {record.index} was not produced by this chain"
            )
        claim = record.claim()
        limit = self.default_timeout if timeout is None else timeout

        executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="chainproof-prove")
        try:
            future = executor.submit(self.backend.prove, claim, record.trace)
            try:
                artifact = future.result(timeout=limit)
            except concurrent.futures.TimeoutError:
                future.cancel()
                raise ProvingError(f"Proving step {record.index} timed out after {limit}s") from None
        except ProvingError:
            raise
        except Exception as e:
            raise ProvingError(f"Proof backend failed on step {record.index}: {e}") from e
        finally:
            executor.shutdown(wait=False)

        identifier = proof_identifier(artifact)
        self.proofs.put(identifier, artifact)
        if self.controller is not None:
            self.controller.mark_proven(record.index)
        logger.info("proved step %d as %s", record.index, identifier)
        return Proof(identifier=identifier, artifact=artifact, claim=claim, step_index=record.index)

    def prove_pending(self, timeout: Optional[float] = None) -> Proof:
        """Prove the most recent unproven step record of the attached chain."""
        if self.controller is None:
            raise NothingToProve("No chain attached to this proof manager")
        record = self.controller.latest_pending()
        if record is None:
            raise NothingToProve("No unproven chain step")
        return self.prove(record, timeout=timeout)

    def artifact(self, identifier: str) -> bytes:
        return self.proofs.get(identifier)

    def verify(
        self,
        identifier: str,
        artifact: Optional[bytes] = None,
        expected: Optional[Claim] = None,
    ) -> VerificationResult:
        """Verify a proof by identifier.

        The artifact is taken from the proof store unless supplied. Bad
        proofs produce a negative result; only a missing artifact raises.

        Raises:
            UnknownProof: If no artifact is stored or supplied for identifier
        """
        if artifact is None:
            artifact = self.proofs.find(identifier)
            if artifact is None:
                raise UnknownProof(identifier)

        def _negative(code: VerificationCode, reason: str) -> VerificationResult:
            logger.info("proof %s rejected: %s", identifier, reason)
            return VerificationResult(identifier=identifier, ok=False, code=code.value, reason=reason)

        if proof_identifier(artifact) != identifier:
            return _negative(VerificationCode.HASH_MISMATCH, "Artifact bytes do not match the identifier")
        try:
            parsed = ProofArtifact.from_bytes(artifact)
        except (ValueError, ValidationError) as e:
            return _negative(VerificationCode.MALFORMED_PROOF, f"Cannot parse proof: {e}")

        claim = parsed.claim
        if expected is not None and expected != claim:
            return _negative(VerificationCode.CLAIM_MISMATCH, "Proof does not prove the expected claim")

        verdict = self.backend.verify(claim, artifact)
        if not verdict.ok:
            return _negative(verdict.code, verdict.reason or verdict.code.value)
        return VerificationResult(identifier=identifier, ok=True, code=VerificationCode.OK.value, claim=claim)
