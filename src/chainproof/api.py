"""Public API for the chainproof engine.

A Session wires one commitment store, evaluator, chain controller and
proof manager together and exposes the directive surface (commit, chain,
prove, verify, open, audit, export). With a store directory it persists
every commitment, step record and proof, and resumes from them.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Union

from chainproof.config import EngineConfig, resolve_config
from chainproof.contracts import AuditReport, ChainResult, CommitResult, ProveResult
from chainproof.kernel.chain import ChainController, ChainState
from chainproof.kernel.commitment import Commitment, CommitmentEngine
from chainproof.kernel.encoding import encode_value
from chainproof.kernel.errors import ProvingError
from chainproof.kernel.evaluator import Evaluator
from chainproof.kernel.proof import FoldingConfig, HashFoldBackend, ProofManager
from chainproof.kernel.reader import read
from chainproof.kernel.records import VerificationResult
from chainproof.kernel.store import CommitmentStore, ProofStore
from chainproof.kernel.values import Value, print_value
from chainproof._internal.audit import audit_store
from chainproof._internal.canonical_json import write_bytes_atomic
from chainproof._internal.io.store_files import FileBackedStores


logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike, Path]


def _normalize_path(path: PathLike) -> Path:
    return Path(path) if not isinstance(path, Path) else path


class Session:
    """One chain with its stores, optionally persisted in a directory.

    Args:
        config: Engine configuration (defaults if omitted)
        store_dir: Persistence directory; None keeps everything in memory
    """

    def __init__(self, config: Optional[EngineConfig] = None, store_dir: Optional[PathLike] = None):
        self.config = config or EngineConfig()
        self.store = CommitmentStore()
        self.proofs = ProofStore()
        self.engine = CommitmentEngine(self.store)
        self.evaluator = Evaluator(step_limit=self.config.step_limit)
        self.files = FileBackedStores(_normalize_path(store_dir)) if store_dir is not None else None

        loaded = self.files.load(self.engine, self.proofs) if self.files else None
        if loaded is not None and loaded.head is not None:
            self.controller = ChainController.resume(
                self.engine, self.evaluator, loaded.head, loaded.records,
                proven=loaded.proven, step_limit=self.config.step_limit,
            )
        else:
            self.controller = ChainController(self.engine, self.evaluator, step_limit=self.config.step_limit)

        backend = HashFoldBackend(
            FoldingConfig(kind=self.config.folding, reduction_count=self.config.reduction_count),
            max_frames=self.config.max_proof_frames,
        )
        self.prover = ProofManager(
            backend, self.proofs, controller=self.controller,
            default_timeout=self.config.prove_timeout,
        )
        if self.files is not None:
            self.files.attach(self.store, self.proofs, self.controller)

    # --- helpers -------------------------------------------------------------

    def evaluate(self, expr_text: str) -> Value:
        """Read and evaluate one expression (no trace)."""
        return self.evaluator.evaluate(read(expr_text)).value

    @property
    def head(self) -> Optional[str]:
        return self.controller.head.hex if self.controller.head is not None else None

    def _persist_chain(self) -> None:
        if self.files is not None and self.controller.head is not None:
            self.files.write_chain(self.controller.head, self.controller.proven)

    # --- directives ------------------------------------------------------------

    def commit(self, expr_text: str) -> CommitResult:
        """Evaluate expr_text and commit the resulting value."""
        value = self.evaluate(expr_text)
        commitment = self.engine.commitment_for(value)
        new = commitment not in self.store
        self.engine.commit(value)
        return CommitResult(commitment=commitment.hex, payload=print_value(value), new=new)

    def initialize(self, genesis_hex: str) -> None:
        self.controller.initialize(Commitment.from_hex(genesis_hex))
        self._persist_chain()

    def chain(self, commitment_hex: str, input_text: str) -> ChainResult:
        """Apply the committed function to the value of input_text.

        On a chain that was never initialized, commitment_hex becomes the genesis.
        """
        expected = Commitment.from_hex(commitment_hex)
        input_value = self.evaluate(input_text)
        if self.controller.state is ChainState.UNINITIALIZED:
            self.initialize(expected.hex)
        step = self.controller.chain(expected, input_value)
        return ChainResult(
            index=step.record.index,
            prior=step.record.prior,
            output=print_value(step.output),
            output_encoding=encode_value(step.output),
            new_head=step.new_head.hex,
            num_frames=step.record.trace.num_frames,
        )

    def prove(self, step: Optional[int] = None, timeout: Optional[float] = None) -> ProveResult:
        """Prove step record `step`, or the most recent unproven one."""
        if step is None:
            proof = self.prover.prove_pending(timeout=timeout)
        else:
            try:
                record = self.controller.step(step)
            except IndexError as e:
                raise ProvingError(str(e)) from e
            proof = self.prover.prove(record, timeout=timeout)
        self._persist_chain()
        return ProveResult(identifier=proof.identifier, step_index=proof.step_index, num_bytes=len(proof.artifact))

    def verify(self, identifier: str, artifact: Optional[PathLike] = None) -> VerificationResult:
        """Verify a stored proof, or an artifact file supplied by path."""
        data = _normalize_path(artifact).read_bytes() if artifact is not None else None
        return self.prover.verify(identifier, artifact=data)

    def open(self, commitment_hex: str) -> str:
        """Printed form of the payload committed under commitment_hex."""
        return print_value(self.engine.open(Commitment.from_hex(commitment_hex)))

    def export(self, identifier: str, out: PathLike) -> Path:
        """Write the artifact bytes of a stored proof to out."""
        path = _normalize_path(out)
        write_bytes_atomic(path, self.prover.artifact(identifier))
        logger.info("exported %s to %s", identifier, path)
        return path

    def audit(self) -> AuditReport:
        """Audit the session's store directory (in-memory sessions have nothing to audit)."""
        if self.files is None:
            raise ValueError("Session has no store directory to audit")
        return audit_store(self.files.root)


def open_session(
    store_dir: Optional[PathLike] = None,
    config: Optional[Union[EngineConfig, PathLike]] = None,
    **overrides,
) -> Session:
    """Open a session, resolving configuration the way the CLI does.

    config may be an EngineConfig or a path to a JSON config file; without
    one, DIR/config.json is used when present. Keyword overrides (None
    values ignored) are applied last.
    """
    if isinstance(config, EngineConfig):
        updates = {k: v for k, v in overrides.items() if v is not None}
        resolved = EngineConfig.model_validate({**config.model_dump(), **updates}) if updates else config
    else:
        resolved = resolve_config(store_dir=store_dir, config_path=config, **overrides)
    return Session(config=resolved, store_dir=store_dir)
