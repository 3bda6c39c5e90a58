"""Directory-backed persistence for stores and chain state (internal).

Layout:
    DIR/commitments/<64 hex>.json   canonical payload encoding
    DIR/proofs/<identifier>.json    proof artifact bytes, verbatim
    DIR/steps.jsonl                 one canonical StepRecord per line
    DIR/chain.json                  {"head": "0x...", "proven": [...]}

Files are written once (commitments, proofs) or appended (steps); only
chain.json is rewritten, atomically.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from pydantic import ValidationError

from chainproof.kernel.chain import ChainController
from chainproof.kernel.commitment import Commitment, CommitmentEngine
from chainproof.kernel.errors import ChainFaulted
from chainproof.kernel.hash_utils import is_proof_identifier
from chainproof.kernel.records import StepRecord
from chainproof.kernel.store import CommitmentStore, ProofStore, StoredPayload
from chainproof._internal.canonical_json import (
    append_line,
    read_json,
    write_bytes_atomic,
    write_canonical,
)


logger = logging.getLogger(__name__)

COMMITMENTS_DIR = "commitments"
PROOFS_DIR = "proofs"
STEPS_FILE = "steps.jsonl"
CHAIN_FILE = "chain.json"


@dataclass
class LoadedState:
    """What a store directory held at open time."""
    head: Optional[Commitment] = None
    records: List[StepRecord] = field(default_factory=list)
    proven: List[int] = field(default_factory=list)


def commitment_path(root: Path, commitment: Commitment) -> Path:
    return root / COMMITMENTS_DIR / f"{commitment.hex[2:]}.json"


def proof_path(root: Path, identifier: str) -> Path:
    return root / PROOFS_DIR / f"{identifier}.json"


def read_step_records(root: Path) -> List[StepRecord]:
    """Parse DIR/steps.jsonl (missing file: no records).

    Raises:
        ValueError: On a line that is not a valid StepRecord
    """
    path = root / STEPS_FILE
    if not path.exists():
        return []
    records = []
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                records.append(StepRecord.model_validate_json(line))
            except ValidationError as e:
                raise ValueError(f"{path}:{lineno}: invalid step record: {e}") from e
    return records


class FileBackedStores:
    """Mirrors in-memory stores and a chain controller into a directory.

    Args:
        root: Store directory (created on first write)
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    # --- loading -------------------------------------------------------------

    def load(self, engine: CommitmentEngine, proofs: ProofStore) -> LoadedState:
        """Populate the stores from disk and return the persisted chain state.

        Raises:
            ChainFaulted: If a commitment file does not hash to its name
            ValueError: On unparseable files
        """
        state = LoadedState()
        if not self.root.exists():
            return state

        commitments_dir = self.root / COMMITMENTS_DIR
        if commitments_dir.exists():
            for path in sorted(commitments_dir.glob("*.json")):
                restored = engine.restore(read_json(path))
                if restored.hex[2:] != path.stem:
                    raise ChainFaulted(
                        f"Commitment file {path.name} holds a payload committing to {restored.hex}; "
                        f"run 'chainproof audit' on {self.root}"
                    )

        proofs_dir = self.root / PROOFS_DIR
        if proofs_dir.exists():
            for path in sorted(proofs_dir.glob("*.json")):
                if is_proof_identifier(path.stem):
                    proofs.put(path.stem, path.read_bytes())

        state.records = read_step_records(self.root)
        chain_path = self.root / CHAIN_FILE
        if chain_path.exists():
            data = read_json(chain_path)
            state.head = Commitment.from_hex(data["head"])
            state.proven = [int(i) for i in data.get("proven", [])]
            if state.records and state.records[-1].prior == state.head.hex:
                # step line landed but chain.json was not rewritten
                logger.warning("rolling chain head forward to step %d", state.records[-1].index)
                state.head = Commitment.from_hex(state.records[-1].new_head)
        elif state.records:
            raise ChainFaulted(f"{STEPS_FILE} present without {CHAIN_FILE} in {self.root}")

        logger.info(
            "loaded %d commitment(s), %d proof(s), %d step(s) from %s",
            len(engine.store), len(proofs), len(state.records), self.root,
        )
        return state

    # --- persisting ----------------------------------------------------------

    def attach(self, store: CommitmentStore, proofs: ProofStore, controller: ChainController) -> None:
        """Persist every future store insert and chain step."""
        store.subscribe(self._write_commitment)
        proofs.subscribe(self._write_proof)
        controller.subscribe(lambda record: self._write_step(record, controller))

    def _write_commitment(self, commitment: Commitment, payload: StoredPayload) -> None:
        path = commitment_path(self.root, commitment)
        if not path.exists():
            write_canonical(path, payload.encoding)

    def _write_proof(self, identifier: str, artifact: bytes) -> None:
        path = proof_path(self.root, identifier)
        if not path.exists():
            write_bytes_atomic(path, artifact)

    def _write_step(self, record: StepRecord, controller: ChainController) -> None:
        append_line(self.root / STEPS_FILE, record.model_dump(mode="json"))
        self.write_chain(Commitment.from_hex(record.new_head), controller.proven)

    def write_chain(self, head: Commitment, proven: List[int]) -> None:
        write_canonical(self.root / CHAIN_FILE, {"head": head.hex, "proven": sorted(proven)})
