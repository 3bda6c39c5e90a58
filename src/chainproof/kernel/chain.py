"""Chain controller: the single-head state machine over committed functions."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, FrozenSet, Iterable, List, Optional, Tuple

from .commitment import Commitment, CommitmentEngine
from .encoding import encode_value
from .errors import (
    AlreadyInitialized,
    ChainFaulted,
    EvaluationError,
    HeadMismatch,
    NotInitialized,
)
from .evaluator import EvaluatorOracle
from .records import StepRecord, Trace
from .values import Cons, Value, is_function, print_value


logger = logging.getLogger(__name__)


class ChainState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    FAULTED = "faulted"


@dataclass(frozen=True)
class ChainStep:
    """What one successful chain() call produced."""
    output: Value
    new_payload: Value
    new_head: Commitment
    record: StepRecord


class ChainController:
    """Holds the chain head and advances it one atomic step at a time.

    chain() is a read-modify-write on the head, so steps run under an
    exclusive lock; the head moves only after the new payload is committed
    and every step listener has accepted the record.

    Args:
        engine: Commitment engine shared with the proof manager
        evaluator: Evaluator oracle used to apply committed functions
        step_limit: Reduction budget per step (None: evaluator default)
    """

    def __init__(
        self,
        engine: CommitmentEngine,
        evaluator: EvaluatorOracle,
        step_limit: Optional[int] = None,
    ):
        self.engine = engine
        self.evaluator = evaluator
        self.step_limit = step_limit
        self._lock = threading.Lock()
        self._state = ChainState.UNINITIALIZED
        self._head: Optional[Commitment] = None
        self._history: List[StepRecord] = []
        # replaced on update, never mutated in place
        self._proven: FrozenSet[int] = frozenset()
        self._proven_lock = threading.Lock()
        self._listeners: List[Callable[[StepRecord], None]] = []

    # --- lifecycle ---------------------------------------------------------

    @property
    def state(self) -> ChainState:
        return self._state

    @property
    def head(self) -> Optional[Commitment]:
        return self._head

    def initialize(self, genesis: Commitment) -> None:
        """Uninitialized -> Active(genesis). genesis must already be committed."""
        with self._lock:
            if self._state is not ChainState.UNINITIALIZED:
                raise AlreadyInitialized(
                    f"Chain already initialized (head {self._head.hex if self._head else None})"
                )
            self.engine.open(genesis)
            self._head = genesis
            self._state = ChainState.ACTIVE
        logger.info("chain initialized at genesis %s", genesis.hex)

    @classmethod
    def resume(
        cls,
        engine: CommitmentEngine,
        evaluator: EvaluatorOracle,
        head: Commitment,
        records: Iterable[StepRecord],
        proven: Iterable[int] = (),
        step_limit: Optional[int] = None,
    ) -> "ChainController":
        """Rebuild an active controller from persisted head and step records.

        Raises:
            ChainFaulted: If the records do not link up to head
            UnknownCommitment: If head is not in the store
        """
        controller = cls(engine, evaluator, step_limit=step_limit)
        ordered = sorted(records, key=lambda r: r.index)
        for position, record in enumerate(ordered, start=1):
            if record.index != position:
                raise ChainFaulted(f"Step records are not contiguous at index {record.index}")
            if position > 1 and ordered[position - 2].new_head != record.prior:
                raise ChainFaulted(
                    f"Step {record.index} prior {record.prior} does not match "
                    f"step {record.index - 1} new head {ordered[position - 2].new_head}"
                )
        if ordered and ordered[-1].new_head != head.hex:
            raise ChainFaulted(
                f"Persisted head {head.hex} is not the new head of the last step {ordered[-1].new_head}"
            )
        engine.open(head)
        controller._head = head
        controller._history = ordered
        controller._proven = frozenset(i for i in proven if 1 <= i <= len(ordered))
        controller._state = ChainState.ACTIVE
        logger.info("chain resumed at %s with %d step(s)", head.hex, len(ordered))
        return controller

    def subscribe(self, listener: Callable[[StepRecord], None]) -> None:
        """Register a callback run for each step before the head advances."""
        self._listeners.append(listener)

    # --- stepping ----------------------------------------------------------

    def chain(self, expected_prior: Commitment, input_value: Value) -> ChainStep:
        """Apply the head's function to input_value and advance the head.

        Raises:
            NotInitialized / ChainFaulted: If the controller is not Active
            HeadMismatch: If expected_prior is not the current head
            UnknownCommitment: If the head payload is missing from the store
            EvaluationError: If evaluation fails or does not return (output . next)
            SerializationError: If input, output or next payload cannot be encoded
        """
        with self._lock:
            if self._state is ChainState.UNINITIALIZED:
                raise NotInitialized("Chain is not initialized; call initialize() first")
            if self._state is ChainState.FAULTED:
                raise ChainFaulted("Chain controller is faulted; no further steps accepted")

            head = self._head
            if expected_prior != head:
                raise HeadMismatch(expected_prior.hex, head.hex)

            payload = self.engine.open(head)
            if self.engine.commitment_for(payload) != head:
                self._state = ChainState.FAULTED
                logger.error("store returned a payload that does not hash to head %s", head.hex)
                raise ChainFaulted(f"Payload stored under {head.hex} does not match its commitment")
            if not is_function(payload):
                raise EvaluationError(
                    f"Committed value {head.hex} is not a function: {print_value(payload)}"
                )

            input_encoding = encode_value(input_value, strict=True)
            evaluation = self.evaluator.apply(
                payload, [input_value], fn_ref=head.hex, limit=self.step_limit
            )
            result = evaluation.value
            if not isinstance(result, Cons) or not is_function(result.cdr):
                raise EvaluationError(
                    "Chained function must return a pair (output . next-function), got "
                    f"{print_value(result)}"
                )
            output_encoding = encode_value(result.car, strict=True)
            result_encoding = encode_value(result, strict=True)
            new_head = self.engine.commit(result.cdr)

            record = StepRecord(
                index=len(self._history) + 1,
                prior=head.hex,
                input=input_encoding,
                output=output_encoding,
                new_head=new_head.hex,
                trace=Trace(frames=tuple(evaluation.frames or ()), result=result_encoding),
            )
            for listener in self._listeners:
                listener(record)

            self._history.append(record)
            self._head = new_head
            logger.info(
                "chain step %d: %s -> %s (%d frames)",
                record.index, head.hex, new_head.hex, evaluation.steps,
            )
            return ChainStep(output=result.car, new_payload=result.cdr, new_head=new_head, record=record)

    # --- records -------------------------------------------------------------

    @property
    def history(self) -> Tuple[StepRecord, ...]:
        return tuple(self._history)

    def step(self, index: int) -> StepRecord:
        if not 1 <= index <= len(self._history):
            raise IndexError(f"No step record with index {index}")
        return self._history[index - 1]

    def owns(self, record: StepRecord) -> bool:
        """True if record is exactly the record this controller produced at its index."""
        if not 1 <= record.index <= len(self._history):
            return False
        return self._history[record.index - 1] == record

    def pending(self) -> List[StepRecord]:
        """Unproven step records, oldest first."""
        proven = self._proven
        return [r for r in self._history if r.index not in proven]

    def latest_pending(self) -> Optional[StepRecord]:
        pending = self.pending()
        return pending[-1] if pending else None

    def mark_proven(self, index: int) -> None:
        with self._proven_lock:
            self._proven = self._proven | {index}

    def is_proven(self, index: int) -> bool:
        return index in self._proven

    @property
    def proven(self) -> List[int]:
        return sorted(self._proven)
