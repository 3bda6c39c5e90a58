"""Performance sentinel workloads and their time budgets."""

from __future__ import annotations

import os
from typing import Tuple

from chainproof.api import Session


# Running sum with a branch per step, so traces mix core, arith and cmp frames.
SENTINEL_SOURCE = """
(letrec ((acc
          (lambda (total)
            (lambda (x)
              (let ((n (if (< x 0) (- total x) (+ total x))))
                (cons n (acc n)))))))
  (acc 0))
"""


def _budget_from_env(var_name: str, default_ms: float) -> float:
    raw = os.getenv(var_name)
    if not raw:
        return default_ms
    try:
        return float(raw)
    except ValueError:
        return default_ms


MAX_CHAIN_100_MS = _budget_from_env("CHAINPROOF_MAX_CHAIN_100_MS", 2000.0)
MAX_PROVE_STEP_MS = _budget_from_env("CHAINPROOF_MAX_PROVE_STEP_MS", 200.0)
MAX_VERIFY_MS = _budget_from_env("CHAINPROOF_MAX_VERIFY_MS", 50.0)


def run_chain_sentinel(steps: int = 100) -> Tuple[Session, str]:
    """Chain `steps` inputs through a fresh in-memory session; returns it and the head."""
    session = Session()
    head = session.commit(SENTINEL_SOURCE).commitment
    for i in range(steps):
        head = session.chain(head, str(i if i % 3 else -i)).new_head
    return session, head
