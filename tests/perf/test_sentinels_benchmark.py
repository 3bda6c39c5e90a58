"""Performance sentinels (gated)."""

from __future__ import annotations

import pytest

from chainproof._internal.benchmarks import (
    MAX_CHAIN_100_MS,
    MAX_PROVE_STEP_MS,
    MAX_VERIFY_MS,
    run_chain_sentinel,
)


def _assert_budget(benchmark, max_ms: float) -> None:
    mean_ms = benchmark.stats.stats.mean * 1000.0
    assert mean_ms < max_ms, f"Mean {mean_ms:.2f} ms exceeded budget {max_ms:.2f} ms"


@pytest.mark.perf
def test_chain_sentinel(benchmark):
    session, head = benchmark.pedantic(lambda: run_chain_sentinel(100), rounds=3, iterations=1)

    assert len(session.controller.history) == 100
    assert session.head == head

    _assert_budget(benchmark, MAX_CHAIN_100_MS)


@pytest.mark.perf
def test_prove_sentinel(benchmark):
    session, _ = run_chain_sentinel(1)
    record = session.controller.step(1)

    proof = benchmark.pedantic(lambda: session.prover.prove(record), rounds=5, iterations=1)

    assert session.verify(proof.identifier).ok
    _assert_budget(benchmark, MAX_PROVE_STEP_MS)


@pytest.mark.perf
def test_verify_sentinel(benchmark):
    session, _ = run_chain_sentinel(1)
    identifier = session.prove().identifier

    result = benchmark.pedantic(lambda: session.verify(identifier), rounds=10, iterations=1)

    assert result.ok
    _assert_budget(benchmark, MAX_VERIFY_MS)
