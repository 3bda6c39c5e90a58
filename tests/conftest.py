"""Pytest configuration for tests.

No sys.path hacks - tests should import from installed chainproof package.
"""

import os
import pytest
from pathlib import Path


# Stateful counter: each step adds its input to the running total and
# returns (total . next-counter).
COUNTER_SOURCE = """
(letrec ((counter
          (lambda (state)
            (lambda (x)
              (let ((n (+ state x)))
                (cons n (counter n)))))))
  (counter 0))
"""


def pytest_addoption(parser):
    """Add gated perf test option."""
    parser.addoption(
        "--run-perf",
        action="store_true",
        default=False,
        help="Run performance sentinel benchmarks (gated)."
    )


def pytest_collection_modifyitems(config, items):
    """Skip perf-marked tests unless --run-perf is set."""
    if config.getoption("--run-perf"):
        return
    skip_perf = pytest.mark.skip(reason="perf tests gated; pass --run-perf")
    for item in items:
        if "perf" in item.keywords:
            item.add_marker(skip_perf)


def pytest_sessionfinish(session, exitstatus):
    """Best-effort cleanup for basetemp on Windows without patching pytest internals."""
    if os.name != "nt":
        return
    basetemp = getattr(session.config.option, "basetemp", None)
    if not basetemp:
        return
    basetemp_path = Path(basetemp)
    if not basetemp_path.exists():
        return
    try:
        import shutil
        shutil.rmtree(basetemp_path)
    except (PermissionError, OSError):
        # If cleanup fails, let it surface as a warning rather than masking errors.
        import warnings
        warnings.warn(f"Could not remove basetemp: {basetemp_path}")


@pytest.fixture
def counter_source():
    return COUNTER_SOURCE


@pytest.fixture
def session():
    """In-memory session."""
    from chainproof.api import Session
    return Session()


@pytest.fixture
def store_dir(tmp_path):
    return tmp_path / "store"
