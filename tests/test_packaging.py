"""Packaging regression tests.

Tests that verify the package structure and behavior.
"""

from pathlib import Path

try:
    import tomllib
except ModuleNotFoundError:  # Python 3.10
    tomllib = None

import pytest


REPO_ROOT = Path(__file__).resolve().parent.parent


def test_source_layout():
    """Test that the src layout holds the package, its kernel and _internal."""
    src_pkg = REPO_ROOT / "src" / "chainproof"

    assert src_pkg.exists(), "chainproof package should exist in src/"
    assert (src_pkg / "kernel").exists(), "chainproof.kernel should exist in src/"
    assert (src_pkg / "_internal").exists(), "chainproof._internal should exist"
    assert (src_pkg / "_internal" / "io").exists(), "chainproof._internal.io should exist"


def test_import_boundary():
    """Test that the package and its subpackages import."""
    import chainproof
    import chainproof.kernel  # noqa: F401
    import chainproof._internal.io.store_files  # noqa: F401

    # Check version: in dev mode it's "dev", in installed mode it's "1.0.0"
    assert chainproof.__version__ in ("1.0.0", "dev")


@pytest.mark.skipif(tomllib is None, reason="tomllib requires Python 3.11+")
def test_declared_dependencies_and_entry_point():
    """Runtime stack is pydantic only; the CLI entry point is declared."""
    data = tomllib.loads((REPO_ROOT / "pyproject.toml").read_text(encoding="utf-8"))
    project = data["project"]
    assert project["name"] == "chainproof"
    assert [d.split(">")[0].split("=")[0] for d in project["dependencies"]] == ["pydantic"]
    assert project["scripts"]["chainproof"] == "chainproof.cli:main"


@pytest.mark.skipif(tomllib is None, reason="tomllib requires Python 3.11+")
def test_no_design_documents_shipped_as_readme():
    project = tomllib.loads((REPO_ROOT / "pyproject.toml").read_text(encoding="utf-8"))["project"]
    assert project.get("readme") in (None, "README.md")
