"""Centralized canonical JSON file I/O.

Every file the persistence layer writes (commitment payloads, chain.json,
step records) goes through here so that on-disk bytes are stable across
platforms and re-hashable by the audit.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from chainproof.kernel.hash_utils import canonicalize_json


def canonical_dumps(obj: Any) -> str:
    """Canonical JSON string (sorted keys, NFC strings, no floats, compact)."""
    return canonicalize_json(obj)


def write_bytes_atomic(path: Path, data: bytes) -> None:
    """Write data to path via a temp file + os.replace, so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def write_canonical(path: Path, obj: Any) -> None:
    write_bytes_atomic(path, (canonical_dumps(obj) + "\n").encode("utf-8"))


def read_json(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def append_line(path: Path, obj: Any) -> None:
    """Append one canonical JSON line and fsync."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write(canonical_dumps(obj) + "\n")
        f.flush()
        os.fsync(f.fileno())
