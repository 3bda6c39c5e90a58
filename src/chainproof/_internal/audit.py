"""Store directory audit.

Re-derives every content address in a store directory and re-checks the
step record chain:

1. each commitments/<hex>.json decodes and commits to <hex>
2. each proofs/<id>.json hashes to <id>
3. step records are contiguous from 1 and each prior is the previous new_head
4. every prior/new_head has a payload file
5. chain.json's head is the last step's new_head

Returns partial truth, does not crash: every problem becomes an AuditIssue.
"""

from pathlib import Path
from typing import List, Optional, Set, Union

from chainproof.codes import AuditCode
from chainproof.contracts import AuditIssue, AuditReport
from chainproof.kernel.commitment import commitment_of_encoding
from chainproof.kernel.encoding import decode_value, encode_value
from chainproof.kernel.hash_utils import proof_identifier
from chainproof._internal.canonical_json import read_json
from chainproof._internal.io.store_files import (
    CHAIN_FILE,
    COMMITMENTS_DIR,
    PROOFS_DIR,
    STEPS_FILE,
    read_step_records,
)


def _issue(code: AuditCode, path: Path, message: str) -> AuditIssue:
    return AuditIssue(code=code.value, path=str(path), message=message)


def _audit_commitments(root: Path, issues: List[AuditIssue]) -> Set[str]:
    """Check payload files; returns the commitments that verified."""
    good: Set[str] = set()
    directory = root / COMMITMENTS_DIR
    if not directory.exists():
        return good
    for path in sorted(directory.glob("*.json")):
        try:
            value = decode_value(read_json(path))
            recomputed = commitment_of_encoding(encode_value(value, strict=True))
        except (OSError, ValueError) as e:
            issues.append(_issue(AuditCode.UNREADABLE_FILE, path, str(e)))
            continue
        if recomputed.hex[2:] != path.stem.lower():
            issues.append(_issue(
                AuditCode.COMMITMENT_MISMATCH, path,
                f"payload commits to {recomputed.hex}, not 0x{path.stem}",
            ))
            continue
        good.add(recomputed.hex)
    return good


def _audit_proofs(root: Path, issues: List[AuditIssue]) -> int:
    directory = root / PROOFS_DIR
    if not directory.exists():
        return 0
    checked = 0
    for path in sorted(directory.glob("*.json")):
        checked += 1
        try:
            data = path.read_bytes()
        except OSError as e:
            issues.append(_issue(AuditCode.UNREADABLE_FILE, path, str(e)))
            continue
        recomputed = proof_identifier(data)
        if recomputed != path.stem:
            issues.append(_issue(
                AuditCode.PROOF_ID_MISMATCH, path,
                f"artifact bytes hash to {recomputed}",
            ))
    return checked


def audit_store(root: Union[str, Path]) -> AuditReport:
    """Audit a store directory without opening a session on it."""
    root = Path(root)
    issues: List[AuditIssue] = []

    committed = _audit_commitments(root, issues)
    proofs_checked = _audit_proofs(root, issues)
    commitments_checked = len(list((root / COMMITMENTS_DIR).glob("*.json")))

    steps_path = root / STEPS_FILE
    try:
        records = read_step_records(root)
    except (OSError, ValueError) as e:
        issues.append(_issue(AuditCode.UNREADABLE_FILE, steps_path, str(e)))
        records = []

    previous_head: Optional[str] = None
    for position, record in enumerate(records, start=1):
        if record.index != position:
            issues.append(_issue(
                AuditCode.STEP_GAP, steps_path,
                f"line {position} holds step {record.index}",
            ))
        if previous_head is not None and record.prior != previous_head:
            issues.append(_issue(
                AuditCode.STEP_LINK_BROKEN, steps_path,
                f"step {record.index} prior {record.prior} is not the previous new head {previous_head}",
            ))
        for commitment in (record.prior, record.new_head):
            if commitment not in committed:
                issues.append(_issue(
                    AuditCode.MISSING_PAYLOAD, steps_path,
                    f"step {record.index} references {commitment} with no verified payload file",
                ))
        previous_head = record.new_head

    head: Optional[str] = None
    chain_path = root / CHAIN_FILE
    if chain_path.exists():
        try:
            head = read_json(chain_path)["head"]
        except (OSError, ValueError, KeyError, TypeError) as e:
            issues.append(_issue(AuditCode.UNREADABLE_FILE, chain_path, str(e)))
        else:
            if previous_head is not None and head != previous_head:
                issues.append(_issue(
                    AuditCode.HEAD_MISMATCH, chain_path,
                    f"head {head} is not the last step's new head {previous_head}",
                ))
            if head not in committed:
                issues.append(_issue(
                    AuditCode.MISSING_PAYLOAD, chain_path,
                    f"head {head} has no verified payload file",
                ))

    return AuditReport(
        ok=not issues,
        commitments_checked=commitments_checked,
        proofs_checked=proofs_checked,
        steps_checked=len(records),
        head=head,
        issues=issues,
    )
