"""Tests for the store directory audit."""

import json

from chainproof.api import Session
from chainproof.codes import AuditCode
from chainproof._internal.audit import audit_store


def _populate(store_dir, counter_source, inputs=(9, 12)):
    session = Session(store_dir=store_dir)
    head = session.commit(counter_source).commitment
    for x in inputs:
        head = session.chain(head, str(x)).new_head
    session.prove()
    return session


def _codes(report):
    return sorted({issue.code for issue in report.issues})


def test_clean_store_passes(store_dir, counter_source):
    session = _populate(store_dir, counter_source)
    report = audit_store(store_dir)
    assert report.ok is True
    assert report.issues == []
    assert report.steps_checked == 2
    assert report.proofs_checked == 1
    assert report.commitments_checked == 3
    assert report.head == session.head


def test_empty_directory_passes(tmp_path):
    report = audit_store(tmp_path / "nothing")
    assert report.ok is True
    assert report.commitments_checked == 0


def test_commitment_file_rewritten(store_dir, counter_source):
    session = _populate(store_dir, counter_source)
    path = store_dir / "commitments" / f"{session.head[2:]}.json"
    path.write_text('["num",7]\n', encoding="utf-8")
    report = audit_store(store_dir)
    assert not report.ok
    assert AuditCode.COMMITMENT_MISMATCH.value in _codes(report)
    assert AuditCode.MISSING_PAYLOAD.value in _codes(report)


def test_unreadable_commitment_file(store_dir, counter_source):
    session = _populate(store_dir, counter_source)
    path = store_dir / "commitments" / f"{session.head[2:]}.json"
    path.write_text("{not json", encoding="utf-8")
    report = audit_store(store_dir)
    assert AuditCode.UNREADABLE_FILE.value in _codes(report)


def test_proof_file_altered(store_dir, counter_source):
    _populate(store_dir, counter_source)
    (path,) = list((store_dir / "proofs").glob("*.json"))
    path.write_bytes(path.read_bytes() + b"\n")
    report = audit_store(store_dir)
    assert _codes(report) == [AuditCode.PROOF_ID_MISMATCH.value]


def test_step_line_removed(store_dir, counter_source):
    _populate(store_dir, counter_source, inputs=(1, 2, 3))
    steps = store_dir / "steps.jsonl"
    lines = steps.read_text(encoding="utf-8").splitlines()
    steps.write_text("\n".join([lines[0], lines[2]]) + "\n", encoding="utf-8")
    report = audit_store(store_dir)
    assert AuditCode.STEP_GAP.value in _codes(report)
    assert AuditCode.STEP_LINK_BROKEN.value in _codes(report)


def test_head_not_last_step(store_dir, counter_source):
    session = _populate(store_dir, counter_source)
    first_head = session.controller.step(1).new_head
    (store_dir / "chain.json").write_text(json.dumps({"head": first_head, "proven": []}), encoding="utf-8")
    report = audit_store(store_dir)
    assert _codes(report) == [AuditCode.HEAD_MISMATCH.value]


def test_session_audit_matches_function(store_dir, counter_source):
    session = _populate(store_dir, counter_source)
    assert session.audit() == audit_store(store_dir)
