import logging

from sqlalchemy.exc import IntegrityError

from app.doctrack import audit as audit_module
from app.doctrack.errors import ErrorKind
from app.doctrack.modules.document_control.events import (
    ApproverAdded,
    DocumentCreated,
    Released,
    SubmittedForApproval,
    detail_from_entry,
)
from app.doctrack.modules.document_control import store

from conftest import make_draft


def _break_audit_for(monkeypatch, action):
    real = audit_module.AuditLogEntry

    def _entry(**kwargs):
        if kwargs.get("action") == action:
            kwargs["performed_by"] = None  # NOT NULL -> the insert fails
        return real(**kwargs)

    monkeypatch.setattr(audit_module, "AuditLogEntry", _entry)


def test_audit_trail_returns_typed_details(engine, alice, bob, form_type):
    doc = make_draft(engine, alice, form_type["id"])
    engine.add_approver(alice, doc["id"], user_id=bob.user_id, user_email=bob.email)
    engine.submit(alice, doc["id"])
    engine.approve(bob, doc["id"])

    trail = engine.audit_trail(alice, doc["id"]).value
    assert [r.action for r in trail] == ["created", "approver_added", "submitted_for_approval", "approved", "released"]
    assert isinstance(trail[0].detail, DocumentCreated)
    assert trail[0].detail.document_number == "FORM-00001"
    assert isinstance(trail[1].detail, ApproverAdded)
    assert isinstance(trail[2].detail, SubmittedForApproval) and trail[2].detail.approver_count == 1
    assert isinstance(trail[-1].detail, Released) and trail[-1].detail.release_method == "approved"
    assert trail[-1].performed_by == bob.user_id
    assert trail[0].to_dict()["details"]["title"] == "Incoming inspection form"


def test_failed_optional_audit_write_does_not_roll_back_transition(engine, alice, bob, form_type, monkeypatch, caplog):
    doc = make_draft(engine, alice, form_type["id"])
    engine.add_approver(alice, doc["id"], user_id=bob.user_id, user_email=bob.email)
    with monkeypatch.context() as m:
        _break_audit_for(m, "submitted_for_approval")
        with caplog.at_level(logging.ERROR, logger="app.doctrack.audit"):
            res = engine.submit(alice, doc["id"])
    assert res.ok
    assert res.value["status"] == "In Approval"
    assert "Audit write failed" in caplog.text

    actions = [r.action for r in engine.audit_trail(alice, doc["id"]).value]
    assert "submitted_for_approval" not in actions


def test_failed_mandatory_audit_write_aborts_create(engine, alice, form_type, monkeypatch):
    with monkeypatch.context() as m:
        _break_audit_for(m, "created")
        res = engine.create_document(alice, document_type_id=form_type["id"], title="Never stored")
    assert not res.ok

    assert engine.list_versions(alice, "FORM-00001").value == []
    # The number was not consumed either.
    assert make_draft(engine, alice, form_type["id"])["document_number"] == "FORM-00001"


def test_detail_from_entry_ignores_unknown_keys():
    d = detail_from_entry("released", '{"release_method": "no_approvers", "legacy": 1}')
    assert d == Released(release_method="no_approvers")


def test_notification_failure_never_affects_result(engine, alice, form_type, caplog):
    class Broken:
        def publish(self, event):
            raise RuntimeError("smtp down")

    engine.dispatcher = Broken()
    doc = make_draft(engine, alice, form_type["id"])
    with caplog.at_level(logging.ERROR, logger="app.doctrack.notifications"):
        res = engine.submit(alice, doc["id"])
    assert res.ok and res.value["status"] == "Released"
    assert "Notification dispatch failed" in caplog.text


def test_guard_failures_are_logged_with_context(engine, alice, bob, form_type, caplog):
    doc = make_draft(engine, alice, form_type["id"])
    with caplog.at_level(logging.WARNING, logger="app.doctrack.modules.document_control.engine"):
        res = engine.submit(bob, doc["id"])
    assert res.kind is ErrorKind.NOT_AUTHORIZED
    assert "submit rejected" in caplog.text
    assert bob.user_id in caplog.text
    assert f"document_id={doc['id']}" in caplog.text


def test_integrity_conflicts_are_logged_with_context(engine, alice, form_type, monkeypatch, caplog):
    def _conflict(*args, **kwargs):
        raise IntegrityError("INSERT INTO documents", {}, Exception("UNIQUE constraint failed"))

    monkeypatch.setattr(store, "create", _conflict)
    with caplog.at_level(logging.WARNING, logger="app.doctrack.modules.document_control.engine"):
        res = engine.create_document(alice, document_type_id=form_type["id"], title="Racing")
    assert res.kind is ErrorKind.ALREADY_EXISTS
    assert "create_document rejected" in caplog.text
    assert f"actor={alice.user_id}" in caplog.text
    assert f"tenant={alice.tenant_id}" in caplog.text
