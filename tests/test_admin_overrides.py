from app.doctrack.errors import ErrorKind

from conftest import make_draft, release_without_approvers


def _audit_actions(engine, ctx, doc_id):
    return [r.action for r in engine.audit_trail(ctx, doc_id).value]


def test_overrides_require_admin(engine, alice, form_type):
    doc = make_draft(engine, alice, form_type["id"])
    assert engine.admin_force_status(alice, doc["id"], new_status="Released", reason="r").kind is ErrorKind.NOT_AUTHORIZED
    assert engine.admin_force_version(alice, doc["id"], new_version="vB", reason="r").kind is ErrorKind.NOT_AUTHORIZED
    assert (
        engine.admin_force_document_number(alice, doc["id"], new_number="FORM-00099", reason="r").kind
        is ErrorKind.NOT_AUTHORIZED
    )
    assert engine.admin_delete_document(alice, doc["id"], reason="r").kind is ErrorKind.NOT_AUTHORIZED


def test_overrides_require_a_reason(engine, alice, admin, form_type):
    doc = make_draft(engine, alice, form_type["id"])
    res = engine.admin_force_status(admin, doc["id"], new_status="Released", reason="  ")
    assert res.kind is ErrorKind.VALIDATION_FAILED


def test_force_status_is_audited_with_before_and_after(engine, alice, admin, form_type):
    doc = make_draft(engine, alice, form_type["id"])
    res = engine.admin_force_status(admin, doc["id"], new_status="Released", reason="migrated from paper")
    assert res.ok
    assert res.value["status"] == "Released"
    assert res.value["released_by"] == admin.user_id

    trail = engine.audit_trail(admin, doc["id"]).value
    last = trail[-1]
    assert last.action == "admin_status_change"
    assert last.reason == "migrated from paper"
    assert (last.detail.old_status, last.detail.new_status) == ("Draft", "Released")


def test_force_status_preserves_lineage_invariant(engine, alice, admin, form_type):
    doc = make_draft(engine, alice, form_type["id"])
    release_without_approvers(engine, alice, doc["id"])
    vb = engine.create_new_version(alice, doc["id"]).value

    # vA is already Released; a second Released row is refused.
    res = engine.admin_force_status(admin, vb["id"], new_status="Released", reason="skip approvals")
    assert res.kind is ErrorKind.INVALID_STATE

    # vB is in flight; pulling vA back to Draft would make two.
    res = engine.admin_force_status(admin, doc["id"], new_status="Draft", reason="rework")
    assert res.kind is ErrorKind.INVALID_STATE

    # Obsoleting the current release is allowed.
    res = engine.admin_force_status(admin, doc["id"], new_status="Obsolete", reason="withdrawn from use")
    assert res.ok

    assert engine.admin_force_status(admin, doc["id"], new_status="Bogus", reason="x").kind is ErrorKind.VALIDATION_FAILED
    assert engine.admin_force_status(admin, doc["id"], new_status="Obsolete", reason="x").kind is ErrorKind.INVALID_STATE


def test_force_version_keeps_scheme_and_uniqueness(engine, alice, admin, form_type):
    doc = make_draft(engine, alice, form_type["id"])
    release_without_approvers(engine, alice, doc["id"])
    vb = engine.create_new_version(alice, doc["id"]).value

    assert engine.admin_force_version(admin, vb["id"], new_version="v2", reason="x").kind is ErrorKind.VALIDATION_FAILED
    assert engine.admin_force_version(admin, vb["id"], new_version="vA", reason="x").kind is ErrorKind.ALREADY_EXISTS

    res = engine.admin_force_version(admin, vb["id"], new_version="vD", reason="align with paper revision")
    assert res.ok and res.value["display_number"] == "FORM-00001vD"
    assert _audit_actions(engine, admin, vb["id"])[-1] == "admin_force_version_change"

    # Numbering continues from the highest version in the lineage.
    release_without_approvers(engine, alice, vb["id"])
    ve = engine.create_new_version(alice, vb["id"]).value
    assert ve["version"] == "vE"


def test_force_document_number(engine, alice, admin, form_type):
    first = make_draft(engine, alice, form_type["id"])
    second = make_draft(engine, alice, form_type["id"])

    clash = engine.admin_force_document_number(admin, second["id"], new_number=first["document_number"], reason="x")
    assert clash.kind is ErrorKind.ALREADY_EXISTS
    assert engine.admin_force_document_number(admin, second["id"], new_number="FORM-1", reason="x").kind is ErrorKind.VALIDATION_FAILED

    res = engine.admin_force_document_number(admin, second["id"], new_number="form-00500", reason="legacy number")
    assert res.ok and res.value["document_number"] == "FORM-00500"
    last = engine.audit_trail(admin, second["id"]).value[-1]
    assert (last.detail.old_number, last.detail.new_number) == ("FORM-00002vA", "FORM-00500vA")


def test_admin_delete_any_status_with_tombstone(engine, alice, admin, form_type):
    doc = make_draft(engine, alice, form_type["id"])
    release_without_approvers(engine, alice, doc["id"])

    res = engine.admin_delete_document(admin, doc["id"], reason="created in error")
    assert res.ok
    assert engine.get_document(admin, doc["id"]).kind is ErrorKind.NOT_FOUND

    last = engine.audit_trail(admin, doc["id"]).value[-1]
    assert last.action == "deleted"
    assert last.detail.admin_override is True
    assert last.detail.status == "Released"
    assert last.reason == "created in error"


def test_rename_ahead_of_counter_keeps_numbering_usable(engine, alice, admin, form_type):
    first = make_draft(engine, alice, form_type["id"])
    res = engine.admin_force_document_number(admin, first["id"], new_number="FORM-00002", reason="match paper record")
    assert res.ok

    created = [make_draft(engine, alice, form_type["id"])["document_number"] for _ in range(2)]
    assert created == ["FORM-00003", "FORM-00004"]

    # Renaming below the counter leaves it alone.
    engine.admin_force_document_number(admin, first["id"], new_number="FORM-00001", reason="revert")
    assert make_draft(engine, alice, form_type["id"])["document_number"] == "FORM-00005"


def test_promotion_refused_after_production_version_override(engine, alice, admin, form_type):
    proto = make_draft(engine, alice, form_type["id"])
    release_without_approvers(engine, alice, proto["id"])
    v1 = engine.promote_to_production(alice, proto["id"]).value
    release_without_approvers(engine, alice, v1["id"])
    assert engine.admin_force_version(admin, v1["id"], new_version="v2", reason="align with ERP").ok

    again = engine.promote_to_production(alice, proto["id"])
    assert again.kind is ErrorKind.ALREADY_EXISTS
    versions = engine.list_lineage(alice, "FORM-00001", is_production=True).value
    assert [d["version"] for d in versions] == ["v2"]


def test_change_owner_hands_over_a_stuck_draft(engine, alice, bob, carol, admin, form_type):
    doc = make_draft(engine, alice, form_type["id"])
    engine.add_approver(alice, doc["id"], user_id=carol.user_id, user_email=carol.email)

    res = engine.admin_change_owner(
        admin, doc["id"], new_owner_user_id=bob.user_id, new_owner_email=bob.email, reason="alice left the company"
    )
    assert res.ok
    assert (res.value["created_by"], res.value["created_by_email"]) == (bob.user_id, bob.email)

    assert engine.submit(alice, doc["id"]).kind is ErrorKind.NOT_AUTHORIZED
    assert engine.submit(bob, doc["id"]).value["status"] == "In Approval"

    last = [r for r in engine.audit_trail(admin, doc["id"]).value if r.action == "owner_changed"][-1]
    assert last.reason == "alice left the company"
    assert (last.detail.previous_owner, last.detail.new_owner) == (alice.user_id, bob.user_id)
    assert last.detail.new_owner_email == bob.email


def test_change_owner_guards(engine, alice, bob, carol, admin, form_type):
    doc = make_draft(engine, alice, form_type["id"])
    engine.add_approver(alice, doc["id"], user_id=carol.user_id, user_email=carol.email)

    def change(ctx, uid, email, reason="r"):
        return engine.admin_change_owner(ctx, doc["id"], new_owner_user_id=uid, new_owner_email=email, reason=reason)

    assert change(alice, bob.user_id, bob.email).kind is ErrorKind.NOT_AUTHORIZED
    assert change(admin, bob.user_id, bob.email, reason=" ").kind is ErrorKind.VALIDATION_FAILED
    assert change(admin, bob.user_id, "not-an-email").kind is ErrorKind.VALIDATION_FAILED
    assert change(admin, alice.user_id, alice.email).kind is ErrorKind.INVALID_STATE
    assert change(admin, carol.user_id, carol.email).kind is ErrorKind.INVALID_STATE
