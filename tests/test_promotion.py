from app.doctrack.errors import ErrorKind

from conftest import make_draft, release_without_approvers


def test_promote_released_prototype_then_refuse_second_promotion(engine, dispatcher, alice, form_type):
    proto = make_draft(engine, alice, form_type["id"], project_code="P-00042")
    release_without_approvers(engine, alice, proto["id"])

    res = engine.promote_to_production(alice, proto["id"])
    assert res.ok
    prod = res.value
    assert prod["document_number"] == "FORM-00001"
    assert prod["version"] == "v1"
    assert prod["is_production"] is True
    assert prod["status"] == "Draft"
    assert prod["project_code"] == "P-00042"
    assert prod["id"] != proto["id"]

    # The prototype lineage is untouched.
    assert engine.get_document(alice, proto["id"]).value["status"] == "Released"
    assert "promoted" in dispatcher.names()

    again = engine.promote_to_production(alice, proto["id"])
    assert again.kind is ErrorKind.ALREADY_EXISTS


def test_promotion_preconditions(engine, alice, bob, form_type):
    proto = make_draft(engine, alice, form_type["id"])
    assert engine.promote_to_production(alice, proto["id"]).kind is ErrorKind.INVALID_STATE

    release_without_approvers(engine, alice, proto["id"])
    assert engine.promote_to_production(bob, proto["id"]).kind is ErrorKind.NOT_AUTHORIZED

    prod = engine.promote_to_production(alice, proto["id"]).value
    release_without_approvers(engine, alice, prod["id"])
    assert engine.promote_to_production(alice, prod["id"]).kind is ErrorKind.INVALID_STATE


def test_admin_may_promote_on_behalf_of_creator(engine, alice, admin, form_type):
    proto = make_draft(engine, alice, form_type["id"])
    release_without_approvers(engine, alice, proto["id"])
    res = engine.promote_to_production(admin, proto["id"])
    assert res.ok
    assert res.value["created_by"] == admin.user_id


def test_production_lineage_versions_numerically_and_independently(engine, alice, form_type):
    proto = make_draft(engine, alice, form_type["id"])
    release_without_approvers(engine, alice, proto["id"])
    v1 = engine.promote_to_production(alice, proto["id"]).value
    release_without_approvers(engine, alice, v1["id"])

    v2 = engine.create_new_version(alice, v1["id"]).value
    assert (v2["version"], v2["is_production"]) == ("v2", True)
    release_without_approvers(engine, alice, v2["id"])

    proto_b = engine.create_new_version(alice, proto["id"]).value
    assert proto_b["version"] == "vB"

    versions = engine.list_versions(alice, "FORM-00001").value
    assert [(d["version"], d["status"]) for d in versions] == [
        ("vA", "Released"),
        ("vB", "Draft"),
        ("v1", "Obsolete"),
        ("v2", "Released"),
    ]
    cur = engine.current_version(alice, "FORM-00001", is_production=True).value
    assert cur["version"] == "v2"


def test_new_version_requires_released_source(engine, alice, bob, form_type):
    doc = make_draft(engine, alice, form_type["id"])
    assert engine.create_new_version(alice, doc["id"]).kind is ErrorKind.INVALID_STATE

    release_without_approvers(engine, alice, doc["id"])
    vb = engine.create_new_version(alice, doc["id"]).value

    # Only one draft in flight per lineage.
    assert engine.create_new_version(alice, doc["id"]).kind is ErrorKind.INVALID_STATE

    release_without_approvers(engine, alice, vb["id"])
    # vA is Obsolete now and can no longer seed a version.
    assert engine.create_new_version(alice, doc["id"]).kind is ErrorKind.INVALID_STATE

    vc = engine.create_new_version(bob, vb["id"])
    assert vc.ok and vc.value["version"] == "vC"
    assert vc.value["created_by"] == bob.user_id


def test_current_version_is_empty_before_first_release(engine, alice, form_type):
    make_draft(engine, alice, form_type["id"])
    res = engine.current_version(alice, "FORM-00001", is_production=False)
    assert res.ok and res.value is None
