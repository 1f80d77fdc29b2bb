import pytest

BASE = "/api/document-control"
SHA = "cd" * 32


def _headers(user_id, *, tenant="acme", admin=False):
    h = {"X-User-Id": user_id, "X-User-Email": f"{user_id}@acme.test", "X-Tenant-Id": tenant}
    if admin:
        h["X-User-Admin"] = "true"
    return h


ALICE = _headers("alice")
BOB = _headers("bob")
ADMIN = _headers("root", admin=True)


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def form_type_id(client):
    r = client.post(f"{BASE}/types", json={"name": "Form", "prefix": "FORM"}, headers=ADMIN)
    assert r.status_code == 201, r.json
    return r.json["data"]["id"]


def test_health_endpoints(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True
    assert client.get("/healthz").data == b"ok"


def test_missing_identity_is_401(client):
    r = client.get(f"{BASE}/types")
    assert r.status_code == 401
    assert r.json["ok"] is False


def test_vertical_slice_create_approve_release_and_audit(client, form_type_id):
    r = client.post(f"{BASE}/documents", json={"document_type_id": form_type_id, "title": "Incoming inspection"}, headers=ALICE)
    assert r.status_code == 201
    doc = r.json["data"]
    assert doc["display_number"] == "FORM-00001vA"

    r = client.post(
        f"{BASE}/documents/{doc['id']}/files",
        json={"file_ref": "store://1", "filename": "form.pdf", "size_bytes": 12, "sha256": SHA},
        headers=ALICE,
    )
    assert r.status_code == 201

    r = client.post(f"{BASE}/documents/{doc['id']}/approvers", json={"user_id": "bob", "user_email": "bob@acme.test"}, headers=ALICE)
    assert r.status_code == 201

    r = client.post(f"{BASE}/documents/{doc['id']}/submit", headers=ALICE)
    assert r.status_code == 200 and r.json["data"]["status"] == "In Approval"

    r = client.get(f"{BASE}/my-approvals", headers=BOB)
    assert [d["id"] for d in r.json["data"]] == [doc["id"]]

    r = client.post(f"{BASE}/documents/{doc['id']}/approve", json={"comment": "ok"}, headers=BOB)
    assert r.status_code == 200 and r.json["data"]["status"] == "Released"

    r = client.get(f"{BASE}/numbers/FORM-00001/current", headers=BOB)
    assert r.json["data"]["id"] == doc["id"]

    r = client.get(f"{BASE}/documents/{doc['id']}/audit", headers=ALICE)
    assert r.status_code == 200
    actions = [e["action"] for e in r.json["data"]]
    assert actions == ["created", "file_attached", "approver_added", "submitted_for_approval", "approved", "released"]
    assert r.json["data"][-1]["details"]["release_method"] == "approved"


def test_error_kinds_map_to_http_status(client, form_type_id):
    doc = client.post(f"{BASE}/documents", json={"document_type_id": form_type_id, "title": "T"}, headers=ALICE).json["data"]

    assert client.get(f"{BASE}/documents/9999", headers=ALICE).status_code == 404
    assert client.post(f"{BASE}/documents/{doc['id']}/submit", headers=BOB).status_code == 403
    assert client.post(f"{BASE}/documents", json={"document_type_id": form_type_id, "title": ""}, headers=ALICE).status_code == 400
    assert client.post(f"{BASE}/types", json={"name": "Form", "prefix": "FORM"}, headers=ADMIN).status_code == 409

    client.post(f"{BASE}/documents/{doc['id']}/submit", headers=ALICE)
    r = client.patch(f"{BASE}/documents/{doc['id']}", json={"title": "Changed"}, headers=ALICE)
    assert r.status_code == 409
    assert r.json["error"]["kind"] == "InvalidState"
    assert r.json["error"]["retryable"] is False


def test_other_tenant_gets_404(client, form_type_id):
    doc = client.post(f"{BASE}/documents", json={"document_type_id": form_type_id, "title": "T"}, headers=ALICE).json["data"]
    r = client.get(f"{BASE}/documents/{doc['id']}", headers=_headers("eve", tenant="globex"))
    assert r.status_code == 404


def test_promote_and_admin_override_over_http(client, form_type_id):
    doc = client.post(f"{BASE}/documents", json={"document_type_id": form_type_id, "title": "T"}, headers=ALICE).json["data"]
    client.post(f"{BASE}/documents/{doc['id']}/submit", headers=ALICE)

    r = client.post(f"{BASE}/documents/{doc['id']}/promote", headers=ALICE)
    assert r.status_code == 201
    prod = r.json["data"]
    assert (prod["version"], prod["is_production"]) == ("v1", True)
    assert client.post(f"{BASE}/documents/{doc['id']}/promote", headers=ALICE).status_code == 409

    r = client.get(f"{BASE}/numbers/FORM-00001/lineage?production=1", headers=ALICE)
    assert [d["version"] for d in r.json["data"]] == ["v1"]

    r = client.post(f"{BASE}/admin/documents/{prod['id']}/status", json={"status": "Released", "reason": "x"}, headers=ALICE)
    assert r.status_code == 403
    r = client.post(f"{BASE}/admin/documents/{prod['id']}/status", json={"status": "Released", "reason": "paper sign-off"}, headers=ADMIN)
    assert r.status_code == 200 and r.json["data"]["status"] == "Released"

    r = client.delete(f"{BASE}/admin/documents/{prod['id']}", json={"reason": "duplicate"}, headers=ADMIN)
    assert r.status_code == 200
    assert client.get(f"{BASE}/documents/{prod['id']}", headers=ADMIN).status_code == 404


def test_admin_change_owner_over_http(client, form_type_id):
    doc = client.post(f"{BASE}/documents", json={"document_type_id": form_type_id, "title": "T"}, headers=ALICE).json["data"]
    body = {"user_id": "bob", "user_email": "bob@acme.test", "reason": "owner left"}

    assert client.post(f"{BASE}/admin/documents/{doc['id']}/owner", json=body, headers=ALICE).status_code == 403
    r = client.post(f"{BASE}/admin/documents/{doc['id']}/owner", json=body, headers=ADMIN)
    assert r.status_code == 200
    assert r.json["data"]["created_by"] == "bob"

    assert client.post(f"{BASE}/documents/{doc['id']}/submit", headers=BOB).status_code == 200
