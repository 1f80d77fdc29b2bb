"""
Shared pytest fixtures.

Provides:
    - app: Flask application on a fresh SQLite file per test
    - engine: the DocumentControlEngine registered on the app
    - dispatcher: InMemoryDispatcher capturing post-commit notifications
    - alice / bob / carol / admin / outsider: caller contexts
    - form_type: a FORM document type in the default tenant
"""
import pytest

from app.doctrack import create_app
from app.doctrack.identity import ActorContext
from app.doctrack.models import Base
from app.doctrack.notifications import InMemoryDispatcher

TENANT = "acme"


@pytest.fixture()
def dispatcher():
    return InMemoryDispatcher()


@pytest.fixture()
def app(tmp_path, monkeypatch, dispatcher):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("REQUIRE_CLEAN_SCAN_FOR_RELEASE", "DOC_NUMBER_DIGITS", "NUMBERING_MAX_RETRIES"):
        monkeypatch.delenv(k, raising=False)

    app = create_app(dispatcher=dispatcher)
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    yield app
    app.extensions["sqlalchemy_engine"].dispose()


@pytest.fixture()
def engine(app):
    return app.extensions["doctrack_engine"]


@pytest.fixture()
def alice():
    return ActorContext(user_id="u-alice", email="alice@acme.test", tenant_id=TENANT)


@pytest.fixture()
def bob():
    return ActorContext(user_id="u-bob", email="bob@acme.test", tenant_id=TENANT)


@pytest.fixture()
def carol():
    return ActorContext(user_id="u-carol", email="carol@acme.test", tenant_id=TENANT)


@pytest.fixture()
def admin():
    return ActorContext(user_id="u-admin", email="admin@acme.test", tenant_id=TENANT, is_admin=True)


@pytest.fixture()
def outsider():
    return ActorContext(user_id="u-mallory", email="mallory@other.test", tenant_id="globex", is_admin=True)


@pytest.fixture()
def form_type(engine, admin):
    res = engine.create_document_type(admin, name="Form", prefix="FORM")
    assert res.ok, res.error
    return res.value


def make_draft(engine, ctx, document_type_id, title="Incoming inspection form", **kwargs):
    res = engine.create_document(ctx, document_type_id=document_type_id, title=title, **kwargs)
    assert res.ok, res.error
    return res.value


def release_without_approvers(engine, ctx, document_id):
    res = engine.submit(ctx, document_id)
    assert res.ok, res.error
    assert res.value["status"] == "Released"
    return res.value
