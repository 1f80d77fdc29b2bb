import logging

from dotenv import load_dotenv
from flask import Flask, g, jsonify

from app.doctrack.config import load_config
from app.doctrack.db import init_db
from app.doctrack.identity import load_current_actor
from app.doctrack.modules.document_control.admin import bp as doc_control_bp
from app.doctrack.modules.document_control.engine import DocumentControlEngine
from app.doctrack.notifications import NotificationDispatcher
from app.doctrack.routes import bp as routes_bp


def create_app(config_overrides: dict | None = None, *, dispatcher: NotificationDispatcher | None = None) -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    if config_overrides:
        app.config.update(config_overrides)

    logging.getLogger("app.doctrack").setLevel(app.config.get("LOG_LEVEL") or "INFO")

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os

        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.extensions["doctrack_engine"] = DocumentControlEngine.from_app(app, dispatcher=dispatcher)

    app.register_blueprint(routes_bp)
    app.register_blueprint(doc_control_bp, url_prefix="/api/document-control")

    app.before_request(load_current_actor)

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return jsonify({"ok": False, "error": {"kind": "NotFound", "message": "Not found."}}), 404

    @app.errorhandler(405)
    def _err_405(e):  # type: ignore[no-redef]
        return jsonify({"ok": False, "error": {"kind": "MethodNotAllowed", "message": "Method not allowed."}}), 405

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        return jsonify({"ok": False, "error": {"kind": "ValidationFailed", "message": "Request body too large."}}), 413

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        return jsonify({"ok": False, "error": {"kind": "InternalError", "message": "Internal server error."}}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
