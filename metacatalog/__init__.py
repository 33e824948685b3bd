"""metacatalog application factory and bootstrap."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from flask import Flask

from metacatalog.config import config_by_name
from metacatalog.core.errors import CatalogError
from metacatalog.core.events.event_bus import event_bus
from metacatalog.extensions import init_extensions


def create_app(config_name: Optional[str] = None) -> Flask:
    """Create and configure the metacatalog Flask application."""
    env_name = (config_name or os.environ.get("APP_ENV") or "development").lower()
    project_root = Path(__file__).resolve().parent.parent
    instance_root = project_root / "instance"

    app = Flask(__name__, instance_path=str(instance_root), instance_relative_config=True)
    config_cls = config_by_name.get(env_name, config_by_name["development"])
    app.config.from_object(config_cls)

    # Normalize sqlite path to absolute to avoid "unable to open database file"
    db_uri = app.config.get("SQLALCHEMY_DATABASE_URI")
    if db_uri and db_uri.startswith("sqlite:///"):
        db_path = Path(db_uri.replace("sqlite:///", "", 1))
        if not db_path.is_absolute():
            db_path = project_root / db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{db_path}"

    init_extensions(app)

    from metacatalog.platform.wiring import init_catalog

    init_catalog(app)
    app.extensions["event_bus"] = event_bus

    _register_blueprints(app)
    _register_error_handlers(app)

    @app.get("/health")
    def health():
        return {"ok": True}, 200

    @app.get("/api/v1/ping")
    def ping():
        """Lightweight endpoint for load-balancer health checks."""
        return {"pong": True}, 200

    from metacatalog.scripts.catalog_commands import register_commands

    register_commands(app)

    return app


def _register_blueprints(app: Flask) -> None:
    """Lazy import and register all controllers."""
    from metacatalog.platform.api.bulk_api import bulk_api_bp  # local import to avoid circulars
    from metacatalog.platform.api.entity_api import entity_api_bp

    app.register_blueprint(bulk_api_bp, url_prefix="/api/v1")
    app.register_blueprint(entity_api_bp, url_prefix="/api/v1")


def _register_error_handlers(app: Flask) -> None:
    """Basic JSON error responses."""
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(CatalogError)
    def _catalog_error(exc: CatalogError):
        if exc.status >= 500:
            app.logger.exception("Catalog failure: %s", exc)
        return {"ok": False, "error": exc.code, "message": str(exc)}, exc.status

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        return {"ok": False, "error": exc.description}, exc.code

    @app.errorhandler(Exception)
    def _generic_error(exc: Exception):
        app.logger.exception("Unhandled error: %s", exc)
        # In debug/testing, surface the exception message to speed up diagnosis
        if app.debug or app.testing:
            return {"ok": False, "error": str(exc)}, 500
        return {"ok": False, "error": "unexpected_error"}, 500
