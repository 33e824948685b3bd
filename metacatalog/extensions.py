"""Shared extensions for the metacatalog application."""

from flask_jwt_extended import JWTManager
from flask_sqlalchemy import SQLAlchemy

# Core persistence and caller identity primitives
db = SQLAlchemy(session_options={"expire_on_commit": False})
jwt = JWTManager()


def init_extensions(app) -> None:
    """Initialize all extensions with the Flask app."""
    db.init_app(app)
    jwt.init_app(app)
