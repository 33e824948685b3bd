"""Reusable decorators and helpers for controllers."""

from __future__ import annotations

from functools import wraps
from typing import Callable, Iterable, TypeVar

from flask import jsonify
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException

from metacatalog.core.auth.authorization import ADMIN_ROLE, Caller

F = TypeVar("F", bound=Callable)


def require_roles(required_roles: Iterable[str]):
    """Enforce that the current JWT includes the given roles."""

    def decorator(fn: F) -> F:
        @wraps(fn)
        def wrapper(*args, **kwargs):  # type: ignore[misc]
            try:
                verify_jwt_in_request()
            except JWTExtendedException:
                return jsonify({"ok": False, "error": "unauthorized"}), 401
            claims = get_jwt() or {}
            roles = set(claims.get("roles") or [])
            if ADMIN_ROLE in roles:
                return fn(*args, **kwargs)
            if not set(required_roles).issubset(roles):
                return jsonify({"ok": False, "error": "forbidden"}), 403
            return fn(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


def current_caller() -> Caller:
    """Caller identified by the verified JWT: identity is the user name, roles come from claims."""
    claims = get_jwt() or {}
    return Caller(name=str(get_jwt_identity()), roles=frozenset(claims.get("roles") or []))
