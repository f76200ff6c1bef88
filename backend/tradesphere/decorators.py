# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import current_app, g, jsonify, request

from .identity import resolve_current_user
from .permissions import allowed


def _is_authenticated() -> bool:
    return g.get("current_user") is not None


def require_auth(f):
    """
    Require an identity from the installed provider.

    Sets g.current_user (a CurrentUser). Returns 401 when no provider is
    installed or the provider does not recognize the caller.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if resolve_current_user() is None:
            return jsonify({"error": "Authentication required", "kind": "unauthenticated"}), 401
        return f(*args, **kwargs)

    return decorated_function


def require_permission(action: str):
    """
    Require the caller's role to be allowed `action` by the permission oracle.

    Must be applied after @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required", "kind": "unauthenticated"}), 401

            user = g.current_user
            if not allowed(user.role, action):
                current_app.logger.warning(
                    "Permission denied: user=%s role=%s action=%s path=%s",
                    user.id, user.role, action, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "kind": "permission_denied",
                    "required_permission": action,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
