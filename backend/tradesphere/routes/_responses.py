# Overview: Shared JSON response helpers mapping domain failures to HTTP.

from flask import current_app, jsonify, request

from ..errors import DomainError


def error_response(exc: DomainError):
    """{"error", "kind", "details"} with the status the error kind maps to."""
    if exc.http_status >= 500:
        current_app.logger.error("%s on %s %s: %s", exc.kind, request.method, request.path, exc)
    return jsonify(exc.to_dict()), exc.http_status


def internal_error(action: str):
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error", "kind": "internal_error", "details": {}}), 500


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def query_bool(name: str, default: bool = False) -> bool:
    value = request.args.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}
