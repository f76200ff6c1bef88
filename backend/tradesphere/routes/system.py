# backend/tradesphere/routes/system.py
"""
System health, audit trail and ledger reconciliation endpoints.
"""

import time
from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from ..decorators import require_auth, require_permission
from ..errors import DomainError
from ..extensions import db
from ..identity import resolve_current_user
from ..models import Product, StockMovement
from ..permissions import PERMISSION_DEFINITIONS, allowed
from ..services import audit_service, stock_ledger_service
from ..time_utils import utcnow, to_utc_z
from ._responses import error_response, internal_error

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        movement_count = db.session.query(StockMovement).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "stock_movements": movement_count,
            },
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    status = "healthy" if database["status"] == "healthy" else "unhealthy"
    return jsonify({
        "status": status,
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), (200 if status == "healthy" else 503)


@system_bp.get("/api/me")
@require_auth
def me_route():
    """Current identity and the actions its role is allowed."""
    user = resolve_current_user()
    actions = [perm[0] for perm in PERMISSION_DEFINITIONS if allowed(user.role, perm[0])]
    return jsonify({"user": user.to_dict(), "allowed_actions": actions})


@system_bp.get("/api/audit-events")
@require_auth
@require_permission("MANAGE_SETTINGS")
def list_audit_events_route():
    """
    Query parameters:
    - entity_type: purchase_order, sales_order, invoice, product...
    - entity_id
    - limit (default 200, max 1000)
    """
    limit = min(max(request.args.get("limit", 200, type=int), 1), 1000)
    events = audit_service.list_audit_events(
        entity_type=request.args.get("entity_type"),
        entity_id=request.args.get("entity_id", type=int),
        limit=limit,
    )
    return jsonify({"items": [e.to_dict() for e in events], "count": len(events)})


@system_bp.get("/api/ledger/reconcile")
@require_auth
@require_permission("MANAGE_SETTINGS")
def reconcile_route():
    """Compare stock counters with the movement log; 500 with the drift if they disagree."""
    try:
        stock_ledger_service.assert_consistent(request.args.get("product_id", type=int))
        return jsonify({"status": "consistent", "drift": []})
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("reconcile stock ledger")
