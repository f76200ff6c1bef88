# Overview: Flask API routes for the stock ledger; manual movements and read projections.

"""
Stock Routes

SECURITY: All routes require authentication.
- Reads require VIEW_STOCK
- POST /in, /out, /transfer require STOCK_IN, STOCK_OUT, STOCK_TRANSFER
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import DomainError
from ..identity import current_user_id
from ..services import stock_ledger_service
from ._responses import error_response, internal_error, json_body, query_bool


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
@require_auth
@require_permission("VIEW_STOCK")
def stock_levels_route():
    """
    Query parameters:
    - product_id, location_id, warehouse_id
    - include_zero: true/false (default false)
    """
    levels = stock_ledger_service.get_stock_levels(
        product_id=request.args.get("product_id", type=int),
        location_id=request.args.get("location_id", type=int),
        warehouse_id=request.args.get("warehouse_id", type=int),
        include_zero=query_bool("include_zero"),
    )
    return jsonify({"items": [item.to_dict() for item in levels], "count": len(levels)})


@stock_bp.get("/movements")
@require_auth
@require_permission("VIEW_STOCK")
def list_movements_route():
    """
    Query parameters:
    - product_id, location_id (either side), type (IN, OUT, TRANSFER), reference
    - limit (default 100, max 500), offset
    """
    limit = min(max(request.args.get("limit", 100, type=int), 1), 500)
    offset = max(request.args.get("offset", 0, type=int), 0)
    try:
        movements, total = stock_ledger_service.list_movements(
            product_id=request.args.get("product_id", type=int),
            location_id=request.args.get("location_id", type=int),
            movement_type=request.args.get("type"),
            reference=request.args.get("reference"),
            limit=limit,
            offset=offset,
        )
        return jsonify({
            "items": [m.to_dict() for m in movements],
            "count": total,
            "limit": limit,
            "offset": offset,
        })
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("list movements")


@stock_bp.post("/in")
@require_auth
@require_permission("STOCK_IN")
def stock_in_route():
    """Request body: {"product_id", "location_id", "quantity", "reference"?, "notes"?}"""
    data = json_body()
    try:
        movement = stock_ledger_service.receive_stock(
            product_id=data.get("product_id"),
            location_id=data.get("location_id"),
            quantity=data.get("quantity"),
            reference=data.get("reference"),
            notes=data.get("notes"),
            actor_user_id=current_user_id(),
        )
        current_app.logger.info(
            "Stock in: product=%s location=%s qty=%s",
            movement.product_id, movement.to_location_id, movement.quantity,
        )
        return jsonify(movement.to_dict()), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("receive stock")


@stock_bp.post("/out")
@require_auth
@require_permission("STOCK_OUT")
def stock_out_route():
    """Request body: {"product_id", "location_id", "quantity", "reference"?, "notes"?}"""
    data = json_body()
    try:
        movement = stock_ledger_service.issue_stock(
            product_id=data.get("product_id"),
            location_id=data.get("location_id"),
            quantity=data.get("quantity"),
            reference=data.get("reference"),
            notes=data.get("notes"),
            actor_user_id=current_user_id(),
        )
        current_app.logger.info(
            "Stock out: product=%s location=%s qty=%s",
            movement.product_id, movement.from_location_id, movement.quantity,
        )
        return jsonify(movement.to_dict()), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("issue stock")


@stock_bp.post("/transfer")
@require_auth
@require_permission("STOCK_TRANSFER")
def stock_transfer_route():
    """Request body: {"product_id", "from_location_id", "to_location_id", "quantity", "reference"?, "notes"?}"""
    data = json_body()
    try:
        movement = stock_ledger_service.transfer_stock(
            product_id=data.get("product_id"),
            from_location_id=data.get("from_location_id"),
            to_location_id=data.get("to_location_id"),
            quantity=data.get("quantity"),
            reference=data.get("reference"),
            notes=data.get("notes"),
            actor_user_id=current_user_id(),
        )
        current_app.logger.info(
            "Stock transfer: product=%s %s -> %s qty=%s",
            movement.product_id, movement.from_location_id, movement.to_location_id, movement.quantity,
        )
        return jsonify(movement.to_dict()), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("transfer stock")
