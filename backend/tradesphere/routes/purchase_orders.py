# Overview: Flask API routes for purchase orders; lines, status changes and receiving.

"""
Purchase Order Routes

SECURITY: All routes require authentication.
- Reads require VIEW_ORDER
- Create requires CREATE_ORDER; line edits, status changes and receiving
  require UPDATE_ORDER; delete requires DELETE_ORDER
"""

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import DomainError
from ..identity import current_user_id
from ..services import purchase_order_service
from ._responses import error_response, internal_error, json_body


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.get("")
@require_auth
@require_permission("VIEW_ORDER")
def list_purchase_orders_route():
    """Query parameters: status, supplier_id"""
    try:
        orders = purchase_order_service.list_purchase_orders(
            status=request.args.get("status"),
            supplier_id=request.args.get("supplier_id", type=int),
        )
        return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)})
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("list purchase orders")


@purchase_orders_bp.get("/<int:order_id>")
@require_auth
@require_permission("VIEW_ORDER")
def get_purchase_order_route(order_id: int):
    try:
        return jsonify(purchase_order_service.get_purchase_order(order_id).to_dict(include_items=True))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("get purchase order")


@purchase_orders_bp.post("")
@require_auth
@require_permission("CREATE_ORDER")
def create_purchase_order_route():
    """Request body: {"supplier_id": 1, "expected_date": "2025-07-01"?, "notes"?}"""
    data = json_body()
    try:
        order = purchase_order_service.create_purchase_order(
            supplier_id=data.get("supplier_id"),
            expected_date=data.get("expected_date"),
            notes=data.get("notes"),
            actor_user_id=current_user_id(),
        )
        return jsonify(order.to_dict(include_items=True)), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("create purchase order")


@purchase_orders_bp.delete("/<int:order_id>")
@require_auth
@require_permission("DELETE_ORDER")
def delete_purchase_order_route(order_id: int):
    try:
        purchase_order_service.delete_purchase_order(order_id)
        return jsonify({"deleted": True, "id": order_id})
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("delete purchase order")


@purchase_orders_bp.post("/<int:order_id>/items")
@require_auth
@require_permission("UPDATE_ORDER")
def add_purchase_order_item_route(order_id: int):
    """
    Add a line (merges into an existing line for the same product).

    Request body: {"product_id": 1, "quantity": 10, "unit_cost_cents": 500?}
    """
    data = json_body()
    try:
        order = purchase_order_service.add_purchase_order_item(
            order_id,
            product_id=data.get("product_id"),
            quantity=data.get("quantity"),
            unit_cost_cents=data.get("unit_cost_cents"),
        )
        return jsonify(order.to_dict(include_items=True)), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("add purchase order item")


@purchase_orders_bp.patch("/<int:order_id>/items/<int:item_id>")
@require_auth
@require_permission("UPDATE_ORDER")
def update_purchase_order_item_route(order_id: int, item_id: int):
    data = json_body()
    try:
        order = purchase_order_service.update_purchase_order_item(
            order_id,
            item_id,
            quantity=data.get("quantity"),
            unit_cost_cents=data.get("unit_cost_cents"),
        )
        return jsonify(order.to_dict(include_items=True))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("update purchase order item")


@purchase_orders_bp.delete("/<int:order_id>/items/<int:item_id>")
@require_auth
@require_permission("UPDATE_ORDER")
def remove_purchase_order_item_route(order_id: int, item_id: int):
    try:
        order = purchase_order_service.remove_purchase_order_item(order_id, item_id)
        return jsonify(order.to_dict(include_items=True))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("remove purchase order item")


@purchase_orders_bp.post("/<int:order_id>/status")
@require_auth
@require_permission("UPDATE_ORDER")
def advance_purchase_order_route(order_id: int):
    """Request body: {"status": "SENT" | "CONFIRMED" | "CANCELLED"}"""
    data = json_body()
    try:
        order = purchase_order_service.advance_purchase_order(
            order_id, data.get("status"), actor_user_id=current_user_id()
        )
        return jsonify(order.to_dict(include_items=True))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("advance purchase order")


@purchase_orders_bp.post("/<int:order_id>/cancel")
@require_auth
@require_permission("UPDATE_ORDER")
def cancel_purchase_order_route(order_id: int):
    try:
        order = purchase_order_service.cancel_purchase_order(order_id, actor_user_id=current_user_id())
        return jsonify(order.to_dict(include_items=True))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("cancel purchase order")


@purchase_orders_bp.post("/<int:order_id>/receive")
@require_auth
@require_permission("UPDATE_ORDER")
def receive_purchase_order_route(order_id: int):
    """
    Receive outstanding quantities into the warehouse's default location.

    Request body:
    {
        "warehouse_id": 1,
        "quantities": {"12": 5}     // optional item_id -> qty for a partial receipt
    }
    """
    data = json_body()
    try:
        order = purchase_order_service.receive_purchase_order(
            order_id,
            warehouse_id=data.get("warehouse_id"),
            quantities=data.get("quantities"),
            actor_user_id=current_user_id(),
        )
        return jsonify(order.to_dict(include_items=True))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("receive purchase order")
