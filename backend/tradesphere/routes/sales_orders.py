# Overview: Flask API routes for sales orders; lines, status changes and shipping.

"""
Sales Order Routes

SECURITY: same action mapping as purchase orders (VIEW_ORDER, CREATE_ORDER,
UPDATE_ORDER, DELETE_ORDER).
"""

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import DomainError
from ..identity import current_user_id
from ..services import sales_order_service
from ._responses import error_response, internal_error, json_body


sales_orders_bp = Blueprint("sales_orders", __name__, url_prefix="/api/sales-orders")


@sales_orders_bp.get("")
@require_auth
@require_permission("VIEW_ORDER")
def list_sales_orders_route():
    """Query parameters: status, customer_id"""
    try:
        orders = sales_order_service.list_sales_orders(
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
        )
        return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)})
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("list sales orders")


@sales_orders_bp.get("/<int:order_id>")
@require_auth
@require_permission("VIEW_ORDER")
def get_sales_order_route(order_id: int):
    try:
        return jsonify(sales_order_service.get_sales_order(order_id).to_dict(include_items=True))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("get sales order")


@sales_orders_bp.post("")
@require_auth
@require_permission("CREATE_ORDER")
def create_sales_order_route():
    """Request body: {"customer_id": 1, "shipping_address"?, "notes"?}"""
    data = json_body()
    try:
        order = sales_order_service.create_sales_order(
            customer_id=data.get("customer_id"),
            shipping_address=data.get("shipping_address"),
            notes=data.get("notes"),
            actor_user_id=current_user_id(),
        )
        return jsonify(order.to_dict(include_items=True)), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("create sales order")


@sales_orders_bp.delete("/<int:order_id>")
@require_auth
@require_permission("DELETE_ORDER")
def delete_sales_order_route(order_id: int):
    try:
        sales_order_service.delete_sales_order(order_id)
        return jsonify({"deleted": True, "id": order_id})
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("delete sales order")


@sales_orders_bp.post("/<int:order_id>/items")
@require_auth
@require_permission("UPDATE_ORDER")
def add_sales_order_item_route(order_id: int):
    """Request body: {"product_id": 1, "quantity": 2, "unit_price_cents": 1500?}"""
    data = json_body()
    try:
        order = sales_order_service.add_sales_order_item(
            order_id,
            product_id=data.get("product_id"),
            quantity=data.get("quantity"),
            unit_price_cents=data.get("unit_price_cents"),
        )
        return jsonify(order.to_dict(include_items=True)), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("add sales order item")


@sales_orders_bp.patch("/<int:order_id>/items/<int:item_id>")
@require_auth
@require_permission("UPDATE_ORDER")
def update_sales_order_item_route(order_id: int, item_id: int):
    data = json_body()
    try:
        order = sales_order_service.update_sales_order_item(
            order_id,
            item_id,
            quantity=data.get("quantity"),
            unit_price_cents=data.get("unit_price_cents"),
        )
        return jsonify(order.to_dict(include_items=True))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("update sales order item")


@sales_orders_bp.delete("/<int:order_id>/items/<int:item_id>")
@require_auth
@require_permission("UPDATE_ORDER")
def remove_sales_order_item_route(order_id: int, item_id: int):
    try:
        order = sales_order_service.remove_sales_order_item(order_id, item_id)
        return jsonify(order.to_dict(include_items=True))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("remove sales order item")


@sales_orders_bp.post("/<int:order_id>/status")
@require_auth
@require_permission("UPDATE_ORDER")
def advance_sales_order_route(order_id: int):
    """Request body: {"status": "PENDING" | "CONFIRMED" | "DELIVERED" | "CANCELLED"}"""
    data = json_body()
    try:
        order = sales_order_service.advance_sales_order(
            order_id, data.get("status"), actor_user_id=current_user_id()
        )
        return jsonify(order.to_dict(include_items=True))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("advance sales order")


@sales_orders_bp.post("/<int:order_id>/cancel")
@require_auth
@require_permission("UPDATE_ORDER")
def cancel_sales_order_route(order_id: int):
    try:
        order = sales_order_service.cancel_sales_order(order_id, actor_user_id=current_user_id())
        return jsonify(order.to_dict(include_items=True))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("cancel sales order")


@sales_orders_bp.post("/<int:order_id>/ship")
@require_auth
@require_permission("UPDATE_ORDER")
def ship_sales_order_route(order_id: int):
    """Request body: {"warehouse_id": 1}"""
    data = json_body()
    try:
        order = sales_order_service.ship_sales_order(
            order_id,
            warehouse_id=data.get("warehouse_id"),
            actor_user_id=current_user_id(),
        )
        return jsonify(order.to_dict(include_items=True))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("ship sales order")
