# Overview: Flask API routes for products; parses input and returns JSON responses.

"""
Product Routes

SECURITY: All routes require authentication.
- Reads require VIEW_PRODUCT
- Create / update / delete require CREATE_PRODUCT / UPDATE_PRODUCT / DELETE_PRODUCT

current_stock is read-only here; stock changes go through /api/stock.
"""

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import DomainError
from ..identity import current_user_id
from ..services import catalog_service, stock_ledger_service
from ._responses import error_response, internal_error, json_body, query_bool


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission("VIEW_PRODUCT")
def list_products_route():
    """
    Query parameters:
    - search: substring of name or SKU
    - category
    - include_inactive: true/false (default false)
    """
    try:
        products = catalog_service.list_products(
            search=request.args.get("search"),
            category=request.args.get("category"),
            include_inactive=query_bool("include_inactive"),
        )
        return jsonify({"items": [p.to_dict() for p in products], "count": len(products)})
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("list products")


@products_bp.get("/low-stock")
@require_auth
@require_permission("VIEW_PRODUCT")
def low_stock_route():
    products = catalog_service.list_low_stock()
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)})


@products_bp.get("/by-sku/<string:sku>")
@require_auth
@require_permission("VIEW_PRODUCT")
def get_product_by_sku_route(sku: str):
    try:
        return jsonify(catalog_service.get_product_by_sku(sku).to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("get product by sku")


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_PRODUCT")
def get_product_route(product_id: int):
    """Product with its per-location stock."""
    try:
        product = catalog_service.get_product(product_id)
        levels = stock_ledger_service.get_stock_levels(product_id=product_id)
        result = product.to_dict()
        result["stock_by_location"] = [item.to_dict() for item in levels]
        return jsonify(result)
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("get product")


@products_bp.post("")
@require_auth
@require_permission("CREATE_PRODUCT")
def create_product_route():
    """
    Request body:
    {
        "sku": "WID-001",              // required, immutable
        "name": "Widget",              // required
        "price_cents": 1500,
        "cost_cents": 900,
        "reorder_point": 10,
        "opening_stock": 25,           // optional, needs opening_location_id
        "opening_location_id": 3
    }
    """
    data = json_body()
    opening_stock = data.pop("opening_stock", None)
    opening_location_id = data.pop("opening_location_id", None)
    try:
        product = catalog_service.create_product(
            patch=data,
            opening_stock=opening_stock,
            opening_location_id=opening_location_id,
            actor_user_id=current_user_id(),
        )
        return jsonify(product.to_dict()), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("create product")


@products_bp.patch("/<int:product_id>")
@require_auth
@require_permission("UPDATE_PRODUCT")
def update_product_route(product_id: int):
    try:
        product = catalog_service.update_product(product_id, json_body(), actor_user_id=current_user_id())
        return jsonify(product.to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("update product")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("DELETE_PRODUCT")
def delete_product_route(product_id: int):
    try:
        catalog_service.delete_product(product_id, actor_user_id=current_user_id())
        return jsonify({"deleted": True, "id": product_id})
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("delete product")
