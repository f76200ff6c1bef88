# Overview: Flask API routes for suppliers (with price lists) and customers.

from flask import Blueprint, jsonify

from ..decorators import require_auth, require_permission
from ..errors import DomainError
from ..identity import current_user_id
from ..services import catalog_service
from ._responses import error_response, internal_error, json_body, query_bool


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")
customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _supplier_dict(supplier) -> dict:
    result = supplier.to_dict()
    result["price_list"] = [row.to_dict() for row in supplier.price_list]
    return result


# -- SUPPLIERS --

@suppliers_bp.get("")
@require_auth
@require_permission("VIEW_SUPPLIERS")
def list_suppliers_route():
    suppliers = catalog_service.list_suppliers(include_inactive=query_bool("include_inactive"))
    return jsonify({"items": [s.to_dict() for s in suppliers], "count": len(suppliers)})


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
@require_permission("VIEW_SUPPLIERS")
def get_supplier_route(supplier_id: int):
    try:
        return jsonify(_supplier_dict(catalog_service.get_supplier(supplier_id)))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("get supplier")


@suppliers_bp.post("")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def create_supplier_route():
    try:
        supplier = catalog_service.create_supplier(patch=json_body(), actor_user_id=current_user_id())
        return jsonify(supplier.to_dict()), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("create supplier")


@suppliers_bp.patch("/<int:supplier_id>")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def update_supplier_route(supplier_id: int):
    try:
        return jsonify(catalog_service.update_supplier(supplier_id, json_body()).to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("update supplier")


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def delete_supplier_route(supplier_id: int):
    try:
        catalog_service.delete_supplier(supplier_id)
        return jsonify({"deleted": True, "id": supplier_id})
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("delete supplier")


@suppliers_bp.put("/<int:supplier_id>/products/<int:product_id>")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def set_supplier_product_route(supplier_id: int, product_id: int):
    """
    Upsert a price-list entry.

    Request body: {"unit_cost_cents": 850, "supplier_sku": "AC-1", "min_order_qty": 10, "lead_time_days": 7}
    """
    data = json_body()
    try:
        row = catalog_service.set_supplier_product(
            supplier_id=supplier_id,
            product_id=product_id,
            unit_cost_cents=data.get("unit_cost_cents"),
            supplier_sku=data.get("supplier_sku"),
            min_order_qty=data.get("min_order_qty", 1),
            lead_time_days=data.get("lead_time_days"),
        )
        return jsonify(row.to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("set supplier product")


@suppliers_bp.delete("/<int:supplier_id>/products/<int:product_id>")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def remove_supplier_product_route(supplier_id: int, product_id: int):
    try:
        catalog_service.remove_supplier_product(supplier_id=supplier_id, product_id=product_id)
        return jsonify({"deleted": True})
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("remove supplier product")


# -- CUSTOMERS --

@customers_bp.get("")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def list_customers_route():
    customers = catalog_service.list_customers(include_inactive=query_bool("include_inactive"))
    return jsonify({"items": [c.to_dict() for c in customers], "count": len(customers)})


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def get_customer_route(customer_id: int):
    try:
        return jsonify(catalog_service.get_customer(customer_id).to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("get customer")


@customers_bp.post("")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def create_customer_route():
    try:
        customer = catalog_service.create_customer(patch=json_body(), actor_user_id=current_user_id())
        return jsonify(customer.to_dict()), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("create customer")


@customers_bp.patch("/<int:customer_id>")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def update_customer_route(customer_id: int):
    try:
        return jsonify(catalog_service.update_customer(customer_id, json_body()).to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("update customer")
