# Overview: Flask API routes for warehouses and storage locations.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import DomainError
from ..services import location_service, stock_ledger_service
from ._responses import error_response, internal_error, json_body, query_bool


warehouses_bp = Blueprint("warehouses", __name__, url_prefix="/api")


def _location_dict(location) -> dict:
    result = location.to_dict()
    result["path"] = location_service.location_path(location)
    return result


@warehouses_bp.get("/warehouses")
@require_auth
@require_permission("VIEW_WAREHOUSE")
def list_warehouses_route():
    warehouses = location_service.list_warehouses(include_inactive=query_bool("include_inactive"))
    return jsonify({"items": [w.to_dict() for w in warehouses], "count": len(warehouses)})


@warehouses_bp.post("/warehouses")
@require_auth
@require_permission("MANAGE_WAREHOUSE")
def create_warehouse_route():
    data = json_body()
    try:
        warehouse = location_service.create_warehouse(
            code=data.get("code"),
            name=data.get("name"),
            address=data.get("address"),
            description=data.get("description"),
        )
        return jsonify(warehouse.to_dict()), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("create warehouse")


@warehouses_bp.get("/warehouses/<int:warehouse_id>")
@require_auth
@require_permission("VIEW_WAREHOUSE")
def get_warehouse_route(warehouse_id: int):
    """Warehouse with its locations and stock on hand."""
    try:
        warehouse = location_service.get_warehouse(warehouse_id)
        locations = location_service.list_locations(warehouse_id=warehouse_id, include_inactive=True)
        stock = stock_ledger_service.get_stock_levels(warehouse_id=warehouse_id)
        result = warehouse.to_dict()
        result["locations"] = [_location_dict(loc) for loc in locations]
        result["stock"] = [item.to_dict() for item in stock]
        return jsonify(result)
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("get warehouse")


@warehouses_bp.get("/warehouses/<int:warehouse_id>/default-location")
@require_auth
@require_permission("VIEW_WAREHOUSE")
def default_location_route(warehouse_id: int):
    try:
        return jsonify(_location_dict(location_service.default_location(warehouse_id)))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("default location")


@warehouses_bp.get("/locations")
@require_auth
@require_permission("VIEW_WAREHOUSE")
def list_locations_route():
    """
    Query parameters:
    - warehouse_id
    - type: ZONE, RACK, SHELF, BIN
    - include_inactive: true/false
    """
    try:
        locations = location_service.list_locations(
            warehouse_id=request.args.get("warehouse_id", type=int),
            type=request.args.get("type"),
            include_inactive=query_bool("include_inactive"),
        )
        return jsonify({"items": [_location_dict(loc) for loc in locations], "count": len(locations)})
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("list locations")


@warehouses_bp.post("/locations")
@require_auth
@require_permission("MANAGE_LOCATION")
def create_location_route():
    """
    Request body:
    {
        "warehouse_id": 1,
        "code": "A-01",
        "name": "Aisle A rack 1",
        "type": "RACK",          // ZONE, RACK, SHELF, BIN
        "parent_id": 4,          // required except for ZONE
        "capacity": 100          // BIN only
    }
    """
    data = json_body()
    try:
        location = location_service.create_location(
            warehouse_id=data.get("warehouse_id"),
            code=data.get("code"),
            name=data.get("name"),
            type=data.get("type"),
            parent_id=data.get("parent_id"),
            capacity=data.get("capacity"),
        )
        return jsonify(_location_dict(location)), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("create location")


@warehouses_bp.get("/locations/<int:location_id>")
@require_auth
@require_permission("VIEW_WAREHOUSE")
def get_location_route(location_id: int):
    try:
        location = location_service.get_location(location_id)
        result = _location_dict(location)
        result["stock"] = [item.to_dict() for item in stock_ledger_service.get_stock_levels(location_id=location_id)]
        return jsonify(result)
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("get location")


@warehouses_bp.post("/locations/<int:location_id>/deactivate")
@require_auth
@require_permission("MANAGE_LOCATION")
def deactivate_location_route(location_id: int):
    try:
        return jsonify(_location_dict(location_service.set_location_active(location_id, False)))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("deactivate location")


@warehouses_bp.post("/locations/<int:location_id>/activate")
@require_auth
@require_permission("MANAGE_LOCATION")
def activate_location_route(location_id: int):
    try:
        return jsonify(_location_dict(location_service.set_location_active(location_id, True)))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("activate location")
