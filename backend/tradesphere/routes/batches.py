# Overview: Flask API routes for batches, batch movements, serial numbers and the expiry report.

"""
Batch & Serial Number Routes

SECURITY: All routes require authentication.
- Reads (batches, movements, stats, expiry report, serials) require VIEW_BATCHES
- Every mutation requires MANAGE_BATCHES
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import DomainError
from ..identity import current_user_id
from ..services import batch_service
from ._responses import error_response, internal_error, json_body


batches_bp = Blueprint("batches", __name__, url_prefix="/api/batches")
serials_bp = Blueprint("serial_numbers", __name__, url_prefix="/api/serial-numbers")


# -- BATCHES --

@batches_bp.get("")
@require_auth
@require_permission("VIEW_BATCHES")
def list_batches_route():
    """Query parameters: product_id, location_id, quality_status. Includes the batch stats."""
    try:
        batches = batch_service.list_batches(
            product_id=request.args.get("product_id", type=int),
            location_id=request.args.get("location_id", type=int),
            quality_status=request.args.get("quality_status"),
        )
        return jsonify({
            "items": [b.to_dict() for b in batches],
            "count": len(batches),
            "stats": batch_service.batch_stats(),
        })
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("list batches")


@batches_bp.get("/expiring")
@require_auth
@require_permission("VIEW_BATCHES")
def expiring_batches_route():
    """Query parameters: days (default 30), as_of (YYYY-MM-DD, default today)"""
    try:
        return jsonify(batch_service.expiring_batches(
            days=request.args.get("days", batch_service.DEFAULT_EXPIRY_WINDOW_DAYS),
            as_of=request.args.get("as_of"),
        ))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("report expiring batches")


@batches_bp.get("/<int:batch_id>")
@require_auth
@require_permission("VIEW_BATCHES")
def get_batch_route(batch_id: int):
    try:
        batch = batch_service.get_batch(batch_id)
        result = batch.to_dict()
        result["movements"] = [m.to_dict() for m in batch_service.list_batch_movements(batch_id)]
        return jsonify(result)
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("get batch")


@batches_bp.post("")
@require_auth
@require_permission("MANAGE_BATCHES")
def create_batch_route():
    """
    Request body:
    {"product_id", "batch_number", "initial_qty"?, "manufacture_date"?, "expiry_date"?,
     "location_id"?, "supplier_id"?, "notes"?}
    """
    data = json_body()
    try:
        batch = batch_service.create_batch(
            product_id=data.get("product_id"),
            batch_number=data.get("batch_number"),
            initial_qty=data.get("initial_qty", 0),
            manufacture_date=data.get("manufacture_date"),
            expiry_date=data.get("expiry_date"),
            location_id=data.get("location_id"),
            supplier_id=data.get("supplier_id"),
            notes=data.get("notes"),
            actor_user_id=current_user_id(),
        )
        return jsonify(batch.to_dict()), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("create batch")


@batches_bp.post("/<int:batch_id>/quality")
@require_auth
@require_permission("MANAGE_BATCHES")
def update_batch_quality_route(batch_id: int):
    """Request body: {"quality_status": "APPROVED", "notes"?}"""
    data = json_body()
    try:
        batch = batch_service.update_batch_quality_status(
            batch_id,
            data.get("quality_status"),
            data.get("notes"),
            actor_user_id=current_user_id(),
        )
        return jsonify(batch.to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("update batch quality")


@batches_bp.post("/<int:batch_id>/adjust")
@require_auth
@require_permission("MANAGE_BATCHES")
def adjust_batch_route(batch_id: int):
    """Request body: {"adjustment": -5, "type"?: "OUT", "notes"?}"""
    data = json_body()
    try:
        movement = batch_service.adjust_batch_quantity(
            batch_id,
            data.get("adjustment"),
            data.get("type"),
            data.get("notes"),
            actor_user_id=current_user_id(),
        )
        return jsonify({
            "movement": movement.to_dict(),
            "batch": batch_service.get_batch(batch_id).to_dict(),
        }), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("adjust batch")


@batches_bp.delete("/<int:batch_id>")
@require_auth
@require_permission("MANAGE_BATCHES")
def delete_batch_route(batch_id: int):
    try:
        batch_service.delete_batch(batch_id, actor_user_id=current_user_id())
        current_app.logger.info("Batch %s deleted", batch_id)
        return jsonify({"deleted": True, "id": batch_id})
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("delete batch")


# -- SERIAL NUMBERS --

@serials_bp.get("")
@require_auth
@require_permission("VIEW_BATCHES")
def list_serial_numbers_route():
    """Query parameters: product_id, batch_id, status"""
    try:
        serials = batch_service.list_serial_numbers(
            product_id=request.args.get("product_id", type=int),
            batch_id=request.args.get("batch_id", type=int),
            status=request.args.get("status"),
        )
        return jsonify({"items": [s.to_dict() for s in serials], "count": len(serials)})
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("list serial numbers")


@serials_bp.get("/<int:serial_id>")
@require_auth
@require_permission("VIEW_BATCHES")
def get_serial_number_route(serial_id: int):
    try:
        return jsonify(batch_service.get_serial_number(serial_id).to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("get serial number")


@serials_bp.post("")
@require_auth
@require_permission("MANAGE_BATCHES")
def create_serial_number_route():
    """Request body: {"product_id", "serial_number", "batch_id"?, "location_id"?, "warranty_expiry"?, "notes"?}"""
    data = json_body()
    try:
        serial = batch_service.create_serial_number(
            product_id=data.get("product_id"),
            serial_number=data.get("serial_number"),
            batch_id=data.get("batch_id"),
            location_id=data.get("location_id"),
            warranty_expiry=data.get("warranty_expiry"),
            notes=data.get("notes"),
            actor_user_id=current_user_id(),
        )
        return jsonify(serial.to_dict()), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("create serial number")


@serials_bp.post("/<int:serial_id>/status")
@require_auth
@require_permission("MANAGE_BATCHES")
def update_serial_status_route(serial_id: int):
    """Request body: {"status": "DEFECTIVE"}"""
    try:
        serial = batch_service.update_serial_number_status(
            serial_id, json_body().get("status"), actor_user_id=current_user_id()
        )
        return jsonify(serial.to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("update serial number status")


@serials_bp.post("/<int:serial_id>/sell")
@require_auth
@require_permission("MANAGE_BATCHES")
def sell_serial_route(serial_id: int):
    """Request body: {"customer_id", "sales_order_id"?}"""
    data = json_body()
    try:
        serial = batch_service.mark_serial_as_sold(
            serial_id,
            data.get("customer_id"),
            data.get("sales_order_id"),
            actor_user_id=current_user_id(),
        )
        current_app.logger.info("Serial %s sold to customer %s", serial.serial_number, serial.sold_to_customer_id)
        return jsonify(serial.to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("sell serial number")
