# Overview: Flask API routes for invoices and payments.

"""
Invoice & Payment Routes

SECURITY: All routes require authentication.
- Reads require VIEW_INVOICE
- Create requires CREATE_INVOICE; lines, discount and status changes
  require UPDATE_INVOICE; delete requires DELETE_INVOICE
- Recording and voiding payments require RECORD_PAYMENT
- The overdue sweep requires MANAGE_SETTINGS
"""

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import DomainError
from ..identity import current_user_id
from ..services import invoice_service
from ..validation import optional_date
from ._responses import error_response, internal_error, json_body


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")
payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@invoices_bp.get("")
@require_auth
@require_permission("VIEW_INVOICE")
def list_invoices_route():
    """Query parameters: type (SALES, PURCHASE), status, customer_id, supplier_id"""
    try:
        invoices = invoice_service.list_invoices(
            type=request.args.get("type"),
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
            supplier_id=request.args.get("supplier_id", type=int),
        )
        return jsonify({"items": [i.to_dict() for i in invoices], "count": len(invoices)})
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("list invoices")


@invoices_bp.get("/summary")
@require_auth
@require_permission("VIEW_INVOICE")
def invoice_summary_route():
    """Counts by status, past-due count, outstanding receivables and payables."""
    try:
        as_of = optional_date(request.args.get("as_of"), "as_of")
        return jsonify(invoice_service.invoice_summary(as_of))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("invoice summary")


@invoices_bp.get("/<int:invoice_id>")
@require_auth
@require_permission("VIEW_INVOICE")
def get_invoice_route(invoice_id: int):
    try:
        return jsonify(invoice_service.get_invoice(invoice_id).to_dict(include_children=True))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("get invoice")


@invoices_bp.post("")
@require_auth
@require_permission("CREATE_INVOICE")
def create_invoice_route():
    """
    Request body:
    {
        "type": "SALES",              // SALES (needs customer_id) or PURCHASE (needs supplier_id)
        "customer_id": 1,
        "due_date": "2025-08-01",     // required
        "invoice_date": "2025-07-01", // optional, defaults to today
        "tax_rate_bps": 800,          // default rate for new lines (800 = 8%)
        "notes": "...", "terms": "Net 30"
    }
    """
    data = json_body()
    try:
        invoice = invoice_service.create_invoice(
            type=data.get("type"),
            due_date=data.get("due_date"),
            customer_id=data.get("customer_id"),
            supplier_id=data.get("supplier_id"),
            invoice_date=data.get("invoice_date"),
            tax_rate_bps=data.get("tax_rate_bps", 0),
            notes=data.get("notes"),
            terms=data.get("terms"),
            actor_user_id=current_user_id(),
        )
        return jsonify(invoice.to_dict(include_children=True)), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("create invoice")


@invoices_bp.delete("/<int:invoice_id>")
@require_auth
@require_permission("DELETE_INVOICE")
def delete_invoice_route(invoice_id: int):
    try:
        invoice_service.delete_invoice(invoice_id)
        return jsonify({"deleted": True, "id": invoice_id})
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("delete invoice")


@invoices_bp.post("/<int:invoice_id>/items")
@require_auth
@require_permission("UPDATE_INVOICE")
def add_invoice_item_route(invoice_id: int):
    """Request body: {"quantity", "unit_price_cents"?, "description"?, "product_id"?, "tax_rate_bps"?}"""
    data = json_body()
    try:
        invoice = invoice_service.add_invoice_item(
            invoice_id,
            quantity=data.get("quantity"),
            unit_price_cents=data.get("unit_price_cents"),
            description=data.get("description"),
            product_id=data.get("product_id"),
            tax_rate_bps=data.get("tax_rate_bps"),
        )
        return jsonify(invoice.to_dict(include_children=True)), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("add invoice item")


@invoices_bp.delete("/<int:invoice_id>/items/<int:item_id>")
@require_auth
@require_permission("UPDATE_INVOICE")
def remove_invoice_item_route(invoice_id: int, item_id: int):
    try:
        invoice = invoice_service.remove_invoice_item(invoice_id, item_id)
        return jsonify(invoice.to_dict(include_children=True))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("remove invoice item")


@invoices_bp.post("/<int:invoice_id>/discount")
@require_auth
@require_permission("UPDATE_INVOICE")
def set_discount_route(invoice_id: int):
    """Request body: {"discount_cents": 500}"""
    data = json_body()
    try:
        invoice = invoice_service.set_discount(invoice_id, data.get("discount_cents"))
        return jsonify(invoice.to_dict(include_children=True))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("set invoice discount")


@invoices_bp.post("/<int:invoice_id>/status")
@require_auth
@require_permission("UPDATE_INVOICE")
def advance_invoice_route(invoice_id: int):
    """Request body: {"status": "SENT" | "CANCELLED" | "REFUNDED"}"""
    data = json_body()
    try:
        invoice = invoice_service.advance_invoice(invoice_id, data.get("status"), actor_user_id=current_user_id())
        return jsonify(invoice.to_dict(include_children=True))
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("advance invoice")


@invoices_bp.get("/<int:invoice_id>/payments")
@require_auth
@require_permission("VIEW_INVOICE")
def list_payments_route(invoice_id: int):
    try:
        payments = invoice_service.list_payments(invoice_id)
        return jsonify({"items": [p.to_dict() for p in payments], "count": len(payments)})
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("list payments")


@invoices_bp.post("/<int:invoice_id>/payments")
@require_auth
@require_permission("RECORD_PAYMENT")
def record_payment_route(invoice_id: int):
    """
    Request body:
    {
        "amount_cents": 6000,             // required, > 0
        "method": "BANK_TRANSFER",        // CASH, BANK_TRANSFER, CREDIT_CARD, CHECK, OTHER
        "reference": "...", "notes": "..."
    }
    """
    data = json_body()
    try:
        payment = invoice_service.record_payment(
            invoice_id,
            amount_cents=data.get("amount_cents"),
            method=data.get("method"),
            reference=data.get("reference"),
            notes=data.get("notes"),
            actor_user_id=current_user_id(),
        )
        invoice = invoice_service.get_invoice(invoice_id)
        return jsonify({
            "payment": payment.to_dict(),
            "invoice": invoice.to_dict(),
        }), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("record payment")


@invoices_bp.post("/mark-overdue")
@require_auth
@require_permission("MANAGE_SETTINGS")
def mark_overdue_route():
    """Request body: {"as_of": "2025-08-02"?}"""
    data = json_body()
    try:
        invoices = invoice_service.mark_overdue_invoices(data.get("as_of"), actor_user_id=current_user_id())
        return jsonify({"items": [i.to_dict() for i in invoices], "count": len(invoices)})
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("mark invoices overdue")


@payments_bp.get("/<int:payment_id>")
@require_auth
@require_permission("VIEW_INVOICE")
def get_payment_route(payment_id: int):
    try:
        return jsonify(invoice_service.get_payment(payment_id).to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("get payment")


@payments_bp.post("/<int:payment_id>/void")
@require_auth
@require_permission("RECORD_PAYMENT")
def void_payment_route(payment_id: int):
    """Request body: {"reason": "Bounced cheque"}"""
    data = json_body()
    try:
        payment = invoice_service.void_payment(
            payment_id,
            reason=data.get("reason"),
            actor_user_id=current_user_id(),
        )
        invoice = invoice_service.get_invoice(payment.invoice_id)
        return jsonify({
            "payment": payment.to_dict(),
            "invoice": invoice.to_dict(),
        })
    except DomainError as e:
        return error_response(e)
    except Exception:
        return internal_error("void payment")
