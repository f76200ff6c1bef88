# Overview: Service-layer operations for purchase orders; lines, status lifecycle and receiving into stock.

"""
Purchase Order Lifecycle

STATES: DRAFT -> SENT -> CONFIRMED -> (PARTIAL ->)* RECEIVED
        DRAFT / SENT / CONFIRMED / PARTIAL -> CANCELLED
        RECEIVED and CANCELLED are terminal.

LINES:
- Editable only while DRAFT.
- One line per product: adding a product already on the order merges into
  the existing line (quantity += q, unit cost overwritten).
- total_cents == SUM(quantity * unit_cost_cents), recomputed after every
  line mutation inside the same transaction.

RECEIVING:
- Only CONFIRMED or PARTIAL orders can be received.
- Each line carries a received_qty watermark. A receipt only books the
  outstanding delta (or a requested part of it), never the full line again,
  so a repeated or resumed receive cannot double-count stock.
- All lines are booked through the stock ledger in ONE unit of work tagged
  with the order number; if any line fails, nothing is received.
"""

from __future__ import annotations

from flask import current_app

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Product, PurchaseOrder, PurchaseOrderItem, Supplier
from ..validation import coerce_int, optional_date, optional_text, require_money, require_positive_int
from tradesphere.time_utils import utcnow
from .audit_service import append_audit_event
from .catalog_service import supplier_unit_cost
from .concurrency import lock_for_update, run_in_transaction
from .document_service import PURCHASE_ORDER, next_document_number
from .location_service import default_location
from .state_machines import (
    PURCHASE_ORDER_FSM,
    PO_CANCELLED,
    PO_DELETABLE,
    PO_DRAFT,
    PO_EDITABLE,
    PO_PARTIAL,
    PO_RECEIVABLE,
    PO_RECEIVED,
    PO_SENT,
)
from .stock_ledger_service import apply_receipt


def _load_order(order_id: int, *, lock: bool = False) -> PurchaseOrder:
    query = db.session.query(PurchaseOrder).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise NotFound("purchase order", order_id)
    return order


def _load_item(order: PurchaseOrder, item_id: int) -> PurchaseOrderItem:
    for item in order.items:
        if item.id == item_id:
            return item
    raise NotFound("purchase order item", item_id)


def _load_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFound("product", product_id)
    if not product.is_active:
        raise ValidationError(f"Product {product.sku} is inactive", {"product_id": product_id})
    return product


def _recalculate_total(order: PurchaseOrder) -> None:
    order.total_cents = sum(item.quantity * item.unit_cost_cents for item in order.items)


def _audit(order: PurchaseOrder, event_type: str, actor_user_id: int | None, note: str) -> None:
    append_audit_event(
        event_type=event_type,
        entity_type="purchase_order",
        entity_id=order.id,
        actor_user_id=actor_user_id,
        note=note,
    )


# =============================================================================
# HEADER
# =============================================================================

def create_purchase_order(
    *,
    supplier_id: int,
    expected_date=None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> PurchaseOrder:
    expected = optional_date(expected_date, "expected_date")
    notes = optional_text(notes, "notes")

    def _op():
        supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
        if supplier is None:
            raise NotFound("supplier", supplier_id)
        if not supplier.is_active:
            raise ValidationError(f"Supplier {supplier.code} is inactive", {"supplier_id": supplier_id})

        doc_type, prefix = PURCHASE_ORDER
        order = PurchaseOrder(
            order_number=next_document_number(document_type=doc_type, prefix=prefix),
            supplier_id=supplier_id,
            status=PO_DRAFT,
            total_cents=0,
            expected_date=expected,
            notes=notes,
            created_by_user_id=actor_user_id,
        )
        db.session.add(order)
        db.session.flush()
        _audit(order, "purchase_order.created", actor_user_id, f"Created {order.order_number}")
        return order

    return run_in_transaction(_op)


def get_purchase_order(order_id: int) -> PurchaseOrder:
    return _load_order(order_id)


def list_purchase_orders(
    *,
    status: str | None = None,
    supplier_id: int | None = None,
) -> list[PurchaseOrder]:
    query = db.session.query(PurchaseOrder)
    if status:
        query = query.filter(PurchaseOrder.status == PURCHASE_ORDER_FSM.validate_status(status))
    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    return query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).all()


# =============================================================================
# LINES (DRAFT only)
# =============================================================================

def add_purchase_order_item(
    order_id: int,
    *,
    product_id: int,
    quantity,
    unit_cost_cents=None,
) -> PurchaseOrder:
    """
    Add a line, or merge into the existing line for the same product.

    unit_cost_cents defaults to the supplier's price-list cost, else the
    product's cost.
    """
    quantity = require_positive_int(quantity, "quantity")
    if unit_cost_cents is not None:
        unit_cost_cents = require_money(unit_cost_cents, "unit_cost_cents")

    def _op():
        order = _load_order(order_id, lock=True)
        PURCHASE_ORDER_FSM.require_status(order.status, PO_EDITABLE, "add items to")
        product = _load_product(product_id)

        cost = unit_cost_cents
        if cost is None:
            cost = supplier_unit_cost(order.supplier_id, product)

        existing = next((i for i in order.items if i.product_id == product_id), None)
        if existing is not None:
            existing.quantity += quantity
            existing.unit_cost_cents = cost
        else:
            order.items.append(PurchaseOrderItem(
                product_id=product_id,
                quantity=quantity,
                received_qty=0,
                unit_cost_cents=cost,
            ))
        _recalculate_total(order)
        db.session.flush()
        return order

    return run_in_transaction(_op)


def update_purchase_order_item(
    order_id: int,
    item_id: int,
    *,
    quantity=None,
    unit_cost_cents=None,
) -> PurchaseOrder:
    if quantity is None and unit_cost_cents is None:
        raise ValidationError("Nothing to update; provide quantity and/or unit_cost_cents")
    if quantity is not None:
        quantity = require_positive_int(quantity, "quantity")
    if unit_cost_cents is not None:
        unit_cost_cents = require_money(unit_cost_cents, "unit_cost_cents")

    def _op():
        order = _load_order(order_id, lock=True)
        PURCHASE_ORDER_FSM.require_status(order.status, PO_EDITABLE, "edit items of")
        item = _load_item(order, item_id)
        if quantity is not None:
            item.quantity = quantity
        if unit_cost_cents is not None:
            item.unit_cost_cents = unit_cost_cents
        _recalculate_total(order)
        db.session.flush()
        return order

    return run_in_transaction(_op)


def remove_purchase_order_item(order_id: int, item_id: int) -> PurchaseOrder:
    def _op():
        order = _load_order(order_id, lock=True)
        PURCHASE_ORDER_FSM.require_status(order.status, PO_EDITABLE, "remove items from")
        item = _load_item(order, item_id)
        order.items.remove(item)
        _recalculate_total(order)
        db.session.flush()
        return order

    return run_in_transaction(_op)


# =============================================================================
# STATUS
# =============================================================================

def advance_purchase_order(
    order_id: int,
    next_status: str,
    *,
    actor_user_id: int | None = None,
) -> PurchaseOrder:
    """
    Apply a manual status change (SENT, CONFIRMED, CANCELLED).

    PARTIAL and RECEIVED are refused here; only receive_purchase_order
    reaches them, together with the stock it books.
    """
    def _op():
        order = _load_order(order_id, lock=True)
        target = PURCHASE_ORDER_FSM.validate_status(next_status)
        PURCHASE_ORDER_FSM.check_transition(order.status, target)

        if target == PO_SENT and not order.items:
            raise ValidationError(
                "Cannot send a purchase order without items",
                {"order_id": order.id},
            )

        previous = order.status
        order.status = target
        if target == PO_CANCELLED:
            order.cancelled_at = utcnow()
            order.cancelled_by_user_id = actor_user_id
        db.session.flush()
        _audit(
            order,
            f"purchase_order.{target.lower()}",
            actor_user_id,
            f"{order.order_number}: {previous} -> {target}",
        )
        return order

    return run_in_transaction(_op)


def cancel_purchase_order(order_id: int, *, actor_user_id: int | None = None) -> PurchaseOrder:
    return advance_purchase_order(order_id, PO_CANCELLED, actor_user_id=actor_user_id)


def delete_purchase_order(order_id: int) -> None:
    """Delete a DRAFT order; its lines are removed first."""
    def _op():
        order = _load_order(order_id, lock=True)
        PURCHASE_ORDER_FSM.require_status(order.status, PO_DELETABLE, "delete")
        for item in list(order.items):
            db.session.delete(item)
        db.session.flush()
        db.session.delete(order)
        db.session.flush()

    run_in_transaction(_op)


# =============================================================================
# RECEIVING
# =============================================================================

def _normalize_quantities(order: PurchaseOrder, quantities: dict | None) -> dict[int, int]:
    """Map item_id -> quantity to book now, bounded by each line's outstanding amount."""
    if quantities is None:
        return {item.id: item.outstanding_qty for item in order.items if item.outstanding_qty > 0}

    if not isinstance(quantities, dict):
        raise ValidationError("quantities must be an object of item_id -> quantity")

    plan: dict[int, int] = {}
    for raw_item_id, raw_qty in quantities.items():
        item_id = coerce_int(raw_item_id, "item_id")
        item = _load_item(order, item_id)
        qty = coerce_int(raw_qty, f"quantities[{item_id}]")
        if qty < 0:
            raise ValidationError(
                "Receive quantity cannot be negative",
                {"item_id": item_id, "quantity": qty},
            )
        if qty == 0:
            continue
        if qty > item.outstanding_qty:
            raise ValidationError(
                f"Cannot receive {qty} of item {item_id}; only {item.outstanding_qty} outstanding",
                {"item_id": item_id, "requested": qty, "outstanding": item.outstanding_qty},
            )
        plan[item_id] = qty
    return plan


def receive_purchase_order(
    order_id: int,
    *,
    warehouse_id: int,
    quantities: dict | None = None,
    actor_user_id: int | None = None,
) -> PurchaseOrder:
    """
    Receive outstanding quantities into the warehouse's default location.

    quantities: optional {item_id: qty} for a partial receipt; when omitted,
    every line's full outstanding quantity is received.

    Status becomes RECEIVED (received_date stamped) once every line is fully
    received, PARTIAL otherwise.

    Raises:
        InvalidTransition: order not CONFIRMED/PARTIAL
        NotFound: warehouse missing or without an active location
        ValidationError: nothing to receive, or more than outstanding requested
    """
    def _op():
        order = _load_order(order_id, lock=True)
        PURCHASE_ORDER_FSM.require_status(order.status, PO_RECEIVABLE, "receive")

        location = default_location(warehouse_id)
        plan = _normalize_quantities(order, quantities)
        if not plan:
            raise ValidationError(
                "Nothing to receive; all lines are already fully received",
                {"order_id": order.id},
            )

        for item in order.items:
            qty = plan.get(item.id)
            if not qty:
                continue
            apply_receipt(
                product_id=item.product_id,
                location_id=location.id,
                quantity=qty,
                reference=order.order_number,
                notes=f"Received against {order.order_number}",
                actor_user_id=actor_user_id,
            )
            item.received_qty += qty

        complete = all(item.outstanding_qty == 0 for item in order.items)
        target = PO_RECEIVED if complete else PO_PARTIAL
        PURCHASE_ORDER_FSM.check_transition(order.status, target, driven=True)

        order.status = target
        order.received_location_id = location.id
        if complete:
            order.received_date = utcnow()
        db.session.flush()

        received_units = sum(plan.values())
        _audit(
            order,
            "purchase_order.received" if complete else "purchase_order.partially_received",
            actor_user_id,
            f"{order.order_number}: received {received_units} unit(s) into {location.code}",
        )
        current_app.logger.info(
            "Purchase order %s received %d unit(s) into location %s (status %s)",
            order.order_number, received_units, location.code, order.status,
        )
        return order

    return run_in_transaction(_op)
