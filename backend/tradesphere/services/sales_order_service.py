# Overview: Service-layer operations for sales orders; lines, status lifecycle and shipping out of stock.

"""
Sales Order Lifecycle

STATES: DRAFT -> PENDING -> CONFIRMED -> SHIPPED -> DELIVERED
        DRAFT / PENDING / CONFIRMED / SHIPPED -> CANCELLED
        DELIVERED and CANCELLED are terminal. Cancelling a SHIPPED order
        leaves the issued stock out; it posts no reverse movement.

LINES:
- Editable while DRAFT or PENDING; one line per product (adds merge).
- unit_price_cents defaults to the product's price.
- total_cents == SUM(quantity * unit_price_cents).

SHIPPING:
- Only CONFIRMED orders ship, from the warehouse's default location.
- Every line is checked for availability BEFORE any stock moves; the first
  short line aborts the shipment with InsufficientStock.
- The issues run in the same unit of work as the availability check and
  re-check under the row lock, so a concurrent shipment cannot slip in
  between check and issue.
"""

from __future__ import annotations

from flask import current_app

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Customer, Product, SalesOrder, SalesOrderItem
from ..validation import optional_text, require_money, require_positive_int
from tradesphere.time_utils import utcnow
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_in_transaction
from .document_service import SALES_ORDER, next_document_number
from .location_service import default_location
from .state_machines import (
    SALES_ORDER_FSM,
    SO_CANCELLED,
    SO_DELETABLE,
    SO_DELIVERED,
    SO_DRAFT,
    SO_EDITABLE,
    SO_PENDING,
    SO_SHIPPABLE,
    SO_SHIPPED,
)
from .stock_ledger_service import apply_issue, check_availability


def _load_order(order_id: int, *, lock: bool = False) -> SalesOrder:
    query = db.session.query(SalesOrder).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise NotFound("sales order", order_id)
    return order


def _load_item(order: SalesOrder, item_id: int) -> SalesOrderItem:
    for item in order.items:
        if item.id == item_id:
            return item
    raise NotFound("sales order item", item_id)


def _recalculate_total(order: SalesOrder) -> None:
    order.total_cents = sum(item.quantity * item.unit_price_cents for item in order.items)


def _audit(order: SalesOrder, event_type: str, actor_user_id: int | None, note: str) -> None:
    append_audit_event(
        event_type=event_type,
        entity_type="sales_order",
        entity_id=order.id,
        actor_user_id=actor_user_id,
        note=note,
    )


def create_sales_order(
    *,
    customer_id: int,
    shipping_address: str | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> SalesOrder:
    """Create a DRAFT order; shipping address defaults to the customer's."""
    shipping_address = optional_text(shipping_address, "shipping_address")
    notes = optional_text(notes, "notes")

    def _op():
        customer = db.session.query(Customer).filter_by(id=customer_id).first()
        if customer is None:
            raise NotFound("customer", customer_id)
        if not customer.is_active:
            raise ValidationError(f"Customer {customer.code} is inactive", {"customer_id": customer_id})

        doc_type, prefix = SALES_ORDER
        order = SalesOrder(
            order_number=next_document_number(document_type=doc_type, prefix=prefix),
            customer_id=customer_id,
            status=SO_DRAFT,
            total_cents=0,
            shipping_address=shipping_address or customer.shipping_address,
            notes=notes,
            created_by_user_id=actor_user_id,
        )
        db.session.add(order)
        db.session.flush()
        _audit(order, "sales_order.created", actor_user_id, f"Created {order.order_number}")
        return order

    return run_in_transaction(_op)


def get_sales_order(order_id: int) -> SalesOrder:
    return _load_order(order_id)


def list_sales_orders(
    *,
    status: str | None = None,
    customer_id: int | None = None,
) -> list[SalesOrder]:
    query = db.session.query(SalesOrder)
    if status:
        query = query.filter(SalesOrder.status == SALES_ORDER_FSM.validate_status(status))
    if customer_id is not None:
        query = query.filter(SalesOrder.customer_id == customer_id)
    return query.order_by(SalesOrder.created_at.desc(), SalesOrder.id.desc()).all()


def add_sales_order_item(
    order_id: int,
    *,
    product_id: int,
    quantity,
    unit_price_cents=None,
) -> SalesOrder:
    quantity = require_positive_int(quantity, "quantity")
    if unit_price_cents is not None:
        unit_price_cents = require_money(unit_price_cents, "unit_price_cents")

    def _op():
        order = _load_order(order_id, lock=True)
        SALES_ORDER_FSM.require_status(order.status, SO_EDITABLE, "add items to")

        product = db.session.query(Product).filter_by(id=product_id).first()
        if product is None:
            raise NotFound("product", product_id)
        if not product.is_active:
            raise ValidationError(f"Product {product.sku} is inactive", {"product_id": product_id})

        price = unit_price_cents if unit_price_cents is not None else product.price_cents

        existing = next((i for i in order.items if i.product_id == product_id), None)
        if existing is not None:
            existing.quantity += quantity
            existing.unit_price_cents = price
        else:
            order.items.append(SalesOrderItem(
                product_id=product_id,
                quantity=quantity,
                unit_price_cents=price,
            ))
        _recalculate_total(order)
        db.session.flush()
        return order

    return run_in_transaction(_op)


def update_sales_order_item(
    order_id: int,
    item_id: int,
    *,
    quantity=None,
    unit_price_cents=None,
) -> SalesOrder:
    if quantity is None and unit_price_cents is None:
        raise ValidationError("Nothing to update; provide quantity and/or unit_price_cents")
    if quantity is not None:
        quantity = require_positive_int(quantity, "quantity")
    if unit_price_cents is not None:
        unit_price_cents = require_money(unit_price_cents, "unit_price_cents")

    def _op():
        order = _load_order(order_id, lock=True)
        SALES_ORDER_FSM.require_status(order.status, SO_EDITABLE, "edit items of")
        item = _load_item(order, item_id)
        if quantity is not None:
            item.quantity = quantity
        if unit_price_cents is not None:
            item.unit_price_cents = unit_price_cents
        _recalculate_total(order)
        db.session.flush()
        return order

    return run_in_transaction(_op)


def remove_sales_order_item(order_id: int, item_id: int) -> SalesOrder:
    def _op():
        order = _load_order(order_id, lock=True)
        SALES_ORDER_FSM.require_status(order.status, SO_EDITABLE, "remove items from")
        order.items.remove(_load_item(order, item_id))
        _recalculate_total(order)
        db.session.flush()
        return order

    return run_in_transaction(_op)


def advance_sales_order(
    order_id: int,
    next_status: str,
    *,
    actor_user_id: int | None = None,
) -> SalesOrder:
    """
    Apply a manual status change (PENDING, CONFIRMED, DELIVERED, CANCELLED).

    SHIPPED is refused here; only ship_sales_order reaches it.
    """
    def _op():
        order = _load_order(order_id, lock=True)
        target = SALES_ORDER_FSM.validate_status(next_status)
        SALES_ORDER_FSM.check_transition(order.status, target)

        if target == SO_PENDING and not order.items:
            raise ValidationError(
                "Cannot submit a sales order without items",
                {"order_id": order.id},
            )

        previous = order.status
        order.status = target
        if target == SO_DELIVERED:
            order.delivered_date = utcnow()
        elif target == SO_CANCELLED:
            order.cancelled_at = utcnow()
            order.cancelled_by_user_id = actor_user_id
        db.session.flush()
        _audit(
            order,
            f"sales_order.{target.lower()}",
            actor_user_id,
            f"{order.order_number}: {previous} -> {target}",
        )
        return order

    return run_in_transaction(_op)


def cancel_sales_order(order_id: int, *, actor_user_id: int | None = None) -> SalesOrder:
    return advance_sales_order(order_id, SO_CANCELLED, actor_user_id=actor_user_id)


def delete_sales_order(order_id: int) -> None:
    def _op():
        order = _load_order(order_id, lock=True)
        SALES_ORDER_FSM.require_status(order.status, SO_DELETABLE, "delete")
        for item in list(order.items):
            db.session.delete(item)
        db.session.flush()
        db.session.delete(order)
        db.session.flush()

    run_in_transaction(_op)


def ship_sales_order(
    order_id: int,
    *,
    warehouse_id: int,
    actor_user_id: int | None = None,
) -> SalesOrder:
    """
    Ship every line from the warehouse's default location.

    Raises:
        InvalidTransition: order not CONFIRMED
        NotFound: warehouse missing or without an active location
        InsufficientStock: first line the location cannot cover; no stock moves
    """
    def _op():
        order = _load_order(order_id, lock=True)
        SALES_ORDER_FSM.require_status(order.status, SO_SHIPPABLE, "ship")
        if not order.items:
            raise ValidationError("Cannot ship a sales order without items", {"order_id": order.id})

        location = default_location(warehouse_id)

        for item in order.items:
            check_availability(
                item.product_id,
                location.id,
                item.quantity,
                product_name=item.product.name,
            )

        for item in order.items:
            apply_issue(
                product_id=item.product_id,
                location_id=location.id,
                quantity=item.quantity,
                reference=order.order_number,
                notes=f"Shipped against {order.order_number}",
                actor_user_id=actor_user_id,
            )

        SALES_ORDER_FSM.check_transition(order.status, SO_SHIPPED, driven=True)
        order.status = SO_SHIPPED
        order.shipped_date = utcnow()
        order.shipped_from_location_id = location.id
        db.session.flush()

        units = sum(item.quantity for item in order.items)
        _audit(
            order,
            "sales_order.shipped",
            actor_user_id,
            f"{order.order_number}: shipped {units} unit(s) from {location.code}",
        )
        current_app.logger.info(
            "Sales order %s shipped %d unit(s) from location %s",
            order.order_number, units, location.code,
        )
        return order

    return run_in_transaction(_op)
