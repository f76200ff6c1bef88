# Overview: Service-layer operations for batch (lot) tracking, quality status and serial numbers.

"""
Batch & Serial Number Service

BATCHES:
- A batch is a lot of one product with manufacture/expiry dates, an optional
  location and supplier, and a quality status (PENDING on creation).
- current_qty is a sub-ledger: it changes only through adjust_batch_quantity
  (or the initial quantity on creation), always together with a
  BatchMovement row, and never goes below zero. Batch quantities do not post
  to the stock ledger.
- Deleting a batch removes its movement history; a batch that serial numbers
  point at cannot be deleted.

SERIAL NUMBERS:
- Globally unique. When tied to a batch, the batch must be of the same product.
- SOLD is reached only through mark_serial_as_sold, which records the buyer.
  A SOLD unit can only come back as RETURNED.

EXPIRY:
- batch_stats() and expiring_batches() read batches against a reference date
  (UTC today by default).
"""

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import InsufficientStock, InvalidTransition, NotFound, ValidationError
from ..extensions import db
from ..models import (
    Batch,
    BatchMovement,
    SerialNumber,
    QUALITY_STATUSES,
    BATCH_MOVEMENT_TYPES,
    SERIAL_STATUSES,
)
from ..models.batches import (
    BATCH_MOVEMENT_IN,
    BATCH_MOVEMENT_OUT,
    QUALITY_PENDING,
    QUALITY_QUARANTINE,
    SERIAL_IN_STOCK,
    SERIAL_RETURNED,
    SERIAL_SOLD,
)
from ..validation import (
    coerce_int,
    optional_date,
    optional_text,
    require_choice,
    require_non_negative_int,
    require_positive_int,
    require_text,
)
from tradesphere.time_utils import utcnow
from .audit_service import append_audit_event
from .catalog_service import get_customer, get_product, get_supplier
from .concurrency import lock_for_update, run_in_transaction
from .location_service import get_location
from .sales_order_service import get_sales_order


DEFAULT_EXPIRY_WINDOW_DAYS = 30

# Days-until-expiry thresholds, checked in order
URGENCY_LEVELS = (
    (7, "CRITICAL"),
    (14, "HIGH"),
    (30, "MEDIUM"),
)
URGENCY_NORMAL = "NORMAL"


def _today() -> date:
    return utcnow().date()


def _load_batch(batch_id: int, *, lock: bool = False) -> Batch:
    query = db.session.query(Batch).filter_by(id=batch_id)
    if lock:
        query = lock_for_update(query)
    batch = query.first()
    if batch is None:
        raise NotFound("batch", batch_id)
    return batch


def _append_batch_movement(
    batch: Batch,
    *,
    movement_type: str,
    direction: int,
    quantity: int,
    notes: str | None,
    actor_user_id: int | None,
) -> BatchMovement:
    movement = BatchMovement(
        batch_id=batch.id,
        type=movement_type,
        direction=direction,
        quantity=quantity,
        notes=notes,
        actor_user_id=actor_user_id,
        occurred_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


# =============================================================================
# BATCHES
# =============================================================================

def create_batch(
    *,
    product_id: int,
    batch_number: str,
    initial_qty=0,
    manufacture_date=None,
    expiry_date=None,
    location_id: int | None = None,
    supplier_id: int | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> Batch:
    """
    Register a batch in PENDING quality status.

    A non-zero initial quantity is recorded as the batch's first IN movement.

    Raises:
        ValidationError: bad quantity or dates, duplicate batch number for the product
        NotFound: product, location or supplier missing
    """
    batch_number = require_text(batch_number, "batch_number", 64).upper()
    initial_qty = require_non_negative_int(initial_qty, "initial_qty")
    manufacture_date = optional_date(manufacture_date, "manufacture_date")
    expiry_date = optional_date(expiry_date, "expiry_date")
    notes = optional_text(notes, "notes")
    if manufacture_date and expiry_date and expiry_date < manufacture_date:
        raise ValidationError(
            "expiry_date cannot be before manufacture_date",
            {"manufacture_date": manufacture_date.isoformat(), "expiry_date": expiry_date.isoformat()},
        )

    def _op():
        product = get_product(product_id)
        if location_id is not None:
            get_location(location_id)
        if supplier_id is not None:
            get_supplier(supplier_id)

        duplicate = (
            db.session.query(Batch)
            .filter_by(product_id=product.id, batch_number=batch_number)
            .first()
        )
        if duplicate is not None:
            raise ValidationError(
                f"Batch '{batch_number}' already exists for {product.sku}",
                {"product_id": product.id, "batch_number": batch_number},
            )

        batch = Batch(
            batch_number=batch_number,
            product_id=product.id,
            initial_qty=initial_qty,
            current_qty=initial_qty,
            manufacture_date=manufacture_date,
            expiry_date=expiry_date,
            location_id=location_id,
            supplier_id=supplier_id,
            quality_status=QUALITY_PENDING,
            notes=notes,
        )
        db.session.add(batch)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ValidationError(
                f"Batch '{batch_number}' already exists for {product.sku}",
                {"product_id": product.id, "batch_number": batch_number},
            ) from exc

        if initial_qty:
            _append_batch_movement(
                batch,
                movement_type=BATCH_MOVEMENT_IN,
                direction=1,
                quantity=initial_qty,
                notes="Initial quantity",
                actor_user_id=actor_user_id,
            )
        append_audit_event(
            event_type="batch.created",
            entity_type="batch",
            entity_id=batch.id,
            actor_user_id=actor_user_id,
            note=f"Created batch {batch.batch_number} for {product.sku} qty={initial_qty}",
        )
        return batch

    return run_in_transaction(_op)


def get_batch(batch_id: int) -> Batch:
    return _load_batch(batch_id)


def list_batches(
    *,
    product_id: int | None = None,
    location_id: int | None = None,
    quality_status: str | None = None,
) -> list[Batch]:
    query = db.session.query(Batch)
    if product_id is not None:
        query = query.filter(Batch.product_id == product_id)
    if location_id is not None:
        query = query.filter(Batch.location_id == location_id)
    if quality_status:
        query = query.filter(Batch.quality_status == require_choice(quality_status, "quality_status", QUALITY_STATUSES))
    return query.order_by(Batch.created_at.desc(), Batch.id.desc()).all()


def list_batch_movements(batch_id: int) -> list[BatchMovement]:
    _load_batch(batch_id)
    return (
        db.session.query(BatchMovement)
        .filter_by(batch_id=batch_id)
        .order_by(BatchMovement.id.asc())
        .all()
    )


def update_batch_quality_status(
    batch_id: int,
    status: str,
    notes: str | None = None,
    *,
    actor_user_id: int | None = None,
) -> Batch:
    """Set the quality status; notes replace the previous quality notes when given."""
    status = require_choice(status, "quality_status", QUALITY_STATUSES)
    notes = optional_text(notes, "quality_notes")

    def _op():
        batch = _load_batch(batch_id, lock=True)
        previous = batch.quality_status
        batch.quality_status = status
        if notes is not None:
            batch.quality_notes = notes
        db.session.flush()
        append_audit_event(
            event_type="batch.quality",
            entity_type="batch",
            entity_id=batch.id,
            actor_user_id=actor_user_id,
            note=f"{batch.batch_number}: quality {previous} -> {status}",
        )
        return batch

    return run_in_transaction(_op)


def adjust_batch_quantity(
    batch_id: int,
    adjustment,
    movement_type: str | None = None,
    notes: str | None = None,
    *,
    actor_user_id: int | None = None,
) -> BatchMovement:
    """
    Change a batch's quantity by a signed amount and record the movement.

    movement_type defaults to IN for additions and OUT for removals. IN must
    add, OUT must remove, ADJUSTMENT may do either.

    Raises:
        ValidationError: zero adjustment, type contradicting the sign
        InsufficientStock: the batch would go below zero
    """
    adjustment = coerce_int(adjustment, "adjustment")
    if adjustment == 0:
        raise ValidationError("adjustment cannot be zero", {"field": "adjustment"})
    direction = 1 if adjustment > 0 else -1
    if movement_type is None:
        movement_type = BATCH_MOVEMENT_IN if direction > 0 else BATCH_MOVEMENT_OUT
    movement_type = require_choice(movement_type, "type", BATCH_MOVEMENT_TYPES)
    if (movement_type == BATCH_MOVEMENT_IN and direction < 0) or (
        movement_type == BATCH_MOVEMENT_OUT and direction > 0
    ):
        raise ValidationError(
            f"{movement_type} movement cannot have adjustment {adjustment}",
            {"type": movement_type, "adjustment": adjustment},
        )
    notes = optional_text(notes, "notes", 255)

    def _op():
        batch = _load_batch(batch_id, lock=True)
        new_qty = batch.current_qty + adjustment
        if new_qty < 0:
            raise InsufficientStock(
                product_id=batch.product_id,
                location_id=batch.location_id,
                available=batch.current_qty,
                required=-adjustment,
                product_name=f"batch {batch.batch_number}",
            )
        batch.current_qty = new_qty
        return _append_batch_movement(
            batch,
            movement_type=movement_type,
            direction=direction,
            quantity=abs(adjustment),
            notes=notes,
            actor_user_id=actor_user_id,
        )

    movement = run_in_transaction(_op)
    current_app.logger.info(
        "Batch %s adjusted by %+d (%s)", batch_id, adjustment, movement_type,
    )
    return movement


def delete_batch(batch_id: int, *, actor_user_id: int | None = None) -> None:
    """Delete a batch and its movements; refused while serial numbers reference it."""
    def _op():
        batch = _load_batch(batch_id, lock=True)
        serials = db.session.query(SerialNumber).filter_by(batch_id=batch.id).count()
        if serials:
            raise ValidationError(
                f"Batch {batch.batch_number} is referenced by {serials} serial number(s)",
                {"batch_id": batch.id, "references": {"serial_numbers": serials}},
            )
        db.session.query(BatchMovement).filter_by(batch_id=batch.id).delete()
        append_audit_event(
            event_type="batch.deleted",
            entity_type="batch",
            entity_id=batch.id,
            actor_user_id=actor_user_id,
            note=f"Deleted batch {batch.batch_number}",
        )
        db.session.delete(batch)
        db.session.flush()

    run_in_transaction(_op)


# =============================================================================
# EXPIRY
# =============================================================================

def batch_stats(as_of=None) -> dict:
    """Total batches, expiring within 30 days, already expired, and quarantined."""
    today = optional_date(as_of, "as_of") or _today()
    batches = db.session.query(Batch).all()
    expiring = 0
    expired = 0
    for batch in batches:
        if batch.expiry_date is None:
            continue
        remaining = (batch.expiry_date - today).days
        if remaining < 0:
            expired += 1
        elif remaining <= DEFAULT_EXPIRY_WINDOW_DAYS:
            expiring += 1
    return {
        "total_batches": len(batches),
        "expiring_within_30_days": expiring,
        "expired": expired,
        "quarantined": sum(1 for b in batches if b.quality_status == QUALITY_QUARANTINE),
    }


def _urgency(days_until_expiry: int) -> str:
    for limit, label in URGENCY_LEVELS:
        if days_until_expiry <= limit:
            return label
    return URGENCY_NORMAL


def expiring_batches(days=DEFAULT_EXPIRY_WINDOW_DAYS, as_of=None) -> dict:
    """
    Batches expiring between as_of and as_of + days (inclusive), soonest first,
    with urgency and the cost value at risk.
    """
    days = require_positive_int(days, "days")
    today = optional_date(as_of, "as_of") or _today()
    cutoff = date.fromordinal(today.toordinal() + days)

    batches = (
        db.session.query(Batch)
        .filter(Batch.expiry_date.isnot(None))
        .filter(Batch.expiry_date >= today, Batch.expiry_date <= cutoff)
        .order_by(Batch.expiry_date.asc(), Batch.id.asc())
        .all()
    )

    rows = []
    for batch in batches:
        remaining = (batch.expiry_date - today).days
        rows.append({
            "batch_id": batch.id,
            "batch_number": batch.batch_number,
            "product_id": batch.product_id,
            "product_sku": batch.product.sku,
            "product_name": batch.product.name,
            "quantity": batch.current_qty,
            "expiry_date": batch.expiry_date.isoformat(),
            "days_until_expiry": remaining,
            "urgency": _urgency(remaining),
            "cost_value_cents": batch.current_qty * int(batch.product.cost_cents or 0),
        })

    summary = {
        "total_batches": len(rows),
        "critical": sum(1 for r in rows if r["urgency"] == "CRITICAL"),
        "high": sum(1 for r in rows if r["urgency"] == "HIGH"),
        "medium": sum(1 for r in rows if r["urgency"] == "MEDIUM"),
        "total_value_at_risk_cents": sum(r["cost_value_cents"] for r in rows),
    }
    return {"as_of": today.isoformat(), "days": days, "items": rows, "summary": summary}


# =============================================================================
# SERIAL NUMBERS
# =============================================================================

def _load_serial(serial_id: int, *, lock: bool = False) -> SerialNumber:
    query = db.session.query(SerialNumber).filter_by(id=serial_id)
    if lock:
        query = lock_for_update(query)
    serial = query.first()
    if serial is None:
        raise NotFound("serial number", serial_id)
    return serial


def create_serial_number(
    *,
    product_id: int,
    serial_number: str,
    batch_id: int | None = None,
    location_id: int | None = None,
    warranty_expiry=None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> SerialNumber:
    serial_number = require_text(serial_number, "serial_number", 128)
    warranty_expiry = optional_date(warranty_expiry, "warranty_expiry")
    notes = optional_text(notes, "notes")

    def _op():
        product = get_product(product_id)
        if batch_id is not None:
            batch = _load_batch(batch_id)
            if batch.product_id != product.id:
                raise ValidationError(
                    f"Batch {batch.batch_number} is not a batch of {product.sku}",
                    {"batch_id": batch.id, "product_id": product.id},
                )
        if location_id is not None:
            get_location(location_id)

        if db.session.query(SerialNumber).filter_by(serial_number=serial_number).first():
            raise ValidationError(
                f"Serial number '{serial_number}' already exists",
                {"serial_number": serial_number},
            )
        serial = SerialNumber(
            serial_number=serial_number,
            product_id=product.id,
            batch_id=batch_id,
            location_id=location_id,
            status=SERIAL_IN_STOCK,
            warranty_expiry=warranty_expiry,
            notes=notes,
        )
        db.session.add(serial)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ValidationError(
                f"Serial number '{serial_number}' already exists",
                {"serial_number": serial_number},
            ) from exc
        append_audit_event(
            event_type="serial.created",
            entity_type="serial_number",
            entity_id=serial.id,
            actor_user_id=actor_user_id,
            note=f"Registered serial {serial.serial_number} for {product.sku}",
        )
        return serial

    return run_in_transaction(_op)


def get_serial_number(serial_id: int) -> SerialNumber:
    return _load_serial(serial_id)


def list_serial_numbers(
    *,
    product_id: int | None = None,
    batch_id: int | None = None,
    status: str | None = None,
) -> list[SerialNumber]:
    query = db.session.query(SerialNumber)
    if product_id is not None:
        query = query.filter(SerialNumber.product_id == product_id)
    if batch_id is not None:
        query = query.filter(SerialNumber.batch_id == batch_id)
    if status:
        query = query.filter(SerialNumber.status == require_choice(status, "status", SERIAL_STATUSES))
    return query.order_by(SerialNumber.serial_number.asc()).all()


def update_serial_number_status(serial_id: int, status: str, *, actor_user_id: int | None = None) -> SerialNumber:
    """
    Set IN_STOCK, RETURNED, DEFECTIVE or RESERVED.

    Raises:
        ValidationError: status SOLD (use mark_serial_as_sold)
        InvalidTransition: a SOLD unit may only become RETURNED
    """
    status = require_choice(status, "status", SERIAL_STATUSES)
    if status == SERIAL_SOLD:
        raise ValidationError(
            "Use the sell operation to mark a serial number SOLD",
            {"field": "status", "value": status},
        )

    def _op():
        serial = _load_serial(serial_id, lock=True)
        previous = serial.status
        if previous == SERIAL_SOLD and status != SERIAL_RETURNED:
            raise InvalidTransition("serial number", previous, status)
        serial.status = status
        db.session.flush()
        append_audit_event(
            event_type="serial.status",
            entity_type="serial_number",
            entity_id=serial.id,
            actor_user_id=actor_user_id,
            note=f"{serial.serial_number}: {previous} -> {status}",
        )
        return serial

    return run_in_transaction(_op)


def mark_serial_as_sold(
    serial_id: int,
    customer_id: int,
    sales_order_id: int | None = None,
    *,
    actor_user_id: int | None = None,
) -> SerialNumber:
    """
    Record the sale of a unit to a customer.

    Raises:
        InvalidTransition: the unit is already SOLD
        ValidationError: the sales order belongs to another customer or product
        NotFound: serial, customer or sales order missing
    """
    def _op():
        serial = _load_serial(serial_id, lock=True)
        if serial.status == SERIAL_SOLD:
            raise InvalidTransition(
                "serial number",
                serial.status,
                SERIAL_SOLD,
                f"Serial number {serial.serial_number} is already sold",
            )
        customer = get_customer(customer_id)
        if sales_order_id is not None:
            order = get_sales_order(sales_order_id)
            if order.customer_id != customer.id:
                raise ValidationError(
                    f"Sales order {order.order_number} belongs to another customer",
                    {"sales_order_id": order.id, "customer_id": customer.id},
                )
            if not any(item.product_id == serial.product_id for item in order.items):
                raise ValidationError(
                    f"Sales order {order.order_number} has no line for this product",
                    {"sales_order_id": order.id, "product_id": serial.product_id},
                )

        previous = serial.status
        serial.status = SERIAL_SOLD
        serial.sold_to_customer_id = customer.id
        serial.sales_order_id = sales_order_id
        serial.sold_date = utcnow()
        db.session.flush()
        append_audit_event(
            event_type="serial.sold",
            entity_type="serial_number",
            entity_id=serial.id,
            actor_user_id=actor_user_id,
            note=f"{serial.serial_number}: {previous} -> {SERIAL_SOLD} to customer {customer.code}",
        )
        return serial

    return run_in_transaction(_op)
