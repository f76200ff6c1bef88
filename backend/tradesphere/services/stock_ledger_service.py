# Overview: Service-layer operations for the stock ledger; the only writer of stock quantities.

"""
Stock Ledger Invariants & Semantics (authoritative)

Stock model:
- StockMovement is the append-only system of record (IN / OUT / TRANSFER).
- StockItem.quantity (per product, per location) and Product.current_stock
  (per product) are caches derived from it.
- Conservation: Product.current_stock == SUM(StockItem.quantity)
                                      == SUM(IN) - SUM(OUT)   (TRANSFER nets 0)

Business invariants:
- Quantities are positive integers; StockItem.quantity never goes negative.
- OUT and TRANSFER never take more than the source location holds.
- TRANSFER requires two different locations and does not touch current_stock.

Atomicity:
- Every ledger mutation writes the movement, the stock item and the product
  counter together. There is no function that writes one without the others.
- apply_* functions run inside the caller's unit of work (no commit) so a
  multi-line receipt or shipment commits or rolls back as one.
- receive_stock / issue_stock / transfer_stock are the standalone entry points
  and wrap a single apply_* call in run_in_transaction.

Concurrency:
- The product row and the (product, location) stock item are read with
  SELECT ... FOR UPDATE and both carry optimistic version counters, so two
  writers racing on the same pair cannot both apply a decision made from
  the same stale quantity; the loser is rolled back and re-run.
"""

from __future__ import annotations

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from ..errors import ConsistencyFault, InsufficientStock, NotFound, ValidationError
from ..extensions import db
from ..models import (
    Location,
    Product,
    StockItem,
    StockMovement,
    MOVEMENT_IN,
    MOVEMENT_OUT,
    MOVEMENT_TRANSFER,
    MOVEMENT_TYPES,
)
from ..validation import optional_text, require_positive_int
from tradesphere.time_utils import utcnow
from .concurrency import RetryableConflict, lock_for_update, run_in_transaction


# =============================================================================
# LOOKUPS
# =============================================================================

def _get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFound("product", product_id)
    return product


def _get_location(location_id: int, *, require_active: bool = False) -> Location:
    location = db.session.query(Location).filter_by(id=location_id).first()
    if location is None:
        raise NotFound("location", location_id)
    if require_active and not location.is_active:
        raise ValidationError(
            f"Location {location.code} is inactive",
            {"location_id": location_id},
        )
    return location


def _lock_stock_item(product_id: int, location_id: int) -> StockItem | None:
    query = db.session.query(StockItem).filter_by(product_id=product_id, location_id=location_id)
    return lock_for_update(query).first()


def _get_or_create_stock_item(product_id: int, location_id: int) -> StockItem:
    item = _lock_stock_item(product_id, location_id)
    if item is not None:
        return item

    item = StockItem(product_id=product_id, location_id=location_id, quantity=0)
    db.session.add(item)
    try:
        db.session.flush()
    except IntegrityError as exc:
        # Another transaction created the same (product, location) row first
        raise RetryableConflict("stock item created concurrently") from exc
    return item


def _append_movement(
    *,
    movement_type: str,
    product_id: int,
    quantity: int,
    from_location_id: int | None,
    to_location_id: int | None,
    reference: str | None,
    notes: str | None,
    actor_user_id: int | None,
) -> StockMovement:
    movement = StockMovement(
        product_id=product_id,
        type=movement_type,
        quantity=quantity,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        reference=reference,
        notes=notes,
        actor_user_id=actor_user_id,
        occurred_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


# =============================================================================
# READS
# =============================================================================

def get_quantity_at(product_id: int, location_id: int) -> int:
    """Quantity of a product at one location (0 when never stocked there)."""
    quantity = (
        db.session.query(StockItem.quantity)
        .filter_by(product_id=product_id, location_id=location_id)
        .scalar()
    )
    return int(quantity or 0)


def check_availability(
    product_id: int,
    location_id: int,
    quantity: int,
    *,
    product_name: str | None = None,
) -> int:
    """
    Raise InsufficientStock unless the location holds at least `quantity`.

    Returns the available quantity. Read-only; callers that go on to issue
    must still go through apply_issue, which re-checks under the row lock.
    """
    available = get_quantity_at(product_id, location_id)
    if available < quantity:
        raise InsufficientStock(
            product_id=product_id,
            location_id=location_id,
            available=available,
            required=quantity,
            product_name=product_name,
        )
    return available


def get_stock_levels(
    *,
    product_id: int | None = None,
    location_id: int | None = None,
    warehouse_id: int | None = None,
    include_zero: bool = False,
) -> list[StockItem]:
    query = db.session.query(StockItem)
    if product_id is not None:
        query = query.filter(StockItem.product_id == product_id)
    if location_id is not None:
        query = query.filter(StockItem.location_id == location_id)
    if warehouse_id is not None:
        query = query.join(Location, StockItem.location_id == Location.id).filter(
            Location.warehouse_id == warehouse_id
        )
    if not include_zero:
        query = query.filter(StockItem.quantity > 0)
    return query.order_by(StockItem.product_id.asc(), StockItem.location_id.asc()).all()


def list_movements(
    *,
    product_id: int | None = None,
    location_id: int | None = None,
    movement_type: str | None = None,
    reference: str | None = None,
    limit: int = 200,
    offset: int = 0,
) -> tuple[list[StockMovement], int]:
    """
    List movements, newest first.

    location_id matches either side of the movement.
    Returns (movements, total_count).
    """
    query = db.session.query(StockMovement)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if location_id is not None:
        query = query.filter(
            (StockMovement.from_location_id == location_id)
            | (StockMovement.to_location_id == location_id)
        )
    if movement_type:
        if movement_type not in MOVEMENT_TYPES:
            raise ValidationError(
                f"Invalid movement type. Must be one of: {', '.join(MOVEMENT_TYPES)}",
                {"type": movement_type},
            )
        query = query.filter(StockMovement.type == movement_type)
    if reference:
        query = query.filter(StockMovement.reference == reference)

    total = query.count()
    movements = (
        query.order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return movements, total


# =============================================================================
# IN-TRANSACTION PRIMITIVES (no commit)
# =============================================================================

def apply_receipt(
    *,
    product_id: int,
    location_id: int,
    quantity,
    reference: str | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> StockMovement:
    """Add stock at a location: stock item += q, current_stock += q, IN movement."""
    product_id = require_positive_int(product_id, "product_id")
    location_id = require_positive_int(location_id, "location_id")
    quantity = require_positive_int(quantity, "quantity")
    reference = optional_text(reference, "reference", 128)
    notes = optional_text(notes, "notes", 255)

    product = _get_product(product_id, lock=True)
    _get_location(location_id, require_active=True)

    item = _get_or_create_stock_item(product_id, location_id)
    item.quantity += quantity
    product.current_stock += quantity

    return _append_movement(
        movement_type=MOVEMENT_IN,
        product_id=product_id,
        quantity=quantity,
        from_location_id=None,
        to_location_id=location_id,
        reference=reference,
        notes=notes,
        actor_user_id=actor_user_id,
    )


def apply_issue(
    *,
    product_id: int,
    location_id: int,
    quantity,
    reference: str | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> StockMovement:
    """Remove stock from a location: stock item -= q, current_stock -= q, OUT movement."""
    product_id = require_positive_int(product_id, "product_id")
    location_id = require_positive_int(location_id, "location_id")
    quantity = require_positive_int(quantity, "quantity")
    reference = optional_text(reference, "reference", 128)
    notes = optional_text(notes, "notes", 255)

    product = _get_product(product_id, lock=True)
    _get_location(location_id)

    item = _lock_stock_item(product_id, location_id)
    available = item.quantity if item is not None else 0
    if available < quantity:
        raise InsufficientStock(
            product_id=product_id,
            location_id=location_id,
            available=available,
            required=quantity,
            product_name=product.name,
        )

    item.quantity -= quantity
    product.current_stock -= quantity

    return _append_movement(
        movement_type=MOVEMENT_OUT,
        product_id=product_id,
        quantity=quantity,
        from_location_id=location_id,
        to_location_id=None,
        reference=reference,
        notes=notes,
        actor_user_id=actor_user_id,
    )


def apply_transfer(
    *,
    product_id: int,
    from_location_id: int,
    to_location_id: int,
    quantity,
    reference: str | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> StockMovement:
    """Move stock between locations as ONE TRANSFER movement; current_stock unchanged."""
    product_id = require_positive_int(product_id, "product_id")
    from_location_id = require_positive_int(from_location_id, "from_location_id")
    to_location_id = require_positive_int(to_location_id, "to_location_id")
    quantity = require_positive_int(quantity, "quantity")
    reference = optional_text(reference, "reference", 128)
    notes = optional_text(notes, "notes", 255)

    if from_location_id == to_location_id:
        raise ValidationError(
            "Cannot transfer to the same location",
            {"from_location_id": from_location_id, "to_location_id": to_location_id},
        )

    # Lock the product row even though its counter does not change: it is the
    # common serialization point for every writer of this product's stock.
    product = _get_product(product_id, lock=True)
    _get_location(from_location_id)
    _get_location(to_location_id, require_active=True)

    source = _lock_stock_item(product_id, from_location_id)
    available = source.quantity if source is not None else 0
    if available < quantity:
        raise InsufficientStock(
            product_id=product_id,
            location_id=from_location_id,
            available=available,
            required=quantity,
            product_name=product.name,
        )

    destination = _get_or_create_stock_item(product_id, to_location_id)
    source.quantity -= quantity
    destination.quantity += quantity

    return _append_movement(
        movement_type=MOVEMENT_TRANSFER,
        product_id=product_id,
        quantity=quantity,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        reference=reference,
        notes=notes,
        actor_user_id=actor_user_id,
    )


# =============================================================================
# STANDALONE ENTRY POINTS (one transaction each)
# =============================================================================

def receive_stock(
    *,
    product_id: int,
    location_id: int,
    quantity,
    reference: str | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> StockMovement:
    """
    Receive stock into a location (manual stock-in).

    Raises:
        ValidationError: quantity not a positive integer, inactive location
        NotFound: product or location missing
    """
    return run_in_transaction(lambda: apply_receipt(
        product_id=product_id,
        location_id=location_id,
        quantity=quantity,
        reference=reference,
        notes=notes,
        actor_user_id=actor_user_id,
    ))


def issue_stock(
    *,
    product_id: int,
    location_id: int,
    quantity,
    reference: str | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> StockMovement:
    """
    Issue stock out of a location (manual stock-out).

    Raises:
        InsufficientStock: location holds less than requested; nothing written
    """
    return run_in_transaction(lambda: apply_issue(
        product_id=product_id,
        location_id=location_id,
        quantity=quantity,
        reference=reference,
        notes=notes,
        actor_user_id=actor_user_id,
    ))


def transfer_stock(
    *,
    product_id: int,
    from_location_id: int,
    to_location_id: int,
    quantity,
    reference: str | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> StockMovement:
    return run_in_transaction(lambda: apply_transfer(
        product_id=product_id,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        quantity=quantity,
        reference=reference,
        notes=notes,
        actor_user_id=actor_user_id,
    ))


# =============================================================================
# RECONCILIATION
# =============================================================================

def _movement_totals_by_product() -> dict[int, int]:
    signed = case(
        (StockMovement.type == MOVEMENT_IN, StockMovement.quantity),
        (StockMovement.type == MOVEMENT_OUT, -StockMovement.quantity),
        else_=0,
    )
    rows = (
        db.session.query(StockMovement.product_id, func.coalesce(func.sum(signed), 0))
        .group_by(StockMovement.product_id)
        .all()
    )
    return {product_id: int(total) for product_id, total in rows}


def _movement_totals_by_location() -> dict[tuple[int, int], int]:
    totals: dict[tuple[int, int], int] = {}

    inbound = (
        db.session.query(
            StockMovement.product_id,
            StockMovement.to_location_id,
            func.sum(StockMovement.quantity),
        )
        .filter(StockMovement.to_location_id.isnot(None))
        .group_by(StockMovement.product_id, StockMovement.to_location_id)
        .all()
    )
    for product_id, location_id, qty in inbound:
        key = (product_id, location_id)
        totals[key] = totals.get(key, 0) + int(qty or 0)

    outbound = (
        db.session.query(
            StockMovement.product_id,
            StockMovement.from_location_id,
            func.sum(StockMovement.quantity),
        )
        .filter(StockMovement.from_location_id.isnot(None))
        .group_by(StockMovement.product_id, StockMovement.from_location_id)
        .all()
    )
    for product_id, location_id, qty in outbound:
        key = (product_id, location_id)
        totals[key] = totals.get(key, 0) - int(qty or 0)

    return totals


def find_stock_drift(product_id: int | None = None) -> list[dict]:
    """
    Compare the cached counters against the movement log.

    Returns one dict per discrepancy; an empty list means the ledger is
    consistent. Checks, per product:
    - current_stock vs SUM(StockItem.quantity)
    - current_stock vs SUM(IN) - SUM(OUT)
    and per (product, location):
    - StockItem.quantity vs movement-derived quantity
    """
    drift: list[dict] = []

    item_sums = dict(
        db.session.query(StockItem.product_id, func.coalesce(func.sum(StockItem.quantity), 0))
        .group_by(StockItem.product_id)
        .all()
    )
    logged = _movement_totals_by_product()

    products_query = db.session.query(Product)
    if product_id is not None:
        products_query = products_query.filter(Product.id == product_id)

    for product in products_query.order_by(Product.id.asc()).all():
        located = int(item_sums.get(product.id, 0))
        from_log = int(logged.get(product.id, 0))
        if product.current_stock != located or product.current_stock != from_log:
            drift.append({
                "scope": "product",
                "product_id": product.id,
                "sku": product.sku,
                "current_stock": product.current_stock,
                "stock_item_total": located,
                "movement_total": from_log,
            })

    by_location = _movement_totals_by_location()
    items_query = db.session.query(StockItem)
    if product_id is not None:
        items_query = items_query.filter(StockItem.product_id == product_id)
    seen: set[tuple[int, int]] = set()
    for item in items_query.all():
        key = (item.product_id, item.location_id)
        seen.add(key)
        expected = by_location.get(key, 0)
        if item.quantity != expected:
            drift.append({
                "scope": "location",
                "product_id": item.product_id,
                "location_id": item.location_id,
                "stock_item_quantity": item.quantity,
                "movement_quantity": expected,
            })
    for key, expected in by_location.items():
        if key in seen or expected == 0:
            continue
        if product_id is not None and key[0] != product_id:
            continue
        drift.append({
            "scope": "location",
            "product_id": key[0],
            "location_id": key[1],
            "stock_item_quantity": 0,
            "movement_quantity": expected,
        })

    return drift


def assert_consistent(product_id: int | None = None) -> None:
    """Raise ConsistencyFault if any cached counter disagrees with the log."""
    drift = find_stock_drift(product_id)
    if drift:
        raise ConsistencyFault(
            f"Stock ledger drift detected in {len(drift)} record(s)",
            {"drift": drift},
        )
