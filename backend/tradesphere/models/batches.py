from __future__ import annotations

from ..extensions import db
from tradesphere.time_utils import to_utc_z, to_iso_date


QUALITY_PENDING = "PENDING"
QUALITY_APPROVED = "APPROVED"
QUALITY_REJECTED = "REJECTED"
QUALITY_QUARANTINE = "QUARANTINE"
QUALITY_STATUSES = (QUALITY_PENDING, QUALITY_APPROVED, QUALITY_REJECTED, QUALITY_QUARANTINE)

BATCH_MOVEMENT_IN = "IN"
BATCH_MOVEMENT_OUT = "OUT"
BATCH_MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
BATCH_MOVEMENT_TYPES = (BATCH_MOVEMENT_IN, BATCH_MOVEMENT_OUT, BATCH_MOVEMENT_ADJUSTMENT)

SERIAL_IN_STOCK = "IN_STOCK"
SERIAL_SOLD = "SOLD"
SERIAL_RETURNED = "RETURNED"
SERIAL_DEFECTIVE = "DEFECTIVE"
SERIAL_RESERVED = "RESERVED"
SERIAL_STATUSES = (SERIAL_IN_STOCK, SERIAL_SOLD, SERIAL_RETURNED, SERIAL_DEFECTIVE, SERIAL_RESERVED)


class Batch(db.Model):
    """
    A lot of one product with its own quantity, dates and quality status.

    Batch quantities are a traceability sub-ledger: current_qty changes only
    together with a BatchMovement row, so current_qty always equals the
    signed sum of the batch's movements. They do not post to the stock
    ledger; StockItem / Product.current_stock remain the stock of record.
    """
    __tablename__ = "batches"
    __table_args__ = (
        db.UniqueConstraint("product_id", "batch_number", name="uq_batches_product_number"),
        db.CheckConstraint("current_qty >= 0", name="ck_batches_current_qty_nonneg"),
        db.Index("ix_batches_expiry", "expiry_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    batch_number = db.Column(db.String(64), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    initial_qty = db.Column(db.Integer, nullable=False, default=0)
    current_qty = db.Column(db.Integer, nullable=False, default=0)

    manufacture_date = db.Column(db.Date, nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)

    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    quality_status = db.Column(db.String(16), nullable=False, default=QUALITY_PENDING, index=True)
    quality_notes = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product")
    location = db.relationship("Location")
    supplier = db.relationship("Supplier")
    movements = db.relationship(
        "BatchMovement",
        backref="batch",
        lazy=True,
        order_by="BatchMovement.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Batch id={self.id} number={self.batch_number!r} product_id={self.product_id} qty={self.current_qty}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_number": self.batch_number,
            "product_id": self.product_id,
            "initial_qty": self.initial_qty,
            "current_qty": self.current_qty,
            "manufacture_date": to_iso_date(self.manufacture_date),
            "expiry_date": to_iso_date(self.expiry_date),
            "location_id": self.location_id,
            "supplier_id": self.supplier_id,
            "quality_status": self.quality_status,
            "quality_notes": self.quality_notes,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class BatchMovement(db.Model):
    """Append-only quantity change of one batch; quantity is always positive."""
    __tablename__ = "batch_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_batch_movements_quantity_pos"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("batches.id"), nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False)

    # +1 for additions, -1 for removals; ADJUSTMENT can go either way
    direction = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    notes = db.Column(db.String(255), nullable=True)
    actor_user_id = db.Column(db.Integer, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_id": self.batch_id,
            "type": self.type,
            "quantity": self.quantity,
            "signed_quantity": self.direction * self.quantity,
            "notes": self.notes,
            "actor_user_id": self.actor_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class SerialNumber(db.Model):
    """
    An individually tracked unit of a product.

    SOLD is set only by marking the unit sold, which records the customer
    (and optionally the sales order) it went to.
    """
    __tablename__ = "serial_numbers"
    __table_args__ = (
        db.UniqueConstraint("serial_number", name="uq_serial_numbers_serial_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    serial_number = db.Column(db.String(128), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("batches.id"), nullable=True, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=SERIAL_IN_STOCK, index=True)
    warranty_expiry = db.Column(db.Date, nullable=True)

    sold_to_customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    sales_order_id = db.Column(db.Integer, db.ForeignKey("sales_orders.id"), nullable=True)
    sold_date = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<SerialNumber id={self.id} serial={self.serial_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "serial_number": self.serial_number,
            "product_id": self.product_id,
            "batch_id": self.batch_id,
            "location_id": self.location_id,
            "status": self.status,
            "warranty_expiry": to_iso_date(self.warranty_expiry),
            "sold_to_customer_id": self.sold_to_customer_id,
            "sales_order_id": self.sales_order_id,
            "sold_date": to_utc_z(self.sold_date),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
