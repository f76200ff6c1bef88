from __future__ import annotations

from ..extensions import db
from tradesphere.time_utils import to_utc_z, to_iso_date


class PurchaseOrder(db.Model):
    """
    Purchase order header.

    LIFECYCLE (see services/state_machines.py):
        DRAFT -> SENT -> CONFIRMED -> (PARTIAL ->) RECEIVED
        DRAFT/SENT/CONFIRMED/PARTIAL -> CANCELLED

    total_cents is recomputed from the lines after every line mutation.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_purchase_orders_order_number"),
        db.Index("ix_purchase_orders_supplier_status", "supplier_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    expected_date = db.Column(db.Date, nullable=True)
    received_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Last warehouse location the order was received into
    received_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "supplier_id": self.supplier_id,
            "status": self.status,
            "total_cents": self.total_cents,
            "expected_date": to_iso_date(self.expected_date),
            "received_date": to_utc_z(self.received_date),
            "received_location_id": self.received_location_id,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseOrderItem(db.Model):
    """
    One product line on a purchase order.

    received_qty is the receipt watermark: monotonically non-decreasing and
    never above quantity. Receiving only ever posts (quantity - received_qty).
    """
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "product_id", name="uq_po_items_order_product"),
        db.CheckConstraint("quantity > 0", name="ck_po_items_quantity_pos"),
        db.CheckConstraint("received_qty >= 0 AND received_qty <= quantity", name="ck_po_items_received_bounds"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    received_qty = db.Column(db.Integer, nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    purchase_order = db.relationship(
        "PurchaseOrder",
        backref=db.backref("items", lazy=True, cascade="all, delete-orphan", order_by="PurchaseOrderItem.id"),
    )
    product = db.relationship("Product")

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_cost_cents

    @property
    def outstanding_qty(self) -> int:
        return self.quantity - self.received_qty

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "received_qty": self.received_qty,
            "outstanding_qty": self.outstanding_qty,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
            "created_at": to_utc_z(self.created_at),
        }
