# Overview: Service-layer operations for products, suppliers (with price lists) and customers.

"""
Catalog Service

PRODUCTS:
- SKU is unique and immutable after creation.
- current_stock is never writable here; it is maintained by the stock ledger.
  Opening stock is recorded as a real receipt (reference "OPENING") so the
  movement log stays the system of record from day one.
- Deletion is pre-validated: a product referenced by stock movements, order
  lines, invoice lines, batches or serial numbers is rejected with a ValidationError naming them.
  (Deactivate it instead.)

SUPPLIERS:
- Optional price list (SupplierProduct rows) used to default the unit cost of
  purchase order lines.

CUSTOMERS:
- Default shipping address for sales orders.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import (
    Batch,
    Customer,
    InvoiceItem,
    Invoice,
    Product,
    PurchaseOrder,
    PurchaseOrderItem,
    SalesOrder,
    SalesOrderItem,
    SerialNumber,
    StockMovement,
    Supplier,
    SupplierProduct,
)
from ..validation import (
    coerce_int,
    optional_text,
    require_money,
    require_non_negative_int,
    require_positive_int,
    require_text,
)
from .audit_service import append_audit_event
from .concurrency import run_in_transaction
from .stock_ledger_service import apply_receipt


OPENING_STOCK_REFERENCE = "OPENING"

PRODUCT_MUTABLE_FIELDS = {
    "name", "category", "description", "price_cents", "cost_cents",
    "reorder_point", "max_stock", "is_active",
}
SUPPLIER_MUTABLE_FIELDS = {
    "name", "email", "phone", "address", "lead_time_days",
    "payment_terms", "notes", "is_active",
}
CUSTOMER_MUTABLE_FIELDS = {
    "name", "email", "phone", "billing_address", "shipping_address",
    "notes", "is_active",
}


def _require_bool(value, field: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean", {"field": field})
    return value


def _optional_non_negative_int(value, field: str) -> int | None:
    if value is None:
        return None
    return require_non_negative_int(value, field)


# =============================================================================
# PRODUCTS
# =============================================================================

def _clean_product_patch(patch: dict) -> dict:
    cleaned: dict = {}
    for key, value in patch.items():
        if key == "current_stock":
            raise ValidationError(
                "current_stock is maintained by the stock ledger; record a stock movement instead",
                {"field": key},
            )
        if key == "sku":
            raise ValidationError("SKU cannot be changed after creation", {"field": key})
        if key not in PRODUCT_MUTABLE_FIELDS:
            continue

        if key == "name":
            cleaned[key] = require_text(value, key)
        elif key == "category":
            cleaned[key] = optional_text(value, key, 128)
        elif key == "description":
            cleaned[key] = optional_text(value, key)
        elif key in ("price_cents", "cost_cents"):
            cleaned[key] = require_money(value, key)
        elif key == "reorder_point":
            cleaned[key] = require_non_negative_int(value, key)
        elif key == "max_stock":
            cleaned[key] = _optional_non_negative_int(value, key)
        elif key == "is_active":
            cleaned[key] = _require_bool(value, key)
    return cleaned


def create_product(
    *,
    patch: dict,
    opening_stock=None,
    opening_location_id: int | None = None,
    actor_user_id: int | None = None,
) -> Product:
    """
    Create a product with current_stock = 0, optionally followed by an
    opening-stock receipt into `opening_location_id`, in one transaction.

    Raises:
        ValidationError: missing/invalid fields, duplicate SKU, opening stock
            without a location
    """
    patch = dict(patch or {})
    sku = require_text(patch.pop("sku", None), "sku", 64).upper()
    if "name" not in patch:
        raise ValidationError("name is required", {"field": "name"})
    fields = _clean_product_patch(patch)

    quantity = None
    if opening_stock is not None and coerce_int(opening_stock, "opening_stock") != 0:
        quantity = require_positive_int(opening_stock, "opening_stock")
        if opening_location_id is None:
            raise ValidationError(
                "opening_location_id is required when opening_stock is given",
                {"field": "opening_location_id"},
            )

    def _op():
        if db.session.query(Product).filter_by(sku=sku).first():
            raise ValidationError(f"SKU '{sku}' already exists", {"sku": sku})

        product = Product(sku=sku, current_stock=0, **fields)
        db.session.add(product)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ValidationError(f"SKU '{sku}' already exists", {"sku": sku}) from exc

        append_audit_event(
            event_type="product.created",
            entity_type="product",
            entity_id=product.id,
            actor_user_id=actor_user_id,
            note=f"Created product sku={product.sku} name={product.name}",
        )

        if quantity:
            apply_receipt(
                product_id=product.id,
                location_id=opening_location_id,
                quantity=quantity,
                reference=OPENING_STOCK_REFERENCE,
                notes="Opening stock",
                actor_user_id=actor_user_id,
            )
        return product

    return run_in_transaction(_op)


def update_product(product_id: int, patch: dict, *, actor_user_id: int | None = None) -> Product:
    fields = _clean_product_patch(patch or {})

    def _op():
        product = get_product(product_id)
        for key, value in fields.items():
            setattr(product, key, value)
        db.session.flush()
        append_audit_event(
            event_type="product.updated",
            entity_type="product",
            entity_id=product.id,
            actor_user_id=actor_user_id,
            note=f"Updated fields: {', '.join(sorted(fields)) or 'none'}",
        )
        return product

    return run_in_transaction(_op)


def product_references(product_id: int) -> dict:
    """Counts of aggregates that reference the product."""
    return {
        "stock_movements": db.session.query(StockMovement).filter_by(product_id=product_id).count(),
        "purchase_orders": (
            db.session.query(PurchaseOrderItem.purchase_order_id)
            .filter_by(product_id=product_id).distinct().count()
        ),
        "sales_orders": (
            db.session.query(SalesOrderItem.sales_order_id)
            .filter_by(product_id=product_id).distinct().count()
        ),
        "invoices": (
            db.session.query(InvoiceItem.invoice_id)
            .filter_by(product_id=product_id).distinct().count()
        ),
        "batches": db.session.query(Batch).filter_by(product_id=product_id).count(),
        "serial_numbers": db.session.query(SerialNumber).filter_by(product_id=product_id).count(),
    }


def delete_product(product_id: int, *, actor_user_id: int | None = None) -> None:
    """
    Delete a product that nothing references.

    Supplier price-list rows for the product are removed with it.
    """
    def _op():
        product = get_product(product_id)
        references = {k: v for k, v in product_references(product_id).items() if v}
        if references:
            names = ", ".join(f"{count} {kind.replace('_', ' ')}" for kind, count in references.items())
            raise ValidationError(
                f"Product {product.sku} is referenced by {names}; deactivate it instead",
                {"product_id": product_id, "references": references},
            )

        db.session.query(SupplierProduct).filter_by(product_id=product_id).delete()
        append_audit_event(
            event_type="product.deleted",
            entity_type="product",
            entity_id=product.id,
            actor_user_id=actor_user_id,
            note=f"Deleted product sku={product.sku}",
        )
        db.session.delete(product)
        db.session.flush()

    run_in_transaction(_op)


def get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFound("product", product_id)
    return product


def get_product_by_sku(sku: str) -> Product:
    sku = require_text(sku, "sku", 64).upper()
    product = db.session.query(Product).filter_by(sku=sku).first()
    if product is None:
        raise NotFound("product", sku)
    return product


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    include_inactive: bool = False,
) -> list[Product]:
    query = db.session.query(Product)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(Product.name.ilike(pattern) | Product.sku.ilike(pattern))
    if category:
        query = query.filter(Product.category == category)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def list_low_stock() -> list[Product]:
    """Active products at or below their reorder point."""
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.current_stock <= Product.reorder_point)
        .order_by(Product.current_stock.asc(), Product.sku.asc())
        .all()
    )


# =============================================================================
# SUPPLIERS
# =============================================================================

def _clean_supplier_patch(patch: dict) -> dict:
    cleaned: dict = {}
    for key, value in patch.items():
        if key == "code":
            raise ValidationError("Supplier code cannot be changed after creation", {"field": key})
        if key not in SUPPLIER_MUTABLE_FIELDS:
            continue
        if key == "name":
            cleaned[key] = require_text(value, key)
        elif key == "lead_time_days":
            cleaned[key] = _optional_non_negative_int(value, key)
        elif key == "is_active":
            cleaned[key] = _require_bool(value, key)
        elif key in ("phone", "payment_terms"):
            cleaned[key] = optional_text(value, key, 128 if key == "payment_terms" else 64)
        else:
            cleaned[key] = optional_text(value, key)
    return cleaned


def create_supplier(*, patch: dict, actor_user_id: int | None = None) -> Supplier:
    patch = dict(patch or {})
    code = require_text(patch.pop("code", None), "code", 64).upper()
    if "name" not in patch:
        raise ValidationError("name is required", {"field": "name"})
    fields = _clean_supplier_patch(patch)

    def _op():
        if db.session.query(Supplier).filter_by(code=code).first():
            raise ValidationError(f"Supplier code '{code}' already exists", {"code": code})
        supplier = Supplier(code=code, **fields)
        db.session.add(supplier)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ValidationError(f"Supplier code '{code}' already exists", {"code": code}) from exc
        append_audit_event(
            event_type="supplier.created",
            entity_type="supplier",
            entity_id=supplier.id,
            actor_user_id=actor_user_id,
            note=f"Created supplier code={supplier.code}",
        )
        return supplier

    return run_in_transaction(_op)


def update_supplier(supplier_id: int, patch: dict) -> Supplier:
    fields = _clean_supplier_patch(patch or {})

    def _op():
        supplier = get_supplier(supplier_id)
        for key, value in fields.items():
            setattr(supplier, key, value)
        db.session.flush()
        return supplier

    return run_in_transaction(_op)


def delete_supplier(supplier_id: int) -> None:
    """Delete a supplier with no purchase orders or invoices; its price list goes with it."""
    def _op():
        supplier = get_supplier(supplier_id)
        references = {
            "purchase_orders": db.session.query(PurchaseOrder).filter_by(supplier_id=supplier_id).count(),
            "invoices": db.session.query(Invoice).filter_by(supplier_id=supplier_id).count(),
            "batches": db.session.query(Batch).filter_by(supplier_id=supplier_id).count(),
        }
        references = {k: v for k, v in references.items() if v}
        if references:
            raise ValidationError(
                f"Supplier {supplier.code} has purchase history; deactivate it instead",
                {"supplier_id": supplier_id, "references": references},
            )
        db.session.delete(supplier)
        db.session.flush()

    run_in_transaction(_op)


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if supplier is None:
        raise NotFound("supplier", supplier_id)
    return supplier


def list_suppliers(*, include_inactive: bool = False) -> list[Supplier]:
    query = db.session.query(Supplier)
    if not include_inactive:
        query = query.filter(Supplier.is_active.is_(True))
    return query.order_by(Supplier.name.asc(), Supplier.id.asc()).all()


def set_supplier_product(
    *,
    supplier_id: int,
    product_id: int,
    unit_cost_cents,
    supplier_sku: str | None = None,
    min_order_qty=1,
    lead_time_days=None,
) -> SupplierProduct:
    """Insert or update the supplier's price-list row for a product."""
    unit_cost_cents = require_money(unit_cost_cents, "unit_cost_cents")
    supplier_sku = optional_text(supplier_sku, "supplier_sku", 64)
    min_order_qty = require_positive_int(min_order_qty, "min_order_qty")
    lead_time_days = _optional_non_negative_int(lead_time_days, "lead_time_days")

    def _op():
        get_supplier(supplier_id)
        get_product(product_id)

        row = (
            db.session.query(SupplierProduct)
            .filter_by(supplier_id=supplier_id, product_id=product_id)
            .first()
        )
        if row is None:
            row = SupplierProduct(supplier_id=supplier_id, product_id=product_id)
            db.session.add(row)
        row.unit_cost_cents = unit_cost_cents
        row.supplier_sku = supplier_sku
        row.min_order_qty = min_order_qty
        row.lead_time_days = lead_time_days
        db.session.flush()
        return row

    return run_in_transaction(_op)


def remove_supplier_product(*, supplier_id: int, product_id: int) -> None:
    def _op():
        row = (
            db.session.query(SupplierProduct)
            .filter_by(supplier_id=supplier_id, product_id=product_id)
            .first()
        )
        if row is None:
            raise NotFound("supplier product", f"{supplier_id}/{product_id}")
        db.session.delete(row)
        db.session.flush()

    run_in_transaction(_op)


def supplier_unit_cost(supplier_id: int, product: Product) -> int:
    """Price-list cost for the product from this supplier, else the product's cost."""
    cost = (
        db.session.query(SupplierProduct.unit_cost_cents)
        .filter_by(supplier_id=supplier_id, product_id=product.id)
        .scalar()
    )
    return int(cost) if cost is not None else int(product.cost_cents or 0)


# =============================================================================
# CUSTOMERS
# =============================================================================

def _clean_customer_patch(patch: dict) -> dict:
    cleaned: dict = {}
    for key, value in patch.items():
        if key == "code":
            raise ValidationError("Customer code cannot be changed after creation", {"field": key})
        if key not in CUSTOMER_MUTABLE_FIELDS:
            continue
        if key == "name":
            cleaned[key] = require_text(value, key)
        elif key == "is_active":
            cleaned[key] = _require_bool(value, key)
        elif key == "phone":
            cleaned[key] = optional_text(value, key, 64)
        else:
            cleaned[key] = optional_text(value, key)
    return cleaned


def create_customer(*, patch: dict, actor_user_id: int | None = None) -> Customer:
    patch = dict(patch or {})
    code = require_text(patch.pop("code", None), "code", 64).upper()
    if "name" not in patch:
        raise ValidationError("name is required", {"field": "name"})
    fields = _clean_customer_patch(patch)

    def _op():
        if db.session.query(Customer).filter_by(code=code).first():
            raise ValidationError(f"Customer code '{code}' already exists", {"code": code})
        customer = Customer(code=code, **fields)
        db.session.add(customer)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ValidationError(f"Customer code '{code}' already exists", {"code": code}) from exc
        append_audit_event(
            event_type="customer.created",
            entity_type="customer",
            entity_id=customer.id,
            actor_user_id=actor_user_id,
            note=f"Created customer code={customer.code}",
        )
        return customer

    return run_in_transaction(_op)


def update_customer(customer_id: int, patch: dict) -> Customer:
    fields = _clean_customer_patch(patch or {})

    def _op():
        customer = get_customer(customer_id)
        for key, value in fields.items():
            setattr(customer, key, value)
        db.session.flush()
        return customer

    return run_in_transaction(_op)


def get_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if customer is None:
        raise NotFound("customer", customer_id)
    return customer


def list_customers(*, include_inactive: bool = False) -> list[Customer]:
    query = db.session.query(Customer)
    if not include_inactive:
        query = query.filter(Customer.is_active.is_(True))
    return query.order_by(Customer.name.asc(), Customer.id.asc()).all()
