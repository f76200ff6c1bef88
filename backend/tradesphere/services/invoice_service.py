# Overview: Service-layer operations for invoices and payments; line tax, totals and payment-driven status.

"""
Invoice & Payment Ledger

STATES: DRAFT -> SENT -> (PARTIAL)* -> PAID
        SENT / PARTIAL -> OVERDUE        (due date passed, amount due > 0)
        OVERDUE -> PARTIAL / PAID        (payments)
        DRAFT / SENT / PARTIAL / PAID / OVERDUE -> CANCELLED / REFUNDED
        CANCELLED and REFUNDED are terminal and freeze every amount.

MONEY (integer cents, tax rates in basis points):
- item tax   = round_half_up(quantity * unit_price * tax_rate_bps / 10000)
- item total = quantity * unit_price + item tax          (computed once)
- subtotal   = SUM(quantity * unit_price)
- tax        = SUM(item tax)
- total      = subtotal + tax - discount
- amount_paid = SUM(COMPLETED payments)
- amount_due  = max(0, total - amount_paid)

PAYMENT-DRIVEN STATUS:
- PAID and PARTIAL are only ever set by record_payment / void_payment;
  OVERDUE only by the due-date sweep. advance_invoice refuses them.
- Voiding a payment follows INVOICE_PAYMENT_REVERSAL_POLICY:
    REVERT (default): re-derive PARTIAL, else OVERDUE/SENT; clear paid_date
    HOLD: keep the current status; only the amounts change
"""

from __future__ import annotations

from datetime import date

from flask import current_app

from ..errors import InvalidTransition, NotFound, ValidationError
from ..extensions import db
from ..models import Customer, Invoice, InvoiceItem, Payment, Product, Supplier
from ..validation import (
    optional_date,
    optional_text,
    require_choice,
    require_date,
    require_money,
    require_positive_int,
    require_tax_rate,
    require_text,
)
from tradesphere.time_utils import utcnow
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_in_transaction
from .document_service import PAYMENT, PURCHASE_INVOICE, SALES_INVOICE, next_document_number
from .state_machines import (
    INVOICE_FSM,
    INV_CANCELLED,
    INV_DELETABLE,
    INV_DRAFT,
    INV_EDITABLE,
    INV_OVERDUE,
    INV_OVERDUE_CANDIDATES,
    INV_PAID,
    INV_PARTIAL,
    INV_PAYABLE,
    INV_REFUNDED,
    INV_SENT,
)


# =============================================================================
# CONSTANTS
# =============================================================================

INVOICE_SALES = "SALES"
INVOICE_PURCHASE = "PURCHASE"
INVOICE_TYPES = (INVOICE_SALES, INVOICE_PURCHASE)

METHOD_CASH = "CASH"
METHOD_BANK_TRANSFER = "BANK_TRANSFER"
METHOD_CREDIT_CARD = "CREDIT_CARD"
METHOD_CHECK = "CHECK"
METHOD_OTHER = "OTHER"
PAYMENT_METHODS = (METHOD_CASH, METHOD_BANK_TRANSFER, METHOD_CREDIT_CARD, METHOD_CHECK, METHOD_OTHER)
DEFAULT_PAYMENT_METHOD = METHOD_BANK_TRANSFER

PAYMENT_COMPLETED = "COMPLETED"
PAYMENT_VOIDED = "VOIDED"

REVERSAL_REVERT = "REVERT"
REVERSAL_HOLD = "HOLD"
REVERSAL_POLICIES = (REVERSAL_REVERT, REVERSAL_HOLD)


# =============================================================================
# ARITHMETIC
# =============================================================================

def compute_item_tax(quantity: int, unit_price_cents: int, tax_rate_bps: int) -> int:
    """Round-half-up of quantity * unit_price * rate / 10000, in integer cents."""
    return (quantity * unit_price_cents * tax_rate_bps + 5_000) // 10_000


def _recalculate(invoice: Invoice) -> None:
    subtotal = sum(item.quantity * item.unit_price_cents for item in invoice.items)
    tax = sum(item.tax_cents for item in invoice.items)
    if invoice.discount_cents > subtotal + tax:
        raise ValidationError(
            "Discount cannot exceed subtotal plus tax; lower the discount first",
            {"discount_cents": invoice.discount_cents, "max_discount_cents": subtotal + tax},
        )
    paid = sum(p.amount_cents for p in invoice.payments if p.status == PAYMENT_COMPLETED)

    invoice.subtotal_cents = subtotal
    invoice.tax_cents = tax
    invoice.total_cents = subtotal + tax - invoice.discount_cents
    invoice.amount_paid_cents = paid
    invoice.amount_due_cents = max(0, invoice.total_cents - paid)


def _today() -> date:
    return utcnow().date()


def _derive_payment_status(invoice: Invoice, as_of: date | None = None) -> str:
    if invoice.amount_paid_cents > 0 and invoice.amount_due_cents == 0:
        return INV_PAID
    if invoice.amount_paid_cents > 0:
        return INV_PARTIAL
    if invoice.due_date < (as_of or _today()):
        return INV_OVERDUE
    return INV_SENT


def _reversal_policy() -> str:
    policy = str(current_app.config.get("INVOICE_PAYMENT_REVERSAL_POLICY", REVERSAL_REVERT)).upper()
    if policy not in REVERSAL_POLICIES:
        raise ValidationError(
            f"Unknown payment reversal policy '{policy}'",
            {"choices": list(REVERSAL_POLICIES)},
        )
    return policy


# =============================================================================
# LOOKUPS
# =============================================================================

def _load_invoice(invoice_id: int, *, lock: bool = False) -> Invoice:
    query = db.session.query(Invoice).filter_by(id=invoice_id)
    if lock:
        query = lock_for_update(query)
    invoice = query.first()
    if invoice is None:
        raise NotFound("invoice", invoice_id)
    return invoice


def _audit(invoice: Invoice, event_type: str, actor_user_id: int | None, note: str) -> None:
    append_audit_event(
        event_type=event_type,
        entity_type="invoice",
        entity_id=invoice.id,
        actor_user_id=actor_user_id,
        note=note,
    )


def get_invoice(invoice_id: int) -> Invoice:
    return _load_invoice(invoice_id)


def list_invoices(
    *,
    type: str | None = None,
    status: str | None = None,
    customer_id: int | None = None,
    supplier_id: int | None = None,
) -> list[Invoice]:
    query = db.session.query(Invoice)
    if type:
        query = query.filter(Invoice.type == require_choice(type, "type", INVOICE_TYPES))
    if status:
        query = query.filter(Invoice.status == INVOICE_FSM.validate_status(status))
    if customer_id is not None:
        query = query.filter(Invoice.customer_id == customer_id)
    if supplier_id is not None:
        query = query.filter(Invoice.supplier_id == supplier_id)
    return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()


def get_payment(payment_id: int) -> Payment:
    payment = db.session.query(Payment).filter_by(id=payment_id).first()
    if payment is None:
        raise NotFound("payment", payment_id)
    return payment


def list_payments(invoice_id: int, *, include_voided: bool = True) -> list[Payment]:
    _load_invoice(invoice_id)
    query = db.session.query(Payment).filter_by(invoice_id=invoice_id)
    if not include_voided:
        query = query.filter(Payment.status == PAYMENT_COMPLETED)
    return query.order_by(Payment.payment_date.asc(), Payment.id.asc()).all()


def invoice_summary(as_of: date | None = None) -> dict:
    """Counts by status plus outstanding receivables (SALES) and payables (PURCHASE)."""
    as_of = as_of or _today()
    invoices = db.session.query(Invoice).all()
    counts = {status: 0 for status in INVOICE_FSM.statuses}
    past_due = 0
    receivable = 0
    payable = 0
    for invoice in invoices:
        counts[invoice.status] = counts.get(invoice.status, 0) + 1
        if invoice.status in (INV_SENT, INV_PARTIAL, INV_OVERDUE) and invoice.due_date < as_of:
            past_due += 1
        if invoice.status in (INV_CANCELLED, INV_REFUNDED, INV_DRAFT):
            continue
        if invoice.type == INVOICE_SALES:
            receivable += invoice.amount_due_cents
        else:
            payable += invoice.amount_due_cents
    return {
        "total": len(invoices),
        "by_status": counts,
        "past_due": past_due,
        "total_receivable_cents": receivable,
        "total_payable_cents": payable,
    }


# =============================================================================
# HEADER
# =============================================================================

def create_invoice(
    *,
    type: str,
    due_date,
    customer_id: int | None = None,
    supplier_id: int | None = None,
    invoice_date=None,
    tax_rate_bps=0,
    notes: str | None = None,
    terms: str | None = None,
    actor_user_id: int | None = None,
) -> Invoice:
    """
    Create a DRAFT invoice numbered INV-xxxxx (SALES) or BILL-xxxxx (PURCHASE).

    SALES invoices require a customer and PURCHASE invoices a supplier; the
    other party must be absent. tax_rate_bps is the default for new lines.
    """
    invoice_type = require_choice(type, "type", INVOICE_TYPES)
    due = require_date(due_date, "due_date")
    issued = optional_date(invoice_date, "invoice_date") or _today()
    if due < issued:
        raise ValidationError(
            "due_date cannot be before invoice_date",
            {"invoice_date": issued.isoformat(), "due_date": due.isoformat()},
        )
    tax_rate_bps = require_tax_rate(tax_rate_bps if tax_rate_bps is not None else 0)
    notes = optional_text(notes, "notes")
    terms = optional_text(terms, "terms")

    if invoice_type == INVOICE_SALES:
        if customer_id is None or supplier_id is not None:
            raise ValidationError(
                "SALES invoices require a customer_id and no supplier_id",
                {"type": invoice_type},
            )
    else:
        if supplier_id is None or customer_id is not None:
            raise ValidationError(
                "PURCHASE invoices require a supplier_id and no customer_id",
                {"type": invoice_type},
            )

    def _op():
        if customer_id is not None and db.session.query(Customer).filter_by(id=customer_id).first() is None:
            raise NotFound("customer", customer_id)
        if supplier_id is not None and db.session.query(Supplier).filter_by(id=supplier_id).first() is None:
            raise NotFound("supplier", supplier_id)

        doc_type, prefix = SALES_INVOICE if invoice_type == INVOICE_SALES else PURCHASE_INVOICE
        invoice = Invoice(
            invoice_number=next_document_number(document_type=doc_type, prefix=prefix),
            type=invoice_type,
            customer_id=customer_id,
            supplier_id=supplier_id,
            status=INV_DRAFT,
            invoice_date=issued,
            due_date=due,
            tax_rate_bps=tax_rate_bps,
            subtotal_cents=0,
            tax_cents=0,
            discount_cents=0,
            total_cents=0,
            amount_paid_cents=0,
            amount_due_cents=0,
            notes=notes,
            terms=terms,
            created_by_user_id=actor_user_id,
        )
        db.session.add(invoice)
        db.session.flush()
        _audit(invoice, "invoice.created", actor_user_id, f"Created {invoice.invoice_number}")
        return invoice

    return run_in_transaction(_op)


def delete_invoice(invoice_id: int) -> None:
    def _op():
        invoice = _load_invoice(invoice_id, lock=True)
        INVOICE_FSM.require_status(invoice.status, INV_DELETABLE, "delete")
        for item in list(invoice.items):
            db.session.delete(item)
        db.session.flush()
        db.session.delete(invoice)
        db.session.flush()

    run_in_transaction(_op)


# =============================================================================
# LINES & DISCOUNT (DRAFT only)
# =============================================================================

def add_invoice_item(
    invoice_id: int,
    *,
    quantity,
    unit_price_cents=None,
    description: str | None = None,
    product_id: int | None = None,
    tax_rate_bps=None,
) -> Invoice:
    """
    Add a line. Tax and total are computed once, here.

    With a product, description defaults to the product name and the unit
    price to its price (SALES) or cost (PURCHASE). tax_rate_bps defaults to
    the invoice's rate.
    """
    quantity = require_positive_int(quantity, "quantity")
    if unit_price_cents is not None:
        unit_price_cents = require_money(unit_price_cents, "unit_price_cents")
    description = optional_text(description, "description", 255)
    if tax_rate_bps is not None:
        tax_rate_bps = require_tax_rate(tax_rate_bps)
    if product_id is None:
        if description is None:
            raise ValidationError("description is required for lines without a product", {"field": "description"})
        if unit_price_cents is None:
            raise ValidationError("unit_price_cents is required for lines without a product", {"field": "unit_price_cents"})

    def _op():
        invoice = _load_invoice(invoice_id, lock=True)
        INVOICE_FSM.require_status(invoice.status, INV_EDITABLE, "add items to")

        price = unit_price_cents
        text = description
        if product_id is not None:
            product = db.session.query(Product).filter_by(id=product_id).first()
            if product is None:
                raise NotFound("product", product_id)
            if price is None:
                price = product.price_cents if invoice.type == INVOICE_SALES else product.cost_cents
            text = text or product.name

        rate = tax_rate_bps if tax_rate_bps is not None else invoice.tax_rate_bps
        tax = compute_item_tax(quantity, price, rate)
        invoice.items.append(InvoiceItem(
            product_id=product_id,
            description=text,
            quantity=quantity,
            unit_price_cents=price,
            tax_rate_bps=rate,
            tax_cents=tax,
            total_cents=quantity * price + tax,
        ))
        _recalculate(invoice)
        db.session.flush()
        return invoice

    return run_in_transaction(_op)


def remove_invoice_item(invoice_id: int, item_id: int) -> Invoice:
    def _op():
        invoice = _load_invoice(invoice_id, lock=True)
        INVOICE_FSM.require_status(invoice.status, INV_EDITABLE, "remove items from")
        item = next((i for i in invoice.items if i.id == item_id), None)
        if item is None:
            raise NotFound("invoice item", item_id)
        invoice.items.remove(item)
        _recalculate(invoice)
        db.session.flush()
        return invoice

    return run_in_transaction(_op)


def set_discount(invoice_id: int, discount_cents) -> Invoice:
    discount = require_money(discount_cents, "discount_cents")

    def _op():
        invoice = _load_invoice(invoice_id, lock=True)
        INVOICE_FSM.require_status(invoice.status, INV_EDITABLE, "discount")
        invoice.discount_cents = discount
        _recalculate(invoice)
        db.session.flush()
        return invoice

    return run_in_transaction(_op)


# =============================================================================
# STATUS
# =============================================================================

def advance_invoice(
    invoice_id: int,
    status: str,
    *,
    actor_user_id: int | None = None,
) -> Invoice:
    """
    Apply an explicit status change: SENT, CANCELLED or REFUNDED.

    PARTIAL, PAID and OVERDUE are derived from payments and the due date and
    are refused here.
    """
    def _op():
        invoice = _load_invoice(invoice_id, lock=True)
        target = INVOICE_FSM.validate_status(status)
        INVOICE_FSM.check_transition(invoice.status, target)

        if target == INV_SENT and not invoice.items:
            raise ValidationError("Cannot send an invoice without items", {"invoice_id": invoice.id})

        previous = invoice.status
        invoice.status = target
        db.session.flush()
        _audit(
            invoice,
            f"invoice.{target.lower()}",
            actor_user_id,
            f"{invoice.invoice_number}: {previous} -> {target}",
        )
        return invoice

    return run_in_transaction(_op)


def mark_overdue_invoices(as_of=None, *, actor_user_id: int | None = None) -> list[Invoice]:
    """Move SENT/PARTIAL invoices past their due date with an amount due to OVERDUE."""
    cutoff = optional_date(as_of, "as_of") or _today()

    def _op():
        query = db.session.query(Invoice).filter(
            Invoice.status.in_(sorted(INV_OVERDUE_CANDIDATES)),
            Invoice.due_date < cutoff,
            Invoice.amount_due_cents > 0,
        )
        invoices = lock_for_update(query).order_by(Invoice.id.asc()).all()
        for invoice in invoices:
            previous = invoice.status
            INVOICE_FSM.check_transition(previous, INV_OVERDUE, driven=True)
            invoice.status = INV_OVERDUE
            _audit(
                invoice,
                "invoice.overdue",
                actor_user_id,
                f"{invoice.invoice_number}: {previous} -> {INV_OVERDUE} (due {invoice.due_date.isoformat()})",
            )
        db.session.flush()
        return invoices

    invoices = run_in_transaction(_op)
    if invoices:
        current_app.logger.info("Marked %d invoice(s) overdue as of %s", len(invoices), cutoff.isoformat())
    return invoices


# =============================================================================
# PAYMENTS
# =============================================================================

def record_payment(
    invoice_id: int,
    *,
    amount_cents,
    method: str | None = None,
    reference: str | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> Payment:
    """
    Record a payment against a SENT, PARTIAL or OVERDUE invoice.

    The invoice becomes PAID (paid_date stamped) when nothing is due, else
    PARTIAL. Paying more than is due is rejected unless
    INVOICE_ALLOW_OVERPAYMENT is set.
    """
    amount = require_positive_int(amount_cents, "amount_cents")
    amount = require_money(amount, "amount_cents")
    method = require_choice(method or DEFAULT_PAYMENT_METHOD, "method", PAYMENT_METHODS)
    reference = optional_text(reference, "reference", 128)
    notes = optional_text(notes, "notes")

    def _op():
        invoice = _load_invoice(invoice_id, lock=True)
        INVOICE_FSM.require_status(invoice.status, INV_PAYABLE, "record a payment on")

        if amount > invoice.amount_due_cents and not current_app.config.get("INVOICE_ALLOW_OVERPAYMENT"):
            raise ValidationError(
                f"Payment of {amount} exceeds amount due of {invoice.amount_due_cents}",
                {"amount_cents": amount, "amount_due_cents": invoice.amount_due_cents},
            )

        doc_type, prefix = PAYMENT
        payment = Payment(
            payment_number=next_document_number(document_type=doc_type, prefix=prefix),
            amount_cents=amount,
            method=method,
            reference=reference,
            notes=notes,
            status=PAYMENT_COMPLETED,
            payment_date=utcnow(),
            created_by_user_id=actor_user_id,
        )
        invoice.payments.append(payment)
        _recalculate(invoice)

        target = INV_PAID if invoice.amount_due_cents == 0 else INV_PARTIAL
        INVOICE_FSM.check_transition(invoice.status, target, driven=True)
        previous = invoice.status
        invoice.status = target
        if target == INV_PAID:
            invoice.paid_date = utcnow()
        db.session.flush()

        _audit(
            invoice,
            "invoice.payment_recorded",
            actor_user_id,
            f"{payment.payment_number}: {amount} via {method}; {previous} -> {target}",
        )
        current_app.logger.info(
            "Payment %s of %d recorded on %s (status %s, due %d)",
            payment.payment_number, amount, invoice.invoice_number, target, invoice.amount_due_cents,
        )
        return payment

    return run_in_transaction(_op)


def void_payment(
    payment_id: int,
    *,
    reason: str,
    actor_user_id: int | None = None,
) -> Payment:
    """
    Void a completed payment and recompute the invoice amounts.

    Status handling follows INVOICE_PAYMENT_REVERSAL_POLICY (see module doc).
    """
    reason = require_text(reason, "reason")
    policy = _reversal_policy()

    def _op():
        payment = get_payment(payment_id)
        if payment.status == PAYMENT_VOIDED:
            raise InvalidTransition(
                "payment",
                payment.status,
                PAYMENT_VOIDED,
                f"Payment {payment.payment_number} is already voided",
            )

        invoice = _load_invoice(payment.invoice_id, lock=True)
        if INVOICE_FSM.is_terminal(invoice.status):
            raise InvalidTransition(
                "invoice",
                invoice.status,
                "void payment on",
                f"Cannot void a payment on a {invoice.status} invoice",
            )

        payment.status = PAYMENT_VOIDED
        payment.voided_at = utcnow()
        payment.voided_by_user_id = actor_user_id
        payment.void_reason = reason
        _recalculate(invoice)

        previous = invoice.status
        if policy == REVERSAL_REVERT:
            target = _derive_payment_status(invoice)
            if target != previous:
                INVOICE_FSM.check_transition(previous, target, driven=True)
                invoice.status = target
            if target != INV_PAID:
                invoice.paid_date = None
        db.session.flush()

        _audit(
            invoice,
            "invoice.payment_voided",
            actor_user_id,
            f"{payment.payment_number} voided ({policy}): {reason}; {previous} -> {invoice.status}",
        )
        return payment

    return run_in_transaction(_op)
