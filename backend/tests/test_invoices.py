"""
Invoice and payment ledger tests.

Verifies:
- Line tax rounding and header totals in integer cents
- Payments drive PARTIAL / PAID; those statuses cannot be set directly
- Overpayment handling follows INVOICE_ALLOW_OVERPAYMENT
- Voiding a payment follows INVOICE_PAYMENT_REVERSAL_POLICY
- The overdue sweep only touches SENT/PARTIAL invoices past due
"""

from datetime import timedelta

import pytest

from tradesphere.errors import InvalidTransition, NotFound, ValidationError
from tradesphere.services import invoice_service
from tradesphere.services.invoice_service import compute_item_tax
from tradesphere.time_utils import utcnow


def _future(days=30):
    return (utcnow().date() + timedelta(days=days)).isoformat()


def _sent_invoice(customer, *, total=10000, tax_rate_bps=0, **kwargs):
    invoice = invoice_service.create_invoice(
        type="SALES", customer_id=customer.id, due_date=_future(), tax_rate_bps=tax_rate_bps, **kwargs
    )
    invoice_service.add_invoice_item(invoice.id, description="Consulting", quantity=1, unit_price_cents=total)
    return invoice_service.advance_invoice(invoice.id, "SENT", actor_user_id=1)


class TestItemTax:

    @pytest.mark.parametrize(
        "quantity, unit_price, bps, expected",
        [
            (1, 1000, 0, 0),
            (1, 1000, 825, 83),     # 82.5 rounds half up
            (3, 333, 1000, 100),    # 99.9
            (1, 1, 5000, 1),        # 0.5 rounds up
            (1, 1, 4999, 0),
            (2, 12345, 10000, 24690),
        ],
    )
    def test_round_half_up(self, quantity, unit_price, bps, expected):
        assert compute_item_tax(quantity, unit_price, bps) == expected


class TestInvoiceHeader:

    def test_sales_invoice_number_and_defaults(self, customer):
        invoice = invoice_service.create_invoice(type="sales", customer_id=customer.id, due_date=_future())
        assert invoice.invoice_number == "INV-00001"
        assert invoice.type == "SALES"
        assert invoice.status == "DRAFT"
        assert invoice.invoice_date == utcnow().date()
        assert invoice.total_cents == 0

    def test_purchase_invoice_uses_bill_prefix(self, supplier):
        bill = invoice_service.create_invoice(type="PURCHASE", supplier_id=supplier.id, due_date=_future())
        assert bill.invoice_number == "BILL-00001"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"type": "SALES"},
            {"type": "PURCHASE"},
            {"type": "RENTAL"},
        ],
    )
    def test_party_must_match_type(self, customer, kwargs):
        if kwargs["type"] == "PURCHASE":
            kwargs = dict(kwargs, customer_id=customer.id)
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(due_date=_future(), **kwargs)

    def test_unknown_customer(self, db_session):
        with pytest.raises(NotFound):
            invoice_service.create_invoice(type="SALES", customer_id=9999, due_date=_future())

    def test_due_date_before_invoice_date(self, customer):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(
                type="SALES", customer_id=customer.id, invoice_date="2024-03-10", due_date="2024-03-01"
            )

    def test_bad_tax_rate(self, customer):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(
                type="SALES", customer_id=customer.id, due_date=_future(), tax_rate_bps=10001
            )


class TestInvoiceLines:

    def test_totals(self, customer, make_product):
        product = make_product(price_cents=2000, cost_cents=900)
        invoice = invoice_service.create_invoice(
            type="SALES", customer_id=customer.id, due_date=_future(), tax_rate_bps=825
        )

        invoice = invoice_service.add_invoice_item(invoice.id, product_id=product.id, quantity=3)
        line = invoice.items[0]
        assert line.description == product.name
        assert line.unit_price_cents == 2000
        assert line.tax_rate_bps == 825
        assert line.tax_cents == 495
        assert line.total_cents == 6495

        invoice = invoice_service.add_invoice_item(
            invoice.id, description="Shipping", quantity=1, unit_price_cents=1001, tax_rate_bps=0
        )
        assert invoice.subtotal_cents == 7001
        assert invoice.tax_cents == 495

        invoice = invoice_service.set_discount(invoice.id, 496)
        assert invoice.total_cents == 7000
        assert invoice.amount_due_cents == 7000
        assert invoice.amount_paid_cents == 0

    def test_purchase_line_defaults_to_cost(self, supplier, make_product):
        product = make_product(price_cents=2000, cost_cents=900)
        bill = invoice_service.create_invoice(type="PURCHASE", supplier_id=supplier.id, due_date=_future())
        bill = invoice_service.add_invoice_item(bill.id, product_id=product.id, quantity=2)
        assert bill.items[0].unit_price_cents == 900
        assert bill.total_cents == 1800

    def test_free_text_line_needs_description_and_price(self, customer):
        invoice = invoice_service.create_invoice(type="SALES", customer_id=customer.id, due_date=_future())
        with pytest.raises(ValidationError):
            invoice_service.add_invoice_item(invoice.id, quantity=1, unit_price_cents=100)
        with pytest.raises(ValidationError):
            invoice_service.add_invoice_item(invoice.id, quantity=1, description="Labour")

    def test_discount_cannot_exceed_subtotal_plus_tax(self, customer):
        invoice = invoice_service.create_invoice(type="SALES", customer_id=customer.id, due_date=_future())
        invoice = invoice_service.add_invoice_item(invoice.id, description="A", quantity=1, unit_price_cents=500)
        item_id = invoice.items[0].id

        with pytest.raises(ValidationError):
            invoice_service.set_discount(invoice.id, 501)

        invoice_service.set_discount(invoice.id, 500)
        with pytest.raises(ValidationError):
            invoice_service.remove_invoice_item(invoice.id, item_id)
        assert len(invoice_service.get_invoice(invoice.id).items) == 1

    def test_removing_every_line_zeroes_totals(self, customer):
        invoice = invoice_service.create_invoice(
            type="SALES", customer_id=customer.id, due_date=_future(), tax_rate_bps=825
        )
        invoice_service.add_invoice_item(invoice.id, description="A", quantity=2, unit_price_cents=1000)
        invoice = invoice_service.add_invoice_item(invoice.id, description="B", quantity=1, unit_price_cents=500)
        assert invoice.subtotal_cents == 2500
        assert invoice.tax_cents == 165 + 41

        first, second = [item.id for item in invoice.items]
        invoice = invoice_service.remove_invoice_item(invoice.id, first)
        assert invoice.subtotal_cents == 500
        assert invoice.tax_cents == 41
        assert invoice.total_cents == 541

        invoice = invoice_service.remove_invoice_item(invoice.id, second)
        assert invoice.items == []
        assert invoice.subtotal_cents == 0
        assert invoice.tax_cents == 0
        assert invoice.total_cents == 0
        assert invoice.amount_due_cents == 0

    def test_lines_frozen_after_send(self, customer):
        invoice = _sent_invoice(customer)
        with pytest.raises(InvalidTransition):
            invoice_service.add_invoice_item(invoice.id, description="Late", quantity=1, unit_price_cents=1)
        with pytest.raises(InvalidTransition):
            invoice_service.set_discount(invoice.id, 0)


class TestInvoiceStatus:

    def test_cannot_send_empty_invoice(self, customer):
        invoice = invoice_service.create_invoice(type="SALES", customer_id=customer.id, due_date=_future())
        with pytest.raises(ValidationError):
            invoice_service.advance_invoice(invoice.id, "SENT")

    @pytest.mark.parametrize("target", ["PARTIAL", "PAID", "OVERDUE"])
    def test_payment_statuses_cannot_be_set_directly(self, customer, target):
        invoice = _sent_invoice(customer)
        with pytest.raises(InvalidTransition):
            invoice_service.advance_invoice(invoice.id, target)
        assert invoice_service.get_invoice(invoice.id).status == "SENT"

    @pytest.mark.parametrize("target", ["CANCELLED", "REFUNDED"])
    def test_paid_invoice_can_be_closed(self, customer, target):
        invoice = _sent_invoice(customer, total=500)
        invoice_service.record_payment(invoice.id, amount_cents=500)

        invoice = invoice_service.advance_invoice(invoice.id, target)
        assert invoice.status == target
        assert invoice.amount_paid_cents == 500
        assert invoice.amount_due_cents == 0

    @pytest.mark.parametrize("target", ["CANCELLED", "REFUNDED"])
    def test_draft_invoice_can_be_closed(self, customer, target):
        draft = invoice_service.create_invoice(type="SALES", customer_id=customer.id, due_date=_future())
        assert invoice_service.advance_invoice(draft.id, target).status == target

    @pytest.mark.parametrize("closed", ["CANCELLED", "REFUNDED"])
    def test_closed_invoice_is_terminal(self, customer, closed):
        invoice = _sent_invoice(customer, total=500)
        invoice_service.advance_invoice(invoice.id, closed)

        other = "REFUNDED" if closed == "CANCELLED" else "CANCELLED"
        with pytest.raises(InvalidTransition) as exc_info:
            invoice_service.advance_invoice(invoice.id, other)
        assert "terminal" in str(exc_info.value)
        with pytest.raises(InvalidTransition):
            invoice_service.record_payment(invoice.id, amount_cents=100)

    def test_delete_only_draft(self, customer):
        draft = invoice_service.create_invoice(type="SALES", customer_id=customer.id, due_date=_future())
        invoice_service.add_invoice_item(draft.id, description="A", quantity=1, unit_price_cents=1)
        invoice_service.delete_invoice(draft.id)
        with pytest.raises(NotFound):
            invoice_service.get_invoice(draft.id)

        sent = _sent_invoice(customer)
        with pytest.raises(InvalidTransition):
            invoice_service.delete_invoice(sent.id)


class TestPayments:

    def test_partial_then_full_payment(self, customer):
        invoice = _sent_invoice(customer, total=10000)
        assert invoice.total_cents == 10000

        first = invoice_service.record_payment(invoice.id, amount_cents=6000, method="CASH", actor_user_id=1)
        assert first.payment_number == "PAY-00001"
        invoice = invoice_service.get_invoice(invoice.id)
        assert invoice.status == "PARTIAL"
        assert invoice.amount_paid_cents == 6000
        assert invoice.amount_due_cents == 4000
        assert invoice.paid_date is None

        invoice_service.record_payment(invoice.id, amount_cents=4000)
        invoice = invoice_service.get_invoice(invoice.id)
        assert invoice.status == "PAID"
        assert invoice.amount_due_cents == 0
        assert invoice.paid_date is not None

        payments = invoice_service.list_payments(invoice.id)
        assert [p.method for p in payments] == ["CASH", "BANK_TRANSFER"]

    def test_cannot_pay_draft_or_paid_invoice(self, customer):
        draft = invoice_service.create_invoice(type="SALES", customer_id=customer.id, due_date=_future())
        with pytest.raises(InvalidTransition):
            invoice_service.record_payment(draft.id, amount_cents=1)

        invoice = _sent_invoice(customer, total=100)
        invoice_service.record_payment(invoice.id, amount_cents=100)
        with pytest.raises(InvalidTransition):
            invoice_service.record_payment(invoice.id, amount_cents=1)

    @pytest.mark.parametrize("amount", [0, -5, "10.5"])
    def test_bad_amount(self, customer, amount):
        invoice = _sent_invoice(customer)
        with pytest.raises(ValidationError):
            invoice_service.record_payment(invoice.id, amount_cents=amount)

    def test_unknown_method(self, customer):
        invoice = _sent_invoice(customer)
        with pytest.raises(ValidationError):
            invoice_service.record_payment(invoice.id, amount_cents=1, method="BITCOIN")

    def test_overpayment_rejected_by_default(self, customer):
        invoice = _sent_invoice(customer, total=1000)
        with pytest.raises(ValidationError):
            invoice_service.record_payment(invoice.id, amount_cents=1001)
        assert invoice_service.list_payments(invoice.id) == []

    def test_overpayment_allowed_by_config(self, customer, app_config):
        app_config(INVOICE_ALLOW_OVERPAYMENT=True)
        invoice = _sent_invoice(customer, total=1000)

        invoice_service.record_payment(invoice.id, amount_cents=1200)
        invoice = invoice_service.get_invoice(invoice.id)
        assert invoice.status == "PAID"
        assert invoice.amount_paid_cents == 1200
        assert invoice.amount_due_cents == 0


class TestVoidPayment:

    def test_void_reverts_paid_to_partial(self, customer):
        invoice = _sent_invoice(customer, total=10000)
        invoice_service.record_payment(invoice.id, amount_cents=6000)
        second = invoice_service.record_payment(invoice.id, amount_cents=4000)

        voided = invoice_service.void_payment(second.id, reason="Bounced", actor_user_id=2)
        assert voided.status == "VOIDED"
        assert voided.voided_by_user_id == 2

        invoice = invoice_service.get_invoice(invoice.id)
        assert invoice.status == "PARTIAL"
        assert invoice.amount_paid_cents == 6000
        assert invoice.amount_due_cents == 4000
        assert invoice.paid_date is None
        assert len(invoice_service.list_payments(invoice.id, include_voided=False)) == 1

    def test_voiding_only_payment_returns_to_sent(self, customer):
        invoice = _sent_invoice(customer, total=500)
        payment = invoice_service.record_payment(invoice.id, amount_cents=200)

        invoice_service.void_payment(payment.id, reason="Entered twice")
        assert invoice_service.get_invoice(invoice.id).status == "SENT"

    def test_hold_policy_keeps_status(self, customer, app_config):
        app_config(INVOICE_PAYMENT_REVERSAL_POLICY="HOLD")
        invoice = _sent_invoice(customer, total=500)
        payment = invoice_service.record_payment(invoice.id, amount_cents=500)

        invoice_service.void_payment(payment.id, reason="Chargeback")
        invoice = invoice_service.get_invoice(invoice.id)
        assert invoice.status == "PAID"
        assert invoice.amount_paid_cents == 0
        assert invoice.amount_due_cents == 500

    def test_cannot_void_twice(self, customer):
        invoice = _sent_invoice(customer, total=500)
        payment = invoice_service.record_payment(invoice.id, amount_cents=100)
        invoice_service.void_payment(payment.id, reason="x")
        with pytest.raises(InvalidTransition) as exc_info:
            invoice_service.void_payment(payment.id, reason="x")
        assert exc_info.value.details["current_status"] == "VOIDED"

    @pytest.mark.parametrize("closed", ["CANCELLED", "REFUNDED"])
    def test_cannot_void_on_closed_invoice(self, customer, closed):
        invoice = _sent_invoice(customer, total=500)
        payment = invoice_service.record_payment(invoice.id, amount_cents=500)
        invoice_service.advance_invoice(invoice.id, closed)

        with pytest.raises(InvalidTransition) as exc_info:
            invoice_service.void_payment(payment.id, reason="late")
        assert exc_info.value.details["current_status"] == closed
        assert invoice_service.get_payment(payment.id).status == "COMPLETED"
        assert invoice_service.get_invoice(invoice.id).amount_paid_cents == 500

    def test_reason_required(self, customer):
        invoice = _sent_invoice(customer, total=500)
        payment = invoice_service.record_payment(invoice.id, amount_cents=100)
        with pytest.raises(ValidationError):
            invoice_service.void_payment(payment.id, reason="  ")


class TestOverdueSweep:

    def _past_invoice(self, customer, total=1000):
        invoice = invoice_service.create_invoice(
            type="SALES", customer_id=customer.id, invoice_date="2024-01-01", due_date="2024-01-31"
        )
        invoice_service.add_invoice_item(invoice.id, description="Old", quantity=1, unit_price_cents=total)
        return invoice_service.advance_invoice(invoice.id, "SENT")

    def test_marks_past_due_invoices(self, customer):
        late = self._past_invoice(customer)
        partial = self._past_invoice(customer)
        invoice_service.record_payment(partial.id, amount_cents=400)
        current = _sent_invoice(customer)
        draft = invoice_service.create_invoice(
            type="SALES", customer_id=customer.id, invoice_date="2024-01-01", due_date="2024-01-02"
        )

        marked = invoice_service.mark_overdue_invoices("2024-02-15")

        assert sorted(i.id for i in marked) == sorted([late.id, partial.id])
        assert invoice_service.get_invoice(late.id).status == "OVERDUE"
        assert invoice_service.get_invoice(partial.id).status == "OVERDUE"
        assert invoice_service.get_invoice(current.id).status == "SENT"
        assert invoice_service.get_invoice(draft.id).status == "DRAFT"

    def test_due_date_itself_is_not_overdue(self, customer):
        invoice = self._past_invoice(customer)
        assert invoice_service.mark_overdue_invoices("2024-01-31") == []
        assert invoice_service.get_invoice(invoice.id).status == "SENT"

    def test_overdue_invoice_can_still_be_paid(self, customer):
        invoice = self._past_invoice(customer, total=1000)
        invoice_service.mark_overdue_invoices("2024-02-15")

        invoice_service.record_payment(invoice.id, amount_cents=300)
        assert invoice_service.get_invoice(invoice.id).status == "PARTIAL"
        invoice_service.record_payment(invoice.id, amount_cents=700)
        assert invoice_service.get_invoice(invoice.id).status == "PAID"

    def test_summary(self, customer, supplier):
        self._past_invoice(customer, total=1000)
        _sent_invoice(customer, total=2500)
        bill = invoice_service.create_invoice(type="PURCHASE", supplier_id=supplier.id, due_date=_future())
        invoice_service.add_invoice_item(bill.id, description="Parts", quantity=1, unit_price_cents=700)
        invoice_service.advance_invoice(bill.id, "SENT")

        summary = invoice_service.invoice_summary()
        assert summary["total"] == 3
        assert summary["by_status"]["SENT"] == 3
        assert summary["past_due"] == 1
        assert summary["total_receivable_cents"] == 3500
        assert summary["total_payable_cents"] == 700
