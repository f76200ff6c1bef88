"""
Batch and serial number tests.

Verifies:
- A batch's current_qty always equals the signed sum of its movements
- Adjustments never take a batch below zero and leave nothing behind on failure
- Quality status, expiry stats and the expiring-batches report
- Serial numbers: uniqueness, batch/product match, SOLD only through a sale
"""

from datetime import date

import pytest

from tradesphere.errors import InsufficientStock, InvalidTransition, NotFound, ValidationError
from tradesphere.extensions import db
from tradesphere.models import Batch, BatchMovement
from tradesphere.services import batch_service
from tradesphere.services import catalog_service
from tradesphere.services import sales_order_service as so_service


AS_OF = date(2026, 3, 1)


def _signed_total(batch_id):
    return sum(m.direction * m.quantity for m in batch_service.list_batch_movements(batch_id))


class TestCreateBatch:

    def test_initial_quantity_is_first_movement(self, make_product, default_loc, supplier):
        product = make_product()

        batch = batch_service.create_batch(
            product_id=product.id,
            batch_number="lot-001",
            initial_qty=40,
            manufacture_date="2026-01-10",
            expiry_date="2026-07-10",
            location_id=default_loc.id,
            supplier_id=supplier.id,
        )

        assert batch.batch_number == "LOT-001"
        assert batch.quality_status == "PENDING"
        assert batch.initial_qty == batch.current_qty == 40
        movements = batch_service.list_batch_movements(batch.id)
        assert [(m.type, m.quantity, m.notes) for m in movements] == [("IN", 40, "Initial quantity")]

    def test_empty_batch_has_no_movements(self, make_product):
        batch = batch_service.create_batch(product_id=make_product().id, batch_number="LOT-0")
        assert batch.current_qty == 0
        assert batch_service.list_batch_movements(batch.id) == []

    def test_batch_number_unique_per_product(self, make_product):
        a = make_product()
        b = make_product()
        batch_service.create_batch(product_id=a.id, batch_number="LOT-1")

        with pytest.raises(ValidationError) as exc_info:
            batch_service.create_batch(product_id=a.id, batch_number="lot-1")
        assert exc_info.value.details["batch_number"] == "LOT-1"

        # same number on another product is a different batch
        batch_service.create_batch(product_id=b.id, batch_number="LOT-1")
        assert db.session.query(Batch).count() == 2

    def test_expiry_before_manufacture_rejected(self, make_product):
        with pytest.raises(ValidationError):
            batch_service.create_batch(
                product_id=make_product().id,
                batch_number="LOT-2",
                manufacture_date="2026-05-01",
                expiry_date="2026-04-30",
            )
        assert db.session.query(Batch).count() == 0

    @pytest.mark.parametrize("initial_qty", [-1, 2.5, "abc"])
    def test_bad_initial_quantity(self, make_product, initial_qty):
        with pytest.raises(ValidationError):
            batch_service.create_batch(product_id=make_product().id, batch_number="LOT-3", initial_qty=initial_qty)

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFound):
            batch_service.create_batch(product_id=999, batch_number="LOT-4")


class TestAdjustBatch:

    def test_adjustments_track_movements(self, make_product):
        batch = batch_service.create_batch(product_id=make_product().id, batch_number="LOT-A", initial_qty=10)

        out = batch_service.adjust_batch_quantity(batch.id, -4, notes="picked", actor_user_id=3)
        assert out.type == "OUT"
        assert out.quantity == 4
        assert out.direction == -1
        assert out.actor_user_id == 3

        batch_service.adjust_batch_quantity(batch.id, 6)
        batch_service.adjust_batch_quantity(batch.id, -2, "ADJUSTMENT", "count correction")

        batch = batch_service.get_batch(batch.id)
        assert batch.current_qty == 10
        assert _signed_total(batch.id) == batch.current_qty
        assert [m.type for m in batch_service.list_batch_movements(batch.id)] == ["IN", "OUT", "IN", "ADJUSTMENT"]

    def test_cannot_go_below_zero(self, make_product):
        batch = batch_service.create_batch(product_id=make_product().id, batch_number="LOT-B", initial_qty=3)

        with pytest.raises(InsufficientStock) as exc_info:
            batch_service.adjust_batch_quantity(batch.id, -5)

        assert exc_info.value.available == 3
        assert exc_info.value.required == 5
        assert batch_service.get_batch(batch.id).current_qty == 3
        assert db.session.query(BatchMovement).filter_by(batch_id=batch.id).count() == 1

    @pytest.mark.parametrize("adjustment,movement_type", [(-1, "IN"), (1, "OUT")])
    def test_type_must_match_sign(self, make_product, adjustment, movement_type):
        batch = batch_service.create_batch(product_id=make_product().id, batch_number="LOT-C", initial_qty=5)
        with pytest.raises(ValidationError):
            batch_service.adjust_batch_quantity(batch.id, adjustment, movement_type)
        assert batch_service.get_batch(batch.id).current_qty == 5

    def test_zero_adjustment_rejected(self, make_product):
        batch = batch_service.create_batch(product_id=make_product().id, batch_number="LOT-D", initial_qty=5)
        with pytest.raises(ValidationError):
            batch_service.adjust_batch_quantity(batch.id, 0)

    def test_unknown_batch(self, db_session):
        with pytest.raises(NotFound):
            batch_service.adjust_batch_quantity(404, 1)


class TestQualityAndDelete:

    def test_quality_status_and_notes(self, make_product):
        batch = batch_service.create_batch(product_id=make_product().id, batch_number="LOT-Q")

        batch = batch_service.update_batch_quality_status(batch.id, "QUARANTINE", "smell test failed")
        assert batch.quality_status == "QUARANTINE"
        assert batch.quality_notes == "smell test failed"

        batch = batch_service.update_batch_quality_status(batch.id, "APPROVED")
        assert batch.quality_notes == "smell test failed"

        with pytest.raises(ValidationError):
            batch_service.update_batch_quality_status(batch.id, "GREAT")

    def test_filter_by_quality_status(self, make_product):
        product = make_product()
        a = batch_service.create_batch(product_id=product.id, batch_number="LOT-1")
        batch_service.create_batch(product_id=product.id, batch_number="LOT-2")
        batch_service.update_batch_quality_status(a.id, "REJECTED")

        rejected = batch_service.list_batches(quality_status="REJECTED")
        assert [b.batch_number for b in rejected] == ["LOT-1"]
        assert len(batch_service.list_batches(product_id=product.id)) == 2

    def test_delete_removes_movements(self, make_product):
        batch = batch_service.create_batch(product_id=make_product().id, batch_number="LOT-X", initial_qty=2)
        batch_service.adjust_batch_quantity(batch.id, 1)

        batch_service.delete_batch(batch.id)

        assert db.session.query(Batch).count() == 0
        assert db.session.query(BatchMovement).count() == 0

    def test_delete_blocked_by_serial_numbers(self, make_product):
        product = make_product()
        batch = batch_service.create_batch(product_id=product.id, batch_number="LOT-S", initial_qty=1)
        batch_service.create_serial_number(product_id=product.id, serial_number="SN-1", batch_id=batch.id)

        with pytest.raises(ValidationError) as exc_info:
            batch_service.delete_batch(batch.id)
        assert exc_info.value.details["references"] == {"serial_numbers": 1}
        assert batch_service.get_batch(batch.id).current_qty == 1

    def test_product_with_batches_cannot_be_deleted(self, make_product):
        product = make_product()
        batch_service.create_batch(product_id=product.id, batch_number="LOT-P")

        with pytest.raises(ValidationError) as exc_info:
            catalog_service.delete_product(product.id)
        assert exc_info.value.details["references"] == {"batches": 1}


class TestExpiry:

    @pytest.fixture
    def dated_batches(self, make_product):
        product = make_product(sku="MILK", cost_cents=200)
        specs = [
            ("EXPIRED", "2026-02-20", 5),
            ("TODAY", "2026-03-01", 1),
            ("WEEK", "2026-03-08", 2),
            ("TWOWEEK", "2026-03-15", 3),
            ("MONTH", "2026-03-31", 4),
            ("LATER", "2026-06-01", 9),
            ("NODATE", None, 7),
        ]
        for number, expiry, qty in specs:
            batch_service.create_batch(
                product_id=product.id, batch_number=number, initial_qty=qty, expiry_date=expiry,
            )
        return product

    def test_stats(self, dated_batches):
        batch = batch_service.list_batches(product_id=dated_batches.id)[0]
        batch_service.update_batch_quality_status(batch.id, "QUARANTINE")

        stats = batch_service.batch_stats(as_of=AS_OF)

        assert stats == {
            "total_batches": 7,
            "expiring_within_30_days": 4,
            "expired": 1,
            "quarantined": 1,
        }

    def test_expiring_report_urgency(self, dated_batches):
        report = batch_service.expiring_batches(days=30, as_of="2026-03-01")

        assert report["as_of"] == "2026-03-01"
        rows = [(r["batch_number"], r["days_until_expiry"], r["urgency"]) for r in report["items"]]
        assert rows == [
            ("TODAY", 0, "CRITICAL"),
            ("WEEK", 7, "CRITICAL"),
            ("TWOWEEK", 14, "HIGH"),
            ("MONTH", 30, "MEDIUM"),
        ]
        assert report["items"][0]["product_sku"] == "MILK"
        assert report["summary"] == {
            "total_batches": 4,
            "critical": 2,
            "high": 1,
            "medium": 1,
            "total_value_at_risk_cents": (1 + 2 + 3 + 4) * 200,
        }

    def test_window_is_configurable(self, dated_batches):
        report = batch_service.expiring_batches(days=7, as_of=AS_OF)
        assert [r["batch_number"] for r in report["items"]] == ["TODAY", "WEEK"]

    @pytest.mark.parametrize("days", [0, -3, "soon"])
    def test_bad_window(self, db_session, days):
        with pytest.raises(ValidationError):
            batch_service.expiring_batches(days=days, as_of=AS_OF)


class TestSerialNumbers:

    def test_create_and_list(self, make_product, default_loc):
        product = make_product()
        batch = batch_service.create_batch(product_id=product.id, batch_number="LOT-1", initial_qty=2)
        batch_service.create_serial_number(product_id=product.id, serial_number="SN-B", batch_id=batch.id)
        serial = batch_service.create_serial_number(
            product_id=product.id,
            serial_number="SN-A",
            location_id=default_loc.id,
            warranty_expiry="2028-01-01",
        )

        assert serial.status == "IN_STOCK"
        assert serial.warranty_expiry == date(2028, 1, 1)
        assert [s.serial_number for s in batch_service.list_serial_numbers(product_id=product.id)] == ["SN-A", "SN-B"]
        assert [s.serial_number for s in batch_service.list_serial_numbers(batch_id=batch.id)] == ["SN-B"]

    def test_serial_number_globally_unique(self, make_product):
        batch_service.create_serial_number(product_id=make_product().id, serial_number="SN-1")
        with pytest.raises(ValidationError):
            batch_service.create_serial_number(product_id=make_product().id, serial_number="SN-1")

    def test_batch_must_be_of_same_product(self, make_product):
        other = make_product()
        batch = batch_service.create_batch(product_id=other.id, batch_number="LOT-1")
        with pytest.raises(ValidationError):
            batch_service.create_serial_number(product_id=make_product().id, serial_number="SN-1", batch_id=batch.id)

    def test_sold_only_through_sale(self, make_product):
        serial = batch_service.create_serial_number(product_id=make_product().id, serial_number="SN-1")
        with pytest.raises(ValidationError):
            batch_service.update_serial_number_status(serial.id, "SOLD")

        serial = batch_service.update_serial_number_status(serial.id, "DEFECTIVE")
        assert serial.status == "DEFECTIVE"

    def test_sell_then_return(self, make_product, customer):
        product = make_product()
        serial = batch_service.create_serial_number(product_id=product.id, serial_number="SN-1")
        order = so_service.create_sales_order(customer_id=customer.id)
        so_service.add_sales_order_item(order.id, product_id=product.id, quantity=1)

        serial = batch_service.mark_serial_as_sold(serial.id, customer.id, order.id)
        assert serial.status == "SOLD"
        assert serial.sold_to_customer_id == customer.id
        assert serial.sales_order_id == order.id
        assert serial.sold_date is not None

        with pytest.raises(InvalidTransition):
            batch_service.mark_serial_as_sold(serial.id, customer.id)
        with pytest.raises(InvalidTransition):
            batch_service.update_serial_number_status(serial.id, "IN_STOCK")

        serial = batch_service.update_serial_number_status(serial.id, "RETURNED")
        assert serial.status == "RETURNED"

    def test_sale_order_must_match_customer_and_product(self, make_product, customer):
        product = make_product()
        other_product = make_product()
        serial = batch_service.create_serial_number(product_id=product.id, serial_number="SN-1")
        other_customer = catalog_service.create_customer(patch={"code": "CUST2", "name": "Other Buyer"})

        order = so_service.create_sales_order(customer_id=customer.id)
        so_service.add_sales_order_item(order.id, product_id=other_product.id, quantity=1)
        with pytest.raises(ValidationError):
            batch_service.mark_serial_as_sold(serial.id, customer.id, order.id)

        so_service.add_sales_order_item(order.id, product_id=product.id, quantity=1)
        with pytest.raises(ValidationError):
            batch_service.mark_serial_as_sold(serial.id, other_customer.id, order.id)

        assert batch_service.get_serial_number(serial.id).status == "IN_STOCK"
