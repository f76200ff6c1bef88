"""
Unit-of-work and optimistic locking tests.

Verifies:
- Concurrency conflicts re-run the whole unit of work, which then commits once
- Domain errors roll back and are never retried
- A writer holding a stale StockItem version cannot flush over a newer one
"""

import pytest
from sqlalchemy.orm.exc import StaleDataError

from tradesphere.errors import ValidationError
from tradesphere.extensions import db
from tradesphere.models import Product, StockItem, Warehouse
from tradesphere.services import stock_ledger_service as ledger
from tradesphere.services.concurrency import RetryableConflict, run_in_transaction


def _bump_version(item_id, extra_quantity=0):
    """Simulate another writer committing a change to the stock row."""
    table = StockItem.__table__
    db.session.execute(
        table.update()
        .where(table.c.id == item_id)
        .values(version_id=table.c.version_id + 1, quantity=table.c.quantity + extra_quantity)
    )


def _warehouse_codes():
    return [w.code for w in db.session.query(Warehouse).order_by(Warehouse.code).all()]


class TestRunInTransaction:

    @pytest.mark.parametrize(
        "conflict",
        [StaleDataError("row version changed"), RetryableConflict("duplicate insert raced")],
    )
    def test_conflict_reruns_and_commits_once(self, db_session, conflict):
        calls = {"n": 0}

        def _op():
            calls["n"] += 1
            db.session.add(Warehouse(code=f"WH{calls['n']}", name="Retry"))
            db.session.flush()
            if calls["n"] == 1:
                raise conflict
            return calls["n"]

        assert run_in_transaction(_op, backoff_base=0) == 2
        assert calls["n"] == 2
        # the first attempt's insert was rolled back with it
        assert _warehouse_codes() == ["WH2"]

    def test_conflict_is_logged(self, db_session, caplog):
        calls = {"n": 0}

        def _op():
            calls["n"] += 1
            if calls["n"] == 1:
                raise RetryableConflict("lost race")

        run_in_transaction(_op, backoff_base=0)
        assert "retrying unit of work" in caplog.text

    def test_domain_error_rolls_back_without_retry(self, db_session):
        calls = {"n": 0}

        def _op():
            calls["n"] += 1
            db.session.add(Warehouse(code="WHX", name="Never"))
            db.session.flush()
            raise ValidationError("bad input")

        with pytest.raises(ValidationError):
            run_in_transaction(_op, backoff_base=0)

        assert calls["n"] == 1
        assert _warehouse_codes() == []

    def test_gives_up_after_configured_attempts(self, db_session, app_config):
        app_config(DB_RETRY_ATTEMPTS=3)
        calls = {"n": 0}

        def _op():
            calls["n"] += 1
            db.session.add(Warehouse(code=f"WH{calls['n']}", name="Conflicted"))
            db.session.flush()
            raise RetryableConflict("still losing")

        with pytest.raises(RetryableConflict):
            run_in_transaction(_op, backoff_base=0)

        assert calls["n"] == 3
        assert _warehouse_codes() == []


class TestStockItemVersion:

    def test_stale_writer_cannot_flush(self, make_product, default_loc):
        product = make_product()
        ledger.receive_stock(product_id=product.id, location_id=default_loc.id, quantity=5)

        item = db.session.query(StockItem).filter_by(product_id=product.id, location_id=default_loc.id).one()
        _bump_version(item.id, extra_quantity=2)

        item.quantity = item.quantity - 1
        with pytest.raises(StaleDataError):
            db.session.flush()
        db.session.rollback()

        # the bump was part of the rolled-back transaction too
        assert ledger.get_quantity_at(product.id, default_loc.id) == 5

    def test_stale_writer_is_rerun_against_fresh_row(self, make_product, default_loc):
        product = make_product()
        ledger.receive_stock(product_id=product.id, location_id=default_loc.id, quantity=5)
        calls = {"n": 0}

        def _op():
            calls["n"] += 1
            item = (
                db.session.query(StockItem)
                .filter_by(product_id=product.id, location_id=default_loc.id)
                .one()
            )
            if calls["n"] == 1:
                _bump_version(item.id)
            item.quantity = item.quantity + 3
            db.session.flush()
            return item.quantity

        assert run_in_transaction(_op, backoff_base=0) == 8
        assert calls["n"] == 2
        assert ledger.get_quantity_at(product.id, default_loc.id) == 8

    def test_successful_write_advances_version(self, make_product, default_loc):
        product = make_product()
        ledger.receive_stock(product_id=product.id, location_id=default_loc.id, quantity=5)
        item = db.session.query(StockItem).filter_by(product_id=product.id).one()
        version = item.version_id

        ledger.receive_stock(product_id=product.id, location_id=default_loc.id, quantity=1)
        db.session.refresh(item)

        assert item.version_id == version + 1
        assert db.session.get(Product, product.id).current_stock == 6
