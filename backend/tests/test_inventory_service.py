"""
Batch inventory store tests.

Verifies:
- Stock is the sum of non-empty batches
- FIFO order is (created_at, id)
- add_batch / consume / replace_all guard their inputs
"""

from datetime import timedelta

import pytest

from bufet.extensions import db
from bufet.models import StockBatch
from bufet.services import inventory_service
from bufet.services.inventory_service import InsufficientBatchQuantity
from bufet.time_utils import utcnow
from bufet.validation import NotFoundError, ValidationError


class TestStockTotals:

    def test_total_stock_sums_batches(self, db_session, make_product):
        product = make_product(batches=[(5, 100), (3, 120)])
        assert inventory_service.total_stock(product.id) == 8

    def test_total_stock_zero_without_batches(self, db_session, make_product):
        product = make_product()
        assert inventory_service.total_stock(product.id) == 0

    def test_empty_batches_ignored(self, db_session, make_product):
        product = make_product(batches=[(0, 90), (4, 100)])
        assert inventory_service.total_stock(product.id) == 4
        batches = inventory_service.batches_oldest_first(product.id)
        assert [b.quantity for b in batches] == [4]

    def test_stock_by_product(self, db_session, make_product):
        a = make_product(batches=[(2, 100), (3, 100)])
        b = make_product(batches=[(0, 100)])
        stock = inventory_service.stock_by_product()
        assert stock[a.id] == 5
        assert b.id not in stock


class TestFifoOrder:

    def test_oldest_first_by_created_at(self, db_session, make_product):
        product = make_product(batches=[(1, 100), (1, 200), (1, 300)])
        costs = [b.price_cents for b in inventory_service.batches_oldest_first(product.id)]
        assert costs == [100, 200, 300]

    def test_same_timestamp_falls_back_to_id(self, db_session, make_product):
        product = make_product()
        ts = utcnow() - timedelta(minutes=5)
        for cost in (300, 100, 200):
            db.session.add(StockBatch(product_id=product.id, quantity=1, price_cents=cost, created_at=ts))
        db.session.commit()

        costs = [b.price_cents for b in inventory_service.batches_oldest_first(product.id)]
        assert costs == [300, 100, 200]


class TestAddBatch:

    def test_creates_new_layer(self, db_session, make_product):
        product = make_product(batches=[(5, 100)])
        batch = inventory_service.add_batch(product.id, 3, 150)
        db.session.commit()

        assert batch.id is not None
        assert inventory_service.total_stock(product.id) == 8
        assert [b.price_cents for b in inventory_service.batches_oldest_first(product.id)] == [100, 150]

    @pytest.mark.parametrize("quantity,cost", [(0, 100), (-1, 100), (1, 0), (1, -5), (True, 100), (1.5, 100)])
    def test_rejects_non_positive_or_non_integer(self, db_session, make_product, quantity, cost):
        product = make_product()
        with pytest.raises(ValidationError):
            inventory_service.add_batch(product.id, quantity, cost)

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.add_batch(999, 1, 100)


class TestConsume:

    def test_decrements(self, db_session, make_product):
        product = make_product(batches=[(5, 100)])
        batch = inventory_service.batches_oldest_first(product.id)[0]
        inventory_service.consume(batch, 2)
        db.session.commit()
        assert inventory_service.total_stock(product.id) == 3

    def test_over_consumption_is_an_invariant_violation(self, db_session, make_product):
        product = make_product(batches=[(2, 100)])
        batch = inventory_service.batches_oldest_first(product.id)[0]
        with pytest.raises(InsufficientBatchQuantity) as exc:
            inventory_service.consume(batch, 3)
        assert not isinstance(exc.value, ValueError)
        assert batch.quantity == 2

    def test_version_bumps_on_write(self, db_session, make_product):
        product = make_product(batches=[(5, 100)])
        batch = inventory_service.batches_oldest_first(product.id)[0]
        before = batch.version_id
        inventory_service.consume(batch, 1)
        db.session.commit()
        assert batch.version_id == before + 1


class TestReplaceAll:

    def test_collapses_to_single_batch(self, db_session, make_product):
        product = make_product(batches=[(2, 100), (0, 80), (3, 120)])
        batch = inventory_service.replace_all(product.id, 7, 110)
        db.session.commit()

        rows = db.session.query(StockBatch).filter_by(product_id=product.id).all()
        assert len(rows) == 1
        assert rows[0].id == batch.id
        assert (rows[0].quantity, rows[0].price_cents) == (7, 110)

    def test_zero_leaves_no_batches(self, db_session, make_product):
        product = make_product(batches=[(2, 100), (3, 120)])
        assert inventory_service.replace_all(product.id, 0, 110) is None
        db.session.commit()
        assert db.session.query(StockBatch).filter_by(product_id=product.id).count() == 0


class TestWeightedAverage:

    def test_quantity_weighted_half_up(self, db_session, make_product):
        # (1*100 + 2*101) / 3 = 100.67 -> 101
        product = make_product(batches=[(1, 100), (2, 101)])
        assert inventory_service.weighted_average_cost_cents(product.id) == 101

    def test_exact_half_rounds_up(self, db_session, make_product):
        # (1*100 + 1*101) / 2 = 100.5 -> 101
        product = make_product(batches=[(1, 100), (1, 101)])
        assert inventory_service.weighted_average_cost_cents(product.id) == 101

    def test_none_without_stock(self, db_session, make_product):
        product = make_product(batches=[(0, 100)])
        assert inventory_service.weighted_average_cost_cents(product.id) is None


def test_list_stock_groups_by_product_name(db_session, make_product):
    make_product(name="Water", batches=[(1, 50)])
    make_product(name="Coffee", batches=[(2, 80), (0, 70), (1, 90)])

    rows = inventory_service.list_stock()
    assert [(r["product_name"], r["price_cents"]) for r in rows] == [
        ("Coffee", 80), ("Coffee", 90), ("Water", 50),
    ]
