"""
Purchase transaction tests.

Verifies:
- FIFO consumption and exact ledger debit
- No oversell; failures leave batches and ledger untouched
- Sale price charged while active
"""

from datetime import timedelta

import pytest

from bufet.models import AccountEntry, StockBatch
from bufet.services import inventory_service, ledger_service, purchase_service
from bufet.services.pricing_service import InsufficientStockError
from bufet.time_utils import utcnow
from bufet.validation import NotFoundError, ValidationError


class TestPurchase:

    def test_fifo_purchase_debits_exact_total(self, db_session, user, make_product):
        product = make_product(name="Kofola", batches=[(5, 100), (5, 120)])

        result = purchase_service.purchase(user_id=user.id, product_id=product.id, quantity=7)

        assert result.total_cents == 740
        assert result.new_balance_cents == -740
        assert result.entry.amount_cents == -740
        assert result.entry.description == "Purchase: 7x Kofola"
        batches = inventory_service.batches_oldest_first(product.id)
        assert [(b.quantity, b.price_cents) for b in batches] == [(3, 120)]

    def test_first_batch_drained_is_kept_as_history(self, db_session, user, make_product):
        product = make_product(batches=[(2, 100), (2, 120)])
        purchase_service.purchase(user_id=user.id, product_id=product.id, quantity=2)

        rows = db_session.query(StockBatch).filter_by(product_id=product.id).order_by(StockBatch.id).all()
        assert [r.quantity for r in rows] == [0, 2]
        assert inventory_service.total_stock(product.id) == 2

    def test_sale_price_charged(self, db_session, user, make_product):
        product = make_product(batches=[(5, 100), (5, 120)])
        product.sale_price_cents = 50
        product.sale_expires_at = utcnow() + timedelta(hours=2)
        db_session.commit()

        result = purchase_service.purchase(user_id=user.id, product_id=product.id, quantity=7)
        assert result.is_sale is True
        assert result.total_cents == 350
        assert inventory_service.total_stock(product.id) == 3

    def test_balances_accumulate(self, db_session, user, make_product):
        product = make_product(batches=[(10, 90)])
        purchase_service.purchase(user_id=user.id, product_id=product.id, quantity=1)
        result = purchase_service.purchase(user_id=user.id, product_id=product.id, quantity=2)
        assert result.new_balance_cents == -270
        assert ledger_service.balance_cents(user.id) == -270

    def test_new_balance_includes_existing_credit(self, db_session, user, make_product):
        ledger_service.append_entry(user_id=user.id, amount_cents=1000, description="cash")
        db_session.commit()
        product = make_product(batches=[(5, 100), (5, 120)])

        result = purchase_service.purchase(user_id=user.id, product_id=product.id, quantity=7)

        assert result.new_balance_cents == 260
        assert result.to_dict()["allocations"][0] == {
            "batch_id": result.allocations[0].batch_id, "quantity": 5, "price_cents": 100,
        }


class TestPurchaseFailures:

    def test_insufficient_stock_changes_nothing(self, db_session, user, make_product):
        product = make_product(batches=[(2, 100), (1, 120)])

        with pytest.raises(InsufficientStockError) as exc:
            purchase_service.purchase(user_id=user.id, product_id=product.id, quantity=4)

        assert exc.value.available == 3
        assert exc.value.requested == 4
        assert inventory_service.total_stock(product.id) == 3
        assert db_session.query(AccountEntry).count() == 0

    def test_no_stock_at_all(self, db_session, user, make_product):
        product = make_product()
        with pytest.raises(InsufficientStockError):
            purchase_service.purchase(user_id=user.id, product_id=product.id, quantity=1)

    def test_unknown_product(self, db_session, user):
        with pytest.raises(NotFoundError):
            purchase_service.purchase(user_id=user.id, product_id=999, quantity=1)

    def test_unknown_user_rolls_back(self, db_session, make_product):
        product = make_product(batches=[(5, 100)])
        with pytest.raises(NotFoundError):
            purchase_service.purchase(user_id=999, product_id=product.id, quantity=1)
        assert inventory_service.total_stock(product.id) == 5

    @pytest.mark.parametrize("quantity", [0, -3, True])
    def test_invalid_quantity(self, db_session, user, make_product, quantity):
        product = make_product(batches=[(5, 100)])
        with pytest.raises(ValidationError):
            purchase_service.purchase(user_id=user.id, product_id=product.id, quantity=quantity)

    def test_failure_after_consumption_rolls_back_everything(self, db_session, user, make_product, monkeypatch):
        product = make_product(batches=[(5, 100)])

        def _broken_append(**kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(ledger_service, "append_entry", _broken_append)

        with pytest.raises(RuntimeError):
            purchase_service.purchase(user_id=user.id, product_id=product.id, quantity=2)

        db_session.expire_all()
        assert inventory_service.total_stock(product.id) == 5
        assert db_session.query(AccountEntry).count() == 0
