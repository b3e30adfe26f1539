"""
Pricing engine tests.

Verifies:
- FIFO total across batches (5@100 + 5@120, buy 7 = 740)
- Promotion overrides batch costs only while it is active
- Shortfall raises without partial fill
"""

from datetime import timedelta

import pytest

from bufet.services import pricing_service
from bufet.services.pricing_service import InsufficientStockError, NoStockError
from bufet.time_utils import utcnow
from bufet.validation import NotFoundError, ValidationError


class TestFifoQuote:

    def test_spans_two_batches(self, db_session, make_product):
        product = make_product(batches=[(5, 100), (5, 120)])
        q = pricing_service.quote(product, 7)

        assert q.total_cents == 740
        assert q.breakdown == [
            {"quantity": 5, "price_cents": 100},
            {"quantity": 2, "price_cents": 120},
        ]
        assert q.unit_price_cents == 106  # 105.71 half-up
        assert q.is_sale is False
        assert q.available_stock == 10

    def test_single_batch(self, db_session, make_product):
        product = make_product(batches=[(5, 100), (5, 120)])
        q = pricing_service.quote(product, 3)
        assert q.total_cents == 300
        assert len(q.breakdown) == 1

    def test_allocations_match_breakdown(self, db_session, make_product):
        product = make_product(batches=[(2, 100), (2, 110), (2, 120)])
        q = pricing_service.quote(product, 5)
        assert [(a.quantity, a.price_cents) for a in q.allocations] == [(2, 100), (2, 110), (1, 120)]
        assert q.total_cents == 2 * 100 + 2 * 110 + 120

    def test_unit_price_display_rounds_half_up(self, db_session, make_product):
        # 101 + 102 = 203 / 2 = 101.5 -> 102
        product = make_product(batches=[(1, 101), (1, 102)])
        q = pricing_service.quote(product, 2)
        assert q.total_cents == 203
        assert q.unit_price_cents == 102


class TestShortfall:

    def test_insufficient_stock(self, db_session, make_product):
        product = make_product(batches=[(2, 100), (1, 120)])
        with pytest.raises(InsufficientStockError) as exc:
            pricing_service.quote(product, 4)
        assert exc.value.details == {"available": 3, "requested": 4}

    @pytest.mark.parametrize("quantity", [0, -1, True, 2.0])
    def test_invalid_quantity(self, db_session, make_product, quantity):
        product = make_product(batches=[(5, 100)])
        with pytest.raises(ValidationError):
            pricing_service.quote(product, quantity)


class TestSaleOverride:

    def test_active_sale_ignores_batch_costs(self, db_session, make_product):
        product = make_product(batches=[(5, 100), (5, 120)])
        product.sale_price_cents = 80
        product.sale_expires_at = utcnow() + timedelta(days=1)
        db_session.commit()

        q = pricing_service.quote(product, 7)
        assert q.is_sale is True
        assert q.total_cents == 560
        assert q.unit_price_cents == 80
        assert q.breakdown == [{"quantity": 7, "price_cents": 80}]
        # units still come out of the oldest batches first
        assert [(a.quantity, a.price_cents) for a in q.allocations] == [(5, 80), (2, 80)]

    def test_expired_sale_reverts_to_fifo(self, db_session, make_product):
        product = make_product(batches=[(5, 100), (5, 120)])
        product.sale_price_cents = 80
        product.sale_expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        q = pricing_service.quote(product, 7)
        assert q.is_sale is False
        assert q.total_cents == 740

    def test_sale_without_expiry_is_inactive(self, db_session, make_product):
        product = make_product(batches=[(5, 100)])
        product.sale_price_cents = 80
        db_session.commit()
        assert pricing_service.quote(product, 1).total_cents == 100

    def test_sale_still_needs_stock(self, db_session, make_product):
        product = make_product(batches=[(1, 100)])
        product.sale_price_cents = 80
        product.sale_expires_at = utcnow() + timedelta(days=1)
        db_session.commit()
        with pytest.raises(InsufficientStockError):
            pricing_service.quote(product, 2)


class TestPreview:

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            pricing_service.preview(12345, 1)

    def test_no_stock(self, db_session, make_product):
        product = make_product(batches=[(0, 100)])
        with pytest.raises(NoStockError):
            pricing_service.preview(product.id, 1)

    def test_does_not_consume(self, db_session, make_product):
        product = make_product(batches=[(5, 100), (5, 120)])
        pricing_service.preview(product.id, 7)
        pricing_service.preview(product.id, 7)
        assert pricing_service.preview(product.id, 7).total_cents == 740
