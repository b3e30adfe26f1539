"""
Shortage attribution tests.

Verifies:
- Only shortages after max(user created, last acknowledgement) are shown
- Write-offs never count
- acknowledge() snapshots the global lifetime total
- Summary nets contributions against shortage value
"""

from datetime import timedelta

import pytest

from bufet.models import ShortageAcknowledgement, StockAdjustment
from bufet.services import ledger_service, products_service, reconciliation_service, shortage_service
from bufet.time_utils import utcnow


@pytest.fixture
def record_adjustment(db_session):
    def _record(product, difference, *, at, is_write_off=False):
        adj = StockAdjustment(
            product_id=product.id,
            expected_quantity=10,
            actual_quantity=10 + difference,
            difference=difference,
            is_write_off=is_write_off,
            created_at=at,
        )
        db_session.add(adj)
        db_session.commit()
        return adj
    return _record


class TestWarning:

    def test_no_shortages_no_warning(self, db_session, user):
        warning = shortage_service.warning_for(user.id)
        assert warning.has_warning is False
        assert warning.total_shortage_units == 0
        assert warning.line_items == []

    def test_shortage_after_join_is_shown(self, db_session, user, make_product, record_adjustment):
        product = make_product(name="Mars", price_cents=90)
        record_adjustment(product, -3, at=utcnow() - timedelta(days=1))

        warning = shortage_service.warning_for(user.id)
        assert warning.has_warning is True
        assert warning.total_shortage_units == 3
        assert warning.total_value_cents == 270
        assert warning.shortage_since is None
        assert warning.line_items[0]["product_name"] == "Mars"
        assert warning.line_items[0]["difference"] == -3
        assert warning.line_items[0]["value_cents"] == 270

    def test_shortage_before_join_is_hidden(self, db_session, make_user, make_product, record_adjustment):
        product = make_product(price_cents=90)
        record_adjustment(product, -3, at=utcnow() - timedelta(days=10))
        newcomer = make_user(created_at=utcnow() - timedelta(days=2))

        assert shortage_service.warning_for(newcomer.id).has_warning is False

    def test_write_offs_excluded(self, db_session, user, make_product, record_adjustment):
        product = make_product(price_cents=90)
        record_adjustment(product, -5, at=utcnow() - timedelta(days=1), is_write_off=True)
        record_adjustment(product, -1, at=utcnow() - timedelta(hours=1))

        warning = shortage_service.warning_for(user.id)
        assert warning.total_shortage_units == 1
        assert len(warning.line_items) == 1

    def test_surplus_ignored(self, db_session, user, make_product, record_adjustment):
        product = make_product(price_cents=90)
        record_adjustment(product, 4, at=utcnow() - timedelta(days=1))
        assert shortage_service.warning_for(user.id).has_warning is False

    def test_line_items_newest_first(self, db_session, user, make_product, record_adjustment):
        a = make_product(name="A", price_cents=10)
        b = make_product(name="B", price_cents=20)
        record_adjustment(a, -1, at=utcnow() - timedelta(days=3))
        record_adjustment(b, -2, at=utcnow() - timedelta(days=1))

        names = [item["product_name"] for item in shortage_service.warning_for(user.id).line_items]
        assert names == ["B", "A"]


class TestAcknowledge:

    def test_acknowledge_hides_earlier_shortages(self, db_session, user, make_product, record_adjustment):
        product = make_product(price_cents=90)
        record_adjustment(product, -3, at=utcnow() - timedelta(days=1))

        ack = shortage_service.acknowledge(user.id)
        assert ack.shortage_total == 3
        assert shortage_service.warning_for(user.id).has_warning is False

        record_adjustment(product, -2, at=utcnow() + timedelta(seconds=1))
        warning = shortage_service.warning_for(user.id)
        assert warning.has_warning is True
        assert warning.total_shortage_units == 2
        assert warning.shortage_since is not None

    def test_acknowledge_upserts_single_row(self, db_session, user):
        shortage_service.acknowledge(user.id)
        shortage_service.acknowledge(user.id)
        assert db_session.query(ShortageAcknowledgement).filter_by(user_id=user.id).count() == 1

    def test_snapshot_is_global_and_lifetime(self, db_session, make_user, make_product, record_adjustment):
        product = make_product(price_cents=90)
        record_adjustment(product, -4, at=utcnow() - timedelta(days=100))
        record_adjustment(product, -6, at=utcnow() - timedelta(days=1), is_write_off=True)
        newcomer = make_user(created_at=utcnow() - timedelta(days=2))

        ack = shortage_service.acknowledge(newcomer.id)
        assert ack.shortage_total == 4


class TestSummary:

    def test_nets_contributions(self, db_session, user, staff, make_product, record_adjustment, sent_notifications):
        product = make_product(price_cents=150)
        record_adjustment(product, -4, at=utcnow() - timedelta(days=1))
        record_adjustment(product, -10, at=utcnow() - timedelta(days=1), is_write_off=True)
        ledger_service.deposit(user_id=user.id, amount_cents=1000, recorded_by=staff.id, contribution_cents=200)

        summary = shortage_service.shortage_summary()
        assert summary == {
            "total_shortage_cents": 600,
            "total_contributions_cents": 200,
            "remaining_shortage_cents": 400,
        }

    def test_empty(self, db_session):
        assert shortage_service.shortage_summary()["remaining_shortage_cents"] == 0

    def test_write_offs_never_counted(self, db_session, user, make_product, record_adjustment):
        product = make_product(price_cents=150)
        record_adjustment(product, -10, at=utcnow() - timedelta(days=1), is_write_off=True)

        assert shortage_service.shortage_summary()["total_shortage_cents"] == 0
        assert shortage_service.warning_for(user.id).has_warning is False
        assert shortage_service.global_shortage_units() == 0


class TestDeletedProduct:

    def test_shortage_survives_product_deletion(self, db_session, user, staff, make_product):
        product = make_product(name="Mars", price_cents=90, batches=[(5, 80)])
        reconciliation_service.reconcile(product_id=product.id, actual_quantity=0, staff_user_id=staff.id)

        products_service.delete_product(product.id)

        adjustment = db_session.query(StockAdjustment).one()
        assert adjustment.product_id is None
        assert shortage_service.shortage_summary()["total_shortage_cents"] == 450
        warning = shortage_service.warning_for(user.id)
        assert warning.total_value_cents == 450
        assert warning.line_items[0]["product_name"] == "Mars"
