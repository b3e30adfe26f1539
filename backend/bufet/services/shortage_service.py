# Overview: Shortage attribution; per-user warnings, acknowledgement watermark, global summary.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Product, ShortageAcknowledgement, ShortageContribution, StockAdjustment
from bufet.time_utils import to_utc_naive, to_utc_z, utcnow
from . import ledger_service


@dataclass
class ShortageWarning:
    has_warning: bool
    total_shortage_units: int = 0
    total_value_cents: int = 0
    shortage_since: datetime | None = None
    line_items: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "has_warning": self.has_warning,
            "total_shortage_units": self.total_shortage_units,
            "total_value_cents": self.total_value_cents,
            "shortage_since": to_utc_z(self.shortage_since),
            "line_items": list(self.line_items),
        }


def _unwritten_shortages():
    return db.session.query(StockAdjustment).filter(
        StockAdjustment.difference < 0,
        StockAdjustment.is_write_off.is_(False),
    )


def _unit_price():
    # current price while the product exists, the recorded one after it is deleted
    return func.coalesce(Product.price_cents, StockAdjustment.unit_price_cents, 0)


def _product_name():
    return func.coalesce(Product.name, StockAdjustment.product_name)


def _get_acknowledgement(user_id: int) -> ShortageAcknowledgement | None:
    return db.session.query(ShortageAcknowledgement).filter_by(user_id=user_id).first()


def warning_for(user_id: int) -> ShortageWarning:
    """
    Shortages the user has not seen yet.

    Only shortages recorded after both the user's account creation and their
    last acknowledgement count. Write-offs never do.
    """
    user = ledger_service.get_user(user_id)
    ack = _get_acknowledgement(user.id)

    cutoff = to_utc_naive(user.created_at)
    if ack is not None:
        cutoff = max(cutoff, to_utc_naive(ack.acknowledged_at))

    rows = _unwritten_shortages().filter(
        StockAdjustment.created_at > cutoff,
    ).outerjoin(
        Product, StockAdjustment.product_id == Product.id
    ).with_entities(
        StockAdjustment, _product_name(), _unit_price()
    ).order_by(
        StockAdjustment.created_at.desc(),
        StockAdjustment.id.desc(),
    ).all()

    total_units = 0
    total_value = 0
    items = []
    for adj, name, price_cents in rows:
        units = abs(adj.difference)
        value = units * price_cents
        total_units += units
        total_value += value
        items.append({
            "product_name": name,
            "difference": adj.difference,
            "quantity": units,
            "value_cents": value,
            "created_at": to_utc_z(adj.created_at),
        })

    if total_units == 0:
        return ShortageWarning(has_warning=False)

    return ShortageWarning(
        has_warning=True,
        total_shortage_units=total_units,
        total_value_cents=total_value,
        shortage_since=ack.acknowledged_at if ack else None,
        line_items=items,
    )


def global_shortage_units() -> int:
    """Lifetime shortage units across all products, write-offs excluded."""
    q = db.session.query(
        func.coalesce(func.sum(-StockAdjustment.difference), 0)
    ).filter(
        StockAdjustment.difference < 0,
        StockAdjustment.is_write_off.is_(False),
    )
    return int(q.scalar() or 0)


def acknowledge(user_id: int) -> ShortageAcknowledgement:
    """Move the user's watermark to now. One row per user, updated in place."""
    user = ledger_service.get_user(user_id)
    ack = _get_acknowledgement(user.id)
    if ack is None:
        ack = ShortageAcknowledgement(user_id=user.id)
        db.session.add(ack)

    ack.acknowledged_at = utcnow()
    ack.shortage_total = global_shortage_units()
    db.session.commit()
    return ack


def shortage_summary() -> dict:
    """Lifetime shortage value (write-offs excluded) net of all contributions."""
    price = _unit_price()
    shortage_cents = db.session.query(
        func.coalesce(func.sum(-StockAdjustment.difference * price), 0)
    ).select_from(StockAdjustment).outerjoin(
        Product, StockAdjustment.product_id == Product.id
    ).filter(
        StockAdjustment.difference < 0,
        StockAdjustment.is_write_off.is_(False),
    ).scalar()

    contributions_cents = db.session.query(
        func.coalesce(func.sum(ShortageContribution.amount_cents), 0)
    ).scalar()

    shortage_cents = int(shortage_cents or 0)
    contributions_cents = int(contributions_cents or 0)
    return {
        "total_shortage_cents": shortage_cents,
        "total_contributions_cents": contributions_cents,
        "remaining_shortage_cents": shortage_cents - contributions_cents,
    }
