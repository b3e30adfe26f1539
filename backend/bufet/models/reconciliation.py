from __future__ import annotations

from ..extensions import db
from bufet.time_utils import to_utc_z, utcnow


class StockAdjustment(db.Model):
    """
    Audit record of one physical stock count.

    APPEND-ONLY: written in the same transaction that collapses the product's
    batches to the counted quantity, and never edited afterwards. The one
    exception is deleting an emptied product: product_id is set to NULL and
    product_name / unit_price_cents (recorded at count time) keep the row
    readable and valued.

    difference = actual_quantity - expected_quantity
    - difference < 0 and not is_write_off: shortage (loss nobody accounted for)
    - difference < 0 and is_write_off: sanctioned removal (expired goods, breakage)
    - difference > 0: surplus
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.CheckConstraint("actual_quantity >= 0", name="ck_stock_adjustments_actual_nonnegative"),
        db.Index("ix_stock_adjustments_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True
    )
    product_name = db.Column(db.String(255), nullable=True)
    unit_price_cents = db.Column(db.Integer, nullable=True)

    expected_quantity = db.Column(db.Integer, nullable=False)
    actual_quantity = db.Column(db.Integer, nullable=False)
    difference = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    is_write_off = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "unit_price_cents": self.unit_price_cents,
            "expected_quantity": self.expected_quantity,
            "actual_quantity": self.actual_quantity,
            "difference": self.difference,
            "reason": self.reason,
            "created_by": self.created_by,
            "is_write_off": self.is_write_off,
            "created_at": to_utc_z(self.created_at),
        }


class ShortageAcknowledgement(db.Model):
    """
    Per-user "seen up to" watermark for shortage warnings (one row per user, upserted).

    shortage_total is a snapshot of the global shortage units at acknowledgement time.
    """
    __tablename__ = "shortage_acknowledgements"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True)

    acknowledged_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    shortage_total = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "acknowledged_at": to_utc_z(self.acknowledged_at),
            "shortage_total": self.shortage_total,
        }
