from __future__ import annotations

from ..extensions import db
from bufet.time_utils import to_utc_z, utcnow


class AccountEntry(db.Model):
    """
    One signed line of a user's account.

    APPEND-ONLY: rows are never updated or deleted.
    amount_cents < 0 is a purchase (debit), > 0 a deposit (credit).

    There is no balance column anywhere in the schema. A balance is always
    SUM(amount_cents) over the user's entries, so it cannot drift from history.
    """
    __tablename__ = "account_entries"
    __table_args__ = (
        db.Index("ix_account_entries_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    user = db.relationship("User", backref=db.backref("account_entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class ShortageContribution(db.Model):
    """
    Money a user voluntarily paid toward the common shortage.

    Recorded together with a deposit, but kept out of the user's personal
    ledger: the contribution part of a deposit never reaches account_entries.
    """
    __tablename__ = "shortage_contributions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    recorded_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "recorded_by": self.recorded_by,
            "created_at": to_utc_z(self.created_at),
        }
