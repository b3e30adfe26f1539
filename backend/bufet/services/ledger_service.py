# Overview: Ledger store; append-only account entries, derived balances, deposits.

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func

from ..extensions import db
from ..models import AccountEntry, ShortageContribution, User
from ..validation import NotFoundError, ValidationError, require_positive_int
from .concurrency import run_with_retry
"""
Bufet Ledger Invariants (authoritative)

- Append-only: AccountEntry rows are inserted, never updated or deleted.
- balance(user) == SUM(amount_cents) over the user's entries, computed on read.
  No balance is stored anywhere.
- Balances are unbounded in both directions; debt limits are policy, not ledger rules.
- Entries are written inside the same DB transaction as the business event they record.
"""

logger = logging.getLogger(__name__)

DEFAULT_DEPOSIT_DESCRIPTION = "Deposit / debt settlement"
CONTRIBUTION_DESCRIPTION = "Shortage contribution"


@dataclass
class DepositResult:
    user: User
    entry: AccountEntry
    contribution: ShortageContribution | None
    total_paid_cents: int
    previous_balance_cents: int
    new_balance_cents: int

    def to_dict(self) -> dict:
        contribution_cents = self.contribution.amount_cents if self.contribution else 0
        return {
            "deposit": {
                "user_id": self.user.id,
                "user_email": self.user.email,
                "amount_cents": self.entry.amount_cents,
                "description": self.entry.description,
                "contribution_cents": contribution_cents,
                "total_paid_cents": self.total_paid_cents,
            },
            "previous_balance_cents": self.previous_balance_cents,
            "new_balance_cents": self.new_balance_cents,
        }


def get_user(user_id: int) -> User:
    user = db.session.query(User).filter_by(id=user_id).first()
    if user is None:
        raise NotFoundError("User not found", details={"user_id": user_id})
    return user


def append_entry(*, user_id: int, amount_cents: int, description: str | None = None) -> AccountEntry:
    """
    Append one ledger line. Flushes, does not commit.

    amount_cents is negative for a purchase, positive for a deposit. It is zero only
    for a deposit paid entirely into the shortage pot.
    """
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool):
        raise ValidationError("amount_cents must be an integer")

    entry = AccountEntry(user_id=user_id, amount_cents=amount_cents, description=description)
    db.session.add(entry)
    db.session.flush()
    return entry


def balance_cents(user_id: int) -> int:
    q = db.session.query(
        func.coalesce(func.sum(AccountEntry.amount_cents), 0)
    ).filter(AccountEntry.user_id == user_id)
    return int(q.scalar() or 0)


def _balances_query():
    balance = func.coalesce(func.sum(AccountEntry.amount_cents), 0).label("balance_cents")
    q = db.session.query(User, balance).outerjoin(
        AccountEntry, AccountEntry.user_id == User.id
    ).group_by(User.id)
    return q, balance


def _balance_row(user: User, balance: int) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "balance_cents": int(balance or 0),
    }


def get_balance(user_id: int) -> dict:
    user = get_user(user_id)
    return _balance_row(user, balance_cents(user_id))


def list_balances(order_by: str = "balance") -> list[dict]:
    """Balance of every user; users without entries show 0."""
    q, balance = _balances_query()
    if order_by == "email":
        q = q.order_by(User.email.asc())
    else:
        q = q.order_by(balance.asc(), User.email.asc())
    return [_balance_row(user, bal) for user, bal in q.all()]


def list_debtors(below_cents: int = 0) -> list[dict]:
    """Users whose balance is strictly below below_cents, most indebted first."""
    q, balance = _balances_query()
    q = q.having(balance < below_cents).order_by(balance.asc(), User.email.asc())
    return [_balance_row(user, bal) for user, bal in q.all()]


def history(user_id: int, limit: int | None = None) -> list[dict]:
    """
    Ledger lines newest first, each with the balance right after it.

    running_balance_cents is a window sum in (created_at, id) order, so the
    newest line's running balance always equals balance_cents(user_id).
    """
    running = func.sum(AccountEntry.amount_cents).over(
        partition_by=AccountEntry.user_id,
        order_by=(AccountEntry.created_at.asc(), AccountEntry.id.asc()),
    ).label("running_balance_cents")

    inner = db.session.query(
        AccountEntry.id.label("id"),
        running,
    ).filter(AccountEntry.user_id == user_id).subquery()

    q = db.session.query(AccountEntry, inner.c.running_balance_cents).join(
        inner, inner.c.id == AccountEntry.id
    ).order_by(
        AccountEntry.created_at.desc(),
        AccountEntry.id.desc(),
    )
    if limit is not None:
        q = q.limit(limit)

    return [
        {**entry.to_dict(), "running_balance_cents": int(run)}
        for entry, run in q.all()
    ]


def deposit(
    *,
    user_id: int,
    amount_cents: int,
    recorded_by: int | None,
    note: str | None = None,
    contribution_cents: int = 0,
) -> DepositResult:
    """
    Record money handed to staff.

    amount_cents is the total paid. contribution_cents of it goes to the common
    shortage pot (ShortageContribution); the rest is credited to the user's
    ledger. Both rows commit together.

    A confirmation email is attempted after commit; failing to send it never
    undoes the deposit.
    """
    require_positive_int("amount_cents", amount_cents)
    contribution_cents = contribution_cents or 0
    if not isinstance(contribution_cents, int) or isinstance(contribution_cents, bool) or contribution_cents < 0:
        raise ValidationError("contribution_cents must be a non-negative integer")
    if contribution_cents > amount_cents:
        raise ValidationError("contribution_cents cannot exceed amount_cents")

    def _op():
        user = get_user(user_id)
        previous = balance_cents(user.id)

        entry = append_entry(
            user_id=user.id,
            amount_cents=amount_cents - contribution_cents,
            description=note or DEFAULT_DEPOSIT_DESCRIPTION,
        )

        contribution = None
        if contribution_cents > 0:
            contribution = ShortageContribution(
                user_id=user.id,
                amount_cents=contribution_cents,
                description=CONTRIBUTION_DESCRIPTION,
                recorded_by=recorded_by,
            )
            db.session.add(contribution)
            db.session.flush()

        new_balance = balance_cents(user.id)
        db.session.commit()

        return DepositResult(
            user=user,
            entry=entry,
            contribution=contribution,
            total_paid_cents=amount_cents,
            previous_balance_cents=previous,
            new_balance_cents=new_balance,
        )

    result = run_with_retry(_op)
    _send_deposit_confirmation(result)
    return result


def _send_deposit_confirmation(result: DepositResult) -> None:
    from . import notification_service

    try:
        notification_service.send_notification(
            notification_service.KIND_DEPOSIT,
            result.user.email,
            {
                "name": result.user.name,
                "total_paid_cents": result.total_paid_cents,
                "deposited_cents": result.entry.amount_cents,
                "contribution_cents": result.contribution.amount_cents if result.contribution else 0,
                "previous_balance_cents": result.previous_balance_cents,
                "new_balance_cents": result.new_balance_cents,
            },
        )
    except notification_service.NotificationError:
        logger.exception("Failed to send deposit confirmation to %s", result.user.email)
