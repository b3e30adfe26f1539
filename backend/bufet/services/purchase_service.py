# Overview: Purchase transaction; FIFO consumption plus ledger debit as one unit.

"""
Self-service purchase.

One purchase is one database transaction:
  lock batches -> check stock -> price -> consume batches -> debit ledger -> commit

A lost race on a batch row surfaces as StaleDataError at flush (version_id_col)
or as an OperationalError on a locked database. run_with_retry rolls back and
re-runs the whole unit, so stock is re-read and re-validated before any retry
spends it. No notification is sent for purchases.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..extensions import db
from ..models import AccountEntry
from ..validation import require_positive_int
from . import inventory_service, ledger_service, pricing_service
from .concurrency import run_with_retry
from .pricing_service import Allocation, InsufficientStockError


@dataclass
class PurchaseResult:
    product_id: int
    product_name: str
    quantity: int
    total_cents: int
    unit_price_cents: int
    is_sale: bool
    new_balance_cents: int
    entry: AccountEntry
    allocations: list[Allocation] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "total_cents": self.total_cents,
            "unit_price_cents": self.unit_price_cents,
            "is_sale": self.is_sale,
            "new_balance_cents": self.new_balance_cents,
            "entry": self.entry.to_dict(),
            "allocations": [a.to_dict() for a in self.allocations],
        }


def purchase_description(quantity: int, product_name: str) -> str:
    return f"Purchase: {quantity}x {product_name}"


def purchase(*, user_id: int, product_id: int, quantity: int) -> PurchaseResult:
    """
    Buy `quantity` units of a product on the user's account.

    Raises NotFoundError (product or user), ValidationError (quantity) or
    InsufficientStockError (state unchanged).
    """
    require_positive_int("quantity", quantity)

    def _op():
        product = inventory_service.get_product(product_id)
        user = ledger_service.get_user(user_id)

        batches = inventory_service.batches_oldest_first(product.id, lock=True)
        available = sum(b.quantity for b in batches)
        if available < quantity:
            raise InsufficientStockError(available=available, requested=quantity)

        priced = pricing_service.quote(product, quantity, batches)

        by_id = {b.id: b for b in batches}
        for alloc in priced.allocations:
            inventory_service.consume(by_id[alloc.batch_id], alloc.quantity)

        entry = ledger_service.append_entry(
            user_id=user.id,
            amount_cents=-priced.total_cents,
            description=purchase_description(quantity, product.name),
        )

        # balance within this transaction, debit included
        new_balance = ledger_service.balance_cents(user.id)
        db.session.commit()

        return PurchaseResult(
            product_id=product.id,
            product_name=product.name,
            quantity=quantity,
            total_cents=priced.total_cents,
            unit_price_cents=priced.unit_price_cents,
            is_sale=priced.is_sale,
            new_balance_cents=new_balance,
            entry=entry,
            allocations=priced.allocations,
        )

    return run_with_retry(_op)
