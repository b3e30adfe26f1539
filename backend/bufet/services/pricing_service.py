# Overview: Pricing engine; FIFO batch costing with promotional price override.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from ..models import Product, StockBatch
from ..validation import require_positive_int
from bufet.time_utils import utcnow
from . import inventory_service


class InsufficientStockError(ValueError):
    """Requested more units than all batches hold together. Nothing was consumed."""

    def __init__(self, available: int, requested: int):
        super().__init__("Insufficient stock")
        self.available = available
        self.requested = requested

    @property
    def details(self) -> dict:
        return {"available": self.available, "requested": self.requested}


class NoStockError(ValueError):
    """The product has no stock at all, so there is nothing to price."""


@dataclass
class Allocation:
    batch_id: int
    quantity: int
    price_cents: int

    def to_dict(self) -> dict:
        return {"batch_id": self.batch_id, "quantity": self.quantity, "price_cents": self.price_cents}


@dataclass
class Quote:
    quantity: int
    total_cents: int
    unit_price_cents: int
    is_sale: bool
    available_stock: int
    breakdown: list[dict] = field(default_factory=list)
    allocations: list[Allocation] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "quantity": self.quantity,
            "total_cents": self.total_cents,
            "unit_price_cents": self.unit_price_cents,
            "available_stock": self.available_stock,
            "is_sale": self.is_sale,
            "breakdown": list(self.breakdown),
        }


def _round_half_up(numerator: int, denominator: int) -> int:
    return (numerator + denominator // 2) // denominator


def quote(
    product: Product,
    quantity: int,
    batches: list[StockBatch] | None = None,
    *,
    now: datetime | None = None,
) -> Quote:
    """
    Price `quantity` units of `product`.

    - Active promotion: sale_price * quantity, one breakdown line. Batch costs are ignored.
    - Otherwise FIFO: each batch touched contributes min(remaining, batch.quantity)
      units at its own cost, one breakdown line per batch.

    Allocations always walk the batches FIFO, carrying the price actually charged,
    so the purchase transaction knows which rows to decrement.

    unit_price_cents is display-only (half-up rounded average for FIFO);
    the exact amount to debit is total_cents.
    """
    require_positive_int("quantity", quantity)
    if batches is None:
        batches = inventory_service.batches_oldest_first(product.id)

    available = sum(b.quantity for b in batches)
    if available < quantity:
        raise InsufficientStockError(available=available, requested=quantity)

    on_sale = product.has_active_sale(now or utcnow())

    remaining = quantity
    total = 0
    breakdown: list[dict] = []
    allocations: list[Allocation] = []
    for batch in batches:
        if remaining == 0:
            break
        take = min(remaining, batch.quantity)
        unit = product.sale_price_cents if on_sale else batch.price_cents
        allocations.append(Allocation(batch_id=batch.id, quantity=take, price_cents=unit))
        if not on_sale:
            breakdown.append({"quantity": take, "price_cents": batch.price_cents})
        total += take * unit
        remaining -= take

    if on_sale:
        return Quote(
            quantity=quantity,
            total_cents=product.sale_price_cents * quantity,
            unit_price_cents=product.sale_price_cents,
            is_sale=True,
            available_stock=available,
            breakdown=[{"quantity": quantity, "price_cents": product.sale_price_cents}],
            allocations=allocations,
        )

    return Quote(
        quantity=quantity,
        total_cents=total,
        unit_price_cents=_round_half_up(total, quantity),
        is_sale=False,
        available_stock=available,
        breakdown=breakdown,
        allocations=allocations,
    )


def preview(product_id: int, quantity: int = 1) -> Quote:
    """Price preview shown before a purchase. Read-only."""
    require_positive_int("quantity", quantity)
    product = inventory_service.get_product(product_id)
    batches = inventory_service.batches_oldest_first(product.id)
    if not batches:
        raise NoStockError("Product is out of stock")
    return quote(product, quantity, batches)
