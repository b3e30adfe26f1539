# Overview: Batch inventory store; FIFO stock layers per product.

# backend/bufet/services/inventory_service.py

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Product, StockBatch
from ..validation import NotFoundError, require_non_negative_int, require_positive_int
from .concurrency import lock_for_update
"""
Bufet Inventory Invariants (authoritative)

Inventory model:
- Stock is batch-derived: total stock = SUM(quantity) over the product's batches.
  There is no stock counter on Product.
- Each delivery is its own batch with its own immutable unit cost (price_cents).
- Batches are consumed oldest-first: ORDER BY created_at, id.

Business invariants:
- quantity >= 0 on every batch, enforced in code and by a CHECK constraint.
- Empty batches stay in the table as history but are invisible to consumption
  and totals.
- Only replace_all() (reconciliation) deletes batches.

Transactions:
- Nothing in this module commits. Callers (purchase, reconciliation, add-stock)
  own the transaction so batch changes land together with their ledger/audit rows.
"""


class InsufficientBatchQuantity(RuntimeError):
    """
    A consume() asked for more than the batch holds.

    Allocation is computed from the same locked rows, so reaching this means
    a bug upstream. It is deliberately not a ValueError: routes must not
    turn it into a client error.
    """

    def __init__(self, batch_id: int, available: int, requested: int):
        super().__init__(
            f"batch {batch_id} holds {available} units, cannot consume {requested}"
        )
        self.batch_id = batch_id
        self.available = available
        self.requested = requested


def get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def total_stock(product_id: int) -> int:
    q = db.session.query(
        func.coalesce(func.sum(StockBatch.quantity), 0)
    ).filter(
        StockBatch.product_id == product_id,
        StockBatch.quantity > 0,
    )
    return int(q.scalar() or 0)


def stock_by_product() -> dict[int, int]:
    """Total stock for every product that has any, keyed by product id."""
    rows = db.session.query(
        StockBatch.product_id,
        func.sum(StockBatch.quantity),
    ).filter(
        StockBatch.quantity > 0,
    ).group_by(StockBatch.product_id).all()
    return {product_id: int(qty) for product_id, qty in rows}


def batches_oldest_first(product_id: int, *, lock: bool = False) -> list[StockBatch]:
    """
    Non-empty batches in FIFO order.

    lock=True selects FOR UPDATE so a purchase holds the rows it is about to decrement.
    """
    q = db.session.query(StockBatch).filter(
        StockBatch.product_id == product_id,
        StockBatch.quantity > 0,
    ).order_by(
        StockBatch.created_at.asc(),
        StockBatch.id.asc(),
    )
    if lock:
        q = lock_for_update(q)
    return q.all()


def weighted_average_cost_cents(product_id: int) -> int | None:
    """
    Quantity-weighted average unit cost over non-empty batches:
        sum(qty * price_cents) / sum(qty)  (nearest-cent rounding, half-up)

    Returns None when the product has no stock.
    """
    row = db.session.query(
        func.coalesce(func.sum(StockBatch.quantity), 0).label("units"),
        func.coalesce(func.sum(StockBatch.quantity * StockBatch.price_cents), 0).label("cost"),
    ).filter(
        StockBatch.product_id == product_id,
        StockBatch.quantity > 0,
    ).one()

    total_units = int(row.units or 0)
    if total_units <= 0:
        return None

    total_cost = int(row.cost or 0)
    # nearest-cent rounding (half-up)
    return (total_cost + (total_units // 2)) // total_units


def add_batch(product_id: int, quantity: int, unit_cost_cents: int) -> StockBatch:
    """Create a new FIFO layer. Flushes so the batch id is assigned; does not commit."""
    require_positive_int("quantity", quantity)
    require_positive_int("unit_cost_cents", unit_cost_cents)
    get_product(product_id)

    batch = StockBatch(
        product_id=product_id,
        quantity=quantity,
        price_cents=unit_cost_cents,
    )
    db.session.add(batch)
    db.session.flush()
    return batch


def consume(batch: StockBatch, amount: int) -> None:
    """Decrement a batch. The version check happens when the session flushes."""
    require_positive_int("amount", amount)
    if amount > batch.quantity:
        raise InsufficientBatchQuantity(batch.id, batch.quantity, amount)
    batch.quantity = batch.quantity - amount


def replace_all(product_id: int, new_quantity: int, unit_cost_cents: int) -> StockBatch | None:
    """
    Collapse a product's stock into a single batch.

    Deletes every batch (empty history rows included) and, if new_quantity > 0,
    creates exactly one batch at unit_cost_cents. Used by reconciliation only.
    """
    require_non_negative_int("new_quantity", new_quantity)

    existing = lock_for_update(
        db.session.query(StockBatch).filter(StockBatch.product_id == product_id)
    ).all()
    for batch in existing:
        db.session.delete(batch)
    db.session.flush()

    if new_quantity == 0:
        return None

    require_positive_int("unit_cost_cents", unit_cost_cents)
    batch = StockBatch(
        product_id=product_id,
        quantity=new_quantity,
        price_cents=unit_cost_cents,
    )
    db.session.add(batch)
    db.session.flush()
    return batch


def list_stock() -> list[dict]:
    """Non-empty batches for the staff stock view, grouped by product name then age."""
    rows = db.session.query(StockBatch, Product.name, Product.ean).join(
        Product, StockBatch.product_id == Product.id
    ).filter(
        StockBatch.quantity > 0,
    ).order_by(
        Product.name.asc(),
        StockBatch.created_at.asc(),
        StockBatch.id.asc(),
    ).all()

    return [
        {**batch.to_dict(), "product_name": name, "product_ean": ean}
        for batch, name, ean in rows
    ]
