# Overview: Inventory reconciliation; physical count replaces batch stock and leaves an audit row.

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func

from ..extensions import db
from ..models import Product, StockAdjustment
from ..validation import require_non_negative_int
from . import inventory_service
from .concurrency import run_with_retry


MATCH = "MATCH"
SHORTAGE = "SHORTAGE"
SURPLUS = "SURPLUS"
WRITE_OFF = "WRITE_OFF"


def classify(difference: int, is_write_off: bool) -> str:
    if difference < 0:
        return WRITE_OFF if is_write_off else SHORTAGE
    if difference > 0:
        return SURPLUS
    return MATCH


def describe(classification: str, difference: int) -> str:
    units = abs(difference)
    if classification == WRITE_OFF:
        return f"Written off: {units} pcs"
    if classification == SHORTAGE:
        return f"Shortage recorded: {units} pcs"
    if classification == SURPLUS:
        return f"Surplus recorded: {units} pcs"
    return "Stock matches, no action needed"


@dataclass
class ReconcileResult:
    adjustment: StockAdjustment
    product: Product
    classification: str
    message: str
    stock_quantity: int

    def to_dict(self) -> dict:
        return {
            "adjustment": self.adjustment.to_dict(),
            "product": self.product.to_dict(stock_quantity=self.stock_quantity),
            "classification": self.classification,
            "message": self.message,
        }


def reconcile(
    *,
    product_id: int,
    actual_quantity: int,
    staff_user_id: int | None,
    reason: str | None = None,
    is_write_off: bool = False,
) -> ReconcileResult:
    """
    Replace a product's stock with a physical count.

    The adjustment row and the batch collapse commit together. All batches
    are replaced by at most one batch holding actual_quantity units at the
    quantity-weighted average cost of what was there (product price when
    nothing was left).
    """
    require_non_negative_int("actual_quantity", actual_quantity)
    is_write_off = is_write_off is True

    def _op():
        product = inventory_service.get_product(product_id)

        batches = inventory_service.batches_oldest_first(product.id, lock=True)
        expected = sum(b.quantity for b in batches)
        avg_price = inventory_service.weighted_average_cost_cents(product.id) or product.price_cents

        difference = actual_quantity - expected

        adjustment = StockAdjustment(
            product_id=product.id,
            product_name=product.name,
            unit_price_cents=product.price_cents,
            expected_quantity=expected,
            actual_quantity=actual_quantity,
            difference=difference,
            reason=reason,
            created_by=staff_user_id,
            is_write_off=is_write_off,
        )
        db.session.add(adjustment)
        db.session.flush()

        inventory_service.replace_all(product.id, actual_quantity, avg_price)

        db.session.commit()

        classification = classify(difference, is_write_off)
        return ReconcileResult(
            adjustment=adjustment,
            product=product,
            classification=classification,
            message=describe(classification, difference),
            stock_quantity=actual_quantity,
        )

    return run_with_retry(_op)


def list_adjustments(limit: int = 100) -> list[dict]:
    """Adjustment history, newest first. Rows of deleted products keep their recorded name."""
    rows = db.session.query(
        StockAdjustment,
        func.coalesce(Product.name, StockAdjustment.product_name),
        Product.ean,
    ).outerjoin(
        Product, StockAdjustment.product_id == Product.id
    ).order_by(
        StockAdjustment.created_at.desc(),
        StockAdjustment.id.desc(),
    ).limit(limit).all()

    out = []
    for adj, name, ean in rows:
        data = adj.to_dict()
        data["product_name"] = name
        data["product_ean"] = ean
        data["classification"] = classify(adj.difference, adj.is_write_off)
        out.append(data)
    return out
