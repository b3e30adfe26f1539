# backend/bufet/services/products_service.py
"""
Catalog service.

Product reads always carry the batch-derived stock_quantity, and an expired
promotion is never shown. Staff edit products here and add stock by EAN.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Product, StockAdjustment, StockBatch
from ..validation import ConflictError, NotFoundError, ValidationError, require_positive_int
from bufet.time_utils import parse_sale_expiry, utcnow
from . import inventory_service
from .concurrency import run_with_retry


def _with_stock_query():
    stock = func.coalesce(func.sum(StockBatch.quantity), 0).label("stock_quantity")
    q = db.session.query(Product, stock).outerjoin(
        StockBatch, StockBatch.product_id == Product.id
    ).group_by(Product.id)
    return q, stock


def list_products() -> list[dict]:
    """Whole catalog by name, with stock. Out-of-stock products are included."""
    now = utcnow()
    q, _ = _with_stock_query()
    rows = q.order_by(Product.name.asc(), Product.id.asc()).all()
    return [p.to_dict(stock_quantity=int(s), now=now) for p, s in rows]


def list_on_sale() -> list[dict]:
    """Active promotions that can actually be bought, soonest expiry first."""
    now = utcnow()
    q, stock = _with_stock_query()
    rows = q.filter(
        Product.sale_price_cents.isnot(None),
        Product.sale_expires_at > now,
    ).having(stock > 0).order_by(Product.sale_expires_at.asc()).all()
    return [p.to_dict(stock_quantity=int(s), now=now) for p, s in rows]


def get_product_dict(product_id: int) -> dict:
    product = inventory_service.get_product(product_id)
    return product.to_dict(stock_quantity=inventory_service.total_stock(product.id))


def get_by_ean(ean: str) -> dict:
    ean = (ean or "").strip()
    product = db.session.query(Product).filter_by(ean=ean).first()
    if product is None:
        raise NotFoundError("Product not found", details={"ean": ean})
    return product.to_dict(stock_quantity=inventory_service.total_stock(product.id))


def update_product(product_id: int, patch: dict) -> dict:
    """
    Replace name, EAN and promotion of a product.

    name is required. A missing ean keeps the current one. The promotion is
    replaced as a whole: no sale_price_cents clears both sale fields.
    """
    product = inventory_service.get_product(product_id)

    name = (patch.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")

    ean = patch.get("ean")
    if isinstance(ean, str):
        ean = ean.strip() or None
    if ean and ean != product.ean:
        taken = db.session.query(Product.id).filter(
            Product.ean == ean,
            Product.id != product.id,
        ).first()
        if taken:
            raise ConflictError("EAN is already used by another product")

    sale_price = patch.get("sale_price_cents")
    sale_expires = patch.get("sale_expires_at")
    if isinstance(sale_expires, str):
        try:
            sale_expires = parse_sale_expiry(sale_expires)
        except ValueError:
            raise ValidationError("sale_expires_at must be an ISO-8601 date or datetime")

    if sale_price is not None:
        require_positive_int("sale_price_cents", sale_price)
        if not isinstance(sale_expires, datetime):
            raise ValidationError("sale_expires_at is required when sale_price_cents is set")
    else:
        sale_expires = None

    product.name = name
    if ean:
        product.ean = ean
    if "price_cents" in patch and patch["price_cents"] is not None:
        product.price_cents = require_positive_int("price_cents", patch["price_cents"])
    product.sale_price_cents = sale_price
    product.sale_expires_at = sale_expires

    db.session.commit()
    return product.to_dict(stock_quantity=inventory_service.total_stock(product.id))


def delete_product(product_id: int) -> None:
    """
    Delete a product that has nothing left in stock.

    Empty history batches go with it. Its stock adjustments stay: they are
    detached (product_id NULL) and keep the name and price recorded at count
    time, so shortage reporting is unchanged.
    """
    product = inventory_service.get_product(product_id)

    stock = inventory_service.total_stock(product.id)
    if stock > 0:
        raise ConflictError("Cannot delete a product with stock on hand")

    # ON DELETE SET NULL in the schema; done explicitly for SQLite without foreign_keys
    db.session.query(StockAdjustment).filter(
        StockAdjustment.product_id == product.id,
    ).update({"product_id": None}, synchronize_session="fetch")

    db.session.delete(product)
    db.session.commit()


@dataclass
class AddStockResult:
    product: Product
    batch: StockBatch
    created_product: bool
    total_stock: int

    def to_dict(self) -> dict:
        return {
            "batch": self.batch.to_dict(),
            "product": {
                "id": self.product.id,
                "name": self.product.name,
                "ean": self.product.ean,
                "total_stock": self.total_stock,
            },
            "created_product": self.created_product,
        }


def add_stock(
    *,
    ean: str,
    quantity: int,
    unit_cost_cents: int,
    name: str | None = None,
) -> AddStockResult:
    """
    Receive a delivery as a new FIFO batch.

    An unknown EAN creates the product first (regular price = unit cost),
    in the same transaction as its first batch. Without a name the EAN
    cannot be created and NotFoundError carries it back to the caller.
    """
    require_positive_int("quantity", quantity)
    require_positive_int("unit_cost_cents", unit_cost_cents)
    ean = (ean or "").strip()
    if not ean:
        raise ValidationError("ean is required")
    name = (name or "").strip() or None

    def _op():
        product = db.session.query(Product).filter_by(ean=ean).first()
        created = False
        if product is None:
            if name is None:
                raise NotFoundError(
                    'Product not found. Provide "name" to create new product.',
                    details={"ean": ean},
                )
            product = Product(name=name, ean=ean, price_cents=unit_cost_cents)
            db.session.add(product)
            db.session.flush()
            created = True

        batch = inventory_service.add_batch(product.id, quantity, unit_cost_cents)
        db.session.commit()

        return AddStockResult(
            product=product,
            batch=batch,
            created_product=created,
            total_stock=inventory_service.total_stock(product.id),
        )

    return run_with_retry(_op)
