from __future__ import annotations

from datetime import datetime

from ..extensions import db
from bufet.time_utils import to_utc_z, to_utc_naive, utcnow


class Product(db.Model):
    """
    Product master data.

    EAN is the scannable barcode and the lookup key used when staff add stock.
    price_cents is the regular unit price; it doubles as the cost basis for
    reconciliation when a product has no batches left.

    PROMOTION: sale_price_cents only applies while sale_expires_at is set and
    strictly in the future. An expired promotion behaves exactly like no promotion.

    Stock is never stored here. It is always the sum of StockBatch.quantity.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("price_cents > 0", name="ck_products_price_positive"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    ean = db.Column(db.String(64), nullable=False, unique=True, index=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False)

    sale_price_cents = db.Column(db.Integer, nullable=True)
    sale_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    batches = db.relationship(
        "StockBatch",
        back_populates="product",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="StockBatch.created_at, StockBatch.id",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} ean={self.ean!r} name={self.name!r}>"

    def has_active_sale(self, now: datetime | None = None) -> bool:
        if self.sale_price_cents is None or self.sale_expires_at is None:
            return False
        now = now or utcnow()
        return to_utc_naive(self.sale_expires_at) > now

    def to_dict(self, *, stock_quantity: int | None = None, now: datetime | None = None) -> dict:
        # Expired promotions are hidden from clients
        active = self.has_active_sale(now)
        data = {
            "id": self.id,
            "name": self.name,
            "ean": self.ean,
            "price_cents": self.price_cents,
            "sale_price_cents": self.sale_price_cents if active else None,
            "sale_expires_at": to_utc_z(self.sale_expires_at) if active else None,
            "created_at": to_utc_z(self.created_at),
        }
        if stock_quantity is not None:
            data["stock_quantity"] = stock_quantity
        return data


class StockBatch(db.Model):
    """
    One delivery of a product at one unit cost.

    FIFO LAYERS: every "add stock" creates a new batch that keeps its own
    price_cents forever. Purchases drain batches oldest-first
    (created_at, then id for ties).

    INVARIANTS:
    - quantity >= 0 (CHECK constraint)
    - price_cents is fixed at creation
    - an empty batch stays as history; it is skipped by consumption and stock totals
    - only reconciliation deletes batches (it collapses them into one)

    CONCURRENCY: version_id_col makes every UPDATE/DELETE check the row version,
    so two transactions that read the same batch cannot both write it.
    """
    __tablename__ = "stock_batches"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_stock_batches_quantity_nonnegative"),
        db.CheckConstraint("price_cents > 0", name="ck_stock_batches_price_positive"),
        db.Index("ix_stock_batches_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product", back_populates="batches")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StockBatch id={self.id} product_id={self.product_id} qty={self.quantity} cost={self.price_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "created_at": to_utc_z(self.created_at),
        }
