# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/bufet/routes/products.py
"""
Catalog routes.

Reads are public: the catalog screen works before login. Writes require
the office_assistant role.
"""
from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import Column, String

from ..extensions import db
from ..models import Product, ROLE_OFFICE_ASSISTANT
from ..services import products_service, pricing_service
from ..services.pricing_service import InsufficientStockError, NoStockError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product_update,
    ValidationError,
    NotFoundError,
    ConflictError,
)
from ..decorators import require_auth, require_role

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "ean", "price_cents", "sale_price_cents", "sale_expires_at"},
    required_on_create={"name"},
    # accepts a bare date; the service turns it into end of day
    extra_columns=(Column("sale_expires_at", String(64), nullable=True),),
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products_route():
    try:
        return jsonify(products_service.list_products()), 200
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/on-sale")
def list_on_sale_route():
    try:
        return jsonify(products_service.list_on_sale()), 200
    except Exception:
        current_app.logger.exception("Failed to list products on sale")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/by-ean/<ean>")
def get_by_ean_route(ean: str):
    try:
        return jsonify(products_service.get_by_ean(ean)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e), **e.details}), 404
    except Exception:
        current_app.logger.exception("Failed to look up product by EAN")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return jsonify(products_service.get_product_dict(product_id)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/price-preview")
def price_preview_route(product_id: int):
    """
    FIFO (or promotion) price for ?quantity= units, default 1.

    Read-only; the actual purchase re-prices under lock.
    """
    quantity = request.args.get("quantity", default=1, type=int)
    if quantity is None or quantity <= 0:
        quantity = 1

    try:
        preview = pricing_service.preview(product_id, quantity)
        return jsonify(preview.to_dict()), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except NoStockError as e:
        return jsonify({"error": str(e)}), 404
    except InsufficientStockError as e:
        return jsonify({"error": str(e), **e.details}), 400
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to compute price preview")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>")
@require_auth
@require_role(ROLE_OFFICE_ASSISTANT)
def update_product_route(product_id: int):
    """
    Rename, change EAN, set or clear a promotion.

    Body: {name, ean?, price_cents?, sale_price_cents?, sale_expires_at?}
    Omitting sale_price_cents (or sending null) clears the promotion.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=False
        )
        enforce_rules_product_update(patch)
        updated = products_service.update_product(product_id, patch)
        return jsonify(updated), 200

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_OFFICE_ASSISTANT)
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id)
        return jsonify({"message": "Product deleted"}), 200

    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
