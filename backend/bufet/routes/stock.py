# Overview: Flask API routes for stock operations; parses input and returns JSON responses.

# backend/bufet/routes/stock.py
"""
Staff stock routes.

- GET  /api/stock: non-empty batches
- POST /api/stock/add-batch: receive a delivery by EAN
- POST /api/stock/adjustment: physical count (reconciliation)
- GET  /api/stock/adjustments: count history

SECURITY: every route requires the office_assistant role.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..models import Product, StockBatch, StockAdjustment, ROLE_OFFICE_ASSISTANT
from ..services import inventory_service, products_service, reconciliation_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_add_batch,
    enforce_rules_reconcile,
    ValidationError,
    NotFoundError,
)

ADD_BATCH_POLICY = ModelValidationPolicy(
    writable_fields={"ean", "name", "quantity", "price_cents"},
    required_on_create={"ean", "quantity", "price_cents"},
)

RECONCILE_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "actual_quantity", "reason", "is_write_off"},
    required_on_create={"product_id", "actual_quantity"},
)


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
@require_auth
@require_role(ROLE_OFFICE_ASSISTANT)
def list_stock_route():
    try:
        return jsonify(inventory_service.list_stock()), 200
    except Exception:
        current_app.logger.exception("Failed to list stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/add-batch")
@require_auth
@require_role(ROLE_OFFICE_ASSISTANT)
def add_batch_route():
    """
    Body: {ean, quantity, price_cents, name?}

    price_cents is the unit cost of this delivery. An unknown EAN needs a
    name and creates the product; without one the EAN comes back in a 404.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=(Product, StockBatch), payload=payload, policy=ADD_BATCH_POLICY, partial=False
        )
        enforce_rules_add_batch(patch)

        result = products_service.add_stock(
            ean=patch["ean"],
            quantity=patch["quantity"],
            unit_cost_cents=patch["price_cents"],
            name=patch.get("name"),
        )
        return jsonify(result.to_dict()), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e), **e.details}), 404
    except Exception:
        current_app.logger.exception("Failed to add stock batch")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/adjustment")
@require_auth
@require_role(ROLE_OFFICE_ASSISTANT)
def adjustment_route():
    """
    Body: {product_id, actual_quantity, reason?, is_write_off?}

    Replaces the product's batches with the counted quantity and records
    the difference.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=StockAdjustment, payload=payload, policy=RECONCILE_POLICY, partial=False
        )
        enforce_rules_reconcile(patch)

        result = reconciliation_service.reconcile(
            product_id=patch["product_id"],
            actual_quantity=patch["actual_quantity"],
            staff_user_id=g.current_user.id,
            reason=patch.get("reason") or None,
            is_write_off=patch.get("is_write_off", False),
        )
        return jsonify(result.to_dict()), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to record stock adjustment")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/adjustments")
@require_auth
@require_role(ROLE_OFFICE_ASSISTANT)
def list_adjustments_route():
    limit = request.args.get("limit", default=100, type=int)
    limit = max(1, min(limit or 100, 500))

    try:
        return jsonify(reconciliation_service.list_adjustments(limit=limit)), 200
    except Exception:
        current_app.logger.exception("Failed to list stock adjustments")
        return jsonify({"error": "Internal server error"}), 500
