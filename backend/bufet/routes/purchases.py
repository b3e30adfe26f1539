# Overview: Flask API routes for purchases; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..services import purchase_service
from ..services.pricing_service import InsufficientStockError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_purchase,
    ValidationError,
    NotFoundError,
)
from ..models import StockBatch

PURCHASE_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity"},
    required_on_create={"product_id", "quantity"},
)


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("")
@require_auth
def create_purchase_route():
    """
    Buy on the current user's account.

    Body: {product_id, quantity}
    Returns the debit and the new balance. 400 with available/requested
    when stock is short; nothing is consumed in that case.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=StockBatch, payload=payload, policy=PURCHASE_POLICY, partial=False)
        enforce_rules_purchase(patch)

        result = purchase_service.purchase(
            user_id=g.current_user.id,
            product_id=patch["product_id"],
            quantity=patch["quantity"],
        )
        return jsonify(result.to_dict()), 201

    except InsufficientStockError as e:
        return jsonify({"error": str(e), **e.details}), 400
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to record purchase")
        return jsonify({"error": "Internal server error"}), 500
