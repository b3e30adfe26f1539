# Overview: Flask API routes for account operations; balances, history, deposits, shortages.

from flask import Blueprint, request, jsonify, g, current_app
from sqlalchemy import Column, Integer, String

from ..decorators import require_auth, require_role, require_self_or_role
from ..extensions import db
from ..models import AccountEntry, ROLE_OFFICE_ASSISTANT
from ..services import ledger_service, shortage_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_deposit,
    ValidationError,
    NotFoundError,
)

DEPOSIT_POLICY = ModelValidationPolicy(
    writable_fields={"user_id", "amount_cents", "contribution_cents", "note"},
    required_on_create={"user_id", "amount_cents"},
    extra_columns=(
        Column("contribution_cents", Integer, nullable=True),
        Column("note", String(255), nullable=True),
    ),
)


account_bp = Blueprint("account", __name__, url_prefix="/api/account")


@account_bp.get("/balances")
@require_auth
def balances_route():
    """Staff see every account; everyone else only their own."""
    user = g.current_user
    try:
        if user.role == ROLE_OFFICE_ASSISTANT:
            return jsonify(ledger_service.list_balances()), 200
        return jsonify([ledger_service.get_balance(user.id)]), 200
    except Exception:
        current_app.logger.exception("Failed to list balances")
        return jsonify({"error": "Internal server error"}), 500


@account_bp.get("/my-balance")
@require_auth
def my_balance_route():
    try:
        return jsonify(ledger_service.get_balance(g.current_user.id)), 200
    except Exception:
        current_app.logger.exception("Failed to get balance")
        return jsonify({"error": "Internal server error"}), 500


@account_bp.get("/history/<int:user_id>")
@require_auth
@require_self_or_role(ROLE_OFFICE_ASSISTANT)
def history_route(user_id: int):
    limit = request.args.get("limit", type=int)
    try:
        ledger_service.get_user(user_id)
        return jsonify(ledger_service.history(user_id, limit=limit)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get account history")
        return jsonify({"error": "Internal server error"}), 500


@account_bp.get("/my-history")
@require_auth
def my_history_route():
    try:
        limit = current_app.config.get("HISTORY_PAGE_SIZE", 50)
        return jsonify(ledger_service.history(g.current_user.id, limit=limit)), 200
    except Exception:
        current_app.logger.exception("Failed to get account history")
        return jsonify({"error": "Internal server error"}), 500


@account_bp.post("/deposit")
@require_auth
@require_role(ROLE_OFFICE_ASSISTANT)
def deposit_route():
    """
    Record cash handed to staff.

    Body: {user_id, amount_cents, contribution_cents?, note?}
    contribution_cents of the amount goes to the shortage pot instead of the account.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=AccountEntry, payload=payload, policy=DEPOSIT_POLICY, partial=False)
        enforce_rules_deposit(patch)

        result = ledger_service.deposit(
            user_id=patch["user_id"],
            amount_cents=patch["amount_cents"],
            recorded_by=g.current_user.id,
            note=patch.get("note") or None,
            contribution_cents=patch.get("contribution_cents") or 0,
        )
        return jsonify(result.to_dict()), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to record deposit")
        return jsonify({"error": "Internal server error"}), 500


@account_bp.get("/shortage-summary")
@require_auth
@require_role(ROLE_OFFICE_ASSISTANT)
def shortage_summary_route():
    try:
        return jsonify(shortage_service.shortage_summary()), 200
    except Exception:
        current_app.logger.exception("Failed to get shortage summary")
        return jsonify({"error": "Internal server error"}), 500


@account_bp.get("/shortage-warning")
@require_auth
def shortage_warning_route():
    try:
        warning = shortage_service.warning_for(g.current_user.id)
        return jsonify(warning.to_dict()), 200
    except Exception:
        current_app.logger.exception("Failed to get shortage warning")
        return jsonify({"error": "Internal server error"}), 500


@account_bp.post("/acknowledge-shortage")
@require_auth
def acknowledge_shortage_route():
    try:
        ack = shortage_service.acknowledge(g.current_user.id)
        return jsonify({"success": True, **ack.to_dict()}), 200
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to acknowledge shortage")
        return jsonify({"error": "Internal server error"}), 500
