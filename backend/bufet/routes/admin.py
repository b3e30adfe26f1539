# Overview: Flask API routes for admin operations; debtors, user balances, reminder sweep.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_role
from ..models import ROLE_OFFICE_ASSISTANT
from ..services import ledger_service, reminder_service


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.post("/reminder")
@require_auth
@require_role(ROLE_OFFICE_ASSISTANT)
def send_reminders_route():
    """
    Run the debt reminder sweep now.

    Body (optional): {threshold_cents}. Default DEBT_REMINDER_THRESHOLD_CENTS.
    Always 200; per-recipient failures are listed in sent_to.
    """
    data = request.get_json(silent=True) or {}
    threshold = data.get("threshold_cents")
    if threshold is not None and (not isinstance(threshold, int) or isinstance(threshold, bool)):
        return jsonify({"error": "threshold_cents must be an integer"}), 400

    try:
        results = reminder_service.send_debt_reminders(threshold_cents=threshold)
        sent = sum(1 for r in results if r["success"])
        return jsonify({
            "success": True,
            "message": f"Sent {sent}/{len(results)} reminders",
            "sent_to": results,
        }), 200
    except Exception:
        current_app.logger.exception("Failed to send reminders")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/debtors")
@require_auth
@require_role(ROLE_OFFICE_ASSISTANT)
def debtors_route():
    try:
        return jsonify(ledger_service.list_debtors(below_cents=0)), 200
    except Exception:
        current_app.logger.exception("Failed to list debtors")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/users")
@require_auth
@require_role(ROLE_OFFICE_ASSISTANT)
def users_route():
    try:
        return jsonify(ledger_service.list_balances(order_by="email")), 200
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500
