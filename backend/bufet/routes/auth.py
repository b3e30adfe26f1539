# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/bufet/routes/auth.py
"""
Passwordless authentication routes.

- POST /api/auth/request-code: email a one-time code
- POST /api/auth/verify-code: exchange the code for a bearer token
- POST /api/auth/logout: revoke the current token
- GET /api/auth/me, PUT /api/auth/profile: current user
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_auth
from ..services import auth_service, session_service
from ..services.notification_service import NotificationError
from ..validation import ValidationError


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/request-code")
def request_code_route():
    data = request.get_json(silent=True) or {}

    try:
        auth_service.request_code(data.get("email"))
        return jsonify({"message": "Verification code sent"}), 200

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except NotificationError:
        current_app.logger.exception("Failed to send verification code")
        return jsonify({"error": "Failed to send verification code"}), 500
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to request login code")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/verify-code")
def verify_code_route():
    data = request.get_json(silent=True) or {}

    try:
        result = auth_service.verify_code(
            data.get("email"),
            data.get("code"),
            name=data.get("name"),
        )
        return jsonify({
            "token": result.token,
            "user": result.user.to_dict(),
        }), 200

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to verify login code")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.session_token)
        return jsonify({"message": "Logged out"}), 200
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to log out")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.put("/profile")
@require_auth
def profile_route():
    data = request.get_json(silent=True) or {}

    try:
        user = auth_service.update_profile(g.current_user, data.get("name"))
        return jsonify({"user": user.to_dict()}), 200
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update profile")
        return jsonify({"error": "Internal server error"}), 500
