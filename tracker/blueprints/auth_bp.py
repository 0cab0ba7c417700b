"""
Auth Blueprint — registration, login and the current profile.

Endpoints:
  POST /api/v1/auth/register    — Create an account (pending until a super user approves)
  POST /api/v1/auth/login       — Email + password → access token
  GET  /api/v1/auth/me          — Current user profile
"""

from flask import Blueprint, jsonify

from tracker.blueprints import json_body, register_error_handlers
from tracker.middleware.permission_required import current_user, require_auth
from tracker.services import user_service
from tracker.utils.errors import E, api_error

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/v1/auth")
register_error_handlers(auth_bp)


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/register
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Body: { "name": "...", "email": "...", "password": "...", "role": "client|admin" }

    The configured bootstrap address is created as an approved super user;
    every other account waits for approval.
    """
    user = user_service.register(json_body())
    message = (
        "Account created."
        if user.status.value == "approved"
        else "Account created and waiting for super user approval."
    )
    return jsonify({"user": user.to_dict(), "message": message}), 201


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """Body: { "email": "...", "password": "..." }"""
    data = json_body()
    email = str(data.get("email") or "").strip().lower()
    password = str(data.get("password") or "")
    if not email or not password:
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")
    return jsonify(user_service.login(email, password)), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    return jsonify({"user": current_user().to_dict()}), 200
