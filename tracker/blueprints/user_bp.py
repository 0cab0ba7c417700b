"""
User Administration Blueprint — super-user management of accounts.

Endpoints:
    GET    /api/v1/users                      — all users, grouped by role, plus pending list
    POST   /api/v1/users/<user_id>/approve    — approve a pending registration
    POST   /api/v1/users/<user_id>/reject     — reject it; body { "reason"?: "..." }
    DELETE /api/v1/users/<user_id>            — delete a user (not yourself)
"""

from flask import Blueprint, jsonify

from tracker.blueprints import json_body, register_error_handlers
from tracker.middleware.permission_required import current_user, require_super_user
from tracker.services import user_service

user_bp = Blueprint("user_bp", __name__, url_prefix="/api/v1/users")
register_error_handlers(user_bp)


@user_bp.route("", methods=["GET"])
@require_super_user
def list_users():
    return jsonify(user_service.list_users(current_user())), 200


@user_bp.route("/<user_id>/approve", methods=["POST"])
@require_super_user
def approve_user(user_id):
    user = user_service.decide(current_user(), user_id, approve=True)
    return jsonify({"user": user.to_dict()}), 200


@user_bp.route("/<user_id>/reject", methods=["POST"])
@require_super_user
def reject_user(user_id):
    reason = json_body().get("reason")
    user = user_service.decide(current_user(), user_id, approve=False, reason=reason)
    return jsonify({"user": user.to_dict()}), 200


@user_bp.route("/<user_id>", methods=["DELETE"])
@require_super_user
def delete_user(user_id):
    user_service.delete(current_user(), user_id)
    return jsonify({"deleted": True, "id": user_id}), 200
