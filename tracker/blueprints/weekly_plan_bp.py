"""
Weekly Plan Blueprint — manager-only weekly plans and daily updates.

Endpoints:
    GET    /api/v1/weekly-plans                                  — all plans, newest week first
    POST   /api/v1/weekly-plans                                  — { "week_start_date", "week_end_date"? }
    GET    /api/v1/weekly-plans/<plan_id>                        — plan with its daily updates
    DELETE /api/v1/weekly-plans/<plan_id>
    POST   /api/v1/weekly-plans/<plan_id>/updates                — add a daily update
    PUT    /api/v1/weekly-plans/<plan_id>/updates/<update_id>    — insert or replace by id
    DELETE /api/v1/weekly-plans/<plan_id>/updates/<update_id>
"""

from flask import Blueprint, jsonify

from tracker.blueprints import json_body, register_error_handlers
from tracker.middleware.permission_required import current_user, require_manager
from tracker.services import weekly_plan_service

weekly_plan_bp = Blueprint("weekly_plan_bp", __name__, url_prefix="/api/v1/weekly-plans")
register_error_handlers(weekly_plan_bp)


# ── Plans ─────────────────────────────────────────────────────────────────────


@weekly_plan_bp.route("", methods=["GET"])
@require_manager
def list_plans():
    items = weekly_plan_service.list_plans(current_user())
    return jsonify({"items": items, "total": len(items)}), 200


@weekly_plan_bp.route("", methods=["POST"])
@require_manager
def create_plan():
    return jsonify(weekly_plan_service.create_plan(current_user(), json_body())), 201


@weekly_plan_bp.route("/<plan_id>", methods=["GET"])
@require_manager
def get_plan(plan_id):
    return jsonify(weekly_plan_service.get_plan(current_user(), plan_id)), 200


@weekly_plan_bp.route("/<plan_id>", methods=["DELETE"])
@require_manager
def delete_plan(plan_id):
    weekly_plan_service.delete_plan(current_user(), plan_id)
    return jsonify({"deleted": True, "id": plan_id}), 200


# ── Daily updates ─────────────────────────────────────────────────────────────


@weekly_plan_bp.route("/<plan_id>/updates", methods=["POST"])
@require_manager
def add_update(plan_id):
    return jsonify(weekly_plan_service.upsert_update(current_user(), plan_id, json_body())), 201


@weekly_plan_bp.route("/<plan_id>/updates/<update_id>", methods=["PUT"])
@require_manager
def put_update(plan_id, update_id):
    update = weekly_plan_service.upsert_update(current_user(), plan_id, json_body(), update_id)
    return jsonify(update), 200


@weekly_plan_bp.route("/<plan_id>/updates/<update_id>", methods=["DELETE"])
@require_manager
def delete_update(plan_id, update_id):
    weekly_plan_service.delete_update(current_user(), plan_id, update_id)
    return jsonify({"deleted": True, "id": update_id}), 200
