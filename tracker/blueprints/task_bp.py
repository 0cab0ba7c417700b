"""
Task Blueprint — change requests, their workflow and approval.

Endpoints:
    GET    /api/v1/tasks                              — visible tasks (?status, from, to, q, limit, offset)
    POST   /api/v1/tasks                              — create a request
    GET    /api/v1/tasks/dashboard                    — hour summary + status counts
    GET    /api/v1/tasks/export                       — JSON export of visible tasks
    POST   /api/v1/tasks/import                       — JSON import (managers; ?mode=merge|replace)
    GET    /api/v1/tasks/<task_id>                    — task detail
    PUT    /api/v1/tasks/<task_id>                    — edit (clients: descriptive fields only)
    DELETE /api/v1/tasks/<task_id>                    — delete (managers, or the owner)
    POST   /api/v1/tasks/<task_id>/transition         — move to another status
    POST   /api/v1/tasks/<task_id>/validate-transition — dry run of a transition
    PUT    /api/v1/tasks/<task_id>/hours              — estimate / logged hours / rate (managers)
    POST   /api/v1/tasks/<task_id>/approval           — approve or reject (super users)

Transition body:
    { "status": "Confirmed", "note": "...", "status_date": "2025-01-05",
      "estimated_hours": 8, "delivery_date": "2025-01-10", "version": 3 }

Layer contract:
    - Blueprint: parse input, call task_service, return JSON.
    - NO db.session calls here — all writes owned by task_service.
    - Workflow and ownership rules raise from the services; the
      blueprint error handler turns them into api_error responses.
"""

import logging

from flask import Blueprint, Response, jsonify, request

from tracker.blueprints import json_body, register_error_handlers
from tracker.middleware.permission_required import current_user, require_auth, require_manager
from tracker.services import task_service
from tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)

task_bp = Blueprint("task_bp", __name__, url_prefix="/api/v1/tasks")
register_error_handlers(task_bp)


# ═══════════════════════════════════════════════════════════════
# Collection
# ═══════════════════════════════════════════════════════════════
@task_bp.route("", methods=["GET"])
@require_auth
def list_tasks():
    return jsonify(task_service.list_tasks(current_user(), request.args)), 200


@task_bp.route("", methods=["POST"])
@require_auth
def create_task():
    """Body: { "title", "requested_date", "change_points"?, "client_name"?, ... }"""
    return jsonify(task_service.create(current_user(), json_body())), 201


@task_bp.route("/dashboard", methods=["GET"])
@require_auth
def dashboard():
    return jsonify(task_service.dashboard(current_user())), 200


@task_bp.route("/export", methods=["GET"])
@require_auth
def export_tasks():
    body = task_service.export(current_user())
    return Response(
        body,
        mimetype="application/json",
        headers={"Content-Disposition": "attachment; filename=tasks.json"},
    )


@task_bp.route("/import", methods=["POST"])
@require_manager
def import_tasks():
    """
    Import a task array.

    Accepts the array as the JSON body or as an uploaded ``file`` field.
    ``?mode=replace`` replaces the whole collection; default is merge.
    """
    upload = request.files.get("file")
    raw = upload.read() if upload else request.get_data()
    if not raw:
        return api_error(E.VALIDATION_REQUIRED, "Import payload is required")
    mode = request.args.get("mode", "merge")
    if mode not in ("merge", "replace"):
        return api_error(E.VALIDATION_INVALID, "mode must be 'merge' or 'replace'",
                         details={"mode": ["merge", "replace"]})
    result = task_service.import_tasks(current_user(), raw, replace_all=mode == "replace")
    return jsonify(result), 200


# ═══════════════════════════════════════════════════════════════
# Single task
# ═══════════════════════════════════════════════════════════════
@task_bp.route("/<task_id>", methods=["GET"])
@require_auth
def get_task(task_id):
    return jsonify(task_service.get_task(current_user(), task_id)), 200


@task_bp.route("/<task_id>", methods=["PUT"])
@require_auth
def edit_task(task_id):
    return jsonify(task_service.edit(current_user(), task_id, json_body())), 200


@task_bp.route("/<task_id>", methods=["DELETE"])
@require_auth
def delete_task(task_id):
    task_service.delete(current_user(), task_id)
    return jsonify({"deleted": True, "id": task_id}), 200


# ═══════════════════════════════════════════════════════════════
# Workflow
# ═══════════════════════════════════════════════════════════════
@task_bp.route("/<task_id>/transition", methods=["POST"])
@require_auth
def transition_task(task_id):
    data = json_body()
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required", details={"status": "required"})
    return jsonify(task_service.transition(current_user(), task_id, data)), 200


@task_bp.route("/<task_id>/validate-transition", methods=["POST"])
@require_auth
def validate_transition(task_id):
    data = json_body()
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required", details={"status": "required"})
    return jsonify(task_service.validate(current_user(), task_id, data)), 200


@task_bp.route("/<task_id>/hours", methods=["PUT"])
@require_manager
def update_hours(task_id):
    """Body: { "estimated_hours"?, "logged_hours"?, "hourly_rate"?, "reason"?, "version"? }"""
    return jsonify(task_service.update_hours(current_user(), task_id, json_body())), 200


@task_bp.route("/<task_id>/approval", methods=["POST"])
@require_auth
def decide_task(task_id):
    """Body: { "approve": true|false, "note"?: "..." }"""
    return jsonify(task_service.decide(current_user(), task_id, json_body())), 200
