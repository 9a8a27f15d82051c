"""Project status workflow blueprint.

REST surface over ProjectStatusService.

Endpoint groups:
  Status            GET  /api/v1/projects/<id>/status
                    POST /api/v1/projects/<id>/status            (admin)
                    GET  /api/v1/projects/<id>/status/history
  Sub-status        POST /api/v1/projects/<id>/substatus         (admin)
  Clarifications    GET  /api/v1/projects/<id>/clarifications
                    POST /api/v1/projects/<id>/clarifications    (admin)
                    POST /api/v1/clarifications/<id>/respond
  Health            POST /api/v1/projects/<id>/health            (admin)
  Catalog           GET  /api/v1/status-types

The actor is resolved by app.auth into g.current_user before any view runs.
Clients may only reach projects of their own client records.
Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, g, jsonify, request

from app.auth import can_access_project, current_user, require_role
from app.core.exceptions import (
    ConflictError,
    DuplicateStatusState,
    IntegrityFailure,
    InvalidTransition,
    NotFoundError,
    StatusStateNotFound,
    ValidationError,
)
from app.models import db
from app.models.portal import Project
from app.models.project_status import Clarification
from app.services.notification_dispatch import get_dispatcher
from app.services.project_status_service import ProjectStatusService
from app.services.status_catalog import get_status_catalog
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

project_status_bp = Blueprint("project_status", __name__, url_prefix="/api/v1")


# ── Error handlers ────────────────────────────────────────────────────────────


@project_status_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@project_status_bp.errorhandler(InvalidTransition)
def _handle_invalid_transition(error: InvalidTransition):
    return api_error(E.INVALID_TRANSITION, str(error), details=error.details)


@project_status_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_INVALID, str(error), status=422, details=error.details)


@project_status_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    return api_error(E.CONFLICT_STATE, str(error))


@project_status_bp.errorhandler(IntegrityFailure)
def _handle_integrity(error: IntegrityFailure):
    logger.error("Integrity failure on %s: %s context=%s", request.endpoint, error, error.context)
    return api_error(E.INTEGRITY, "Project status data is inconsistent; the change was not applied")


# ── Helpers ───────────────────────────────────────────────────────────────────


def _service() -> ProjectStatusService:
    return ProjectStatusService(get_status_catalog(), get_dispatcher())


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _field(data: dict, camel: str, snake: str):
    return data.get(camel, data.get(snake))


def _project_or_error(project_id: int):
    """Return (project, None) or (None, error_response) after the access check."""
    project = db.session.get(Project, project_id)
    if project is None:
        return None, api_error(E.NOT_FOUND, f"Project id={project_id} not found")
    if not can_access_project(current_user(), project):
        logger.warning("User %s denied access to project %s", g.current_user.id, project_id,
                       extra={"project_id": project_id, "actor_id": g.current_user.id})
        return None, api_error(E.FORBIDDEN, "You do not have access to this project")
    return project, None


# ═════════════════════════════════════════════════════════════════════════════
# Status
# ═════════════════════════════════════════════════════════════════════════════


@project_status_bp.route("/projects/<int:project_id>/status", methods=["GET"])
def get_status(project_id: int):
    """Current status data; initializes it on first read."""
    _, err = _project_or_error(project_id)
    if err:
        return err

    svc = _service()
    try:
        return jsonify(svc.get_status_data(project_id))
    except StatusStateNotFound:
        logger.info("No status data for project %s; initializing", project_id,
                    extra={"project_id": project_id})

    try:
        svc.initialize_status(
            project_id, current_app.config.get("DEFAULT_INITIAL_STATUS"), g.current_user.id,
        )
    except DuplicateStatusState:
        # Another request initialized it first
        pass
    return jsonify(svc.get_status_data(project_id))


@project_status_bp.route("/projects/<int:project_id>/status/history", methods=["GET"])
def get_status_history(project_id: int):
    _, err = _project_or_error(project_id)
    if err:
        return err
    history = _service().get_status_history(
        project_id, client_visible_only=not g.current_user.is_admin,
    )
    return jsonify(history)


@project_status_bp.route("/projects/<int:project_id>/status", methods=["POST"])
@require_role("admin")
def transition_status(project_id: int):
    data = _body()
    code = _field(data, "statusCode", "status_code")
    if not code or not isinstance(code, str):
        return api_error(E.VALIDATION_REQUIRED, "statusCode is required")

    result = _service().transition_status(project_id, code, g.current_user.id, data.get("notes"))
    return jsonify(result.to_dict())


@project_status_bp.route("/projects/<int:project_id>/substatus", methods=["POST"])
@require_role("admin")
def set_sub_status(project_id: int):
    data = _body()
    if "subStatus" not in data and "sub_status" not in data:
        return api_error(E.VALIDATION_REQUIRED, "subStatus is required")

    state = _service().set_sub_status(
        project_id, _field(data, "subStatus", "sub_status"), g.current_user.id, data.get("reason"),
    )
    return jsonify(state.to_dict())


# ═════════════════════════════════════════════════════════════════════════════
# Clarifications
# ═════════════════════════════════════════════════════════════════════════════


@project_status_bp.route("/projects/<int:project_id>/clarifications", methods=["POST"])
@require_role("admin")
def request_clarification(project_id: int):
    data = _body()
    if not data.get("question"):
        return api_error(E.VALIDATION_REQUIRED, "question is required")

    clarification = _service().request_clarification(project_id, data["question"], g.current_user.id)
    return jsonify(clarification.to_dict()), 201


@project_status_bp.route("/projects/<int:project_id>/clarifications", methods=["GET"])
def list_clarifications(project_id: int):
    _, err = _project_or_error(project_id)
    if err:
        return err
    return jsonify(_service().get_clarifications(project_id))


@project_status_bp.route("/clarifications/<int:clarification_id>/respond", methods=["POST"])
def respond_to_clarification(clarification_id: int):
    data = _body()
    if not data.get("response"):
        return api_error(E.VALIDATION_REQUIRED, "response is required")

    clarification = db.session.get(Clarification, clarification_id)
    if clarification is None:
        return api_error(E.NOT_FOUND, f"Clarification id={clarification_id} not found")
    _, err = _project_or_error(clarification.project_id)
    if err:
        return err

    clarification = _service().respond_to_clarification(
        clarification_id, data["response"], g.current_user.id,
    )
    return jsonify(clarification.to_dict())


# ═════════════════════════════════════════════════════════════════════════════
# Health
# ═════════════════════════════════════════════════════════════════════════════


@project_status_bp.route("/projects/<int:project_id>/health", methods=["POST"])
@require_role("admin")
def update_health(project_id: int):
    data = _body()
    status = _field(data, "healthStatus", "health_status")
    if not status:
        return api_error(E.VALIDATION_REQUIRED, "healthStatus is required")

    state = _service().update_health(
        project_id, status, _field(data, "healthFactors", "health_factors"), g.current_user.id,
    )
    return jsonify(state.to_dict())


# ═════════════════════════════════════════════════════════════════════════════
# Catalog
# ═════════════════════════════════════════════════════════════════════════════


@project_status_bp.route("/status-types", methods=["GET"])
def list_status_types():
    return jsonify(get_status_catalog().to_list())
