"""Project creation and status backfill for the client portal."""

from __future__ import annotations

import logging

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.portal import Client, Project
from app.models.project_status import ProjectStatusState
from app.services.project_status_service import ProjectStatusService
from app.services.status_catalog import backfill_status_for

logger = logging.getLogger(__name__)


def create_project(
    service: ProjectStatusService,
    *,
    client_id: int,
    data: dict,
    actor_id: int,
    initial_status: str | None = None,
) -> Project:
    """Create a project under a client and initialize its status in one go."""
    name = str(data.get("name", "") or "").strip()
    if not name:
        raise ValidationError("Project name is required", details={"name": "required"})
    if db.session.get(Client, client_id) is None:
        raise NotFoundError(resource="Client", resource_id=client_id)

    project = Project(
        client_id=client_id,
        name=name,
        description=str(data.get("description", "") or ""),
        goal=data.get("goal"),
        budget=data.get("budget"),
        timeline=data.get("timeline"),
    )
    db.session.add(project)
    db.session.commit()

    service.initialize_status(project.id, initial_status, actor_id)
    logger.info("Created project %s for client %s", project.id, client_id,
                extra={"project_id": project.id, "actor_id": actor_id})
    return project


def backfill_project_statuses(service: ProjectStatusService, actor_id: int) -> int:
    """Initialize status data for projects created before the workflow engine existed.

    The starting status is derived from the legacy ``projects.status`` value.
    Returns the number of projects initialized.
    """
    missing = (
        Project.query
        .outerjoin(ProjectStatusState, ProjectStatusState.project_id == Project.id)
        .filter(ProjectStatusState.id.is_(None))
        .order_by(Project.id)
        .all()
    )
    for project in missing:
        code = backfill_status_for(project.status)
        service.initialize_status(project.id, code, actor_id)
        logger.info("Backfilled project %s (%s) → %s", project.id, project.status, code,
                    extra={"project_id": project.id})
    return len(missing)
