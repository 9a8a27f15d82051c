"""
Client Portal
Clarification Tracker — question/answer records that gate a project.

A clarification is PENDING until its first response, then RESOLVED for good.
The sub-status side effects (CLARIFICATION_NEEDED on request, cleared on
response) are applied by ProjectStatusService in the same unit of work.
"""

import logging

from app.core.exceptions import (
    ClarificationAlreadyResolved,
    ClarificationNotFound,
    ValidationError,
)
from app.models import db
from app.models.project_status import CLARIFICATION_PENDING, CLARIFICATION_RESOLVED, Clarification

logger = logging.getLogger(__name__)

REASON_MAX_LENGTH = 100


def truncated(text: str | None, limit: int = REASON_MAX_LENGTH) -> str:
    text = text or ""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def requested_reason(question: str) -> str:
    return f"Clarification requested: {truncated(question)}"


def resolved_reason(response: str) -> str:
    return f"Clarification resolved: {truncated(response)}"


def _require_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", details={field: "required"})
    return value.strip()


def create_clarification(project_id: int, question, actor_id: int, at) -> Clarification:
    clarification = Clarification(
        project_id=project_id,
        question=_require_text(question, "question"),
        requested_by_id=actor_id,
        requested_at=at,
        status=CLARIFICATION_PENDING,
    )
    db.session.add(clarification)
    db.session.flush()
    return clarification


def get_clarification(clarification_id: int, *, for_update: bool = False) -> Clarification:
    q = Clarification.query.filter_by(id=clarification_id)
    if for_update:
        q = q.with_for_update()
    clarification = q.one_or_none()
    if clarification is None:
        raise ClarificationNotFound(clarification_id)
    return clarification


def resolve_clarification(clarification: Clarification, response, actor_id: int, at) -> Clarification:
    if clarification.is_resolved:
        raise ClarificationAlreadyResolved(clarification.id)
    clarification.response = _require_text(response, "response")
    clarification.responded_by_id = actor_id
    clarification.responded_at = at
    clarification.status = CLARIFICATION_RESOLVED
    db.session.flush()
    return clarification


def list_clarifications(project_id: int) -> list[dict]:
    """Clarifications for a project, newest first, with requester/responder identity."""
    rows = (
        Clarification.query
        .filter_by(project_id=project_id)
        .order_by(Clarification.requested_at.desc(), Clarification.id.desc())
        .all()
    )
    result = []
    for c in rows:
        d = c.to_dict()
        d["requested_by"] = c.requested_by.to_summary() if c.requested_by else None
        d["responded_by"] = c.responded_by.to_summary() if c.responded_by else None
        result.append(d)
    return result

