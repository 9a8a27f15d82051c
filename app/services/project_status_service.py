"""
Client Portal
Project Status Workflow Engine.

ProjectStatusService is the only writer of project_status_data,
project_status_history and project_clarifications.  Every mutating
operation is one unit of work:

    1. lock the project's state row (SELECT … FOR UPDATE + version check)
    2. validate against the injected StatusCatalog
    3. mutate ledger + state row (close-then-open for transitions)
    4. commit, or roll back everything
    5. hand a snapshot event to the NotificationDispatcher

Callers are already authenticated and authorized for the project; the
engine performs no access control.

Usage:
    svc = ProjectStatusService(catalog, dispatcher)
    svc.initialize_status(project_id, actor_id=admin.id)
    svc.transition_status(project_id, "REVIEWING", admin.id, notes="Scope agreed")
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import (
    ConcurrentModificationError,
    DuplicateStatusState,
    InvalidTransition,
    LedgerIntegrityError,
    ProjectNotFound,
    StatusStateNotFound,
    ValidationError,
)
from app.models import db
from app.models.portal import Project
from app.models.project_status import (
    DEFAULT_HEALTH_STATUS,
    SUB_STATUS_CLARIFICATION_NEEDED,
    SUB_STATUS_NONE,
    ProjectStatusState,
    StatusHistoryEntry,
)
from app.services import clarification_tracker as tracker
from app.services import status_history as ledger
from app.services.health_assessor import apply_health, initial_health_factors
from app.services.notification_dispatch import NotificationDispatcher, ProjectRef
from app.services.status_catalog import StatusCatalog

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_STATUS = "SCOPING"
INITIAL_HISTORY_NOTES = "Project created"
SUB_STATUS_MAX_LENGTH = 50


@dataclass
class TransitionResult:
    previous_status: str
    state: ProjectStatusState
    entry: StatusHistoryEntry
    closed_entry: StatusHistoryEntry
    project: Project

    def to_dict(self) -> dict:
        return {
            "previous_status": self.previous_status,
            "status_data": self.state.to_dict(),
            "history_entry": self.entry.to_dict(),
            "project": self.project.to_dict(),
        }


def normalise_sub_status(code) -> str | None:
    """Upper-case a sub-status code; NONE, empty and None all mean 'no sub-status'."""
    if code is None:
        return None
    if not isinstance(code, str):
        raise ValidationError("subStatus must be a string", details={"subStatus": "must be a string"})
    code = code.strip().upper()
    if not code or code == SUB_STATUS_NONE:
        return None
    if len(code) > SUB_STATUS_MAX_LENGTH:
        raise ValidationError(
            f"subStatus must be at most {SUB_STATUS_MAX_LENGTH} characters",
            details={"subStatus": "too long"},
        )
    return code


def optional_text(value, field: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: "must be a string"})
    return value


class ProjectStatusService:
    """Workflow engine bound to one catalog and one dispatcher."""

    def __init__(self, catalog: StatusCatalog, dispatcher: NotificationDispatcher | None = None,
                 clock=None):
        self.catalog = catalog
        self.dispatcher = dispatcher or NotificationDispatcher([], run_async=False)
        self._clock = clock or ledger.utcnow

    # ── Internal ─────────────────────────────────────────────────────────

    def _now(self):
        return ledger.as_utc(self._clock())

    def _get_project(self, project_id: int) -> Project:
        project = db.session.get(Project, project_id)
        if project is None:
            raise ProjectNotFound(project_id)
        return project

    def _get_state(self, project_id: int, *, lock: bool = False) -> ProjectStatusState:
        q = ProjectStatusState.query.filter_by(project_id=project_id)
        if lock:
            q = q.with_for_update().populate_existing()
        state = q.one_or_none()
        if state is None:
            self._get_project(project_id)
            raise StatusStateNotFound(project_id)
        return state

    @contextmanager
    def _unit_of_work(self, operation: str, project_id: int | None = None):
        try:
            yield
            db.session.commit()
        except StaleDataError:
            db.session.rollback()
            logger.warning("Concurrent modification during %s on project %s",
                           operation, project_id, extra={"project_id": project_id})
            raise ConcurrentModificationError(project_id) from None
        except IntegrityError as exc:
            db.session.rollback()
            logger.error("Integrity error during %s on project %s: %s",
                         operation, project_id, exc.orig, extra={"project_id": project_id})
            raise LedgerIntegrityError(
                f"{operation} violated a database constraint",
                context={"project_id": project_id, "operation": operation},
            ) from exc
        except Exception:
            db.session.rollback()
            raise

    def _apply_sub_status(self, state, code, reason, actor_id, now) -> None:
        state.current_sub_status = code
        state.sub_status_reason = reason
        state.sub_status_since = now
        state.last_updated_by_id = actor_id
        ledger.annotate_open_entry(state.project_id, code, reason)

    def _status_info(self, code: str) -> dict | None:
        if code not in self.catalog:
            return None
        s = self.catalog.get(code)
        return {"code": s.code, "name": s.name, "color": s.color, "icon": s.icon}

    # ── Queries ──────────────────────────────────────────────────────────

    def get_status_data(self, project_id: int) -> dict:
        """Current state plus the statuses reachable from it."""
        state = self._get_state(project_id)
        return {
            "status_data": state.to_dict(),
            "current_status": self.catalog.get(state.current_status).to_dict(),
            "valid_next_statuses": [
                s.to_dict() for s in self.catalog.valid_next_statuses(state.current_status)
            ],
        }

    def get_valid_next_statuses(self, project_id: int):
        state = self._get_state(project_id)
        return self.catalog.valid_next_statuses(state.current_status)

    def get_status_history(self, project_id: int, *, client_visible_only: bool = False) -> list[dict]:
        """Ledger entries, most recent first, each with display info for its status."""
        self._get_project(project_id)
        visible = None
        if client_visible_only:
            visible = [s.code for s in self.catalog.all_statuses() if s.client_visible]
        result = []
        for entry in ledger.list_history(project_id, visible):
            d = entry.to_dict()
            d["status"] = self._status_info(entry.status_code)
            result.append(d)
        return result

    def get_clarifications(self, project_id: int) -> list[dict]:
        self._get_project(project_id)
        return tracker.list_clarifications(project_id)

    # ── Initialization ───────────────────────────────────────────────────

    def initialize_status(self, project_id: int, initial_status_code: str | None = None,
                          actor_id: int | None = None) -> ProjectStatusState:
        """Create the state row and the first open history entry."""
        code = initial_status_code or DEFAULT_INITIAL_STATUS
        self.catalog.get(code)
        if actor_id is None:
            raise ValidationError("actor_id is required", details={"actor_id": "required"})

        project = self._get_project(project_id)
        if ProjectStatusState.query.filter_by(project_id=project_id).first() is not None:
            raise DuplicateStatusState(project_id)

        now = self._now()
        state = ProjectStatusState(
            project_id=project_id,
            current_status=code,
            current_status_since=now,
            health_status=DEFAULT_HEALTH_STATUS,
            health_factors=initial_health_factors(),
            health_last_updated=now,
            last_updated_by_id=actor_id,
        )
        try:
            db.session.add(state)
            db.session.flush()
            ledger.open_entry(project_id, code, actor_id, now, INITIAL_HISTORY_NOTES)
            project.status = self.catalog.legacy_status_for(code)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.error("Duplicate status initialization for project %s", project_id,
                         extra={"project_id": project_id})
            raise DuplicateStatusState(project_id) from None
        except Exception:
            db.session.rollback()
            raise

        logger.info("Initialized project %s at %s", project_id, code,
                    extra={"project_id": project_id, "actor_id": actor_id})
        return state

    # ── Status transitions ───────────────────────────────────────────────

    def transition_status(self, project_id: int, new_status_code: str, actor_id: int,
                          notes: str | None = None) -> TransitionResult:
        """Move a project along one catalog edge, resetting its sub-status."""
        notes = optional_text(notes, "notes")

        with self._unit_of_work("transition_status", project_id):
            state = self._get_state(project_id, lock=True)
            old_status = state.current_status
            if not self.catalog.is_valid_transition(old_status, new_status_code):
                raise InvalidTransition(
                    old_status, new_status_code,
                    [s.code for s in self.catalog.valid_next_statuses(old_status)],
                )

            now = self._now()
            closed, opened = ledger.close_and_open(
                project_id, old_status, new_status_code, actor_id, now, notes,
            )
            state.current_status = new_status_code
            state.current_status_since = opened.from_date
            state.current_sub_status = None
            state.sub_status_reason = None
            state.sub_status_since = None
            state.last_updated_by_id = actor_id

            project = self._get_project(project_id)
            project.status = self.catalog.legacy_status_for(new_status_code)

        logger.info(
            "Project %s status %s → %s", project_id, old_status, new_status_code,
            extra={"project_id": project_id, "actor_id": actor_id},
        )
        self.dispatcher.notify_status_change(
            ProjectRef.from_project(project), old_status, new_status_code, notes,
            actor_id=actor_id, changed_at=ledger.as_utc(opened.from_date),
        )
        return TransitionResult(old_status, state, opened, closed, project)

    def set_sub_status(self, project_id: int, sub_status_code, actor_id: int,
                       reason: str | None = None) -> ProjectStatusState:
        """Set or clear the free-form sub-status; no catalog edge involved."""
        code = normalise_sub_status(sub_status_code)
        reason = optional_text(reason, "reason")

        with self._unit_of_work("set_sub_status", project_id):
            state = self._get_state(project_id, lock=True)
            self._apply_sub_status(state, code, reason, actor_id, self._now())

        logger.info("Project %s sub-status → %s", project_id, code or SUB_STATUS_NONE,
                    extra={"project_id": project_id, "actor_id": actor_id})
        if code == SUB_STATUS_CLARIFICATION_NEEDED:
            self.dispatcher.notify_clarification_requested(
                ProjectRef.from_project(self._get_project(project_id)), reason or "",
                actor_id=actor_id,
            )
        return state

    # ── Clarifications ───────────────────────────────────────────────────

    def request_clarification(self, project_id: int, question, actor_id: int):
        """Create a PENDING clarification and flag the project CLARIFICATION_NEEDED."""
        with self._unit_of_work("request_clarification", project_id):
            state = self._get_state(project_id, lock=True)
            now = self._now()
            clarification = tracker.create_clarification(project_id, question, actor_id, now)
            reason = tracker.requested_reason(clarification.question)
            self._apply_sub_status(state, SUB_STATUS_CLARIFICATION_NEEDED, reason, actor_id, now)

        logger.info("Clarification %s requested on project %s", clarification.id, project_id,
                    extra={"project_id": project_id, "actor_id": actor_id})
        self.dispatcher.notify_clarification_requested(
            ProjectRef.from_project(self._get_project(project_id)), reason, actor_id=actor_id,
        )
        return clarification

    def respond_to_clarification(self, clarification_id: int, response, actor_id: int):
        """Resolve a clarification; clears CLARIFICATION_NEEDED if it is still set."""
        project_id = None
        with self._unit_of_work("respond_to_clarification"):
            clarification = tracker.get_clarification(clarification_id, for_update=True)
            project_id = clarification.project_id
            state = self._get_state(project_id, lock=True)
            now = self._now()
            tracker.resolve_clarification(clarification, response, actor_id, now)
            if state.current_sub_status == SUB_STATUS_CLARIFICATION_NEEDED:
                self._apply_sub_status(
                    state, None, tracker.resolved_reason(clarification.response), actor_id, now,
                )

        logger.info("Clarification %s resolved on project %s", clarification_id, project_id,
                    extra={"project_id": project_id, "actor_id": actor_id})
        return clarification

    # ── Health ───────────────────────────────────────────────────────────

    def update_health(self, project_id: int, overall_status, factors, actor_id: int) -> ProjectStatusState:
        """Overwrite the health snapshot. Invalid input never touches stored health."""
        with self._unit_of_work("update_health", project_id):
            state = self._get_state(project_id, lock=True)
            apply_health(state, overall_status, factors, self._now())
            state.last_updated_by_id = actor_id

        logger.info("Project %s health → %s", project_id, overall_status,
                    extra={"project_id": project_id, "actor_id": actor_id})
        return state
