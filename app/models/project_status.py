"""
Client Portal
Project status workflow models.

Models:
    - StatusType:           catalog entry for one lifecycle status (seeded once)
    - StatusTransition:     directed legal edge between two catalog statuses
    - ProjectStatusState:   the single current-state row per project
    - StatusHistoryEntry:   timed interval during which a project held a status
    - Clarification:        question/answer exchange gating a project

Architecture:
    StatusType ──1:N──▶ StatusTransition (as from_status / to_status)
    Project ──1:1──▶ ProjectStatusState
    Project ──1:N──▶ StatusHistoryEntry
    Project ──1:N──▶ Clarification

Lifecycle (default seed, see app/services/status_catalog.py):
    SCOPING → REVIEWING → PROPOSAL_PHASE → APPROVED → SETTING_UP
    → PROJECT_IN_PROGRESS ⇄ ON_HOLD → INTERNAL_REVIEW → READY_FOR_CLIENT_REVIEW
    → UAT_TESTING → DEPLOYMENT_PREPARATION → DEPLOYED → COMPLETED
    → MAINTENANCE → PROJECT_IN_PROGRESS

Only the workflow engine (app/services/project_status_service.py) writes to
project_status_data, project_status_history and project_clarifications.
"""

from datetime import datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

STATUS_CATEGORIES = ("INITIAL", "EXECUTION", "REVIEW", "COMPLETION")

HEALTH_STATUSES = ("EXCELLENT", "GOOD", "AT_RISK", "CRITICAL")

DEFAULT_HEALTH_STATUS = "GOOD"

CLARIFICATION_PENDING = "PENDING"
CLARIFICATION_RESOLVED = "RESOLVED"
CLARIFICATION_STATUSES = (CLARIFICATION_PENDING, CLARIFICATION_RESOLVED)

SUB_STATUS_CLARIFICATION_NEEDED = "CLARIFICATION_NEEDED"
SUB_STATUS_NONE = "NONE"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class StatusType(db.Model):
    """Catalog entry. Immutable once seeded; edits are an admin bootstrap step."""

    __tablename__ = "project_status_types"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    order = db.Column(db.Integer, nullable=False, comment="Sort rank")
    category = db.Column(
        db.String(20), nullable=False,
        comment="INITIAL | EXECUTION | REVIEW | COMPLETION",
    )
    client_visible = db.Column(db.Boolean, nullable=False, default=True)
    requires_client_action = db.Column(db.Boolean, nullable=False, default=False)
    color = db.Column(db.String(20), nullable=False)
    icon = db.Column(db.String(50), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<StatusType {self.code}>"


class StatusTransition(db.Model):
    """Directed legal edge in the status graph."""

    __tablename__ = "project_status_transitions"
    __table_args__ = (
        db.UniqueConstraint("from_status", "to_status", name="uq_status_transition_edge"),
        db.CheckConstraint("from_status <> to_status", name="ck_status_transition_no_self_loop"),
    )

    id = db.Column(db.Integer, primary_key=True)
    from_status = db.Column(
        db.String(50), db.ForeignKey("project_status_types.code"), nullable=False, index=True,
    )
    to_status = db.Column(
        db.String(50), db.ForeignKey("project_status_types.code"), nullable=False,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<StatusTransition {self.from_status} → {self.to_status}>"


class ProjectStatusState(db.Model):
    """
    Current lifecycle state of one project (exactly one row per project).

    ``version`` is an optimistic-lock counter: two writers that both loaded
    version N cannot both commit — the loser gets StaleDataError.
    """

    __tablename__ = "project_status_data"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    current_status = db.Column(
        db.String(50), db.ForeignKey("project_status_types.code"), nullable=False,
    )
    current_status_since = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    current_sub_status = db.Column(
        db.String(50), nullable=True,
        comment="Free-form: CLARIFICATION_NEEDED | BLOCKED | … ; NULL = none",
    )
    sub_status_reason = db.Column(db.Text, nullable=True)
    sub_status_since = db.Column(db.DateTime(timezone=True), nullable=True)
    health_status = db.Column(
        db.String(20), nullable=False, default=DEFAULT_HEALTH_STATUS,
        comment="EXCELLENT | GOOD | AT_RISK | CRITICAL",
    )
    health_factors = db.Column(db.JSON, nullable=False, default=dict)
    health_last_updated = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    last_updated_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    __mapper_args__ = {"version_id_col": version}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "current_status": self.current_status,
            "current_status_since": _iso(self.current_status_since),
            "current_sub_status": self.current_sub_status,
            "sub_status_reason": self.sub_status_reason,
            "sub_status_since": _iso(self.sub_status_since),
            "health_status": self.health_status,
            "health_factors": dict(self.health_factors or {}),
            "health_last_updated": _iso(self.health_last_updated),
            "last_updated_by_id": self.last_updated_by_id,
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self) -> str:
        sub = f"/{self.current_sub_status}" if self.current_sub_status else ""
        return f"<ProjectStatusState project={self.project_id}: {self.current_status}{sub}>"


class StatusHistoryEntry(db.Model):
    """
    Append-only ledger row.

    ``to_date IS NULL`` marks the currently open interval; the partial
    unique index allows at most one such row per project.  Closed rows are
    never updated again.
    """

    __tablename__ = "project_status_history"
    __table_args__ = (
        db.Index("ix_status_history_project_from", "project_id", "from_date"),
        db.Index(
            "uq_status_history_one_open",
            "project_id",
            unique=True,
            postgresql_where=db.text("to_date IS NULL"),
            sqlite_where=db.text("to_date IS NULL"),
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    status_code = db.Column(
        db.String(50), db.ForeignKey("project_status_types.code"), nullable=False,
    )
    from_date = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    to_date = db.Column(db.DateTime(timezone=True), nullable=True)
    duration = db.Column(db.Float, nullable=True, comment="Seconds; set when the entry is closed")
    changed_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    sub_status = db.Column(db.String(50), nullable=True)
    sub_status_reason = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    changed_by = db.relationship("User", foreign_keys=[changed_by_id])

    @property
    def is_open(self) -> bool:
        return self.to_date is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "status_code": self.status_code,
            "from_date": _iso(self.from_date),
            "to_date": _iso(self.to_date),
            "duration": self.duration,
            "changed_by_id": self.changed_by_id,
            "changed_by": self.changed_by.to_summary() if self.changed_by else None,
            "notes": self.notes,
            "sub_status": self.sub_status,
            "sub_status_reason": self.sub_status_reason,
        }

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<StatusHistoryEntry {self.id}: project={self.project_id} {self.status_code} ({state})>"


class Clarification(db.Model):
    """Question raised by an admin, answered by the client (or an admin)."""

    __tablename__ = "project_clarifications"
    __table_args__ = (
        db.Index("ix_clarifications_project_requested", "project_id", "requested_at"),
        db.CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in CLARIFICATION_STATUSES) + ")",
            name="ck_clarification_status",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    question = db.Column(db.Text, nullable=False)
    requested_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    requested_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    response = db.Column(db.Text, nullable=True)
    responded_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    responded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=CLARIFICATION_PENDING, comment="PENDING | RESOLVED")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    requested_by = db.relationship("User", foreign_keys=[requested_by_id])
    responded_by = db.relationship("User", foreign_keys=[responded_by_id])

    @property
    def is_resolved(self) -> bool:
        return self.status == CLARIFICATION_RESOLVED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "question": self.question,
            "requested_by_id": self.requested_by_id,
            "requested_at": _iso(self.requested_at),
            "response": self.response,
            "responded_by_id": self.responded_by_id,
            "responded_at": _iso(self.responded_at),
            "status": self.status,
        }

    def __repr__(self):
        return f"<Clarification {self.id}: project={self.project_id} {self.status}>"
