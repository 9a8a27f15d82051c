"""
Client Portal
Portal domain models — the shared record the workflow engine hangs off.

Models:
    - User:           portal login identity (role: admin | client)
    - Client:         a customer organisation, owned by one client user
    - Project:        unit of delivered work for a client
    - Communication:  internal message between two users about a project

Architecture:
    User ──1:1──▶ Client ──1:N──▶ Project ──1:N──▶ Communication
    Project ──1:1──▶ ProjectStatusState   (see app/models/project_status.py)

``Project.status`` is the coarse legacy status (planning | in_progress |
on_hold | completed).  It is a denormalised summary kept in sync by the
workflow engine; the authoritative lifecycle lives in project_status_data.
"""

from datetime import datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

USER_ROLES = {"admin", "client"}

LEGACY_PROJECT_STATUSES = {"planning", "in_progress", "on_hold", "completed"}

ONBOARDING_STATUSES = {"pending", "in_progress", "completed"}

PIPELINE_STAGES = {
    "qualifying_call", "discovery_call", "followup_call",
    "free_work_delivery", "final_presentation",
}

COMMUNICATION_TYPES = {"update", "question", "decision"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False)
    email = db.Column(db.String(200), unique=True, nullable=False)
    name = db.Column(db.String(200), nullable=False)
    phone = db.Column(db.String(50), nullable=True)
    role = db.Column(
        db.String(20), nullable=False, default="client",
        comment="admin | client",
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    last_login = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def to_summary(self) -> dict:
        """Identity snippet embedded in history / clarification payloads."""
        return {"id": self.id, "name": self.name}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "name": self.name,
            "phone": self.phone,
            "role": self.role,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_login": self.last_login.isoformat() if self.last_login else None,
        }

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.username} ({self.role})>"


class Client(db.Model):
    """Customer organisation record, created during onboarding."""

    __tablename__ = "clients"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    company_name = db.Column(db.String(200), nullable=False)
    legal_entity_name = db.Column(db.String(200), nullable=True)
    legal_business_address = db.Column(db.Text, nullable=True)
    signee_name = db.Column(db.String(200), nullable=True)
    signee_email = db.Column(db.String(200), nullable=True)
    signee_phone = db.Column(db.String(50), nullable=True)
    onboarding_status = db.Column(
        db.String(20), nullable=False, default="pending",
        comment="pending | in_progress | completed",
    )
    pipeline_stage = db.Column(db.String(30), nullable=False, default="qualifying_call")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    user = db.relationship("User", foreign_keys=[user_id])
    projects = db.relationship("Project", backref="client", lazy="dynamic")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "company_name": self.company_name,
            "legal_entity_name": self.legal_entity_name,
            "onboarding_status": self.onboarding_status,
            "pipeline_stage": self.pipeline_stage,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Client {self.id}: {self.company_name}>"


class Project(db.Model):
    """Delivered piece of work for a client."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(
        db.Integer,
        db.ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    goal = db.Column(db.Text, nullable=True)
    budget = db.Column(db.String(100), nullable=True)
    timeline = db.Column(db.String(100), nullable=True)
    go_live_date = db.Column(db.DateTime(timezone=True), nullable=True)
    status = db.Column(
        db.String(30), nullable=False, default="planning",
        comment="Legacy summary: planning | in_progress | on_hold | completed",
    )
    progress_percentage = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    def to_dict(self) -> dict:
        """Serialize core project fields for API responses."""
        return {
            "id": self.id,
            "client_id": self.client_id,
            "name": self.name,
            "description": self.description,
            "goal": self.goal,
            "budget": self.budget,
            "timeline": self.timeline,
            "go_live_date": self.go_live_date.isoformat() if self.go_live_date else None,
            "status": self.status,
            "progress_percentage": self.progress_percentage,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.name}>"


class Communication(db.Model):
    """
    Internal message record.

    The workflow engine's notification hook writes one of these for every
    status change and clarification request so the client sees it in the
    messages panel.
    """

    __tablename__ = "communications"
    __table_args__ = (
        db.Index("ix_communications_project_created", "project_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False,
    )
    sender_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    recipient_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(20), nullable=False, default="update")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "sender_id": self.sender_id,
            "recipient_id": self.recipient_id,
            "message": self.message,
            "type": self.type,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "read_at": self.read_at.isoformat() if self.read_at else None,
        }

    def __repr__(self):
        return f"<Communication {self.id}: project={self.project_id} {self.type}>"
