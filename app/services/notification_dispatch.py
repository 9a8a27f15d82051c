"""
Client Portal
Notification Dispatch — best-effort side effects after a committed change.

ProjectStatusService hands plain event snapshots (never ORM objects) to a
NotificationDispatcher once its transaction has committed.  The dispatcher
fans each event out to its hooks:

    InternalMessageHook  → Communication row to the project's client user
    WebhookHook          → signed JSON POST to every WEBHOOK_URLS entry
    AutomationHook       → n8n-style workflow trigger (N8N_API_URL)

Hooks run on a daemon thread inside a fresh app context
(NOTIFICATIONS_ASYNC=True) or inline (tests).  A failing hook is logged and
the next hook still runs; nothing is ever raised back to the engine.
"""

import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

from flask import current_app, has_app_context

from app.models import db
from app.models.portal import Client, Communication, User

logger = logging.getLogger(__name__)


# ── Events ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProjectRef:
    """Detached snapshot of the project an event concerns."""

    id: int
    name: str
    client_id: int | None

    @classmethod
    def from_project(cls, project) -> "ProjectRef":
        return cls(id=project.id, name=project.name, client_id=project.client_id)


@dataclass(frozen=True)
class StatusChangeEvent:
    project: ProjectRef
    old_status: str
    new_status: str
    notes: str | None = None
    changed_by_id: int | None = None
    changed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    event_type = "project.status_changed"

    def to_payload(self) -> dict:
        return {
            "event": self.event_type,
            "project": {
                "id": self.project.id,
                "name": self.project.name,
                "clientId": self.project.client_id,
            },
            "status": {
                "previous": self.old_status,
                "current": self.new_status,
                "changedAt": self.changed_at.isoformat(),
                "changedBy": self.changed_by_id,
            },
            "notes": self.notes,
        }


@dataclass(frozen=True)
class ClarificationRequestedEvent:
    project: ProjectRef
    reason: str
    requested_by_id: int | None = None
    requested_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    event_type = "project.clarification_requested"

    def to_payload(self) -> dict:
        return {
            "event": self.event_type,
            "project": asdict(self.project),
            "reason": self.reason,
            "requestedBy": self.requested_by_id,
            "requestedAt": self.requested_at.isoformat(),
        }


# ── Hooks ────────────────────────────────────────────────────────────────────


class NotificationHook:
    """Base hook: override the events you care about."""

    name = "hook"

    def on_status_change(self, event: StatusChangeEvent) -> None:
        pass

    def on_clarification_requested(self, event: ClarificationRequestedEvent) -> None:
        pass


class InternalMessageHook(NotificationHook):
    """Write a Communication from the first admin to the project's client user."""

    name = "internal_message"

    def _write(self, project: ProjectRef, fallback_sender_id, message: str, msg_type: str):
        client = db.session.get(Client, project.client_id) if project.client_id else None
        if client is None:
            logger.info("Project %s has no client; skipping internal message", project.id,
                        extra={"project_id": project.id})
            return None

        admin = User.query.filter_by(role="admin").order_by(User.id).first()
        sender_id = admin.id if admin else fallback_sender_id
        if sender_id is None:
            logger.warning("No admin user to send from; skipping internal message",
                           extra={"project_id": project.id})
            return None

        comm = Communication(
            project_id=project.id,
            sender_id=sender_id,
            recipient_id=client.user_id,
            message=message,
            type=msg_type,
        )
        db.session.add(comm)
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return comm

    def on_status_change(self, event: StatusChangeEvent) -> None:
        message = (
            f'Project "{event.project.name}" status has been updated '
            f"from {event.old_status} to {event.new_status}"
        )
        if event.notes:
            message += f". Notes: {event.notes}"
        self._write(event.project, event.changed_by_id, message, "update")

    def on_clarification_requested(self, event: ClarificationRequestedEvent) -> None:
        message = f'We need your input on project "{event.project.name}". {event.reason}'
        self._write(event.project, event.requested_by_id, message, "question")


class WebhookHook(NotificationHook):
    """Signed JSON POST of every event to each configured receiver."""

    name = "webhook"

    def __init__(self, gateway, urls, secret: str | None = None):
        self.gateway = gateway
        self.urls = [u for u in urls if u]
        self.secret = secret or None

    def _send(self, event) -> None:
        payload = event.to_payload()
        for url in self.urls:
            result = self.gateway.post_event(
                url, payload, secret=self.secret, event_type=event.event_type,
            )
            if result.ok:
                logger.info("Webhook delivered %s to %s", event.event_type, url,
                            extra={"project_id": event.project.id})
            else:
                logger.warning("Webhook delivery to %s failed: %s", url, result.error,
                               extra={"project_id": event.project.id})

    def on_status_change(self, event: StatusChangeEvent) -> None:
        self._send(event)

    def on_clarification_requested(self, event: ClarificationRequestedEvent) -> None:
        self._send(event)


class AutomationHook(NotificationHook):
    """Trigger the status-change workflow on an n8n-style automation server."""

    name = "automation"

    def __init__(self, gateway, url: str, api_key: str | None):
        self.gateway = gateway
        self.url = url
        self.api_key = api_key or ""

    def on_status_change(self, event: StatusChangeEvent) -> None:
        if not self.api_key:
            logger.debug("Automation integration not configured; skipping")
            return
        payload = event.to_payload()
        payload.pop("event", None)
        payload.pop("notes", None)
        result = self.gateway.trigger_workflow(self.url, payload, api_key=self.api_key)
        if not result.ok:
            logger.warning("Automation workflow trigger failed: %s", result.error,
                           extra={"project_id": event.project.id})


# ── Dispatcher ───────────────────────────────────────────────────────────────


class NotificationDispatcher:
    """Fan events out to hooks after commit, never raising."""

    def __init__(self, hooks=None, *, run_async: bool = True):
        self.hooks = list(hooks or [])
        self.run_async = run_async

    def notify_status_change(self, project, old_status, new_status, notes=None, *,
                             actor_id=None, changed_at=None) -> None:
        ref = project if isinstance(project, ProjectRef) else ProjectRef.from_project(project)
        kwargs = {"changed_at": changed_at} if changed_at else {}
        event = StatusChangeEvent(ref, old_status, new_status, notes, actor_id, **kwargs)
        self._dispatch("on_status_change", event)

    def notify_clarification_requested(self, project, reason, *, actor_id=None) -> None:
        ref = project if isinstance(project, ProjectRef) else ProjectRef.from_project(project)
        self._dispatch("on_clarification_requested", ClarificationRequestedEvent(ref, reason, actor_id))

    def _dispatch(self, method: str, event) -> None:
        if not self.hooks:
            return
        if not self.run_async or not has_app_context():
            self._run_hooks(method, event)
            return

        app = current_app._get_current_object()
        t = threading.Thread(
            target=self._run_in_background,
            args=(app, method, event),
            name=f"notify-{event.project.id}",
            daemon=True,
        )
        t.start()

    def _run_in_background(self, app, method: str, event) -> None:
        with app.app_context():
            self._run_hooks(method, event)

    def _run_hooks(self, method: str, event) -> None:
        for hook in self.hooks:
            try:
                getattr(hook, method)(event)
            except Exception:
                logger.warning(
                    "Notification hook %s failed for %s on project %s",
                    getattr(hook, "name", type(hook).__name__), event.event_type, event.project.id,
                    exc_info=True,
                    extra={"project_id": event.project.id},
                )


def build_dispatcher(app, gateway=None) -> NotificationDispatcher:
    """Assemble the dispatcher from app config."""
    from app.integrations.webhook_gateway import WebhookGateway

    gateway = gateway or WebhookGateway(timeout=app.config.get("WEBHOOK_TIMEOUT", 10))
    hooks: list[NotificationHook] = [InternalMessageHook()]

    urls = app.config.get("WEBHOOK_URLS") or []
    if urls:
        hooks.append(WebhookHook(gateway, urls, app.config.get("WEBHOOK_SECRET")))

    n8n_url = app.config.get("N8N_API_URL")
    if n8n_url:
        hooks.append(AutomationHook(gateway, n8n_url, app.config.get("N8N_API_KEY")))

    logger.debug("Notification dispatcher hooks: %s", [h.name for h in hooks])
    return NotificationDispatcher(hooks, run_async=app.config.get("NOTIFICATIONS_ASYNC", True))


def get_dispatcher() -> NotificationDispatcher:
    dispatcher = current_app.extensions.get("notification_dispatcher")
    if dispatcher is None:
        dispatcher = NotificationDispatcher([], run_async=False)
    return dispatcher
