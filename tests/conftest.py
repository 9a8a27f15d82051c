"""
Shared pytest fixtures for the Client Portal test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate + catalog reseed (autouse)
    - client: Flask test client (function-scoped)
    - admin_user / client_user / other_client_user: portal identities
    - portal_client / project: a client record and a project initialized at SCOPING
    - recorder / service: a ProjectStatusService whose notifications are captured
    - as_admin / as_client / as_other: X-User-Id header dicts for API calls
"""

import pytest

from app import create_app
from app.models import db as _db
from app.models.portal import Client, Project, User
from app.services.notification_dispatch import NotificationDispatcher, NotificationHook
from app.services.project_status_service import ProjectStatusService
from app.services.status_catalog import get_status_catalog, seed_status_catalog


def _reseed_catalog():
    """Status FKs point at project_status_types.code; every fresh schema needs the rows."""
    seed_status_catalog()
    _db.session.commit()


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
        _reseed_catalog()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()
        _reseed_catalog()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Portal entities ──────────────────────────────────────────────────────


def make_user(username, role="client", name=None):
    user = User(
        username=username,
        email=f"{username}@portal.test",
        name=name or username.title(),
        role=role,
    )
    _db.session.add(user)
    _db.session.commit()
    return user


def make_project(client_record, name="Website Relaunch"):
    project = Project(client_id=client_record.id, name=name, description="Test project")
    _db.session.add(project)
    _db.session.commit()
    return project


@pytest.fixture()
def admin_user():
    return make_user("admin", role="admin", name="Ada Admin")


@pytest.fixture()
def client_user():
    return make_user("acme", name="Acme Owner")


@pytest.fixture()
def other_client_user():
    return make_user("globex", name="Globex Owner")


@pytest.fixture()
def portal_client(client_user):
    record = Client(user_id=client_user.id, company_name="Acme Robotics")
    _db.session.add(record)
    _db.session.commit()
    return record


@pytest.fixture()
def bare_project(portal_client):
    """Project with no status data yet."""
    return make_project(portal_client)


# ── Workflow engine ──────────────────────────────────────────────────────


class RecordingHook(NotificationHook):
    """Captures events instead of delivering them."""

    name = "recorder"

    def __init__(self):
        self.status_changes = []
        self.clarifications = []

    def on_status_change(self, event):
        self.status_changes.append(event)

    def on_clarification_requested(self, event):
        self.clarifications.append(event)


@pytest.fixture()
def recorder():
    return RecordingHook()


@pytest.fixture()
def catalog():
    return get_status_catalog()


@pytest.fixture()
def service(catalog, recorder):
    return ProjectStatusService(catalog, NotificationDispatcher([recorder], run_async=False))


@pytest.fixture()
def project(bare_project, service, admin_user):
    """Project initialized at SCOPING by the admin."""
    service.initialize_status(bare_project.id, actor_id=admin_user.id)
    return bare_project


# ── Request identities ───────────────────────────────────────────────────


@pytest.fixture()
def as_admin(admin_user):
    return {"X-User-Id": str(admin_user.id)}


@pytest.fixture()
def as_client(client_user):
    return {"X-User-Id": str(client_user.id)}


@pytest.fixture()
def as_other(other_client_user):
    return {"X-User-Id": str(other_client_user.id)}
