#!/usr/bin/env python3
"""
Client Portal — Demo Seed.

Creates an admin, a client user with a client record, and one project whose
status is initialized and walked a few steps along the lifecycle, with an
open clarification — enough to click through every status endpoint.

Usage:
    python scripts/seed_demo_portal.py             # seed into the dev database
    python scripts/seed_demo_portal.py --walk 0    # stop at SCOPING

Afterwards (API_AUTH_ENABLED=false):
    curl -H "X-User-Id: <admin id>" localhost:5000/api/v1/projects/<id>/status
"""

import argparse
import sys

sys.path.insert(0, ".")

from app import create_app
from app.models import db
from app.models.portal import Client, User
from app.services.notification_dispatch import NotificationDispatcher
from app.services.project_service import create_project
from app.services.project_status_service import ProjectStatusService
from app.services.status_catalog import get_status_catalog

DEMO_PATH = ["REVIEWING", "PROPOSAL_PHASE", "APPROVED", "SETTING_UP", "PROJECT_IN_PROGRESS"]


def seed_users():
    admin = User.query.filter_by(username="demo-admin").first()
    if admin is None:
        admin = User(username="demo-admin", email="admin@portal.local", name="Dana Admin", role="admin")
        db.session.add(admin)
    client_user = User.query.filter_by(username="acme").first()
    if client_user is None:
        client_user = User(username="acme", email="ops@acme.example", name="Acme Ops", role="client")
        db.session.add(client_user)
    db.session.commit()
    return admin, client_user


def seed_client(client_user):
    client = Client.query.filter_by(user_id=client_user.id).first()
    if client is None:
        client = Client(
            user_id=client_user.id,
            company_name="Acme Robotics",
            legal_entity_name="Acme Robotics Ltd.",
            onboarding_status="completed",
            pipeline_stage="final_presentation",
        )
        db.session.add(client)
        db.session.commit()
    return client


def main():
    parser = argparse.ArgumentParser(description="Seed a demo client portal")
    parser.add_argument("--walk", type=int, default=len(DEMO_PATH),
                        help="How many lifecycle steps to advance the demo project")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        admin, client_user = seed_users()
        client = seed_client(client_user)

        # Seeding should not message the demo client for every step
        svc = ProjectStatusService(get_status_catalog(), NotificationDispatcher([], run_async=False))
        project = create_project(
            svc,
            client_id=client.id,
            data={
                "name": "Warehouse Automation Rollout",
                "description": "Pick-and-place robots for the Leeds warehouse",
                "budget": "€120k",
                "timeline": "6 months",
            },
            actor_id=admin.id,
        )

        for code in DEMO_PATH[: max(0, args.walk)]:
            svc.transition_status(project.id, code, admin.id, notes=f"Demo: moved to {code}")

        svc.request_clarification(project.id, "Please confirm the go-live window for phase 1", admin.id)
        svc.update_health(
            project.id, "AT_RISK",
            {"timeline": "AT_RISK", "budget": "GOOD", "scopeClarity": "GOOD", "communication": "EXCELLENT"},
            admin.id,
        )

        print(f"Admin user id:  {admin.id}")
        print(f"Client user id: {client_user.id}")
        print(f"Project id:     {project.id}")
        print(f"Status:         {svc.get_status_data(project.id)['status_data']['current_status']}")


if __name__ == "__main__":
    main()
