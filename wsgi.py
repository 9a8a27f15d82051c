"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi seed-status-catalog
    flask --app wsgi backfill-project-status
    gunicorn wsgi:app
"""

from app import create_app

app = create_app()
