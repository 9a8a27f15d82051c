"""portal_core_tables

Create `users`, `clients`, `projects` and `communications`.

Revision ID: a1c0f3e9b201
Revises:
Create Date: 2026-10-17 09:12:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1c0f3e9b201"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("username", sa.String(length=100), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("phone", sa.String(length=50), nullable=True),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="client"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("username"),
            sa.UniqueConstraint("email"),
        )

    if "clients" not in existing_tables:
        op.create_table(
            "clients",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("company_name", sa.String(length=200), nullable=False),
            sa.Column("legal_entity_name", sa.String(length=200), nullable=True),
            sa.Column("legal_business_address", sa.Text(), nullable=True),
            sa.Column("signee_name", sa.String(length=200), nullable=True),
            sa.Column("signee_email", sa.String(length=200), nullable=True),
            sa.Column("signee_phone", sa.String(length=50), nullable=True),
            sa.Column("onboarding_status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("pipeline_stage", sa.String(length=30), nullable=False, server_default="qualifying_call"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_clients_user_id", "clients", ["user_id"])

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("client_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=False, server_default=""),
            sa.Column("goal", sa.Text(), nullable=True),
            sa.Column("budget", sa.String(length=100), nullable=True),
            sa.Column("timeline", sa.String(length=100), nullable=True),
            sa.Column("go_live_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="planning"),
            sa.Column("progress_percentage", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_projects_client_id", "projects", ["client_id"])

    if "communications" not in existing_tables:
        op.create_table(
            "communications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("sender_id", sa.Integer(), nullable=False),
            sa.Column("recipient_id", sa.Integer(), nullable=False),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("type", sa.String(length=20), nullable=False, server_default="update"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["sender_id"], ["users.id"]),
            sa.ForeignKeyConstraint(["recipient_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_communications_recipient_id", "communications", ["recipient_id"])
        op.create_index("ix_communications_project_created", "communications", ["project_id", "created_at"])


def downgrade():
    existing_tables = set(sa_inspect(op.get_bind()).get_table_names())

    if "communications" in existing_tables:
        op.drop_index("ix_communications_project_created", table_name="communications")
        op.drop_index("ix_communications_recipient_id", table_name="communications")
        op.drop_table("communications")
    if "projects" in existing_tables:
        op.drop_index("ix_projects_client_id", table_name="projects")
        op.drop_table("projects")
    if "clients" in existing_tables:
        op.drop_index("ix_clients_user_id", table_name="clients")
        op.drop_table("clients")
    if "users" in existing_tables:
        op.drop_table("users")
