"""project_status_workflow

Create the status catalog, per-project status data, the status history
ledger and clarifications.  The partial unique index on
project_status_history(project_id) WHERE to_date IS NULL allows at most one
open history entry per project.

Revision ID: b7d24e6c9a10
Revises: a1c0f3e9b201
Create Date: 2026-10-17 09:40:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "b7d24e6c9a10"
down_revision = "a1c0f3e9b201"
branch_labels = None
depends_on = None


def upgrade():
    existing_tables = set(sa_inspect(op.get_bind()).get_table_names())

    if "project_status_types" not in existing_tables:
        op.create_table(
            "project_status_types",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("code", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.Text(), nullable=False, server_default=""),
            sa.Column("order", sa.Integer(), nullable=False),
            sa.Column("category", sa.String(length=20), nullable=False),
            sa.Column("client_visible", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("requires_client_action", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("color", sa.String(length=20), nullable=False),
            sa.Column("icon", sa.String(length=50), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code"),
        )

    if "project_status_transitions" not in existing_tables:
        op.create_table(
            "project_status_transitions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("from_status", sa.String(length=50), nullable=False),
            sa.Column("to_status", sa.String(length=50), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["from_status"], ["project_status_types.code"]),
            sa.ForeignKeyConstraint(["to_status"], ["project_status_types.code"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("from_status", "to_status", name="uq_status_transition_edge"),
            sa.CheckConstraint("from_status <> to_status", name="ck_status_transition_no_self_loop"),
        )
        op.create_index(
            "ix_project_status_transitions_from_status",
            "project_status_transitions",
            ["from_status"],
        )

    if "project_status_data" not in existing_tables:
        op.create_table(
            "project_status_data",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("current_status", sa.String(length=50), nullable=False),
            sa.Column("current_status_since", sa.DateTime(timezone=True), nullable=False),
            sa.Column("current_sub_status", sa.String(length=50), nullable=True),
            sa.Column("sub_status_reason", sa.Text(), nullable=True),
            sa.Column("sub_status_since", sa.DateTime(timezone=True), nullable=True),
            sa.Column("health_status", sa.String(length=20), nullable=False, server_default="GOOD"),
            sa.Column("health_factors", sa.JSON(), nullable=False),
            sa.Column("health_last_updated", sa.DateTime(timezone=True), nullable=False),
            sa.Column("last_updated_by_id", sa.Integer(), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["current_status"], ["project_status_types.code"]),
            sa.ForeignKeyConstraint(["last_updated_by_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id"),
        )

    if "project_status_history" not in existing_tables:
        op.create_table(
            "project_status_history",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("status_code", sa.String(length=50), nullable=False),
            sa.Column("from_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("to_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("duration", sa.Float(), nullable=True),
            sa.Column("changed_by_id", sa.Integer(), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("sub_status", sa.String(length=50), nullable=True),
            sa.Column("sub_status_reason", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["status_code"], ["project_status_types.code"]),
            sa.ForeignKeyConstraint(["changed_by_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_status_history_project_from",
            "project_status_history",
            ["project_id", "from_date"],
        )
        op.create_index(
            "uq_status_history_one_open",
            "project_status_history",
            ["project_id"],
            unique=True,
            postgresql_where=sa.text("to_date IS NULL"),
            sqlite_where=sa.text("to_date IS NULL"),
        )

    if "project_clarifications" not in existing_tables:
        op.create_table(
            "project_clarifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("question", sa.Text(), nullable=False),
            sa.Column("requested_by_id", sa.Integer(), nullable=False),
            sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("response", sa.Text(), nullable=True),
            sa.Column("responded_by_id", sa.Integer(), nullable=True),
            sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["requested_by_id"], ["users.id"]),
            sa.ForeignKeyConstraint(["responded_by_id"], ["users.id"]),
            sa.CheckConstraint("status IN ('PENDING', 'RESOLVED')", name="ck_clarification_status"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_clarifications_project_requested",
            "project_clarifications",
            ["project_id", "requested_at"],
        )


def downgrade():
    existing_tables = set(sa_inspect(op.get_bind()).get_table_names())

    if "project_clarifications" in existing_tables:
        op.drop_index("ix_clarifications_project_requested", table_name="project_clarifications")
        op.drop_table("project_clarifications")
    if "project_status_history" in existing_tables:
        op.drop_index("uq_status_history_one_open", table_name="project_status_history")
        op.drop_index("ix_status_history_project_from", table_name="project_status_history")
        op.drop_table("project_status_history")
    if "project_status_data" in existing_tables:
        op.drop_table("project_status_data")
    if "project_status_transitions" in existing_tables:
        op.drop_index("ix_project_status_transitions_from_status", table_name="project_status_transitions")
        op.drop_table("project_status_transitions")
    if "project_status_types" in existing_tables:
        op.drop_table("project_status_types")
