"""Create form, submission and notification_job tables.

Revision ID: 001_formrelay_initial
Revises:
Create Date: 2026-10-17

"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001_formrelay_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _has_table(bind, name: str) -> bool:
    return sa.inspect(bind).has_table(name)


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()

    if not _has_table(bind, "form"):
        op.create_table(
            "form",
            sa.Column("owner_id", sa.String(length=100), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("endpoint_slug", sa.String(length=100), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("settings_json", sa.JSON(), nullable=True),
            *_base_columns(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_form_owner_id", "form", ["owner_id"], unique=False)
        op.create_index("ix_form_endpoint_slug", "form", ["endpoint_slug"], unique=True)

    if not _has_table(bind, "submission"):
        op.create_table(
            "submission",
            sa.Column("form_id", sa.Uuid(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=True),
            sa.Column("email", sa.String(length=320), nullable=True),
            sa.Column("payload", sa.JSON(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="new"),
            sa.Column("ip", sa.String(length=45), nullable=True),
            sa.Column("user_agent", sa.String(length=500), nullable=True),
            sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            *_base_columns(),
            sa.ForeignKeyConstraint(["form_id"], ["form.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_submission_form_id", "submission", ["form_id"], unique=False)
        op.create_index("ix_submission_ip", "submission", ["ip"], unique=False)
        op.create_index("ix_submission_submitted_at", "submission", ["submitted_at"], unique=False)

    if not _has_table(bind, "notification_job"):
        op.create_table(
            "notification_job",
            sa.Column("kind", sa.String(length=50), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("payload", sa.JSON(), nullable=False),
            sa.Column("submission_id", sa.Uuid(), nullable=True),
            sa.Column("scheduled_for", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
            sa.Column("last_error", sa.Text(), nullable=True),
            *_base_columns(),
            sa.ForeignKeyConstraint(["submission_id"], ["submission.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notification_job_kind", "notification_job", ["kind"], unique=False)
        op.create_index("ix_notification_job_status", "notification_job", ["status"], unique=False)
        op.create_index(
            "ix_notification_job_submission_id", "notification_job", ["submission_id"], unique=False
        )
        op.create_index(
            "ix_notification_job_scheduled_for", "notification_job", ["scheduled_for"], unique=False
        )


def downgrade() -> None:
    bind = op.get_bind()
    for table in ("notification_job", "submission", "form"):
        if _has_table(bind, table):
            op.drop_table(table)
