"""create escalation tables

Revision ID: 3f1c9a7d2e10
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1c9a7d2e10"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

TASK_STATUS = ("pending", "completed", "failed")
TASK_PRIORITY = ("low", "medium", "high")
ESCALATION_STATUS = ("pending", "sent", "failed", "cancelled", "retrying")
RECEIPT_EVENT_TYPE = ("sent", "delivered", "bounced", "complained", "opened", "clicked")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("full_name", sa.String(255), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("due_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("priority", sa.Enum(*TASK_PRIORITY, name="taskpriority"), nullable=False),
        sa.Column(
            "status", sa.Enum(*TASK_STATUS, name="taskstatus"), nullable=False, index=True
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "contacts",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("relationship", sa.String(50), nullable=True),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "escalation_policies",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("task_id", sa.Integer(), sa.ForeignKey("tasks.id"), nullable=False, index=True),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("minutes_after_due", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "contact_id", sa.Integer(), sa.ForeignKey("contacts.id"), nullable=False, index=True
        ),
        sa.Column("message_template", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("task_id", "level", name="uq_policy_task_level"),
        sa.CheckConstraint("level BETWEEN 1 AND 3", name="ck_policy_level_range"),
        sa.CheckConstraint("minutes_after_due >= 0", name="ck_policy_minutes_non_negative"),
    )

    op.create_table(
        "escalations",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column(
            "policy_id",
            sa.Integer(),
            sa.ForeignKey("escalation_policies.id"),
            nullable=False,
            unique=True,
            index=True,
        ),
        sa.Column(
            "status",
            sa.Enum(*ESCALATION_STATUS, name="escalationstatus"),
            nullable=False,
            index=True,
        ),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("message_content", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivery_receipt", postgresql.JSONB(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "escalation_engagements",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column(
            "escalation_id",
            sa.Integer(),
            sa.ForeignKey("escalations.id"),
            nullable=False,
            unique=True,
            index=True,
        ),
        sa.Column("delivery_confirmed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("clicked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("click_url", sa.Text(), nullable=True),
        sa.Column("bounced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("bounce_type", sa.String(100), nullable=True),
        sa.Column("bounce_reason", sa.Text(), nullable=True),
        sa.Column("complained_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_event_type", sa.String(20), nullable=True),
        sa.Column("last_event_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "delivery_receipt_events",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column(
            "escalation_id",
            sa.Integer(),
            sa.ForeignKey("escalations.id"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "event_type", sa.Enum(*RECEIPT_EVENT_TYPE, name="receipteventtype"), nullable=False
        ),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False, server_default="resend"),
        sa.Column("provider_message_id", sa.String(255), nullable=True, index=True),
        sa.Column("recipient", sa.String(255), nullable=True),
        sa.Column("provider_payload", postgresql.JSONB(), nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("delivery_receipt_events")
    op.drop_table("escalation_engagements")
    op.drop_table("escalations")
    op.drop_table("escalation_policies")
    op.drop_table("contacts")
    op.drop_table("tasks")
    op.drop_table("users")
    sa.Enum(name="receipteventtype").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="escalationstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="taskstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="taskpriority").drop(op.get_bind(), checkfirst=True)
