"""Initial schema: leads, tasks, events.

Revision ID: 001
Revises:
Create Date: 2026-01-12

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "leads",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("workspaceId", sa.Text, nullable=False),
        sa.Column("board", sa.Text, nullable=False),
        sa.Column("stageId", sa.Text, nullable=False),
        sa.Column("username", sa.Text, nullable=False),
        sa.Column("usernameLower", sa.Text, nullable=False),
        sa.Column("displayName", sa.Text, nullable=True),
        sa.Column("priority", sa.Text, nullable=False, server_default="medium"),
        sa.Column("tags", sa.JSON, nullable=False),
        sa.Column("notes", sa.Text, nullable=False, server_default=""),
        sa.Column("createdAt", sa.BigInteger, nullable=False),
        sa.Column("updatedAt", sa.BigInteger, nullable=False),
        sa.Column("lastTouchedAt", sa.BigInteger, nullable=False),
        sa.Column("nextFollowUpAt", sa.BigInteger, nullable=True),
        sa.CheckConstraint("\"board\" IN ('OUTBOUND', 'SOCIAL')", name="ck_lead_board"),
        sa.CheckConstraint(
            "\"priority\" IN ('low', 'medium', 'high')", name="ck_lead_priority"
        ),
        sa.UniqueConstraint("workspaceId", "usernameLower", name="uq_lead_workspace_username"),
    )
    op.create_index("ix_leads_workspace_board_stage", "leads", ["workspaceId", "board", "stageId"])
    op.create_index("ix_leads_workspace_follow_up", "leads", ["workspaceId", "nextFollowUpAt"])
    op.create_index("ix_leads_workspace", "leads", ["workspaceId"])
    op.create_index("ix_leads_created_at", "leads", ["createdAt"])
    op.create_index("ix_leads_updated_at", "leads", ["updatedAt"])

    op.create_table(
        "tasks",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("workspaceId", sa.Text, nullable=False),
        sa.Column("leadId", sa.Text, nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("dueAt", sa.BigInteger, nullable=False),
        sa.Column("doneAt", sa.BigInteger, nullable=True),
        sa.Column("status", sa.Text, nullable=False, server_default="open"),
        sa.Column("snoozeUntil", sa.BigInteger, nullable=True),
        sa.CheckConstraint(
            "\"status\" IN ('open', 'done', 'snoozed')", name="ck_task_status"
        ),
    )
    op.create_index("ix_tasks_workspace_status", "tasks", ["workspaceId", "status"])
    op.create_index("ix_tasks_workspace_due", "tasks", ["workspaceId", "dueAt"])
    op.create_index("ix_tasks_workspace_lead", "tasks", ["workspaceId", "leadId"])
    op.create_index("ix_tasks_workspace", "tasks", ["workspaceId"])

    op.create_table(
        "events",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("workspaceId", sa.Text, nullable=False),
        sa.Column("leadId", sa.Text, nullable=False),
        sa.Column("type", sa.Text, nullable=False),
        sa.Column("fromStageId", sa.Text, nullable=True),
        sa.Column("toStageId", sa.Text, nullable=True),
        sa.Column("at", sa.BigInteger, nullable=False),
        sa.Column("day", sa.Integer, nullable=False),
        sa.CheckConstraint(
            "\"type\" IN ('CREATED', 'MOVED_STAGE', 'NOTE_UPDATED', "
            "'PRIORITY_CHANGED', 'TASK_CREATED', 'TASK_DONE')",
            name="ck_event_type",
        ),
    )
    op.create_index("ix_events_workspace_type_day", "events", ["workspaceId", "type", "day"])
    op.create_index(
        "ix_events_workspace_type_stage_day", "events", ["workspaceId", "type", "toStageId", "day"]
    )
    op.create_index("ix_events_workspace_lead", "events", ["workspaceId", "leadId"])
    op.create_index("ix_events_workspace", "events", ["workspaceId"])
    op.create_index("ix_events_at", "events", ["at"])


def downgrade() -> None:
    op.drop_table("events")
    op.drop_table("tasks")
    op.drop_table("leads")
