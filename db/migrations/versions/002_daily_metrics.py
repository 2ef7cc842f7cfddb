"""Add dailyMetrics table and leads.avatarUrl.

Additive only: existing leads, tasks and events rows are untouched.

Revision ID: 002
Revises: 001
Create Date: 2026-02-03
"""
from alembic import op
import sqlalchemy as sa

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None

_COUNTERS = (
    "msg1Disparos",
    "msg1Respostas",
    "msg2Disparos",
    "msg2Respostas",
    "ctaDisparos",
    "agendNovos",
    "followEnviados",
    "followRespostas",
    "followCta",
    "agendFollow",
)


def upgrade() -> None:
    op.add_column("leads", sa.Column("avatarUrl", sa.Text, nullable=True))

    op.create_table(
        "dailyMetrics",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("workspaceId", sa.Text, nullable=False),
        sa.Column("board", sa.Text, nullable=False),
        sa.Column("dateKey", sa.Text, nullable=False),
        *[
            sa.Column(name, sa.Integer, nullable=False, server_default="0")
            for name in _COUNTERS
        ],
        sa.Column("createdAt", sa.BigInteger, nullable=False),
        sa.Column("updatedAt", sa.BigInteger, nullable=False),
        sa.Column("closedAt", sa.BigInteger, nullable=True),
        sa.CheckConstraint("\"board\" IN ('OUTBOUND', 'SOCIAL')", name="ck_metrics_board"),
    )
    op.create_index(
        "ix_metrics_workspace_board_date", "dailyMetrics", ["workspaceId", "board", "dateKey"]
    )
    op.create_index("ix_metrics_workspace_date", "dailyMetrics", ["workspaceId", "dateKey"])
    op.create_index(
        "ix_metrics_workspace_board_closed", "dailyMetrics", ["workspaceId", "board", "closedAt"]
    )
    op.create_index("ix_metrics_date", "dailyMetrics", ["dateKey"])
    op.create_index("ix_metrics_updated_at", "dailyMetrics", ["updatedAt"])
    op.create_index("ix_metrics_closed_at", "dailyMetrics", ["closedAt"])


def downgrade() -> None:
    op.drop_table("dailyMetrics")
    with op.batch_alter_table("leads") as batch:
        batch.drop_column("avatarUrl")
