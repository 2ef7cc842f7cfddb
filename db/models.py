"""SQLAlchemy 2.0 ORM models for the Ignis CRM store.

Covers the 4 tables of the local per-device database:
  - leads: profile handles tracked through a board's stages
  - tasks: follow-up tasks attached to a lead
  - events: append-only activity log (audit trail) per lead
  - dailyMetrics: per-day, per-board outreach counters

Column names are the wire names used in backup files (camelCase);
Python attributes are snake_case.
"""

import time
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    Index,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Shared base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    pass


BOARDS = ("OUTBOUND", "SOCIAL")
# Stage given to leads created without one
DEFAULT_STAGE_LABEL = "Leads novos"
PRIORITIES = ("low", "medium", "high")
TASK_STATUSES = ("open", "done", "snoozed")
EVENT_TYPES = (
    "CREATED",
    "MOVED_STAGE",
    "NOTE_UPDATED",
    "PRIORITY_CHANGED",
    "TASK_CREATED",
    "TASK_DONE",
)


def _in_check(column: str, values: tuple[str, ...]) -> str:
    return f'"{column}" IN (' + ", ".join(f"'{v}'" for v in values) + ")"


def new_id() -> str:
    return str(uuid.uuid4())


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def to_day_key(ts: int) -> int:
    """Epoch milliseconds -> yyyymmdd integer, in local time."""
    d = datetime.fromtimestamp(ts / 1000)
    return d.year * 10000 + d.month * 100 + d.day


# ===========================================================================
# Leads
# ===========================================================================


class Lead(Base):
    """leads: one social profile handle per (workspace, username)."""

    __tablename__ = "leads"
    __table_args__ = (
        CheckConstraint(_in_check("board", BOARDS), name="ck_lead_board"),
        CheckConstraint(_in_check("priority", PRIORITIES), name="ck_lead_priority"),
        UniqueConstraint("workspaceId", "usernameLower", name="uq_lead_workspace_username"),
        Index("ix_leads_workspace_board_stage", "workspaceId", "board", "stageId"),
        Index("ix_leads_workspace_follow_up", "workspaceId", "nextFollowUpAt"),
        Index("ix_leads_workspace", "workspaceId"),
        Index("ix_leads_created_at", "createdAt"),
        Index("ix_leads_updated_at", "updatedAt"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=new_id)
    workspace_id: Mapped[str] = mapped_column("workspaceId", Text, nullable=False)
    board: Mapped[str] = mapped_column(Text, nullable=False)
    stage_id: Mapped[str] = mapped_column("stageId", Text, nullable=False)
    username: Mapped[str] = mapped_column(Text, nullable=False)
    username_lower: Mapped[str] = mapped_column("usernameLower", Text, nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column("displayName", Text, nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column("avatarUrl", Text, nullable=True)
    priority: Mapped[str] = mapped_column(Text, nullable=False, default="medium")
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[int] = mapped_column("createdAt", BigInteger, nullable=False)
    updated_at: Mapped[int] = mapped_column("updatedAt", BigInteger, nullable=False)
    last_touched_at: Mapped[int] = mapped_column("lastTouchedAt", BigInteger, nullable=False)
    next_follow_up_at: Mapped[Optional[int]] = mapped_column(
        "nextFollowUpAt", BigInteger, nullable=True
    )

    def __repr__(self) -> str:
        return f"<Lead {self.workspace_id}/{self.board}/{self.username_lower} stage={self.stage_id!r}>"


# ===========================================================================
# Tasks
# ===========================================================================


class Task(Base):
    """tasks: follow-up work for a lead; deleted with the lead."""

    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint(_in_check("status", TASK_STATUSES), name="ck_task_status"),
        Index("ix_tasks_workspace_status", "workspaceId", "status"),
        Index("ix_tasks_workspace_due", "workspaceId", "dueAt"),
        Index("ix_tasks_workspace_lead", "workspaceId", "leadId"),
        Index("ix_tasks_workspace", "workspaceId"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=new_id)
    workspace_id: Mapped[str] = mapped_column("workspaceId", Text, nullable=False)
    lead_id: Mapped[str] = mapped_column("leadId", Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    due_at: Mapped[int] = mapped_column("dueAt", BigInteger, nullable=False)
    done_at: Mapped[Optional[int]] = mapped_column("doneAt", BigInteger, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="open")
    snooze_until: Mapped[Optional[int]] = mapped_column("snoozeUntil", BigInteger, nullable=True)


# ===========================================================================
# Activity events
# ===========================================================================


class ActivityEvent(Base):
    """events: append-only audit record of lead changes."""

    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint(_in_check("type", EVENT_TYPES), name="ck_event_type"),
        Index("ix_events_workspace_type_day", "workspaceId", "type", "day"),
        Index("ix_events_workspace_type_stage_day", "workspaceId", "type", "toStageId", "day"),
        Index("ix_events_workspace_lead", "workspaceId", "leadId"),
        Index("ix_events_workspace", "workspaceId"),
        Index("ix_events_at", "at"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=new_id)
    workspace_id: Mapped[str] = mapped_column("workspaceId", Text, nullable=False)
    lead_id: Mapped[str] = mapped_column("leadId", Text, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    from_stage_id: Mapped[Optional[str]] = mapped_column("fromStageId", Text, nullable=True)
    to_stage_id: Mapped[Optional[str]] = mapped_column("toStageId", Text, nullable=True)
    at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    day: Mapped[int] = mapped_column(Integer, nullable=False)

    @classmethod
    def for_lead(cls, lead: Lead, event_type: str, at: int, **kwargs: Any) -> "ActivityEvent":
        return cls(
            id=new_id(),
            workspace_id=lead.workspace_id,
            lead_id=lead.id,
            type=event_type,
            at=at,
            day=to_day_key(at),
            **kwargs,
        )


# ===========================================================================
# Daily metrics
# ===========================================================================

METRIC_COUNTERS = (
    "msg1_disparos",
    "msg1_respostas",
    "msg2_disparos",
    "msg2_respostas",
    "cta_disparos",
    "agend_novos",
    "follow_enviados",
    "follow_respostas",
    "follow_cta",
    "agend_follow",
)


class DailyMetrics(Base):
    """dailyMetrics: spreadsheet-style counters for one board on one day.

    id is "<workspaceId>:<board>:<dateKey>" with dateKey "YYYY-MM-DD".
    closedAt marks the day as closed; it is advisory and not enforced here.
    """

    __tablename__ = "dailyMetrics"
    __table_args__ = (
        CheckConstraint(_in_check("board", BOARDS), name="ck_metrics_board"),
        Index("ix_metrics_workspace_board_date", "workspaceId", "board", "dateKey"),
        Index("ix_metrics_workspace_date", "workspaceId", "dateKey"),
        Index("ix_metrics_workspace_board_closed", "workspaceId", "board", "closedAt"),
        Index("ix_metrics_date", "dateKey"),
        Index("ix_metrics_updated_at", "updatedAt"),
        Index("ix_metrics_closed_at", "closedAt"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    workspace_id: Mapped[str] = mapped_column("workspaceId", Text, nullable=False)
    board: Mapped[str] = mapped_column(Text, nullable=False)
    date_key: Mapped[str] = mapped_column("dateKey", Text, nullable=False)

    # New outreach
    msg1_disparos: Mapped[int] = mapped_column("msg1Disparos", Integer, nullable=False, default=0)
    msg1_respostas: Mapped[int] = mapped_column("msg1Respostas", Integer, nullable=False, default=0)
    msg2_disparos: Mapped[int] = mapped_column("msg2Disparos", Integer, nullable=False, default=0)
    msg2_respostas: Mapped[int] = mapped_column("msg2Respostas", Integer, nullable=False, default=0)
    cta_disparos: Mapped[int] = mapped_column("ctaDisparos", Integer, nullable=False, default=0)
    agend_novos: Mapped[int] = mapped_column("agendNovos", Integer, nullable=False, default=0)

    # Follow-up
    follow_enviados: Mapped[int] = mapped_column("followEnviados", Integer, nullable=False, default=0)
    follow_respostas: Mapped[int] = mapped_column("followRespostas", Integer, nullable=False, default=0)
    follow_cta: Mapped[int] = mapped_column("followCta", Integer, nullable=False, default=0)
    agend_follow: Mapped[int] = mapped_column("agendFollow", Integer, nullable=False, default=0)

    created_at: Mapped[int] = mapped_column("createdAt", BigInteger, nullable=False)
    updated_at: Mapped[int] = mapped_column("updatedAt", BigInteger, nullable=False)
    closed_at: Mapped[Optional[int]] = mapped_column("closedAt", BigInteger, nullable=True)

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None
