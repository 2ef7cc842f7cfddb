"""Activity event queries: per-lead history and per-day stage entries."""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import ActivityEvent

logger = logging.getLogger(__name__)


async def get_by_lead(
    session: AsyncSession, workspace_id: str, lead_id: str
) -> list[ActivityEvent]:
    """Return all events for a lead, oldest first."""
    result = await session.execute(
        select(ActivityEvent)
        .where(ActivityEvent.workspace_id == workspace_id)
        .where(ActivityEvent.lead_id == lead_id)
        .order_by(ActivityEvent.at)
    )
    return list(result.scalars().all())


async def get_by_day(
    session: AsyncSession,
    workspace_id: str,
    event_type: str,
    day: int,
    to_stage_id: Optional[str] = None,
) -> list[ActivityEvent]:
    """Return events of one type on a yyyymmdd day.

    With to_stage_id this answers "which leads entered stage X on day Y"
    (MOVED_STAGE events).
    """
    stmt = (
        select(ActivityEvent)
        .where(ActivityEvent.workspace_id == workspace_id)
        .where(ActivityEvent.type == event_type)
    )
    if to_stage_id is not None:
        stmt = stmt.where(ActivityEvent.to_stage_id == to_stage_id)
    result = await session.execute(stmt.where(ActivityEvent.day == day).order_by(ActivityEvent.at))
    return list(result.scalars().all())
