"""Task repository: follow-ups attached to a lead."""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.exceptions import ValidationError
from db.models import ActivityEvent, Task, new_id, now_ms
from db.repositories.leads import get_lead

logger = logging.getLogger(__name__)


async def add_task(
    session: AsyncSession,
    workspace_id: str,
    lead_id: str,
    title: str,
    due_at: int,
) -> Optional[Task]:
    """Create an open task for a lead and record TASK_CREATED.

    Returns None if the lead is not visible from this workspace.
    """
    title = (title or "").strip()
    if not title:
        raise ValidationError("task title is required")

    lead = await get_lead(session, workspace_id, lead_id)
    if lead is None:
        return None

    now = now_ms()
    task = Task(
        id=new_id(),
        workspace_id=workspace_id,
        lead_id=lead_id,
        title=title,
        due_at=due_at,
        status="open",
    )
    session.add(task)
    session.add(ActivityEvent.for_lead(lead, "TASK_CREATED", now))
    lead.last_touched_at = now
    await session.flush()
    return task


async def complete_task(
    session: AsyncSession, workspace_id: str, task_id: str
) -> Optional[Task]:
    """Mark a task done and record TASK_DONE. Completing twice is a no-op."""
    task = await session.get(Task, task_id)
    if task is None or task.workspace_id != workspace_id:
        return None
    if task.status == "done":
        return task

    now = now_ms()
    task.status = "done"
    task.done_at = now
    task.snooze_until = None

    lead = await get_lead(session, workspace_id, task.lead_id)
    if lead is not None:
        session.add(ActivityEvent.for_lead(lead, "TASK_DONE", now))
        lead.last_touched_at = now
    await session.flush()
    return task


async def snooze_task(
    session: AsyncSession, workspace_id: str, task_id: str, until: int
) -> Optional[Task]:
    task = await session.get(Task, task_id)
    if task is None or task.workspace_id != workspace_id or task.status == "done":
        return None
    task.status = "snoozed"
    task.snooze_until = until
    await session.flush()
    return task


async def get_tasks_for_lead(
    session: AsyncSession, workspace_id: str, lead_id: str
) -> list[Task]:
    result = await session.execute(
        select(Task)
        .where(Task.workspace_id == workspace_id)
        .where(Task.lead_id == lead_id)
        .order_by(Task.due_at)
    )
    return list(result.scalars().all())


async def get_due_tasks(
    session: AsyncSession, workspace_id: str, now: Optional[int] = None
) -> list[Task]:
    """Return open tasks due by `now`, plus snoozed ones whose snooze expired."""
    now = now if now is not None else now_ms()
    result = await session.execute(
        select(Task)
        .where(Task.workspace_id == workspace_id)
        .where(Task.status != "done")
        .where(Task.due_at <= now)
        .order_by(Task.due_at)
    )
    return [
        t for t in result.scalars().all()
        if t.status == "open" or (t.snooze_until or 0) <= now
    ]
