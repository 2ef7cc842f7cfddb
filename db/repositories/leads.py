"""Lead repository: dedup, stage-change auditing and cascading delete."""
import logging
from typing import Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.exceptions import ValidationError
from db.models import BOARDS, DEFAULT_STAGE_LABEL, ActivityEvent, Lead, Task, new_id, now_ms
from schemas.lead import AddLeadResult, LeadPatch

logger = logging.getLogger(__name__)

# Columns that cannot be cleared through a patch
_NOT_NULL_FIELDS = ("board", "notes", "tags", "priority")


def normalize_username(username: Optional[str]) -> str:
    """Trim and drop one leading '@' ("@John " -> "John")."""
    name = str(username or "").strip()
    if name.startswith("@"):
        name = name[1:].strip()
    return name


def _clean_avatar(url: Optional[str]) -> Optional[str]:
    if isinstance(url, str) and url.startswith(("http://", "https://")):
        return url
    return None


async def get_lead(
    session: AsyncSession, workspace_id: str, lead_id: str
) -> Optional[Lead]:
    """Return the lead, or None if it is absent or belongs to another workspace."""
    lead = await session.get(Lead, lead_id)
    if lead is None or lead.workspace_id != workspace_id:
        return None
    return lead


async def get_by_username(
    session: AsyncSession, workspace_id: str, username: str
) -> Optional[Lead]:
    """Return the Lead with this (workspace, normalized username), or None."""
    result = await session.execute(
        select(Lead)
        .where(Lead.workspace_id == workspace_id)
        .where(Lead.username_lower == normalize_username(username).lower())
    )
    return result.scalar_one_or_none()


async def add_lead(
    session: AsyncSession,
    workspace_id: str,
    board: str,
    stage_id: Optional[str],
    username: str,
    display_name: Optional[str] = None,
    avatar_url: Optional[str] = None,
) -> AddLeadResult:
    """Create a lead, or return the existing one for the same username.

    Dedup key: (workspace_id, lower(username)). A duplicate is returned
    untouched, except that a missing avatar is filled in when one is
    supplied now. A new lead gets a CREATED event in the same transaction.
    """
    name = normalize_username(username)
    if not workspace_id:
        raise ValidationError("workspace_id is required")
    if not name:
        raise ValidationError("username is required")
    if board not in BOARDS:
        raise ValidationError(f"unknown board {board!r}; expected one of {BOARDS}")

    stage = (stage_id or "").strip() or DEFAULT_STAGE_LABEL
    avatar = _clean_avatar(avatar_url)
    now = now_ms()

    existing = await get_by_username(session, workspace_id, name)
    if existing is not None:
        if not existing.avatar_url and avatar:
            existing.avatar_url = avatar
            existing.updated_at = now
            existing.last_touched_at = now
            await session.flush()
        logger.debug("Lead %s already exists in workspace %s", name, workspace_id)
        return AddLeadResult(status="exists", lead=existing)

    lead = Lead(
        id=new_id(),
        workspace_id=workspace_id,
        board=board,
        stage_id=stage,
        username=name,
        username_lower=name.lower(),
        display_name=(display_name or "").strip() or None,
        avatar_url=avatar,
        priority="medium",
        tags=[],
        notes="",
        created_at=now,
        updated_at=now,
        last_touched_at=now,
    )
    session.add(lead)
    session.add(ActivityEvent.for_lead(lead, "CREATED", now))
    await session.flush()
    logger.info("Created lead %s on %s/%s", name, board, stage)
    return AddLeadResult(status="created", lead=lead)


async def list_leads_by_board(
    session: AsyncSession, workspace_id: str, board: str
) -> list[Lead]:
    """Return every lead on a board (all stages), most recently updated first."""
    result = await session.execute(
        select(Lead)
        .where(Lead.workspace_id == workspace_id)
        .where(Lead.board == board)
        .order_by(Lead.updated_at.desc())
    )
    return list(result.scalars().all())


async def update_lead(
    session: AsyncSession,
    workspace_id: str,
    lead_id: str,
    patch: Union[LeadPatch, dict],
) -> Optional[Lead]:
    """Apply a patch and append one event per changed tracked field.

    Tracked: stage_id -> MOVED_STAGE, notes -> NOTE_UPDATED,
    priority -> PRIORITY_CHANGED. Returns None if the lead is not visible
    from this workspace.
    """
    if not isinstance(patch, LeadPatch):
        try:
            patch = LeadPatch.model_validate(patch)
        except PydanticValidationError as exc:
            raise ValidationError(f"invalid lead patch: {exc}") from exc

    lead = await get_lead(session, workspace_id, lead_id)
    if lead is None:
        return None

    changes = patch.model_dump(exclude_unset=True)
    if "stage_id" in changes:
        stage = (changes.pop("stage_id") or "").strip()
        if stage:
            changes["stage_id"] = stage

    from_stage, old_notes, old_priority = lead.stage_id, lead.notes, lead.priority

    for field, value in changes.items():
        if value is None and field in _NOT_NULL_FIELDS:
            continue
        setattr(lead, field, value)

    now = now_ms()
    lead.updated_at = now
    lead.last_touched_at = now

    events = []
    if lead.stage_id != from_stage:
        events.append(
            ActivityEvent.for_lead(
                lead, "MOVED_STAGE", now, from_stage_id=from_stage, to_stage_id=lead.stage_id
            )
        )
    if lead.notes != old_notes:
        events.append(ActivityEvent.for_lead(lead, "NOTE_UPDATED", now))
    if lead.priority != old_priority:
        events.append(ActivityEvent.for_lead(lead, "PRIORITY_CHANGED", now))

    session.add_all(events)
    await session.flush()
    return lead


async def move_lead_stage(
    session: AsyncSession, workspace_id: str, lead_id: str, to_stage_id: str
) -> Optional[Lead]:
    """Move a lead to another stage (records MOVED_STAGE)."""
    return await update_lead(session, workspace_id, lead_id, LeadPatch(stage_id=to_stage_id))


async def delete_lead(session: AsyncSession, workspace_id: str, lead_id: str) -> bool:
    """Delete a lead together with all of its tasks and events.

    Returns False (and does nothing) when the lead is not visible from
    this workspace.
    """
    lead = await get_lead(session, workspace_id, lead_id)
    if lead is None:
        return False

    await session.execute(
        delete(Task).where(Task.workspace_id == workspace_id).where(Task.lead_id == lead_id)
    )
    await session.execute(
        delete(ActivityEvent)
        .where(ActivityEvent.workspace_id == workspace_id)
        .where(ActivityEvent.lead_id == lead_id)
    )
    await session.delete(lead)
    await session.flush()
    logger.info("Deleted lead %s with its tasks and events", lead_id)
    return True
