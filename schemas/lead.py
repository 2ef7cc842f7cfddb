"""Lead repository input/output schemas."""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from db.models import Lead

Board = Literal["OUTBOUND", "SOCIAL"]
Priority = Literal["low", "medium", "high"]


class LeadPatch(BaseModel):
    """Fields a caller may change through update_lead.

    Only fields explicitly set are applied (model_fields_set).
    """

    model_config = ConfigDict(extra="forbid")

    board: Optional[Board] = None
    stage_id: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[List[str]] = None
    priority: Optional[Priority] = None
    display_name: Optional[str] = None
    next_follow_up_at: Optional[int] = None
    avatar_url: Optional[str] = None

    @field_validator("tags")
    @classmethod
    def _tags_as_set(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        return sorted({t.strip() for t in v if t and t.strip()})


class AddLeadResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: Literal["created", "exists"]
    lead: Lead
