"""
Campaign Lead Domain Models
Leads enrolled in a campaign and their append-only activity log
"""
import json
from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any, Set
from datetime import datetime
from enum import Enum

from outreach_engine.core.clock import ensure_utc, utc_now


class LeadStatus(str, Enum):
    """Status of a lead inside one campaign"""
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    STOPPED = "stopped"


class ActivityStatus(str, Enum):
    """Outcome of one step execution attempt for one lead"""
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    CONNECTED = "connected"
    REPLIED = "replied"
    OPENED = "opened"
    CLICKED = "clicked"
    ERROR = "error"
    FAILED = "failed"


# Statuses that mark a step as done for good
SUCCESS_STATUSES: Set[str] = {"delivered", "connected", "replied"}

# Statuses that mean the step was already dispatched; it is not sent again
ATTEMPTED_STATUSES: Set[str] = SUCCESS_STATUSES | {"sent", "error"}

# Lead statuses the workflow still advances
ELIGIBLE_LEAD_STATUSES: Set[str] = {"pending", "active"}


def _parse_json_blob(value):
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return None
    return value


class CampaignLead(BaseModel):
    """
    A lead enrolled in a campaign.

    Generated leads carry a snapshot and the raw source payload (lead_data);
    inbound (uploaded) leads reference an existing lead record and carry
    neither. The two populations never mix within one campaign.
    """
    id: str
    campaign_id: str
    tenant_id: Optional[str] = None
    lead_id: Optional[str] = None
    source_id: Optional[str] = None  # Source-specific unique id (e.g. Apollo person id)
    status: LeadStatus = LeadStatus.PENDING
    snapshot: Optional[Dict[str, Any]] = None
    lead_data: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    model_config = {"use_enum_values": True}

    @field_validator("snapshot", "lead_data", mode="before")
    @classmethod
    def _parse_blobs(cls, value):
        return _parse_json_blob(value)

    @field_validator("created_at")
    @classmethod
    def _as_utc(cls, value):
        return ensure_utc(value)

    def has_enrichment(self) -> bool:
        """True when the lead carries snapshot or source data (generated lead)."""
        return bool(self.snapshot) or bool(self.lead_data)

    @property
    def is_eligible(self) -> bool:
        return self.status in ELIGIBLE_LEAD_STATUSES


class CampaignLeadActivity(BaseModel):
    """One entry of a lead's append-only activity log"""
    id: str
    campaign_lead_id: str
    campaign_id: Optional[str] = None
    tenant_id: Optional[str] = None
    step_id: Optional[str] = None
    step_type: Optional[str] = None
    channel: Optional[str] = None
    status: ActivityStatus = ActivityStatus.PENDING
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

    model_config = {"use_enum_values": True}

    @field_validator("created_at")
    @classmethod
    def _as_utc(cls, value):
        return ensure_utc(value)

    @property
    def is_success(self) -> bool:
        return self.status in SUCCESS_STATUSES
