"""
Campaign Domain Models
"""
import json
from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any
from datetime import date, datetime, time
from enum import Enum

from outreach_engine.core.clock import ensure_utc


class CampaignStatus(str, Enum):
    """User-controlled campaign status"""
    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"


class ExecutionState(str, Enum):
    """System-controlled pacing state of a running campaign"""
    ACTIVE = "active"
    WAITING_FOR_LEADS = "waiting_for_leads"
    SLEEPING_UNTIL_NEXT_DAY = "sleeping_until_next_day"
    ERROR = "error"


class CampaignType(str, Enum):
    """Where a campaign's leads come from"""
    OUTBOUND = "outbound"  # Generated from a lead source
    INBOUND = "inbound"    # Uploaded by the user


class CampaignConfig(BaseModel):
    """
    Campaign-level configuration stored as JSON on the campaign row.

    Holds the lead-generation cursor (offset + last generation date) next to
    the user's quota and search preferences. Unknown keys are preserved so a
    round-trip through the engine never drops UI-owned settings.
    """
    leads_per_day: Optional[int] = None
    daily_lead_limit: Optional[int] = None
    lead_gen_offset: int = Field(default=0, ge=0)
    last_lead_gen_date: Optional[str] = None  # ISO date, e.g. "2024-12-09"
    search_filters: Dict[str, Any] = Field(default_factory=dict)
    campaign_type: str = CampaignType.OUTBOUND.value
    search_source: Optional[str] = None

    model_config = {"extra": "allow"}

    @field_validator("search_filters", mode="before")
    @classmethod
    def _parse_filters(cls, value):
        # The UI sometimes double-encodes filters as a JSON string
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                return {}
        return value or {}

    @classmethod
    def from_raw(cls, raw: Any) -> "CampaignConfig":
        """Build from a dict, a JSON string or None."""
        if raw is None:
            return cls()
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError:
                return cls()
        if isinstance(raw, CampaignConfig):
            return raw
        return cls(**raw)


class Campaign(BaseModel):
    """Multi-step outbound campaign"""
    id: str
    tenant_id: str
    name: Optional[str] = None
    created_by_user_id: Optional[str] = None
    status: CampaignStatus = CampaignStatus.DRAFT
    execution_state: ExecutionState = ExecutionState.ACTIVE
    next_run_at: Optional[datetime] = None
    last_lead_check_at: Optional[datetime] = None
    last_execution_reason: Optional[str] = None
    config: CampaignConfig = Field(default_factory=CampaignConfig)
    start_date: Optional[datetime] = None  # No runs before this instant
    end_date: Optional[datetime] = None    # Marked completed once this has passed
    created_at: Optional[datetime] = None

    model_config = {"use_enum_values": True}

    @field_validator("config", mode="before")
    @classmethod
    def _parse_config(cls, value):
        return CampaignConfig.from_raw(value)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _parse_window(cls, value):
        # Date-only values ("2024-12-31") mean midnight UTC of that day
        if isinstance(value, str) and len(value) == 10:
            return datetime.combine(date.fromisoformat(value), time.min)
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime.combine(value, time.min)
        return value

    @field_validator("next_run_at", "last_lead_check_at", "start_date", "end_date", "created_at")
    @classmethod
    def _as_utc(cls, value):
        return ensure_utc(value)

    @field_validator("execution_state", mode="before")
    @classmethod
    def _default_execution_state(cls, value):
        # Rows created before execution tracking existed have no state
        return value or ExecutionState.ACTIVE.value

    @property
    def is_running(self) -> bool:
        return self.status == CampaignStatus.RUNNING

    @property
    def is_inbound(self) -> bool:
        return self.config.campaign_type == CampaignType.INBOUND.value

    def has_started(self, now: datetime) -> bool:
        return self.start_date is None or now >= self.start_date

    def has_ended(self, now: datetime) -> bool:
        return self.end_date is not None and now > self.end_date

    def __repr__(self) -> str:
        return (
            f"Campaign(id={self.id}, status={self.status}, "
            f"execution_state={self.execution_state})"
        )
