"""
Campaign Step Domain Models
"""
import json
from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum


class StepType(str, Enum):
    """All step types a campaign workflow can contain"""
    # Campaign-level
    LEAD_GENERATION = "lead_generation"
    START = "start"
    END = "end"

    # Flow control
    DELAY = "delay"
    CONDITION = "condition"

    # LinkedIn
    LINKEDIN_VISIT = "linkedin_visit"
    LINKEDIN_FOLLOW = "linkedin_follow"
    LINKEDIN_CONNECT = "linkedin_connect"
    LINKEDIN_MESSAGE = "linkedin_message"
    LINKEDIN_SCRAPE_PROFILE = "linkedin_scrape_profile"
    LINKEDIN_COMPANY_SEARCH = "linkedin_company_search"
    LINKEDIN_EMPLOYEE_LIST = "linkedin_employee_list"
    LINKEDIN_AUTOPOST = "linkedin_autopost"
    LINKEDIN_COMMENT_REPLY = "linkedin_comment_reply"

    # Email
    EMAIL_SEND = "email_send"
    EMAIL_FOLLOWUP = "email_followup"

    # WhatsApp
    WHATSAPP_SEND = "whatsapp_send"

    # Instagram
    INSTAGRAM_FOLLOW = "instagram_follow"
    INSTAGRAM_LIKE = "instagram_like"
    INSTAGRAM_DM = "instagram_dm"
    INSTAGRAM_AUTOPOST = "instagram_autopost"
    INSTAGRAM_COMMENT_REPLY = "instagram_comment_reply"
    INSTAGRAM_STORY_VIEW = "instagram_story_view"

    # Voice
    VOICE_AGENT_CALL = "voice_agent_call"


# Steps that never run per lead
NON_WORKFLOW_STEP_TYPES = {
    StepType.LEAD_GENERATION.value,
    StepType.START.value,
    StepType.END.value,
}


class CampaignStep(BaseModel):
    """One ordered step of a campaign workflow"""
    id: str
    campaign_id: str
    step_order: int = 0
    # Plain string: the workflow must tolerate types it does not know yet
    step_type: str
    config: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    @field_validator("config", mode="before")
    @classmethod
    def _parse_config(cls, value):
        if value is None:
            return {}
        if isinstance(value, str):
            try:
                return json.loads(value) or {}
            except ValueError:
                return {}
        return value

    @property
    def is_workflow_step(self) -> bool:
        """Whether this step is executed per lead."""
        return self.step_type not in NON_WORKFLOW_STEP_TYPES
