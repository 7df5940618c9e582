"""
Campaign Repository Interface
Abstract persistence port for campaigns, steps, leads and activities
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from outreach_engine.domain.models.campaign import Campaign
from outreach_engine.domain.models.campaign_step import CampaignStep
from outreach_engine.domain.models.campaign_lead import CampaignLead, CampaignLeadActivity
from outreach_engine.domain.models.lead_generation import LeadGenCursor


class CampaignRepository(ABC):
    """
    Persistence port used by the engine.

    Implementations wrap driver failures in TransientInfraError.
    """

    @abstractmethod
    async def get_due_campaigns(self, now: datetime) -> List[Campaign]:
        """
        Running campaigns whose execution state is active, or whose
        next_run_at has passed.
        """
        pass

    @abstractmethod
    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        """Load one campaign, or None when it does not exist"""
        pass

    @abstractmethod
    async def update_execution_state(
        self,
        campaign_id: str,
        state: str,
        reason: str,
        next_run_at: Optional[datetime] = None,
        last_lead_check_at: Optional[datetime] = None,
        clear_next_run_at: bool = False
    ) -> None:
        """
        Persist an execution-state transition.

        Args:
            campaign_id: Campaign to update
            state: New execution state
            reason: Human-readable explanation stored as last_execution_reason
            next_run_at: When the campaign becomes due again
            last_lead_check_at: When the lead source was last asked
            clear_next_run_at: Reset next_run_at to NULL
        """
        pass

    @abstractmethod
    async def complete_campaign(self, campaign_id: str, reason: str) -> None:
        """Set status to completed once the campaign window has closed"""
        pass

    @abstractmethod
    async def get_steps(self, campaign_id: str) -> List[CampaignStep]:
        """Steps ordered by step_order ascending"""
        pass

    @abstractmethod
    async def get_eligible_leads(self, campaign_id: str) -> List[CampaignLead]:
        """Leads with status pending or active"""
        pass

    @abstractmethod
    async def get_latest_successful_activity(
        self,
        campaign_lead_id: str
    ) -> Optional[CampaignLeadActivity]:
        """Most recent delivered/connected/replied activity of a lead"""
        pass

    @abstractmethod
    async def has_attempted_activity(self, campaign_lead_id: str, step_id: str) -> bool:
        """Whether the step was already dispatched for the lead, successfully or not"""
        pass

    @abstractmethod
    async def get_recent_activities(
        self,
        campaign_lead_id: str,
        limit: int = 10
    ) -> List[CampaignLeadActivity]:
        """Newest first"""
        pass

    @abstractmethod
    async def append_activity(self, activity: Dict[str, Any]) -> str:
        """Insert an activity row and return its id"""
        pass

    @abstractmethod
    async def update_activity_status(
        self,
        activity_id: str,
        status: str,
        error_message: Optional[str] = None
    ) -> None:
        """Update status (and error) of an existing activity row"""
        pass

    @abstractmethod
    async def update_lead_status(self, campaign_lead_id: str, status: str) -> None:
        pass

    @abstractmethod
    async def insert_lead_if_absent(self, lead: Dict[str, Any]) -> Optional[str]:
        """
        Insert a generated lead.

        Returns:
            The new campaign lead id, or None when a lead with the same
            source id already exists for the tenant
        """
        pass

    @abstractmethod
    async def get_tenant_source_ids(self, tenant_id: str) -> Set[str]:
        """Source ids of every lead the tenant already has, across campaigns"""
        pass

    @abstractmethod
    async def get_lead_generation_cursor(
        self,
        campaign: Campaign,
        step: CampaignStep
    ) -> LeadGenCursor:
        """Read offset and last generation date for a campaign"""
        pass

    @abstractmethod
    async def save_lead_generation_cursor(
        self,
        campaign: Campaign,
        step: CampaignStep,
        cursor: LeadGenCursor
    ) -> None:
        """Persist offset and last generation date for a campaign"""
        pass
