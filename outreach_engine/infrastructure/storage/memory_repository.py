"""
In-Memory Campaign Repository
Dictionary-backed repository for tests and dry runs
"""
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from outreach_engine.core.clock import Clock, ensure_utc, utc_now
from outreach_engine.domain.errors import DuplicateLeadError
from outreach_engine.domain.interfaces.campaign_repository import CampaignRepository
from outreach_engine.domain.models.campaign import Campaign, CampaignStatus, ExecutionState
from outreach_engine.domain.models.campaign_step import CampaignStep
from outreach_engine.domain.models.campaign_lead import (
    CampaignLead,
    ATTEMPTED_STATUSES,
    CampaignLeadActivity,
    ELIGIBLE_LEAD_STATUSES,
    SUCCESS_STATUSES,
)
from outreach_engine.domain.models.lead_generation import LeadGenCursor


class InMemoryCampaignRepository(CampaignRepository):
    """
    CampaignRepository kept in process memory.

    Mirrors the Supabase repository's semantics, including the step-config
    fallback for the lead-generation cursor (config_column=False). Returned
    models are copies, like rows read from a database.
    """

    def __init__(self, clock: Clock = utc_now, config_column: bool = True):
        self.clock = clock
        self.config_column = config_column
        self.campaigns: Dict[str, Campaign] = {}
        self.steps: Dict[str, List[CampaignStep]] = {}
        self.leads: Dict[str, CampaignLead] = {}
        self.activities: List[CampaignLeadActivity] = []
        self.state_history: List[Dict[str, Any]] = []

    # Seeding helpers

    def add_campaign(self, campaign: Campaign) -> Campaign:
        self.campaigns[campaign.id] = campaign.model_copy(deep=True)
        return campaign

    def add_steps(self, campaign_id: str, steps: List[CampaignStep]) -> None:
        self.steps[campaign_id] = [step.model_copy(deep=True) for step in steps]

    def add_lead(self, lead: CampaignLead) -> CampaignLead:
        self.leads[lead.id] = lead.model_copy(deep=True)
        return lead

    def add_activity(self, activity: CampaignLeadActivity) -> CampaignLeadActivity:
        self.activities.append(activity.model_copy(deep=True))
        return activity

    def activities_for(self, campaign_lead_id: str) -> List[CampaignLeadActivity]:
        """Activities of a lead in insertion order."""
        return [a for a in self.activities if a.campaign_lead_id == campaign_lead_id]

    def leads_for(self, campaign_id: str) -> List[CampaignLead]:
        return [lead for lead in self.leads.values() if lead.campaign_id == campaign_id]

    # Campaigns

    async def get_due_campaigns(self, now: datetime) -> List[Campaign]:
        now = ensure_utc(now)
        due = []
        for campaign in self.campaigns.values():
            if campaign.status != CampaignStatus.RUNNING.value:
                continue
            if campaign.execution_state == ExecutionState.ACTIVE.value:
                due.append(campaign.model_copy(deep=True))
            elif campaign.execution_state in (
                ExecutionState.WAITING_FOR_LEADS.value,
                ExecutionState.SLEEPING_UNTIL_NEXT_DAY.value,
            ) and campaign.next_run_at is not None and campaign.next_run_at <= now:
                due.append(campaign.model_copy(deep=True))
        return due

    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        campaign = self.campaigns.get(campaign_id)
        return campaign.model_copy(deep=True) if campaign else None

    async def update_execution_state(
        self,
        campaign_id: str,
        state: str,
        reason: str,
        next_run_at: Optional[datetime] = None,
        last_lead_check_at: Optional[datetime] = None,
        clear_next_run_at: bool = False
    ) -> None:
        campaign = self.campaigns[campaign_id]
        campaign.execution_state = state
        campaign.last_execution_reason = reason
        if clear_next_run_at:
            campaign.next_run_at = None
        elif next_run_at is not None:
            campaign.next_run_at = ensure_utc(next_run_at)
        if last_lead_check_at is not None:
            campaign.last_lead_check_at = ensure_utc(last_lead_check_at)

        self.state_history.append({
            "campaign_id": campaign_id,
            "state": state,
            "reason": reason,
            "next_run_at": campaign.next_run_at,
        })

    async def complete_campaign(self, campaign_id: str, reason: str) -> None:
        campaign = self.campaigns[campaign_id]
        campaign.status = CampaignStatus.COMPLETED.value
        campaign.last_execution_reason = reason

    # Steps

    async def get_steps(self, campaign_id: str) -> List[CampaignStep]:
        steps = sorted(self.steps.get(campaign_id, []), key=lambda step: step.step_order)
        return [step.model_copy(deep=True) for step in steps]

    # Leads

    async def get_eligible_leads(self, campaign_id: str) -> List[CampaignLead]:
        return [
            lead.model_copy(deep=True)
            for lead in self.leads.values()
            if lead.campaign_id == campaign_id and lead.status in ELIGIBLE_LEAD_STATUSES
        ]

    async def update_lead_status(self, campaign_lead_id: str, status: str) -> None:
        self.leads[campaign_lead_id].status = status

    async def insert_lead_if_absent(self, lead: Dict[str, Any]) -> Optional[str]:
        try:
            return self._insert_lead(lead)
        except DuplicateLeadError:
            return None

    def _insert_lead(self, lead: Dict[str, Any]) -> str:
        # Same rule as the (tenant_id, source_id) unique index; NULL source ids never clash
        source_id = lead.get("source_id")
        if source_id is not None:
            for existing in self.leads.values():
                if existing.tenant_id == lead.get("tenant_id") and existing.source_id == source_id:
                    raise DuplicateLeadError(str(source_id))

        lead_id = str(uuid.uuid4())
        self.leads[lead_id] = CampaignLead(id=lead_id, created_at=self.clock(), **lead)
        return lead_id

    async def get_tenant_source_ids(self, tenant_id: str) -> Set[str]:
        source_ids: Set[str] = set()
        for lead in self.leads.values():
            if lead.tenant_id != tenant_id:
                continue
            if lead.source_id:
                source_ids.add(lead.source_id)
            for key in ("apollo_person_id", "id"):
                if lead.lead_data and lead.lead_data.get(key):
                    source_ids.add(str(lead.lead_data[key]))
        return source_ids

    # Activities

    def _newest_first(self, campaign_lead_id: str) -> List[CampaignLeadActivity]:
        indexed = [
            (position, activity)
            for position, activity in enumerate(self.activities)
            if activity.campaign_lead_id == campaign_lead_id
        ]
        indexed.sort(key=lambda item: (item[1].created_at, item[0]), reverse=True)
        return [activity for _, activity in indexed]

    async def get_latest_successful_activity(self, campaign_lead_id: str) -> Optional[CampaignLeadActivity]:
        for activity in self._newest_first(campaign_lead_id):
            if activity.status in SUCCESS_STATUSES:
                return activity.model_copy()
        return None

    async def has_attempted_activity(self, campaign_lead_id: str, step_id: str) -> bool:
        return any(
            activity.step_id == step_id and activity.status in ATTEMPTED_STATUSES
            for activity in self.activities
            if activity.campaign_lead_id == campaign_lead_id
        )

    async def get_recent_activities(self, campaign_lead_id: str, limit: int = 10) -> List[CampaignLeadActivity]:
        return [activity.model_copy() for activity in self._newest_first(campaign_lead_id)[:limit]]

    async def append_activity(self, activity: Dict[str, Any]) -> str:
        activity_id = str(uuid.uuid4())
        self.activities.append(CampaignLeadActivity(id=activity_id, created_at=self.clock(), **activity))
        return activity_id

    async def update_activity_status(
        self,
        activity_id: str,
        status: str,
        error_message: Optional[str] = None
    ) -> None:
        for activity in self.activities:
            if activity.id == activity_id:
                activity.status = status
                activity.error_message = error_message
                return

    # Lead generation cursor

    async def get_lead_generation_cursor(self, campaign: Campaign, step: CampaignStep) -> LeadGenCursor:
        if self.config_column:
            config = self.campaigns.get(campaign.id, campaign).config
            return LeadGenCursor(offset=config.lead_gen_offset, last_lead_gen_date=config.last_lead_gen_date)

        stored = self._stored_step(campaign.id, step.id)
        return LeadGenCursor(
            offset=int(stored.config.get("lead_gen_offset") or 0),
            last_lead_gen_date=stored.config.get("last_lead_gen_date")
        )

    async def save_lead_generation_cursor(
        self,
        campaign: Campaign,
        step: CampaignStep,
        cursor: LeadGenCursor
    ) -> None:
        if self.config_column:
            config = self.campaigns.get(campaign.id, campaign).config
            config.lead_gen_offset = cursor.offset
            config.last_lead_gen_date = cursor.last_lead_gen_date
            return

        stored = self._stored_step(campaign.id, step.id)
        stored.config["lead_gen_offset"] = cursor.offset
        stored.config["last_lead_gen_date"] = cursor.last_lead_gen_date

    def _stored_step(self, campaign_id: str, step_id: str) -> CampaignStep:
        for step in self.steps.get(campaign_id, []):
            if step.id == step_id:
                return step
        raise KeyError(f"Step {step_id} not found in campaign {campaign_id}")
