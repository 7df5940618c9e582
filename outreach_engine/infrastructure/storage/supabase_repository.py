"""
Supabase Campaign Repository
Campaign persistence on Supabase (PostgREST)

Tables: campaigns, campaign_steps, campaign_leads, campaign_lead_activities

campaign_leads needs a unique index on (tenant_id, source_id): concurrent runs
of one tenant's campaigns rely on it to never add the same source lead twice.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from postgrest.exceptions import APIError
from supabase import Client

from outreach_engine.core.clock import utc_now
from outreach_engine.domain.errors import DuplicateLeadError, TransientInfraError
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


logger = logging.getLogger(__name__)


# Postgres error codes
UNIQUE_VIOLATION = "23505"
UNDEFINED_COLUMN = "42703"

# PostgREST returns at most this many rows per request by default
MAX_ROWS_PER_REQUEST = 1000


class SupabaseCampaignRepository(CampaignRepository):
    """
    CampaignRepository backed by a Supabase client.

    Older deployments have no `campaigns.config` column; the lead-generation
    cursor then lives in the lead_generation step's config. Which layout is
    in use is detected once and cached.
    """

    def __init__(self, supabase: Client):
        self.supabase = supabase
        self._config_column: Optional[bool] = None

    def _execute(self, query, action: str):
        try:
            return query.execute()
        except APIError as e:
            logger.error(f"Supabase {action} failed: {e.message} (code={e.code})")
            raise TransientInfraError(f"{action} failed: {e.message}") from e
        except Exception as e:
            logger.error(f"Supabase {action} failed: {e}")
            raise TransientInfraError(f"{action} failed: {e}") from e

    # Campaigns

    async def get_due_campaigns(self, now: datetime) -> List[Campaign]:
        running = CampaignStatus.RUNNING.value

        active = self._execute(
            self.supabase.table("campaigns").select("*").eq("status", running).or_(
                f"execution_state.is.null,execution_state.eq.{ExecutionState.ACTIVE.value}"
            ),
            "load active campaigns"
        )

        resumable = self._execute(
            self.supabase.table("campaigns").select("*").eq("status", running).in_(
                "execution_state",
                [ExecutionState.WAITING_FOR_LEADS.value, ExecutionState.SLEEPING_UNTIL_NEXT_DAY.value]
            ).lte("next_run_at", now.isoformat()),
            "load resumable campaigns"
        )

        return [Campaign(**row) for row in (active.data or []) + (resumable.data or [])]

    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        response = self._execute(
            self.supabase.table("campaigns").select("*").eq("id", campaign_id).limit(1),
            f"load campaign {campaign_id}"
        )
        if not response.data:
            return None
        return Campaign(**response.data[0])

    async def update_execution_state(
        self,
        campaign_id: str,
        state: str,
        reason: str,
        next_run_at: Optional[datetime] = None,
        last_lead_check_at: Optional[datetime] = None,
        clear_next_run_at: bool = False
    ) -> None:
        update_data: Dict[str, Any] = {
            "execution_state": state,
            "last_execution_reason": reason,
            "updated_at": utc_now().isoformat(),
        }
        if clear_next_run_at:
            update_data["next_run_at"] = None
        elif next_run_at is not None:
            update_data["next_run_at"] = next_run_at.isoformat()
        if last_lead_check_at is not None:
            update_data["last_lead_check_at"] = last_lead_check_at.isoformat()

        self._execute(
            self.supabase.table("campaigns").update(update_data).eq("id", campaign_id),
            f"update execution state of campaign {campaign_id}"
        )

    async def complete_campaign(self, campaign_id: str, reason: str) -> None:
        self._execute(
            self.supabase.table("campaigns").update({
                "status": CampaignStatus.COMPLETED.value,
                "last_execution_reason": reason,
                "updated_at": utc_now().isoformat()
            }).eq("id", campaign_id),
            f"complete campaign {campaign_id}"
        )

    # Steps

    async def get_steps(self, campaign_id: str) -> List[CampaignStep]:
        response = self._execute(
            self.supabase.table("campaign_steps").select("*").eq(
                "campaign_id", campaign_id
            ).order("step_order"),
            f"load steps of campaign {campaign_id}"
        )
        return [CampaignStep(**row) for row in response.data or []]

    # Leads

    async def get_eligible_leads(self, campaign_id: str) -> List[CampaignLead]:
        response = self._execute(
            self.supabase.table("campaign_leads").select(
                "id, campaign_id, tenant_id, lead_id, source_id, status, snapshot, lead_data, created_at"
            ).eq("campaign_id", campaign_id).in_("status", sorted(ELIGIBLE_LEAD_STATUSES)).order("created_at"),
            f"load leads of campaign {campaign_id}"
        )
        return [CampaignLead(**row) for row in response.data or []]

    async def update_lead_status(self, campaign_lead_id: str, status: str) -> None:
        self._execute(
            self.supabase.table("campaign_leads").update({
                "status": status,
                "updated_at": utc_now().isoformat()
            }).eq("id", campaign_lead_id),
            f"update status of lead {campaign_lead_id}"
        )

    async def insert_lead_if_absent(self, lead: Dict[str, Any]) -> Optional[str]:
        try:
            return self._insert_lead(lead)
        except DuplicateLeadError:
            return None

    def _insert_lead(self, lead: Dict[str, Any]) -> Optional[str]:
        row = {**lead, "created_at": utc_now().isoformat()}
        try:
            response = self.supabase.table("campaign_leads").insert(row).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateLeadError(str(lead.get("source_id"))) from e
            logger.error(f"Failed to insert lead {lead.get('source_id')}: {e.message}")
            raise TransientInfraError(f"insert lead failed: {e.message}") from e
        except Exception as e:
            raise TransientInfraError(f"insert lead failed: {e}") from e

        return response.data[0]["id"] if response.data else None

    async def get_tenant_source_ids(self, tenant_id: str) -> Set[str]:
        source_ids: Set[str] = set()
        start = 0
        while True:
            response = self._execute(
                self.supabase.table("campaign_leads").select(
                    "source_id, apollo_person_id:lead_data->>apollo_person_id, person_id:lead_data->>id"
                ).eq("tenant_id", tenant_id).range(start, start + MAX_ROWS_PER_REQUEST - 1),
                f"load source ids of tenant {tenant_id}"
            )
            rows = response.data or []
            for row in rows:
                for key in ("source_id", "apollo_person_id", "person_id"):
                    if row.get(key):
                        source_ids.add(str(row[key]))
            if len(rows) < MAX_ROWS_PER_REQUEST:
                return source_ids
            start += MAX_ROWS_PER_REQUEST

    # Activities

    async def get_latest_successful_activity(self, campaign_lead_id: str) -> Optional[CampaignLeadActivity]:
        response = self._execute(
            self.supabase.table("campaign_lead_activities").select("*").eq(
                "campaign_lead_id", campaign_lead_id
            ).in_("status", sorted(SUCCESS_STATUSES)).order("created_at", desc=True).limit(1),
            f"load latest activity of lead {campaign_lead_id}"
        )
        if not response.data:
            return None
        return CampaignLeadActivity(**response.data[0])

    async def has_attempted_activity(self, campaign_lead_id: str, step_id: str) -> bool:
        response = self._execute(
            self.supabase.table("campaign_lead_activities").select("id").eq(
                "campaign_lead_id", campaign_lead_id
            ).eq("step_id", step_id).in_("status", sorted(ATTEMPTED_STATUSES)).limit(1),
            f"check step {step_id} of lead {campaign_lead_id}"
        )
        return bool(response.data)

    async def get_recent_activities(self, campaign_lead_id: str, limit: int = 10) -> List[CampaignLeadActivity]:
        response = self._execute(
            self.supabase.table("campaign_lead_activities").select("*").eq(
                "campaign_lead_id", campaign_lead_id
            ).order("created_at", desc=True).limit(limit),
            f"load activities of lead {campaign_lead_id}"
        )
        return [CampaignLeadActivity(**row) for row in response.data or []]

    async def append_activity(self, activity: Dict[str, Any]) -> str:
        row = {
            **activity,
            "action_type": activity.get("step_type"),
            "created_at": utc_now().isoformat(),
        }
        response = self._execute(
            self.supabase.table("campaign_lead_activities").insert(row),
            f"record activity for lead {activity.get('campaign_lead_id')}"
        )
        return response.data[0]["id"]

    async def update_activity_status(
        self,
        activity_id: str,
        status: str,
        error_message: Optional[str] = None
    ) -> None:
        self._execute(
            self.supabase.table("campaign_lead_activities").update({
                "status": status,
                "error_message": error_message,
                "updated_at": utc_now().isoformat()
            }).eq("id", activity_id),
            f"update activity {activity_id}"
        )

    # Lead generation cursor

    def _has_config_column(self) -> bool:
        if self._config_column is None:
            try:
                self.supabase.table("campaigns").select("config").limit(1).execute()
                self._config_column = True
            except APIError as e:
                if e.code != UNDEFINED_COLUMN:
                    raise TransientInfraError(f"check for campaigns.config failed: {e.message}") from e
                self._config_column = False
            logger.info(f"campaigns.config column available: {self._config_column}")
        return self._config_column

    async def get_lead_generation_cursor(self, campaign: Campaign, step: CampaignStep) -> LeadGenCursor:
        if self._has_config_column():
            return LeadGenCursor(
                offset=campaign.config.lead_gen_offset or 0,
                last_lead_gen_date=campaign.config.last_lead_gen_date
            )
        return LeadGenCursor(
            offset=int(step.config.get("lead_gen_offset") or 0),
            last_lead_gen_date=step.config.get("last_lead_gen_date")
        )

    async def save_lead_generation_cursor(
        self,
        campaign: Campaign,
        step: CampaignStep,
        cursor: LeadGenCursor
    ) -> None:
        if self._has_config_column():
            campaign.config.lead_gen_offset = cursor.offset
            campaign.config.last_lead_gen_date = cursor.last_lead_gen_date
            self._execute(
                self.supabase.table("campaigns").update({
                    "config": campaign.config.model_dump(),
                    "updated_at": utc_now().isoformat()
                }).eq("id", campaign.id),
                f"save lead generation cursor of campaign {campaign.id}"
            )
            return

        step.config["lead_gen_offset"] = cursor.offset
        step.config["last_lead_gen_date"] = cursor.last_lead_gen_date
        self._execute(
            self.supabase.table("campaign_steps").update({
                "config": step.config,
                "updated_at": utc_now().isoformat()
            }).eq("id", step.id),
            f"save lead generation cursor of step {step.id}"
        )
