"""
Activity Recorder
Writes the append-only activity log of campaign leads
"""
import logging
from typing import Any, Dict, Optional

from outreach_engine.domain.errors import TransientInfraError
from outreach_engine.domain.interfaces.campaign_repository import CampaignRepository
from outreach_engine.domain.models.campaign import Campaign
from outreach_engine.domain.models.campaign_lead import ActivityStatus, CampaignLead
from outreach_engine.domain.models.campaign_step import CampaignStep, StepType
from outreach_engine.domain.models.results import StepResult
from outreach_engine.domain.services.step_validator import channel_for_step_type


logger = logging.getLogger(__name__)


class ActivityRecorder:
    """
    Records one activity row per step attempt.

    A channel step is recorded in two phases: `sent` when the attempt starts,
    then `delivered` or `error` on the same row once the executor returns.
    """

    def __init__(self, repository: CampaignRepository):
        self.repository = repository

    async def start_attempt(self, campaign: Campaign, lead: CampaignLead, step: CampaignStep) -> str:
        """Append a `sent` activity and return its id."""
        return await self._append(campaign, lead, step, ActivityStatus.SENT)

    async def complete_attempt(self, activity_id: str, result: StepResult) -> None:
        """Mark a started attempt as delivered or error."""
        if result.success:
            status, error = ActivityStatus.DELIVERED, None
        else:
            status, error = ActivityStatus.ERROR, result.error or "Step execution failed"

        try:
            await self.repository.update_activity_status(activity_id, status.value, error)
        except TransientInfraError:
            raise
        except Exception as e:
            logger.error(f"Failed to update activity {activity_id}: {e}", exc_info=True)
            raise TransientInfraError(f"Failed to update activity {activity_id}: {e}") from e

    async def record_failure(
        self,
        campaign: Campaign,
        lead: CampaignLead,
        step: CampaignStep,
        message: str
    ) -> str:
        """Append a `failed` activity (configuration problems)."""
        return await self._append(campaign, lead, step, ActivityStatus.FAILED, message)

    async def record_success(self, campaign: Campaign, lead: CampaignLead, step: CampaignStep) -> str:
        """Append a `delivered` activity (delay elapsed, condition met)."""
        return await self._append(campaign, lead, step, ActivityStatus.DELIVERED)

    async def record_lead_generation(
        self,
        campaign: Campaign,
        campaign_lead_id: str,
        step: CampaignStep
    ) -> str:
        """Append the analytics row for a lead-generation run."""
        activity = self._build(campaign, campaign_lead_id, step, ActivityStatus.SENT)
        activity["step_type"] = StepType.LEAD_GENERATION.value
        activity["channel"] = channel_for_step_type(StepType.LEAD_GENERATION.value)
        return await self._insert(activity)

    def _build(
        self,
        campaign: Campaign,
        campaign_lead_id: str,
        step: CampaignStep,
        status: ActivityStatus,
        error_message: Optional[str] = None
    ) -> Dict[str, Any]:
        return {
            "campaign_lead_id": campaign_lead_id,
            "campaign_id": campaign.id,
            "tenant_id": campaign.tenant_id,
            "step_id": step.id,
            "step_type": step.step_type,
            "channel": channel_for_step_type(step.step_type),
            "status": status.value,
            "error_message": error_message,
        }

    async def _append(
        self,
        campaign: Campaign,
        lead: CampaignLead,
        step: CampaignStep,
        status: ActivityStatus,
        error_message: Optional[str] = None
    ) -> str:
        return await self._insert(self._build(campaign, lead.id, step, status, error_message))

    async def _insert(self, activity: Dict[str, Any]) -> str:
        try:
            return await self.repository.append_activity(activity)
        except TransientInfraError:
            raise
        except Exception as e:
            logger.error(
                f"Failed to record {activity['status']} activity for lead "
                f"{activity['campaign_lead_id']} step {activity['step_id']}: {e}",
                exc_info=True
            )
            raise TransientInfraError(f"Failed to record activity: {e}") from e
