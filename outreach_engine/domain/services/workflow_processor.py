"""
Workflow Processor
Moves one lead forward through a campaign's ordered steps
"""
import logging
from datetime import datetime
from typing import List, Optional

from outreach_engine.core.clock import Clock, utc_now
from outreach_engine.core.config import EngineConfig
from outreach_engine.domain.errors import UnknownStepTypeError
from outreach_engine.domain.interfaces.campaign_repository import CampaignRepository
from outreach_engine.domain.interfaces.step_executor import StepExecutor
from outreach_engine.domain.models.campaign import Campaign
from outreach_engine.domain.models.campaign_lead import (
    ActivityStatus,
    CampaignLead,
    CampaignLeadActivity,
    LeadStatus,
)
from outreach_engine.domain.models.campaign_step import CampaignStep
from outreach_engine.domain.models.results import StepResult, WorkflowOutcome
from outreach_engine.domain.services.activity_recorder import ActivityRecorder
from outreach_engine.domain.services.step_registry import StepHandler, StepKind, StepRegistry
from outreach_engine.domain.services.step_validator import StepValidator, get_condition, parse_delay


logger = logging.getLogger(__name__)


# Condition ids that are checked against recent activity statuses
CONDITION_STATUSES = {
    ActivityStatus.CONNECTED.value,
    ActivityStatus.REPLIED.value,
    ActivityStatus.OPENED.value,
    ActivityStatus.CLICKED.value,
    ActivityStatus.DELIVERED.value,
}


class WorkflowProcessor:
    """
    Advances a lead through its campaign steps.

    The resume point is derived from the activity log on every call: the
    step after the lead's latest successful activity. Within one call the
    lead keeps moving forward until a delay gate is closed, the lead stops,
    or the sequence ends.
    """

    def __init__(
        self,
        repository: CampaignRepository,
        executor: StepExecutor,
        recorder: ActivityRecorder,
        validator: StepValidator,
        registry: StepRegistry,
        config: EngineConfig,
        clock: Clock = utc_now
    ):
        self.repository = repository
        self.executor = executor
        self.recorder = recorder
        self.validator = validator
        self.registry = registry
        self.config = config
        self.clock = clock

    async def advance(
        self,
        campaign: Campaign,
        steps: List[CampaignStep],
        lead: CampaignLead
    ) -> WorkflowOutcome:
        """
        Process a lead from its resume point.

        Args:
            campaign: Campaign the lead belongs to
            steps: Per-lead workflow steps in order (no lead_generation/start/end)
            lead: Lead to advance

        Returns:
            WorkflowOutcome describing what happened
        """
        outcome = WorkflowOutcome(lead_id=lead.id)
        status = lead.status

        latest = await self.repository.get_latest_successful_activity(lead.id)
        index = self._resume_index(steps, latest)
        last_success_at: Optional[datetime] = latest.created_at if latest else None

        while index < len(steps):
            step = steps[index]

            # Replay guard: a step already dispatched (delivered or failed) is never sent again
            if await self.repository.has_attempted_activity(lead.id, step.id):
                logger.debug(f"Lead {lead.id}: step {step.id} already attempted, skipping")
                index += 1
                continue

            try:
                handler = self.registry.resolve(step.step_type)
            except UnknownStepTypeError as e:
                await self._fail_configuration(campaign, lead, step, e.message, outcome)
                return outcome

            if handler.kind in (StepKind.MARKER, StepKind.LEAD_GENERATION):
                index += 1
                continue

            validation = self.validator.validate(step.step_type, step.config)
            if not validation.valid:
                message = (
                    f"Validation failed: {validation.error} "
                    f"(missing: {', '.join(validation.missing_fields)})"
                )
                await self._fail_configuration(campaign, lead, step, message, outcome)
                return outcome

            if handler.kind == StepKind.DELAY:
                reference = last_success_at or lead.created_at
                delay = parse_delay(step.config)
                if reference and self.clock() - reference < delay:
                    outcome.waiting = True
                    outcome.reason = f"Waiting for delay step {step.id} ({delay})"
                    logger.debug(f"Lead {lead.id}: delay {delay} not elapsed since {reference}")
                    return outcome
                status = await self._activate(lead, status, outcome)
                await self.recorder.record_success(campaign, lead, step)
                last_success_at = self.clock()

            elif handler.kind == StepKind.CONDITION:
                condition = get_condition(step.config)
                if not await self._condition_met(lead, condition):
                    logger.info(f"Lead {lead.id}: condition '{condition}' not met, stopping")
                    await self._set_status(lead, LeadStatus.STOPPED, outcome)
                    outcome.reason = f"Condition '{condition}' not met"
                    return outcome
                status = await self._activate(lead, status, outcome)
                await self.recorder.record_success(campaign, lead, step)
                last_success_at = self.clock()

            else:
                status = await self._activate(lead, status, outcome)
                if await self._execute(campaign, lead, step, handler):
                    last_success_at = self.clock()

            outcome.steps_executed += 1
            index += 1

        await self._set_status(lead, LeadStatus.COMPLETED, outcome)
        logger.info(f"Lead {lead.id} completed all steps of campaign {campaign.id}")
        return outcome

    def _resume_index(self, steps: List[CampaignStep], latest: Optional[CampaignLeadActivity]) -> int:
        if latest is None:
            return 0
        for position, step in enumerate(steps):
            if step.id == latest.step_id:
                return position + 1
        return 0

    async def _execute(
        self,
        campaign: Campaign,
        lead: CampaignLead,
        step: CampaignStep,
        handler: StepHandler
    ) -> bool:
        """Run a channel step and record its two-phase activity."""
        activity_id = await self.recorder.start_attempt(campaign, lead, step)

        if handler.is_unknown:
            result = StepResult.ok({"message": f"Step type {step.step_type} not implemented, workflow continues"})
        else:
            try:
                result = await self.executor.execute(
                    step.step_type,
                    lead,
                    step.config,
                    campaign.created_by_user_id,
                    campaign.tenant_id
                )
            except Exception as e:
                logger.error(
                    f"Step {step.step_type} raised for lead {lead.id} in campaign {campaign.id}: {e}",
                    exc_info=True
                )
                result = StepResult.failed(str(e) or "Unknown error occurred")

        await self.recorder.complete_attempt(activity_id, result)

        if not result.success:
            # The failed step keeps its error activity; later steps still run
            logger.warning(f"Step {step.step_type} failed for lead {lead.id}: {result.error}")
        return result.success

    async def _condition_met(self, lead: CampaignLead, condition: Optional[str]) -> bool:
        if condition not in CONDITION_STATUSES:
            logger.warning(f"Unknown condition '{condition}' for lead {lead.id}, treating as met")
            return True

        activities = await self.repository.get_recent_activities(
            lead.id, limit=self.config.condition_lookback
        )
        return any(activity.status == condition for activity in activities)

    async def _fail_configuration(
        self,
        campaign: Campaign,
        lead: CampaignLead,
        step: CampaignStep,
        message: str,
        outcome: WorkflowOutcome
    ) -> None:
        logger.warning(f"Lead {lead.id} stopped at step {step.id} ({step.step_type}): {message}")
        await self.recorder.record_failure(campaign, lead, step, message)
        await self._set_status(lead, LeadStatus.STOPPED, outcome)
        outcome.reason = message

    async def _activate(self, lead: CampaignLead, status: str, outcome: WorkflowOutcome) -> str:
        if status == LeadStatus.PENDING.value:
            await self._set_status(lead, LeadStatus.ACTIVE, outcome)
            return LeadStatus.ACTIVE.value
        return status

    async def _set_status(self, lead: CampaignLead, status: LeadStatus, outcome: WorkflowOutcome) -> None:
        await self.repository.update_lead_status(lead.id, status.value)
        outcome.lead_status = status.value
