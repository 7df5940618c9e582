"""
Campaign Processor
Runs one execution pass of a campaign: pacing, lead generation, workflow
"""
import logging
from datetime import datetime
from typing import List, Optional

from outreach_engine.core.clock import Clock, utc_now
from outreach_engine.core.config import EngineConfig
from outreach_engine.core.tasks import spawn
from outreach_engine.domain.errors import LeaseLostError, LeaseUnavailableError, TransientInfraError
from outreach_engine.domain.interfaces.campaign_lease import CampaignLease
from outreach_engine.domain.interfaces.campaign_repository import CampaignRepository
from outreach_engine.domain.interfaces.event_publisher import EventPublisher
from outreach_engine.domain.models.campaign import Campaign, ExecutionState
from outreach_engine.domain.models.campaign_lead import CampaignLead
from outreach_engine.domain.models.campaign_step import CampaignStep, StepType
from outreach_engine.domain.models.lead_generation import LeadGenerationResult
from outreach_engine.domain.models.results import RunResult
from outreach_engine.domain.services.execution_state_machine import ExecutionStateMachine
from outreach_engine.domain.services.lead_generation_engine import LeadGenerationEngine
from outreach_engine.domain.services.workflow_processor import WorkflowProcessor


logger = logging.getLogger(__name__)


class CampaignProcessor:
    """
    Executes a single campaign run.

    Flow:
    1. Take the campaign lease (skip when another run holds it)
    2. Check the campaign date window (completes the campaign after end_date)
    3. Evaluate the execution state (may skip this tick)
    4. Generate today's leads (outbound campaigns with a lead_generation step)
    5. Advance every eligible lead through the workflow, one at a time,
       renewing the lease before each lead
    6. Put the campaign to sleep once the daily quota is met

    This is the only component that writes a campaign's execution state.
    """

    def __init__(
        self,
        repository: CampaignRepository,
        lead_generation: LeadGenerationEngine,
        workflow: WorkflowProcessor,
        lease: CampaignLease,
        config: EngineConfig,
        events: Optional[EventPublisher] = None,
        state_machine: Optional[ExecutionStateMachine] = None,
        clock: Clock = utc_now
    ):
        self.repository = repository
        self.lead_generation = lead_generation
        self.workflow = workflow
        self.lease = lease
        self.config = config
        self.events = events
        self.state_machine = state_machine or ExecutionStateMachine(config)
        self.clock = clock

    async def run(self, campaign_id: str) -> RunResult:
        """
        Run one pass of a campaign.

        Returns:
            RunResult with success/skipped flags, reason and processed lead count
        """
        if not await self.lease.acquire(campaign_id, self.config.campaign_lease_ttl_seconds):
            logger.info(f"Campaign {campaign_id} is already running elsewhere, skipping")
            return RunResult.skip(campaign_id, "Campaign already running")

        try:
            result = await self._run(campaign_id)
        except TransientInfraError as e:
            logger.error(f"Campaign {campaign_id} run failed: {e.message}", exc_info=True)
            await self._mark_error(campaign_id, f"Execution failed: {e.message}")
            result = RunResult(success=False, campaign_id=campaign_id, reason=e.message)
        except (LeaseLostError, LeaseUnavailableError) as e:
            # Another worker may own the campaign now; leave its state alone
            logger.warning(f"Campaign {campaign_id} run stopped: {e.message}")
            result = RunResult(success=False, campaign_id=campaign_id, reason=e.message)
        finally:
            await self._release(campaign_id)

        if result.success and self.events:
            spawn(
                self.events.publish_campaign_stats(campaign_id, result.to_dict()),
                name=f"campaign-stats-{campaign_id}"
            )

        return result

    async def _run(self, campaign_id: str) -> RunResult:
        campaign = await self.repository.get_campaign(campaign_id)
        if campaign is None or not campaign.is_running:
            logger.info(f"Campaign {campaign_id} not found or not running, skipping")
            return RunResult.skip(campaign_id, "Campaign not found or not running")

        now = self.clock()

        # 1. Campaign window
        if campaign.has_ended(now):
            reason = "Campaign end date passed. Campaign completed."
            await self.repository.complete_campaign(campaign_id, reason)
            logger.info(f"Campaign {campaign_id} completed: end date {campaign.end_date} passed")
            return RunResult.skip(campaign_id, reason)
        if not campaign.has_started(now):
            logger.info(f"Campaign {campaign_id} starts at {campaign.start_date}, skipping")
            return RunResult.skip(campaign_id, f"Campaign starts at {campaign.start_date.isoformat()}")

        # 2. Pacing
        decision = self.state_machine.evaluate(campaign, now)
        if decision.persist:
            await self._transition(
                campaign,
                decision.state,
                decision.reason,
                clear_next_run_at=decision.clear_next_run_at
            )
        if not decision.proceed:
            logger.info(f"Campaign {campaign_id} skipped: {decision.reason}")
            return RunResult.skip(campaign_id, decision.reason)

        # 3. Steps
        steps = await self.repository.get_steps(campaign_id)
        if not steps:
            return RunResult.skip(campaign_id, "Campaign has no steps")

        # 4. Lead generation
        lead_gen_result: Optional[LeadGenerationResult] = None
        lead_gen_step = next(
            (step for step in steps if step.step_type == StepType.LEAD_GENERATION.value),
            None
        )
        if lead_gen_step and not campaign.is_inbound:
            lead_gen_result = await self.lead_generation.generate(campaign, lead_gen_step)
            await self._apply_lead_generation(campaign, lead_gen_result)

        # 5. Workflow
        leads = self._partition(campaign, await self.repository.get_eligible_leads(campaign_id))
        workflow_steps = [step for step in steps if step.is_workflow_step]
        await self._advance_leads(campaign, workflow_steps, leads)

        # 6. Post-run pacing
        if lead_gen_result and lead_gen_result.daily_limit_reached:
            await self._transition(
                campaign,
                ExecutionState.SLEEPING_UNTIL_NEXT_DAY.value,
                "Daily limit reached. All leads processed. Resuming tomorrow.",
                next_run_at=self.state_machine.next_midnight(self.clock())
            )
        elif (
            leads
            and campaign.execution_state == ExecutionState.ACTIVE.value
            and (lead_gen_result is None or lead_gen_result.execution_state_hint is None)
        ):
            await self._transition(
                campaign,
                ExecutionState.ACTIVE.value,
                f"Processing {len(leads)} existing leads through workflow."
            )

        return RunResult(success=True, campaign_id=campaign_id, lead_count=len(leads))

    def _partition(self, campaign: Campaign, leads: List[CampaignLead]) -> List[CampaignLead]:
        """
        Inbound campaigns only process uploaded leads (no snapshot/lead_data);
        outbound campaigns only process generated ones.
        """
        if campaign.is_inbound:
            selected = [lead for lead in leads if not lead.has_enrichment() and lead.lead_id]
        else:
            selected = [lead for lead in leads if lead.has_enrichment()]

        dropped = len(leads) - len(selected)
        if dropped:
            logger.warning(
                f"Campaign {campaign.id}: ignoring {dropped} leads that do not match "
                f"campaign type '{campaign.config.campaign_type}'"
            )
        return selected

    async def _advance_leads(
        self,
        campaign: Campaign,
        steps: List[CampaignStep],
        leads: List[CampaignLead]
    ) -> None:
        # One lead at a time; channel providers rate-limit per account
        for lead in leads:
            await self._renew_lease(campaign.id)
            try:
                await self.workflow.advance(campaign, steps, lead)
            except TransientInfraError:
                # Storage outages fail the whole run
                raise
            except Exception as e:
                logger.error(
                    f"Failed to advance lead {lead.id} in campaign {campaign.id}: {e}",
                    exc_info=True
                )

    async def _apply_lead_generation(self, campaign: Campaign, result: LeadGenerationResult) -> None:
        if result.execution_state_hint is None:
            return
        await self._transition(
            campaign,
            result.execution_state_hint,
            result.reason or "",
            next_run_at=result.next_run_at,
            last_lead_check_at=result.last_lead_check_at
        )

    async def _transition(
        self,
        campaign: Campaign,
        state: str,
        reason: Optional[str],
        next_run_at: Optional[datetime] = None,
        last_lead_check_at: Optional[datetime] = None,
        clear_next_run_at: bool = False
    ) -> None:
        old_state = campaign.execution_state
        await self.repository.update_execution_state(
            campaign.id,
            state,
            reason or "",
            next_run_at=next_run_at,
            last_lead_check_at=last_lead_check_at,
            clear_next_run_at=clear_next_run_at
        )
        logger.info(f"Campaign {campaign.id} execution state {old_state} -> {state}: {reason}")

        campaign.execution_state = state
        campaign.last_execution_reason = reason
        if clear_next_run_at:
            campaign.next_run_at = None
        elif next_run_at is not None:
            campaign.next_run_at = next_run_at
        if last_lead_check_at is not None:
            campaign.last_lead_check_at = last_lead_check_at

    async def _mark_error(self, campaign_id: str, reason: str) -> None:
        try:
            await self.repository.update_execution_state(campaign_id, ExecutionState.ERROR.value, reason)
            logger.info(f"Campaign {campaign_id} execution state -> error: {reason}")
        except Exception as e:
            logger.error(f"Could not move campaign {campaign_id} to error state: {e}")

    async def _renew_lease(self, campaign_id: str) -> None:
        if not await self.lease.renew(campaign_id, self.config.campaign_lease_ttl_seconds):
            raise LeaseLostError(campaign_id)

    async def _release(self, campaign_id: str) -> None:
        try:
            await self.lease.release(campaign_id)
        except LeaseUnavailableError as e:
            # The TTL frees the lease eventually
            logger.warning(f"Could not release lease for campaign {campaign_id}: {e}")
