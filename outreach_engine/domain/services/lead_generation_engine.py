"""
Lead Generation Engine
Feeds a campaign its daily quota of new leads from external sources

The engine never writes the campaign's execution state itself: it returns a
hint that the campaign processor applies.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

from outreach_engine.core.clock import Clock, utc_now
from outreach_engine.core.config import EngineConfig
from outreach_engine.domain.errors import (
    AccessDeniedError,
    ConfigurationError,
    NoCandidatesError,
    TransientInfraError,
)
from outreach_engine.domain.interfaces.campaign_repository import CampaignRepository
from outreach_engine.domain.interfaces.lead_source import LeadSourceAdapter
from outreach_engine.domain.models.campaign import Campaign, ExecutionState
from outreach_engine.domain.models.campaign_lead import LeadStatus
from outreach_engine.domain.models.campaign_step import CampaignStep
from outreach_engine.domain.models.lead_generation import (
    LeadCandidate,
    LeadGenCursor,
    LeadGenerationResult,
    LeadSearchResult,
    SearchFilters,
)
from outreach_engine.domain.services.activity_recorder import ActivityRecorder
from outreach_engine.domain.services.execution_state_machine import ExecutionStateMachine


logger = logging.getLogger(__name__)


# search_source values
SOURCE_APOLLO = "apollo_io"
SOURCE_UNIPILE = "unipile"
SOURCE_AUTO = "auto"


class LeadGenerationEngine:
    """
    Generates up to `leads_per_day` new leads per campaign per calendar day.

    Candidates are fetched in fixed-size pages and consumed across days via
    an offset cursor, so one page usually serves several days of quota.
    Leads the tenant already has (in any campaign) are never added again.
    """

    def __init__(
        self,
        repository: CampaignRepository,
        sources: List[LeadSourceAdapter],
        config: EngineConfig,
        recorder: ActivityRecorder,
        clock: Clock = utc_now
    ):
        self.repository = repository
        self.sources: Dict[str, LeadSourceAdapter] = {source.name: source for source in sources}
        self.config = config
        self.recorder = recorder
        self.clock = clock
        self.schedule = ExecutionStateMachine(config)

    async def generate(self, campaign: Campaign, step: CampaignStep) -> LeadGenerationResult:
        """
        Run one lead generation pass for a campaign.

        Returns:
            LeadGenerationResult; failures are reported through `error` and
            `execution_state_hint` rather than raised
        """
        now = self.clock()

        try:
            return await self._generate(campaign, step, now)

        except ConfigurationError as e:
            logger.error(f"Lead generation misconfigured for campaign {campaign.id}: {e.message}")
            return LeadGenerationResult(
                execution_state_hint=ExecutionState.ERROR.value,
                reason=e.message,
                error=e.message,
                source="skipped"
            )

        except AccessDeniedError as e:
            logger.warning(f"Lead generation access denied for campaign {campaign.id}")
            return LeadGenerationResult(
                execution_state_hint=ExecutionState.WAITING_FOR_LEADS.value,
                next_run_at=self.schedule.access_denied_retry_at(now),
                last_lead_check_at=now,
                reason=e.message,
                source="access_denied"
            )

        except TransientInfraError as e:
            logger.error(f"Lead generation failed for campaign {campaign.id}: {e.message}", exc_info=True)
            return LeadGenerationResult(
                execution_state_hint=ExecutionState.ERROR.value,
                reason=e.message,
                error=e.message,
                source="error"
            )

    async def _generate(self, campaign: Campaign, step: CampaignStep, now: datetime) -> LeadGenerationResult:
        cursor = await self.repository.get_lead_generation_cursor(campaign, step)
        quota = self.resolve_quota(campaign, step)
        today = self.schedule.today(now)

        # Daily gate: at most one generation pass per calendar day
        if cursor.last_lead_gen_date == today:
            logger.info(f"Campaign {campaign.id}: leads already generated today ({today}), skipping")
            return LeadGenerationResult(
                new_offset=cursor.offset,
                daily_limit=quota,
                skipped=True,
                source="skipped",
                reason=f"Leads already generated today ({today})"
            )

        filters = SearchFilters.from_configs(step.config, campaign.config.search_filters)
        if not filters.has_criteria():
            raise ConfigurationError(
                "Lead generation filter not configured. Please set at least one of: roles, location, or industries",
                missing_fields=["leadGenerationFilters"]
            )

        source_names = self._source_order(campaign)
        exclude_ids = await self.repository.get_tenant_source_ids(campaign.tenant_id)

        # A source that drops known ids serves a stream that shrinks as leads are
        # saved, so the offset cursor only applies when every source dedups locally
        server_side_exclusion = all(self.sources[name].supports_exclusion for name in source_names)
        start_offset = 0 if server_side_exclusion else cursor.offset

        logger.info(
            f"Generating leads for campaign {campaign.id}: quota={quota}, offset={start_offset}, "
            f"sources={source_names}, excluded={len(exclude_ids)}, server_side_exclusion={server_side_exclusion}"
        )

        candidates, new_offset, source = await self._collect(
            campaign, filters, source_names, exclude_ids, start_offset, quota, server_side_exclusion
        )
        if server_side_exclusion:
            new_offset = cursor.offset

        try:
            if not candidates:
                raise NoCandidatesError()

            saved_ids = await self._save(campaign, candidates)
            if not saved_ids:
                raise NoCandidatesError()

        except NoCandidatesError:
            # Keep the advanced offset but leave the date open so a retry later today can continue
            if new_offset != cursor.offset:
                await self.repository.save_lead_generation_cursor(
                    campaign, step, LeadGenCursor(offset=new_offset, last_lead_gen_date=cursor.last_lead_gen_date)
                )
            return self._no_leads_result(campaign, now, new_offset, quota, source)

        await self.repository.save_lead_generation_cursor(
            campaign, step, LeadGenCursor(offset=new_offset, last_lead_gen_date=today)
        )

        await self._record_generation(campaign, saved_ids[0], step)

        saved = len(saved_ids)
        result = LeadGenerationResult(
            leads_found=len(candidates),
            leads_saved=saved,
            new_offset=new_offset,
            daily_limit=quota,
            source=source,
            daily_limit_reached=saved >= quota
        )
        if not result.daily_limit_reached:
            result.execution_state_hint = ExecutionState.ACTIVE.value
            result.reason = f"Leads found ({saved}/{quota}). Campaign active."

        logger.info(
            f"Campaign {campaign.id}: saved {saved}/{quota} leads from {source}, "
            f"offset {cursor.offset} -> {new_offset}"
        )
        return result

    def resolve_quota(self, campaign: Campaign, step: CampaignStep) -> int:
        """
        Daily lead quota, first set value wins: campaign leads_per_day,
        campaign daily_lead_limit, step leads_per_day, step
        leadGenerationLimit, engine default.
        """
        candidates: List[Any] = [
            campaign.config.leads_per_day,
            campaign.config.daily_lead_limit,
            step.config.get("leads_per_day"),
            step.config.get("leadGenerationLimit"),
        ]
        raw = next((value for value in candidates if value not in (None, "")), None)
        if raw is None:
            return self.config.default_leads_per_day

        try:
            quota = int(raw)
        except (TypeError, ValueError):
            raise ConfigurationError(f"leads_per_day must be a number, got {raw!r}")

        if quota <= 0:
            raise ConfigurationError("leads_per_day must be set and greater than 0")
        return quota

    def _source_order(self, campaign: Campaign) -> List[str]:
        preference = campaign.config.search_source or self.config.default_search_source
        if preference == SOURCE_AUTO:
            order = [SOURCE_UNIPILE, SOURCE_APOLLO]
        else:
            order = [preference]

        available = [name for name in order if name in self.sources]
        if not available:
            raise ConfigurationError(f"No lead source available for search_source '{preference}'")
        return available

    async def _collect(
        self,
        campaign: Campaign,
        filters: SearchFilters,
        source_names: List[str],
        exclude_ids: Set[str],
        offset: int,
        quota: int,
        server_side_exclusion: bool = False
    ) -> Tuple[List[LeadCandidate], int, str]:
        """
        Walk the candidate stream from `offset` until the quota is filled.

        Returns:
            (accepted candidates, offset after the last consumed candidate, source name)
        """
        page_size = self.config.lead_fetch_page_size
        page = offset // page_size + 1
        start_in_page = offset % page_size

        accepted: List[LeadCandidate] = []
        seen: Set[str] = set()
        position = offset
        source = source_names[0]

        for _ in range(self.config.lead_max_page_attempts):
            try:
                result = await self._search(
                    source_names, filters, page, page_size, exclude_ids if server_side_exclusion else None
                )
            except TransientInfraError:
                if accepted:
                    logger.warning(
                        f"Campaign {campaign.id}: search failed on page {page}, "
                        f"keeping {len(accepted)} leads from earlier pages"
                    )
                    break
                raise

            source = result.source or source
            leads = result.leads

            for index in range(start_in_page, len(leads)):
                candidate = leads[index]
                position = (page - 1) * page_size + index + 1

                # Local safety net for sources that cannot exclude server-side
                if candidate.source_id in exclude_ids or candidate.source_id in seen:
                    continue

                seen.add(candidate.source_id)
                accepted.append(candidate)
                if len(accepted) >= quota:
                    break

            if len(accepted) >= quota:
                break

            if len(leads) < page_size:
                logger.debug(f"Campaign {campaign.id}: source exhausted at page {page}")
                break

            logger.debug(
                f"Campaign {campaign.id}: page {page} left quota unfilled "
                f"({len(accepted)}/{quota}), fetching next page"
            )
            page += 1
            start_in_page = 0

        return accepted, max(offset, position), source

    async def _search(
        self,
        source_names: List[str],
        filters: SearchFilters,
        page: int,
        page_size: int,
        exclude_ids: Optional[Set[str]]
    ) -> LeadSearchResult:
        """
        Fetch one page, falling back through `source_names` in order.

        Raises:
            AccessDeniedError: Every source refused on plan grounds
            TransientInfraError: Every source failed
        """
        errors: List[str] = []
        denied = False
        empty: Optional[LeadSearchResult] = None

        for name in source_names:
            adapter = self.sources[name]
            try:
                result = await adapter.search(filters, page, page_size, exclude_ids)
            except Exception as e:
                logger.error(f"Lead source {name} raised on page {page}: {e}", exc_info=True)
                result = LeadSearchResult(source=name, error=str(e))

            if result.access_denied:
                denied = True
                continue
            if result.error:
                errors.append(f"{name}: {result.error}" if len(source_names) > 1 else result.error)
                continue
            if result.leads:
                result.source = result.source or name
                return result
            empty = empty or LeadSearchResult(source=name)

        if empty is not None:
            return empty
        if denied:
            raise AccessDeniedError()
        raise TransientInfraError(f"Lead search failed: {'; '.join(errors)}")

    async def _save(self, campaign: Campaign, candidates: List[LeadCandidate]) -> List[str]:
        saved: List[str] = []
        for candidate in candidates:
            lead_id = await self.repository.insert_lead_if_absent({
                "campaign_id": campaign.id,
                "tenant_id": campaign.tenant_id,
                "source_id": candidate.source_id,
                "status": LeadStatus.ACTIVE.value,
                "snapshot": candidate.snapshot(),
                "lead_data": candidate.lead_data(),
            })
            if lead_id is None:
                logger.debug(f"Lead {candidate.source_id} already exists for tenant {campaign.tenant_id}")
                continue
            saved.append(lead_id)
        return saved

    async def _record_generation(self, campaign: Campaign, campaign_lead_id: str, step: CampaignStep) -> None:
        try:
            await self.recorder.record_lead_generation(campaign, campaign_lead_id, step)
        except TransientInfraError as e:
            # Analytics only
            logger.warning(f"Could not record lead generation activity for campaign {campaign.id}: {e}")

    def _no_leads_result(
        self,
        campaign: Campaign,
        now: datetime,
        new_offset: int,
        quota: int,
        source: str
    ) -> LeadGenerationResult:
        next_run_at = self.schedule.next_lead_retry_at(now)
        reason = (
            f"No leads found. Retrying in {self.config.lead_retry_interval_hours}h or tomorrow at "
            f"{self.config.lead_daily_retry_hour}:{self.config.lead_daily_retry_minute:02d}"
        )
        logger.info(f"Campaign {campaign.id}: {reason}")
        return LeadGenerationResult(
            new_offset=new_offset,
            daily_limit=quota,
            source=source,
            execution_state_hint=ExecutionState.WAITING_FOR_LEADS.value,
            next_run_at=next_run_at,
            last_lead_check_at=now,
            reason=reason
        )
