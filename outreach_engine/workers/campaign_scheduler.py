"""
Campaign Scheduler
Background worker that runs every due campaign on a fixed interval

Run as separate process:
    python -m outreach_engine.workers.campaign_scheduler
"""
import asyncio
import logging
import signal
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Set

from dotenv import load_dotenv

import httpx
import redis.asyncio as redis
from supabase import create_client

from outreach_engine.core.clock import Clock, utc_now
from outreach_engine.core.config import EngineConfig, EngineSettings, get_settings, load_engine_config
from outreach_engine.core.tasks import spawn
from outreach_engine.domain.errors import LeaseUnavailableError
from outreach_engine.domain.interfaces.campaign_lease import CampaignLease
from outreach_engine.domain.interfaces.campaign_repository import CampaignRepository
from outreach_engine.domain.models.results import RunResult
from outreach_engine.domain.services.activity_recorder import ActivityRecorder
from outreach_engine.domain.services.campaign_processor import CampaignProcessor
from outreach_engine.domain.services.lead_generation_engine import LeadGenerationEngine
from outreach_engine.domain.services.step_registry import StepRegistry
from outreach_engine.domain.services.step_validator import StepValidator
from outreach_engine.domain.services.workflow_processor import WorkflowProcessor
from outreach_engine.infrastructure.connectors import HttpLeadSourceAdapter, HttpStepExecutor
from outreach_engine.infrastructure.events import RedisEventPublisher
from outreach_engine.infrastructure.lease import RedisCampaignLease
from outreach_engine.infrastructure.storage import SupabaseCampaignRepository


logger = logging.getLogger(__name__)


@dataclass
class TickSummary:
    """What one scheduler tick did."""
    due: int = 0
    started: int = 0
    skipped_in_flight: int = 0
    skipped_leased: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class CampaignScheduler:
    """
    Periodically runs every due campaign.

    Responsibilities:
    - Load running campaigns that are active or whose next_run_at has passed
    - Skip campaigns with a run in flight (this process or another holder)
    - Run the rest concurrently, bounded by max_concurrent_campaigns
    - Keep one campaign's failure from affecting the others
    """

    MAX_CONSECUTIVE_ERRORS = 10

    def __init__(
        self,
        repository: CampaignRepository,
        processor: CampaignProcessor,
        lease: CampaignLease,
        config: EngineConfig,
        clock: Clock = utc_now
    ):
        self.repository = repository
        self.processor = processor
        self.lease = lease
        self.config = config
        self.clock = clock

        self.running = False
        self._semaphore = asyncio.Semaphore(config.max_concurrent_campaigns)
        self._in_flight: Set[str] = set()
        self._stop_event = asyncio.Event()

        # Stats
        self._ticks = 0
        self._runs_succeeded = 0
        self._runs_failed = 0

    async def tick(self) -> TickSummary:
        """
        Run one scheduling pass and wait for every run it started.

        Returns:
            TickSummary with per-outcome counts
        """
        summary = TickSummary()
        campaigns = await self.repository.get_due_campaigns(self.clock())
        summary.due = len(campaigns)

        selected: List[str] = []
        for campaign in campaigns:
            if campaign.id in self._in_flight or campaign.id in selected:
                summary.skipped_in_flight += 1
                continue
            try:
                if await self.lease.is_held(campaign.id):
                    summary.skipped_leased += 1
                    continue
            except LeaseUnavailableError as e:
                # The processor's acquire decides; a dead backend fails that run only
                logger.warning(f"Lease check failed for campaign {campaign.id}: {e}")
            selected.append(campaign.id)

        summary.started = len(selected)
        if selected:
            logger.info(f"Scheduler tick: {summary.due} due, starting {summary.started}")

        self._in_flight.update(selected)
        results = await asyncio.gather(*(self._run_one(campaign_id) for campaign_id in selected))

        for result in results:
            if result.success:
                summary.succeeded += 1
            elif result.skipped:
                summary.skipped += 1
            else:
                summary.failed += 1

        self._ticks += 1
        self._runs_succeeded += summary.succeeded
        self._runs_failed += summary.failed
        return summary

    async def _run_one(self, campaign_id: str) -> RunResult:
        # Caller marks the campaign in flight before scheduling this coroutine
        try:
            async with self._semaphore:
                return await self.processor.run(campaign_id)
        except Exception as e:
            logger.error(f"Campaign {campaign_id} run crashed: {e}", exc_info=True)
            return RunResult(success=False, campaign_id=campaign_id, reason=str(e))
        finally:
            self._in_flight.discard(campaign_id)

    def trigger(self, campaign_id: str) -> asyncio.Task:
        """
        Run one campaign right away, outside the periodic tick.

        Used when a campaign is started. The returned task resolves to the
        RunResult; a run already in flight is skipped.
        """
        if campaign_id in self._in_flight:
            logger.info(f"Campaign {campaign_id} already in flight, trigger ignored")

            async def _already_running() -> RunResult:
                return RunResult.skip(campaign_id, "Campaign already running")

            return spawn(_already_running(), name=f"campaign-trigger-{campaign_id}")

        logger.info(f"Triggering immediate run of campaign {campaign_id}")
        self._in_flight.add(campaign_id)
        return spawn(self._run_one(campaign_id), name=f"campaign-trigger-{campaign_id}")

    async def run(self) -> None:
        """
        Main scheduler loop.

        Ticks every scheduler_interval_seconds until stopped; backs off
        after consecutive tick failures.
        """
        self.running = True
        consecutive_errors = 0

        logger.info(
            f"Campaign Scheduler started (interval={self.config.scheduler_interval_seconds}s, "
            f"max_concurrent={self.config.max_concurrent_campaigns})"
        )

        while self.running:
            try:
                summary = await self.tick()
                consecutive_errors = 0
                if summary.due:
                    logger.info(f"Scheduler tick finished: {summary.to_dict()}")
                delay = self.config.scheduler_interval_seconds

            except asyncio.CancelledError:
                logger.info("Scheduler received cancellation signal")
                break
            except Exception as e:
                consecutive_errors += 1
                logger.error(f"Scheduler error ({consecutive_errors}): {e}", exc_info=True)

                if consecutive_errors >= self.MAX_CONSECUTIVE_ERRORS:
                    logger.critical("Too many consecutive errors, stopping scheduler")
                    break

                delay = min(5 * consecutive_errors, 60)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

        self.running = False

    def stop(self) -> None:
        """Ask the loop to exit after the current tick."""
        self.running = False
        self._stop_event.set()

    async def shutdown(self) -> None:
        """Graceful shutdown."""
        logger.info("Shutting down Campaign Scheduler...")
        self.stop()
        logger.info(
            f"Campaign Scheduler shutdown complete. "
            f"Ticks: {self._ticks}, Succeeded: {self._runs_succeeded}, Failed: {self._runs_failed}"
        )

    def get_stats(self) -> dict:
        """Get scheduler statistics."""
        return {
            "running": self.running,
            "ticks": self._ticks,
            "runs_succeeded": self._runs_succeeded,
            "runs_failed": self._runs_failed,
            "in_flight": sorted(self._in_flight),
        }


def build_scheduler(
    settings: EngineSettings,
    config: Optional[EngineConfig] = None
) -> CampaignScheduler:
    """Wire the production scheduler: Supabase storage, Redis lease and events, HTTP connectors."""
    if not settings.supabase_url or not settings.supabase_service_key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")

    config = config or load_engine_config(settings)

    repository = SupabaseCampaignRepository(
        create_client(settings.supabase_url, settings.supabase_service_key)
    )
    redis_client = redis.from_url(settings.redis_url, decode_responses=True)
    lease = RedisCampaignLease(redis_client)
    http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)

    sources = [
        HttpLeadSourceAdapter(
            name=name,
            url=url,
            api_key=settings.service_api_key,
            timeout=settings.http_timeout_seconds,
            supports_exclusion=name in settings.server_side_exclusion_sources,
            client=http_client
        )
        for name, url in settings.lead_source_urls.items()
    ]
    if not sources:
        logger.warning("No lead sources configured (LEAD_SOURCE_URLS); outbound lead generation will fail")

    recorder = ActivityRecorder(repository)
    workflow = WorkflowProcessor(
        repository=repository,
        executor=HttpStepExecutor(
            url=settings.step_executor_url,
            api_key=settings.service_api_key,
            timeout=settings.http_timeout_seconds,
            client=http_client
        ),
        recorder=recorder,
        validator=StepValidator(),
        registry=StepRegistry(strict=config.strict_step_types),
        config=config
    )
    processor = CampaignProcessor(
        repository=repository,
        lead_generation=LeadGenerationEngine(repository, sources, config, recorder),
        workflow=workflow,
        lease=lease,
        config=config,
        events=RedisEventPublisher(redis_client)
    )
    return CampaignScheduler(repository, processor, lease, config)


async def main():
    """Entry point for running the scheduler as separate process."""
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    scheduler = build_scheduler(get_settings())

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        scheduler.stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    try:
        await scheduler.run()
    except KeyboardInterrupt:
        logger.info("Scheduler interrupted by user")
    finally:
        await scheduler.shutdown()


def run_main():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run_main()
