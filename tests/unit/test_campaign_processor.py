"""
Unit Tests for Campaign Processor
Lease, pacing, lead generation hints and lead partitioning
"""
import asyncio
import pytest
import pytz
from datetime import datetime, timedelta
from typing import List, Optional, Set
from unittest.mock import AsyncMock, MagicMock

from outreach_engine.core.config import EngineConfig
from outreach_engine.domain.errors import TransientInfraError
from outreach_engine.domain.interfaces.lead_source import LeadSourceAdapter
from outreach_engine.domain.models.campaign import Campaign
from outreach_engine.domain.models.campaign_lead import CampaignLead
from outreach_engine.domain.models.campaign_step import CampaignStep
from outreach_engine.domain.models.lead_generation import LeadCandidate, LeadSearchResult
from outreach_engine.domain.models.results import StepResult
from outreach_engine.domain.services.activity_recorder import ActivityRecorder
from outreach_engine.domain.services.campaign_processor import CampaignProcessor
from outreach_engine.domain.services.lead_generation_engine import LeadGenerationEngine
from outreach_engine.domain.services.step_registry import StepRegistry
from outreach_engine.domain.services.step_validator import StepValidator
from outreach_engine.domain.services.workflow_processor import WorkflowProcessor
from outreach_engine.infrastructure.lease import InMemoryCampaignLease
from outreach_engine.infrastructure.storage import InMemoryCampaignRepository


NOW = datetime(2024, 12, 9, 10, 0, tzinfo=pytz.UTC)


class ExpiringLease(InMemoryCampaignLease):
    """Loses the lease after a fixed number of renewals."""

    def __init__(self, renewals: int):
        super().__init__()
        self.renewals = renewals

    async def renew(self, campaign_id: str, ttl_seconds: int) -> bool:
        if self.renewals == 0:
            return False
        self.renewals -= 1
        return await super().renew(campaign_id, ttl_seconds)


class StubLeadSource(LeadSourceAdapter):
    def __init__(self, people: Optional[List[str]] = None, error: Optional[str] = None):
        self.people = people or []
        self.error = error
        self.pages: List[int] = []

    @property
    def name(self) -> str:
        return "apollo_io"

    async def search(self, filters, page, page_size, exclude_ids: Optional[Set[str]] = None):
        self.pages.append(page)
        if self.error:
            return LeadSearchResult(source=self.name, error=self.error)
        start = (page - 1) * page_size
        return LeadSearchResult(
            leads=[LeadCandidate(source_id=p, data={"id": p, "name": f"Lead {p}"}) for p in self.people[start:start + page_size]],
            source=self.name
        )


def build_processor(repository, source, executor, lease=None, events=None):
    clock = lambda: NOW
    config = EngineConfig()
    recorder = ActivityRecorder(repository)
    workflow = WorkflowProcessor(
        repository, executor, recorder, StepValidator(), StepRegistry(), config, clock=clock
    )
    lead_generation = LeadGenerationEngine(repository, [source], config, recorder, clock=clock)
    return CampaignProcessor(
        repository=repository,
        lead_generation=lead_generation,
        workflow=workflow,
        lease=lease or InMemoryCampaignLease(),
        config=config,
        events=events,
        clock=clock
    )


def add_campaign(repository, steps, **kwargs):
    data = {
        "id": "campaign-1",
        "tenant_id": "tenant-1",
        "status": "running",
        "config": {"leads_per_day": 2, "search_filters": {"roles": ["CTO"]}},
    }
    data.update(kwargs)
    repository.add_campaign(Campaign(**data))
    repository.add_steps("campaign-1", [
        CampaignStep(id=f"step-{i}", campaign_id="campaign-1", step_order=i, step_type=step_type)
        for i, step_type in enumerate(steps)
    ])


def uploaded_lead(lead_id="uploaded-1"):
    return CampaignLead(
        id=lead_id, campaign_id="campaign-1", tenant_id="tenant-1",
        lead_id="crm-1", status="pending", created_at=NOW - timedelta(days=1)
    )


def generated_lead(lead_id="generated-1"):
    return CampaignLead(
        id=lead_id, campaign_id="campaign-1", tenant_id="tenant-1", source_id="g1",
        status="active", snapshot={"first_name": "Alan"}, lead_data={"id": "g1"},
        created_at=NOW - timedelta(days=1)
    )


@pytest.fixture
def repository():
    return InMemoryCampaignRepository(clock=lambda: NOW)


@pytest.fixture
def executor():
    executor = AsyncMock()
    executor.execute.return_value = StepResult.ok()
    return executor


class TestLease:
    """Tests for single-flight behaviour"""

    @pytest.mark.asyncio
    async def test_skips_when_lease_is_held(self, repository, executor):
        add_campaign(repository, ["linkedin_visit"])
        repository.add_lead(generated_lead())
        lease = InMemoryCampaignLease()
        await lease.acquire("campaign-1", 60)
        processor = build_processor(repository, StubLeadSource(), executor, lease=lease)

        result = await processor.run("campaign-1")

        assert result.skipped is True
        assert result.reason == "Campaign already running"
        executor.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_releases_lease_after_run(self, repository, executor):
        add_campaign(repository, ["linkedin_visit"])
        lease = InMemoryCampaignLease()
        processor = build_processor(repository, StubLeadSource(), executor, lease=lease)

        await processor.run("campaign-1")

        assert await lease.is_held("campaign-1") is False

    @pytest.mark.asyncio
    async def test_missing_campaign_is_skipped(self, repository, executor):
        processor = build_processor(repository, StubLeadSource(), executor)

        result = await processor.run("missing")

        assert result.skipped is True
        assert result.reason == "Campaign not found or not running"


class TestRun:
    """Tests for a full campaign pass"""

    @pytest.mark.asyncio
    async def test_outbound_run_generates_advances_and_sleeps(self, repository, executor):
        add_campaign(repository, ["lead_generation", "linkedin_visit"])
        source = StubLeadSource(people=[f"p{i}" for i in range(1, 11)])
        processor = build_processor(repository, source, executor)

        result = await processor.run("campaign-1")

        assert result.success is True
        assert result.lead_count == 2
        assert executor.execute.await_count == 2

        campaign = repository.campaigns["campaign-1"]
        assert campaign.execution_state == "sleeping_until_next_day"
        assert campaign.last_execution_reason == "Daily limit reached. All leads processed. Resuming tomorrow."
        assert campaign.next_run_at == datetime(2024, 12, 10, 0, 0, tzinfo=pytz.UTC)

    @pytest.mark.asyncio
    async def test_no_steps_is_skipped(self, repository, executor):
        add_campaign(repository, [])
        processor = build_processor(repository, StubLeadSource(), executor)

        result = await processor.run("campaign-1")

        assert result.skipped is True
        assert result.reason == "Campaign has no steps"

    @pytest.mark.asyncio
    async def test_waiting_campaign_is_skipped_and_reason_saved(self, repository, executor):
        add_campaign(
            repository,
            ["lead_generation", "linkedin_visit"],
            execution_state="waiting_for_leads",
            last_lead_check_at=NOW - timedelta(hours=2)
        )
        source = StubLeadSource(people=["p1"])
        processor = build_processor(repository, source, executor)

        result = await processor.run("campaign-1")

        assert result.skipped is True
        assert result.reason == "Campaign skipped: waiting for leads (retry in 4h)"
        assert repository.campaigns["campaign-1"].last_execution_reason == result.reason
        assert source.pages == []

    @pytest.mark.asyncio
    async def test_sleeping_campaign_resumes_next_day(self, repository, executor):
        add_campaign(
            repository,
            ["linkedin_visit"],
            execution_state="sleeping_until_next_day",
            next_run_at=NOW - timedelta(hours=1)
        )
        repository.add_lead(generated_lead())
        processor = build_processor(repository, StubLeadSource(), executor)

        result = await processor.run("campaign-1")

        assert result.success is True
        first = repository.state_history[0]
        assert first["state"] == "active"
        assert first["reason"] == "Next day reached, resuming execution"
        assert first["next_run_at"] is None
        assert executor.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_lead_generation_error_is_not_overwritten(self, repository, executor):
        add_campaign(repository, ["lead_generation", "linkedin_visit"])
        repository.add_lead(generated_lead())
        processor = build_processor(repository, StubLeadSource(error="boom"), executor)

        result = await processor.run("campaign-1")

        assert result.success is True
        campaign = repository.campaigns["campaign-1"]
        assert campaign.execution_state == "error"
        assert campaign.last_execution_reason == "Lead search failed: boom"
        assert [entry["state"] for entry in repository.state_history] == ["error"]
        # Existing leads still move forward
        assert executor.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_publishes_stats_after_success(self, repository, executor):
        add_campaign(repository, ["linkedin_visit"])
        events = AsyncMock()
        processor = build_processor(repository, StubLeadSource(), executor, events=events)

        await processor.run("campaign-1")
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        events.publish_campaign_stats.assert_awaited_once()
        campaign_id, payload = events.publish_campaign_stats.await_args.args
        assert campaign_id == "campaign-1"
        assert payload["success"] is True

    @pytest.mark.asyncio
    async def test_storage_failure_marks_error(self):
        repository = AsyncMock()
        repository.get_campaign.side_effect = TransientInfraError("load campaign failed: timeout")
        lease = InMemoryCampaignLease()
        processor = CampaignProcessor(
            repository=repository,
            lead_generation=MagicMock(),
            workflow=MagicMock(),
            lease=lease,
            config=EngineConfig(),
            clock=lambda: NOW
        )

        result = await processor.run("campaign-1")

        assert result.success is False
        assert result.reason == "load campaign failed: timeout"
        repository.update_execution_state.assert_awaited_once_with(
            "campaign-1", "error", "Execution failed: load campaign failed: timeout"
        )
        assert await lease.is_held("campaign-1") is False

    @pytest.mark.asyncio
    async def test_storage_failure_during_workflow_marks_error(self, repository, executor):
        add_campaign(repository, ["linkedin_visit"], config={"campaign_type": "inbound"})
        repository.add_lead(uploaded_lead())
        repository.get_latest_successful_activity = AsyncMock(
            side_effect=TransientInfraError("database down")
        )
        lease = InMemoryCampaignLease()
        processor = build_processor(repository, StubLeadSource(), executor, lease=lease)

        result = await processor.run("campaign-1")

        assert result.success is False
        assert result.reason == "database down"
        campaign = repository.campaigns["campaign-1"]
        assert campaign.execution_state == "error"
        assert campaign.last_execution_reason == "Execution failed: database down"
        executor.execute.assert_not_awaited()
        assert await lease.is_held("campaign-1") is False


class TestLeaseRenewal:
    """Tests for keeping the lease alive during long runs"""

    @pytest.mark.asyncio
    async def test_lease_is_renewed_before_each_lead(self, repository, executor):
        add_campaign(repository, ["linkedin_visit"])
        repository.add_lead(generated_lead("generated-1"))
        repository.add_lead(generated_lead("generated-2"))
        lease = ExpiringLease(renewals=5)
        processor = build_processor(repository, StubLeadSource(), executor, lease=lease)

        result = await processor.run("campaign-1")

        assert result.success is True
        assert lease.renewals == 3
        assert executor.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_lost_lease_stops_remaining_leads(self, repository, executor):
        add_campaign(repository, ["linkedin_visit"])
        repository.add_lead(generated_lead("generated-1"))
        repository.add_lead(generated_lead("generated-2"))
        lease = ExpiringLease(renewals=1)
        processor = build_processor(repository, StubLeadSource(), executor, lease=lease)

        result = await processor.run("campaign-1")

        assert result.success is False
        assert result.reason == "Lease for campaign campaign-1 lost during run"
        assert executor.execute.await_count == 1
        # The new holder owns the campaign state
        assert repository.campaigns["campaign-1"].execution_state == "active"


class TestCampaignWindow:
    """Tests for start_date / end_date handling"""

    @pytest.mark.asyncio
    async def test_past_end_date_completes_campaign(self, repository, executor):
        add_campaign(repository, ["linkedin_visit"], end_date=NOW - timedelta(days=1))
        repository.add_lead(generated_lead())
        processor = build_processor(repository, StubLeadSource(), executor)

        result = await processor.run("campaign-1")

        assert result.skipped is True
        assert result.reason == "Campaign end date passed. Campaign completed."
        campaign = repository.campaigns["campaign-1"]
        assert campaign.status == "completed"
        assert campaign.last_execution_reason == result.reason
        executor.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_before_start_date_is_skipped(self, repository, executor):
        add_campaign(repository, ["lead_generation", "linkedin_visit"], start_date="2024-12-10")
        source = StubLeadSource(people=["p1"])
        processor = build_processor(repository, source, executor)

        result = await processor.run("campaign-1")

        assert result.skipped is True
        assert result.reason == "Campaign starts at 2024-12-10T00:00:00+00:00"
        assert repository.campaigns["campaign-1"].status == "running"
        assert source.pages == []

    @pytest.mark.asyncio
    async def test_inside_window_runs(self, repository, executor):
        add_campaign(
            repository,
            ["linkedin_visit"],
            start_date=NOW - timedelta(days=1),
            end_date=NOW + timedelta(days=1)
        )
        repository.add_lead(generated_lead())
        processor = build_processor(repository, StubLeadSource(), executor)

        result = await processor.run("campaign-1")

        assert result.success is True
        assert executor.execute.await_count == 1


class TestPartition:
    """Tests for inbound/outbound lead separation"""

    @pytest.mark.asyncio
    async def test_outbound_ignores_uploaded_leads(self, repository, executor):
        add_campaign(repository, ["linkedin_visit"])
        repository.add_lead(uploaded_lead())
        repository.add_lead(generated_lead())
        processor = build_processor(repository, StubLeadSource(), executor)

        result = await processor.run("campaign-1")

        assert result.lead_count == 1
        assert executor.execute.await_args.args[1].id == "generated-1"
        assert repository.leads["uploaded-1"].status == "pending"
        assert repository.campaigns["campaign-1"].last_execution_reason == (
            "Processing 1 existing leads through workflow."
        )

    @pytest.mark.asyncio
    async def test_inbound_skips_generation_and_generated_leads(self, repository, executor):
        add_campaign(
            repository,
            ["lead_generation", "linkedin_visit"],
            config={"campaign_type": "inbound"}
        )
        repository.add_lead(uploaded_lead())
        repository.add_lead(generated_lead())
        source = StubLeadSource(people=["p1", "p2"])
        processor = build_processor(repository, source, executor)

        result = await processor.run("campaign-1")

        assert source.pages == []
        assert result.lead_count == 1
        assert executor.execute.await_args.args[1].id == "uploaded-1"
        assert repository.leads["uploaded-1"].status == "completed"
        assert repository.leads["generated-1"].status == "active"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
