"""
Unit Tests for Campaign Repositories
In-memory semantics and Supabase error mapping
"""
import pytest
import pytz
from datetime import datetime, timedelta
from unittest.mock import MagicMock

from postgrest.exceptions import APIError

from outreach_engine.domain.errors import TransientInfraError
from outreach_engine.domain.models.campaign import Campaign
from outreach_engine.domain.models.campaign_lead import CampaignLeadActivity
from outreach_engine.domain.models.campaign_step import CampaignStep
from outreach_engine.infrastructure.storage import InMemoryCampaignRepository, SupabaseCampaignRepository
from outreach_engine.infrastructure.storage.supabase_repository import MAX_ROWS_PER_REQUEST


NOW = datetime(2024, 12, 9, 10, 0, tzinfo=pytz.UTC)


def api_error(code: str, message: str = "error") -> APIError:
    return APIError({"message": message, "code": code, "hint": None, "details": None})


class TestInMemoryRepository:
    """Tests for InMemoryCampaignRepository"""

    @pytest.mark.asyncio
    async def test_due_campaigns(self):
        repository = InMemoryCampaignRepository(clock=lambda: NOW)
        repository.add_campaign(Campaign(id="active", tenant_id="t", status="running"))
        repository.add_campaign(Campaign(id="paused", tenant_id="t", status="paused"))
        repository.add_campaign(Campaign(
            id="waiting-due", tenant_id="t", status="running",
            execution_state="waiting_for_leads", next_run_at=NOW - timedelta(minutes=1)
        ))
        repository.add_campaign(Campaign(
            id="sleeping", tenant_id="t", status="running",
            execution_state="sleeping_until_next_day", next_run_at=NOW + timedelta(hours=3)
        ))
        repository.add_campaign(Campaign(id="broken", tenant_id="t", status="running", execution_state="error"))

        due = await repository.get_due_campaigns(NOW)

        assert sorted(campaign.id for campaign in due) == ["active", "waiting-due"]

    @pytest.mark.asyncio
    async def test_insert_is_unique_per_tenant_source(self):
        repository = InMemoryCampaignRepository(clock=lambda: NOW)
        lead = {"campaign_id": "c1", "tenant_id": "t1", "source_id": "p1", "status": "active"}

        first = await repository.insert_lead_if_absent(lead)
        second = await repository.insert_lead_if_absent(dict(lead))
        other_campaign = await repository.insert_lead_if_absent({**lead, "campaign_id": "c2"})
        other_tenant = await repository.insert_lead_if_absent({**lead, "tenant_id": "t2"})

        assert first is not None
        assert second is None
        assert other_campaign is None
        assert other_tenant is not None
        assert await repository.get_tenant_source_ids("t1") == {"p1"}

    @pytest.mark.asyncio
    async def test_leads_without_source_id_never_conflict(self):
        repository = InMemoryCampaignRepository(clock=lambda: NOW)
        lead = {"campaign_id": "c1", "tenant_id": "t1", "lead_id": "crm-1", "status": "pending"}

        assert await repository.insert_lead_if_absent(lead) is not None
        assert await repository.insert_lead_if_absent({**lead, "lead_id": "crm-2"}) is not None

    @pytest.mark.asyncio
    async def test_complete_campaign(self):
        repository = InMemoryCampaignRepository(clock=lambda: NOW)
        repository.add_campaign(Campaign(id="c1", tenant_id="t1", status="running"))

        await repository.complete_campaign("c1", "Campaign end date passed. Campaign completed.")

        campaign = await repository.get_campaign("c1")
        assert campaign.status == "completed"
        assert campaign.last_execution_reason == "Campaign end date passed. Campaign completed."
        assert await repository.get_due_campaigns(NOW) == []

    @pytest.mark.asyncio
    async def test_latest_successful_activity_ignores_failures(self):
        repository = InMemoryCampaignRepository(clock=lambda: NOW)
        repository.add_activity(CampaignLeadActivity(
            id="a1", campaign_lead_id="l1", step_id="s1", status="delivered", created_at=NOW - timedelta(hours=2)
        ))
        repository.add_activity(CampaignLeadActivity(
            id="a2", campaign_lead_id="l1", step_id="s2", status="error", created_at=NOW - timedelta(hours=1)
        ))

        latest = await repository.get_latest_successful_activity("l1")

        assert latest.id == "a1"
        assert await repository.has_attempted_activity("l1", "s1") is True
        assert await repository.has_attempted_activity("l1", "s2") is True
        assert await repository.has_attempted_activity("l1", "s3") is False

    @pytest.mark.asyncio
    async def test_recent_activities_newest_first_with_ties(self):
        repository = InMemoryCampaignRepository(clock=lambda: NOW)
        for activity_id in ("a1", "a2", "a3"):
            repository.add_activity(CampaignLeadActivity(
                id=activity_id, campaign_lead_id="l1", status="delivered", created_at=NOW
            ))

        recent = await repository.get_recent_activities("l1", limit=2)

        assert [activity.id for activity in recent] == ["a3", "a2"]

    @pytest.mark.asyncio
    async def test_returned_models_are_copies(self):
        repository = InMemoryCampaignRepository()
        repository.add_campaign(Campaign(id="c1", tenant_id="t", status="running"))

        loaded = await repository.get_campaign("c1")
        loaded.execution_state = "error"

        assert repository.campaigns["c1"].execution_state == "active"


class TestSupabaseRepository:
    """Tests for SupabaseCampaignRepository"""

    @pytest.mark.asyncio
    async def test_duplicate_insert_returns_none(self):
        supabase = MagicMock()
        supabase.table.return_value.insert.return_value.execute.side_effect = api_error("23505", "duplicate key")
        repository = SupabaseCampaignRepository(supabase)

        result = await repository.insert_lead_if_absent({"source_id": "p1"})

        assert result is None

    @pytest.mark.asyncio
    async def test_complete_campaign_sets_status(self):
        supabase = MagicMock()
        repository = SupabaseCampaignRepository(supabase)

        await repository.complete_campaign("c1", "Campaign end date passed. Campaign completed.")

        supabase.table.assert_called_with("campaigns")
        update_data = supabase.table.return_value.update.call_args.args[0]
        assert update_data["status"] == "completed"
        assert update_data["last_execution_reason"] == "Campaign end date passed. Campaign completed."
        supabase.table.return_value.update.return_value.eq.assert_called_once_with("id", "c1")

    @pytest.mark.asyncio
    async def test_other_insert_errors_are_transient(self):
        supabase = MagicMock()
        supabase.table.return_value.insert.return_value.execute.side_effect = api_error("57014", "timeout")
        repository = SupabaseCampaignRepository(supabase)

        with pytest.raises(TransientInfraError):
            await repository.insert_lead_if_absent({"source_id": "p1"})

    @pytest.mark.asyncio
    async def test_insert_returns_new_id(self):
        supabase = MagicMock()
        supabase.table.return_value.insert.return_value.execute.return_value = MagicMock(data=[{"id": "lead-9"}])
        repository = SupabaseCampaignRepository(supabase)

        assert await repository.insert_lead_if_absent({"source_id": "p1"}) == "lead-9"

    @pytest.mark.asyncio
    async def test_query_failures_are_transient(self):
        supabase = MagicMock()
        supabase.table.return_value.select.return_value.eq.return_value.limit.return_value.execute.side_effect = (
            RuntimeError("connection reset")
        )
        repository = SupabaseCampaignRepository(supabase)

        with pytest.raises(TransientInfraError):
            await repository.get_campaign("c1")

    @pytest.mark.asyncio
    async def test_tenant_source_ids_page_through_all_rows(self):
        supabase = MagicMock()
        first_page = MagicMock(data=[{"source_id": f"s{i}"} for i in range(MAX_ROWS_PER_REQUEST)])
        second_page = MagicMock(data=[{"source_id": None, "apollo_person_id": "a1", "person_id": "x1"}])
        query = supabase.table.return_value.select.return_value.eq.return_value.range
        query.return_value.execute.side_effect = [first_page, second_page]
        repository = SupabaseCampaignRepository(supabase)

        source_ids = await repository.get_tenant_source_ids("t1")

        assert len(source_ids) == MAX_ROWS_PER_REQUEST + 2
        assert {"a1", "x1"} <= source_ids
        assert [call.args for call in query.call_args_list] == [
            (0, MAX_ROWS_PER_REQUEST - 1),
            (MAX_ROWS_PER_REQUEST, 2 * MAX_ROWS_PER_REQUEST - 1),
        ]

    @pytest.mark.asyncio
    async def test_cursor_falls_back_to_step_config_without_column(self):
        supabase = MagicMock()
        supabase.table.return_value.select.return_value.limit.return_value.execute.side_effect = (
            api_error("42703", "column campaigns.config does not exist")
        )
        repository = SupabaseCampaignRepository(supabase)
        campaign = Campaign(id="c1", tenant_id="t1", status="running")
        step = CampaignStep(
            id="s1", campaign_id="c1", step_type="lead_generation",
            config={"lead_gen_offset": 40, "last_lead_gen_date": "2024-12-08"}
        )

        cursor = await repository.get_lead_generation_cursor(campaign, step)

        assert cursor.offset == 40
        assert cursor.last_lead_gen_date == "2024-12-08"

    @pytest.mark.asyncio
    async def test_cursor_read_from_campaign_config(self):
        supabase = MagicMock()
        repository = SupabaseCampaignRepository(supabase)
        campaign = Campaign(
            id="c1", tenant_id="t1", status="running",
            config={"lead_gen_offset": 25, "last_lead_gen_date": "2024-12-09"}
        )
        step = CampaignStep(id="s1", campaign_id="c1", step_type="lead_generation")

        cursor = await repository.get_lead_generation_cursor(campaign, step)

        assert cursor.offset == 25
        assert cursor.last_lead_gen_date == "2024-12-09"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
