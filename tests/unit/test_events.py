"""
Unit Tests for Redis Event Publisher
"""
import json
import pytest
from unittest.mock import AsyncMock

from outreach_engine.infrastructure.events import RedisEventPublisher


class TestRedisEventPublisher:
    """Tests for campaign stats events"""

    @pytest.mark.asyncio
    async def test_publishes_stats_event(self):
        redis_client = AsyncMock()
        publisher = RedisEventPublisher(redis_client)

        await publisher.publish_campaign_stats("campaign-1", {"success": True, "lead_count": 3})

        channel, message = redis_client.publish.await_args.args
        event = json.loads(message)
        assert channel == "campaigns:stats"
        assert event["event"] == "campaign_stats"
        assert event["campaign_id"] == "campaign-1"
        assert event["data"] == {"success": True, "lead_count": 3}
        assert "timestamp" in event

    @pytest.mark.asyncio
    async def test_publish_failure_is_swallowed(self):
        redis_client = AsyncMock()
        redis_client.publish.side_effect = ConnectionError("redis down")
        publisher = RedisEventPublisher(redis_client, channel="custom")

        await publisher.publish_campaign_stats("campaign-1", {})

        redis_client.publish.assert_awaited_once()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
