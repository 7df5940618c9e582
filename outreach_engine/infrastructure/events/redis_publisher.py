"""
Redis Event Publisher
Publishes campaign run statistics on Redis pub/sub
"""
import json
import logging
from typing import Any, Dict

import redis.asyncio as redis

from outreach_engine.core.clock import utc_now
from outreach_engine.domain.interfaces.event_publisher import EventPublisher


logger = logging.getLogger(__name__)


class RedisEventPublisher(EventPublisher):
    """Publishes `campaign_stats` events for dashboards to pick up."""

    CHANNEL = "campaigns:stats"

    def __init__(self, redis_client: redis.Redis, channel: str = CHANNEL):
        self._redis = redis_client
        self.channel = channel

    async def publish_campaign_stats(self, campaign_id: str, payload: Dict[str, Any]) -> None:
        try:
            event = {
                "event": "campaign_stats",
                "campaign_id": campaign_id,
                "data": payload,
                "timestamp": utc_now().isoformat()
            }
            await self._redis.publish(self.channel, json.dumps(event, default=str))
            logger.debug(f"Published stats event for campaign {campaign_id}")

        except Exception as e:
            logger.error(f"Failed to publish stats for campaign {campaign_id}: {e}")
