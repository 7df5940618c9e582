"""
Redis Campaign Lease
Per-campaign mutual exclusion across worker processes

Keys:
- campaign:lease:{campaign_id} - holder token, expires after the TTL
"""
import logging
import uuid
from typing import Dict, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from outreach_engine.domain.errors import LeaseUnavailableError
from outreach_engine.domain.interfaces.campaign_lease import CampaignLease


logger = logging.getLogger(__name__)


# Delete the key only if it still holds our token
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

# Extend the TTL only if the key still holds our token
RENEW_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("pexpire", KEYS[1], ARGV[2])
else
    return 0
end
"""


class RedisCampaignLease(CampaignLease):
    """
    Lease stored as a Redis key set with NX + PX.

    Each acquisition writes a unique token; release is compare-and-delete so
    a run whose lease already expired cannot free a newer holder's lease.
    Renewal is compare-and-pexpire for the same reason.
    """

    KEY_PREFIX = "campaign:lease:"

    def __init__(self, redis_client: redis.Redis, holder_id: Optional[str] = None):
        self._redis = redis_client
        self.holder_id = holder_id or uuid.uuid4().hex
        self._tokens: Dict[str, str] = {}

    def _key(self, campaign_id: str) -> str:
        return f"{self.KEY_PREFIX}{campaign_id}"

    async def acquire(self, campaign_id: str, ttl_seconds: int) -> bool:
        token = f"{self.holder_id}:{uuid.uuid4().hex}"
        try:
            acquired = await self._redis.set(self._key(campaign_id), token, nx=True, px=ttl_seconds * 1000)
        except RedisError as e:
            logger.error(f"Failed to acquire lease for campaign {campaign_id}: {e}")
            raise LeaseUnavailableError(f"Lease backend unavailable: {e}") from e

        if not acquired:
            return False

        self._tokens[campaign_id] = token
        logger.debug(f"Acquired lease for campaign {campaign_id} (ttl={ttl_seconds}s)")
        return True

    async def release(self, campaign_id: str) -> None:
        token = self._tokens.pop(campaign_id, None)
        if token is None:
            return

        try:
            released = await self._redis.eval(RELEASE_SCRIPT, 1, self._key(campaign_id), token)
        except RedisError as e:
            raise LeaseUnavailableError(f"Lease backend unavailable: {e}") from e

        if not released:
            logger.warning(f"Lease for campaign {campaign_id} expired before release")

    async def renew(self, campaign_id: str, ttl_seconds: int) -> bool:
        token = self._tokens.get(campaign_id)
        if token is None:
            return False

        try:
            renewed = await self._redis.eval(RENEW_SCRIPT, 1, self._key(campaign_id), token, ttl_seconds * 1000)
        except RedisError as e:
            raise LeaseUnavailableError(f"Lease backend unavailable: {e}") from e

        if not renewed:
            self._tokens.pop(campaign_id, None)
            logger.warning(f"Lease for campaign {campaign_id} was lost before renewal")
            return False
        return True

    async def is_held(self, campaign_id: str) -> bool:
        try:
            return bool(await self._redis.exists(self._key(campaign_id)))
        except RedisError as e:
            raise LeaseUnavailableError(f"Lease backend unavailable: {e}") from e
