"""
In-Memory Campaign Lease
Single-process lease for tests and local runs
"""
import time
from typing import Callable, Dict

from outreach_engine.domain.interfaces.campaign_lease import CampaignLease


class InMemoryCampaignLease(CampaignLease):
    """Lease table kept in a dict; expired entries are treated as free."""

    def __init__(self, monotonic: Callable[[], float] = time.monotonic):
        self._monotonic = monotonic
        self._expires_at: Dict[str, float] = {}

    async def acquire(self, campaign_id: str, ttl_seconds: int) -> bool:
        if await self.is_held(campaign_id):
            return False
        self._expires_at[campaign_id] = self._monotonic() + ttl_seconds
        return True

    async def release(self, campaign_id: str) -> None:
        self._expires_at.pop(campaign_id, None)

    async def renew(self, campaign_id: str, ttl_seconds: int) -> bool:
        if not await self.is_held(campaign_id):
            return False
        self._expires_at[campaign_id] = self._monotonic() + ttl_seconds
        return True

    async def is_held(self, campaign_id: str) -> bool:
        expires_at = self._expires_at.get(campaign_id)
        if expires_at is None:
            return False
        if expires_at <= self._monotonic():
            del self._expires_at[campaign_id]
            return False
        return True
