"""
Campaign Lease Interface
Single-flight guard: at most one run per campaign at a time
"""
from abc import ABC, abstractmethod


class CampaignLease(ABC):
    """Abstract base class for per-campaign execution leases"""

    @abstractmethod
    async def acquire(self, campaign_id: str, ttl_seconds: int) -> bool:
        """
        Try to take the lease

        Returns:
            True when acquired, False when another run holds it
        """
        pass

    @abstractmethod
    async def release(self, campaign_id: str) -> None:
        """Release a lease taken by this holder (no-op otherwise)"""
        pass

    @abstractmethod
    async def renew(self, campaign_id: str, ttl_seconds: int) -> bool:
        """
        Push the expiry of a lease taken by this holder `ttl_seconds` into the future

        Returns:
            False when the lease expired or now belongs to another holder
        """
        pass

    @abstractmethod
    async def is_held(self, campaign_id: str) -> bool:
        pass
