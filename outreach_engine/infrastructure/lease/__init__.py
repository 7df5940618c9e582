"""Campaign lease backends"""

from .memory_lease import InMemoryCampaignLease
from .redis_lease import RedisCampaignLease

__all__ = [
    "InMemoryCampaignLease",
    "RedisCampaignLease",
]
