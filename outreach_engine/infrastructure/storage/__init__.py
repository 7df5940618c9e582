"""Campaign repositories"""

from .memory_repository import InMemoryCampaignRepository
from .supabase_repository import SupabaseCampaignRepository

__all__ = [
    "InMemoryCampaignRepository",
    "SupabaseCampaignRepository",
]
