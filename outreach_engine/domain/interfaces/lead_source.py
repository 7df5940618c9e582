"""
Lead Source Interface
Abstract base class for lead search providers
"""
from abc import ABC, abstractmethod
from typing import Optional, Set

from outreach_engine.domain.models.lead_generation import LeadSearchResult, SearchFilters


class LeadSourceAdapter(ABC):
    """Abstract base class for lead sources (Apollo, Unipile, ...)"""

    @abstractmethod
    async def search(
        self,
        filters: SearchFilters,
        page: int,
        page_size: int,
        exclude_ids: Optional[Set[str]] = None
    ) -> LeadSearchResult:
        """
        Fetch one page of candidates

        Args:
            filters: Normalized search criteria
            page: 1-based page number
            page_size: Candidates per page
            exclude_ids: Source ids the caller already has

        Returns:
            LeadSearchResult; errors are reported in the result, not raised
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Source name (apollo_io, unipile, ...)"""
        pass

    @property
    def supports_exclusion(self) -> bool:
        """Whether the source filters exclude_ids server-side"""
        return False
