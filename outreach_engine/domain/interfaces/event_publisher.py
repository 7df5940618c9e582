"""
Event Publisher Interface
"""
from abc import ABC, abstractmethod
from typing import Any, Dict


class EventPublisher(ABC):
    """Publishes campaign events for dashboards. Failures never affect execution."""

    @abstractmethod
    async def publish_campaign_stats(self, campaign_id: str, payload: Dict[str, Any]) -> None:
        pass
