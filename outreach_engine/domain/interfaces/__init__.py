"""Domain interfaces (ports)"""

from .campaign_repository import CampaignRepository
from .step_executor import StepExecutor
from .lead_source import LeadSourceAdapter
from .event_publisher import EventPublisher
from .campaign_lease import CampaignLease

__all__ = [
    "CampaignRepository",
    "StepExecutor",
    "LeadSourceAdapter",
    "EventPublisher",
    "CampaignLease",
]
