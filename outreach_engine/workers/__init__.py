"""
Workers Package
Background worker that drives campaign execution
"""
from outreach_engine.workers.campaign_scheduler import CampaignScheduler, TickSummary

__all__ = [
    "CampaignScheduler",
    "TickSummary",
]
