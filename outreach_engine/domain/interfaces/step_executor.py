"""
Step Executor Interface
Abstract port that performs one channel action for one lead
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from outreach_engine.domain.models.campaign_lead import CampaignLead
from outreach_engine.domain.models.results import StepResult


class StepExecutor(ABC):
    """Abstract base class for channel step executors"""

    @abstractmethod
    async def execute(
        self,
        step_type: str,
        lead: CampaignLead,
        config: Dict[str, Any],
        user_id: Optional[str],
        tenant_id: str
    ) -> StepResult:
        """
        Perform a channel action (send email, connect on LinkedIn, ...)

        Args:
            step_type: Step type being executed
            lead: Target lead
            config: Step configuration (templates, account ids, ...)
            user_id: Campaign owner, used to pick connected accounts
            tenant_id: Tenant of the campaign

        Returns:
            StepResult with success flag and error message
        """
        pass
