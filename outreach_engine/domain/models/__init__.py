"""Domain models"""

from .campaign import (
    CampaignStatus,
    ExecutionState,
    CampaignType,
    CampaignConfig,
    Campaign,
)

from .campaign_step import (
    StepType,
    CampaignStep,
    NON_WORKFLOW_STEP_TYPES,
)

from .campaign_lead import (
    LeadStatus,
    ActivityStatus,
    CampaignLead,
    CampaignLeadActivity,
    SUCCESS_STATUSES,
    ATTEMPTED_STATUSES,
    ELIGIBLE_LEAD_STATUSES,
)

from .lead_generation import (
    SearchFilters,
    LeadCandidate,
    LeadSearchResult,
    LeadGenCursor,
    LeadGenerationResult,
)

from .results import (
    StepValidationResult,
    StepResult,
    WorkflowOutcome,
    RunResult,
)

__all__ = [
    # Campaigns
    "CampaignStatus",
    "ExecutionState",
    "CampaignType",
    "CampaignConfig",
    "Campaign",
    # Steps
    "StepType",
    "CampaignStep",
    "NON_WORKFLOW_STEP_TYPES",
    # Leads
    "LeadStatus",
    "ActivityStatus",
    "CampaignLead",
    "CampaignLeadActivity",
    "SUCCESS_STATUSES",
    "ATTEMPTED_STATUSES",
    "ELIGIBLE_LEAD_STATUSES",
    # Lead generation
    "SearchFilters",
    "LeadCandidate",
    "LeadSearchResult",
    "LeadGenCursor",
    "LeadGenerationResult",
    # Results
    "StepValidationResult",
    "StepResult",
    "WorkflowOutcome",
    "RunResult",
]
