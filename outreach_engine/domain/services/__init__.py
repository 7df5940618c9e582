"""Domain services"""

from .step_validator import StepValidator, validate_step_config
from .step_registry import StepKind, StepHandler, StepRegistry
from .activity_recorder import ActivityRecorder
from .execution_state_machine import ExecutionStateMachine, StateDecision
from .lead_generation_engine import LeadGenerationEngine
from .workflow_processor import WorkflowProcessor
from .campaign_processor import CampaignProcessor

__all__ = [
    "StepValidator",
    "validate_step_config",
    "StepKind",
    "StepHandler",
    "StepRegistry",
    "ActivityRecorder",
    "ExecutionStateMachine",
    "StateDecision",
    "LeadGenerationEngine",
    "WorkflowProcessor",
    "CampaignProcessor",
]
