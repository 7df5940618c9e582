"""
Result Models
Value objects returned across the engine's seams
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class StepValidationResult:
    """Result of validating a step configuration."""
    valid: bool
    error: Optional[str] = None
    missing_fields: List[str] = field(default_factory=list)


@dataclass
class StepResult:
    """Result returned by a step executor."""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Optional[Dict[str, Any]] = None) -> "StepResult":
        return cls(success=True, data=data)

    @classmethod
    def failed(cls, error: str) -> "StepResult":
        return cls(success=False, error=error)


@dataclass
class WorkflowOutcome:
    """What one advance() call did for a lead."""
    lead_id: str
    steps_executed: int = 0
    lead_status: Optional[str] = None  # New status when it changed
    waiting: bool = False  # Delay gate still closed
    reason: Optional[str] = None


@dataclass
class RunResult:
    """Result of one campaign run."""
    success: bool
    campaign_id: str
    skipped: bool = False
    reason: Optional[str] = None
    lead_count: int = 0

    @classmethod
    def skip(cls, campaign_id: str, reason: str) -> "RunResult":
        return cls(success=False, skipped=True, reason=reason, campaign_id=campaign_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "skipped": self.skipped,
            "reason": self.reason,
            "campaign_id": self.campaign_id,
            "lead_count": self.lead_count,
        }
