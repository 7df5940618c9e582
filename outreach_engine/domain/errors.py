"""
Engine Errors
Error taxonomy shared by the campaign execution engine
"""
from typing import List, Optional


class OutreachEngineError(Exception):
    """Base class for all engine errors."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ConfigurationError(OutreachEngineError):
    """
    Raised when a step or campaign is misconfigured.

    Never retried automatically: the user has to fix the configuration.
    """
    def __init__(self, message: str, missing_fields: Optional[List[str]] = None):
        self.missing_fields = missing_fields or []
        super().__init__(message)


class TransientInfraError(OutreachEngineError):
    """Raised when a lead search or a storage call fails."""
    pass


class AccessDeniedError(OutreachEngineError):
    """Raised when the tenant's plan does not include lead generation."""
    def __init__(self, message: str = "Lead generation feature access required. Please upgrade your plan."):
        super().__init__(message)


class NoCandidatesError(OutreachEngineError):
    """Raised when the lead source returned nothing usable."""
    def __init__(self, message: str = "No leads found"):
        super().__init__(message)


class DuplicateLeadError(OutreachEngineError):
    """Raised by storage when a lead already exists for the tenant."""
    def __init__(self, source_id: str):
        self.source_id = source_id
        super().__init__(f"Lead {source_id} already exists")


class UnknownStepTypeError(OutreachEngineError):
    """Raised for unregistered step types when strict step types are enabled."""
    def __init__(self, step_type: str):
        self.step_type = step_type
        super().__init__(f"Unknown step type: {step_type}")


class LeaseUnavailableError(OutreachEngineError):
    """Raised when the lease backend cannot be reached."""
    pass


class LeaseLostError(OutreachEngineError):
    """Raised when a run's lease expired or passed to another holder mid-run."""
    def __init__(self, campaign_id: str):
        self.campaign_id = campaign_id
        super().__init__(f"Lease for campaign {campaign_id} lost during run")
