"""HTTP connectors for channel execution and lead search"""

from .http_lead_source import HttpLeadSourceAdapter
from .http_step_executor import HttpStepExecutor

__all__ = [
    "HttpLeadSourceAdapter",
    "HttpStepExecutor",
]
