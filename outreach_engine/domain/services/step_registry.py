"""
Step Registry
Maps step types to how the workflow treats them
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from outreach_engine.domain.errors import UnknownStepTypeError
from outreach_engine.domain.models.campaign_step import StepType
from outreach_engine.domain.services.step_validator import channel_for_step_type


logger = logging.getLogger(__name__)


class StepKind(str, Enum):
    """How the workflow processes a step"""
    LEAD_GENERATION = "lead_generation"  # Campaign-level, never per lead
    MARKER = "marker"                    # start/end, skipped
    DELAY = "delay"
    CONDITION = "condition"
    CHANNEL = "channel"                  # Dispatched to the step executor
    UNKNOWN = "unknown"                  # Logged and treated as a no-op


@dataclass(frozen=True)
class StepHandler:
    step_type: str
    kind: StepKind
    channel: str

    @property
    def is_unknown(self) -> bool:
        return self.kind == StepKind.UNKNOWN


_SPECIAL_KINDS = {
    StepType.LEAD_GENERATION.value: StepKind.LEAD_GENERATION,
    StepType.START.value: StepKind.MARKER,
    StepType.END.value: StepKind.MARKER,
    StepType.DELAY.value: StepKind.DELAY,
    StepType.CONDITION.value: StepKind.CONDITION,
}


class StepRegistry:
    """
    Registry of known step types, built once at startup.

    Every StepType is registered; channel step types go to the step
    executor. Extra channel types can be registered at runtime.
    """

    def __init__(self, strict: bool = False):
        self.strict = strict
        self._handlers: Dict[str, StepHandler] = {}
        for step_type in StepType:
            kind = _SPECIAL_KINDS.get(step_type.value, StepKind.CHANNEL)
            self.register(step_type.value, kind)

    def register(self, step_type: str, kind: StepKind = StepKind.CHANNEL, channel: Optional[str] = None) -> None:
        self._handlers[step_type] = StepHandler(
            step_type=step_type,
            kind=kind,
            channel=channel or channel_for_step_type(step_type),
        )

    def resolve(self, step_type: str) -> StepHandler:
        """
        Look up the handler for a step type.

        Raises:
            UnknownStepTypeError: Type not registered and strict mode is on
        """
        handler = self._handlers.get(step_type)
        if handler:
            return handler

        if self.strict:
            raise UnknownStepTypeError(step_type)

        logger.warning(f"Unknown step type '{step_type}', treating as no-op")
        return StepHandler(
            step_type=step_type,
            kind=StepKind.UNKNOWN,
            channel=channel_for_step_type(step_type),
        )

    def is_registered(self, step_type: str) -> bool:
        return step_type in self._handlers
