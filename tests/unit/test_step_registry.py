"""
Unit Tests for Step Registry
"""
import pytest

from outreach_engine.domain.errors import UnknownStepTypeError
from outreach_engine.domain.models.campaign_step import StepType
from outreach_engine.domain.services.step_registry import StepKind, StepRegistry


class TestStepRegistry:
    """Tests for step type resolution"""

    def test_every_step_type_is_registered(self):
        registry = StepRegistry()

        for step_type in StepType:
            assert registry.is_registered(step_type.value)

    def test_channel_steps_resolve_to_channel_kind(self):
        handler = StepRegistry().resolve("email_send")

        assert handler.kind == StepKind.CHANNEL
        assert handler.channel == "email"
        assert handler.is_unknown is False

    def test_flow_control_kinds(self):
        registry = StepRegistry()

        assert registry.resolve("delay").kind == StepKind.DELAY
        assert registry.resolve("condition").kind == StepKind.CONDITION
        assert registry.resolve("start").kind == StepKind.MARKER
        assert registry.resolve("end").kind == StepKind.MARKER
        assert registry.resolve("lead_generation").kind == StepKind.LEAD_GENERATION

    def test_unknown_type_is_noop_by_default(self):
        handler = StepRegistry().resolve("fax_send")

        assert handler.kind == StepKind.UNKNOWN
        assert handler.is_unknown is True
        assert handler.step_type == "fax_send"

    def test_unknown_type_raises_in_strict_mode(self):
        registry = StepRegistry(strict=True)

        with pytest.raises(UnknownStepTypeError) as exc_info:
            registry.resolve("fax_send")

        assert exc_info.value.step_type == "fax_send"

    def test_register_custom_type(self):
        registry = StepRegistry(strict=True)
        registry.register("sms_send", channel="sms")

        handler = registry.resolve("sms_send")
        assert handler.kind == StepKind.CHANNEL
        assert handler.channel == "sms"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
