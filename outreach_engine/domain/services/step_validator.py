"""
Step Validator
Checks that a campaign step carries every field its type requires
"""
import math
from datetime import timedelta
from typing import Any, Dict, List, Optional

from outreach_engine.domain.models.campaign_step import StepType
from outreach_engine.domain.models.lead_generation import SearchFilters
from outreach_engine.domain.models.results import StepValidationResult


# Required config fields per step type
REQUIRED_FIELDS: Dict[str, List[str]] = {
    # Connection note is optional: LinkedIn caps notes at a few per month
    StepType.LINKEDIN_CONNECT.value: [],
    StepType.LINKEDIN_MESSAGE.value: ["message"],
    StepType.EMAIL_SEND.value: ["subject", "body"],
    StepType.EMAIL_FOLLOWUP.value: ["subject", "body"],
    StepType.WHATSAPP_SEND.value: ["whatsappMessage"],
    StepType.VOICE_AGENT_CALL.value: ["voiceAgentId", "voiceContext"],
    StepType.INSTAGRAM_DM.value: ["instagramUsername", "instagramDmMessage"],
    StepType.LINKEDIN_SCRAPE_PROFILE.value: ["linkedinScrapeFields"],
    StepType.LINKEDIN_COMPANY_SEARCH.value: ["linkedinCompanyName"],
    StepType.LINKEDIN_EMPLOYEE_LIST.value: ["linkedinCompanyUrl"],
    StepType.LINKEDIN_AUTOPOST.value: ["linkedinPostContent"],
    StepType.LINKEDIN_COMMENT_REPLY.value: ["linkedinCommentText"],
    StepType.INSTAGRAM_FOLLOW.value: ["instagramUsername"],
    StepType.INSTAGRAM_LIKE.value: ["instagramPostUrl"],
    StepType.INSTAGRAM_AUTOPOST.value: ["instagramPostCaption", "instagramPostImageUrl"],
    StepType.INSTAGRAM_COMMENT_REPLY.value: ["instagramCommentText"],
    StepType.INSTAGRAM_STORY_VIEW.value: ["instagramUsername"],
    StepType.LINKEDIN_VISIT.value: [],
    StepType.LINKEDIN_FOLLOW.value: [],
    StepType.START.value: [],
    StepType.END.value: [],
}

# Alternative keys accepted for a required field
FIELD_ALIASES: Dict[str, List[str]] = {
    "voiceContext": ["added_context"],
}


def get_required_fields(step_type: str) -> List[str]:
    return list(REQUIRED_FIELDS.get(step_type, []))


def is_field_valid(value: Any) -> bool:
    """A field is set unless it is None, a blank string, an empty list or NaN."""
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    if isinstance(value, (list, tuple)) and len(value) == 0:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    return True


def _to_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def parse_delay(config: Dict[str, Any]) -> timedelta:
    """Delay configured on a step (camelCase or snake_case keys)."""
    days = _to_int(config.get("delayDays") or config.get("delay_days") or 0)
    hours = _to_int(config.get("delayHours") or config.get("delay_hours") or 0)
    minutes = _to_int(config.get("delayMinutes") or config.get("delay_minutes") or 0)
    return timedelta(days=max(days, 0), hours=max(hours, 0), minutes=max(minutes, 0))


def get_condition(config: Dict[str, Any]) -> Optional[str]:
    """Condition id of a condition step ('condition' or 'conditionType')."""
    for key in ("condition", "conditionType"):
        if is_field_valid(config.get(key)):
            return str(config[key])
    return None


def channel_for_step_type(step_type: str) -> str:
    """Activity channel a step type reports under."""
    if step_type.startswith("linkedin_"):
        return "linkedin"
    if step_type.startswith("email_"):
        return "email"
    if step_type.startswith("whatsapp_"):
        return "whatsapp"
    if step_type.startswith("instagram_"):
        return "instagram"
    if step_type == StepType.VOICE_AGENT_CALL.value:
        return "voice"
    if step_type == StepType.LEAD_GENERATION.value:
        return "campaign"
    return "other"


class StepValidator:
    """
    Validates step configurations before execution.

    Pure: never touches storage. A failed validation is a configuration
    error the user has to fix, so callers must not retry it.
    """

    def validate(self, step_type: str, config: Optional[Dict[str, Any]]) -> StepValidationResult:
        config = config or {}

        if step_type == StepType.CONDITION.value:
            return self._validate_condition(config)
        if step_type == StepType.DELAY.value:
            return self._validate_delay(config)
        if step_type == StepType.LEAD_GENERATION.value:
            return self._validate_lead_generation(config)

        missing: List[str] = []
        for field_name in get_required_fields(step_type):
            candidates = [field_name] + FIELD_ALIASES.get(field_name, [])
            if not any(is_field_valid(config.get(key)) for key in candidates):
                missing.append(field_name)

        if missing:
            return StepValidationResult(
                valid=False,
                error=(
                    f"Missing required fields: {', '.join(missing)}. "
                    f"Please configure all required fields in step settings."
                ),
                missing_fields=missing
            )

        return StepValidationResult(valid=True)

    def _validate_condition(self, config: Dict[str, Any]) -> StepValidationResult:
        if get_condition(config) is None:
            return StepValidationResult(
                valid=False,
                error="Condition step requires a condition to be specified (condition or conditionType field)",
                missing_fields=["condition"]
            )
        return StepValidationResult(valid=True)

    def _validate_delay(self, config: Dict[str, Any]) -> StepValidationResult:
        if parse_delay(config) <= timedelta(0):
            return StepValidationResult(
                valid=False,
                error="Delay step requires at least one time unit (days, hours, or minutes) to be greater than 0",
                missing_fields=["delayDays", "delayHours"]
            )
        return StepValidationResult(valid=True)

    def _validate_lead_generation(self, config: Dict[str, Any]) -> StepValidationResult:
        has_filters = SearchFilters.from_configs(config).has_criteria()
        has_limit = (
            is_field_valid(config.get("leadGenerationLimit"))
            or is_field_valid(config.get("leads_per_day"))
        )
        if not has_filters and not has_limit:
            return StepValidationResult(
                valid=False,
                error=(
                    "Lead generation step requires at least one filter criteria "
                    "(roles, industries, or location) in leadGenerationFilters, "
                    "or a leadGenerationLimit to be configured"
                ),
                missing_fields=["leadGenerationFilters", "leadGenerationLimit"]
            )
        return StepValidationResult(valid=True)


_default_validator = StepValidator()


def validate_step_config(step_type: str, config: Optional[Dict[str, Any]]) -> StepValidationResult:
    """Validate with the shared stateless validator."""
    return _default_validator.validate(step_type, config)
