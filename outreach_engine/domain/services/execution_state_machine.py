"""
Execution State Machine
Decides whether a running campaign proceeds on this tick
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Optional

import pytz

from outreach_engine.core.clock import ensure_utc, get_timezone
from outreach_engine.core.config import EngineConfig
from outreach_engine.domain.models.campaign import Campaign, ExecutionState


logger = logging.getLogger(__name__)


@dataclass
class StateDecision:
    """Outcome of evaluating a campaign's execution state."""
    proceed: bool
    state: str
    reason: Optional[str] = None
    clear_next_run_at: bool = False
    # Whether the decision must be written back (state change or refreshed reason)
    persist: bool = False


class ExecutionStateMachine:
    """
    Pacing rules of a running campaign.

    States:
    - active: proceed
    - waiting_for_leads: proceed once the retry interval since the last lead
      check has elapsed and next_run_at has passed; otherwise skip
    - sleeping_until_next_day: proceed once next_run_at has passed
    - error: always skip until reset externally

    Pure: callers persist the decision.
    """

    def __init__(self, config: EngineConfig):
        self.config = config
        self.timezone = get_timezone(config.timezone)

    def evaluate(self, campaign: Campaign, now: datetime) -> StateDecision:
        now = ensure_utc(now)
        state = campaign.execution_state

        if state == ExecutionState.WAITING_FOR_LEADS.value:
            return self._evaluate_waiting(campaign, now)

        if state == ExecutionState.SLEEPING_UNTIL_NEXT_DAY.value:
            return self._evaluate_sleeping(campaign, now)

        if state == ExecutionState.ERROR.value:
            return StateDecision(
                proceed=False,
                state=ExecutionState.ERROR.value,
                reason="Campaign in error state"
            )

        return StateDecision(proceed=True, state=ExecutionState.ACTIVE.value)

    def _evaluate_waiting(self, campaign: Campaign, now: datetime) -> StateDecision:
        retry_interval = timedelta(hours=self.config.lead_retry_interval_hours)

        if campaign.last_lead_check_at:
            elapsed = now - campaign.last_lead_check_at
            if elapsed < retry_interval:
                hours = math.ceil((retry_interval - elapsed).total_seconds() / 3600)
                return StateDecision(
                    proceed=False,
                    state=ExecutionState.WAITING_FOR_LEADS.value,
                    reason=f"Campaign skipped: waiting for leads (retry in {hours}h)",
                    persist=True
                )

        if campaign.next_run_at and now < campaign.next_run_at:
            minutes = math.ceil((campaign.next_run_at - now).total_seconds() / 60)
            return StateDecision(
                proceed=False,
                state=ExecutionState.WAITING_FOR_LEADS.value,
                reason=f"Campaign skipped: waiting for leads (scheduled retry in {minutes} minutes)",
                persist=True
            )

        return StateDecision(
            proceed=True,
            state=ExecutionState.ACTIVE.value,
            reason="Retry time reached, checking for leads again",
            persist=True
        )

    def _evaluate_sleeping(self, campaign: Campaign, now: datetime) -> StateDecision:
        if campaign.next_run_at and now < campaign.next_run_at:
            hours = math.ceil((campaign.next_run_at - now).total_seconds() / 3600)
            return StateDecision(
                proceed=False,
                state=ExecutionState.SLEEPING_UNTIL_NEXT_DAY.value,
                reason=f"Campaign sleeping until next day (resumes in {hours}h)",
                persist=True
            )

        return StateDecision(
            proceed=True,
            state=ExecutionState.ACTIVE.value,
            reason="Next day reached, resuming execution",
            clear_next_run_at=True,
            persist=True
        )

    def today(self, now: datetime) -> str:
        """Calendar date (ISO) of `now` in the engine timezone."""
        return ensure_utc(now).astimezone(self.timezone).date().isoformat()

    def next_midnight(self, now: datetime) -> datetime:
        """Start of the next calendar day in the engine timezone, as UTC."""
        local = ensure_utc(now).astimezone(self.timezone)
        tomorrow = local.date() + timedelta(days=1)
        return self._localize(datetime.combine(tomorrow, time(0, 0)))

    def next_lead_retry_at(self, now: datetime) -> datetime:
        """
        When to look for leads again after an empty search: the earlier of
        now + retry interval and tomorrow at the daily retry time.
        """
        now = ensure_utc(now)
        interval_retry = now + timedelta(hours=self.config.lead_retry_interval_hours)

        local = now.astimezone(self.timezone)
        tomorrow = local.date() + timedelta(days=1)
        daily_retry = self._localize(datetime.combine(
            tomorrow,
            time(self.config.lead_daily_retry_hour, self.config.lead_daily_retry_minute)
        ))

        return min(interval_retry, daily_retry)

    def access_denied_retry_at(self, now: datetime) -> datetime:
        """Fixed retry after a plan/feature denial."""
        return ensure_utc(now) + timedelta(hours=self.config.lead_retry_interval_hours)

    def _localize(self, naive_local: datetime) -> datetime:
        return self.timezone.localize(naive_local).astimezone(pytz.UTC)
