"""
AI Budget Guard
Tracks spend per billing scope against a calendar-day cap and an hourly call cap.
"""
import asyncio
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Optional, Tuple
from zoneinfo import ZoneInfo

from referral_core.models.ai import BudgetStatus, UsageSummary
from referral_core.models.settings import BudgetSettings
from referral_core.utils.clock import SystemClock
from referral_core.utils.exceptions import ValidationError
from referral_core.utils.logging_config import get_logger

logger = get_logger(__name__)

GLOBAL_SCOPE = "global"


@dataclass
class BudgetState:
    window_start: date
    daily_cap: float
    spent_to_date: float = 0.0
    tokens_to_date: int = 0
    call_count: int = 0
    hour_window: Tuple[date, int] = None
    hourly_calls: int = 0


class BudgetGuard:
    """
    One BudgetState per scope. All reads and writes go through a single lock so
    rollover, comparison and accumulation are atomic with respect to each other.
    """

    def __init__(self, settings: BudgetSettings = None, clock=None):
        self.settings = settings or BudgetSettings()
        self.clock = clock or SystemClock()
        self.tz = ZoneInfo(self.settings.timezone)
        self._states: Dict[str, BudgetState] = {}
        self._lock = asyncio.Lock()

    def _local_now(self) -> datetime:
        return self.clock.now().astimezone(self.tz)

    def _state(self, scope: str) -> BudgetState:
        """Fetch the scope's state, rolling the day/hour windows first. Call with the lock held."""
        now = self._local_now()
        today = now.date()
        hour = (today, now.hour)
        state = self._states.get(scope)
        if state is None:
            state = BudgetState(window_start=today, daily_cap=self.settings.daily_budget, hour_window=hour)
            self._states[scope] = state
        if state.window_start != today:
            logger.info(f"Budget window rolled over for scope {scope}: spent {state.spent_to_date:.6f} on {state.window_start}")
            state.window_start = today
            state.spent_to_date = 0.0
            state.tokens_to_date = 0
            state.call_count = 0
        if state.hour_window != hour:
            state.hour_window = hour
            state.hourly_calls = 0
        return state

    def _status(self, scope: str, state: BudgetState, estimated_cost: float) -> BudgetStatus:
        usable = state.daily_cap * self.settings.fallback_threshold
        hourly_remaining = max(0, self.settings.hourly_call_limit - state.hourly_calls)
        within = (
            state.spent_to_date < usable
            and state.spent_to_date + estimated_cost <= usable
            and hourly_remaining > 0
        )
        return BudgetStatus(
            within_budget=within,
            daily_spend=state.spent_to_date,
            remaining_budget=max(0.0, state.daily_cap - state.spent_to_date),
            hourly_calls_remaining=hourly_remaining,
            daily_cap=state.daily_cap,
            scope=scope,
        )

    async def check_budget(self, scope: Optional[str] = None, estimated_cost: float = 0.0) -> BudgetStatus:
        """Advisory pre-check: may a paid call costing about `estimated_cost` proceed?"""
        scope = scope or GLOBAL_SCOPE
        async with self._lock:
            return self._status(scope, self._state(scope), max(0.0, estimated_cost))

    async def record_spend(self, scope: Optional[str], amount: float, tokens: int = 0) -> BudgetStatus:
        """Debit a completed paid call. Never call for failed or fallback calls."""
        if amount < 0:
            raise ValidationError("Spend amount must be non-negative", field="amount", value=amount)
        scope = scope or GLOBAL_SCOPE
        async with self._lock:
            state = self._state(scope)
            state.spent_to_date += amount
            state.tokens_to_date += tokens
            state.call_count += 1
            state.hourly_calls += 1
            status = self._status(scope, state, 0.0)
        logger.info(f"AI spend recorded for scope {scope}: {amount:.6f} (total {status.daily_spend:.6f})")
        return status

    def estimate_cost(self, model: str, input_tokens: int, output_tokens: int) -> float:
        cost = self.settings.model_costs.get(model, self.settings.default_model_cost)
        return (input_tokens / 1000) * cost.input_cost_per_1k + (output_tokens / 1000) * cost.output_cost_per_1k

    async def record_usage(self, scope: Optional[str], operation: str, model: str,
                           input_tokens: int, output_tokens: int) -> float:
        cost = self.estimate_cost(model, input_tokens, output_tokens)
        await self.record_spend(scope, cost, tokens=input_tokens + output_tokens)
        logger.debug(f"AI usage: {operation} - {input_tokens + output_tokens} tokens, {cost:.6f}")
        return cost

    async def should_use_fallback(self, scope: Optional[str] = None, estimated_cost: float = 0.0) -> bool:
        status = await self.check_budget(scope, estimated_cost)
        return not status.within_budget

    async def usage_summary(self, scope: Optional[str] = None) -> UsageSummary:
        scope = scope or GLOBAL_SCOPE
        async with self._lock:
            state = self._state(scope)
            return UsageSummary(
                scope=scope,
                date=state.window_start.isoformat(),
                total_tokens=state.tokens_to_date,
                total_cost=state.spent_to_date,
                call_count=state.call_count,
            )

    async def reset(self, scope: Optional[str] = None) -> None:
        """Drop tracked state for one scope, or for all scopes."""
        async with self._lock:
            if scope is None:
                self._states.clear()
            else:
                self._states.pop(scope, None)
