"""
AI Orchestrator
Runs one generation request through cache lookup, budget check, a deadline-bound
provider call and the deterministic fallback, as a small LangGraph state machine.
"""
import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TypedDict, Union

from langgraph.graph import END, StateGraph

from referral_core.helpers.fingerprint import fingerprint
from referral_core.models.ai import AICompletion, AIResult
from referral_core.models.settings import CacheSettings, LLMSettings
from referral_core.services.budget import BudgetGuard
from referral_core.services.cache import CacheStore
from referral_core.utils.exceptions import MalformedResponseError, ProviderRateLimitError, ProviderTimeoutError, retry_with_logging
from referral_core.utils.logging_config import PerformanceMonitor, get_logger, log_ai_call

logger = get_logger(__name__)

AICallFn = Callable[[], Awaitable[Union[AICompletion, Dict[str, Any]]]]
FallbackFn = Callable[[], Dict[str, Any]]
ValidateFn = Callable[[Dict[str, Any]], bool]


class GenerationState(TypedDict, total=False):
    operation: str
    scope: str
    estimated_cost: float
    ai_call: AICallFn
    fallback: FallbackFn
    validate: Optional[ValidateFn]
    within_budget: bool
    error: Optional[str]
    result: Optional[AIResult]


class AIOrchestrator:
    """
    generate() never raises for provider trouble: over budget, timeout, provider
    error and malformed output all end in the static fallback. Spend is recorded
    only for an accepted AI result.
    """

    def __init__(self, cache: CacheStore, budget: BudgetGuard, settings: LLMSettings = None,
                 cache_settings: CacheSettings = None):
        self.cache = cache
        self.budget = budget
        self.settings = settings or LLMSettings()
        self.cache_settings = cache_settings or cache.settings
        self.graph = self.build_graph()

    def build_graph(self):
        g = StateGraph(GenerationState)
        g.add_node("budget_check", self.node_budget_check)
        g.add_node("call_ai", self.node_call_ai)
        g.add_node("fallback", self.node_fallback)
        g.set_entry_point("budget_check")
        g.add_conditional_edges(
            "budget_check",
            lambda s: "call_ai" if s.get("within_budget") else "fallback",
            {"call_ai": "call_ai", "fallback": "fallback"},
        )
        g.add_conditional_edges(
            "call_ai",
            lambda s: "done" if s.get("result") is not None else "fallback",
            {"done": END, "fallback": "fallback"},
        )
        g.add_edge("fallback", END)
        return g.compile()

    def estimate_cost(self) -> float:
        return self.budget.estimate_cost(self.settings.model_name, self.settings.max_input_tokens,
                                         self.settings.max_output_tokens)

    async def node_budget_check(self, state: GenerationState):
        if not self.settings.enabled:
            return {"within_budget": False, "error": "AI disabled"}
        status = await self.budget.check_budget(state["scope"], state["estimated_cost"])
        if not status.within_budget:
            logger.info(
                f"Budget check failed for {state['operation']} in scope {state['scope']}: "
                f"spent {status.daily_spend:.6f} of {status.daily_cap}, "
                f"{status.hourly_calls_remaining} hourly calls left"
            )
            return {"within_budget": False, "error": "Budget exceeded"}
        return {"within_budget": True}

    async def node_call_ai(self, state: GenerationState):
        operation = state["operation"]
        ai_call = state["ai_call"]

        @retry_with_logging(
            max_attempts=self.settings.retries + 1,
            backoff_factor=self.settings.retry_backoff,
            exceptions=(ProviderRateLimitError,),
            logger=logger,
        )
        async def attempt():
            return await ai_call()

        start = time.perf_counter()
        try:
            # the deadline covers every retry; a late answer is dropped with the task
            with PerformanceMonitor(f"provider call {operation}", logger, threshold_ms=self.settings.timeout * 500):
                completion = await asyncio.wait_for(attempt(), timeout=self.settings.timeout)
            if not isinstance(completion, AICompletion):
                completion = AICompletion(payload=completion or {}, model=self.settings.model_name)
            validate = state.get("validate")
            if not isinstance(completion.payload, dict) or (validate is not None and not validate(completion.payload)):
                raise MalformedResponseError(f"Provider output for {operation} failed the shape check", operation=operation)
        except asyncio.TimeoutError:
            error = ProviderTimeoutError().message
            log_ai_call(logger, operation, False, (time.perf_counter() - start) * 1000, "ai", error)
            return {"error": error}
        except Exception as e:
            log_ai_call(logger, operation, False, (time.perf_counter() - start) * 1000, "ai", str(e))
            return {"error": str(e)}

        log_ai_call(logger, operation, True, (time.perf_counter() - start) * 1000, "ai")
        if completion.input_tokens or completion.output_tokens:
            await self.budget.record_usage(state["scope"], operation, completion.model,
                                           completion.input_tokens, completion.output_tokens)
        else:
            await self.budget.record_spend(state["scope"], state["estimated_cost"])
        return {"result": AIResult(operation=operation, payload=completion.payload, source="ai")}

    async def node_fallback(self, state: GenerationState):
        start = time.perf_counter()
        payload = state["fallback"]()
        log_ai_call(logger, state["operation"], True, (time.perf_counter() - start) * 1000, "static", state.get("error"))
        return {"result": AIResult(operation=state["operation"], payload=payload, source="static")}

    def _cacheable(self, result: AIResult) -> bool:
        return result.source == "ai" or self.cache_settings.cache_fallback_results

    async def generate(
        self,
        operation_name: str,
        fingerprint_inputs: Any,
        ai_call_fn: AICallFn,
        fallback_fn: FallbackFn,
        scope: Optional[str] = None,
        validate_fn: Optional[ValidateFn] = None,
        namespace: Optional[str] = None,
        estimated_cost: Optional[float] = None,
    ) -> AIResult:
        """
        Produce an AIResult for `operation_name`, memoised under `namespace`
        (defaults to the operation name) by the fingerprint of the inputs.

        `ai_call_fn` returns an AICompletion (token counts drive the recorded cost)
        or a bare payload dict (the estimated cost is recorded). `validate_fn` is the
        minimum-shape check an AI payload must pass to be accepted.
        """
        namespace = namespace or operation_name
        key = fingerprint(operation_name, fingerprint_inputs)
        initial: GenerationState = {
            "operation": operation_name,
            "scope": scope or "global",
            "estimated_cost": self.estimate_cost() if estimated_cost is None else estimated_cost,
            "ai_call": ai_call_fn,
            "fallback": fallback_fn,
            "validate": validate_fn,
            "error": None,
            "result": None,
        }

        async def compute() -> AIResult:
            final = await self.graph.ainvoke(initial)
            return final["result"]

        return await self.cache.get_or_compute(namespace, key, compute, cacheable=self._cacheable)
