from typing import Optional

from fastapi import APIRouter, Depends, Query

from referral_core.middleware.rate_limit import get_container, rate_limited
from referral_core.models.ai import AIResult, ArtifactRequest, SimilarityRequest
from referral_core.models.domain import Profile
from referral_core.services.container import ServiceContainer
from referral_core.utils.exceptions import BudgetExceededError

router = APIRouter()


@router.get("/budget", dependencies=[Depends(rate_limited("read"))])
async def budget_status(scope: Optional[str] = Query(None), container: ServiceContainer = Depends(get_container)):
    """Current window spend, remaining budget and the day's usage"""
    status = await container.budget.check_budget(scope)
    usage = await container.budget.usage_summary(scope)
    return {"budget": status.model_dump(), "usage": usage.model_dump()}


@router.get("/cache/stats", dependencies=[Depends(rate_limited("read"))])
async def cache_stats(container: ServiceContainer = Depends(get_container)):
    return await container.cache.stats()


@router.post("/similarity", dependencies=[Depends(rate_limited("ai"))])
async def profile_similarity(req: SimilarityRequest, container: ServiceContainer = Depends(get_container)):
    """Cosine similarity of the combined profile embeddings"""
    similarity = await container.embeddings.similarity(Profile(**req.profile_a), Profile(**req.profile_b))
    return {"similarity": similarity}


@router.post("/{operation}", response_model=AIResult, dependencies=[Depends(rate_limited("ai"))])
async def generate_artifact(operation: str, req: ArtifactRequest, container: ServiceContainer = Depends(get_container)):
    """
    Generic AI artifact endpoint (job_summary, referral_message, contact_insights,
    job_parsing, nudge). Falls back to static output unless `strict_budget` is set,
    in which case an exhausted budget is reported as 429.
    """
    container.artifacts.operation(operation)
    if req.strict_budget:
        status = await container.budget.check_budget(req.scope, container.orchestrator.estimate_cost())
        if not status.within_budget:
            raise BudgetExceededError(
                daily_spend=status.daily_spend,
                remaining_budget=status.remaining_budget,
                scope=status.scope,
            )
    return await container.artifacts.generate_ai_artifact(operation, req.inputs, scope=req.scope)
