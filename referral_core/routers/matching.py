from typing import List

from fastapi import APIRouter, Depends, Query

from referral_core.middleware.rate_limit import get_container, rate_limited
from referral_core.models.scoring import (
    BatchScoreRequest, BatchScoreResult, MatchTier, ScoreBreakdown, ScoreRequest, ScoringPreset,
)
from referral_core.services.container import ServiceContainer
from referral_core.services.scoring import batch_score, score, top_members
from referral_core.utils.exceptions import ValidationError
from referral_core.utils.logging_config import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post("/score", response_model=ScoreBreakdown, dependencies=[Depends(rate_limited("read"))])
async def score_match(req: ScoreRequest, container: ServiceContainer = Depends(get_container)):
    """Score one profile against one job (inline snapshots or record-store ids)"""
    job = req.job
    if job is None:
        if not req.job_id:
            raise ValidationError("Either job or job_id is required", field="job_id")
        job = await container.store.get_job(req.job_id)
    profile = req.profile
    if profile is None and req.profile_id:
        profile = await container.store.get_profile(req.profile_id)
    return score(profile, job, req.preset)


@router.get("/score/{profile_id}/{job_id}", response_model=ScoreBreakdown, dependencies=[Depends(rate_limited("read"))])
async def score_by_ids(
    profile_id: str,
    job_id: str,
    preset: ScoringPreset = Query(ScoringPreset.NETWORK_FIT),
    container: ServiceContainer = Depends(get_container),
):
    profile = await container.store.get_profile(profile_id)
    job = await container.store.get_job(job_id)
    return score(profile, job, preset)


@router.post("/batch-score", response_model=BatchScoreResult, dependencies=[Depends(rate_limited("batch"))])
async def batch_score_members(req: BatchScoreRequest, container: ServiceContainer = Depends(get_container)):
    """Score many members for one job, best first"""
    job = req.job
    if job is None:
        if not req.job_id:
            raise ValidationError("Either job or job_id is required", field="job_id")
        job = await container.store.get_job(req.job_id)
    profiles = list(req.profiles)
    if req.profile_ids:
        profiles += await container.store.find_profiles(ids=req.profile_ids, limit=len(req.profile_ids))
    result = batch_score(job, profiles, req.preset, req.min_score, req.include_reasons)
    logger.info(f"Batch scored {result.total} members for job {job.id}, {result.filtered} filtered")
    return result


@router.get("/top-members/{job_id}", response_model=List[dict], dependencies=[Depends(rate_limited("read"))])
async def top_members_for_job(
    job_id: str,
    limit: int = Query(10, ge=1, le=100),
    min_tier: MatchTier = Query(MatchTier.MEDIUM),
    container: ServiceContainer = Depends(get_container),
):
    job = await container.store.get_job(job_id)
    profiles = await container.store.find_profiles(limit=1000)
    return top_members(job, profiles, limit=limit, min_tier=min_tier)
