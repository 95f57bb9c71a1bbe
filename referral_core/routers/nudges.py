from fastapi import APIRouter, Depends

from referral_core.middleware.rate_limit import get_container, rate_limited
from referral_core.models.ai import NudgeContext, NudgeRequest, NudgeResponse
from referral_core.services.container import ServiceContainer

router = APIRouter()


@router.post("/personalized", response_model=NudgeResponse, dependencies=[Depends(rate_limited("ai"))])
async def personalized_nudge(req: NudgeRequest, container: ServiceContainer = Depends(get_container)):
    """Nudge for a member/job pair; `nudge` is null when there is nothing worth showing"""
    profile = await container.store.get_profile(req.profile_id)
    job = await container.store.get_job(req.job_id)
    context = NudgeContext(scope=req.scope, member_name=profile.name, use_ai=req.use_ai)
    return await container.nudges.generate_nudge(profile, job, context)
