"""
Nudge assembly: network-fit score + optional AI copy -> one recommendation, or none.
"""
from typing import Optional

from referral_core.models.ai import AssembledNudge, NudgeContext, NudgeResponse, SmartNudge
from referral_core.models.domain import JobPosting, Profile
from referral_core.models.scoring import MatchTier, ScoreBreakdown, ScoringPreset
from referral_core.services.artifacts import ArtifactService
from referral_core.services.scoring import company_match, overlap, score
from referral_core.utils.logging_config import get_logger

logger = get_logger(__name__)

NUDGE_CTA = "Refer Someone"
SKILL_NUDGE_MIN = 50
DOMAIN_NUDGE_MIN = 50


def smart_nudge(profile: Optional[Profile], job: JobPosting, breakdown: ScoreBreakdown) -> Optional[SmartNudge]:
    """Static nudge: skill, then domain, then company, then experience. None for LOW tier."""
    if profile is None or breakdown.tier == MatchTier.LOW:
        return None
    sub = breakdown.breakdown

    if sub.skillMatch >= SKILL_NUDGE_MIN:
        _, skills = overlap(profile.skills, job.skills)
        if skills:
            return SmartNudge(message=f"You might know {', '.join(skills[:2])} engineers from your network", reason="skill_match")

    if sub.domainMatch >= DOMAIN_NUDGE_MIN:
        _, domains = overlap(profile.domains, job.domains)
        if domains:
            return SmartNudge(message=f"Your {domains[0]} experience could help find great candidates", reason="domain_match")

    if company_match(profile, job) == 100:
        return SmartNudge(message=f"You worked at {job.company} - perfect for referrals!", reason="company_match")

    if sub.experienceMatch == 100:
        return SmartNudge(message=f"This {job.experience_level.value} role matches your network level", reason="experience_match")

    return None


class NudgeService:

    def __init__(self, artifacts: ArtifactService):
        self.artifacts = artifacts

    async def generate_nudge(self, profile: Optional[Profile], job: JobPosting,
                             context: Optional[NudgeContext] = None) -> NudgeResponse:
        """
        Absent nudge is a normal outcome: LOW tier, no profile, or neither the
        provider nor the static rules produced anything worth showing.
        """
        context = context or NudgeContext()
        breakdown = score(profile, job, ScoringPreset.NETWORK_FIT)
        if profile is None or breakdown.tier == MatchTier.LOW:
            logger.debug(f"Nudge suppressed for job {job.id}: tier {breakdown.tier.value}")
            return NudgeResponse(nudge=None, source="static")

        smart = smart_nudge(profile, job, breakdown)
        source = "static"
        headline = f"Know someone for {job.title or 'this role'}?"
        body = smart.message if smart else None

        if context.use_ai:
            inputs = {
                "job_id": job.id,
                "profile_id": profile.id,
                "member_name": context.member_name or profile.name,
                "job_title": job.title or "this role",
                "company": job.company,
                "score": breakdown.overall,
                "tier": breakdown.tier.value,
                "reasons": breakdown.top_inferences,
                "smart_message": body,
            }
            result = await self.artifacts.generate_ai_artifact("nudge", inputs, scope=context.scope)
            if result.source == "ai" or smart is not None:
                source = result.source
                headline = result.payload.get("headline") or headline
                body = result.payload.get("body") or body

        if not body:
            return NudgeResponse(nudge=None, source="static")

        top = breakdown.top_reasons(1)
        nudge = AssembledNudge(
            headline=headline,
            body=body,
            cta=NUDGE_CTA,
            reason=smart.reason if smart else (top[0].factor.value if top else None),
            match_score=breakdown.overall,
            match_tier=breakdown.tier,
            fit_level=breakdown.fit_level,
            inferences=breakdown.top_inferences,
        )
        return NudgeResponse(nudge=nudge, source=source)
