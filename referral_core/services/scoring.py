import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError

from referral_core.models.domain import JobPosting, Profile
from referral_core.models.scoring import (
    BatchScoreEntry, BatchScoreResult, Factor, MatchTier, ReasonRecord,
    ScoreBreakdown, ScoringPreset, SubScores,
)
from referral_core.models.settings import WeightPreset
from referral_core.utils.exceptions import ConfigurationError

HIGH_THRESHOLD = 70
MEDIUM_THRESHOLD = 40
REMOTE_LOCATION_SCORE = 80

# Factor order inside a preset is the final tie-break for reasons.
RAW_PRESETS: Dict[ScoringPreset, Dict[Factor, float]] = {
    ScoringPreset.NETWORK_FIT: {
        Factor.SKILL: 0.5,
        Factor.DOMAIN: 0.3,
        Factor.EXPERIENCE: 0.2,
    },
    ScoringPreset.CANDIDATE_RANK: {
        Factor.SKILL: 0.4,
        Factor.COMPANY: 0.2,
        Factor.INDUSTRY: 0.15,
        Factor.EXPERIENCE: 0.15,
        Factor.LOCATION: 0.10,
    },
}


def validate_weight_presets(raw: Dict[ScoringPreset, Dict[Factor, float]] = None) -> Dict[ScoringPreset, WeightPreset]:
    """Validate every preset; an invalid weight set is a startup failure."""
    raw = RAW_PRESETS if raw is None else raw
    presets: Dict[ScoringPreset, WeightPreset] = {}
    for preset, weights in raw.items():
        try:
            presets[preset] = WeightPreset(preset=preset, weights=weights)
        except PydanticValidationError as e:
            raise ConfigurationError(
                f"Invalid weight preset {preset.value}", config_key="weights", config_value=weights, cause=e
            ) from e
    missing = set(ScoringPreset) - set(presets)
    if missing:
        raise ConfigurationError(f"Missing weight presets: {sorted(p.value for p in missing)}", config_key="weights")
    return presets


WEIGHT_PRESETS: Dict[ScoringPreset, WeightPreset] = validate_weight_presets()


def round_half_up(x: float) -> int:
    # weighted sums of exact halves can land a few ulps short (0.3 * 41.66... = 12.4999...)
    return int(math.floor(round(x, 9) + 0.5))


def _lower_set(items: Iterable[str]) -> set:
    return {s.strip().lower() for s in items if s and s.strip()}


def overlap(candidate: Sequence[str], required: Sequence[str]) -> Tuple[float, List[str]]:
    """Share of the required items the candidate has (0..100) and the matched items, in required order."""
    req = []
    seen = set()
    for r in required:
        key = r.strip().lower()
        if key and key not in seen:
            seen.add(key)
            req.append(r)
    if not req:
        return 0.0, []
    have = _lower_set(candidate)
    matches = [r for r in req if r.strip().lower() in have]
    return min(100.0, 100.0 * len(matches) / len(req)), matches


def experience_match(profile: Profile, job: JobPosting) -> float:
    # exact level match only, no credit for adjacent levels
    if profile.experience_level is None or job.experience_level is None:
        return 0.0
    return 100.0 if profile.experience_level == job.experience_level else 0.0


def company_match(profile: Profile, job: JobPosting) -> float:
    if not job.company:
        return 0.0
    return 100.0 if job.company.strip().lower() in _lower_set(profile.past_companies) else 0.0


def industry_match(profile: Profile, job: JobPosting) -> float:
    if not job.industry:
        return 0.0
    return 100.0 if job.industry.strip().lower() in _lower_set(profile.industries) else 0.0


def location_match(profile: Profile, job: JobPosting) -> float:
    score = 0.0
    member_loc = (profile.location or "").strip().lower()
    job_loc = (job.location or "").strip().lower()
    if member_loc and job_loc and (job_loc in member_loc or member_loc in job_loc):
        score = 100.0
    if job.is_remote:
        score = max(score, float(REMOTE_LOCATION_SCORE))
    return score


def get_tier(overall: float) -> MatchTier:
    """Lower bound inclusive, upper bound exclusive."""
    if overall >= HIGH_THRESHOLD:
        return MatchTier.HIGH
    if overall >= MEDIUM_THRESHOLD:
        return MatchTier.MEDIUM
    return MatchTier.LOW


def _explain(factor: Factor, profile: Profile, job: JobPosting, matches: Dict[Factor, List[str]]) -> str:
    if factor == Factor.SKILL:
        found = matches[Factor.SKILL]
        if found:
            return f"Matching skills: {', '.join(found[:5])}"
        return "No overlap with the required skills" if job.skills else "Job lists no required skills"
    if factor == Factor.DOMAIN:
        found = matches[Factor.DOMAIN]
        if found:
            return f"Domain expertise in {', '.join(found)}"
        return "No shared domains"
    if factor == Factor.EXPERIENCE:
        if experience_match(profile, job):
            return f"Your {job.experience_level.value} level matches this role"
        return "Experience level differs from the role"
    if factor == Factor.COMPANY:
        if company_match(profile, job):
            return f"You worked at {job.company}"
        return "No shared employer"
    if factor == Factor.INDUSTRY:
        if industry_match(profile, job):
            return f"Experience in the {job.industry} industry"
        return "Different industry background"
    if location_match(profile, job) >= 100:
        return f"Based near {job.location}"
    if job.is_remote:
        return "Remote-friendly role"
    return "Location does not match"


def _inference(reason: ReasonRecord, profile: Profile, job: JobPosting, matches: Dict[Factor, List[str]]) -> Optional[str]:
    if reason.subscore <= 0:
        return None
    if reason.factor == Factor.COMPANY:
        return f"You may know engineers from {job.company}"
    if reason.factor == Factor.SKILL and matches[Factor.SKILL]:
        return f"Your {matches[Factor.SKILL][0]} expertise is relevant"
    if reason.factor == Factor.DOMAIN and matches[Factor.DOMAIN]:
        return f"Your {matches[Factor.DOMAIN][0]} background fits this team"
    if reason.factor == Factor.EXPERIENCE:
        return f"You know what a good {job.experience_level.value} hire looks like"
    if reason.factor == Factor.INDUSTRY:
        return f"Your {job.industry} network is a good place to look"
    if reason.factor == Factor.LOCATION:
        return "Think of people near the role's location" if not job.is_remote else "Remote role, so your whole network counts"
    return None


def score(profile: Optional[Profile], job: JobPosting, preset: ScoringPreset = ScoringPreset.NETWORK_FIT) -> ScoreBreakdown:
    """
    Deterministic, explainable compatibility score between a profile and a job.

    Never raises for missing data: absent inputs contribute 0. Reasons are sorted by
    weight * subscore descending, so the first entries are the strongest factors.
    """
    preset = ScoringPreset(preset)
    weights = WEIGHT_PRESETS[preset].weights
    profile = profile or Profile()

    skill, skill_matches = overlap(profile.skills, job.skills)
    domain, domain_matches = overlap(profile.domains, job.domains)
    raw: Dict[Factor, float] = {
        Factor.SKILL: skill,
        Factor.DOMAIN: domain,
        Factor.EXPERIENCE: experience_match(profile, job),
        Factor.COMPANY: company_match(profile, job),
        Factor.INDUSTRY: industry_match(profile, job),
        Factor.LOCATION: location_match(profile, job),
    }
    matches = {Factor.SKILL: skill_matches, Factor.DOMAIN: domain_matches}

    weighted = sum(weights[f] * raw[f] for f in weights)
    overall = max(0, min(100, round_half_up(weighted)))
    tier = get_tier(overall)

    order = {f: i for i, f in enumerate(weights)}
    reasons = [
        ReasonRecord(
            factor=f,
            weight=w,
            subscore=round_half_up(raw[f]),
            contribution=w * raw[f],
            explanation=_explain(f, profile, job, matches),
        )
        for f, w in weights.items()
    ]
    reasons.sort(key=lambda r: (-r.contribution, -r.weight, order[r.factor]))

    inferences = []
    for r in reasons:
        text = _inference(r, profile, job, matches)
        if text and text not in inferences:
            inferences.append(text)
    if profile.past_companies and len(inferences) < 3:
        hint = f"Think of colleagues from {profile.past_companies[0]} who might fit"
        if hint not in inferences:
            inferences.append(hint)

    return ScoreBreakdown(
        preset=preset,
        breakdown=SubScores(**{f.value: round_half_up(v) for f, v in raw.items()}),
        overall=overall,
        tier=tier,
        fit_level=tier.fit_level,
        reasons=reasons,
        top_inferences=inferences[:3],
    )


def compute_score(profile: Optional[Profile], job: JobPosting, preset: str = "network-fit") -> ScoreBreakdown:
    """Entry point used by handlers: preset given by name."""
    return score(profile, job, ScoringPreset(preset))


def batch_score(
    job: JobPosting,
    profiles: Sequence[Profile],
    preset: ScoringPreset = ScoringPreset.CANDIDATE_RANK,
    min_score: int = 0,
    include_reasons: bool = True,
) -> BatchScoreResult:
    """Score many members for one job, highest first. Ties keep input order."""
    entries: List[BatchScoreEntry] = []
    for profile in profiles:
        result = score(profile, job, preset)
        if result.overall < min_score:
            continue
        entries.append(BatchScoreEntry(
            member_id=profile.id,
            score=result.overall,
            tier=result.tier,
            reasons=list(result.reasons) if include_reasons else None,
        ))
    entries.sort(key=lambda e: -e.score)
    return BatchScoreResult(scores=entries, filtered=len(profiles) - len(entries), total=len(profiles))


def top_members(
    job: JobPosting,
    profiles: Sequence[Profile],
    limit: int = 10,
    min_tier: MatchTier = MatchTier.MEDIUM,
    preset: ScoringPreset = ScoringPreset.CANDIDATE_RANK,
) -> List[dict]:
    ranked = []
    for profile in profiles:
        result = score(profile, job, preset)
        if result.tier.rank >= min_tier.rank:
            ranked.append({
                "member_id": profile.id,
                "name": profile.name,
                "score": result.overall,
                "tier": result.tier,
                "top_reasons": result.top_inferences[:3],
            })
    ranked.sort(key=lambda r: -r["score"])
    return ranked[:limit]
