from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from referral_core.models.scoring import MatchTier
from referral_core.utils.clock import utcnow

Source = Literal["ai", "static"]


class AIResult(BaseModel):
    """Outcome of one generation request, tagged with where it came from"""
    model_config = ConfigDict(frozen=True)

    operation: str
    payload: Dict[str, Any]
    source: Source
    generated_at: datetime = Field(default_factory=utcnow)


class ProviderResponse(BaseModel):
    """Raw answer of the text-generation provider"""
    text: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0


class AICompletion(BaseModel):
    """Parsed provider output handed back to the orchestrator"""
    payload: Dict[str, Any]
    model: str
    input_tokens: int = 0
    output_tokens: int = 0


class BudgetStatus(BaseModel):
    within_budget: bool
    daily_spend: float
    remaining_budget: float
    hourly_calls_remaining: int
    daily_cap: float
    scope: str


class UsageSummary(BaseModel):
    scope: str
    date: str
    total_tokens: int
    total_cost: float
    call_count: int


class RateLimitResult(BaseModel):
    allowed: bool
    remaining: int
    reset_at: datetime
    limit: int
    limit_class: str
    client_key: str


class SmartNudge(BaseModel):
    """Deterministic nudge picked from the strongest qualifying factor"""
    message: str
    reason: Literal["skill_match", "domain_match", "company_match", "experience_match"]


class AssembledNudge(BaseModel):
    headline: str
    body: str
    cta: str = "Refer Someone"
    reason: Optional[str] = None
    match_score: int
    match_tier: MatchTier
    fit_level: str
    inferences: List[str] = Field(default_factory=list)


class NudgeResponse(BaseModel):
    nudge: Optional[AssembledNudge] = None
    source: Source = "static"


class NudgeContext(BaseModel):
    """Caller-supplied context for nudge generation"""
    scope: str = "global"
    member_name: Optional[str] = None
    use_ai: bool = True


class ArtifactRequest(BaseModel):
    inputs: Dict[str, Any] = Field(default_factory=dict)
    scope: str = "global"
    strict_budget: bool = False


class SimilarityRequest(BaseModel):
    profile_a: Dict[str, Any]
    profile_b: Dict[str, Any]


class ProfileEmbedding(BaseModel):
    skill_vector: List[float]
    experience_vector: List[float]
    domain_vector: List[float]
    combined_vector: List[float]
    model_version: str
    generated_at: datetime = Field(default_factory=utcnow)


class NudgeRequest(BaseModel):
    profile_id: str
    job_id: str
    scope: str = "global"
    use_ai: bool = True
