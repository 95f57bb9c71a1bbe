from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from referral_core.models.domain import JobPosting, Profile


class ScoringPreset(str, Enum):
    """Named weight configurations for the two scoring use-cases"""
    NETWORK_FIT = "network-fit"
    CANDIDATE_RANK = "candidate-rank"


class Factor(str, Enum):
    SKILL = "skillMatch"
    DOMAIN = "domainMatch"
    EXPERIENCE = "experienceMatch"
    COMPANY = "companyMatch"
    INDUSTRY = "industryMatch"
    LOCATION = "locationMatch"


class MatchTier(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def fit_level(self) -> str:
        """Member-facing name of the tier (good / medium / low)"""
        return {"HIGH": "good", "MEDIUM": "medium", "LOW": "low"}[self.value]

    @property
    def rank(self) -> int:
        return {"LOW": 0, "MEDIUM": 1, "HIGH": 2}[self.value]


class SubScores(BaseModel):
    model_config = ConfigDict(frozen=True)

    skillMatch: int = 0
    domainMatch: int = 0
    experienceMatch: int = 0
    companyMatch: int = 0
    industryMatch: int = 0
    locationMatch: int = 0


class ReasonRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    factor: Factor
    weight: float
    subscore: int
    contribution: float
    explanation: str


class ScoreBreakdown(BaseModel):
    """Explainable output of one scoring run. Recomputed on demand, never persisted here."""
    model_config = ConfigDict(frozen=True)

    preset: ScoringPreset
    breakdown: SubScores
    overall: int
    tier: MatchTier
    fit_level: str
    reasons: List[ReasonRecord] = Field(default_factory=list)
    top_inferences: List[str] = Field(default_factory=list)

    def top_reasons(self, n: int = 3) -> List[ReasonRecord]:
        return self.reasons[:n]


class ScoreRequest(BaseModel):
    """Either inline snapshots or record-store ids"""
    profile: Optional[Profile] = None
    job: Optional[JobPosting] = None
    profile_id: Optional[str] = None
    job_id: Optional[str] = None
    preset: ScoringPreset = ScoringPreset.NETWORK_FIT


class BatchScoreRequest(BaseModel):
    job: Optional[JobPosting] = None
    job_id: Optional[str] = None
    profiles: List[Profile] = Field(default_factory=list)
    profile_ids: Optional[List[str]] = None
    preset: ScoringPreset = ScoringPreset.CANDIDATE_RANK
    min_score: int = Field(default=0, ge=0, le=100)
    include_reasons: bool = True


class BatchScoreEntry(BaseModel):
    member_id: Optional[str]
    score: int
    tier: MatchTier
    reasons: Optional[List[ReasonRecord]] = None


class BatchScoreResult(BaseModel):
    scores: List[BatchScoreEntry] = Field(default_factory=list)
    filtered: int = 0
    total: int = 0
