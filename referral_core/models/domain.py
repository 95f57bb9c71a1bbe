from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExperienceLevel(str, Enum):
    INTERN = "intern"
    ENTRY = "entry"
    JUNIOR = "junior"
    MID = "mid"
    SENIOR = "senior"
    STAFF = "staff"
    PRINCIPAL = "principal"
    EXECUTIVE = "executive"


def as_token_list(x: Any) -> List[str]:
    """Coerce None / comma string / list into distinct, whitespace-normalised tokens (order kept)."""
    if x is None:
        return []
    if isinstance(x, str):
        x = x.replace(";", ",").split(",")
    out: List[str] = []
    seen = set()
    for t in x:
        token = " ".join(str(t).split())
        if token and token.lower() not in seen:
            seen.add(token.lower())
            out.append(token)
    return out


def as_level(x: Any) -> Any:
    if x is None or isinstance(x, ExperienceLevel):
        return x
    text = str(x).strip().lower()
    return text or None


class Profile(BaseModel):
    """Read-only snapshot of a member/candidate profile."""
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    past_companies: List[str] = Field(default_factory=list)
    domains: List[str] = Field(default_factory=list)
    industries: List[str] = Field(default_factory=list)
    experience_level: Optional[ExperienceLevel] = None
    years_of_experience: float = 0.0
    location: Optional[str] = None
    current_title: Optional[str] = None
    current_company: Optional[str] = None

    @field_validator("skills", "past_companies", "domains", "industries", mode="before")
    @classmethod
    def coerce_lists(cls, v):
        return as_token_list(v)

    @field_validator("experience_level", mode="before")
    @classmethod
    def coerce_level(cls, v):
        return as_level(v)

    @field_validator("years_of_experience", mode="before")
    @classmethod
    def default_years(cls, v):
        return 0.0 if v in (None, "") else v


class JobPosting(BaseModel):
    """Read-only snapshot of a job posting."""
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    title: str = ""
    company: str = ""
    description: str = ""
    skills: List[str] = Field(default_factory=list)
    domains: List[str] = Field(default_factory=list)
    industry: Optional[str] = None
    experience_level: Optional[ExperienceLevel] = None
    location: Optional[str] = None
    is_remote: bool = False

    @field_validator("skills", "domains", mode="before")
    @classmethod
    def coerce_lists(cls, v):
        return as_token_list(v)

    @field_validator("experience_level", mode="before")
    @classmethod
    def coerce_level(cls, v):
        return as_level(v)
