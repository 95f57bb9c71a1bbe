"""
AI-backed artifacts (job summary, referral message, contact insights, job parsing, nudge copy).

Every operation shares the orchestrator machinery and pairs a prompt with a
minimum-shape check and a deterministic static fallback.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from referral_core.helpers import parsing
from referral_core.helpers.prompts import (
    CONTACT_INSIGHTS_PROMPT, JOB_PARSING_PROMPT, JOB_SUMMARY_PROMPT,
    MESSAGE_GENERATION_PROMPT, NUDGE_PROMPT, SYSTEM_JSON,
)
from referral_core.models.ai import AICompletion, AIResult
from referral_core.models.settings import LLMSettings
from referral_core.services.orchestrator import AIOrchestrator
from referral_core.utils.exceptions import MalformedResponseError, ValidationError
from referral_core.utils.logging_config import get_logger

logger = get_logger(__name__)


def _non_empty(items: Any) -> List[str]:
    return [str(i).strip() for i in items if str(i).strip()] if isinstance(items, list) else []


def _str_field(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    return value.strip() if isinstance(value, str) else ""


def _copy_fields(*keys: str) -> Callable[[Dict[str, Any]], Dict[str, Any]]:
    """Keep only the named string fields of an AI payload; anything else becomes empty."""
    def normalize(data: Dict[str, Any]) -> Dict[str, Any]:
        return {key: _str_field(data, key) for key in keys}
    return normalize


# ---------- static fallbacks ----------

def static_summary(inputs: Dict[str, Any]) -> Dict[str, Any]:
    title = inputs.get("title") or "this role"
    description = inputs.get("description") or ""
    bullets = []

    first = parsing.first_sentence(description)
    if len(first) > 10:
        bullets.append(first if len(first) <= 80 else first[:77] + "...")
    else:
        bullets.append(f"Work as {title} in a dynamic team environment")

    skills = re.search(r"(?:skills?|requirements?|qualifications?)[:\s]+([^.]+)", description, re.IGNORECASE)
    if skills and skills.group(1).strip():
        text = skills.group(1).strip()
        bullets.append(f"Key skills: {text[:70]}..." if len(text) > 80 else f"Key skills: {text}")
    else:
        bullets.append("Build and deliver high-quality solutions")

    bullets.append("Collaborate with cross-functional teams")
    return {"bullets": bullets[:3]}


MESSAGE_TEMPLATES = {
    "company_match": (
        "Know anyone for this {role} role?",
        "Hey, I came across this {role} opening at {company}. Since you worked at {matched_company}, "
        "I thought you might know someone who'd be a great fit. Let me know if anyone comes to mind!",
    ),
    "skill_match": (
        "Thought of your network for this role",
        "Hey, there's this {role} role at {company} that needs someone strong in {skills}. "
        "Given your background in this area, do you know anyone who might be interested?",
    ),
    "industry_match": (
        "{industry} opportunity that might interest your network",
        "Hey, I found this {role} position at {company}. Since you've been in the {industry} space, "
        "I thought someone in your network might be a good fit. Anyone come to mind?",
    ),
    "generic": (
        "Know anyone for this {role} role?",
        "Hey, there's an interesting {role} opportunity at {company}. "
        "If you know anyone who might be interested, I'd appreciate a referral!",
    ),
}


def message_template_for(match_reason: str) -> str:
    reason = (match_reason or "").lower()
    if "company" in reason:
        return "company_match"
    if "skill" in reason:
        return "skill_match"
    if "industry" in reason:
        return "industry_match"
    return "generic"


def static_message(inputs: Dict[str, Any]) -> Dict[str, Any]:
    template = message_template_for(inputs.get("match_reason", ""))
    subject, body = MESSAGE_TEMPLATES[template]
    skills = parsing.as_list(inputs.get("skills"))
    values = {
        "role": inputs.get("job_title") or "open",
        "company": inputs.get("company") or "our company",
        "skills": ", ".join(skills[:3]) or "relevant skills",
        "matched_company": inputs.get("matched_company") or "your previous company",
        "industry": inputs.get("industry") or "tech",
    }
    return {"subject": subject.format(**values), "body": body.format(**values), "template": template}


def static_contact_insights(inputs: Dict[str, Any]) -> Dict[str, Any]:
    title = (inputs.get("job_title") or "").lower()
    description = (inputs.get("description") or "").lower()
    company = inputs.get("company") or "the company"

    if "manager" in title or "lead" in title:
        roles = ["Engineering Manager", "Director of Engineering"]
    elif "designer" in title:
        roles = ["Design Lead", "Product Manager"]
    elif "product" in title:
        roles = ["Product Manager", "Head of Product"]
    elif "data" in title or "ml" in title.split():
        roles = ["Data Science Manager", "ML Lead"]
    else:
        roles = ["Hiring Manager", "Team Lead"]
    roles.append("HR Recruiter")

    departments = []
    if "engineer" in description or "developer" in description:
        departments.append("Engineering")
    if "product" in description:
        departments.append("Product")
    if "design" in description:
        departments.append("Design")
    if "data" in description or "analytics" in description:
        departments.append("Data")
    if not departments:
        departments.append("Hiring Team")
    departments.append("HR/People Ops")

    return {
        "roles": roles[:3],
        "departments": departments[:3],
        "description": f"Reach out to the {roles[0]} or {roles[1]} at {company} to discuss this opportunity.",
    }


def static_job_parse(inputs: Dict[str, Any]) -> Dict[str, Any]:
    title = inputs.get("title") or ""
    text = f"{title} {inputs.get('description') or ''}"
    return {
        "requiredSkills": parsing.extract_skills_from_text(text),
        "preferredSkills": [],
        "experienceRange": parsing.extract_experience_range(text),
        "seniorityLevel": parsing.infer_seniority_from_title(title),
        "domain": parsing.infer_domain_from_text(text),
        "industry": parsing.infer_industry_from_text(text),
        "keywords": parsing.extract_keywords(text),
        "confidence": 0.5,
    }


def static_nudge_copy(inputs: Dict[str, Any]) -> Dict[str, Any]:
    reasons = parsing.as_list(inputs.get("reasons"))
    role = inputs.get("job_title") or "this role"
    company = inputs.get("company") or "our team"
    body = inputs.get("smart_message") or (reasons[0] if reasons else f"Someone in your network could be a great fit for {role} at {company}.")
    return {"headline": f"Know someone for {role}?", "body": body}


# ---------- AI payload normalisation and shape checks ----------

def _normalize_job_parse(data: Dict[str, Any]) -> Dict[str, Any]:
    experience = data.get("experienceRange") if isinstance(data.get("experienceRange"), dict) else {}
    return {
        "requiredSkills": [s.lower() for s in parsing.as_list(data.get("requiredSkills"))],
        "preferredSkills": [s.lower() for s in parsing.as_list(data.get("preferredSkills"))],
        "experienceRange": {"min": int(experience.get("min") or 0), "max": int(experience.get("max") or 10)},
        "seniorityLevel": parsing.as_text(data.get("seniorityLevel")) or "mid",
        "domain": parsing.as_text(data.get("domain")) or "general",
        "industry": parsing.as_text(data.get("industry")) or "technology",
        "keywords": parsing.as_list(data.get("keywords")),
        "confidence": 0.9,
    }


@dataclass
class ArtifactOperation:
    name: str
    namespace: str
    prompt: str
    required: Tuple[str, ...]
    validate: Callable[[Dict[str, Any]], bool]
    fallback: Callable[[Dict[str, Any]], Dict[str, Any]]
    normalize: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None
    text_fields: Tuple[str, ...] = field(default_factory=tuple)
    temperature: float = 0.3


OPERATIONS: Dict[str, ArtifactOperation] = {
    "job_summary": ArtifactOperation(
        name="job_summary",
        namespace="summary",
        prompt=JOB_SUMMARY_PROMPT,
        required=("title", "description"),
        validate=lambda p: len(_non_empty(p.get("bullets"))) >= 3,
        fallback=static_summary,
        normalize=lambda p: {"bullets": _non_empty(p.get("bullets"))[:3]},
        text_fields=("description",),
    ),
    "referral_message": ArtifactOperation(
        name="referral_message",
        namespace="messages",
        prompt=MESSAGE_GENERATION_PROMPT,
        required=("job_title", "company"),
        validate=lambda p: bool(_str_field(p, "subject")) and bool(_str_field(p, "body")),
        fallback=static_message,
        normalize=_copy_fields("subject", "body"),
        temperature=0.7,
    ),
    "contact_insights": ArtifactOperation(
        name="contact_insights",
        namespace="insights",
        prompt=CONTACT_INSIGHTS_PROMPT,
        required=("job_title",),
        validate=lambda p: len(_non_empty(p.get("roles"))) >= 1 and len(_non_empty(p.get("departments"))) >= 1,
        fallback=static_contact_insights,
        normalize=lambda p: {
            "roles": _non_empty(p.get("roles"))[:3],
            "departments": _non_empty(p.get("departments"))[:3],
            "description": parsing.as_text(p.get("description")) or "Reach out to the hiring team.",
        },
        text_fields=("description",),
    ),
    "job_parsing": ArtifactOperation(
        name="job_parsing",
        namespace="job_parsing",
        prompt=JOB_PARSING_PROMPT,
        required=("title", "description"),
        validate=lambda p: len(parsing.as_list(p.get("requiredSkills"))) >= 1,
        fallback=static_job_parse,
        normalize=_normalize_job_parse,
        text_fields=("description",),
        temperature=0.1,
    ),
    "nudge": ArtifactOperation(
        name="nudge",
        namespace="nudges",
        prompt=NUDGE_PROMPT,
        required=("job_title",),
        validate=lambda p: bool(_str_field(p, "headline")) and bool(_str_field(p, "body")),
        fallback=static_nudge_copy,
        normalize=_copy_fields("headline", "body"),
        temperature=0.7,
    ),
}

PROMPT_DEFAULTS = {
    "member_name": "there",
    "company": "the company",
    "skills": "relevant skills",
    "match_reason": "your background",
    "description": "",
    "score": 0,
    "tier": "",
    "reasons": "",
}


class ArtifactService:
    """generate_ai_artifact(operation, inputs) front over the orchestrator."""

    def __init__(self, orchestrator: AIOrchestrator, provider, settings: LLMSettings = None):
        self.orchestrator = orchestrator
        self.provider = provider
        self.settings = settings or orchestrator.settings

    def operation(self, name: str) -> ArtifactOperation:
        try:
            return OPERATIONS[name]
        except KeyError:
            raise ValidationError(f"Unknown AI operation: {name}", field="operation", value=name)

    def _prompt_values(self, op: ArtifactOperation, inputs: Dict[str, Any]) -> Dict[str, Any]:
        values = {**PROMPT_DEFAULTS, **{k: v for k, v in inputs.items() if v not in (None, "")}}
        for name in op.text_fields:
            values[name] = parsing.truncate_text(parsing.clean_text(parsing.as_text(values.get(name))), self.settings.max_input_tokens)
        if isinstance(values.get("skills"), list):
            values["skills"] = ", ".join(parsing.as_list(values["skills"])[:5]) or PROMPT_DEFAULTS["skills"]
        if isinstance(values.get("reasons"), list):
            values["reasons"] = "\n".join(f"- {r}" for r in parsing.as_list(values["reasons"])[:3])
        return values

    def _ai_call(self, op: ArtifactOperation, inputs: Dict[str, Any]):
        prompt = op.prompt.format_map(_FormatDict(self._prompt_values(op, inputs)))

        async def call() -> AICompletion:
            response = await self.provider.agenerate(
                prompt,
                system=SYSTEM_JSON,
                temperature=op.temperature,
                max_tokens=self.settings.max_output_tokens,
            )
            data = parsing.safe_json(response.text)
            if data is None:
                raise MalformedResponseError(f"Provider output for {op.name} is not a JSON object", operation=op.name)
            payload = op.normalize(data) if op.normalize else data
            return AICompletion(
                payload=payload,
                model=response.model,
                input_tokens=response.input_tokens,
                output_tokens=response.output_tokens,
            )

        return call

    async def generate_ai_artifact(self, operation_name: str, inputs: Dict[str, Any], scope: Optional[str] = None) -> AIResult:
        op = self.operation(operation_name)
        missing = [name for name in op.required if not parsing.as_text(inputs.get(name))]
        if missing:
            raise ValidationError(f"Missing inputs for {operation_name}: {', '.join(missing)}", field=missing[0])

        return await self.orchestrator.generate(
            operation_name=op.name,
            fingerprint_inputs=inputs,
            ai_call_fn=self._ai_call(op, inputs),
            fallback_fn=lambda: op.fallback(inputs),
            scope=scope,
            validate_fn=op.validate,
            namespace=op.namespace,
        )

    async def summarize_job(self, title: str, description: str, scope: Optional[str] = None) -> AIResult:
        return await self.generate_ai_artifact("job_summary", {"title": title, "description": description}, scope)

    async def referral_message(self, member_name: str, job_title: str, company: str, match_reason: str,
                               skills: Optional[List[str]] = None, scope: Optional[str] = None) -> AIResult:
        inputs = {
            "member_name": member_name,
            "job_title": job_title,
            "company": company,
            "match_reason": match_reason,
            "skills": skills or [],
        }
        return await self.generate_ai_artifact("referral_message", inputs, scope)

    async def contact_insights(self, job_title: str, description: str, company: Optional[str] = None,
                               scope: Optional[str] = None) -> AIResult:
        inputs = {"job_title": job_title, "description": description, "company": company}
        return await self.generate_ai_artifact("contact_insights", inputs, scope)

    async def parse_job(self, title: str, description: str, scope: Optional[str] = None) -> AIResult:
        return await self.generate_ai_artifact("job_parsing", {"title": title, "description": description}, scope)


class _FormatDict(dict):
    def __missing__(self, key):
        return ""
