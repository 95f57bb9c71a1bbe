import json

import pytest

from referral_core.models.settings import LLMSettings
from referral_core.services.artifacts import ArtifactService, message_template_for, static_summary
from referral_core.services.budget import BudgetGuard
from referral_core.services.cache import CacheStore
from referral_core.services.orchestrator import AIOrchestrator
from referral_core.utils.exceptions import ValidationError

from conftest import FakeProvider


def make_service(clock, responder=None, settings=None, **provider_kwargs):
    settings = settings or LLMSettings()
    provider = FakeProvider(responder, **provider_kwargs)
    orchestrator = AIOrchestrator(CacheStore(clock=clock), BudgetGuard(clock=clock), settings)
    return ArtifactService(orchestrator, provider), provider


def answer(payload):
    return lambda prompt: "Sure! Here you go:\n" + json.dumps(payload)


DESCRIPTION = "Build the checkout experience for millions of shoppers. Requirements: react, node, sql."


class TestJobSummary:
    """Three-bullet job summaries"""

    @pytest.mark.asyncio
    async def test_ai_summary_is_trimmed_to_three_bullets(self, clock):
        service, provider = make_service(clock, answer({"bullets": ["Own checkout", "Ship weekly", "Pair with design", "extra"]}))

        result = await service.summarize_job("Frontend Engineer", DESCRIPTION)

        assert result.source == "ai"
        assert result.payload == {"bullets": ["Own checkout", "Ship weekly", "Pair with design"]}
        assert "Frontend Engineer" in provider.calls[0]

    @pytest.mark.asyncio
    async def test_non_json_answer_uses_static_summary(self, clock):
        service, _ = make_service(clock, lambda prompt: "I cannot help with that")

        result = await service.summarize_job("Frontend Engineer", DESCRIPTION)

        assert result.source == "static"
        assert result.payload["bullets"] == [
            "Build the checkout experience for millions of shoppers",
            "Key skills: react, node, sql",
            "Collaborate with cross-functional teams",
        ]

    @pytest.mark.asyncio
    async def test_two_bullets_is_malformed(self, clock):
        service, _ = make_service(clock, answer({"bullets": ["one", "two"]}))
        result = await service.summarize_job("Frontend Engineer", DESCRIPTION)
        assert result.source == "static"

    def test_static_summary_without_description(self):
        bullets = static_summary({"title": "Designer"})["bullets"]
        assert bullets[0] == "Work as Designer in a dynamic team environment"
        assert len(bullets) == 3

    @pytest.mark.asyncio
    async def test_long_description_is_truncated_in_prompt(self, clock):
        settings = LLMSettings(max_input_tokens=100)
        service, provider = make_service(clock, answer({"bullets": ["a", "b", "c"]}), settings=settings)

        await service.summarize_job("Engineer", "x" * 5000)

        assert "x" * 400 + "..." in provider.calls[0]
        assert "x" * 401 not in provider.calls[0]


class TestReferralMessage:
    """Referral message templates and AI copy"""

    @pytest.mark.asyncio
    async def test_ai_message(self, clock):
        service, _ = make_service(clock, answer({"subject": "Know anyone?", "body": "Acme is hiring."}))

        result = await service.referral_message("Ada", "Frontend Engineer", "Acme", "skill_match", ["react"])

        assert result.source == "ai"
        assert result.payload["subject"] == "Know anyone?"

    @pytest.mark.asyncio
    async def test_ai_message_keeps_only_text_fields(self, clock):
        service, _ = make_service(clock, answer({"subject": " Know anyone? ", "body": "Acme is hiring.", "n": 10 ** 20}))

        result = await service.referral_message("Ada", "Frontend Engineer", "Acme", "skill_match")

        assert result.source == "ai"
        assert result.payload == {"subject": "Know anyone?", "body": "Acme is hiring."}

    @pytest.mark.asyncio
    async def test_non_string_subject_is_malformed(self, clock):
        service, _ = make_service(clock, answer({"subject": ["Know", "anyone?"], "body": "Acme is hiring."}))

        result = await service.referral_message("Ada", "Frontend Engineer", "Acme", "skill_match")

        assert result.source == "static"
        assert result.payload["template"] == "skill_match"

    @pytest.mark.asyncio
    async def test_static_message_picks_skill_template(self, clock):
        service, _ = make_service(clock, lambda prompt: "")

        result = await service.referral_message("Ada", "Frontend Engineer", "Acme", "Strong skill overlap",
                                                ["react", "node", "sql", "css"])

        assert result.source == "static"
        assert result.payload["template"] == "skill_match"
        assert "react, node, sql" in result.payload["body"]
        assert "css" not in result.payload["body"]

    def test_template_selection(self):
        assert message_template_for("company_match") == "company_match"
        assert message_template_for("Industry overlap") == "industry_match"
        assert message_template_for("") == "generic"


class TestContactInsights:
    """Who to reach out to"""

    @pytest.mark.asyncio
    async def test_static_insights_for_manager_role(self, clock):
        service, _ = make_service(clock, lambda prompt: "{}")

        result = await service.contact_insights("Engineering Manager", "Lead our product engineers", "Acme")

        assert result.source == "static"
        assert result.payload["roles"] == ["Engineering Manager", "Director of Engineering", "HR Recruiter"]
        assert result.payload["departments"] == ["Engineering", "Product", "HR/People Ops"]
        assert "Acme" in result.payload["description"]

    @pytest.mark.asyncio
    async def test_ai_insights_need_a_role_and_a_department(self, clock):
        service, _ = make_service(clock, answer({"roles": ["CTO"], "departments": []}))
        result = await service.contact_insights("Engineer", "Build APIs")
        assert result.source == "static"


class TestJobParsing:
    """Structured job descriptions"""

    @pytest.mark.asyncio
    async def test_ai_parse_is_normalized(self, clock):
        service, _ = make_service(clock, answer({
            "requiredSkills": ["Python", "FastAPI"],
            "experienceRange": {"min": 3, "max": 5},
            "seniorityLevel": "senior",
        }), input_tokens=1200, output_tokens=300)

        result = await service.parse_job("Senior Backend Engineer", "Python and FastAPI, 3-5 years")

        assert result.source == "ai"
        assert result.payload["requiredSkills"] == ["python", "fastapi"]
        assert result.payload["experienceRange"] == {"min": 3, "max": 5}
        assert result.payload["domain"] == "general"
        assert result.payload["confidence"] == 0.9
        usage = await service.orchestrator.budget.usage_summary("global")
        assert usage.total_tokens == 1500

    @pytest.mark.asyncio
    async def test_static_parse_reads_the_text(self, clock):
        service, _ = make_service(clock, lambda prompt: "nope")

        result = await service.parse_job("Senior Backend Engineer", "We need python and postgresql, 5+ years in fintech payments.")

        assert result.source == "static"
        payload = result.payload
        assert payload["requiredSkills"] == ["python", "postgresql"]
        assert payload["experienceRange"] == {"min": 5, "max": 8}
        assert payload["seniorityLevel"] == "senior"
        assert payload["domain"] == "backend"
        assert payload["industry"] == "fintech"
        assert payload["confidence"] == 0.5


class TestOperationLookup:
    """Operation names and required inputs"""

    @pytest.mark.asyncio
    async def test_unknown_operation(self, clock):
        service, _ = make_service(clock)
        with pytest.raises(ValidationError):
            await service.generate_ai_artifact("write_poem", {"title": "x"})

    @pytest.mark.asyncio
    async def test_missing_required_input(self, clock):
        service, provider = make_service(clock)
        with pytest.raises(ValidationError) as exc_info:
            await service.generate_ai_artifact("job_summary", {"title": "Engineer"})
        assert exc_info.value.details["field"] == "description"
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_identical_inputs_hit_the_cache(self, clock):
        service, provider = make_service(clock, answer({"headline": "Know a React dev?", "body": "Acme is hiring."}))

        first = await service.generate_ai_artifact("nudge", {"job_title": "Frontend Engineer", "company": "Acme"})
        second = await service.generate_ai_artifact("nudge", {"company": "Acme", "job_title": "Frontend Engineer"})

        assert first == second
        assert len(provider.calls) == 1
