from datetime import datetime, timedelta, timezone

import pytest

from referral_core.models.ai import ProviderResponse
from referral_core.models.domain import JobPosting, Profile


class ManualClock:
    """Clock the tests move by hand"""

    def __init__(self, start: datetime = None):
        self.current = start or datetime(2025, 3, 10, 12, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class FakeProvider:
    """Stands in for OllamaProvider; `responder(prompt)` returns text or raises"""

    model = "llama3.1:8b"

    def __init__(self, responder=None, input_tokens=0, output_tokens=0):
        self.responder = responder or (lambda prompt: "{}")
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.calls = []

    async def agenerate(self, prompt, **kwargs):
        self.calls.append(prompt)
        text = self.responder(prompt)
        return ProviderResponse(text=text, model=self.model, input_tokens=self.input_tokens, output_tokens=self.output_tokens)

    async def aembed(self, texts):
        self.calls.append(texts)
        return [float(len(texts)), 1.0, 0.0]


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def member():
    return Profile(
        id="m1",
        name="Ada",
        skills=["React", "node"],
        past_companies=["Acme"],
        domains=["frontend"],
        industries=["fintech"],
        experience_level="senior",
        years_of_experience=7,
        location="Berlin, Germany",
    )


@pytest.fixture
def job():
    return JobPosting(
        id="j1",
        title="Senior Frontend Engineer",
        company="Acme",
        description="Build the checkout experience. Skills: react, node, sql.",
        skills=["react", "node", "sql"],
        domains=["frontend"],
        industry="fintech",
        experience_level="senior",
        location="Berlin",
    )
