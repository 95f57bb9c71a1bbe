import pytest
import requests
from unittest.mock import MagicMock

from referral_core.models.settings import LLMSettings
from referral_core.services.provider import OllamaProvider
from referral_core.utils.exceptions import ProviderError, ProviderRateLimitError, ProviderTimeoutError


def make_response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload or {}
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    return resp


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def provider(session):
    return OllamaProvider(LLMSettings(base_url="http://ollama:11434/", timeout=5.0), session=session)


class TestOllamaProvider:
    """HTTP client for the text-generation provider"""

    def test_generate_posts_json_mode_request(self, provider, session):
        session.post.return_value = make_response(payload={
            "response": '{"bullets": []}', "prompt_eval_count": 120, "eval_count": 40,
        })

        result = provider.generate("Summarize", system="Be brief", temperature=0.7, max_tokens=200)

        url = session.post.call_args.args[0]
        body = session.post.call_args.kwargs["json"]
        assert url == "http://ollama:11434/api/generate"
        assert body["model"] == "llama3.1:8b"
        assert body["system"] == "Be brief"
        assert body["format"] == "json"
        assert body["options"] == {"temperature": 0.7, "num_predict": 200}
        assert session.post.call_args.kwargs["timeout"] == 5.0
        assert result.text == '{"bullets": []}'
        assert (result.input_tokens, result.output_tokens) == (120, 40)

    def test_too_many_requests(self, provider, session):
        session.post.return_value = make_response(status_code=429)
        with pytest.raises(ProviderRateLimitError):
            provider.generate("hi")

    def test_server_error(self, provider, session):
        session.post.return_value = make_response(status_code=500)

        with pytest.raises(ProviderError) as exc_info:
            provider.generate("hi")

        assert exc_info.value.details["status_code"] == 500

    def test_timeout(self, provider, session):
        session.post.side_effect = requests.Timeout("read timed out")
        with pytest.raises(ProviderTimeoutError):
            provider.generate("hi")

    def test_connection_error(self, provider, session):
        session.post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(ProviderError):
            provider.generate("hi")

    def test_embed_single_text(self, provider, session):
        session.post.return_value = make_response(payload={"embeddings": [[0.5, 0.25]]})

        vector = provider.embed("react")

        assert vector.tolist() == [0.5, 0.25]
        assert session.post.call_args.kwargs["json"] == {"model": "nomic-embed-text", "input": "react"}

    def test_embed_without_vectors(self, provider, session):
        session.post.return_value = make_response(payload={"embeddings": []})
        with pytest.raises(ProviderError):
            provider.embed("react")

    @pytest.mark.asyncio
    async def test_async_wrapper(self, provider, session):
        session.post.return_value = make_response(payload={"response": "{}"})
        result = await provider.agenerate("hi")
        assert result.text == "{}"
        assert result.input_tokens == 0
