"""
Text-generation provider client (Ollama HTTP API).
"""
import asyncio
from typing import List, Optional, Union

import numpy as np
import requests

from referral_core.models.ai import ProviderResponse
from referral_core.models.settings import LLMSettings
from referral_core.utils.exceptions import ProviderError, ProviderRateLimitError, ProviderTimeoutError
from referral_core.utils.logging_config import get_logger

logger = get_logger(__name__)


class OllamaProvider:
    """Blocking HTTP client; the async wrappers push calls onto a worker thread."""

    def __init__(self, settings: LLMSettings = None, session: Optional[requests.Session] = None):
        self.settings = settings or LLMSettings()
        self.session = session or requests.Session()

    @property
    def model(self) -> str:
        return self.settings.model_name

    def _post(self, path: str, body: dict) -> dict:
        url = f"{self.settings.base_url.rstrip('/')}{path}"
        try:
            resp = self.session.post(url, json=body, timeout=self.settings.timeout)
        except requests.Timeout as e:
            raise ProviderTimeoutError(f"Provider request to {path} timed out", cause=e) from e
        except requests.RequestException as e:
            raise ProviderError(f"Provider request to {path} failed: {e}", cause=e) from e

        if resp.status_code == 429:
            raise ProviderRateLimitError("Too Many Requests from provider")
        try:
            resp.raise_for_status()
        except requests.HTTPError as e:
            raise ProviderError(f"Provider returned {resp.status_code}", status_code=resp.status_code, cause=e) from e
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError("Provider returned a non-JSON body", cause=e) from e

    def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        json_mode: bool = True,
        model: Optional[str] = None,
    ) -> ProviderResponse:
        model = model or self.settings.model_name
        options = {"temperature": temperature}
        if max_tokens:
            options["num_predict"] = max_tokens
        body = {
            "model": model,
            "prompt": prompt,
            "options": options,
            "stream": False,
        }
        if system:
            body["system"] = system
        if json_mode:
            body["format"] = "json"
        data = self._post("/api/generate", body)
        return ProviderResponse(
            text=data.get("response", "") or "",
            model=model,
            input_tokens=int(data.get("prompt_eval_count") or 0),
            output_tokens=int(data.get("eval_count") or 0),
        )

    def embed(self, texts: Union[str, List[str]]) -> np.ndarray:
        data = self._post("/api/embed", {"model": self.settings.embed_model, "input": texts})
        embeddings = data.get("embeddings")
        if not embeddings:
            raise ProviderError("Provider returned no embeddings")
        vectors = np.array(embeddings, dtype=np.float32)
        return vectors[0] if isinstance(texts, str) else vectors

    async def agenerate(self, prompt: str, **kwargs) -> ProviderResponse:
        return await asyncio.to_thread(self.generate, prompt, **kwargs)

    async def aembed(self, texts: Union[str, List[str]]) -> np.ndarray:
        return await asyncio.to_thread(self.embed, texts)
