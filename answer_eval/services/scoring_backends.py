"""
Scoring backends
Text-in, text-out clients for the LLMs that grade answers.
"""

import logging
from typing import Callable, Dict, List

import google.generativeai as genai
from openai import OpenAI

from answer_eval.core.config import settings
from answer_eval.core.errors import ProviderUnavailable

logger = logging.getLogger(__name__)


class ScoringBackend:
    name = "base"

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout or settings.SCORING_TIMEOUT_SECONDS

    def ensure_available(self) -> None:
        """Raise ProviderUnavailable when the backend cannot be called at all."""

    def complete(self, prompt: str) -> str:
        raise NotImplementedError


class GeminiScoringBackend(ScoringBackend):
    name = "gemini"

    def __init__(self, api_key: str | None = None, model: str | None = None, timeout: float | None = None):
        super().__init__(timeout)
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.model = model or settings.GEMINI_MODEL
        self._model = None

    def ensure_available(self) -> None:
        if not self.api_key:
            raise ProviderUnavailable("Gemini API key is not configured")

    def complete(self, prompt: str) -> str:
        if self._model is None:
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(model_name=self.model)

        response = self._model.generate_content(
            prompt,
            generation_config={
                "temperature": 0.7,
                "top_k": 40,
                "top_p": 0.95,
                "max_output_tokens": 2048,
            },
            request_options={"timeout": self.timeout},
        )
        if not response.text:
            raise ValueError("Invalid response from Gemini API")
        return response.text


class OpenAIScoringBackend(ScoringBackend):
    name = "openai"

    def __init__(self, api_key: str | None = None, model: str | None = None, timeout: float | None = None):
        super().__init__(timeout)
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_SCORING_MODEL
        self._client = None

    def ensure_available(self) -> None:
        if not self.api_key:
            raise ProviderUnavailable("OpenAI API key is not configured")

    def complete(self, prompt: str) -> str:
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)

        response = self._client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=1500,
            temperature=0.7,
        )
        if not response.choices or not response.choices[0].message.content:
            raise ValueError("Invalid response from OpenAI API")
        return response.choices[0].message.content


BACKEND_REGISTRY: Dict[str, Callable[[], ScoringBackend]] = {
    "gemini": GeminiScoringBackend,
    "openai": OpenAIScoringBackend,
}


def build_backends(names: List[str] | None = None) -> List[ScoringBackend]:
    backends = []
    for name in names if names is not None else settings.SCORING_BACKENDS:
        factory = BACKEND_REGISTRY.get(name)
        if factory is None:
            logger.warning(f"Unknown scoring backend {name!r} ignored")
            continue
        backends.append(factory())
    return backends
