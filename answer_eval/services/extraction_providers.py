"""
Text-extraction providers.

Every provider exposes the same capability: ``extract(ref) -> ExtractedText``.
A provider never raises for a single image; the failure is returned as an
ExtractedText with ``success=False`` and a sentinel ``text``. A provider that
cannot serve anything at all (no credentials) raises ProviderUnavailable from
``ensure_available`` before any image is attempted.
"""

import logging
import time
from typing import Callable, Dict, List

import google.generativeai as genai
import httpx
from openai import OpenAI

from answer_eval.core.config import settings
from answer_eval.core.errors import ProviderUnavailable
from answer_eval.schemas.evaluation import ExtractedText
from answer_eval.schemas.submission import AnswerImage

logger = logging.getLogger(__name__)

FAILURE_PREFIX = "extraction failed"
NO_READABLE_TEXT = "No readable text found"

OCR_PROMPT = """You are a precise OCR (Optical Character Recognition) system. Your task is to extract ALL text content from this image.

Instructions:
1. Extract ALL visible text exactly as it appears
2. Maintain the original formatting, line breaks, and spacing
3. Include mathematical equations, formulas, and symbols
4. Include any handwritten text if clearly readable
5. Do not add explanations, interpretations, or additional commentary
6. If the text is in multiple languages, extract all of it
7. If there are tables, preserve the table structure
8. If no readable text is found, respond with exactly: "No readable text found"

Return only the extracted text content:"""


def failure_text(reason: str) -> str:
    return f"{FAILURE_PREFIX}: {reason}"


def failed(provider: str | None, reason: str, processing_ms: int = 0) -> ExtractedText:
    return ExtractedText(
        text=failure_text(reason),
        success=False,
        provider=provider,
        error=reason,
        processing_ms=processing_ms,
    )


def _describe_error(exc: Exception) -> str:
    message = str(exc) or exc.__class__.__name__
    lowered = message.lower()
    if isinstance(exc, httpx.TimeoutException) or "timed out" in lowered or "timeout" in lowered:
        return f"text extraction timed out - image may be too large ({message})"
    if "api key" in lowered or "authentication" in lowered:
        return f"API authentication failed ({message})"
    if "rate limit" in lowered:
        return f"rate limit exceeded - please try again later ({message})"
    if "content type" in lowered:
        return f"invalid image format ({message})"
    return message


class ExtractionProvider:
    name = "base"

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout or settings.EXTRACTION_TIMEOUT_SECONDS

    def ensure_available(self) -> None:
        """Raise ProviderUnavailable when this provider cannot run at all."""

    def _extract_text(self, ref: AnswerImage) -> str:
        raise NotImplementedError

    def extract(self, ref: AnswerImage) -> ExtractedText:
        started = time.monotonic()
        try:
            text = (self._extract_text(ref) or "").strip()
        except Exception as exc:
            elapsed = int((time.monotonic() - started) * 1000)
            reason = _describe_error(exc)
            logger.warning(f"{self.name}: extraction failed for {ref.key}: {reason}")
            return failed(self.name, reason, elapsed)

        elapsed = int((time.monotonic() - started) * 1000)
        if not text:
            text = NO_READABLE_TEXT
        logger.info(f"{self.name}: extracted {len(text)} characters from {ref.key}")
        return ExtractedText(
            text=text,
            success=True,
            provider=self.name,
            processing_ms=elapsed,
        )


def fetch_image(url: str, timeout: float | None = None) -> tuple[bytes, str]:
    response = httpx.get(
        url,
        timeout=timeout or settings.IMAGE_FETCH_TIMEOUT_SECONDS,
        follow_redirects=True,
        headers={"User-Agent": "Mozilla/5.0 (compatible; TextExtractor/1.0)"},
    )
    response.raise_for_status()

    content_type = response.headers.get("content-type", "")
    if not content_type.startswith("image/"):
        raise ValueError(f"Invalid content type: {content_type or 'missing'}")
    if not response.content:
        raise ValueError("Empty image received")
    return response.content, content_type.split(";")[0]


class OpenAIVisionProvider(ExtractionProvider):
    name = "openai"

    def __init__(self, api_key: str | None = None, model: str | None = None, timeout: float | None = None):
        super().__init__(timeout)
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_VISION_MODEL
        self._client = None

    def ensure_available(self) -> None:
        if not self.api_key:
            raise ProviderUnavailable("OpenAI API key is not configured")

    def _get_client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    def _extract_text(self, ref: AnswerImage) -> str:
        response = self._get_client().chat.completions.create(
            model=self.model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": OCR_PROMPT},
                        {"type": "image_url", "image_url": {"url": ref.url, "detail": "high"}},
                    ],
                }
            ],
            max_tokens=2000,
            temperature=0.1,
        )
        if not response.choices or not response.choices[0].message.content:
            raise ValueError("No content in OpenAI Vision API response")
        return response.choices[0].message.content


class GeminiVisionProvider(ExtractionProvider):
    name = "gemini"

    def __init__(self, api_key: str | None = None, model: str | None = None, timeout: float | None = None):
        super().__init__(timeout)
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.model = model or settings.GEMINI_MODEL
        self._model = None

    def ensure_available(self) -> None:
        if not self.api_key:
            raise ProviderUnavailable("Gemini API key is not configured")

    def _get_model(self):
        if self._model is None:
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(model_name=self.model)
        return self._model

    def _extract_text(self, ref: AnswerImage) -> str:
        data, mime_type = fetch_image(ref.url)
        response = self._get_model().generate_content(
            [
                "Extract all text content from this image. Return only the text as it "
                "appears, maintaining original formatting. If no text is found, respond "
                f"with '{NO_READABLE_TEXT}'.",
                {"mime_type": mime_type, "data": data},
            ],
            generation_config={"temperature": 0.1, "max_output_tokens": 1024},
            request_options={"timeout": self.timeout},
        )
        return response.text


# name -> factory; adding a provider is one entry here plus its name in settings
PROVIDER_REGISTRY: Dict[str, Callable[[], ExtractionProvider]] = {
    "openai": OpenAIVisionProvider,
    "gemini": GeminiVisionProvider,
}


def build_providers(names: List[str] | None = None) -> List[ExtractionProvider]:
    providers = []
    for name in names if names is not None else settings.EXTRACTION_PROVIDERS:
        factory = PROVIDER_REGISTRY.get(name)
        if factory is None:
            logger.warning(f"Unknown extraction provider {name!r} ignored")
            continue
        providers.append(factory())
    return providers
