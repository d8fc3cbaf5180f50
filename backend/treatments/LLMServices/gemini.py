import time

import google.generativeai as genai
import structlog
from django.conf import settings

from ..exceptions import AnalysisError
from .base import BaseLLMAdapter, LLMResponse

logger = structlog.get_logger(__name__)

GENERATION_CONFIG = {
    "temperature": 0.1,
    "top_k": 40,
    "top_p": 0.95,
    "max_output_tokens": 4096,
}

# overload / quota errors: go straight to the next model
_SKIP_MARKERS = ("503", "overloaded", "rate limit", "429", "unavailable", "resource exhausted")


class GeminiAdapter(BaseLLMAdapter):
    """
    Tries settings.GEMINI_MODELS in order. Each model gets
    settings.GEMINI_MAX_ATTEMPTS attempts with 1s, 2s, 4s... between them.
    """

    def __init__(self, models=None, max_attempts=None):
        self.models = list(models or settings.GEMINI_MODELS)
        self.max_attempts = max_attempts or settings.GEMINI_MAX_ATTEMPTS

    def _generate(self, model_name, prompt):
        model = genai.GenerativeModel(model_name, generation_config=GENERATION_CONFIG)
        response = model.generate_content(prompt)
        text = response.text
        if not text:
            raise ValueError("Empty response from Gemini")
        return text

    def _with_backoff(self, model_name, prompt):
        for attempt in range(self.max_attempts):
            try:
                return self._generate(model_name, prompt)
            except Exception as e:
                if attempt == self.max_attempts - 1:
                    raise
                delay = 2 ** attempt
                logger.warning(
                    "gemini_retry",
                    model=model_name,
                    attempt=attempt + 1,
                    delay_seconds=delay,
                    error=str(e),
                )
                time.sleep(delay)

    def _call_api(self, prompt: str) -> LLMResponse:
        if not settings.GOOGLE_API_KEY:
            raise AnalysisError(
                message="Gemini API key not configured",
                detail="Set GOOGLE_API_KEY in the environment.",
                code="ANALYSIS_NOT_CONFIGURED",
            )
        genai.configure(api_key=settings.GOOGLE_API_KEY)

        last_error = None
        for model_name in self.models:
            try:
                text = self._with_backoff(model_name, prompt)
            except Exception as e:
                last_error = e
                skip = any(marker in str(e).lower() for marker in _SKIP_MARKERS)
                logger.warning(
                    "gemini_model_failed",
                    model=model_name,
                    error=str(e),
                    overloaded=skip,
                )
                if not skip:
                    time.sleep(0.5)
                continue

            logger.info("gemini_model_succeeded", model=model_name)
            return LLMResponse(content=text, model=model_name)

        raise AnalysisError(
            message="All Gemini models failed",
            detail=f"Last error: {last_error or 'no models configured'}",
        )
