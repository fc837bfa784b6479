from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from .config import Settings
from .errors import BackendError

logger = logging.getLogger("catalog_chat.gemini")

RETRYABLE_ERRORS = (
    google_exceptions.DeadlineExceeded,
    google_exceptions.ResourceExhausted,
    google_exceptions.ServiceUnavailable,
    google_exceptions.InternalServerError,
)


class TextGenerator(Protocol):
    """Generation backend: one prompt in, one reply text out."""

    def generate(self, prompt: str) -> str:
        """Return the generated reply or raise BackendError."""


class GeminiClient:
    """Thin wrapper around the Gemini SDK with model caching and a bounded timeout."""

    def __init__(self, settings: Settings) -> None:
        """Purpose: Keep Gemini settings and prepare the model cache.
        Inputs/Outputs: Input is Settings; no return value.
        Side Effects / State: None until the first generate call configures the SDK.
        Dependencies: Uses google.generativeai and Settings from config.
        Failure Modes: None at init; a missing API key surfaces as BackendError on use,
            so the service can start and report the missing credential.
        If Removed: The chat pipeline has no generation backend.
        Testing Notes: Construct with an empty key and verify generate raises BackendError.
        """
        self._settings = settings
        self._models: Dict[str, genai.GenerativeModel] = {}
        self._default_model = _normalize_model_name(settings.gemini_model)
        self._configured = False

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.gemini_api_key)

    def generate(self, prompt: str, model: Optional[str] = None) -> str:
        """Purpose: Generate a single text reply from a string prompt.
        Inputs/Outputs: Input is the assembled prompt and optional model; returns text.
        Side Effects / State: Configures the SDK once and may add a model to the cache.
        Dependencies: Uses genai.GenerativeModel.generate_content with request_options timeout.
        Failure Modes: Raises BackendError for a missing key, SDK/network/quota errors,
            timeouts (retryable), and blocked or empty responses.
        If Removed: The chat endpoint cannot produce replies.
        Testing Notes: Monkeypatch genai.GenerativeModel and assert error mapping.
        """
        model_name = _normalize_model_name(model) if model else self._default_model
        if not model_name:
            raise BackendError("MODEL_REQUIRED", "Gemini model name is required")
        self._ensure_configured()
        if model_name not in self._models:
            self._models[model_name] = genai.GenerativeModel(model_name)

        try:
            response = self._models[model_name].generate_content(
                prompt,
                generation_config={
                    "temperature": self._settings.generation_temperature,
                    "max_output_tokens": self._settings.max_output_tokens,
                },
                request_options={"timeout": self._settings.generation_timeout_sec},
            )
        except RETRYABLE_ERRORS as exc:
            raise BackendError("BACKEND_UNAVAILABLE", str(exc), retryable=True) from exc
        except google_exceptions.GoogleAPIError as exc:
            raise BackendError("BACKEND_ERROR", str(exc)) from exc
        except TimeoutError as exc:
            raise BackendError("BACKEND_TIMEOUT", "Gemini request timed out", retryable=True) from exc

        try:
            text: Optional[str] = response.text
        except ValueError as exc:
            # Raised by the SDK when the candidate was blocked or has no parts.
            raise BackendError("EMPTY_RESPONSE", f"Gemini returned no text: {exc}") from exc
        text = (text or "").strip()
        if not text:
            raise BackendError("EMPTY_RESPONSE", "Gemini returned an empty reply")
        return text

    def _ensure_configured(self) -> None:
        if self._configured:
            return
        if not self._settings.gemini_api_key:
            raise BackendError("API_KEY_REQUIRED", "GEMINI_API_KEY is not configured")
        genai.configure(api_key=self._settings.gemini_api_key)
        self._configured = True
        logger.info("gemini configured model=%s", self._default_model)


def _normalize_model_name(name: Optional[str]) -> str:
    """Strip a leading "models/" prefix and whitespace from a model name."""
    if not name:
        return ""
    cleaned = name.strip()
    if cleaned.startswith("models/"):
        return cleaned.split("/", 1)[1]
    return cleaned
