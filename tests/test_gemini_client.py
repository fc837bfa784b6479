from __future__ import annotations

from dataclasses import replace

import pytest
from google.api_core import exceptions as google_exceptions

from catalog_chat import gemini_client
from catalog_chat.errors import BackendError
from catalog_chat.gemini_client import GeminiClient, _normalize_model_name


class FakeResponse:
    def __init__(self, text=None, blocked=False):
        self._text = text
        self._blocked = blocked

    @property
    def text(self):
        if self._blocked:
            raise ValueError("response was blocked")
        return self._text


class FakeModel:
    instances = []

    def __init__(self, name):
        self.name = name
        self.calls = []
        self.response = FakeResponse(text="  Halo kak!  ")
        self.error = None
        FakeModel.instances.append(self)

    def generate_content(self, prompt, **kwargs):
        self.calls.append((prompt, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def fake_genai(monkeypatch):
    configured = {}
    FakeModel.instances = []
    monkeypatch.setattr(gemini_client.genai, "configure", lambda **kwargs: configured.update(kwargs))
    monkeypatch.setattr(gemini_client.genai, "GenerativeModel", FakeModel)
    return configured


def test_generate_returns_stripped_text_with_timeout(settings, fake_genai):
    client = GeminiClient(replace(settings, gemini_model="models/gemini-test"))

    assert client.generate("prompt") == "Halo kak!"

    assert fake_genai == {"api_key": "test-key"}
    model = FakeModel.instances[0]
    assert model.name == "gemini-test"
    prompt, kwargs = model.calls[0]
    assert prompt == "prompt"
    assert kwargs["request_options"] == {"timeout": settings.generation_timeout_sec}
    assert kwargs["generation_config"]["max_output_tokens"] == settings.max_output_tokens


def test_model_instances_are_cached(settings, fake_genai):
    client = GeminiClient(settings)

    client.generate("one")
    client.generate("two")

    assert len(FakeModel.instances) == 1
    assert len(FakeModel.instances[0].calls) == 2


def test_missing_key_raises_without_calling_sdk(settings, fake_genai):
    client = GeminiClient(replace(settings, gemini_api_key=""))

    assert client.is_configured is False
    with pytest.raises(BackendError) as excinfo:
        client.generate("prompt")
    assert excinfo.value.code == "API_KEY_REQUIRED"
    assert fake_genai == {}


@pytest.mark.parametrize(
    "error,code,retryable",
    [
        (google_exceptions.DeadlineExceeded("slow"), "BACKEND_UNAVAILABLE", True),
        (google_exceptions.ResourceExhausted("quota"), "BACKEND_UNAVAILABLE", True),
        (google_exceptions.InvalidArgument("bad prompt"), "BACKEND_ERROR", False),
        (TimeoutError("socket"), "BACKEND_TIMEOUT", True),
    ],
)
def test_sdk_errors_map_to_backend_error(settings, fake_genai, error, code, retryable):
    client = GeminiClient(settings)
    client.generate("warm up")
    FakeModel.instances[0].error = error

    with pytest.raises(BackendError) as excinfo:
        client.generate("prompt")

    assert excinfo.value.code == code
    assert excinfo.value.retryable is retryable


@pytest.mark.parametrize("response", [FakeResponse(blocked=True), FakeResponse(text="   ")])
def test_blocked_or_empty_response(settings, fake_genai, response):
    client = GeminiClient(settings)
    client.generate("warm up")
    FakeModel.instances[0].response = response

    with pytest.raises(BackendError) as excinfo:
        client.generate("prompt")
    assert excinfo.value.code == "EMPTY_RESPONSE"


def test_normalize_model_name():
    assert _normalize_model_name(" models/gemini-2.5-flash ") == "gemini-2.5-flash"
    assert _normalize_model_name("gemini-2.5-flash") == "gemini-2.5-flash"
    assert _normalize_model_name(None) == ""
