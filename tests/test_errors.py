import httpx
import openai
import pytest

from picobot.errors import UpstreamError, UpstreamErrorKind, classify_upstream_error
from picobot.providers import litellm_provider
from picobot.providers.litellm_provider import LiteLLMProvider

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def test_connection_error_is_no_response():
    error = classify_upstream_error(openai.APIConnectionError(request=REQUEST))
    assert error.kind == UpstreamErrorKind.NO_RESPONSE


def test_timeout_is_no_response():
    error = classify_upstream_error(openai.APITimeoutError(request=REQUEST), backend="image")
    assert error.kind == UpstreamErrorKind.NO_RESPONSE
    assert error.backend == "image"


def test_status_error_uses_body_message():
    exc = openai.BadRequestError(
        "Error code: 400",
        response=httpx.Response(400, request=REQUEST),
        body={"error": {"message": "Your request was rejected by the safety system."}},
    )
    error = classify_upstream_error(exc)
    assert error.kind == UpstreamErrorKind.API
    assert error.message == "Your request was rejected by the safety system."


def test_api_error_without_body_uses_exception_message():
    error = classify_upstream_error(openai.APIError("quota exceeded", REQUEST, body=None))
    assert error.kind == UpstreamErrorKind.API
    assert error.message == "quota exceeded"


def test_other_exceptions_are_unknown():
    error = classify_upstream_error(RuntimeError("boom"))
    assert error.kind == UpstreamErrorKind.UNKNOWN
    assert error.message == "boom"


def test_upstream_error_passes_through():
    original = UpstreamError(UpstreamErrorKind.API, "already classified")
    assert classify_upstream_error(original) is original


async def test_litellm_provider_wraps_backend_errors(monkeypatch):
    async def fail(**kwargs):
        raise openai.APIConnectionError(request=REQUEST)

    monkeypatch.setattr(litellm_provider, "acompletion", fail)
    provider = LiteLLMProvider(api_key="sk-test")

    with pytest.raises(UpstreamError) as exc_info:
        await provider.chat([{"role": "user", "content": "Hello"}])
    assert exc_info.value.kind == UpstreamErrorKind.NO_RESPONSE
