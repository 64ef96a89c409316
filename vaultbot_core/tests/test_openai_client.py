import json

import httpx
import pytest

from conftest import FakeResponse, FakeStreamResponse, sse
from vaultbot_core.config.settings import OpenAISettings
from vaultbot_core.domain.exceptions import ProviderError, StreamingError
from vaultbot_core.domain.models import ChatMessage
from vaultbot_core.providers.openai_client import OpenAIClient


def make_client(**overrides):
    fields = {"api_key": "sk-test", "model": "gpt-4o", "temperature": 0.7}
    fields.update(overrides)
    return OpenAIClient(OpenAISettings(**fields), http_timeout=1.0)


HI = [ChatMessage(role="user", content="Hi")]


@pytest.mark.asyncio
async def test_openai_stream_delivers_fragments_in_order(fake_http):
    fake_http.streams.append(FakeStreamResponse([sse("Hel"), sse("lo"), "data: [DONE]"]))
    received = []

    await make_client().stream_completion(HI, received.append)

    assert received == ["Hel", "lo"]
    req = fake_http.requests[0]
    assert req["url"] == "https://api.openai.com/v1/chat/completions"
    assert req["headers"]["Authorization"] == "Bearer sk-test"
    assert req["json"] == {
        "model": "gpt-4o",
        "messages": [{"role": "user", "content": "Hi"}],
        "temperature": 0.7,
        "stream": True,
    }


@pytest.mark.asyncio
async def test_openai_forwards_empty_fragments(fake_http):
    lines = [
        sse(None),  # 首块只有 role
        sse("a"),
        ": keep-alive",
        "not json",
        sse("", finish_reason="stop"),
        'data: {"choices": [], "usage": {"total_tokens": 3}}',
        "data: [DONE]",
    ]
    fake_http.streams.append(FakeStreamResponse(lines))
    received = []

    await make_client().stream_completion(HI, received.append)

    assert received == ["", "a", ""]


@pytest.mark.asyncio
async def test_stream_prompt_injects_system_prompt(fake_http):
    fake_http.streams.append(FakeStreamResponse([sse("ok")]))

    await make_client(system_prompt="Be brief.").stream_prompt("Hi", lambda _: None)

    messages = fake_http.requests[0]["json"]["messages"]
    assert messages == [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "Hi"},
    ]


@pytest.mark.asyncio
async def test_temperature_rejection_retries_once_with_default(fake_http):
    body = json.dumps({"error": {"message": "model does not support temperature=0.2"}})
    fake_http.streams.append(FakeStreamResponse(status_code=400, body=body))
    fake_http.streams.append(FakeStreamResponse([sse("fine")]))
    received = []

    await make_client(temperature=0.2).stream_completion(HI, received.append)

    assert received == ["fine"]
    temps = [r["json"]["temperature"] for r in fake_http.requests]
    assert temps == [0.2, 1.0]


@pytest.mark.asyncio
async def test_no_retry_when_temperature_is_already_default(fake_http):
    body = "model does not support temperature=1.0"
    fake_http.streams.append(FakeStreamResponse(status_code=400, body=body))

    with pytest.raises(ProviderError) as exc_info:
        await make_client(temperature=1.0).stream_completion(HI, lambda _: None)

    assert str(exc_info.value) == "Failed to get response from OpenAI."
    assert len(fake_http.requests) == 1


@pytest.mark.asyncio
async def test_retry_failure_is_terminal(fake_http):
    body = "temperature: this model does not support 0.5"
    fake_http.streams.append(FakeStreamResponse(status_code=400, body=body))
    fake_http.streams.append(FakeStreamResponse(status_code=400, body=body))

    with pytest.raises(ProviderError):
        await make_client(temperature=0.5).stream_completion(HI, lambda _: None)

    assert len(fake_http.requests) == 2


@pytest.mark.asyncio
async def test_other_rejection_is_wrapped_without_retry(fake_http):
    fake_http.streams.append(FakeStreamResponse(status_code=401, body='{"error": {"message": "bad key"}}'))

    with pytest.raises(ProviderError) as exc_info:
        await make_client(temperature=0.2).stream_completion(HI, lambda _: None)

    err = exc_info.value
    assert not isinstance(err, StreamingError)
    assert err.provider == "openai"
    assert err.__cause__.http_status == 401
    assert len(fake_http.requests) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [FakeStreamResponse(status_code=401, body="bad key"), httpx.ConnectError("connection refused")],
)
async def test_failed_stream_is_not_reported_as_empty(fake_http, caplog, response):
    fake_http.streams.append(response)

    with caplog.at_level("WARNING", logger="vaultbot_core"):
        with pytest.raises(ProviderError):
            await make_client().stream_completion(HI, lambda _: None)

    assert any(r.levelname == "ERROR" for r in caplog.records)
    assert not any("no data was received" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_network_error_is_wrapped(fake_http):
    fake_http.streams.append(httpx.ConnectError("connection refused"))

    with pytest.raises(ProviderError) as exc_info:
        await make_client().stream_completion(HI, lambda _: None)

    assert str(exc_info.value) == "Failed to get response from OpenAI."


@pytest.mark.asyncio
async def test_interrupted_stream_is_classified_as_streaming_error(fake_http):
    fake_http.streams.append(FakeStreamResponse([sse("par"), httpx.ReadError("reset")]))
    received = []

    with pytest.raises(StreamingError) as exc_info:
        await make_client(temperature=0.2).stream_completion(HI, received.append)

    assert received == ["par"]
    assert str(exc_info.value).startswith("OpenAI streaming failed:")
    assert len(fake_http.requests) == 1


@pytest.mark.asyncio
async def test_missing_api_key_fails_without_request(fake_http):
    with pytest.raises(ProviderError):
        await make_client(api_key="").stream_completion(HI, lambda _: None)
    assert fake_http.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response, expected",
    [
        (FakeResponse(200, {"data": []}), (True, None)),
        (FakeResponse(401, text="nope"), (False, "Invalid API key")),
        (FakeResponse(429, text="slow down"), (False, "Rate limit exceeded")),
        (FakeResponse(500, text="boom"), (False, "OpenAI service temporarily unavailable")),
        (FakeResponse(503), (False, "OpenAI service temporarily unavailable")),
        (FakeResponse(403, text="forbidden region"), (False, "forbidden region")),
        (FakeResponse(404), (False, "Unknown error occurred")),
        (httpx.ConnectError("dns failure"), (False, "dns failure")),
        (httpx.ConnectError(""), (False, "Network error occurred")),
    ],
)
async def test_validate_api_key_classification(fake_http, response, expected):
    fake_http.gets.append(response)

    result = await make_client().validate_api_key()

    assert (result.valid, result.error) == expected
    assert fake_http.requests[0]["url"] == "https://api.openai.com/v1/models"
    assert fake_http.requests[0]["headers"]["Authorization"] == "Bearer sk-test"


@pytest.mark.asyncio
async def test_list_models_filters_and_sorts(fake_http):
    fake_http.gets.append(
        FakeResponse(
            200,
            {"data": [{"id": "gpt-4o"}, {"id": "whisper-1"}, {"id": "o1-mini"}, {"id": "gpt-4"}, {"id": "gpt-5-x"}]},
        )
    )

    models = await make_client().list_models()

    assert [m.id for m in models] == ["gpt-4", "gpt-4o", "gpt-5-x", "o1-mini"]
    by_id = {m.id: m for m in models}
    assert by_id["gpt-4"].context_length == 8192
    assert by_id["gpt-5-x"].context_length == 4096
    assert by_id["o1-mini"].description == "OpenAI o1-mini"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [FakeResponse(500, text="down"), httpx.ConnectError("offline"), FakeResponse(200, text="<html>")],
)
async def test_list_models_falls_back_on_failure(fake_http, response):
    fake_http.gets.append(response)

    models = await make_client().list_models()

    assert models
    assert "gpt-4o" in {m.id for m in models}
    names = [m.name for m in models]
    assert names == sorted(names, key=str.casefold)
