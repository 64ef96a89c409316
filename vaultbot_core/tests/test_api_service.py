import pytest

from conftest import FakeResponse, FakeStreamResponse, make_config, sse
from vaultbot_core.api import service
from vaultbot_core.domain.exceptions import ProviderError, ValidationError
from vaultbot_core.domain.models import ChatMessage
from vaultbot_core.services.model_service import get_model_service


@pytest.fixture(autouse=True)
def fresh_model_cache():
    get_model_service().clear_cache()
    yield
    get_model_service().clear_cache()


def test_to_messages_accepts_dicts_and_messages():
    messages = service.to_messages(
        [{"role": "system", "content": "s"}, ChatMessage(role="user", content="u"), {"role": "assistant"}]
    )
    assert [(m.role, m.content) for m in messages] == [("system", "s"), ("user", "u"), ("assistant", "")]

    with pytest.raises(ValidationError) as exc_info:
        service.to_messages([{"role": "tool", "content": "x"}])
    assert exc_info.value.code == "INVALID_ROLE"

    with pytest.raises(ValidationError) as exc_info:
        service.to_messages([("user", "hi")])
    assert exc_info.value.code == "INVALID_MESSAGE"


@pytest.mark.asyncio
async def test_stream_chat(fake_http):
    fake_http.streams.append(FakeStreamResponse([sse("Hi"), sse(" there")]))
    config = make_config("openrouter", openrouter={"api_key": "k"})
    received = []

    await service.stream_chat([{"role": "user", "content": "Hello"}], received.append, config=config)

    assert received == ["Hi", " there"]
    assert fake_http.requests[0]["json"]["messages"] == [{"role": "user", "content": "Hello"}]


@pytest.mark.asyncio
async def test_stream_prompt_raises_provider_error(fake_http):
    fake_http.streams.append(FakeStreamResponse(status_code=500, body="internal"))
    config = make_config("openai", openai={"api_key": "k"})

    with pytest.raises(ProviderError):
        await service.stream_prompt("Hello", lambda _: None, config=config)


@pytest.mark.asyncio
async def test_validate_api_key_returns_dict(fake_http):
    fake_http.gets.append(FakeResponse(200, {"data": []}))

    result = await service.validate_api_key(make_config("openai", openai={"api_key": "k"}))

    assert result == {"valid": True, "error": None}


@pytest.mark.asyncio
async def test_list_models_uses_shared_cache(fake_http):
    fake_http.gets.append(FakeResponse(200, {"data": [{"id": "gpt-4o"}]}))
    config = make_config("openai", openai={"api_key": "k"})

    await service.list_models(config=config)
    models = await service.list_models(config=config)

    assert [m.id for m in models] == ["gpt-4o"]
    assert len(fake_http.requests) == 1


@pytest.mark.asyncio
async def test_generate_title(fake_http):
    fake_http.streams.append(FakeStreamResponse([sse("Trip ideas")]))

    title = await service.generate_title("Where should we go?", config=make_config("openai", openai={"api_key": "k"}))

    assert title == "Trip ideas"
