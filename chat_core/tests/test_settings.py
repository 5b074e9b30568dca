import pytest

from chat_core.config.settings import SessionConfig, Settings
from chat_core.domain.exceptions import InvalidAPIKeyError, NetworkError, ServerError, describe_error
from chat_core.domain.models import ChatMessage, ChatTurnRequest, ToolDescriptor
from chat_core.providers import create_provider
from chat_core.providers.openai_client import OpenAIClient


def test_snapshot_copies_values():
    s = Settings(openai_api_key="  sk-abc  ", chat_model="gpt-4o", use_streaming_response_mode=True, tts_voice="nova")
    snap = s.snapshot()
    assert snap.api_key == "sk-abc"
    assert snap.model == "gpt-4o"
    assert snap.use_streaming_response_mode is True
    assert snap.tts_voice == "nova"
    assert snap.is_configured

    s.chat_model = "gpt-3.5-turbo"
    assert snap.model == "gpt-4o"


def test_blank_key_is_not_configured():
    assert Settings(openai_api_key="   ").snapshot().api_key == ""
    assert not SessionConfig(api_key="\t", model="m").is_configured


def test_key_from_environment(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("USE_STREAMING_RESPONSE_MODE", "true")
    snap = Settings().snapshot()
    assert snap.api_key == "sk-env"
    assert snap.use_streaming_response_mode is True


def test_unknown_voice_warns():
    with pytest.warns(UserWarning):
        Settings(tts_voice="robot")


def test_create_provider():
    provider = create_provider(SessionConfig(api_key="k", model="m"))
    assert isinstance(provider, OpenAIClient)
    with pytest.raises(KeyError):
        create_provider(SessionConfig(api_key="k", model="m"), name="nope")


def test_request_payload_shapes():
    plain = ChatTurnRequest(model="m", input=[ChatMessage(role="user", content="hi")]).to_payload()
    assert plain == {"model": "m", "messages": [{"role": "user", "content": "hi"}], "temperature": 0.7}

    streaming = ChatTurnRequest(
        model="m",
        input="hi",
        streaming=True,
        tools=[ToolDescriptor(type="web_search_preview")],
    ).to_payload()
    assert streaming == {"model": "m", "input": "hi", "tools": [{"type": "web_search_preview"}], "stream": True}


def test_describe_error():
    assert "API key" in describe_error(InvalidAPIKeyError())
    assert describe_error(ServerError(502)) == "API Error: server returned HTTP 502."
    assert describe_error(NetworkError("offline")) == "Network Error: offline"
    assert describe_error(RuntimeError("x")).startswith("An unexpected error occurred")
