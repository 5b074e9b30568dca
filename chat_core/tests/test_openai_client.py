import json
from contextlib import aclosing

import httpx
import pytest

from chat_core.config.settings import SessionConfig
from chat_core.domain.exceptions import (
    DecodingError,
    InvalidAPIKeyError,
    InvalidAudioFileError,
    InvalidURLError,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
    ServerError,
)
from chat_core.domain.models import ChatMessage, ChatTurnRequest, DeltaEvent, DoneEvent
from chat_core.providers import create_provider
from chat_core.providers.openai_client import OpenAIClient, parse_chat_completion

CONFIG = SessionConfig(api_key="sk-test-key", model="gpt-test", base_url="https://api.example.com/v1")


class FakeResponse:
    def __init__(self, status_code=200, payload=None, content=b"", chunks=()):
        self.status_code = status_code
        if payload is not None:
            content = json.dumps(payload).encode()
        self.content = content
        self._chunks = list(chunks)

    @property
    def text(self):
        return self.content.decode("utf-8", errors="replace")

    def json(self):
        return json.loads(self.content)

    async def aread(self):
        return self.content

    async def aiter_bytes(self):
        for chunk in self._chunks:
            yield chunk


class StreamContext:
    def __init__(self, response, captured):
        self._response = response
        self._captured = captured

    async def __aenter__(self):
        return self._response

    async def __aexit__(self, *args):
        self._captured["stream_closed"] = True
        return False


def fake_async_client(response=None, captured=None, error=None):
    captured = captured if captured is not None else {}

    class Client:
        def __init__(self, *a, **kw):
            captured["client_kwargs"] = kw

        async def __aenter__(self):
            return self

        async def __aexit__(self, *a):
            return False

        async def request(self, method, url, **kw):
            captured.update(method=method, url=url, **kw)
            if error is not None:
                raise error
            return response

        def stream(self, method, url, **kw):
            captured.update(method=method, url=url, **kw)
            if error is not None:
                raise error
            return StreamContext(response, captured)

    return Client


def _completion(content):
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1712563200,
        "model": "gpt-test",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
    }


@pytest.mark.asyncio
async def test_send_chat_completion(monkeypatch):
    captured = {}
    monkeypatch.setattr("httpx.AsyncClient", fake_async_client(FakeResponse(payload=_completion("ok")), captured))
    client = OpenAIClient(CONFIG)
    res = await client.send_chat_completion([ChatMessage(role="user", content="hi")], model="gpt-test")
    assert res == "ok"
    assert captured["method"] == "POST"
    assert captured["url"] == "https://api.example.com/v1/chat/completions"
    assert captured["headers"]["Authorization"] == "Bearer sk-test-key"
    assert captured["json"] == {
        "model": "gpt-test",
        "messages": [{"role": "user", "content": "hi"}],
        "temperature": 0.7,
    }


@pytest.mark.asyncio
async def test_request_encode_and_response_decode_keep_content(monkeypatch):
    captured = {}
    content = "Salut ! Voici la réponse."
    monkeypatch.setattr("httpx.AsyncClient", fake_async_client(FakeResponse(payload=_completion(content)), captured))
    req = ChatTurnRequest(model="gpt-test", input=[ChatMessage(role="assistant", content=content)])
    res = await OpenAIClient(CONFIG).complete(req)
    assert res == captured["json"]["messages"][0]["content"] == content


@pytest.mark.parametrize(
    "status, error_type",
    [(401, InvalidAPIKeyError), (429, RateLimitError), (500, ServerError), (404, ServerError)],
)
@pytest.mark.asyncio
async def test_status_classification(monkeypatch, status, error_type):
    monkeypatch.setattr("httpx.AsyncClient", fake_async_client(FakeResponse(status_code=status, content=b"nope")))
    with pytest.raises(error_type) as exc_info:
        await OpenAIClient(CONFIG).send_chat_completion([ChatMessage(role="user", content="hi")], model="m")
    if error_type is ServerError:
        assert exc_info.value.status_code == status


@pytest.mark.parametrize(
    "error, error_type",
    [
        (httpx.ReadTimeout("timed out"), RequestTimeoutError),
        (httpx.ConnectError("refused"), NetworkError),
        (httpx.UnsupportedProtocol("ftp"), InvalidURLError),
    ],
)
@pytest.mark.asyncio
async def test_transport_errors_are_classified(monkeypatch, error, error_type):
    monkeypatch.setattr("httpx.AsyncClient", fake_async_client(error=error))
    with pytest.raises(error_type) as exc_info:
        await OpenAIClient(CONFIG).fetch_models()
    assert exc_info.value.__cause__ is error


@pytest.mark.asyncio
async def test_invalid_json_is_decoding_error(monkeypatch):
    monkeypatch.setattr("httpx.AsyncClient", fake_async_client(FakeResponse(content=b"<html>")))
    with pytest.raises(DecodingError):
        await OpenAIClient(CONFIG).send_chat_completion([], model="m")


def test_parse_chat_completion_shapes():
    assert parse_chat_completion({"choices": []}) == ""
    assert parse_chat_completion(_completion(None)) == ""
    with pytest.raises(DecodingError):
        parse_chat_completion({"object": "error"})


@pytest.mark.asyncio
async def test_fetch_models_sorted(monkeypatch):
    captured = {}
    payload = {"data": [{"id": "gpt-4o"}, {"id": "dall-e-3"}, {"id": "gpt-3.5-turbo"}]}
    monkeypatch.setattr("httpx.AsyncClient", fake_async_client(FakeResponse(payload=payload), captured))
    models = await OpenAIClient(CONFIG).fetch_models()
    assert models == ["dall-e-3", "gpt-3.5-turbo", "gpt-4o"]
    assert captured["method"] == "GET"
    assert captured["url"].endswith("/models")


@pytest.mark.asyncio
async def test_transcribe_audio_multipart(monkeypatch, tmp_path):
    audio = tmp_path / "recording.m4a"
    audio.write_bytes(b"\x00\x01audio")
    captured = {}
    monkeypatch.setattr("httpx.AsyncClient", fake_async_client(FakeResponse(payload={"text": "bonjour"}), captured))
    text = await OpenAIClient(CONFIG).transcribe_audio(audio)
    assert text == "bonjour"
    assert captured["url"].endswith("/audio/transcriptions")
    assert captured["files"]["file"] == ("recording.m4a", b"\x00\x01audio", "audio/m4a")
    assert captured["data"] == {"model": "whisper-1"}


@pytest.mark.asyncio
async def test_transcribe_missing_or_empty_file(tmp_path):
    client = OpenAIClient(CONFIG)
    with pytest.raises(InvalidAudioFileError):
        await client.transcribe_audio(tmp_path / "missing.m4a")
    empty = tmp_path / "empty.m4a"
    empty.write_bytes(b"")
    with pytest.raises(InvalidAudioFileError):
        await client.transcribe_audio(empty)


@pytest.mark.asyncio
async def test_generate_speech_returns_raw_bytes(monkeypatch):
    captured = {}
    monkeypatch.setattr("httpx.AsyncClient", fake_async_client(FakeResponse(content=b"ID3mp3"), captured))
    audio = await OpenAIClient(CONFIG).generate_speech("Hello", model="tts-1", voice="nova")
    assert audio == b"ID3mp3"
    assert captured["json"] == {"model": "tts-1", "input": "Hello", "voice": "nova"}


def _sse(event_type, payload):
    return f"event: {event_type}\ndata: {json.dumps(payload)}\n\n".encode()


@pytest.mark.asyncio
async def test_stream_response_yields_events(monkeypatch):
    body = (
        _sse("response.output_text.delta", {"delta": "Hel"})
        + _sse("response.output_text.delta", {"delta": "lo"})
        + _sse("response.output_text.done", {"text": "Hello", "annotations": []})
    )
    chunks = [body[:7], body[7:50], body[50:]]
    captured = {}
    monkeypatch.setattr("httpx.AsyncClient", fake_async_client(FakeResponse(chunks=chunks), captured))
    client = create_provider(CONFIG)
    events = [e async for e in client.stream_response("hi", model="gpt-test")]
    assert events == [DeltaEvent(text="Hel"), DeltaEvent(text="lo"), DoneEvent(text="Hello")]
    assert captured["url"].endswith("/responses")
    assert captured["json"] == {"model": "gpt-test", "input": "hi", "tools": [], "stream": True}
    assert captured["headers"]["Authorization"] == "Bearer sk-test-key"
    assert captured["stream_closed"] is True


@pytest.mark.asyncio
async def test_stream_closed_when_consumer_stops_early(monkeypatch):
    body = _sse("response.output_text.done", {"text": "x"}) + _sse("response.output_text.delta", {"delta": "late"})
    captured = {}
    monkeypatch.setattr("httpx.AsyncClient", fake_async_client(FakeResponse(chunks=[body, body]), captured))
    async with aclosing(OpenAIClient(CONFIG).stream_response("hi", model="m")) as events:
        async for event in events:
            assert isinstance(event, DoneEvent)
            break
    assert captured["stream_closed"] is True


@pytest.mark.asyncio
async def test_stream_response_status_error(monkeypatch):
    monkeypatch.setattr("httpx.AsyncClient", fake_async_client(FakeResponse(status_code=401, content=b"{}")))
    with pytest.raises(InvalidAPIKeyError):
        async for _ in OpenAIClient(CONFIG).stream_response("hi", model="m"):
            pass
