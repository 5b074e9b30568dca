"""OpenAI Provider 适配器。

本模块负责：

1. 接收统一的 ChatTurnRequest / 文本 / 音频文件。
2. 将其转换为各端点的 HTTP 请求（chat/completions、responses、models、
   audio/transcriptions、audio/speech）。
3. 通过 HttpTransport 发送请求，由其处理网络/状态码异常。
4. 将响应 JSON 解析为统一模型，流式响应交给 StreamFrameDecoder 逐帧解码。
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence

import httpx

from chat_core.domain.exceptions import DecodingError, InvalidAudioFileError
from chat_core.domain.models import ChatMessage, ChatTurnRequest, StreamEvent, ToolDescriptor
from chat_core.providers.registry import OPENAI_CONFIG, ProviderConfig
from chat_core.providers.transport import HttpTransport
from chat_core.streaming.decoder import StreamFrameDecoder

if TYPE_CHECKING:
    from chat_core.config.settings import SessionConfig


def parse_chat_completion(data: Any) -> str:
    """读取 choices[0].message.content；没有候选时返回空字符串。"""

    try:
        choices = data["choices"]
        if not choices:
            return ""
        return choices[0]["message"]["content"] or ""
    except (KeyError, IndexError, TypeError) as e:
        raise DecodingError(e) from e


def _json_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodingError(e) from e


class OpenAIClient:
    """OpenAI 客户端实现。

    - name: Provider 名称（供日志/调试使用）。
    - 由 SessionConfig 快照构造，一轮对话内配置不再变化。
    """

    name = "openai"

    def __init__(
        self,
        config: SessionConfig,
        provider: ProviderConfig = OPENAI_CONFIG,
        transport: Optional[HttpTransport] = None,
    ):
        self._config = config
        self._provider = provider
        self._transport = transport or HttpTransport(
            api_key=config.api_key,
            request_timeout=config.request_timeout,
            resource_timeout=config.resource_timeout,
        )

    def _url(self, path: str) -> str:
        return self._provider.url(self._config.base_url, path)

    # ---- 对话 ----

    async def complete(self, request: ChatTurnRequest) -> str:
        """非流式执行一轮 ChatTurnRequest，返回回答文本。"""

        resp = await self._transport.post_json(
            self._url(self._provider.paths.chat_completions),
            request.to_payload(),
        )
        return parse_chat_completion(_json_body(resp))

    async def send_chat_completion(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        temperature: Optional[float] = 0.7,
    ) -> str:
        request = ChatTurnRequest(model=model, input=list(messages), temperature=temperature)
        return await self.complete(request)

    async def stream_response(
        self,
        input_text: str,
        model: str,
        tools: Iterable[ToolDescriptor] = (),
    ) -> AsyncIterator[StreamEvent]:
        """流式调用 responses 端点，逐个产出解码后的 StreamEvent。"""

        request = ChatTurnRequest(model=model, input=input_text, streaming=True, tools=list(tools))
        decoder = StreamFrameDecoder()
        chunks = self._transport.stream_post(
            self._url(self._provider.paths.responses),
            request.to_payload(),
        )
        try:
            async for chunk in chunks:
                for event in decoder.feed(chunk):
                    yield event
            for event in decoder.flush():
                yield event
        finally:
            await chunks.aclose()

    # ---- 模型列表 ----

    async def fetch_models(self) -> List[str]:
        resp = await self._transport.get(self._url(self._provider.paths.models))
        data = _json_body(resp)
        try:
            return sorted(item["id"] for item in data["data"])
        except (KeyError, TypeError) as e:
            raise DecodingError(e) from e

    # ---- 语音 ----

    async def transcribe_audio(self, file_path: str | Path) -> str:
        path = Path(file_path)
        try:
            audio = path.read_bytes()
        except OSError as e:
            raise InvalidAudioFileError(str(path), cause=e) from e
        if not audio:
            raise InvalidAudioFileError(str(path))

        files: Dict[str, Any] = {"file": (path.name or "recording.m4a", audio, "audio/m4a")}
        resp = await self._transport.post_multipart(
            self._url(self._provider.paths.transcriptions),
            files=files,
            data={"model": self._config.transcription_model},
        )
        data = _json_body(resp)
        try:
            return data["text"]
        except (KeyError, TypeError) as e:
            raise DecodingError(e) from e

    async def generate_speech(self, text: str, model: str, voice: str) -> bytes:
        resp = await self._transport.post_json(
            self._url(self._provider.paths.speech),
            {"model": model, "input": text, "voice": voice},
        )
        return resp.content
