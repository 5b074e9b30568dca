"""Provider 抽象接口。

编排器不直接依赖具体厂商的 HTTP 细节，而是依赖此协议：

- 每个厂商实现一个 CompletionProvider（如 OpenAIClient）。
- 负责：把 ChatTurnRequest 转成具体 API 请求，并把响应解析为文本或 StreamEvent。

测试中可以用实现同样方法的假对象替换真实客户端。
"""

from pathlib import Path
from typing import AsyncIterator, Iterable, List, Protocol, Sequence

from chat_core.domain.models import ChatMessage, ChatTurnRequest, StreamEvent, ToolDescriptor


class CompletionProvider(Protocol):
    """补全服务客户端协议。"""

    name: str

    async def complete(self, request: ChatTurnRequest) -> str:
        ...

    async def send_chat_completion(self, messages: Sequence[ChatMessage], model: str) -> str:
        ...

    def stream_response(
        self,
        input_text: str,
        model: str,
        tools: Iterable[ToolDescriptor] = (),
    ) -> AsyncIterator[StreamEvent]:
        """流式调用，逐个产出解码后的事件。"""

        ...

    async def fetch_models(self) -> List[str]:
        ...

    async def transcribe_audio(self, file_path: Path) -> str:
        ...

    async def generate_speech(self, text: str, model: str, voice: str) -> bytes:
        ...
