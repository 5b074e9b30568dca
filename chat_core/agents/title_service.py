"""会话标题生成。

把完整对话整理成 ``User: ... / Assistant: ...`` 文本，
再通过一次非流式补全请求生成简短标题。
"""

from typing import Sequence

from chat_core.domain.conversation import Message
from chat_core.domain.models import ChatMessage
from chat_core.providers.base import CompletionProvider

TITLE_SYSTEM_PROMPT = (
    "You are a helpful assistant that generates concise, descriptive titles for conversations. "
    "Your response should be a single line title that captures the main topic or theme of the "
    "conversation. Do not include any additional text or formatting. Make it short and concise."
)


def format_transcript(messages: Sequence[Message]) -> str:
    return "\n".join(
        f"{'User' if m.is_user_message else 'Assistant'}: {m.content}" for m in messages
    )


class ConversationTitleService:
    def __init__(self, provider: CompletionProvider, model: str):
        self._provider = provider
        self._model = model

    async def generate_title(self, messages: Sequence[Message]) -> str:
        prompt = [
            ChatMessage(role="system", content=TITLE_SYSTEM_PROMPT),
            ChatMessage(
                role="user",
                content=f"Please generate a title for this conversation:\n\n{format_transcript(messages)}",
            ),
        ]
        title = await self._provider.send_chat_completion(prompt, model=self._model)
        return title.strip()
