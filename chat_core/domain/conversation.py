"""会话领域模型。

- Message: 会话中的一条消息（用户或助手），流式回答期间内容会被反复改写。
- Conversation: 保存到历史记录中的完整会话。
- InMemoryConversationStore: 当前会话的消息列表，变更时通知订阅者。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol
from uuid import uuid4

from .models import Annotation


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Message:
    id: str = field(default_factory=lambda: uuid4().hex)
    content: str = ""
    is_user_message: bool = False
    timestamp: datetime = field(default_factory=_utcnow)
    annotations: List[Annotation] = field(default_factory=list)
    # 失败的回合会把占位消息标记为错误，避免留下空白回答
    is_error: bool = False

    @property
    def role(self) -> str:
        return "user" if self.is_user_message else "assistant"


@dataclass
class Conversation:
    id: str
    title: str
    messages: List[Message]
    timestamp: datetime


# 参数为被修改的消息；None 表示整个会话被清空
MessageListener = Callable[[Optional[Message]], None]


class ConversationStore(Protocol):
    def append(self, message: Message) -> None:
        ...

    def update_last_content(self, content: str) -> Optional[Message]:
        ...

    def messages(self) -> List[Message]:
        ...

    def clear(self) -> None:
        ...


class InMemoryConversationStore:
    """当前对话的有序消息列表。

    编排器是唯一的写入方：只会追加消息，或改写最后一条消息的内容。
    每次变更后同步通知订阅者（UI、测试），参数为被修改的 Message；
    clear() 之后以 None 通知。
    """

    def __init__(self, messages: Optional[List[Message]] = None):
        self._messages: List[Message] = list(messages or [])
        self._listeners: List[MessageListener] = []

    def subscribe(self, listener: MessageListener) -> Callable[[], None]:
        """注册变更回调，返回取消订阅函数。"""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def append(self, message: Message) -> None:
        self._messages.append(message)
        self._notify(message)

    def update_last_content(self, content: str) -> Optional[Message]:
        if not self._messages:
            return None
        last = self._messages[-1]
        last.content = content
        self._notify(last)
        return last

    def messages(self) -> List[Message]:
        return list(self._messages)

    def clear(self) -> None:
        self._messages.clear()
        self._notify(None)

    def _notify(self, message: Optional[Message]) -> None:
        for listener in list(self._listeners):
            listener(message)
