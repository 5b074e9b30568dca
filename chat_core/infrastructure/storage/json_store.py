import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from chat_core.config.settings import settings
from chat_core.domain.conversation import Conversation, Message
from chat_core.domain.exceptions import BusinessError
from chat_core.domain.models import Annotation


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_dt(value: str) -> datetime:
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class JsonConversationHistory:
    """已保存会话的本地历史，每个会话一个 JSON 文件。

    list_conversations 按时间倒序返回（最新保存的在最前）。
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._conv_root = self._root / "conversations"
        self._conv_root.mkdir(parents=True, exist_ok=True)

    def add_conversation(
        self,
        title: str,
        messages: Sequence[Message],
        timestamp: Optional[datetime] = None,
    ) -> Conversation:
        conv = Conversation(
            id=f"c-{uuid4().hex}",
            title=title,
            messages=list(messages),
            timestamp=timestamp or datetime.now(timezone.utc),
        )
        self._write(conv)
        return conv

    def get_conversation(self, conversation_id: str) -> Conversation:
        path = self._conv_root / f"{conversation_id}.json"
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return self._to_conversation(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))

    def list_conversations(self) -> List[Conversation]:
        items: List[Conversation] = []
        for path in self._conv_root.glob("*.json"):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                items.append(self._to_conversation(data))
            except (OSError, ValueError, KeyError, TypeError):
                # 损坏的文件跳过，不影响其他会话
                continue
        items.sort(key=lambda c: c.timestamp, reverse=True)
        return items

    def remove_conversation(self, conversation_id: str) -> None:
        path = self._conv_root / f"{conversation_id}.json"
        if not path.exists():
            raise BusinessError(code="CONVERSATION_NOT_FOUND", message=conversation_id)
        try:
            path.unlink()
        except OSError as e:
            raise BusinessError(code="STORE_DELETE_ERROR", message=str(e))

    def _write(self, conv: Conversation) -> None:
        path = self._conv_root / f"{conv.id}.json"
        tmp_path = self._conv_root / f"{conv.id}.{uuid4().hex}.json.tmp"
        obj = {
            "id": conv.id,
            "title": conv.title,
            "timestamp": _iso(conv.timestamp),
            "messages": [self._message_to_dict(m) for m in conv.messages],
        }
        try:
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))

    @staticmethod
    def _message_to_dict(message: Message) -> Dict[str, Any]:
        return {
            "id": message.id,
            "content": message.content,
            "is_user_message": message.is_user_message,
            "timestamp": _iso(message.timestamp),
            "annotations": [a.to_dict() for a in message.annotations],
            "is_error": message.is_error,
        }

    def _to_conversation(self, data: Dict[str, Any]) -> Conversation:
        return Conversation(
            id=data["id"],
            title=data.get("title") or "",
            timestamp=_parse_dt(data["timestamp"]),
            messages=[self._to_message(m) for m in data.get("messages") or []],
        )

    @staticmethod
    def _to_message(data: Dict[str, Any]) -> Message:
        return Message(
            id=data["id"],
            content=data.get("content") or "",
            is_user_message=bool(data.get("is_user_message")),
            timestamp=_parse_dt(data["timestamp"]),
            annotations=[Annotation.from_payload(a) for a in data.get("annotations") or []],
            is_error=bool(data.get("is_error", False)),
        )
