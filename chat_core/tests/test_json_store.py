import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from chat_core.domain.conversation import Message
from chat_core.domain.exceptions import BusinessError
from chat_core.domain.models import Annotation
from chat_core.infrastructure.storage.json_store import JsonConversationHistory


def test_history_add_and_get_conversation():
    with tempfile.TemporaryDirectory() as d:
        history = JsonConversationHistory(root=Path(d) / ".storage")
        citation = Annotation(kind="url_citation", start_index=0, end_index=4, url="https://example.com", title="Ex")
        conv = history.add_conversation(
            "Greeting",
            [
                Message(content="Hello", is_user_message=True),
                Message(content="Hi ✓", annotations=[citation]),
                Message(content="Network Error: offline", is_error=True),
            ],
        )
        loaded = history.get_conversation(conv.id)
        assert loaded.title == "Greeting"
        assert [m.content for m in loaded.messages] == ["Hello", "Hi ✓", "Network Error: offline"]
        assert [m.is_user_message for m in loaded.messages] == [True, False, False]
        assert loaded.messages[1].annotations == [citation]
        assert loaded.messages[2].is_error is True
        assert loaded.messages[0].id == conv.messages[0].id


def test_history_lists_newest_first_and_skips_corrupt_files():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / ".storage"
        history = JsonConversationHistory(root=root)
        now = datetime.now(timezone.utc)
        old = history.add_conversation("old", [Message(content="a")], timestamp=now - timedelta(days=1))
        new = history.add_conversation("new", [Message(content="b")], timestamp=now)
        (root / "conversations" / "broken.json").write_text("{not json", encoding="utf-8")

        assert [c.id for c in history.list_conversations()] == [new.id, old.id]


def test_history_remove_conversation():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / ".storage"
        history = JsonConversationHistory(root=root)
        conv = history.add_conversation("temp", [])
        assert (root / "conversations" / f"{conv.id}.json").exists()
        history.remove_conversation(conv.id)
        assert conv.id not in {c.id for c in history.list_conversations()}
        with pytest.raises(BusinessError) as exc_info:
            history.remove_conversation(conv.id)
        assert exc_info.value.code == "CONVERSATION_NOT_FOUND"


def test_history_get_missing_conversation():
    with tempfile.TemporaryDirectory() as d:
        history = JsonConversationHistory(root=Path(d) / ".storage")
        with pytest.raises(BusinessError) as exc_info:
            history.get_conversation("c-missing")
        assert exc_info.value.code == "STORE_READ_ERROR"
