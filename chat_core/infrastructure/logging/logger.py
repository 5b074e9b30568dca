import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from chat_core.config.settings import settings

# extra 中可能携带用户/模型文本的字段
CONTENT_FIELDS = frozenset({"frame", "title", "content", "text", "input"})
REDACT_LIMIT = 64
_HANDLER_MARK = "_chat_core_json"


def _truncate(value: Any) -> Any:
    if isinstance(value, str) and len(value) > REDACT_LIMIT:
        return value[:REDACT_LIMIT] + "…"
    return value


class JsonFormatter(logging.Formatter):
    """每条记录输出一行 JSON；``extra={"extra": {...}}`` 中的字段合并到顶层。

    redact 为 True 时，消息正文与 CONTENT_FIELDS 中的字段截断到 REDACT_LIMIT 个字符。
    """

    def __init__(self, redact: bool = False, content_fields: Iterable[str] = CONTENT_FIELDS):
        super().__init__()
        self.redact = redact
        self.content_fields = frozenset(content_fields)

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if self.redact:
            payload["msg"] = _truncate(payload["msg"])
            for key in self.content_fields & payload.keys():
                payload[key] = _truncate(payload[key])
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger(log_dir: Optional[str | Path] = None, redact: Optional[bool] = None) -> logging.Logger:
    """给 ``chat_core`` logger 安装 JSON 文件 handler（只安装一次）。"""

    logger = logging.getLogger("chat_core")
    logger.setLevel(logging.INFO)
    if any(getattr(h, _HANDLER_MARK, False) for h in logger.handlers):
        return logger
    directory = Path(log_dir or settings.log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(directory / "chat.log", encoding="utf-8")
    handler.setLevel(logging.INFO)
    handler.setFormatter(JsonFormatter(redact=settings.log_redact_content if redact is None else redact))
    setattr(handler, _HANDLER_MARK, True)
    logger.addHandler(handler)
    return logger


logger = setup_logger()
