"""流式响应帧解码器。

responses 端点以 text/event-stream 形式返回回答，每个事件由空行分隔，
事件内包含一行 ``event: <type>`` 与一行 ``data: <json>``::

    event: response.output_text.delta
    data: {"type": "response.output_text.delta", "delta": "Hel", ...}

    event: response.output_text.done
    data: {"type": "response.output_text.done", "text": "Hello", "annotations": []}

网络分块可能在任意字节处切断事件（甚至切断一个多字节字符），
因此解码器按字节缓存，遇到空行才把一个完整事件解码为 UTF-8。
单个事件无法解码（非法字节、JSON 错误、字段类型不对）只记录日志并跳过，
不会中断整个流。
"""

import json
import logging
from typing import List, Optional

from chat_core.domain.models import Annotation, DeltaEvent, DoneEvent, StreamEvent, UnrecognizedEvent

logger = logging.getLogger("chat_core.streaming")

DELTA_EVENT = "response.output_text.delta"
DONE_EVENT = "response.output_text.done"
# UTF-8 多字节序列中不会出现 0x0A，按字节切分是安全的
EVENT_DELIMITER = b"\n\n"


class StreamFrameDecoder:
    """把逐步到达的字节块转换为 StreamEvent 序列。

    每个进行中的请求使用一个独立实例；实例只在单个执行上下文中调用。
    """

    def __init__(self) -> None:
        self._buffer = b""

    def feed(self, chunk: bytes) -> List[StreamEvent]:
        """追加一个字节块，返回其中已完整的事件（按到达顺序）。"""

        if not chunk:
            return []
        self._buffer = (self._buffer + chunk).replace(b"\r\n", b"\n")
        frames = self._buffer.split(EVENT_DELIMITER)
        # 最后一段可能是不完整的事件，留到下一次
        self._buffer = frames.pop()
        return self._decode_frames(frames)

    def flush(self) -> List[StreamEvent]:
        """流结束时解码缓冲区中没有结尾空行的最后一个事件。"""

        remaining, self._buffer = self._buffer.strip(b"\r\n"), b""
        if not remaining:
            return []
        return self._decode_frames([remaining])

    @property
    def pending(self) -> bytes:
        return self._buffer

    def _decode_frames(self, frames: List[bytes]) -> List[StreamEvent]:
        events: List[StreamEvent] = []
        for raw in frames:
            if not raw.strip():
                continue
            try:
                frame = raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                logger.warning(
                    "Skipping undecodable stream frame",
                    extra={"extra": {"error": str(exc), "size": len(raw)}},
                )
                continue
            event = self._decode_frame(frame)
            if event is not None:
                events.append(event)
        return events

    def _decode_frame(self, frame: str) -> Optional[StreamEvent]:
        event_type: Optional[str] = None
        data: Optional[str] = None
        for line in frame.split("\n"):
            if line.startswith("event:"):
                event_type = line[len("event:"):].strip()
            elif line.startswith("data:"):
                data = line[len("data:"):].strip()
        if event_type is None or data is None:
            logger.warning("Skipping incomplete stream frame", extra={"extra": {"frame": frame[:200]}})
            return None

        if event_type not in (DELTA_EVENT, DONE_EVENT):
            logger.debug("Unhandled stream event", extra={"extra": {"event_type": event_type}})
            return UnrecognizedEvent(event_type=event_type)

        field = "delta" if event_type == DELTA_EVENT else "text"
        try:
            payload = json.loads(data)
            text = payload[field]
            if not isinstance(text, str):
                raise TypeError(f"{field!r} is {type(text).__name__}, expected str")
            if event_type == DELTA_EVENT:
                return DeltaEvent(text=text)
            annotations = [Annotation.from_payload(a) for a in (payload.get("annotations") or [])]
            return DoneEvent(text=text, annotations=annotations)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning(
                "Skipping malformed stream event",
                extra={"extra": {"event_type": event_type, "error": str(exc)}},
            )
            return None
