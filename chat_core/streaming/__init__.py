"""流式响应解码（text/event-stream → StreamEvent）。"""

from chat_core.streaming.decoder import DELTA_EVENT, DONE_EVENT, StreamFrameDecoder

__all__ = ["DELTA_EVENT", "DONE_EVENT", "StreamFrameDecoder"]
