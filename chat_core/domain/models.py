"""统一的请求与流式事件数据模型。

本模块定义了编排层与 Provider 之间共享的标准数据结构：

- ChatMessage: 发给补全端点的一条带角色的消息（user/assistant/system）。
- ChatTurnRequest: 一轮对话的完整请求，按是否流式序列化成不同的 JSON 请求体。
- Annotation: 流式回答完成时附带的引用片段，原样透传。
- DeltaEvent / DoneEvent / UnrecognizedEvent: 流式解码器产出的事件。

Provider 适配器只依赖这些模型，并负责在 API JSON 与这些模型之间做转换。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union


# 与补全端点 role 字段对应
Role = Literal["system", "user", "assistant"]


@dataclass
class ChatMessage:
    """一条带角色的请求消息。"""

    role: Role
    content: str

    def to_payload(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ToolDescriptor:
    """流式端点 tools 列表中的一项，例如 {"type": "web_search_preview"}。"""

    type: str

    def to_payload(self) -> Dict[str, str]:
        return {"type": self.type}


@dataclass
class ChatTurnRequest:
    """一轮对话请求，每次请求时重新构建，不做持久化。

    - model: 具体模型 ID，例如 "gpt-3.5-turbo"。
    - input: 单条提示文本（流式模式），或按顺序排列的带角色消息列表（普通模式）。
    - streaming: 为 True 时序列化为流式端点的请求体。
    - tools: 仅流式端点使用。
    - temperature: 仅普通补全端点使用。
    """

    model: str
    input: Union[str, List[ChatMessage]]
    streaming: bool = False
    tools: List[ToolDescriptor] = field(default_factory=list)
    temperature: Optional[float] = 0.7

    @property
    def messages(self) -> List[ChatMessage]:
        if isinstance(self.input, str):
            return [ChatMessage(role="user", content=self.input)]
        return list(self.input)

    def to_payload(self) -> Dict[str, Any]:
        if self.streaming:
            if isinstance(self.input, str):
                input_payload: Any = self.input
            else:
                input_payload = [m.to_payload() for m in self.input]
            return {
                "model": self.model,
                "input": input_payload,
                "tools": [t.to_payload() for t in self.tools],
                "stream": True,
            }
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_payload() for m in self.messages],
        }
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        return payload


@dataclass
class Annotation:
    """流式回答完成时附带的引用片段。"""

    kind: str
    start_index: int
    end_index: int
    url: str
    title: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Annotation":
        """按 {type,start_index,end_index,url,title?} 解析；缺字段时抛 KeyError。"""

        return cls(
            kind=data["type"],
            start_index=int(data["start_index"]),
            end_index=int(data["end_index"]),
            url=data["url"],
            title=data.get("title"),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": self.kind,
            "start_index": self.start_index,
            "end_index": self.end_index,
            "url": self.url,
        }
        if self.title is not None:
            payload["title"] = self.title
        return payload


@dataclass
class DeltaEvent:
    """流式回答的一个增量片段。"""

    text: str
    kind: Literal["delta"] = "delta"


@dataclass
class DoneEvent:
    """流式回答的终止事件，携带权威的完整文本与引用列表。"""

    text: str
    annotations: List[Annotation] = field(default_factory=list)
    kind: Literal["done"] = "done"


@dataclass
class UnrecognizedEvent:
    """未识别的事件类型，只记录日志，不影响后续解码。"""

    event_type: str
    kind: Literal["unrecognized"] = "unrecognized"


StreamEvent = Union[DeltaEvent, DoneEvent, UnrecognizedEvent]
