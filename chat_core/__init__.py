"""Chat Core 顶层包。

该包提供语音对话客户端的核心实现，
包括配置加载、领域模型、补全服务适配、流式响应解码、
对话编排状态机以及会话历史持久化等能力。
"""

from chat_core.agents import ChatOrchestrator, TurnOutcome, TurnState

__all__ = ["ChatOrchestrator", "TurnOutcome", "TurnState"]
