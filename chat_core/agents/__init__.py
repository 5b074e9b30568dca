"""对话编排：一轮对话的状态机与标题生成。"""

from chat_core.agents.chat_orchestrator import ChatOrchestrator, TurnOutcome, TurnState

__all__ = ["ChatOrchestrator", "TurnOutcome", "TurnState"]
