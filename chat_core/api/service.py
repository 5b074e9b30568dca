"""对外 API 服务模块。

提供简化的同步函数接口供脚本与上层应用调用，
内部通过 asyncio.run 驱动 ChatOrchestrator。
"""

import asyncio
from typing import Any, Dict, List, Optional

from chat_core.agents.chat_orchestrator import ChatOrchestrator
from chat_core.config.settings import settings
from chat_core.infrastructure.audio import FileAudioSink
from chat_core.infrastructure.logging.logger import logger
from chat_core.infrastructure.storage.json_store import JsonConversationHistory
from chat_core.providers import create_provider


_history: Optional[JsonConversationHistory] = None
_orchestrator: Optional[ChatOrchestrator] = None


def get_history() -> JsonConversationHistory:
    global _history
    if _history is None:
        _history = JsonConversationHistory(root=settings.storage_root)
    return _history


def get_default_orchestrator() -> ChatOrchestrator:
    """获取默认的 ChatOrchestrator 实例（单例）。"""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = ChatOrchestrator(settings_provider=settings, audio_sink=FileAudioSink())
    return _orchestrator


async def _run_turn(orchestrator: ChatOrchestrator, user_input: str):
    outcome = await orchestrator.send_message(user_input)
    # 同步接口返回前等待标题/朗读完成，避免事件循环关闭时任务被取消
    await orchestrator.wait_for_side_effects()
    return outcome


def run_chat(user_input: str) -> Dict[str, Any]:
    """运行一轮对话。

    Args:
        user_input: 用户输入内容

    Returns:
        包含本轮结果、最后一条助手消息、会话标题与错误信息的字典
    """
    orchestrator = get_default_orchestrator()
    try:
        outcome = asyncio.run(_run_turn(orchestrator, user_input))
    except Exception as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {"error": str(e)}})
        raise

    last = orchestrator.messages[-1] if orchestrator.messages else None
    return {
        "outcome": outcome.value,
        "title": orchestrator.conversation_title,
        "assistant_message": None if last is None or last.is_user_message else {
            "id": last.id,
            "content": last.content,
            "created_at": last.timestamp.isoformat(),
            "annotations": [a.to_dict() for a in last.annotations],
            "is_error": last.is_error,
        },
        "error": orchestrator.error_message,
    }


def list_models() -> List[str]:
    """列出账户可用的模型 ID（按字典序）。"""
    return asyncio.run(create_provider(settings.snapshot()).fetch_models())


def save_and_reset() -> Optional[str]:
    """保存当前会话到历史记录并开始新会话，返回保存的会话 ID。"""
    orchestrator = get_default_orchestrator()
    conversation_id = orchestrator.save_conversation(get_history())
    orchestrator.reset_conversation()
    return conversation_id


def list_conversations() -> List[Dict[str, Any]]:
    """列出所有已保存会话（最新在前）。"""
    return [
        {
            "id": c.id,
            "title": c.title,
            "timestamp": c.timestamp.isoformat(),
            "message_count": len(c.messages),
        }
        for c in get_history().list_conversations()
    ]


def get_conversation_messages(conversation_id: str) -> List[Dict[str, Any]]:
    """获取已保存会话的所有消息。"""
    conv = get_history().get_conversation(conversation_id)
    return [
        {
            "id": m.id,
            "role": m.role,
            "content": m.content,
            "created_at": m.timestamp.isoformat(),
            "is_error": m.is_error,
        }
        for m in conv.messages
    ]
