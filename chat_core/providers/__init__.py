"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护端点与默认模型配置 (registry)。
- 带凭据与状态码归类的 HTTP 传输 (transport)。
- 具体实现 (openai_client)。
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from chat_core.providers.base import CompletionProvider
from chat_core.providers.openai_client import OpenAIClient
from chat_core.providers.registry import get_provider_config

if TYPE_CHECKING:
    from chat_core.config.settings import SessionConfig


def create_provider(config: SessionConfig, name: str = "openai") -> CompletionProvider:
    """根据名称与配置快照创建 Provider 实例。"""

    return OpenAIClient(config, provider=get_provider_config(name))


__all__ = ["CompletionProvider", "OpenAIClient", "create_provider"]
