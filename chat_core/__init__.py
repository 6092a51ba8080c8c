"""Chat Core 顶层包。

该包是 Perplexity 对话补全 API 的轻量封装，包括配置加载、领域模型、
Provider 网关、上下文压缩策略、模拟流式输出，以及对外的 HTTP 服务。
"""

from chat_core.agents.chat_agent import ChatAgent
from chat_core.agents.context_manager import ContextManager
from chat_core.providers.perplexity_client import PerplexityClient

__all__ = ["ChatAgent", "ContextManager", "PerplexityClient"]
