"""LLM Provider 集成层。

该包下的模块负责：
- 定义网关抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供具体实现 (perplexity_client)。
"""

from typing import Optional

from chat_core.config.settings import settings
from chat_core.providers.base import CompletionGateway
from chat_core.providers.perplexity_client import PerplexityClient
from chat_core.providers.registry import get_provider_config


def create_provider(name: Optional[str] = None, config=None) -> CompletionGateway:
    """根据名称创建网关实例，config 为空时使用全局配置。

    未配置 API Key 时抛出 ConfigurationError。
    """

    provider_config = get_provider_config(name or "perplexity")
    return PerplexityClient(config or settings, provider_config)
