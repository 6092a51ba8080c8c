"""Completion Gateway 抽象接口。

上层（ContextManager、ChatAgent）不直接依赖具体厂商的 HTTP 实现，而是依赖此协议：

- 每个厂商实现一个网关（如 PerplexityClient）。
- 负责：将消息列表与参数转成具体 API 请求，并把响应 JSON 解析为 ChatResult，
  同时把各种失败统一转换为 domain.exceptions 中的错误类型。

网关本身不包含任何上下文压缩策略，也不会自动重试。
"""

from typing import Any, Dict, Optional, Protocol, Sequence

from chat_core.domain.models import ChatMessage, ChatResult, CompletionOptions


class CompletionGateway(Protocol):
    """补全网关协议。

    实现者需要提供：
    - name: Provider 名称，用于日志。
    - complete(messages, options): 执行一次补全调用，返回统一的 ChatResult。
    - masked_api_key / default_model: 供 /api-key、启动日志展示。
    """

    name: str
    masked_api_key: str
    default_model: str

    def complete(self, messages: Sequence[ChatMessage], options: Optional[CompletionOptions] = None) -> ChatResult:
        ...

    def ask(self, question: str, options: Optional[CompletionOptions] = None) -> str:
        ...

    def ask_with_context(
        self,
        question: str,
        prior_messages: Sequence[ChatMessage],
        options: Optional[CompletionOptions] = None,
    ) -> str:
        ...

    def list_models(self) -> Dict[str, Any]:
        ...
