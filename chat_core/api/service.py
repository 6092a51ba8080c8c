"""对外服务函数。

提供简化的函数接口供 HTTP 层调用：输入为已校验的参数，
输出为可直接序列化为 JSON 的字典。Agent 由调用方显式传入。
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

from chat_core.agents.chat_agent import ChatAgent
from chat_core.domain.models import ChatMessage, CompletionOptions
from chat_core.domain.exceptions import BusinessError
from chat_core.infrastructure.logging.logger import logger


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def run_ask(agent: ChatAgent, question: str, options: Optional[CompletionOptions] = None) -> Dict[str, Any]:
    """单轮提问。

    Returns:
        包含 question、answer、timestamp 的字典
    """
    try:
        answer = agent.ask(question, options)
    except BusinessError as e:
        _log_failure("/ask", e)
        raise
    return {"question": question, "answer": answer, "timestamp": _now()}


def run_chat(
    agent: ChatAgent,
    messages: Sequence[ChatMessage],
    options: Optional[CompletionOptions] = None,
) -> Dict[str, Any]:
    """带上下文对话（必要时自动压缩）。

    Returns:
        包含 Provider 原始响应与压缩元数据的字典：
        response、summarized、summary、originalMessageCount、finalMessageCount、timestamp
    """
    try:
        turn = agent.chat(messages, options)
    except BusinessError as e:
        _log_failure("/chat", e, message_count=len(messages))
        raise
    return {
        "response": turn.result.raw,
        "summarized": turn.summarized,
        "summary": turn.summary,
        "originalMessageCount": turn.original_message_count,
        "finalMessageCount": turn.final_message_count,
        "timestamp": _now(),
    }


def run_summarize(agent: ChatAgent, messages: Sequence[ChatMessage]) -> Dict[str, Any]:
    """手动摘要整段会话。"""
    try:
        summary = agent.summarize(messages)
    except BusinessError as e:
        _log_failure("/summarize", e, message_count=len(messages))
        raise
    return {"summary": summary, "originalMessageCount": len(messages), "timestamp": _now()}


def list_models(agent: ChatAgent) -> Dict[str, Any]:
    try:
        return agent.gateway.list_models()
    except BusinessError as e:
        _log_failure("/models", e)
        raise


def _log_failure(endpoint: str, error: BusinessError, **fields: Any) -> None:
    payload = {"endpoint": endpoint, "code": error.code, "error": error.message}
    payload.update(fields)
    logger.error(f"Error in {endpoint}: {error.message}", extra={"extra": payload})
