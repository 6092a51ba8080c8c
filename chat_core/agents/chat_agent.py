"""对话 Agent 核心模块。

把上下文压缩策略（ContextManager）与补全网关组合起来，提供：

- ask / chat / summarize：同步调用，返回完整结果。
- ask_stream / chat_stream：以 StreamEvent 形式模拟流式输出。

Agent 不保存任何会话状态，会话由调用方按值传入。
"""

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from chat_core.agents.context_manager import ContextManager
from chat_core.agents.streaming import DEFAULT_CHUNK_DELAY, SimulatedStream
from chat_core.domain.exceptions import BusinessError, ValidationError
from chat_core.domain.models import (
    ChatMessage,
    ChatResult,
    ChatTurn,
    CompletionOptions,
    StreamEvent,
)
from chat_core.infrastructure.logging.logger import logger, new_trace_id, trace_id_var
from chat_core.providers.base import CompletionGateway


# 非业务异常对外只给出通用描述
UNEXPECTED_ERROR = "Something went wrong"


class ChatAgent:
    def __init__(
        self,
        gateway: CompletionGateway,
        context_manager: Optional[ContextManager] = None,
        stream_delay: float = DEFAULT_CHUNK_DELAY,
    ):
        self._gateway = gateway
        self._context = context_manager or ContextManager(gateway)
        self._stream_delay = stream_delay

    @property
    def gateway(self) -> CompletionGateway:
        return self._gateway

    @property
    def context_manager(self) -> ContextManager:
        return self._context

    def ask(self, question: str, options: Optional[CompletionOptions] = None) -> str:
        if not question:
            raise ValidationError(code="MISSING_FIELD", message="Please provide a question in the request body")
        return self._gateway.ask(question, options)

    def summarize(self, messages: Sequence[ChatMessage], options: Optional[CompletionOptions] = None) -> str:
        """手动摘要：对整段会话生成摘要文本，不保留最后一条消息。"""

        if not messages:
            raise ValidationError(code="INVALID_REQUEST", message="Cannot summarize an empty conversation")
        return self._context.summarize_text(messages, options)

    def chat(self, messages: Sequence[ChatMessage], options: Optional[CompletionOptions] = None) -> ChatTurn:
        """执行一次带上下文的对话。

        1. 按策略判断是否需要压缩，需要时用摘要替换历史。
        2. 把（可能已压缩的）会话交给网关生成回答。
        3. 返回回答与压缩元数据。
        """

        log_ctx = self._log_ctx()
        start_time = time.time()
        final_messages, summary = self._prepare(messages, options, log_ctx)
        result = self._gateway.complete(final_messages, options)
        self._log(
            logging.INFO,
            "Completed chat turn",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
            summarized=summary is not None,
        )
        return self._turn(result, messages, final_messages, summary)

    async def ask_stream(self, question: str, options: Optional[CompletionOptions] = None) -> AsyncIterator[StreamEvent]:
        """单轮提问的流式版本，以 done 事件结束。"""

        log_ctx = self._log_ctx()
        try:
            result = await asyncio.to_thread(
                self._gateway.complete,
                [ChatMessage(role="user", content=question)],
                options,
            )
            async for event in self._content_events(result.text):
                yield event
            yield StreamEvent(
                kind="done",
                data={"summarized": False, "summary": None, "originalMessageCount": 1, "finalMessageCount": 1},
            )
        except BusinessError as e:
            self._log(logging.ERROR, "Streaming failed", log_ctx, error=e.message, code=e.code)
            yield StreamEvent(kind="error", data={"error": e.message})
        except Exception as e:
            # 流已开始，无法再返回 HTTP 错误，只能以 error 事件结束
            logger.error("Unexpected streaming failure", exc_info=e, extra={"extra": dict(log_ctx)})
            yield StreamEvent(kind="error", data={"error": UNEXPECTED_ERROR})

    async def chat_stream(
        self,
        messages: Sequence[ChatMessage],
        options: Optional[CompletionOptions] = None,
    ) -> AsyncIterator[StreamEvent]:
        """带上下文对话的流式版本。

        事件顺序：[status, summary]（仅在压缩时）→ status → content* → done；
        流开始后的任何业务错误都会转成一个 error 事件并结束。
        """

        log_ctx = self._log_ctx()
        original_count = len(messages)
        try:
            summary = None
            final_messages: List[ChatMessage] = list(messages)
            if messages and self._context.should_summarize(messages) and len(messages) > 1:
                yield StreamEvent(kind="status", data={"message": "Summarizing conversation history..."})
                outcome = await asyncio.to_thread(self._context.summarize, messages, self._summary_options(options))
                summary = outcome.summary
                final_messages = outcome.replacement_conversation
                self._log(logging.INFO, "Conversation summarized", log_ctx, original_message_count=original_count)
                yield StreamEvent(
                    kind="summary",
                    data={"summary": summary, "originalMessageCount": original_count},
                )

            yield StreamEvent(kind="status", data={"message": "Generating response..."})
            result = await asyncio.to_thread(self._gateway.complete, final_messages, options)
            async for event in self._content_events(result.text):
                yield event
            yield StreamEvent(
                kind="done",
                data={
                    "summarized": summary is not None,
                    "summary": summary,
                    "originalMessageCount": original_count,
                    "finalMessageCount": len(final_messages),
                },
            )
        except BusinessError as e:
            self._log(logging.ERROR, "Streaming failed", log_ctx, error=e.message, code=e.code)
            yield StreamEvent(kind="error", data={"error": e.message})
        except Exception as e:
            # 流已开始，无法再返回 HTTP 错误，只能以 error 事件结束
            logger.error("Unexpected streaming failure", exc_info=e, extra={"extra": dict(log_ctx)})
            yield StreamEvent(kind="error", data={"error": UNEXPECTED_ERROR})

    async def _content_events(self, text: str) -> AsyncIterator[StreamEvent]:
        async for chunk in SimulatedStream(text, self._stream_delay):
            yield StreamEvent(kind="content", data={"choices": [{"delta": {"content": chunk}}]})

    def _prepare(
        self,
        messages: Sequence[ChatMessage],
        options: Optional[CompletionOptions],
        log_ctx: Dict[str, Any],
    ):
        if not messages:
            raise ValidationError(code="INVALID_REQUEST", message="Messages array is required")
        outcome = self._context.compact(messages, self._summary_options(options))
        if outcome.summarized:
            self._log(
                logging.INFO,
                "Conversation summarized",
                log_ctx,
                original_message_count=outcome.original_message_count,
                final_message_count=len(outcome.replacement_conversation),
            )
        return outcome.replacement_conversation, outcome.summary

    @staticmethod
    def _summary_options(options: Optional[CompletionOptions]) -> CompletionOptions:
        # 摘要只沿用调用方选择的模型，其余参数使用默认值
        return CompletionOptions(model=options.model if options else None)

    @staticmethod
    def _turn(
        result: ChatResult,
        messages: Sequence[ChatMessage],
        final_messages: List[ChatMessage],
        summary: Optional[str],
    ) -> ChatTurn:
        return ChatTurn(
            result=result,
            summarized=summary is not None,
            summary=summary,
            original_message_count=len(messages),
            final_message_count=len(final_messages),
            messages=final_messages,
        )

    @staticmethod
    def _log_ctx() -> Dict[str, Any]:
        # 复用请求级追踪 ID，脱离 HTTP 调用时自行生成
        return {"trace_id": trace_id_var.get() or new_trace_id()}

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
