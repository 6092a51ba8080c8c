"""会话上下文管理。

决定一段会话是否需要压缩，并执行压缩：把除最后一条消息以外的历史
交给网关生成摘要，然后用 `[system 摘要, 最后一条消息]` 替换原会话。
最后一条消息（当前问题）始终原样保留。
"""

import logging
from typing import Any, Optional, Sequence

from chat_core.domain.conversation import render_transcript, total_chars
from chat_core.domain.exceptions import ValidationError
from chat_core.domain.models import ChatMessage, CompletionOptions, SummarizationOutcome
from chat_core.infrastructure.logging.logger import logger
from chat_core.prompts import render_summary_prompt
from chat_core.providers.base import CompletionGateway


# 粗略估算：4 个字符约等于 1 个 token，不依赖任何 tokenizer
CHARS_PER_TOKEN = 4
DEFAULT_MAX_MESSAGES = 20
DEFAULT_MAX_TOKEN_ESTIMATE = 3000
# 摘要输出的 token 上限，调用方只能调低不能调高
SUMMARY_MAX_TOKENS = 500
SUMMARY_PREFIX = "Previous conversation summary: "
NO_SUMMARY = "Unable to generate summary"


class ContextManager:
    """上下文压缩策略。

    Args:
        gateway: 用于生成摘要的补全网关。
        max_messages: 消息数达到该值即需要压缩。
        max_token_estimate: 估算 token 数达到该值即需要压缩。
        chars_per_token: token 估算系数。
    """

    def __init__(
        self,
        gateway: CompletionGateway,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        max_token_estimate: int = DEFAULT_MAX_TOKEN_ESTIMATE,
        chars_per_token: int = CHARS_PER_TOKEN,
    ):
        self._gateway = gateway
        self.max_messages = max_messages
        self.max_token_estimate = max_token_estimate
        self.chars_per_token = chars_per_token

    def estimate_tokens(self, conversation: Sequence[ChatMessage]) -> float:
        return total_chars(conversation) / self.chars_per_token

    def should_summarize(
        self,
        conversation: Sequence[ChatMessage],
        max_messages: Optional[int] = None,
        max_token_estimate: Optional[int] = None,
    ) -> bool:
        """消息数或估算 token 数达到阈值时返回 True，无副作用。"""

        max_messages = self.max_messages if max_messages is None else max_messages
        max_token_estimate = self.max_token_estimate if max_token_estimate is None else max_token_estimate
        if len(conversation) >= max_messages:
            return True
        return total_chars(conversation) >= max_token_estimate * self.chars_per_token

    def summarize_text(self, messages: Sequence[ChatMessage], options: Optional[CompletionOptions] = None) -> str:
        """为整段消息生成摘要文本。

        对话记录被渲染为 `role: content` 行，套入摘要提示词后作为单条
        user 消息发送；max_tokens 不超过 SUMMARY_MAX_TOKENS。
        网关抛出的异常原样向上传播。
        """

        prompt = render_summary_prompt(render_transcript(messages))
        opts = (options or CompletionOptions()).merged(None)
        if opts.max_tokens is None or opts.max_tokens > SUMMARY_MAX_TOKENS:
            opts.max_tokens = SUMMARY_MAX_TOKENS
        result = self._gateway.complete([ChatMessage(role="user", content=prompt)], opts)
        if not result.has_choices:
            return NO_SUMMARY
        return result.text

    def summarize(
        self,
        conversation: Sequence[ChatMessage],
        options: Optional[CompletionOptions] = None,
    ) -> SummarizationOutcome:
        """压缩会话：摘要替换历史，保留最后一条消息。

        历史部分为空（只有一条消息）时不做任何事，返回原会话的拷贝。
        摘要失败时不会退回到未压缩的会话，异常直接传播。
        """

        if not conversation:
            raise ValidationError(code="INVALID_REQUEST", message="Cannot summarize an empty conversation")
        prefix = list(conversation[:-1])
        tail = conversation[-1]
        if not prefix:
            return SummarizationOutcome(
                summary=None,
                original_message_count=len(conversation),
                replacement_conversation=list(conversation),
            )

        self._log(
            logging.INFO,
            "Summarizing conversation",
            message_count=len(conversation),
            estimated_tokens=round(self.estimate_tokens(conversation)),
        )
        summary = self.summarize_text(prefix, options)
        summary_message = ChatMessage(role="system", content=f"{SUMMARY_PREFIX}{summary}")
        return SummarizationOutcome(
            summary=summary,
            original_message_count=len(conversation),
            replacement_conversation=[summary_message, tail],
        )

    def compact(
        self,
        conversation: Sequence[ChatMessage],
        options: Optional[CompletionOptions] = None,
    ) -> SummarizationOutcome:
        """按策略决定是否压缩，不需要压缩时返回原会话的拷贝。"""

        if conversation and self.should_summarize(conversation):
            return self.summarize(conversation, options)
        return SummarizationOutcome(
            summary=None,
            original_message_count=len(conversation),
            replacement_conversation=list(conversation),
        )

    @staticmethod
    def _log(level: int, message: str, **fields: Any) -> None:
        logger.log(level, message, extra={"extra": fields})
