"""统一的对话与结果数据模型。

本模块定义了 chat_core 内部共享的标准数据结构：

- ChatMessage: 一条对话消息（system/user/assistant）。
- CompletionOptions: 调用方可调整的生成参数，以及透传给 Provider 的额外字段。
- CompletionRequest: 发给 Provider 的完整请求。
- ChatResult: 从 Provider 解析后的统一响应结果。
- SummarizationOutcome / ChatTurn: 上下文压缩与一次完整对话轮次的结果。
- StreamEvent: 模拟流式输出时推送给前端的事件。

所有模型都是请求级别的值对象，不会跨请求保存。
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional


# 消息角色，与 OpenAI / Perplexity 的 role 字段对应
Role = Literal["system", "user", "assistant"]
ROLES = ("system", "user", "assistant")

# Provider 没有返回任何 choice 时的占位回答，不视为错误
NO_RESPONSE = "No response received"

# 这些字段由请求构造逻辑自己控制，不允许通过 extra 覆盖
RESERVED_OPTION_KEYS = frozenset({"model", "messages", "max_tokens", "temperature", "stream"})


@dataclass
class ChatMessage:
    """一条对话消息。"""

    role: Role
    content: str

    def to_payload(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class CompletionOptions:
    """一次补全调用的可选参数。

    - model: 模型 ID，为空时使用配置中的默认模型。
    - max_tokens: 最大生成 token 数，必须为正整数。
    - temperature: 采样温度，约定取值 [0, 2]；网关层不做截断。
    - extra: 透传给 Provider 的其他字段（如 top_p、search_recency_filter），
      RESERVED_OPTION_KEYS 中的键会被忽略。
    """

    model: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "CompletionOptions":
        """把自由格式的参数字典拆分为具名字段与透传字段。"""

        data = dict(data or {})
        extra = {k: v for k, v in data.items() if k not in RESERVED_OPTION_KEYS and v is not None}
        return cls(
            model=data.get("model"),
            max_tokens=data.get("max_tokens"),
            temperature=data.get("temperature"),
            extra=extra,
        )

    def merged(self, override: Optional["CompletionOptions"]) -> "CompletionOptions":
        """返回以 override 中非空字段覆盖当前字段后的新对象。"""

        if override is None:
            return CompletionOptions(self.model, self.max_tokens, self.temperature, dict(self.extra))
        extra = dict(self.extra)
        extra.update(override.extra)
        return CompletionOptions(
            model=override.model if override.model is not None else self.model,
            max_tokens=override.max_tokens if override.max_tokens is not None else self.max_tokens,
            temperature=override.temperature if override.temperature is not None else self.temperature,
            extra=extra,
        )

    def passthrough(self) -> Dict[str, Any]:
        return {k: v for k, v in self.extra.items() if k not in RESERVED_OPTION_KEYS}


@dataclass
class CompletionRequest:
    """一次完整的补全请求，由网关按调用临时构造。"""

    model: str
    messages: List[ChatMessage]
    max_tokens: int
    temperature: float
    stream: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_payload() for m in self.messages],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "stream": self.stream,
        }
        payload.update(self.extra)
        return payload


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatResult:
    """一次补全调用的结果。

    - text: 第一个 choice 的消息内容；没有 choice 时为 NO_RESPONSE。
    - usage: 可选的 token 使用统计。
    - raw: 原始响应 JSON，/chat 接口原样返回给调用方。
    - has_choices: Provider 是否返回了至少一个 choice。
    """

    model: str
    text: str
    usage: Optional[ChatUsage] = None
    raw: Dict[str, Any] = field(default_factory=dict)
    has_choices: bool = True


@dataclass
class SummarizationOutcome:
    """一次上下文压缩的结果。

    summary 为 None 表示没有发生压缩，此时 replacement_conversation
    是原始会话的拷贝。
    """

    summary: Optional[str]
    original_message_count: int
    replacement_conversation: List[ChatMessage]

    @property
    def summarized(self) -> bool:
        return self.summary is not None


@dataclass
class ChatTurn:
    """ChatAgent.chat 的返回值：补全结果加上下文压缩元数据。"""

    result: ChatResult
    summarized: bool
    summary: Optional[str]
    original_message_count: int
    final_message_count: int
    messages: List[ChatMessage]


StreamEventKind = Literal["status", "summary", "content", "done", "error"]


@dataclass
class StreamEvent:
    """模拟流式输出中的单个事件。

    kind:
        - "status": 进度提示（正在压缩上下文、正在生成回答）。
        - "summary": 上下文压缩完成，携带摘要与原消息数。
        - "content": 回答的一段增量文本。
        - "done": 结束事件，携带压缩元数据。
        - "error": 流开始后发生的错误，之后不再有事件。
    """

    kind: StreamEventKind
    data: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.kind}
        payload.update(self.data)
        return payload

    def to_sse(self) -> str:
        return f"data: {json.dumps(self.to_payload(), ensure_ascii=False)}\n\n"
