"""HTTP 请求体模型。

除具名字段外，请求体中的其他字段都会作为透传参数交给 Provider。
"""

from typing import Any, ClassVar, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field

from chat_core.domain.models import CompletionOptions


class OptionsBody(BaseModel):
    model_config = ConfigDict(extra="allow")

    # 请求体自身的字段，不属于补全参数
    body_fields: ClassVar[FrozenSet[str]] = frozenset()

    model: Optional[str] = None
    max_tokens: Optional[int] = Field(default=None, gt=0)
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)

    def to_options(self) -> CompletionOptions:
        return CompletionOptions.from_mapping(self.model_dump(exclude=set(self.body_fields)))


class AskBody(OptionsBody):
    body_fields: ClassVar[FrozenSet[str]] = frozenset({"question"})

    question: Optional[str] = None


class MessagesBody(OptionsBody):
    body_fields: ClassVar[FrozenSet[str]] = frozenset({"messages"})

    # 保持宽松类型，由 parse_conversation 给出统一的 400 错误信息
    messages: Any = None
