"""会话（消息序列）的解析与渲染。

会话始终由调用方持有并按值传入，这里只负责把外部 JSON 转成
ChatMessage 列表，以及把消息列表渲染成纯文本对话记录。
"""

from typing import Any, Iterable, List, Sequence

from .exceptions import ValidationError
from .models import ROLES, ChatMessage


Conversation = List[ChatMessage]


def parse_message(item: Any, index: int = 0) -> ChatMessage:
    if isinstance(item, ChatMessage):
        return item
    if not isinstance(item, dict):
        raise ValidationError(code="INVALID_MESSAGE", message=f"Message {index} must be an object with role and content")
    role = item.get("role")
    content = item.get("content")
    if role not in ROLES:
        raise ValidationError(
            code="INVALID_ROLE",
            message=f"Message {index} has invalid role {role!r}; expected one of {', '.join(ROLES)}",
        )
    if not isinstance(content, str):
        raise ValidationError(code="INVALID_MESSAGE", message=f"Message {index} content must be a string")
    return ChatMessage(role=role, content=content)


def parse_conversation(data: Any) -> Conversation:
    """把调用方提供的消息数组解析为 ChatMessage 列表。

    data 不是数组、或其中任一元素的 role/content 不合法时抛出 ValidationError。
    空数组是合法的会话，是否允许为空由具体操作决定。
    """

    if not isinstance(data, (list, tuple)):
        raise ValidationError(
            code="MISSING_FIELD",
            message="Please provide a messages array in the request body",
        )
    return [parse_message(item, i) for i, item in enumerate(data)]


def render_transcript(messages: Iterable[ChatMessage]) -> str:
    """渲染为 `role: content` 形式的逐行对话记录。"""

    return "\n".join(f"{m.role}: {m.content}" for m in messages)


def total_chars(messages: Sequence[ChatMessage]) -> int:
    return sum(len(m.content) for m in messages)
