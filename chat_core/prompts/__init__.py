"""提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取提示词模板，
目前只有会话摘要一种模板，模板中的 {conversation} 会被替换为对话记录。
"""

from functools import lru_cache
from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=None)
def load_prompt(name: str, locale: str = "en") -> str:
    fname = PROMPTS_DIR / locale / f"{name}.md"
    return fname.read_text(encoding="utf-8").rstrip("\n")


def render_summary_prompt(conversation_text: str, locale: str = "en") -> str:
    """把对话记录套入摘要提示词模板。"""

    return load_prompt("conversation_summary", locale).format(conversation=conversation_text)
