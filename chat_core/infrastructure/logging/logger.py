import json
import logging
from contextvars import ContextVar
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from chat_core.config.settings import settings


# 当前请求的追踪 ID，由 HTTP 中间件或 ChatAgent 绑定
trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)


def new_trace_id() -> str:
    return f"tr-{uuid4().hex}"


class JsonFormatter(logging.Formatter):
    """每条记录输出一行 JSON；extra 中的字段平铺到顶层。"""

    def __init__(self, redact_content: bool = False):
        super().__init__()
        self.redact_content = redact_content

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if self.redact_content:
            msg = (msg or "")[:64]
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        trace_id = trace_id_var.get()
        if trace_id:
            payload["trace_id"] = trace_id
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger() -> logging.Logger:
    logger = logging.getLogger("chat_core")
    logger.setLevel(logging.INFO)
    if logger.handlers:
        return logger
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir / "chat.log", encoding="utf-8")
    fh.setLevel(logging.INFO)
    fh.setFormatter(JsonFormatter(redact_content=settings.log_redact_content))
    logger.addHandler(fh)
    return logger


logger = setup_logger()
