"""Perplexity Provider 适配器。

本模块负责：

1. 接收消息列表与 CompletionOptions。
2. 将其转换为 Perplexity `/chat/completions` 的 HTTP 请求。
3. 调用 HTTP 接口，把网络异常 / API 异常统一转换为业务异常。
4. 将响应 JSON 解析为统一的 ChatResult。

每次调用只发出一个请求，超时即失败，不做自动重试。
"""

import time
import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from chat_core.domain.models import (
    NO_RESPONSE,
    ChatMessage,
    ChatResult,
    ChatUsage,
    CompletionOptions,
    CompletionRequest,
)
from chat_core.domain.exceptions import (
    ApiError,
    ConfigurationError,
    InternalError,
    NetworkError,
    ValidationError,
)
from chat_core.providers.registry import PERPLEXITY_CONFIG, ProviderConfig
from chat_core.infrastructure.logging.logger import logger


USER_AGENT = "chat-core/1.0.0"


class PerplexityClient:
    """Perplexity 网关实现。

    每个实例持有自己的 API Key 与默认参数，同一进程内可以存在多个
    配置不同的实例。settings 只需提供 perplexity_api_key 等属性，
    测试中可以传入简单的桩对象。
    """

    name = "perplexity"

    def __init__(self, settings, provider_config: ProviderConfig = PERPLEXITY_CONFIG):
        api_key = getattr(settings, "perplexity_api_key", None)
        if not api_key:
            # 配置缺失：只影响依赖 Provider 的操作，由上层决定如何提示
            raise ConfigurationError(message="PERPLEXITY_API_KEY not set")
        self._api_key: str = api_key
        self._config = provider_config
        self._base_url = (getattr(settings, "perplexity_base_url", None) or provider_config.base_url).rstrip("/")
        self._timeout = getattr(settings, "http_timeout", 30.0)
        self._default_model = getattr(settings, "default_model", None) or provider_config.default_model

    @property
    def default_model(self) -> str:
        return self._default_model

    @property
    def masked_api_key(self) -> str:
        """只显示前 8 个字符的 API Key，用于日志与 /api-key 接口。"""

        if not self._api_key:
            return "No API key set"
        return self._api_key[:8] + "*" * max(0, len(self._api_key) - 8)

    def set_api_key(self, api_key: str) -> None:
        if not api_key:
            raise ValidationError(code="INVALID_API_KEY", message="API key cannot be empty")
        self._api_key = api_key

    def complete(self, messages: Sequence[ChatMessage], options: Optional[CompletionOptions] = None) -> ChatResult:
        """执行一次非流式补全调用。

        步骤：
        1. 校验消息非空、max_tokens 为正整数（temperature 原样透传）。
        2. 结合模型默认参数构造 CompletionRequest。
        3. 发送请求并把网络错误 / HTTP 错误转换为业务异常。
        4. 解析第一个 choice 的内容；没有 choice 时返回 NO_RESPONSE。
        """

        req = self._build_request(messages, options or CompletionOptions())
        start = time.time()
        self._log(logging.INFO, "Calling provider", model=req.model, message_count=len(req.messages))
        data = self._request("POST", "/chat/completions", json=req.to_payload())
        result = self._parse_response(data, req)
        self._log(
            logging.INFO,
            "Provider call completed",
            model=req.model,
            elapsed_seconds=round(time.time() - start, 2),
            has_choices=result.has_choices,
            total_tokens=result.usage.total_tokens if result.usage else None,
        )
        return result

    def ask(self, question: str, options: Optional[CompletionOptions] = None) -> str:
        """单轮提问，返回回答文本。"""

        return self.complete([ChatMessage(role="user", content=question)], options).text

    def ask_with_context(
        self,
        question: str,
        prior_messages: Sequence[ChatMessage],
        options: Optional[CompletionOptions] = None,
    ) -> str:
        """带上下文提问：在 prior_messages 末尾追加一条 user 消息。

        这里不会做任何上下文压缩，压缩策略由 ContextManager 负责。
        """

        messages = list(prior_messages)
        messages.append(ChatMessage(role="user", content=question))
        return self.complete(messages, options).text

    def list_models(self) -> Dict[str, Any]:
        """获取 Provider 的可用模型列表，原样返回。"""

        return self._request("GET", "/models")

    def _build_request(self, messages: Sequence[ChatMessage], options: CompletionOptions) -> CompletionRequest:
        """将消息与参数转成 CompletionRequest，缺省值取自模型配置。"""

        if not messages:
            raise ValidationError(code="INVALID_REQUEST", message="Messages array is required")
        model = options.model or self._default_model
        model_cfg = self._config.model(model)
        max_tokens = options.max_tokens if options.max_tokens is not None else model_cfg.max_tokens
        if isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0:
            raise ValidationError(code="INVALID_REQUEST", message="max_tokens must be a positive integer")
        temperature = options.temperature if options.temperature is not None else model_cfg.default_temperature
        return CompletionRequest(
            model=model,
            messages=list(messages),
            max_tokens=max_tokens,
            temperature=temperature,
            stream=False,
            extra=options.passthrough(),
        )

    def _request(self, method: str, path: str, json: Optional[dict] = None) -> Dict[str, Any]:
        try:
            with httpx.Client(timeout=self._timeout, trust_env=False) as client:
                if method == "GET":
                    resp = client.get(f"{self._base_url}{path}", headers=self._headers())
                else:
                    resp = client.post(f"{self._base_url}{path}", json=json, headers=self._headers())
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接失败、超时等，请求没有拿到响应
            self._log(logging.WARNING, "Provider unreachable", path=path, error=str(e))
            raise NetworkError(
                code="NETWORK_ERROR",
                message="No response from Perplexity API. Check your internet connection.",
                http_status=503,
                cause=str(e),
            )
        if resp.status_code >= 400:
            raise self._api_error(resp)
        try:
            return resp.json()
        except ValueError as e:
            raise InternalError(code="REQUEST_ERROR", message=f"Request Error: {e}", http_status=500)

    def _api_error(self, resp) -> ApiError:
        """把 Provider 的错误响应包装为 ApiError，消息中包含状态码与原因。"""

        try:
            body = resp.json()
        except ValueError:
            body = None
        detail = None
        if isinstance(body, dict):
            err = body.get("error")
            if isinstance(err, dict):
                detail = err.get("message")
            elif isinstance(err, str):
                detail = err
            detail = detail or body.get("message")
        reason = getattr(resp, "reason_phrase", "") or ""
        message = f"Perplexity API Error {resp.status_code} ({reason}): {detail or 'Unknown error'}"
        self._log(logging.WARNING, "Provider returned error", status=resp.status_code, reason=reason)
        return ApiError(code="API_ERROR", message=message, http_status=502, status=resp.status_code)

    def _parse_response(self, data: Any, req: CompletionRequest) -> ChatResult:
        """将 Perplexity 的原始响应 JSON 解析为统一的 ChatResult。

        响应结构不符合预期（非对象、choices 元素不是对象等）时抛出 InternalError。
        """

        if not isinstance(data, dict):
            raise self._format_error("response is not an object")
        choices = data.get("choices") or []
        if not isinstance(choices, list):
            raise self._format_error("choices is not a list")
        text = None
        if choices:
            first = choices[0]
            if not isinstance(first, dict):
                raise self._format_error("choice is not an object")
            msg = first.get("message") or {}
            if not isinstance(msg, dict):
                raise self._format_error("choice message is not an object")
            text = msg.get("content")
            if text is not None and not isinstance(text, str):
                raise self._format_error("message content is not a string")
        usage_raw = data.get("usage") or {}
        usage = None
        if isinstance(usage_raw, dict) and usage_raw:
            usage = ChatUsage(
                prompt_tokens=usage_raw.get("prompt_tokens", 0),
                completion_tokens=usage_raw.get("completion_tokens", 0),
                total_tokens=usage_raw.get("total_tokens", 0),
            )
        return ChatResult(
            model=data.get("model") or req.model,
            text=text or NO_RESPONSE,
            usage=usage,
            raw=data,
            has_choices=bool(text),
        )

    def _format_error(self, detail: str) -> InternalError:
        self._log(logging.WARNING, "Unexpected response format", detail=detail)
        return InternalError(
            code="REQUEST_ERROR",
            message="Request Error: unexpected response format",
            http_status=500,
            detail=detail,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

    def _log(self, level: int, message: str, **fields: Any) -> None:
        payload = {"provider": self.name}
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
