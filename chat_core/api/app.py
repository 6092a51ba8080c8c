"""HTTP 服务（FastAPI）。

提供提问、带上下文对话、流式输出（SSE）、手动摘要与模型列表等接口。
未配置 API Key 时服务仍然可以启动，依赖 Provider 的接口返回"未初始化"错误。
"""

from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from chat_core.agents.chat_agent import ChatAgent
from chat_core.api import service
from chat_core.api.schemas import AskBody, MessagesBody
from chat_core.config.settings import Settings, settings as default_settings
from chat_core.domain.conversation import parse_conversation
from chat_core.domain.exceptions import BusinessError, ConfigurationError, ValidationError
from chat_core.infrastructure.logging.logger import logger, new_trace_id, trace_id_var
from chat_core.providers import create_provider
from chat_core.providers.registry import PERPLEXITY_CONFIG


SERVICE_NAME = "Perplexity API Client"
VERSION = "1.0.0"
ENDPOINTS = [
    "GET / - Service status",
    "GET /api - This health check",
    "POST /ask - Ask a simple question",
    "POST /ask-stream - Ask a question with a streamed answer",
    "POST /chat - Chat completion with messages",
    "POST /chat-stream - Streamed chat completion with messages",
    "POST /summarize - Summarize a conversation",
    "GET /models - Get available models",
    "GET /api-key - Get masked API key info",
    "GET /config - Get server configuration",
]
SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}
TRACE_HEADER = "X-Trace-Id"


def build_agent(config: Settings) -> Optional[ChatAgent]:
    """根据配置创建 ChatAgent；缺少 API Key 时返回 None。"""

    try:
        gateway = create_provider(config=config)
    except ConfigurationError as e:
        logger.warning(
            "Perplexity client not initialized; set PERPLEXITY_API_KEY",
            extra={"extra": {"code": e.code}},
        )
        return None
    logger.info(
        "Perplexity client initialized",
        extra={"extra": {"api_key": gateway.masked_api_key, "default_model": gateway.default_model}},
    )
    return ChatAgent(gateway, stream_delay=config.stream_delay)


def require_agent(request: Request) -> ChatAgent:
    agent = request.app.state.agent
    if agent is None:
        raise ConfigurationError()
    return agent


def _sse(events):
    async def body():
        async for event in events:
            yield event.to_sse()

    return StreamingResponse(body(), media_type="text/event-stream", headers=SSE_HEADERS)


def _require_question(body: AskBody) -> str:
    if not body.question:
        raise ValidationError(code="MISSING_FIELD", message="Please provide a question in the request body")
    return body.question


def create_app(config: Optional[Settings] = None, agent: Optional[ChatAgent] = None) -> FastAPI:
    """创建应用实例。

    Args:
        config: 配置，默认使用全局 settings。
        agent: 预先构造的 ChatAgent（测试中可注入假网关），为空时按配置创建。
    """
    config = config or default_settings
    app = FastAPI(title=SERVICE_NAME, version=VERSION)
    app.state.settings = config
    app.state.agent = agent if agent is not None else build_agent(config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def bind_trace_id(request: Request, call_next):
        trace_id = request.headers.get(TRACE_HEADER) or new_trace_id()
        token = trace_id_var.set(trace_id)
        try:
            response = await call_next(request)
        finally:
            trace_id_var.reset(token)
        response.headers[TRACE_HEADER] = trace_id
        return response

    @app.exception_handler(BusinessError)
    async def business_error_handler(request: Request, exc: BusinessError):
        return JSONResponse(status_code=exc.http_status, content={"error": exc.label, "message": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body') or 'body'}: {err.get('msg')}"
            for err in exc.errors()
        )
        return JSONResponse(status_code=400, content={"error": "Invalid request", "message": details})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled error: {exc}",
            exc_info=exc,
            extra={"extra": {"path": request.url.path}},
        )
        return JSONResponse(status_code=500, content={"error": "Internal Server Error", "message": "Something went wrong"})

    @app.get("/")
    @app.get("/api")
    def status():
        return {
            "status": "running",
            "service": SERVICE_NAME,
            "version": VERSION,
            "configured": app.state.agent is not None,
            "endpoints": ENDPOINTS,
        }

    @app.post("/ask")
    def ask(body: AskBody, agent: ChatAgent = Depends(require_agent)):
        return service.run_ask(agent, _require_question(body), body.to_options())

    @app.post("/ask-stream")
    async def ask_stream(body: AskBody, agent: ChatAgent = Depends(require_agent)):
        question = _require_question(body)
        return _sse(agent.ask_stream(question, body.to_options()))

    @app.post("/chat")
    def chat(body: MessagesBody, agent: ChatAgent = Depends(require_agent)):
        messages = parse_conversation(body.messages)
        return service.run_chat(agent, messages, body.to_options())

    @app.post("/chat-stream")
    async def chat_stream(body: MessagesBody, agent: ChatAgent = Depends(require_agent)):
        messages = parse_conversation(body.messages)
        if not messages:
            raise ValidationError(code="INVALID_REQUEST", message="Messages array is required")
        return _sse(agent.chat_stream(messages, body.to_options()))

    @app.post("/summarize")
    def summarize(body: MessagesBody, agent: ChatAgent = Depends(require_agent)):
        messages = parse_conversation(body.messages)
        return service.run_summarize(agent, messages)

    @app.get("/models")
    def models(agent: ChatAgent = Depends(require_agent)):
        return service.list_models(agent)

    @app.get("/api-key")
    def api_key(agent: ChatAgent = Depends(require_agent)):
        return {"api_key": agent.gateway.masked_api_key, "status": "configured"}

    @app.get("/config")
    def server_config():
        available = PERPLEXITY_CONFIG.model_ids()
        if config.default_model not in available:
            available.insert(0, config.default_model)
        return {"default_model": config.default_model, "available_models": available}

    return app


app = create_app()
