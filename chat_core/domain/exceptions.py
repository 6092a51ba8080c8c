"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层统一捕获，并映射为 `{"error": ..., "message": ...}` 响应。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "API_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、status 等）。
    """

    label = "Error"

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ConfigurationError(BusinessError):
    """配置缺失（如未设置 API Key），仅影响依赖 Provider 的操作。"""

    label = "Perplexity client not initialized"

    def __init__(self, code: str = "MISSING_API_KEY", message: str = "Please check your API key configuration", http_status: int = 500, **extra):
        super().__init__(code=code, message=message, http_status=http_status, **extra)


class ValidationError(BusinessError):
    """参数校验失败，在发起任何网络调用之前抛出。"""

    label = "Invalid request"


class ApiError(BusinessError):
    """第三方 API 返回非 2xx 状态码时抛出。"""

    label = "API Error"


class NetworkError(BusinessError):
    """网络层错误：请求已发出但没有收到响应（连接失败、超时等）。"""

    label = "Network Error"


class InternalError(BusinessError):
    """其他无法归类的错误，对外只暴露通用描述。"""

    label = "Internal Server Error"
