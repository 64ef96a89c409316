"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于宿主应用做统一捕获与用户提示。

流式调用对外只抛出 ProviderError（及其子类 StreamingError），
NetworkError / ApiError 等只在适配器内部使用，到达边界时被包装。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "API_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、model 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """第三方 API 返回非 2xx 时抛出，message 为响应体文本。"""


class RateLimitError(ApiError):
    """Provider 限流错误（429）。流式调用不做自动退避。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class ProviderError(BusinessError):
    """流式调用的终态失败，对调用方不透明。

    原始异常通过 __cause__ 链接，并已写入日志。
    """

    def __init__(self, provider: str, message: str, code: str = "PROVIDER_ERROR", **extra):
        super().__init__(code=code, message=message, http_status=502, provider=provider, **extra)
        self.provider = provider


class StreamingError(ProviderError):
    """流/分块层面的失败，单独分类以便诊断。"""

    def __init__(self, provider: str, message: str, **extra):
        super().__init__(provider, message, code="STREAMING_ERROR", **extra)
