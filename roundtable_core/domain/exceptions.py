"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层或 UI 层做统一捕获与用户提示。

DispatchError 及其子类是响应分发层对外暴露的失败类型，
编排器只关心"是否成功"，不区分具体是哪个 Provider 出错。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、persona_id 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class DispatchError(BusinessError):
    """一次生成调用失败。"""


class ConfigurationError(DispatchError):
    """Provider 缺少密钥/地址，或 Provider 未知；在发起网络请求前抛出。"""


class NetworkError(DispatchError):
    """网络层错误，例如连接失败、超时等。"""


class ProviderError(DispatchError):
    """Provider 返回非 2xx 状态或无法解析的响应体。"""


class RateLimitError(ProviderError):
    """Provider 限流（HTTP 429）。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class SessionBusyError(BusinessError):
    """同一会话已有一次编排在运行中。"""
