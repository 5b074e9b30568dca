"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
传输层/解码层在边界处把 httpx、JSON 等底层异常归类为下面的具体类型，
编排层（ChatOrchestrator）再统一转换成用户可读的提示文本。
"""

from typing import Optional


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "RATE_LIMIT"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 cause、url 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class InvalidURLError(BusinessError):
    """端点 URL 无法解析或协议不受支持。"""

    def __init__(self, url: str, cause: Optional[BaseException] = None):
        super().__init__(code="INVALID_URL", message=f"Invalid URL: {url}", url=url, cause=cause)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、连接被重置等。"""

    def __init__(self, cause: BaseException | str):
        super().__init__(code="NETWORK_ERROR", message=str(cause), cause=cause)


class InvalidResponseError(BusinessError):
    """响应不是预期的 HTTP 响应，或流在完成事件之前结束。"""

    def __init__(self, message: str = "Invalid response from server"):
        super().__init__(code="INVALID_RESPONSE", message=message, http_status=502)


class DecodingError(BusinessError):
    """响应体无法按约定的 JSON 结构解析。"""

    def __init__(self, cause: BaseException | str):
        super().__init__(code="DECODING_ERROR", message=str(cause), http_status=502, cause=cause)


class ServerError(BusinessError):
    """服务端返回 401/429 之外的非 2xx 状态码。"""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(
            code="SERVER_ERROR",
            message=f"HTTP Status: {status_code}",
            http_status=status_code,
            body=body,
        )
        self.status_code = status_code


class InvalidAPIKeyError(BusinessError):
    """凭据无效（HTTP 401）。"""

    def __init__(self, message: str = "Invalid API key"):
        super().__init__(code="INVALID_API_KEY", message=message, http_status=401)


class RateLimitError(BusinessError):
    """Provider 限流错误（HTTP 429），由上层负责重试/退避策略。"""

    def __init__(self, message: str = "Rate limit exceeded"):
        super().__init__(code="RATE_LIMIT", message=message, http_status=429)


class InvalidAudioFileError(BusinessError):
    """录音文件缺失、为空或不可读。"""

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        super().__init__(code="INVALID_AUDIO_FILE", message=f"Invalid audio file: {path}", path=path, cause=cause)


class UnknownError(BusinessError):
    """无法归类的异常，保留原始 cause。"""

    def __init__(self, cause: BaseException):
        super().__init__(code="UNKNOWN_ERROR", message=str(cause) or type(cause).__name__, http_status=500, cause=cause)


class RequestTimeoutError(BusinessError):
    """请求超过超时限制，底层连接已被取消。"""

    def __init__(self, message: str = "Request timed out"):
        super().__init__(code="TIMEOUT", message=message, http_status=504)


class RequestCancelledError(BusinessError):
    """本地取消了进行中的一轮（任务被取消），并非服务端错误。"""

    def __init__(self, message: str = "Request cancelled"):
        super().__init__(code="CANCELLED", message=message, http_status=499)


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


_USER_MESSAGES = {
    InvalidURLError: "API Error: the service URL is invalid.",
    InvalidAPIKeyError: "API Error: your API key was rejected. Check it in the settings.",
    RateLimitError: "API Error: rate limit exceeded, please try again in a moment.",
    InvalidResponseError: "API Error: the server sent an invalid response.",
    DecodingError: "API Error: the server response could not be decoded.",
    InvalidAudioFileError: "Transcription Error: the recording could not be read.",
    RequestTimeoutError: "Network Error: the request timed out.",
    RequestCancelledError: "The request was cancelled.",
}


def describe_error(exc: BaseException) -> str:
    """把异常转换成展示给用户的一行文本。"""

    for err_type, text in _USER_MESSAGES.items():
        if isinstance(exc, err_type):
            return text
    if isinstance(exc, ServerError):
        return f"API Error: server returned HTTP {exc.status_code}."
    if isinstance(exc, NetworkError):
        return f"Network Error: {exc.message}"
    if isinstance(exc, BusinessError):
        return f"An unexpected error occurred: {exc.message}"
    return f"An unexpected error occurred: {exc}"
