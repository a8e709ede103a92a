"""
检索工具的错误类型

所有数据源客户端抛出的异常都继承自 SearchError，
工具层（ToolRegistry）据此统一转换为失败结果返回给 Agent。
"""

from typing import Any, Dict, Optional


class SearchError(Exception):
    """检索错误基类，kind 用于在工具结果中标识错误类别"""

    kind = "unknown"

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.source = source

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.source:
            data["source"] = self.source
        return data


class RateLimitedError(SearchError):
    """冷却时间未结束（fail-fast 策略的数据源）"""

    kind = "rate_limited"

    def __init__(self, message: str, retry_after_millis: int, source: Optional[str] = None):
        super().__init__(message, source)
        self.retry_after_millis = retry_after_millis

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["retry_after_millis"] = self.retry_after_millis
        return data


class UpstreamHttpError(SearchError):
    """上游 API 返回非 2xx 状态码"""

    kind = "upstream_http"

    def __init__(self, message: str, status_code: int, source: Optional[str] = None):
        super().__init__(message, source)
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["status_code"] = self.status_code
        return data


class ParseFailure(SearchError):
    """单条记录解析失败。只记录日志并跳过，不会传给调用方"""

    kind = "parse_failure"


class ConfigurationError(SearchError):
    """缺少必需的凭据或配置"""

    kind = "configuration"


class InvalidInputError(SearchError):
    """工具参数校验失败"""

    kind = "invalid_input"


class UnknownError(SearchError):
    """其他任何异常的包装"""

    kind = "unknown"

    @classmethod
    def wrap(cls, exc: BaseException, source: Optional[str] = None) -> "UnknownError":
        message = str(exc) or exc.__class__.__name__
        return cls(message, source)
