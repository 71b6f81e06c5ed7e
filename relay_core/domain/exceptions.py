"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 BusinessError，
便于在 Orchestrator / 传输层做统一捕获与用户提示。

分类：
- StorageError: 持久化读写失败，当前操作中止，不留部分写入。
- ConfigurationError: 用户未选择 Provider 或所选 Provider 已下线，
  只用于内部流转，最终转换为普通的提示文本。
- TransientProviderError / FatalProviderError: 远端后端的故障，
  前者可稍后重试，后者重试无意义。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_WRITE_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 tenant_id、provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class StorageError(BusinessError):
    """持久化层错误（打开、读、写、删除）。"""


class ConfigurationError(BusinessError):
    """租户配置不可用：未选择 Provider，或 Provider 已不在注册表中。"""


class ProviderError(BusinessError):
    """远端 Provider 故障的基类，extra 中带 provider 名称。"""


class TransientProviderError(ProviderError):
    """暂时性故障：限流重试耗尽或服务不可用 (503)。"""


class RateLimitError(TransientProviderError):
    """单次请求被限流 (429)，由 Provider 内部的退避策略消费。"""


class FatalProviderError(ProviderError):
    """不可重试的故障：鉴权失败、请求格式错误或未分类的上游错误。"""
