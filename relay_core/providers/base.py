"""Provider 抽象接口与通用 HTTP 实现。

上层 Orchestrator 不直接依赖具体厂商的 HTTP 细节，而是依赖 Provider 协议：

- name: 稳定的小写标识，例如 "openai"。
- available_models(): 可选模型列表，仅用于展示。
- complete(messages, model): 执行一次对话补全，返回文本。

HttpChatProvider 实现了 OpenAI 兼容的 chat/completions 调用，并统一故障策略：

- 429 限流：指数退避重试（默认 5 次，1/2/4/8 秒），耗尽后抛 TransientProviderError。
- 401/403、400：立即抛 FatalProviderError，不重试。
- 503：立即抛 TransientProviderError，不消耗重试预算。
- 空结果：返回固定的兜底文本，调用方永远拿不到空回复。
- 其他失败：FatalProviderError，带上后端的诊断信息。

各厂商子类只需提供 ProviderConfig，并按需覆盖 _extra_headers / _extra_payload。
"""

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Protocol, Sequence

import httpx
from tenacity import RetryCallState, RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from relay_core.domain.exceptions import (
    FatalProviderError,
    RateLimitError,
    TransientProviderError,
    ValidationError,
)
from relay_core.domain.models import ChatMessage
from relay_core.infrastructure.logging.logger import logger

if TYPE_CHECKING:
    from relay_core.providers.registry import ProviderConfig


FALLBACK_REPLY = "Sorry, I cannot respond to this."


class Provider(Protocol):
    """远端补全后端协议。"""

    name: str
    display_name: str

    def available_models(self) -> List[str]:
        ...

    def complete(self, messages: Sequence[ChatMessage], model: Optional[str] = None) -> str:
        ...


@dataclass(frozen=True)
class RetryPolicy:
    """限流重试策略：max_attempts 为总尝试次数（含首次）。"""

    max_attempts: int = 5
    base_delay: float = 1.0


class HttpChatProvider:
    """OpenAI 兼容 chat/completions 协议的通用客户端。"""

    def __init__(
        self,
        config: "ProviderConfig",
        api_key: Optional[str],
        *,
        base_url: Optional[str] = None,
        default_model: Optional[str] = None,
        timeout: float = 60.0,
        retry: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not api_key:
            raise ValidationError(code="MISSING_API_KEY", message=f"{config.name} API key not set")
        self._config = config
        self._api_key = api_key
        self._base_url = (base_url or config.base_url).rstrip("/")
        self._default_model = default_model or config.default_model
        self._timeout = timeout
        self._retry = retry or RetryPolicy()
        self._sleep = sleep

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def display_name(self) -> str:
        return self._config.display_name

    @property
    def default_model(self) -> str:
        return self._default_model

    def available_models(self) -> List[str]:
        return list(self._config.models)

    def resolve_model(self, model: Optional[str]) -> str:
        """模型名只是建议：不在可选列表里时回退到默认模型。"""

        if model and model in self._config.models:
            return model
        return self._default_model

    def complete(self, messages: Sequence[ChatMessage], model: Optional[str] = None) -> str:
        model_name = self.resolve_model(model)
        payload = self._build_payload(messages, model_name)
        retrying = Retrying(
            retry=retry_if_exception_type(RateLimitError),
            stop=stop_after_attempt(self._retry.max_attempts),
            wait=wait_exponential(multiplier=self._retry.base_delay, exp_base=2),
            sleep=self._sleep,
            before_sleep=self._log_retry,
        )
        try:
            data = retrying(self._post, payload)
        except RetryError as e:
            self._log(logging.WARNING, "Rate limit retries exhausted", attempts=self._retry.max_attempts)
            raise TransientProviderError(
                code="RATE_LIMITED",
                message=(
                    f"{self.display_name} is rate limiting requests; "
                    f"gave up after {self._retry.max_attempts} attempts. Try again later."
                ),
                http_status=429,
                provider=self.name,
            ) from e
        return self._parse_response(data)

    # ---- 可覆盖的钩子 ----

    def _extra_headers(self) -> Dict[str, str]:
        return {}

    def _extra_payload(self) -> Dict[str, Any]:
        return {}

    # ---- 辅助方法 ----

    def _build_payload(self, messages: Sequence[ChatMessage], model_name: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model_name,
            "messages": [m.to_payload() for m in messages],
        }
        payload.update(self._extra_payload())
        return payload

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        headers.update(self._extra_headers())
        try:
            with httpx.Client(timeout=self._timeout, trust_env=False) as client:
                resp = client.post(f"{self._base_url}/chat/completions", json=payload, headers=headers)
        except httpx.RequestError as e:
            raise FatalProviderError(
                code="NETWORK_ERROR",
                message=f"{self.display_name} is unreachable: {e}",
                provider=self.name,
            )
        self._raise_for_status(resp)
        try:
            data = resp.json()
        except ValueError as e:
            raise FatalProviderError(
                code="INVALID_RESPONSE",
                message=f"{self.display_name} returned invalid JSON: {e}",
                provider=self.name,
            )
        if not isinstance(data, dict):
            raise FatalProviderError(
                code="INVALID_RESPONSE",
                message=f"{self.display_name} returned an unexpected payload",
                provider=self.name,
            )
        return data

    def _raise_for_status(self, resp) -> None:
        status = resp.status_code
        if status < 400:
            return
        if status == 429:
            raise RateLimitError(
                code="RATE_LIMIT",
                message=f"{self.display_name} rate limit",
                http_status=429,
                provider=self.name,
            )
        if status in (401, 403):
            self._log(logging.ERROR, "Authentication failed", status=status)
            raise FatalProviderError(
                code="AUTH_FAILED",
                message=f"authentication failed (HTTP {status}): check the {self.display_name} API key",
                http_status=status,
                provider=self.name,
            )
        if status == 400:
            raise FatalProviderError(
                code="BAD_REQUEST",
                message=f"{self.display_name} rejected the request: {resp.text}",
                http_status=status,
                provider=self.name,
            )
        if status == 503:
            self._log(logging.WARNING, "Service unavailable", status=status)
            raise TransientProviderError(
                code="SERVICE_UNAVAILABLE",
                message=f"service unavailable (HTTP 503): {self.display_name} is temporarily down",
                http_status=status,
                provider=self.name,
            )
        raise FatalProviderError(
            code="API_ERROR",
            message=f"{self.display_name} returned status {status}: {resp.text}",
            http_status=status,
            provider=self.name,
        )

    def _parse_response(self, data: Dict[str, Any]) -> str:
        choices = data.get("choices")
        if not choices:
            return FALLBACK_REPLY
        if not isinstance(choices, list) or not isinstance(choices[0], dict):
            raise self._invalid_response("choices")
        message = choices[0].get("message")
        if message is None:
            return FALLBACK_REPLY
        if not isinstance(message, dict):
            raise self._invalid_response("message")
        content = message.get("content")
        if not isinstance(content, str) or not content.strip():
            return FALLBACK_REPLY
        return content

    def _invalid_response(self, field: str) -> FatalProviderError:
        self._log(logging.ERROR, "Unexpected response shape", field=field)
        return FatalProviderError(
            code="INVALID_RESPONSE",
            message=f"{self.display_name} returned an unexpected payload (bad '{field}')",
            provider=self.name,
        )

    def _log_retry(self, state: RetryCallState) -> None:
        delay = state.next_action.sleep if state.next_action else None
        self._log(
            logging.WARNING,
            "Rate limit exceeded, retrying",
            attempt=state.attempt_number,
            max_attempts=self._retry.max_attempts,
            delay=delay,
        )

    def _log(self, level: int, message: str, **fields: Any) -> None:
        payload = {"provider": self.name}
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})


def retry_policy_from(cfg) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=getattr(cfg, "retry_max_attempts", 5),
        base_delay=getattr(cfg, "retry_base_delay", 1.0),
    )
