"""OpenRouter Provider 适配器。

OpenRouter 聚合多家模型，模型名带厂商前缀（如 "anthropic/claude-sonnet-4.5"）；
请求需附带 HTTP-Referer / X-Title 头用于来源标识。
"""

from typing import Dict

from relay_core.config.settings import settings
from relay_core.providers.base import HttpChatProvider, retry_policy_from
from relay_core.providers.registry import OPENROUTER_CONFIG


class OpenRouterClient(HttpChatProvider):
    def __init__(self, cfg=settings, **kwargs):
        kwargs.setdefault("retry", retry_policy_from(cfg))
        super().__init__(
            OPENROUTER_CONFIG,
            getattr(cfg, "openrouter_api_key", None),
            base_url=getattr(cfg, "openrouter_base_url", None),
            default_model=getattr(cfg, "openrouter_default_model", None),
            timeout=getattr(cfg, "http_timeout", 60.0),
            **kwargs,
        )
        self._referer = getattr(cfg, "openrouter_referer", None) or ""
        self._title = getattr(cfg, "openrouter_title", None) or ""

    def _extra_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self._referer:
            headers["HTTP-Referer"] = self._referer
        if self._title:
            headers["X-Title"] = self._title
        return headers
