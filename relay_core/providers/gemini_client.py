"""Gemini Provider 适配器。

使用 Google 提供的 OpenAI 兼容端点（{base_url}/chat/completions），
因此请求/响应结构与其他 Provider 相同，鉴权同样是 Bearer。

兼容端点不接受原生 API 的 safetySettings（各类 HarmCategory 的拦截阈值），
请求体里不带任何安全设置，内容过滤沿用该 API key 在 Google 侧的默认阈值。
"""

from relay_core.config.settings import settings
from relay_core.providers.base import HttpChatProvider, retry_policy_from
from relay_core.providers.registry import GEMINI_CONFIG


class GeminiClient(HttpChatProvider):
    def __init__(self, cfg=settings, **kwargs):
        kwargs.setdefault("retry", retry_policy_from(cfg))
        super().__init__(
            GEMINI_CONFIG,
            getattr(cfg, "gemini_api_key", None),
            base_url=getattr(cfg, "gemini_base_url", None),
            default_model=getattr(cfg, "gemini_default_model", None),
            timeout=getattr(cfg, "http_timeout", 60.0),
            **kwargs,
        )
