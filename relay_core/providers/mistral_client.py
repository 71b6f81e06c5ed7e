"""Mistral Provider 适配器。

接口与 OpenAI 一致，额外关闭 safe_prompt（不在请求前注入安全提示词）。
"""

from typing import Any, Dict

from relay_core.config.settings import settings
from relay_core.providers.base import HttpChatProvider, retry_policy_from
from relay_core.providers.registry import MISTRAL_CONFIG


class MistralClient(HttpChatProvider):
    def __init__(self, cfg=settings, **kwargs):
        kwargs.setdefault("retry", retry_policy_from(cfg))
        super().__init__(
            MISTRAL_CONFIG,
            getattr(cfg, "mistral_api_key", None),
            base_url=getattr(cfg, "mistral_base_url", None),
            default_model=getattr(cfg, "mistral_default_model", None),
            timeout=getattr(cfg, "http_timeout", 60.0),
            **kwargs,
        )

    def _extra_payload(self) -> Dict[str, Any]:
        return {"safe_prompt": False}
