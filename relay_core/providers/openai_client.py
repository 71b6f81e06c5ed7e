"""OpenAI Provider 适配器。

- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>
"""

from relay_core.config.settings import settings
from relay_core.providers.base import HttpChatProvider, retry_policy_from
from relay_core.providers.registry import OPENAI_CONFIG


class OpenAIClient(HttpChatProvider):
    """OpenAI Provider 客户端实现。"""

    def __init__(self, cfg=settings, **kwargs):
        kwargs.setdefault("retry", retry_policy_from(cfg))
        super().__init__(
            OPENAI_CONFIG,
            getattr(cfg, "openai_api_key", None),
            base_url=getattr(cfg, "openai_base_url", None),
            default_model=getattr(cfg, "openai_default_model", None),
            timeout=getattr(cfg, "http_timeout", 60.0),
            **kwargs,
        )
