"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 协议与通用 HTTP 实现 (base)。
- 维护 Provider 静态配置与注册表 (registry)。
- 提供各厂商的具体实现 (openai_client、mistral_client、openrouter_client、gemini_client)。
"""

import logging
from typing import Callable, Dict

from relay_core.config.settings import settings
from relay_core.domain.exceptions import ValidationError
from relay_core.infrastructure.logging.logger import logger
from relay_core.providers.base import FALLBACK_REPLY, HttpChatProvider, Provider, RetryPolicy
from relay_core.providers.gemini_client import GeminiClient
from relay_core.providers.mistral_client import MistralClient
from relay_core.providers.openai_client import OpenAIClient
from relay_core.providers.openrouter_client import OpenRouterClient
from relay_core.providers.registry import ProviderRegistry

# 注册顺序即展示顺序
PROVIDER_FACTORIES: Dict[str, Callable[..., HttpChatProvider]] = {
    "openai": OpenAIClient,
    "mistral": MistralClient,
    "openrouter": OpenRouterClient,
    "gemini": GeminiClient,
}


def create_provider(name: str, cfg=settings, **kwargs) -> HttpChatProvider:
    """根据名称创建 Provider 实例，名称不区分大小写。"""

    factory = PROVIDER_FACTORIES.get(name.lower())
    if factory is None:
        raise KeyError(f"Unknown provider: {name!r}")
    return factory(cfg, **kwargs)


def build_registry(cfg=settings, **kwargs) -> ProviderRegistry:
    """按配置构建注册表：只注册设置了 API key 的 Provider，其余记录告警后跳过。"""

    providers = []
    for name in PROVIDER_FACTORIES:
        try:
            providers.append(create_provider(name, cfg, **kwargs))
        except ValidationError as e:
            logger.warning(f"Skipping provider {name}: {e.message}", extra={"extra": {"provider": name, "code": e.code}})
            continue
        logger.info(f"Loaded {name} provider", extra={"extra": {"provider": name}})
    registry = ProviderRegistry(providers)
    if not len(registry):
        logger.log(
            logging.WARNING,
            "No AI providers configured",
            extra={"extra": {"hint": "set OPENAI_API_KEY, MISTRAL_API_KEY, OPENROUTER_API_KEY or GEMINI_API_KEY"}},
        )
    return registry


__all__ = [
    "FALLBACK_REPLY",
    "HttpChatProvider",
    "Provider",
    "ProviderRegistry",
    "RetryPolicy",
    "build_registry",
    "create_provider",
]
