"""Provider 配置与注册表。

- ProviderConfig: 单个后端的静态描述（名称、展示名、端点、可选模型）。
- ProviderRegistry: 进程启动时构建、之后只读的 Provider 集合，
  名称匹配不区分大小写；查不到返回 None，由调用方决定如何提示。
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from relay_core.providers.base import Provider


@dataclass(frozen=True)
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    display_name: str
    base_url: str
    default_model: str
    models: Tuple[str, ...]


OPENAI_CONFIG = ProviderConfig(
    name="openai",
    display_name="OpenAI",
    base_url="https://api.openai.com/v1",
    default_model="gpt-5.1",
    models=("gpt-5.1", "gpt-5", "gpt-4.1", "o3"),
)

MISTRAL_CONFIG = ProviderConfig(
    name="mistral",
    display_name="Mistral",
    base_url="https://api.mistral.ai/v1",
    default_model="mistral-large-latest",
    models=("mistral-large-latest", "mistral-medium-latest", "mistral-small-latest", "codestral-latest"),
)

OPENROUTER_CONFIG = ProviderConfig(
    name="openrouter",
    display_name="OpenRouter",
    base_url="https://openrouter.ai/api/v1",
    default_model="openai/gpt-4o",
    models=(
        "openai/gpt-5.1",
        "openai/gpt-4o",
        "openai/gpt-4.1",
        "google/gemini-3-pro",
        "mistral/mistral-large",
        "anthropic/claude-opus-4.5",
        "anthropic/claude-sonnet-4.5",
    ),
)

# Gemini 走 Google 提供的 OpenAI 兼容端点
GEMINI_CONFIG = ProviderConfig(
    name="gemini",
    display_name="Gemini",
    base_url="https://generativelanguage.googleapis.com/v1beta/openai",
    default_model="gemini-2.5-pro",
    models=("gemini-3-pro", "gemini-2.5-flash", "gemini-2.5-pro"),
)


class ProviderRegistry:
    """不可变的 Provider 集合，保持注册顺序。"""

    def __init__(self, providers: Iterable[Provider] = ()):
        self._providers: Dict[str, Provider] = {}
        for provider in providers:
            key = provider.name.lower()
            if key in self._providers:
                raise ValueError(f"Duplicate provider: {provider.name!r}")
            self._providers[key] = provider

    def get(self, name: Optional[str]) -> Optional[Provider]:
        """根据名称获取 Provider，名称不区分大小写；不存在返回 None。"""

        if not name:
            return None
        return self._providers.get(name.strip().lower())

    def list_names(self) -> List[str]:
        return list(self._providers)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __iter__(self) -> Iterator[Provider]:
        return iter(list(self._providers.values()))

    def __len__(self) -> int:
        return len(self._providers)
