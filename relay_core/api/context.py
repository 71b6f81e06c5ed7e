"""进程级上下文对象。

启动时构建一次，显式传给各个入口函数，替代模块级单例。
"""

from dataclasses import dataclass
from typing import Optional

from relay_core.agents.orchestrator import ConversationOrchestrator, OrchestratorConfig
from relay_core.config.settings import Settings, settings
from relay_core.infrastructure.storage.sqlite_store import (
    SqliteConversationStore,
    SqlitePreferenceStore,
    TenantStoreManager,
)
from relay_core.providers import build_registry
from relay_core.providers.registry import ProviderRegistry
from relay_core.transport.dispatcher import MessageDispatcher


@dataclass
class RelayContext:
    settings: Settings
    manager: TenantStoreManager
    conversations: SqliteConversationStore
    preferences: SqlitePreferenceStore
    registry: ProviderRegistry
    orchestrator: ConversationOrchestrator
    dispatcher: MessageDispatcher

    def close(self) -> None:
        """先等待在途消息处理完，再关闭所有租户句柄。"""

        self.dispatcher.shutdown(wait=True)
        self.manager.close_all()


def build_context(cfg: Settings = settings, registry: Optional[ProviderRegistry] = None) -> RelayContext:
    manager = TenantStoreManager(cfg.storage_root)
    conversations = SqliteConversationStore(manager)
    preferences = SqlitePreferenceStore(manager)
    if registry is None:
        registry = build_registry(cfg)
    orchestrator = ConversationOrchestrator(
        conversations,
        preferences,
        registry,
        OrchestratorConfig(
            assistant_name=cfg.assistant_name,
            history_limit=cfg.history_limit,
            max_context_messages=cfg.max_context_messages,
        ),
    )
    dispatcher = MessageDispatcher(
        orchestrator,
        max_workers=cfg.max_workers,
        max_pending=cfg.max_pending,
        max_message_length=cfg.max_message_length,
    )
    return RelayContext(
        settings=cfg,
        manager=manager,
        conversations=conversations,
        preferences=preferences,
        registry=registry,
        orchestrator=orchestrator,
        dispatcher=dispatcher,
    )
