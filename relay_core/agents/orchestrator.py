"""对话编排核心模块。

每条入站消息的处理流程：

1. 写入用户消息（失败直接抛 StorageError，不再调用后端）。
2. 读取该租户的完整历史，构造带角色标记的消息列表。
3. 解析租户选择的 Provider；未选择或已下线时返回提示文本。
4. 调用 Provider，失败原样抛出，不写入助手消息。
5. 写入助手回复并裁剪历史；这两步失败只记日志，不影响已拿到的回复。
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from relay_core.domain.conversation import ConversationMessage, ConversationStore, PreferenceStore
from relay_core.domain.exceptions import BusinessError, ConfigurationError, StorageError
from relay_core.domain.models import ChatMessage
from relay_core.infrastructure.logging.logger import logger
from relay_core.prompts import load_system_prompt
from relay_core.providers.base import Provider
from relay_core.providers.registry import ProviderRegistry


NO_PROVIDER_REPLY = (
    "You haven't selected an AI provider yet. "
    "Use `/provider` to see the available providers and `/provider name:<provider>` to pick one."
)


@dataclass
class OrchestratorConfig:
    assistant_name: str = "Kurosawa"
    history_limit: int = 20  # 每轮成功对话后保留的消息条数，0 表示不裁剪
    max_context_messages: int = 40
    locale: str = "en"


class ConversationOrchestrator:
    def __init__(
        self,
        conversations: ConversationStore,
        preferences: PreferenceStore,
        registry: ProviderRegistry,
        config: Optional[OrchestratorConfig] = None,
    ):
        self._conversations = conversations
        self._preferences = preferences
        self._registry = registry
        self._config = config or OrchestratorConfig()
        self._system_prompt = load_system_prompt(self._config.assistant_name, self._config.locale)
        self._tenant_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    def get_response(self, tenant_id: str, display_name: str, message: str) -> str:
        """处理一条用户消息并返回回复文本。

        同一租户的多轮对话串行执行，保证历史中 user/assistant 严格交替；
        不同租户之间互不阻塞。

        Raises:
            StorageError: 用户消息写入或历史读取失败。
            TransientProviderError / FatalProviderError: 后端调用失败。
        """
        with self._tenant_lock(tenant_id):
            return self._exchange(tenant_id, display_name, message)

    def forget_tenant(self, tenant_id: str) -> None:
        """删除租户数据并驱逐该租户的锁；等待进行中的对话结束后再删除。"""

        with self._tenant_lock(tenant_id):
            self._conversations.delete_tenant(tenant_id)
            with self._locks_guard:
                self._tenant_locks.pop(tenant_id, None)

    def cached_lock_count(self) -> int:
        with self._locks_guard:
            return len(self._tenant_locks)

    def build_messages(self, history: Sequence[ConversationMessage]) -> List[ChatMessage]:
        """把历史记录转换为发给后端的消息列表，首条为 system 提示词。"""

        window = list(history)[-self._config.max_context_messages:]
        messages = [ChatMessage(role="system", content=self._system_prompt)]
        for entry in window:
            if entry.role == "assistant":
                messages.append(ChatMessage(role="assistant", content=entry.content))
            else:
                messages.append(ChatMessage(role="user", content=f"{entry.display_name}: {entry.content}"))
        return messages

    def resolve_provider(self, tenant_id: str) -> Tuple[Provider, Optional[str]]:
        """返回 (provider, 偏好模型或 None)；不可用时抛 ConfigurationError。"""

        pref = self._preferences.get_preference(tenant_id)
        if not pref.has_provider:
            raise ConfigurationError(code="NO_PROVIDER_SELECTED", message=NO_PROVIDER_REPLY)
        provider = self._registry.get(pref.provider)
        if provider is None:
            available = ", ".join(self._registry.list_names()) or "none configured"
            raise ConfigurationError(
                code="PROVIDER_NOT_FOUND",
                message=(
                    f"Your selected provider '{pref.provider}' is no longer available. "
                    f"Available providers: {available}. Use `/provider name:<provider>` to choose another."
                ),
                provider=pref.provider,
            )
        return provider, (pref.model if pref.has_model else None)

    def _exchange(self, tenant_id: str, display_name: str, message: str) -> str:
        start_time = time.time()
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "tenant_id": tenant_id,
        }

        self._conversations.append(tenant_id, display_name, "user", message)
        history = self._conversations.list_messages(tenant_id)
        chat_messages = self.build_messages(history)

        try:
            provider, model = self.resolve_provider(tenant_id)
        except ConfigurationError as e:
            self._log(logging.INFO, "Provider not available", log_ctx, code=e.code)
            return e.message
        log_ctx["provider"] = provider.name

        try:
            reply = provider.complete(chat_messages, model=model)
        except BusinessError as e:
            self._log(logging.ERROR, "Provider call failed", log_ctx, code=e.code, error=e.message)
            raise

        self._persist_reply(tenant_id, reply, log_ctx)

        elapsed = time.time() - start_time
        self._log(
            logging.INFO,
            "Completed exchange",
            log_ctx,
            elapsed_seconds=round(elapsed, 2),
            history_size=len(history),
            reply_chars=len(reply),
        )
        return reply

    def _persist_reply(self, tenant_id: str, reply: str, log_ctx: Dict[str, Any]) -> None:
        try:
            self._conversations.append(tenant_id, self._config.assistant_name, "assistant", reply)
        except StorageError as e:
            self._log(logging.WARNING, "Failed to save assistant message", log_ctx, error=e.message)
            return
        if self._config.history_limit > 0:
            try:
                self._conversations.trim(tenant_id, self._config.history_limit)
            except StorageError as e:
                self._log(logging.WARNING, "Failed to trim history", log_ctx, error=e.message)

    def _tenant_lock(self, tenant_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._tenant_locks.get(tenant_id)
            if lock is None:
                lock = self._tenant_locks[tenant_id] = threading.Lock()
            return lock

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
