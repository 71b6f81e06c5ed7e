"""按租户划分的 SQLite 存储。

- TenantStoreManager: 维护 tenant_id -> TenantHandle 的缓存，首次访问时创建。
- SqliteConversationStore: 会话消息的追加 / 读取 / 裁剪 / 清空。
- SqlitePreferenceStore: 租户 (provider, model) 偏好的读取与 upsert。

两个 Store 共用同一个 Manager，因此同一租户的消息和偏好落在同一个 .db 文件里。
"""

import logging
import re
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from relay_core.config.settings import settings
from relay_core.domain.conversation import ConversationMessage, MessageRole, Preference
from relay_core.domain.exceptions import StorageError, ValidationError
from relay_core.infrastructure.logging.logger import logger
from relay_core.infrastructure.storage.sqlite_handle import TenantHandle


_TENANT_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
_SIDE_SUFFIXES = ("-wal", "-shm", "-journal")


def validate_tenant_id(tenant_id: str) -> str:
    if not isinstance(tenant_id, str) or not _TENANT_ID_RE.match(tenant_id):
        raise ValidationError(code="INVALID_TENANT_ID", message=f"Invalid tenant id: {tenant_id!r}")
    return tenant_id


class TenantStoreManager:
    """租户句柄缓存。

    Manager 的锁只保护 "查缓存 + 创建" 和驱逐这两段临界区，
    句柄创建之后的读写直接走句柄自身的锁，不再经过这里。
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)
        self._handles: Dict[str, TenantHandle] = {}
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def tenant_path(self, tenant_id: str) -> Path:
        return self._root / f"{validate_tenant_id(tenant_id)}.db"

    def get_handle(self, tenant_id: str) -> TenantHandle:
        path = self.tenant_path(tenant_id)
        with self._lock:
            handle = self._handles.get(tenant_id)
            if handle is not None:
                return handle
            handle = TenantHandle.open(tenant_id, path)
            self._handles[tenant_id] = handle
        _log(logging.INFO, "Opened tenant store", tenant_id=tenant_id, path=str(path))
        return handle

    def cached_tenants(self) -> List[str]:
        with self._lock:
            return list(self._handles)

    def delete_tenant(self, tenant_id: str) -> None:
        """关闭并驱逐缓存的句柄，再删除租户文件；租户不存在时静默成功。"""

        path = self.tenant_path(tenant_id)
        with self._lock:
            handle = self._handles.pop(tenant_id, None)
            if handle is not None:
                handle.close()
            try:
                for p in [path] + [path.with_name(path.name + s) for s in _SIDE_SUFFIXES]:
                    p.unlink(missing_ok=True)
            except OSError as e:
                raise StorageError(code="STORE_DELETE_ERROR", message=str(e), tenant_id=tenant_id)
        _log(logging.INFO, "Deleted tenant store", tenant_id=tenant_id)

    def close_all(self) -> None:
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        for handle in handles:
            handle.close()
        _log(logging.INFO, "Closed tenant stores", count=len(handles))


class SqliteConversationStore:
    def __init__(self, manager: TenantStoreManager):
        self._manager = manager

    def append(self, tenant_id: str, display_name: str, role: MessageRole, content: str) -> ConversationMessage:
        return self._manager.get_handle(tenant_id).append_message(display_name, role, content)

    def list_messages(self, tenant_id: str) -> List[ConversationMessage]:
        return self._manager.get_handle(tenant_id).list_messages()

    def trim(self, tenant_id: str, keep: int) -> int:
        removed = self._manager.get_handle(tenant_id).trim_messages(keep)
        if removed:
            _log(logging.INFO, "Trimmed history", tenant_id=tenant_id, keep=keep, removed=removed)
        return removed

    def clear(self, tenant_id: str) -> int:
        return self._manager.get_handle(tenant_id).clear_messages()

    def delete_tenant(self, tenant_id: str) -> None:
        self._manager.delete_tenant(tenant_id)

    def close_all(self) -> None:
        self._manager.close_all()


class SqlitePreferenceStore:
    def __init__(self, manager: TenantStoreManager):
        self._manager = manager

    def get_preference(self, tenant_id: str) -> Preference:
        return self._manager.get_handle(tenant_id).get_preference()

    def set_preference(self, tenant_id: str, provider: str, model: str) -> None:
        self._manager.get_handle(tenant_id).set_preference(provider, model)


def _log(level: int, message: str, **fields: Any) -> None:
    logger.log(level, message, extra={"extra": fields})


def open_stores(root: Optional[str | Path] = None):
    """创建共享同一 Manager 的 (manager, conversations, preferences) 三元组。"""

    manager = TenantStoreManager(root)
    return manager, SqliteConversationStore(manager), SqlitePreferenceStore(manager)
