"""单个租户的 SQLite 存储句柄。

每个租户对应一个独立的 .db 文件，文件内两张表：

- messages: 追加写的对话记录，按 (timestamp, id) 升序读取。
- preferences: 租户选择的 (provider, model)，主键 user_id，upsert 写入。

句柄内部自带一把锁，保证单个操作（一次写 = 一个事务）的原子性；
跨操作的顺序由上层 Orchestrator 负责。
"""

import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from relay_core.domain.conversation import NONE, ConversationMessage, MessageRole, Preference
from relay_core.domain.exceptions import StorageError, ValidationError


_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        user_name TEXT NOT NULL,
        role TEXT NOT NULL,
        content TEXT NOT NULL,
        timestamp TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_user_ts ON messages (user_id, timestamp, id)",
    """
    CREATE TABLE IF NOT EXISTS preferences (
        user_id TEXT PRIMARY KEY,
        provider TEXT NOT NULL DEFAULT 'none',
        model TEXT NOT NULL DEFAULT 'none'
    )
    """,
)

# 只允许追加列；老库缺列时补齐，已存在时视为成功
_MIGRATIONS = (
    "ALTER TABLE messages ADD COLUMN user_name TEXT NOT NULL DEFAULT ''",
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _format_ts(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(raw: str) -> datetime:
    return datetime.fromisoformat(raw.replace("Z", "+00:00"))


def apply_schema(conn: sqlite3.Connection) -> None:
    """创建缺失的表并执行追加式迁移，可重复执行。"""

    with conn:
        for stmt in _SCHEMA:
            conn.execute(stmt)
    for stmt in _MIGRATIONS:
        try:
            with conn:
                conn.execute(stmt)
        except sqlite3.OperationalError as e:
            if "duplicate column name" not in str(e).lower():
                raise


class TenantHandle:
    """打开状态的租户存储句柄，只由 TenantStoreManager 创建和持有。"""

    def __init__(self, tenant_id: str, path: Path, conn: sqlite3.Connection):
        self.tenant_id = tenant_id
        self.path = path
        self._conn = conn
        self._lock = threading.Lock()
        self._closed = False
        row = conn.execute("SELECT MAX(timestamp) FROM messages WHERE user_id = ?", (tenant_id,)).fetchone()
        self._last_ts = _parse_ts(row[0]) if row and row[0] else None

    @classmethod
    def open(cls, tenant_id: str, path: Path) -> "TenantHandle":
        conn = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(path), check_same_thread=False)
            apply_schema(conn)
            return cls(tenant_id, path, conn)
        except (sqlite3.Error, OSError) as e:
            if conn is not None:
                conn.close()
            raise StorageError(code="STORE_OPEN_ERROR", message=str(e), tenant_id=tenant_id)

    @property
    def closed(self) -> bool:
        return self._closed

    # ---- 会话消息 ----

    def append_message(self, display_name: str, role: MessageRole, content: str) -> ConversationMessage:
        with self._lock:
            ts = _now()
            # 时钟回拨时保持单调不减，同一时间戳再由 id 区分先后
            if self._last_ts is not None and ts < self._last_ts:
                ts = self._last_ts
            try:
                with self._conn:
                    self._conn.execute(
                        "INSERT INTO messages (user_id, user_name, role, content, timestamp) VALUES (?, ?, ?, ?, ?)",
                        (self.tenant_id, display_name, role, content, _format_ts(ts)),
                    )
            except sqlite3.Error as e:
                raise StorageError(code="STORE_WRITE_ERROR", message=str(e), tenant_id=self.tenant_id)
            self._last_ts = ts
        return ConversationMessage(
            tenant_id=self.tenant_id,
            display_name=display_name,
            role=role,
            content=content,
            timestamp=ts,
        )

    def list_messages(self) -> List[ConversationMessage]:
        with self._lock:
            try:
                rows = self._conn.execute(
                    "SELECT user_name, role, content, timestamp FROM messages "
                    "WHERE user_id = ? ORDER BY timestamp ASC, id ASC",
                    (self.tenant_id,),
                ).fetchall()
            except sqlite3.Error as e:
                raise StorageError(code="STORE_READ_ERROR", message=str(e), tenant_id=self.tenant_id)
        return [
            ConversationMessage(
                tenant_id=self.tenant_id,
                display_name=name,
                role=role,
                content=content,
                timestamp=_parse_ts(ts),
            )
            for name, role, content, ts in rows
        ]

    def trim_messages(self, keep: int) -> int:
        """只保留最近 keep 条消息，返回删除条数。"""

        if keep < 1:
            raise ValidationError(code="INVALID_KEEP", message=f"keep must be >= 1, got {keep}")
        with self._lock:
            try:
                with self._conn:
                    cur = self._conn.execute(
                        """
                        DELETE FROM messages WHERE user_id = ? AND id NOT IN (
                            SELECT id FROM messages WHERE user_id = ?
                            ORDER BY timestamp DESC, id DESC LIMIT ?
                        )
                        """,
                        (self.tenant_id, self.tenant_id, keep),
                    )
                    return cur.rowcount
            except sqlite3.Error as e:
                raise StorageError(code="STORE_WRITE_ERROR", message=str(e), tenant_id=self.tenant_id)

    def clear_messages(self) -> int:
        with self._lock:
            try:
                with self._conn:
                    cur = self._conn.execute("DELETE FROM messages WHERE user_id = ?", (self.tenant_id,))
                    return cur.rowcount
            except sqlite3.Error as e:
                raise StorageError(code="STORE_WRITE_ERROR", message=str(e), tenant_id=self.tenant_id)

    # ---- 偏好 ----

    def get_preference(self) -> Preference:
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT provider, model FROM preferences WHERE user_id = ?",
                    (self.tenant_id,),
                ).fetchone()
            except sqlite3.Error as e:
                raise StorageError(code="STORE_READ_ERROR", message=str(e), tenant_id=self.tenant_id)
        if row is None:
            return Preference(tenant_id=self.tenant_id)
        return Preference(tenant_id=self.tenant_id, provider=row[0] or NONE, model=row[1] or NONE)

    def set_preference(self, provider: str, model: str) -> None:
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute(
                        """
                        INSERT INTO preferences (user_id, provider, model) VALUES (?, ?, ?)
                        ON CONFLICT(user_id) DO UPDATE SET provider = excluded.provider, model = excluded.model
                        """,
                        (self.tenant_id, provider, model),
                    )
            except sqlite3.Error as e:
                raise StorageError(code="STORE_WRITE_ERROR", message=str(e), tenant_id=self.tenant_id)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._conn.close()
