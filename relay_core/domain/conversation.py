"""会话与偏好的存储模型，以及存储层协议。"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Literal, Protocol

# 未设置 Provider / 模型时的哨兵值
NONE = "none"

MessageRole = Literal["user", "assistant"]


@dataclass(frozen=True)
class ConversationMessage:
    tenant_id: str
    display_name: str
    role: MessageRole
    content: str
    timestamp: datetime


@dataclass(frozen=True)
class Preference:
    tenant_id: str
    provider: str = NONE
    model: str = NONE

    @property
    def has_provider(self) -> bool:
        return bool(self.provider) and self.provider != NONE

    @property
    def has_model(self) -> bool:
        return bool(self.model) and self.model != NONE


class ConversationStore(Protocol):
    def append(self, tenant_id: str, display_name: str, role: MessageRole, content: str) -> ConversationMessage:
        ...

    def list_messages(self, tenant_id: str) -> List[ConversationMessage]:
        ...

    def trim(self, tenant_id: str, keep: int) -> int:
        ...

    def clear(self, tenant_id: str) -> int:
        ...

    def delete_tenant(self, tenant_id: str) -> None:
        ...

    def close_all(self) -> None:
        ...


class PreferenceStore(Protocol):
    def get_preference(self, tenant_id: str) -> Preference:
        ...

    def set_preference(self, tenant_id: str, provider: str, model: str) -> None:
        ...
