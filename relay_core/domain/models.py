"""统一的对话数据模型。

本模块定义了在不同 Provider 之间共享的标准数据结构：

- ChatMessage: 发给后端的一条消息（system/user/assistant）。
- InboundMessage: 传输层收到的一条用户消息事件。

所有 Provider 适配器都只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass
from typing import Literal


# LLM 消息角色类型（与 OpenAI / Mistral 等厂商的 role 字段对应）
Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class ChatMessage:
    """一条发往后端的消息。

    - role: 消息角色，保留 user/assistant 的区分，避免后端丢失角色信息。
    - content: 纯文本内容。
    """

    role: Role
    content: str

    def to_payload(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class InboundMessage:
    """传输层投递过来的一条消息事件。"""

    tenant_id: str
    display_name: str
    text: str
