"""Relay Core 顶层包。

该包提供聊天机器人的多租户对话编排核心，
包括配置加载、领域模型、按租户划分的持久化存储、
多厂商 Provider 适配、对话编排以及传输边界的长消息切分。
"""

from relay_core.transport.segmenter import split_message

__all__ = ["split_message"]
