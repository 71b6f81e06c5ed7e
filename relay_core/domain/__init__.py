"""领域层模型与协议。

包含：
- models: 统一的 ChatMessage / InboundMessage 模型。
- conversation: 会话消息、租户偏好的存储模型及存储协议。
- exceptions: 业务异常类型定义。
"""
