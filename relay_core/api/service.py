"""对外 API 服务模块。

提供简化的函数接口供传输层（聊天平台网关、命令处理）调用，
所有函数都显式接收 RelayContext，返回可直接发给用户的文本。
"""

from typing import Any, Dict, List

from relay_core.api.context import RelayContext
from relay_core.domain.conversation import NONE
from relay_core.domain.exceptions import BusinessError
from relay_core.infrastructure.logging.logger import logger


def run_chat(ctx: RelayContext, tenant_id: str, display_name: str, message: str) -> str:
    """运行一轮对话。

    Args:
        ctx: 进程上下文
        tenant_id: 平台用户ID
        display_name: 用户显示名（昵称优先）
        message: 用户输入内容，去掉首尾空白后为空则忽略

    Returns:
        助手回复；消息为空时返回空字符串

    Raises:
        各种 domain.exceptions 中定义的异常
    """
    message = message.strip()
    if not message:
        return ""
    try:
        return ctx.orchestrator.get_response(tenant_id, display_name, message)
    except Exception as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {
            "tenant_id": tenant_id,
            "error": str(e),
        }})
        raise


def list_providers(ctx: RelayContext) -> str:
    names = ctx.registry.list_names()
    if not names:
        return _error("No AI providers are configured")
    lines = ["**Available AI Providers:**"]
    lines.extend(f"• {name}" for name in names)
    lines.append("")
    lines.append("Usage: `/provider name:<provider>`")
    return "\n".join(lines)


def select_provider(ctx: RelayContext, tenant_id: str, provider_name: str) -> str:
    """选择 Provider，同时把模型重置为未选择，并列出该 Provider 的模型。"""

    name = provider_name.strip().lower()
    if not name:
        return list_providers(ctx)
    provider = ctx.registry.get(name)
    if provider is None:
        available = ", ".join(ctx.registry.list_names())
        return _error(f"Provider '{name}' not found. Available: {available}")
    try:
        ctx.preferences.set_preference(tenant_id, provider.name, NONE)
    except BusinessError as e:
        return _error(f"Cannot save preference: {e.message}")
    models = ", ".join(provider.available_models())
    return (
        f"Selected provider: **{provider.name}**\n\n"
        f"**Available models:**\n{models}\n\n"
        "Next, use `/model name:<model>` to choose a model."
    )


def list_models(ctx: RelayContext, tenant_id: str) -> str:
    try:
        pref = ctx.preferences.get_preference(tenant_id)
    except BusinessError as e:
        return _error(f"Cannot get preferences: {e.message}")
    if not pref.has_provider:
        return _error("First select a provider using `/provider name:<provider>`")
    provider = ctx.registry.get(pref.provider)
    if provider is None:
        return _error(f"Provider '{pref.provider}' not found")
    lines = [f"**Available models for {provider.name}:**"]
    lines.extend(f"• {m}" for m in provider.available_models())
    lines.append("")
    lines.append("Usage: `/model name:<model>`")
    return "\n".join(lines)


def select_model(ctx: RelayContext, tenant_id: str, model_name: str) -> str:
    model = model_name.strip()
    if not model:
        return list_models(ctx, tenant_id)
    try:
        pref = ctx.preferences.get_preference(tenant_id)
        if not pref.has_provider:
            return _error("First select a provider using `/provider name:<provider>`")
        ctx.preferences.set_preference(tenant_id, pref.provider, model)
    except BusinessError as e:
        return _error(f"Cannot save preference: {e.message}")
    return f"Model set to **{model}** for **{pref.provider}**"


def describe_config(ctx: RelayContext, tenant_id: str) -> str:
    try:
        pref = ctx.preferences.get_preference(tenant_id)
    except BusinessError as e:
        return _error(f"Cannot get preferences: {e.message}")
    lines = ["**Your AI Configuration:**"]
    lines.append(f"Provider: {pref.provider if pref.has_provider else 'Not selected'}")
    lines.append(f"Model: {pref.model if pref.has_model else 'Not selected'}")
    lines.append("")
    lines.append("**Available commands:**")
    lines.append("• `/provider` - View and set your AI provider")
    lines.append("• `/model` - View and set your AI model")
    return "\n".join(lines)


def clear_history(ctx: RelayContext, tenant_id: str) -> str:
    try:
        removed = ctx.conversations.clear(tenant_id)
    except BusinessError as e:
        return _error(f"Cannot clear history: {e.message}")
    return f"Cleared {removed} messages from your conversation history."


def forget_tenant(ctx: RelayContext, tenant_id: str) -> str:
    """删除租户的全部数据（历史与偏好）。"""

    try:
        ctx.orchestrator.forget_tenant(tenant_id)
    except BusinessError as e:
        return _error(f"Cannot delete your data: {e.message}")
    return "All of your stored conversation data has been deleted."


def get_history(ctx: RelayContext, tenant_id: str) -> List[Dict[str, Any]]:
    """获取租户的全部历史消息。"""

    msgs = ctx.conversations.list_messages(tenant_id)
    return [
        {
            "display_name": m.display_name,
            "role": m.role,
            "content": m.content,
            "timestamp": m.timestamp.isoformat(),
        }
        for m in msgs
    ]


def _error(message: str) -> str:
    return f"Error: {message}"
