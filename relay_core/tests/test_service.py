import pytest

from relay_core.api import service
from relay_core.api.context import build_context
from relay_core.config.settings import Settings
from relay_core.domain.conversation import NONE
from relay_core.providers.registry import ProviderRegistry


class FakeProvider:
    def __init__(self, name, models):
        self.name = name
        self.display_name = name.title()
        self._models = models

    def available_models(self):
        return list(self._models)

    def complete(self, messages, model=None):
        return f"{self.name}:{model or 'default'}"


@pytest.fixture
def ctx(tmp_path):
    cfg = Settings(storage_root=str(tmp_path / "data"), history_limit=20)
    registry = ProviderRegistry([
        FakeProvider("openai", ["gpt-5.1", "o3"]),
        FakeProvider("mistral", ["mistral-large-latest"]),
    ])
    context = build_context(cfg, registry=registry)
    yield context
    context.close()


def test_list_providers(ctx):
    text = service.list_providers(ctx)
    assert "**Available AI Providers:**" in text
    assert "• openai" in text and "• mistral" in text


def test_list_providers_empty(tmp_path):
    cfg = Settings(storage_root=str(tmp_path / "data"))
    context = build_context(cfg, registry=ProviderRegistry())
    try:
        assert service.list_providers(context) == "Error: No AI providers are configured"
    finally:
        context.close()


def test_select_provider_resets_model(ctx):
    ctx.preferences.set_preference("u1", "mistral", "mistral-large-latest")
    text = service.select_provider(ctx, "u1", "OpenAI")
    assert "Selected provider: **openai**" in text
    assert "gpt-5.1, o3" in text
    pref = ctx.preferences.get_preference("u1")
    assert (pref.provider, pref.model) == ("openai", NONE)


def test_select_unknown_provider(ctx):
    text = service.select_provider(ctx, "u1", "kimi")
    assert text == "Error: Provider 'kimi' not found. Available: openai, mistral"
    assert ctx.preferences.get_preference("u1").provider == NONE


def test_model_commands_require_provider(ctx):
    assert "First select a provider" in service.list_models(ctx, "u1")
    assert "First select a provider" in service.select_model(ctx, "u1", "o3")


def test_select_and_describe_model(ctx):
    service.select_provider(ctx, "u1", "openai")
    assert "• o3" in service.list_models(ctx, "u1")
    assert service.select_model(ctx, "u1", "o3") == "Model set to **o3** for **openai**"
    text = service.describe_config(ctx, "u1")
    assert "Provider: openai" in text
    assert "Model: o3" in text


def test_describe_config_defaults(ctx):
    text = service.describe_config(ctx, "u1")
    assert "Provider: Not selected" in text
    assert "Model: Not selected" in text


def test_run_chat_round_trip(ctx):
    assert service.run_chat(ctx, "u1", "alice", "hello").startswith("You haven't selected")
    service.select_provider(ctx, "u1", "openai")
    service.select_model(ctx, "u1", "o3")
    assert service.run_chat(ctx, "u1", "alice", "  hello again  ") == "openai:o3"
    history = service.get_history(ctx, "u1")
    assert [(h["role"], h["content"]) for h in history] == [
        ("user", "hello"),
        ("user", "hello again"),
        ("assistant", "openai:o3"),
    ]
    assert history[-1]["display_name"] == "Kurosawa"


def test_run_chat_ignores_blank_messages(ctx):
    assert service.run_chat(ctx, "u1", "alice", "   ") == ""
    assert service.get_history(ctx, "u1") == []


def test_clear_and_forget(ctx, tmp_path):
    service.select_provider(ctx, "u1", "openai")
    service.run_chat(ctx, "u1", "alice", "hello")
    assert service.clear_history(ctx, "u1") == "Cleared 2 messages from your conversation history."
    assert service.get_history(ctx, "u1") == []
    assert ctx.preferences.get_preference("u1").provider == "openai"

    assert "deleted" in service.forget_tenant(ctx, "u1")
    assert ctx.orchestrator.cached_lock_count() == 0
    assert not (tmp_path / "data" / "u1.db").exists()
    assert ctx.preferences.get_preference("u1").provider == NONE


def test_invalid_tenant_reported_as_error(ctx):
    assert service.clear_history(ctx, "bad/id").startswith("Error: Cannot clear history")
