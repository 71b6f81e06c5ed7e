import threading
import time

import pytest

from relay_core.agents.orchestrator import NO_PROVIDER_REPLY, ConversationOrchestrator, OrchestratorConfig
from relay_core.domain.exceptions import FatalProviderError, StorageError, TransientProviderError
from relay_core.infrastructure.storage.sqlite_store import open_stores
from relay_core.providers.registry import ProviderRegistry


class FakeProvider:
    display_name = "Fake"

    def __init__(self, name="providerx", reply="stubbed reply", error=None):
        self.name = name
        self.reply = reply
        self.error = error
        self.calls = []

    def available_models(self):
        return ["modely"]

    def complete(self, messages, model=None):
        self.calls.append((list(messages), model))
        if self.error is not None:
            raise self.error
        return self.reply


def make(tmp_path, provider=None, **config):
    manager, conversations, preferences = open_stores(tmp_path)
    provider = provider or FakeProvider()
    registry = ProviderRegistry([provider])
    orchestrator = ConversationOrchestrator(conversations, preferences, registry, OrchestratorConfig(**config))
    return orchestrator, conversations, preferences, provider


def test_end_to_end_exchange(tmp_path):
    orchestrator, conversations, preferences, provider = make(tmp_path)
    preferences.set_preference("u1", "providerX", "modelY")

    reply = orchestrator.get_response("u1", "alice", "hi")

    assert reply == "stubbed reply"
    msgs = conversations.list_messages("u1")
    assert [(m.role, m.content) for m in msgs] == [("user", "hi"), ("assistant", "stubbed reply")]
    assert msgs[0].display_name == "alice"
    assert msgs[1].display_name == "Kurosawa"
    sent, model = provider.calls[0]
    assert model == "modelY"
    assert sent[0].role == "system"
    assert "Kurosawa" in sent[0].content
    assert [(m.role, m.content) for m in sent[1:]] == [("user", "alice: hi")]


def test_history_keeps_roles(tmp_path):
    orchestrator, _, preferences, provider = make(tmp_path)
    preferences.set_preference("u1", "providerx", "none")
    orchestrator.get_response("u1", "alice", "first")
    orchestrator.get_response("u1", "alice", "second")
    sent, _ = provider.calls[1]
    assert [(m.role, m.content) for m in sent[1:]] == [
        ("user", "alice: first"),
        ("assistant", "stubbed reply"),
        ("user", "alice: second"),
    ]


def test_no_provider_selected_returns_guidance(tmp_path):
    orchestrator, conversations, _, provider = make(tmp_path)
    reply = orchestrator.get_response("u1", "alice", "hi")
    assert reply == NO_PROVIDER_REPLY
    assert provider.calls == []
    assert [m.role for m in conversations.list_messages("u1")] == ["user"]


def test_stale_provider_lists_available(tmp_path):
    orchestrator, _, preferences, provider = make(tmp_path)
    preferences.set_preference("u1", "removed", "none")
    reply = orchestrator.get_response("u1", "alice", "hi")
    assert "removed" in reply
    assert "providerx" in reply
    assert provider.calls == []


@pytest.mark.parametrize(
    "error",
    [
        TransientProviderError(code="RATE_LIMITED", message="slow down"),
        FatalProviderError(code="AUTH_FAILED", message="bad key"),
    ],
)
def test_provider_failure_propagates_without_assistant_message(tmp_path, error):
    orchestrator, conversations, preferences, _ = make(tmp_path, FakeProvider(error=error))
    preferences.set_preference("u1", "providerx", "none")
    with pytest.raises(type(error)):
        orchestrator.get_response("u1", "alice", "hi")
    assert [m.role for m in conversations.list_messages("u1")] == ["user"]


class FailingStore:
    """包装真实存储，按需让某一步失败。"""

    def __init__(self, inner, fail_on):
        self._inner = inner
        self._fail_on = fail_on

    def append(self, tenant_id, display_name, role, content):
        if ("append", role) in self._fail_on:
            raise StorageError(code="STORE_WRITE_ERROR", message="disk full")
        return self._inner.append(tenant_id, display_name, role, content)

    def list_messages(self, tenant_id):
        return self._inner.list_messages(tenant_id)

    def trim(self, tenant_id, keep):
        if ("trim", None) in self._fail_on:
            raise StorageError(code="STORE_WRITE_ERROR", message="locked")
        return self._inner.trim(tenant_id, keep)


def test_inbound_write_failure_aborts_before_provider(tmp_path):
    _, conversations, preferences = open_stores(tmp_path)
    provider = FakeProvider()
    preferences.set_preference("u1", "providerx", "none")
    orchestrator = ConversationOrchestrator(
        FailingStore(conversations, {("append", "user")}), preferences, ProviderRegistry([provider])
    )
    with pytest.raises(StorageError):
        orchestrator.get_response("u1", "alice", "hi")
    assert provider.calls == []


def test_reply_write_failure_still_returns_reply(tmp_path):
    _, conversations, preferences = open_stores(tmp_path)
    preferences.set_preference("u1", "providerx", "none")
    orchestrator = ConversationOrchestrator(
        FailingStore(conversations, {("append", "assistant"), ("trim", None)}),
        preferences,
        ProviderRegistry([FakeProvider()]),
    )
    assert orchestrator.get_response("u1", "alice", "hi") == "stubbed reply"
    assert [m.role for m in conversations.list_messages("u1")] == ["user"]


def test_trim_failure_still_returns_reply(tmp_path):
    _, conversations, preferences = open_stores(tmp_path)
    preferences.set_preference("u1", "providerx", "none")
    orchestrator = ConversationOrchestrator(
        FailingStore(conversations, {("trim", None)}), preferences, ProviderRegistry([FakeProvider()])
    )
    assert orchestrator.get_response("u1", "alice", "hi") == "stubbed reply"


def test_history_is_trimmed_after_exchange(tmp_path):
    orchestrator, conversations, preferences, _ = make(tmp_path, history_limit=4)
    preferences.set_preference("u1", "providerx", "none")
    for i in range(5):
        orchestrator.get_response("u1", "alice", f"q{i}")
    msgs = conversations.list_messages("u1")
    assert [m.content for m in msgs] == ["q3", "stubbed reply", "q4", "stubbed reply"]


def test_trimming_can_be_disabled(tmp_path):
    orchestrator, conversations, preferences, _ = make(tmp_path, history_limit=0)
    preferences.set_preference("u1", "providerx", "none")
    for i in range(15):
        orchestrator.get_response("u1", "alice", f"q{i}")
    assert len(conversations.list_messages("u1")) == 30


def test_context_window_limits_prompt(tmp_path):
    orchestrator, _, preferences, provider = make(tmp_path, history_limit=0, max_context_messages=3)
    preferences.set_preference("u1", "providerx", "none")
    for i in range(4):
        orchestrator.get_response("u1", "alice", f"q{i}")
    sent, _ = provider.calls[-1]
    assert len(sent) == 4
    assert sent[-1].content == "alice: q3"


def test_same_tenant_exchanges_are_serialized(tmp_path):
    active = []
    overlap = []

    class SlowProvider(FakeProvider):
        def complete(self, messages, model=None):
            active.append(1)
            if len(active) > 1:
                overlap.append(True)
            time.sleep(0.05)
            active.pop()
            return "done"

    orchestrator, conversations, preferences, _ = make(tmp_path, SlowProvider(), history_limit=0)
    preferences.set_preference("u1", "providerx", "none")
    threads = [
        threading.Thread(target=orchestrator.get_response, args=("u1", "alice", f"q{i}"))
        for i in range(4)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert overlap == []
    roles = [m.role for m in conversations.list_messages("u1")]
    assert roles == ["user", "assistant"] * 4


def test_forget_tenant_drops_data_and_lock(tmp_path):
    orchestrator, conversations, preferences, _ = make(tmp_path)
    preferences.set_preference("u1", "providerx", "none")
    preferences.set_preference("u2", "providerx", "none")
    orchestrator.get_response("u1", "alice", "hi")
    orchestrator.get_response("u2", "bob", "hi")
    assert orchestrator.cached_lock_count() == 2

    orchestrator.forget_tenant("u1")

    assert orchestrator.cached_lock_count() == 1
    assert not (tmp_path / "u1.db").exists()
    assert conversations.list_messages("u1") == []
    assert len(conversations.list_messages("u2")) == 2
