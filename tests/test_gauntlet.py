import pytest

from app.services.ai_errors import (
    MissingCredential, ModelCallFailed, ModelConfigError, ModelOverloaded, ModelRateLimited, ModelsExhausted,
)
from app.services.gauntlet import GauntletInvoker, strip_unsupported
from app.services.llm_providers import EchoProvider, GenerationRequest, OpenAIProvider, classify_status_error
from app.services.model_pool import ModelPool

from conftest import FakeClock, ScriptedProvider


def _invoker(provider, models=("model-a", "model-b"), api_key="key", clock=None):
    sleeps = []
    pool = ModelPool(list(models), cooldown_seconds=60, clock=clock or FakeClock(0.0))
    inv = GauntletInvoker(provider, pool, api_key, max_rate_limit_retries=1,
                          backoff_base_seconds=2.0, sleep=sleeps.append)
    return inv, pool, sleeps


def test_first_success_wins():
    provider = ScriptedProvider({"model-a": ["hello"], "model-b": ["unused"]})
    inv, _, _ = _invoker(provider)
    assert inv.invoke(GenerationRequest(prompt="hi")) == "hello"
    assert provider.models_called == ["model-a"]


def test_rate_limit_retries_then_succeeds_on_same_model():
    provider = ScriptedProvider({"model-a": [ModelRateLimited("429"), "ok"]})
    inv, pool, sleeps = _invoker(provider)
    assert inv.invoke(GenerationRequest(prompt="hi")) == "ok"
    assert sleeps == [2.0]
    assert pool.cooldown_remaining("model-a") == 0


def test_rate_limit_exhausted_cools_model_down_and_moves_on():
    provider = ScriptedProvider({
        "model-a": [ModelRateLimited("429"), ModelRateLimited("429")],
        "model-b": ["from b"],
    })
    inv, pool, sleeps = _invoker(provider)
    assert inv.invoke(GenerationRequest(prompt="hi")) == "from b"
    assert provider.models_called == ["model-a", "model-a", "model-b"]
    assert sleeps == [2.0]
    assert pool.cooldown_remaining("model-a") == 60
    assert pool.get_available_models() == ["model-b"]


def test_overload_is_retryable():
    provider = ScriptedProvider({"model-a": [ModelOverloaded("503"), "fine"]})
    inv, _, sleeps = _invoker(provider)
    assert inv.invoke(GenerationRequest(prompt="hi")) == "fine"
    assert sleeps == [2.0]


def test_config_error_bans_model_for_the_session():
    provider = ScriptedProvider({"model-a": [ModelConfigError("404")], "model-b": ["one", "two"]})
    inv, pool, sleeps = _invoker(provider)
    assert inv.invoke(GenerationRequest(prompt="hi")) == "one"
    assert pool.is_banned("model-a")
    assert sleeps == []
    assert inv.invoke(GenerationRequest(prompt="again")) == "two"
    assert provider.models_called == ["model-a", "model-b", "model-b"]


def test_plain_failures_advance_without_penalty():
    provider = ScriptedProvider({"model-a": [ModelCallFailed("timeout")], "model-b": ["ok"]})
    inv, pool, _ = _invoker(provider)
    assert inv.invoke(GenerationRequest(prompt="hi")) == "ok"
    assert not pool.is_banned("model-a")
    assert pool.cooldown_remaining("model-a") == 0


def test_unexpected_exception_is_wrapped():
    provider = ScriptedProvider({"model-a": [ValueError("boom")], "model-b": [ValueError("bang")]})
    inv, _, _ = _invoker(provider)
    with pytest.raises(ModelCallFailed):
        inv.invoke(GenerationRequest(prompt="hi"))


def test_empty_reply_advances():
    provider = ScriptedProvider({"model-a": ["   "], "model-b": ["text"]})
    inv, _, _ = _invoker(provider)
    assert inv.invoke(GenerationRequest(prompt="hi")) == "text"


def test_all_failures_raise_last_error():
    provider = ScriptedProvider({"model-a": [ModelCallFailed("a down")], "model-b": [ModelConfigError("b bad")]})
    inv, _, _ = _invoker(provider)
    with pytest.raises(ModelConfigError):
        inv.invoke(GenerationRequest(prompt="hi"))


def test_missing_credential_fails_before_any_call():
    class KeyedProvider(ScriptedProvider):
        requires_credential = True

    provider = KeyedProvider(["never"])
    inv, _, _ = _invoker(provider, api_key=None)
    with pytest.raises(MissingCredential):
        inv.invoke(GenerationRequest(prompt="hi"))
    assert provider.calls == []

    inv, _, _ = _invoker(None)
    with pytest.raises(MissingCredential):
        inv.invoke(GenerationRequest(prompt="hi"))


def test_empty_pool():
    inv, _, _ = _invoker(EchoProvider(), models=())
    with pytest.raises(ModelsExhausted):
        inv.invoke(GenerationRequest(prompt="hi"))


def test_echo_provider_needs_no_key():
    inv, _, _ = _invoker(EchoProvider(), api_key=None)
    assert inv.invoke(GenerationRequest(prompt="ping")) == "ping"


def test_openai_provider_requires_key(monkeypatch):
    from app.services import llm_providers
    monkeypatch.setattr(llm_providers.settings, "OPENAI_API_KEY", None)
    with pytest.raises(MissingCredential):
        OpenAIProvider(api_key=None)


def test_strip_unsupported_params():
    req = GenerationRequest(prompt="p", system_instruction="sys", json_mode=True, temperature=0.2)
    assert strip_unsupported(req, "gpt-4o-mini") is req
    stripped = strip_unsupported(req, "o1-mini-2024")
    assert stripped.temperature is None
    assert stripped.json_mode is False
    assert stripped.system_instruction is None
    assert stripped.prompt == "sys\n\np"
    assert strip_unsupported(req, "o3-mini").json_mode is True


@pytest.mark.parametrize("status,code,message,expected", [
    (429, "rate_limit_exceeded", "slow down", ModelRateLimited),
    (503, None, "unavailable", ModelOverloaded),
    (529, None, "overloaded", ModelOverloaded),
    (404, "model_not_found", "no such model", ModelConfigError),
    (400, "invalid_request_error", "bad param", ModelConfigError),
    (400, "content_filter", "blocked", ModelCallFailed),
    (400, "context_length_exceeded", "too long", ModelCallFailed),
    (500, "server_error", "oops", ModelCallFailed),
])
def test_classify_status_error(status, code, message, expected):
    err = classify_status_error(status, code, message, "gpt-4o")
    assert type(err) is expected
    assert err.model == "gpt-4o"
