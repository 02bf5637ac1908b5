"""Tests for detail evaluation, JSON reply parsing and provider routing."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from rolesift.ai import providers
from rolesift.ai.detail_eval import DetailEvaluator, render_payload
from rolesift.ai.providers import ModelGateway, parse_json_object
from rolesift.ai.retry import RetryPolicy
from rolesift.exceptions import ConfigurationError, ProviderError, ProviderResponseError, RetryExhaustedError
from rolesift.models import DetailPayload
from rolesift.settings import AISettings, ModelSpec

from conftest import DETAIL_PROMPT, FakeGateway

PAYLOAD = DetailPayload(
    title="Backend Engineer",
    company="Acme",
    location="Remote",
    url="https://jobs.example.com/view/1",
    description="Python services.",
)


class StubProvider:
    def __init__(self, reply: str = '{"ok": true}', delay: float = 0.0) -> None:
        self.reply = reply
        self.delay = delay
        self.models: list[str] = []

    async def complete(self, model: str, system: str, user: str) -> str:
        self.models.append(model)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.reply


# ---- parse_json_object ----


def test_parse_plain_and_fenced_json():
    assert parse_json_object('{"accepted": true}') == {"accepted": True}
    assert parse_json_object('```json\n{"remove": []}\n```') == {"remove": []}
    assert parse_json_object("") == {}


def test_parse_rejects_html_and_non_objects():
    with pytest.raises(ProviderResponseError, match="HTML"):
        parse_json_object("<!DOCTYPE html><html>429</html>")
    with pytest.raises(ProviderResponseError):
        parse_json_object("[1, 2]")
    with pytest.raises(ProviderResponseError):
        parse_json_object("{not json")


# ---- gateway ----


@pytest.mark.asyncio
async def test_gateway_routes_by_provider():
    openai_stub, gemini_stub = StubProvider(), StubProvider('{"from": "gemini"}')
    gateway = ModelGateway({"openai": openai_stub, "gemini": gemini_stub})

    reply = await gateway.complete_json(ModelSpec(provider="gemini", model="gemini-1.5-pro"), "s", "u")

    assert reply == {"from": "gemini"}
    assert gemini_stub.models == ["gemini-1.5-pro"]
    assert openai_stub.models == []


@pytest.mark.asyncio
async def test_gateway_missing_provider_is_configuration_error():
    gateway = ModelGateway({"openai": StubProvider()})
    with pytest.raises(ConfigurationError):
        await gateway.complete_json(ModelSpec(provider="gemini", model="g"), "s", "u")


@pytest.mark.asyncio
async def test_gateway_timeout_is_provider_error():
    gateway = ModelGateway({"openai": StubProvider(delay=1.0)}, timeout=0.01)
    with pytest.raises(ProviderError, match="timed out"):
        await gateway.complete_json(ModelSpec(model="gpt-4o"), "s", "u")


def test_gateway_requires_keys_for_used_providers():
    ai = AISettings(title_models=["gemini:gemini-1.5-flash"], detail_models=["gemini:gemini-1.5-pro"])
    with pytest.raises(ConfigurationError, match="gemini_api_key"):
        ModelGateway.from_settings(ai)


@pytest.mark.asyncio
async def test_gemini_provider_requests_json_through_async_client(monkeypatch):
    requests = []

    class FakeModels:
        async def generate_content(self, **kwargs):
            requests.append(kwargs)
            return SimpleNamespace(text='{"accepted": true}')

    class FakeClient:
        def __init__(self, api_key):
            self.api_key = api_key
            self.aio = SimpleNamespace(models=FakeModels())

    monkeypatch.setattr(providers.genai, "Client", FakeClient)
    provider = providers.GeminiProvider("g-key")

    assert provider._client.api_key == "g-key"
    assert await provider.complete("gemini-1.5-pro", "Judge.", "Title: Dev") == '{"accepted": true}'
    (request,) = requests
    assert (request["model"], request["contents"]) == ("gemini-1.5-pro", "Title: Dev")
    assert request["config"].response_mime_type == "application/json"
    assert request["config"].system_instruction == "Judge."


# ---- detail evaluation ----


def test_payload_rendering():
    text = render_payload(PAYLOAD)
    assert text.startswith("Title: Backend Engineer\nCompany: Acme\n")
    assert text.endswith("Description:\nPython services.")


@pytest.mark.asyncio
async def test_third_attempt_succeeds_on_second_fallback(sleeper):
    models = [ModelSpec(model="m1"), ModelSpec(model="m2"), ModelSpec(model="m3")]
    seen_models = []

    def respond(user):
        seen_models.append(len(seen_models))
        if len(seen_models) < 3:
            raise ProviderError("flaky")
        return {"accepted": "true", "reasoning": "Strong match."}

    gateway = FakeGateway(detail=respond)
    evaluator = DetailEvaluator(
        gateway, RetryPolicy.build(models, 3, 2.0), DETAIL_PROMPT, site="demo", sleep=sleeper
    )
    verdict = await evaluator.evaluate(PAYLOAD)

    assert verdict.accepted is True
    assert verdict.reasoning == "Strong match."
    assert [c[0].model for c in gateway.calls] == ["m1", "m2", "m3"]
    assert sleeper.delays == [2.0, 4.0]


@pytest.mark.asyncio
async def test_exhausted_evaluation_raises(sleeper):
    def respond(user):
        raise ProviderError("down")

    evaluator = DetailEvaluator(
        FakeGateway(detail=respond),
        RetryPolicy.build([ModelSpec(model="m1")], 3, 0),
        DETAIL_PROMPT,
        sleep=sleeper,
    )
    with pytest.raises(RetryExhaustedError):
        await evaluator.evaluate(PAYLOAD)


@pytest.mark.asyncio
async def test_missing_reasoning_is_blank():
    evaluator = DetailEvaluator(
        FakeGateway(detail=lambda user: {"accepted": False}),
        RetryPolicy.build([ModelSpec(model="m1")], 1, 0),
        DETAIL_PROMPT,
    )
    verdict = await evaluator.evaluate(PAYLOAD)
    assert verdict.accepted is False
    assert verdict.reasoning == ""
