"""Tests for batched title triage."""

from __future__ import annotations

import json

import pytest

from rolesift.ai.retry import RetryPolicy
from rolesift.ai.title_filter import ABORT, DEFAULT_REASON, PASS_THROUGH, TitleFilter
from rolesift.events import TITLE_BATCH_FAILED
from rolesift.exceptions import ProviderError, TitleFilterError
from rolesift.models import TitleEntry
from rolesift.settings import ModelSpec

from conftest import TITLE_PROMPT, FakeGateway

POLICY = RetryPolicy.build([ModelSpec(model="gpt-4o-mini"), ModelSpec(model="gpt-4o")], 2, 0)


def _entries(count: int) -> list[TitleEntry]:
    return [
        TitleEntry(title=f"Role {i}", company="Acme", location="Remote", url=f"https://x/{i}", job_id=str(i))
        for i in range(count)
    ]


def _filter(gateway, batch_size=20, failure_policy=PASS_THROUGH, sink=None, sleeper=None):
    kwargs = {"site": "demo", "sink": sink}
    if sleeper is not None:
        kwargs["sleep"] = sleeper
    return TitleFilter(gateway, POLICY, TITLE_PROMPT, batch_size, failure_policy, **kwargs)


@pytest.mark.asyncio
async def test_batches_and_unions_removals(sink):
    def respond(batch):
        return {"remove": [{"job_id": e["job_id"], "reason": "off-topic"} for e in batch if int(e["job_id"]) % 2]}

    gateway = FakeGateway(title=respond)
    result = await _filter(gateway, batch_size=20, sink=sink).filter_titles(_entries(45))

    assert len(gateway.title_calls()) == 3
    assert [len(json.loads(user)) for _, _, user in gateway.title_calls()] == [20, 20, 5]
    assert result.removal_set == {str(i) for i in range(45) if i % 2}
    assert result.reasons["1"] == "off-topic"


@pytest.mark.asyncio
async def test_entries_are_sent_as_json_objects():
    gateway = FakeGateway()
    await _filter(gateway).filter_titles(_entries(2))
    sent = gateway.titled_ids()
    assert sent == ["0", "1"]


@pytest.mark.asyncio
async def test_blank_ids_and_reasons():
    gateway = FakeGateway(
        title=lambda batch: {
            "remove": [{"job_id": "", "reason": "x"}, {"job_id": "3", "reason": "  "}],
            "removeJobIds": ["4", " "],
        }
    )
    result = await _filter(gateway).filter_titles(_entries(5))
    assert result.removal_set == {"3", "4"}
    assert result.reasons == {"3": DEFAULT_REASON, "4": DEFAULT_REASON}


@pytest.mark.asyncio
async def test_empty_input_makes_no_calls():
    gateway = FakeGateway()
    result = await _filter(gateway).filter_titles([])
    assert gateway.calls == []
    assert result.removal_set == set()


@pytest.mark.asyncio
async def test_fallback_model_used_on_second_attempt(sleeper):
    attempts = []

    def respond(batch):
        attempts.append(len(attempts) + 1)
        if len(attempts) == 1:
            raise ProviderError("HTML error page")
        return {"remove": [{"job_id": "0", "reason": "nope"}]}

    gateway = FakeGateway(title=respond)
    result = await _filter(gateway, sleeper=sleeper).filter_titles(_entries(1))
    assert [c[0].model for c in gateway.calls] == ["gpt-4o-mini", "gpt-4o"]
    assert result.removal_set == {"0"}


@pytest.mark.asyncio
async def test_exhausted_batch_passes_through(sink, sleeper):
    def respond(batch):
        if batch[0]["job_id"] == "0":
            raise ProviderError("down")
        return {"removeJobIds": [e["job_id"] for e in batch]}

    gateway = FakeGateway(title=respond)
    result = await _filter(gateway, batch_size=2, sink=sink, sleeper=sleeper).filter_titles(_entries(4))

    assert result.removal_set == {"2", "3"}
    failed = sink.of_kind(TITLE_BATCH_FAILED)
    assert len(failed) == 1
    assert failed[0]["batch"] == 1


@pytest.mark.asyncio
async def test_exhausted_batch_aborts_when_configured(sleeper):
    def respond(batch):
        raise ProviderError("down")

    gateway = FakeGateway(title=respond)
    with pytest.raises(TitleFilterError):
        await _filter(gateway, failure_policy=ABORT, sleeper=sleeper).filter_titles(_entries(3))


def test_unknown_failure_policy_rejected():
    with pytest.raises(ValueError):
        _filter(FakeGateway(), failure_policy="ignore")
