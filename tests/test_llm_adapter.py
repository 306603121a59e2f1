import asyncio
import dataclasses
import types
from unittest.mock import AsyncMock, MagicMock

import pytest

from services.llm_adapter import LLMAdapter


def _client(content=None, side_effect=None):
    client = MagicMock()
    response = types.SimpleNamespace(
        choices=[types.SimpleNamespace(message=types.SimpleNamespace(content=content))],
        usage=types.SimpleNamespace(total_tokens=42),
    )
    client.chat.completions.create = AsyncMock(return_value=response, side_effect=side_effect)
    return client


@pytest.mark.asyncio
async def test_json_object_is_returned(cfg):
    client = _client('{"score": 0.8, "label": "positive"}')
    adapter = LLMAdapter(cfg, client=client)

    result = await adapter.complete_json("rate this", system="be brief")

    assert result.ok is True
    assert result.value == {"score": 0.8, "label": "positive"}
    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["model"] == cfg.OPENAI_MODEL
    assert kwargs["messages"][0] == {"role": "system", "content": "be brief"}
    assert adapter.budget.current_hour_calls == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["not json", "[1, 2]", '"text"'])
async def test_non_object_replies_are_failures(cfg, content):
    adapter = LLMAdapter(cfg, client=_client(content))

    result = await adapter.complete_json("rate this")

    assert result.ok is False


@pytest.mark.asyncio
async def test_empty_content_is_an_empty_object(cfg):
    adapter = LLMAdapter(cfg, client=_client(None))

    result = await adapter.complete_json("rate this")

    assert result.ok is True
    assert result.value == {}


@pytest.mark.asyncio
async def test_timeout_is_a_failure(cfg):
    adapter = LLMAdapter(cfg, client=_client(side_effect=asyncio.TimeoutError()))

    result = await adapter.complete_json("rate this")

    assert result.ok is False
    assert result.error == "timeout"


@pytest.mark.asyncio
async def test_api_error_is_a_failure(cfg):
    adapter = LLMAdapter(cfg, client=_client(side_effect=RuntimeError("bad gateway")))

    result = await adapter.complete_json("rate this")

    assert result.ok is False
    assert "bad gateway" in result.error


@pytest.mark.asyncio
async def test_budget_exhaustion_skips_the_call(cfg):
    client = _client("{}")
    adapter = LLMAdapter(cfg, client=client)
    adapter.budget.current_hour_calls = adapter.budget.max_calls_per_hour

    result = await adapter.complete_json("rate this")

    assert result.ok is False
    assert "budget" in result.error
    client.chat.completions.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_budget_limits_come_from_config(cfg):
    limited = dataclasses.replace(cfg, LLM_MAX_CALLS_PER_HOUR=2, LLM_MAX_CALLS_PER_DAY=5)
    client = _client("{}")
    adapter = LLMAdapter(limited, client=client)

    assert adapter.remaining_calls() == 2
    await adapter.complete_json("one")
    assert adapter.remaining_calls() == 1
    await adapter.complete_json("two")
    assert adapter.remaining_calls() == 0

    result = await adapter.complete_json("three")

    assert result.ok is False
    assert client.chat.completions.create.await_count == 2


def test_daily_budget_caps_remaining_calls(cfg):
    adapter = LLMAdapter(cfg, client=_client("{}"))
    adapter.budget.current_day_calls = cfg.LLM_MAX_CALLS_PER_DAY - 3

    assert adapter.remaining_calls() == 3
