"""Pytest configuration providing basic asyncio support and pipeline fakes."""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from config import _build_config
from services.models import CollaboratorResult, Message, Metrics

FIXED_NOW = datetime(2025, 1, 15, 15, 0, tzinfo=UTC)


def pytest_pyfunc_call(pyfuncitem):  # pragma: no cover - pytest hook
    """Allow pytest to run ``async def`` tests without extra plugins."""
    test_func = pyfuncitem.obj

    if inspect.iscoroutinefunction(test_func):
        funcargs = pyfuncitem.funcargs
        sig = inspect.signature(test_func)
        call_args = {
            name: value
            for name, value in funcargs.items()
            if name in sig.parameters
        }
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            loop.run_until_complete(test_func(**call_args))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


class FakeLLM:
    """Answers ``complete_json`` by prompt kind.

    Each route is a dict (returned as success), ``None`` (failure) or an
    exception instance (raised).
    """

    ROUTES = {
        "Analyze the sentiment": "sentiment",
        "Extract the most important keywords": "keywords",
        "suggest a creative meme coin": "token",
        "reply actions": "recommendation",
    }

    def __init__(self, budget: int = 1000, **routes: Any):
        self.budget = budget
        self.routes = routes
        self.calls: List[str] = []

    async def complete_json(self, prompt: str, system: Optional[str] = None):
        kind = next((name for marker, name in self.ROUTES.items() if marker in prompt), "unknown")
        self.calls.append(kind)
        value = self.routes.get(kind)
        if isinstance(value, Exception):
            raise value
        if value is None:
            return CollaboratorResult.failure(f"{kind} unavailable")
        return CollaboratorResult.success(value)

    def get_budget_status(self) -> Dict[str, Any]:
        return {"hourly_usage": f"{len(self.calls)}/{self.budget}", "daily_usage": f"{len(self.calls)}/{self.budget}"}

    def remaining_calls(self) -> int:
        return max(0, self.budget - len(self.calls))


@pytest.fixture
def cfg():
    """Offline configuration with every knob pinned."""
    return dataclasses.replace(
        _build_config(),
        APP_ENV="test",
        TIMEZONE="UTC",
        OPENAI_API_KEY="sk-test",
        BOT_USERNAME="trendmint",
        ADMIN_TOKEN="admin-secret",
        LIVE=False,
        ENABLE_REPLIES=True,
        ENABLE_MINTING=True,
        ENABLE_ANNOUNCEMENTS=True,
        REPLY_TO_TRENDS=False,
        MAX_REPLIES_PER_HOUR=10,
        REPLY_DELAY_SECONDS=0,
        MENTION_POLL_SECONDS=30,
        TREND_POLL_SECONDS=60,
        MENTION_MAX_RESULTS=50,
        TRENDS_PER_POLL=5,
        TREND_MAX_RESULTS=10,
        TREND_ANALYSIS_LIMIT=10,
        SENTIMENT_GATE=0.6,
        VIRAL_GATE=0.5,
        TREND_MINT_CONFIDENCE=0.8,
        MIN_SENTIMENT_SCORE=0.6,
        MAX_SUPPLY=1_000_000_000,
        INITIAL_LIQUIDITY=0.0,
        TOKEN_DECIMALS=9,
        CHAIN_RPC_URL=None,
        CHAIN_ID=None,
        CHAIN_PRIVATE_KEY=None,
        TOKEN_FACTORY_ADDRESS=None,
        COLLABORATOR_TIMEOUT_SECONDS=5,
        LLM_MAX_CALLS_PER_HOUR=100,
        LLM_MAX_CALLS_PER_DAY=1000,
        LLM_MENTION_RESERVE=40,
    )


@pytest.fixture
def fake_llm():
    return FakeLLM


@pytest.fixture
def make_message():
    def _make(
        id: str = "1001",
        text: str = "just a normal post",
        likes: int = 0,
        reposts: int = 0,
        replies: int = 0,
        views: Optional[int] = None,
        hashtags=(),
        author_id: str = "42",
        author_handle: str = "alice",
        created_at: Optional[datetime] = None,
    ) -> Message:
        return Message(
            id=id,
            text=text,
            author_id=author_id,
            author_handle=author_handle,
            created_at=created_at or FIXED_NOW,
            metrics=Metrics(likes=likes, reposts=reposts, replies=replies, views=views),
            hashtags=tuple(hashtags),
        )

    return _make


@pytest.fixture
def fake_platform():
    """Platform client whose calls all succeed."""
    platform = MagicMock()
    platform.reply = AsyncMock(return_value=CollaboratorResult.success({"id": "reply-1", "dry_run": True}))
    platform.post = AsyncMock(return_value=CollaboratorResult.success({"id": "post-1", "dry_run": True}))
    platform.search = AsyncMock(return_value=CollaboratorResult.success([]))
    platform.get_mentions = AsyncMock(return_value=CollaboratorResult.success([]))
    platform.list_trends = AsyncMock(return_value=CollaboratorResult.success([]))
    return platform


@pytest.fixture
def fake_chain():
    """Chain client whose mints all succeed."""
    chain = MagicMock()
    chain.payer_address = "0x000000000000000000000000000000000000dEaD"
    chain.mint = AsyncMock(return_value=CollaboratorResult.success({
        "token_address": "0xToken000000000000000000000000000000000001",
        "bonding_curve_address": "0xCurve000000000000000000000000000000000001",
        "transaction_id": "0xabc",
        "dry_run": False,
    }))
    chain.get_balance = AsyncMock(return_value=CollaboratorResult.success(1))
    return chain
