"""Unit tests for the X client wrapper: dry runs, retries and payload shaping."""

from __future__ import annotations

import dataclasses
import types
from datetime import datetime, UTC
from unittest.mock import MagicMock

import pytest
import tweepy

from services.x_client import XClient


def _live(cfg):
    return dataclasses.replace(
        cfg,
        LIVE=True,
        X_API_KEY="key",
        X_API_SECRET="secret",
        X_ACCESS_TOKEN="token",
        X_ACCESS_SECRET="access",
    )


def _rate_limited():
    response = MagicMock()
    response.status_code = 429
    response.reason = "Too Many Requests"
    response.json.return_value = {}
    return tweepy.TooManyRequests(response)


def _tweet(id, text, author_id, **extra):
    fields = dict(
        id=id,
        text=text,
        author_id=author_id,
        created_at=datetime(2025, 1, 15, 14, 0, tzinfo=UTC),
        public_metrics={"like_count": 5, "retweet_count": 1, "reply_count": 0, "impression_count": 100},
        entities={"hashtags": [{"tag": "gm"}]},
        in_reply_to_user_id=None,
        referenced_tweets=None,
    )
    fields.update(extra)
    return types.SimpleNamespace(**fields)


@pytest.mark.asyncio
async def test_writes_are_dry_runs_when_not_live(cfg):
    client = MagicMock()
    x = XClient(cfg, client=client)

    result = await x.reply("1", "hello")

    assert result.ok is True
    assert result.value["dry_run"] is True
    assert result.value["id"].startswith("dry_run_reply_")
    client.create_tweet.assert_not_called()


@pytest.mark.asyncio
async def test_live_reply_posts_in_thread(cfg):
    client = MagicMock()
    client.create_tweet.return_value = types.SimpleNamespace(data={"id": "999"})
    x = XClient(_live(cfg), client=client)

    result = await x.reply("123", "hello")

    assert result.ok is True
    assert result.value == {"id": "999", "dry_run": False}
    client.create_tweet.assert_called_once_with(text="hello", in_reply_to_tweet_id="123")


@pytest.mark.asyncio
async def test_duplicate_reply_is_not_sent_twice(cfg):
    client = MagicMock()
    client.create_tweet.return_value = types.SimpleNamespace(data={"id": "999"})
    x = XClient(_live(cfg), client=client)

    await x.reply("123", "hello")
    again = await x.reply("123", "hello again")

    assert again.value["id"] == "999"
    assert client.create_tweet.call_count == 1


@pytest.mark.asyncio
async def test_rate_limited_write_is_retried(cfg, monkeypatch: pytest.MonkeyPatch):
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    monkeypatch.setattr("services.x_client.asyncio.sleep", fake_sleep)

    client = MagicMock()
    client.create_tweet.side_effect = [_rate_limited(), types.SimpleNamespace(data={"id": "5"})]
    x = XClient(_live(cfg), client=client)

    result = await x.post("launch")

    assert result.ok is True
    assert result.value["id"] == "5"
    assert len(sleeps) == 1


@pytest.mark.asyncio
async def test_write_error_is_a_failure_result(cfg):
    client = MagicMock()
    client.create_tweet.side_effect = RuntimeError("boom")
    x = XClient(_live(cfg), client=client)

    result = await x.post("launch")

    assert result.ok is False
    assert result.error == "boom"


@pytest.mark.asyncio
async def test_circuit_opens_after_repeated_failures(cfg):
    client = MagicMock()
    client.search_recent_tweets.side_effect = RuntimeError("down")
    x = XClient(cfg, client=client)

    for _ in range(5):
        assert (await x.search("gm")).ok is False

    result = await x.search("gm")

    assert result.error == "circuit open for search"
    assert client.search_recent_tweets.call_count == 5


@pytest.mark.asyncio
async def test_search_attaches_usernames(cfg):
    client = MagicMock()
    client.search_recent_tweets.return_value = types.SimpleNamespace(
        data=[
            _tweet(1, "gm #gm", 42),
            _tweet(
                2,
                "replying",
                43,
                in_reply_to_user_id=42,
                referenced_tweets=[types.SimpleNamespace(id=1, type="replied_to")],
            ),
        ],
        includes={"users": [types.SimpleNamespace(id=42, username="alice")]},
    )
    x = XClient(cfg, client=client)

    result = await x.search("gm", max_results=5, since_id="100")

    assert result.ok is True
    first, second = result.value
    assert first["id"] == "1"
    assert first["username"] == "alice"
    assert first["public_metrics"]["like_count"] == 5
    assert second["username"] == "unknown"
    assert second["referenced_tweets"] == [{"id": "1", "type": "replied_to"}]

    kwargs = client.search_recent_tweets.call_args.kwargs
    assert kwargs["max_results"] == 10
    assert kwargs["since_id"] == "100"


@pytest.mark.asyncio
async def test_mentions_search_for_bot_handle(cfg):
    client = MagicMock()
    client.search_recent_tweets.return_value = types.SimpleNamespace(data=None, includes=None)
    x = XClient(cfg, client=client)

    result = await x.get_mentions(since_id="9")

    assert result.ok is True
    assert result.value == []
    assert client.search_recent_tweets.call_args.kwargs["query"] == "@trendmint -is:retweet"


@pytest.mark.asyncio
async def test_mentions_need_bot_username(cfg):
    x = XClient(dataclasses.replace(cfg, BOT_USERNAME=""), client=MagicMock())

    result = await x.get_mentions()

    assert result.ok is False


@pytest.mark.asyncio
async def test_list_trends_returns_names(cfg):
    api = MagicMock()
    api.get_place_trends.return_value = [{"trends": [{"name": "#WAGMI"}, {"name": "Pepe"}, {"url": "x"}]}]
    x = XClient(cfg, client=MagicMock(), api=api)

    result = await x.list_trends(23424977)

    assert result.value == ["#WAGMI", "Pepe"]
    api.get_place_trends.assert_called_once_with(id=23424977)


@pytest.mark.asyncio
async def test_without_credentials_reads_fail_softly(cfg):
    offline = dataclasses.replace(cfg, X_API_KEY=None)
    x = XClient(offline)

    assert x.is_healthy() is False
    assert (await x.search("gm")).ok is False
    assert (await x.list_trends()).ok is False
