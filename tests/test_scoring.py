"""Scoring engine: viral heuristics, language-model fallbacks and the concept gate."""

from __future__ import annotations

import dataclasses
from datetime import datetime, timedelta, UTC

import pytest

from conftest import FIXED_NOW
from services.models import NEUTRAL_ANALYSIS, SentimentResult, TrendAnalysis, ViralResult
from services.scoring import TrendScorer, calculate_trending_score

POSITIVE = {"score": 0.9, "label": "positive", "confidence": 0.8}
CONCEPT = {"name": "Diamond Hands", "symbol": "wagmi", "concept": "For the believers"}


def _scorer(cfg, llm, now=FIXED_NOW):
    return TrendScorer(llm, cfg, clock=lambda: now)


def _viral_message(make_message, **overrides):
    fields = dict(
        text="Diamond hands forever! 💎🙌 #WAGMI",
        likes=150,
        reposts=45,
        replies=23,
        views=2500,
        hashtags=["WAGMI"],
        created_at=FIXED_NOW - timedelta(hours=5),
    )
    fields.update(overrides)
    return make_message(**fields)


def test_wagmi_post_scores_high(cfg, fake_llm, make_message):
    scorer = _scorer(cfg, fake_llm())

    result = scorer.analyze_viral_potential(_viral_message(make_message))

    assert result.factors == (
        "High like count",
        "Strong retweet activity",
        "High engagement rate",
        "Contains emojis",
        "Uses trending hashtags",
        "Contains meme language",
    )
    assert result.score == 1.0


@pytest.mark.parametrize("views", [0, None])
def test_engagement_rate_without_views_contributes_nothing(cfg, fake_llm, make_message, views):
    scorer = _scorer(cfg, fake_llm())

    result = scorer.analyze_viral_potential(_viral_message(make_message, views=views))

    assert "High engagement rate" not in result.factors
    assert 0.0 <= result.score <= 1.0


def test_moderate_likes(cfg, fake_llm, make_message):
    scorer = _scorer(cfg, fake_llm())

    result = scorer.analyze_viral_potential(make_message(text="quiet post", likes=50))

    assert result.factors == ("Moderate engagement",)
    assert result.score == pytest.approx(0.1)


def test_plain_post_scores_zero(cfg, fake_llm, make_message):
    scorer = _scorer(cfg, fake_llm())

    result = scorer.analyze_viral_potential(make_message(text="quiet post"))

    assert result == ViralResult(score=0.0, factors=())


def test_rapid_early_engagement(cfg, fake_llm, make_message):
    scorer = _scorer(cfg, fake_llm())
    message = make_message(
        text="quiet post",
        likes=40,
        reposts=15,
        created_at=FIXED_NOW - timedelta(minutes=30),
    )

    result = scorer.analyze_viral_potential(message)

    assert result.factors == ("Moderate engagement", "Rapid early engagement")
    assert result.score == pytest.approx(0.3)


def test_peak_hours_use_configured_timezone(cfg, fake_llm, make_message):
    evening_utc = datetime(2025, 1, 15, 20, 0, tzinfo=UTC)
    message = make_message(text="quiet post", created_at=evening_utc - timedelta(days=1))

    utc_scorer = _scorer(cfg, fake_llm(), now=evening_utc)
    ny_scorer = _scorer(dataclasses.replace(cfg, TIMEZONE="America/New_York"), fake_llm(), now=evening_utc)

    assert utc_scorer.analyze_viral_potential(message).factors == ("Posted during peak hours",)
    # 20:00 UTC is 15:00 in New York in January
    assert ny_scorer.analyze_viral_potential(message).factors == ()


def test_unknown_timezone_falls_back_to_utc(cfg, fake_llm):
    scorer = _scorer(dataclasses.replace(cfg, TIMEZONE="Mars/Olympus"), fake_llm())

    assert scorer.timezone is UTC


@pytest.mark.asyncio
async def test_sentiment_is_clamped(cfg, fake_llm):
    scorer = _scorer(cfg, fake_llm(sentiment={"score": 1.7, "label": "POSITIVE", "confidence": -2}))

    result = await scorer.analyze_sentiment("to the moon")

    assert result == SentimentResult(score=1.0, label="positive", confidence=0.0)


@pytest.mark.asyncio
async def test_sentiment_keeps_a_real_zero(cfg, fake_llm):
    scorer = _scorer(cfg, fake_llm(sentiment={"score": 0, "label": "negative", "confidence": 0.9}))

    result = await scorer.analyze_sentiment("this is awful")

    assert result.score == 0.0
    assert result.label == "negative"


@pytest.mark.asyncio
async def test_sentiment_unknown_label_becomes_neutral(cfg, fake_llm):
    scorer = _scorer(cfg, fake_llm(sentiment={"score": 0.7, "label": "ecstatic"}))

    result = await scorer.analyze_sentiment("wow")

    assert result.label == "neutral"
    assert result.confidence == 0.5


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [None, {"score": "very high"}])
async def test_sentiment_falls_back_to_neutral(cfg, fake_llm, payload):
    scorer = _scorer(cfg, fake_llm(sentiment=payload))

    result = await scorer.analyze_sentiment("anything")

    assert result == SentimentResult(score=0.5, label="neutral", confidence=0.1)


@pytest.mark.asyncio
async def test_keywords_failure_and_bad_shape_give_empty_list(cfg, fake_llm):
    assert await _scorer(cfg, fake_llm()).extract_keywords("gm") == []
    assert await _scorer(cfg, fake_llm(keywords={"keywords": "moon"})).extract_keywords("gm") == []
    assert await _scorer(cfg, fake_llm(keywords={"keywords": ["moon", " ", "hodl"]})).extract_keywords("gm") == [
        "moon",
        "hodl",
    ]


@pytest.mark.asyncio
async def test_degraded_mode_passthrough(cfg, fake_llm, make_message):
    """With the language model down the pipeline still produces an analysis."""
    llm = fake_llm()
    scorer = _scorer(cfg, llm)

    analysis = await scorer.analyze_trend(_viral_message(make_message))

    assert analysis.sentiment == SentimentResult(score=0.5, label="neutral", confidence=0.1)
    assert analysis.viral.score == 1.0
    assert analysis.keywords == ()
    # Neutral sentiment does not pass the gate, so no concept call is made
    assert analysis.token_concept is None
    assert llm.calls == ["sentiment", "keywords"]


@pytest.mark.asyncio
async def test_gate_skips_concept_call_when_viral_is_low(cfg, fake_llm, make_message):
    llm = fake_llm(sentiment=POSITIVE, keywords={"keywords": ["gm"]}, token=CONCEPT)
    scorer = _scorer(cfg, llm)

    analysis = await scorer.analyze_trend(make_message(text="quiet post"))

    assert analysis.token_concept is None
    assert "token" not in llm.calls


@pytest.mark.asyncio
async def test_gate_skips_concept_call_when_sentiment_is_low(cfg, fake_llm, make_message):
    llm = fake_llm(sentiment={"score": 0.6, "label": "neutral", "confidence": 0.8}, token=CONCEPT)
    scorer = _scorer(cfg, llm)

    analysis = await scorer.analyze_trend(_viral_message(make_message))

    assert analysis.token_concept is None
    assert "token" not in llm.calls


@pytest.mark.asyncio
async def test_concept_symbol_is_upper_cased(cfg, fake_llm, make_message):
    llm = fake_llm(sentiment=POSITIVE, keywords={"keywords": ["wagmi"]}, token=CONCEPT)
    scorer = _scorer(cfg, llm)

    analysis = await scorer.analyze_trend(_viral_message(make_message))

    assert analysis.token_concept is not None
    assert analysis.token_concept.symbol == "WAGMI"
    assert analysis.token_concept.name == "Diamond Hands"
    assert analysis.token_concept.description == "For the believers"
    assert analysis.keywords == ("wagmi",)
    assert llm.calls == ["sentiment", "keywords", "token"]


@pytest.mark.asyncio
async def test_concept_missing_field_gives_none(cfg, fake_llm, make_message):
    llm = fake_llm(token={"name": "Diamond Hands", "symbol": "DMND"})
    scorer = _scorer(cfg, llm)

    assert await scorer.generate_token_suggestion(_viral_message(make_message)) is None


@pytest.mark.asyncio
async def test_unexpected_error_returns_neutral_analysis(cfg, fake_llm, make_message):
    scorer = _scorer(cfg, fake_llm(sentiment=RuntimeError("boom")))

    analysis = await scorer.analyze_trend(_viral_message(make_message))

    assert analysis == NEUTRAL_ANALYSIS
    assert analysis.viral.score == 0.3


@pytest.mark.asyncio
async def test_batch_analyze_caps_at_ten(cfg, fake_llm, make_message):
    scorer = _scorer(cfg, fake_llm())
    messages = [make_message(id=str(i)) for i in range(12)]

    analyses = await scorer.batch_analyze(messages, delay=0)

    assert len(analyses) == 10


def test_trending_score_of_nothing_is_zero():
    assert calculate_trending_score([]) == {
        "avg_sentiment": 0.0,
        "avg_viral": 0.0,
        "total_token_suggestions": 0,
        "top_keywords": [],
    }


def test_trending_score_summarizes_batch():
    a = TrendAnalysis(
        keywords=("moon", "wagmi"),
        sentiment=SentimentResult(0.8, "positive", 0.9),
        viral=ViralResult(0.6),
        token_concept=None,
    )
    b = dataclasses.replace(a, keywords=("moon",), sentiment=SentimentResult(0.4, "neutral", 0.5), viral=ViralResult(0.2))

    summary = calculate_trending_score([a, b])

    assert summary["avg_sentiment"] == pytest.approx(0.6)
    assert summary["avg_viral"] == pytest.approx(0.4)
    assert summary["total_token_suggestions"] == 0
    assert summary["top_keywords"] == ["moon", "wagmi"]
