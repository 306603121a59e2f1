"""
Trend scoring: sentiment, viral potential, keywords and token ideas for a post
"""

import asyncio
import re
from collections import Counter
from datetime import datetime, timedelta, UTC
from typing import Any, Callable, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError

from config import get_config
from services.llm_adapter import LLMAdapter
from services.logging_utils import get_logger
from services.models import (
    Message,
    NEUTRAL_ANALYSIS,
    NEUTRAL_SENTIMENT,
    SentimentResult,
    TokenConcept,
    TrendAnalysis,
    ViralResult,
)
from services.schemas import KeywordsPayload, SentimentPayload, TokenSuggestionPayload

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You analyse crypto social media posts for meme coin potential. "
    "Always answer with a single JSON object and nothing else."
)

EMOJI_PATTERN = re.compile(
    "[\U0001F600-\U0001F64F"
    "\U0001F300-\U0001F5FF"
    "\U0001F680-\U0001F6FF"
    "\U0001F900-\U0001F9FF"
    "☀-⛿"
    "✀-➿]"
)

MEME_KEYWORDS = [
    "lol", "lmao", "based", "chad", "gigachad", "sigma", "wagmi", "ngmi",
    "diamond hands", "paper hands", "moon", "lambo", "hodl", "ape",
    "degen", "gm", "gn", "fren", "pepe", "wojak", "cope", "seethe",
]

# Local hours with the most social traffic: mornings, lunch and evenings
PEAK_HOURS = frozenset({6, 7, 8, 9, 12, 13, 19, 20, 21, 22})

RAPID_ENGAGEMENT_WINDOW = timedelta(hours=2)
BATCH_LIMIT = 10


def has_emojis(text: str) -> bool:
    return bool(EMOJI_PATTERN.search(text))


def has_meme_language(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in MEME_KEYWORDS)


class TrendScorer:
    """Scores posts for the decision policy.

    Sentiment, keywords and token ideas come from the language model;
    viral potential is computed locally. Collaborator failures turn into
    neutral values instead of errors.
    """

    def __init__(
        self,
        llm: Optional[LLMAdapter] = None,
        config=None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or get_config()
        self.llm = llm or LLMAdapter(self.config)
        self.clock = clock or (lambda: datetime.now(UTC))
        self.timezone = self._resolve_timezone(self.config.TIMEZONE)

    @staticmethod
    def _resolve_timezone(name: str):
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone {name!r}, using UTC for peak hours")
            return UTC

    async def analyze_sentiment(self, text: str) -> SentimentResult:
        prompt = f"""Analyze the sentiment of this text and rate its positivity for meme coin potential:

"{text}"

Consider:
- Overall emotional tone (positive, negative, neutral)
- Excitement and energy level
- Meme/viral potential
- Community engagement potential

Respond with JSON: {{
  "score": number (0-1, where 1 is most positive),
  "label": "positive" | "negative" | "neutral",
  "confidence": number (0-1),
  "reasoning": string
}}"""

        result = await self.llm.complete_json(prompt, system=SYSTEM_PROMPT)
        if not result.ok:
            logger.warning(f"Sentiment analysis unavailable: {result.error}")
            return NEUTRAL_SENTIMENT

        try:
            payload = SentimentPayload.model_validate(result.value)
        except ValidationError as e:
            logger.warning(f"Sentiment payload rejected: {e.error_count()} errors")
            return NEUTRAL_SENTIMENT

        return SentimentResult(
            score=payload.score,
            label=payload.label,
            confidence=payload.confidence,
        )

    def analyze_viral_potential(self, message: Message) -> ViralResult:
        """Additive heuristic over engagement, content and timing signals.

        Factors are listed in the order they are evaluated.
        """
        metrics = message.metrics
        factors: List[str] = []
        score = 0.0

        # Engagement
        if metrics.likes > 100:
            factors.append("High like count")
            score += 0.3
        elif metrics.likes > 10:
            factors.append("Moderate engagement")
            score += 0.1

        if metrics.reposts > 20:
            factors.append("Strong retweet activity")
            score += 0.2

        if metrics.engagement_rate > 0.05:
            factors.append("High engagement rate")
            score += 0.15

        # Content
        if has_emojis(message.text):
            factors.append("Contains emojis")
            score += 0.1

        if message.hashtags:
            factors.append("Uses trending hashtags")
            score += 0.15

        if has_meme_language(message.text):
            factors.append("Contains meme language")
            score += 0.15

        # Timing
        now = self.clock()
        if now - message.created_at < RAPID_ENGAGEMENT_WINDOW and metrics.total_engagement > 50:
            factors.append("Rapid early engagement")
            score += 0.2

        if now.astimezone(self.timezone).hour in PEAK_HOURS:
            factors.append("Posted during peak hours")
            score += 0.1

        score = min(1.0, max(0.0, round(score, 4)))
        return ViralResult(score=score, factors=tuple(factors))

    async def extract_keywords(self, text: str) -> List[str]:
        prompt = f"""Extract the most important keywords and themes from this social media content for meme coin creation:

"{text}"

Focus on:
- Trending topics
- Meme references
- Crypto/financial terms
- Emotional words
- Action words
- Cultural references

Respond with JSON: {{
  "keywords": [string]
}}"""

        result = await self.llm.complete_json(prompt, system=SYSTEM_PROMPT)
        if not result.ok:
            return []
        return KeywordsPayload.model_validate(result.value).keywords

    async def generate_token_suggestion(self, message: Message) -> Optional[TokenConcept]:
        prompt = f"""Based on this viral social media content, suggest a creative meme coin:

Original Tweet: "{message.text}"
Author: @{message.author_handle}
Engagement: {message.metrics.likes} likes, {message.metrics.reposts} retweets

Create a meme coin concept that:
- Captures the essence of the original content
- Has viral/meme potential
- Uses creative but appropriate naming
- Avoids copyright infringement
- Is family-friendly

Respond with JSON: {{
  "name": string (full token name, 3-32 characters),
  "symbol": string (3-6 letters, uppercase),
  "concept": string (brief description of the token concept)
}}"""

        result = await self.llm.complete_json(prompt, system=SYSTEM_PROMPT)
        if not result.ok:
            logger.warning(f"Token suggestion unavailable: {result.error}")
            return None

        try:
            payload = TokenSuggestionPayload.model_validate(result.value)
        except ValidationError:
            return None

        if not payload.is_complete():
            return None

        return TokenConcept(
            name=payload.name,
            symbol=payload.symbol.upper(),
            description=payload.concept,
        )

    async def analyze_trend(self, message: Message) -> TrendAnalysis:
        """Full analysis of one message; never raises"""
        try:
            logger.info(f"Analyzing trend potential for post: {message.id}")

            sentiment = await self.analyze_sentiment(message.text)
            viral = self.analyze_viral_potential(message)
            keywords = await self.extract_keywords(message.text)

            token_concept = None
            # Sentiment is checked first so a weak post never costs a concept call
            if sentiment.score > self.config.SENTIMENT_GATE and viral.score > self.config.VIRAL_GATE:
                token_concept = await self.generate_token_suggestion(message)

            logger.info(
                f"Trend analysis complete for {message.id}: sentiment={sentiment.score:.2f} "
                f"viral={viral.score:.2f} concept={token_concept is not None}"
            )
            return TrendAnalysis(
                keywords=tuple(keywords),
                sentiment=sentiment,
                viral=viral,
                token_concept=token_concept,
            )

        except Exception as e:
            logger.error(f"Error analyzing trend for {message.id}: {e}")
            return NEUTRAL_ANALYSIS

    async def batch_analyze(
        self,
        messages: Iterable[Message],
        limit: int = BATCH_LIMIT,
        delay: float = 1.0,
    ) -> List[TrendAnalysis]:
        """Analyze up to ``limit`` messages one after another, pausing between calls"""
        analyses: List[TrendAnalysis] = []
        for message in list(messages)[:limit]:
            try:
                analyses.append(await self.analyze_trend(message))
            except Exception as e:
                logger.error(f"Error analyzing message {message.id}: {e}")
                continue
            if delay > 0:
                await asyncio.sleep(delay)
        return analyses


def calculate_trending_score(analyses: List[TrendAnalysis]) -> Dict[str, Any]:
    """Summary of a batch: mean scores, concept count and the ten most frequent keywords"""
    if not analyses:
        return {
            "avg_sentiment": 0.0,
            "avg_viral": 0.0,
            "total_token_suggestions": 0,
            "top_keywords": [],
        }

    counts = Counter(keyword for analysis in analyses for keyword in analysis.keywords)
    return {
        "avg_sentiment": sum(a.sentiment.score for a in analyses) / len(analyses),
        "avg_viral": sum(a.viral.score for a in analyses) / len(analyses),
        "total_token_suggestions": sum(1 for a in analyses if a.token_concept is not None),
        "top_keywords": [keyword for keyword, _ in counts.most_common(10)],
    }
