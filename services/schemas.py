"""Expected shapes of language-model JSON replies.

Each call site validates against its own model and falls back when the
payload does not fit. Out-of-range numbers are clamped, not rejected.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class SentimentPayload(_Payload):
    score: float = 0.5
    label: str = "neutral"
    confidence: float = 0.5

    @field_validator("score", "confidence", mode="before")
    @classmethod
    def _default_missing(cls, value):
        return 0.5 if value is None else value

    @field_validator("score", "confidence")
    @classmethod
    def _clamp(cls, value: float) -> float:
        return clamp_unit(value)

    @field_validator("label", mode="before")
    @classmethod
    def _known_label(cls, value):
        label = str(value or "neutral").strip().lower()
        return label if label in ("positive", "negative", "neutral") else "neutral"


class KeywordsPayload(_Payload):
    keywords: List[str] = Field(default_factory=list)

    @field_validator("keywords", mode="before")
    @classmethod
    def _strings_only(cls, value):
        if not isinstance(value, list):
            return []
        return [str(item).strip() for item in value if isinstance(item, (str, int)) and str(item).strip()]


class TokenSuggestionPayload(_Payload):
    name: Optional[str] = None
    symbol: Optional[str] = None
    concept: Optional[str] = None

    def is_complete(self) -> bool:
        return bool(self.name and self.symbol and self.concept)


class RecommendedActions(_Payload):
    createToken: bool = False
    replyToTweet: bool = False
    analyzeMore: bool = False


class RecommendationPayload(_Payload):
    confidence: float = 0.5
    mood: str = "neutral"
    topics: List[str] = Field(default_factory=list)
    actions: RecommendedActions = Field(default_factory=RecommendedActions)
    reply: Optional[str] = None
    reasoning: Optional[str] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _default_confidence(cls, value):
        return 0.5 if value is None else value

    @field_validator("confidence")
    @classmethod
    def _clamp(cls, value: float) -> float:
        return clamp_unit(value)

    @field_validator("topics", mode="before")
    @classmethod
    def _topics(cls, value):
        if not isinstance(value, list):
            return []
        return [str(item) for item in value]

    @field_validator("actions", mode="before")
    @classmethod
    def _actions(cls, value):
        return value if isinstance(value, (dict, RecommendedActions)) else {}


# Used when the recommendation call fails. Leans towards replying.
FALLBACK_RECOMMENDATION = RecommendationPayload(
    confidence=0.5,
    mood="neutral",
    topics=[],
    actions=RecommendedActions(createToken=False, replyToTweet=True, analyzeMore=False),
)
