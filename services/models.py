"""Data passed between the pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Generic, List, Literal, Optional, Tuple, TypeVar

T = TypeVar("T")

SentimentLabel = Literal["positive", "negative", "neutral"]


class MessageSource(str, Enum):
    """How a message reached the pipeline."""

    MENTION = "mention"
    TREND = "trend"


@dataclass(frozen=True)
class CollaboratorResult(Generic[T]):
    """Outcome of a call to an external service.

    Clients return this instead of raising so that every fallback is an
    explicit branch at the call site.
    """

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> "CollaboratorResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "CollaboratorResult[T]":
        return cls(ok=False, error=error)


@dataclass(frozen=True)
class Metrics:
    likes: int = 0
    reposts: int = 0
    replies: int = 0
    views: Optional[int] = None

    @property
    def total_engagement(self) -> int:
        return self.likes + self.reposts + self.replies

    @property
    def engagement_rate(self) -> float:
        if not self.views:
            return 0.0
        return self.total_engagement / self.views

    def as_dict(self) -> Dict[str, Any]:
        return {
            "likes": self.likes,
            "reposts": self.reposts,
            "replies": self.replies,
            "views": self.views,
        }


@dataclass(frozen=True)
class Message:
    """Canonical form of a social post."""

    id: str
    text: str
    author_id: str
    author_handle: str
    created_at: datetime
    metrics: Metrics = field(default_factory=Metrics)
    hashtags: Tuple[str, ...] = ()
    mentions: FrozenSet[str] = frozenset()
    is_reply: bool = False
    parent_id: Optional[str] = None


@dataclass(frozen=True)
class SentimentResult:
    score: float
    label: SentimentLabel
    confidence: float


@dataclass(frozen=True)
class ViralResult:
    score: float
    factors: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TokenConcept:
    name: str
    symbol: str
    description: str


@dataclass(frozen=True)
class TrendAnalysis:
    keywords: Tuple[str, ...]
    sentiment: SentimentResult
    viral: ViralResult
    token_concept: Optional[TokenConcept] = None


NEUTRAL_SENTIMENT = SentimentResult(score=0.5, label="neutral", confidence=0.1)
NEUTRAL_ANALYSIS = TrendAnalysis(
    keywords=(),
    sentiment=NEUTRAL_SENTIMENT,
    viral=ViralResult(score=0.3, factors=()),
)


@dataclass(frozen=True)
class Decision:
    should_reply: bool
    should_create_token: bool
    confidence: float
    reasoning: str
    reply_content: Optional[str] = None
    token_concept: Optional[TokenConcept] = None


@dataclass
class ReplyResult:
    success: bool
    content: str
    reply_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class TokenCreationResult:
    success: bool
    token_address: Optional[str] = None
    bonding_curve_address: Optional[str] = None
    transaction_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class TokenParams:
    """Arguments for a mint on the token factory."""

    name: str
    symbol: str
    uri: str
    decimals: int
    total_supply: int
    initial_buy: float = 0.0


@dataclass
class PipelineOutcome:
    """What happened to one message."""

    message_id: str
    source: MessageSource
    decision: Decision
    analysis: Optional[TrendAnalysis] = None
    reply: Optional[ReplyResult] = None
    mint: Optional[TokenCreationResult] = None
    skipped: List[str] = field(default_factory=list)
