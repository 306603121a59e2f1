"""
Decision policy: turns a scored message into reply / mint intentions
"""

import asyncio
import json
import random
from typing import List, Optional, Set

from pydantic import ValidationError

from config import get_config
from services.llm_adapter import LLMAdapter
from services.logging_utils import get_logger
from services.models import Decision, Message, MessageSource, TrendAnalysis
from services.observability import record_decision
from services.schemas import FALLBACK_RECOMMENDATION, RecommendationPayload

logger = get_logger(__name__)

ALREADY_PROCESSED = Decision(
    should_reply=False,
    should_create_token=False,
    confidence=0.0,
    reasoning="already processed",
)

BASE_TEMPLATES = [
    "This has some serious meme potential! 🎭✨",
    "I'm getting major viral vibes from this! 🚀",
    "The meme magic is strong with this one! ✨",
    "This could be the next big thing! 💎",
    "Now this is what I call content gold! 🔥",
]

TOKEN_CREATION_TEMPLATES = [
    "This is so good it deserves its own token! Should we make it happen? 🚀💎",
    "I'm sensing serious token potential here! This could go viral! ⚡🎭",
    "The vibes are immaculate! Time to immortalize this on the blockchain? ✨💫",
    "This energy needs to be captured in token form! Who's ready? 🔥🚀",
    "Peak meme content detected! Shall we tokenize this masterpiece? 🎨💎",
]

HIGH_SENTIMENT_TEMPLATES = [
    "The positive energy is off the charts! Love to see it! ✨🌟",
    "This is giving me all the good vibes! Keep it up! 💫⚡",
    "Absolutely legendary content! The community needs more of this! 🔥💎",
    "Pure gold right here! This is what the timeline needed! 🏆✨",
]


class DecisionPolicy:
    """Decides at most once per message id.

    The processed set is shared by every polling loop; the check and the
    insert happen under ``lock`` so two loops holding the same message
    cannot both get a decision for it. The set is never pruned.
    """

    def __init__(
        self,
        llm: Optional[LLMAdapter] = None,
        config=None,
        lock: Optional[asyncio.Lock] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or get_config()
        self.llm = llm or LLMAdapter(self.config)
        self.lock = lock or asyncio.Lock()
        self.rng = rng or random.Random()
        self.processed: Set[str] = set()

    def is_processed(self, message_id: str) -> bool:
        return message_id in self.processed

    async def claim(self, message_id: str) -> bool:
        """Mark ``message_id`` as processed; False if it already was"""
        async with self.lock:
            if message_id in self.processed:
                return False
            self.processed.add(message_id)
            return True

    async def decide(
        self,
        message: Message,
        analysis: TrendAnalysis,
        source: MessageSource = MessageSource.MENTION,
    ) -> Decision:
        if not await self.claim(message.id):
            logger.debug(f"Post {message.id} already processed, skipping")
            record_decision(source.value, "duplicate")
            return ALREADY_PROCESSED

        recommendation = await self._recommend(message, analysis)
        confidence = recommendation.confidence

        should_reply = recommendation.actions.replyToTweet
        should_create_token = recommendation.actions.createToken
        # Trend posts mint only above the stricter confidence bar
        if source == MessageSource.TREND and confidence <= self.config.TREND_MINT_CONFIDENCE:
            should_create_token = False

        reply_content = None
        if should_reply:
            reply_content = (recommendation.reply or "").strip() or self.contextual_reply(
                message, analysis, should_create_token
            )

        decision = Decision(
            should_reply=should_reply,
            should_create_token=should_create_token,
            confidence=confidence,
            reasoning=f"AI confidence: {confidence}, Sentiment: {analysis.sentiment.score}",
            reply_content=reply_content,
            token_concept=analysis.token_concept if should_create_token else None,
        )

        outcome = "none"
        if should_reply and should_create_token:
            outcome = "reply_and_mint"
        elif should_reply:
            outcome = "reply"
        elif should_create_token:
            outcome = "mint"
        record_decision(source.value, outcome)

        logger.info(
            f"Decision for {message.id} ({source.value}): reply={should_reply} "
            f"token={should_create_token} confidence={confidence:.2f}"
        )
        return decision

    async def _recommend(self, message: Message, analysis: TrendAnalysis) -> RecommendationPayload:
        hashtags = ", ".join(message.hashtags) or "none"
        prompt = f"""Analyze this social media content for meme coin creation potential and reply actions:

Content: "{message.text}"
Author: @{message.author_handle}
Hashtags: {hashtags}
Metrics: {json.dumps(message.metrics.as_dict())}
Trend Analysis: Sentiment {analysis.sentiment.score}, Viral Score {analysis.viral.score}

Evaluate:
1. Should we create a meme coin? (consider viral potential, sentiment, uniqueness)
2. Should we reply to this? (consider engagement opportunity, brand alignment)
3. Confidence in these decisions (0-1)
4. Mood/tone to use
5. Key topics identified
6. If replying, a short witty reply under 280 characters

Respond with JSON: {{
  "confidence": number,
  "mood": string,
  "topics": [string],
  "actions": {{
    "createToken": boolean,
    "replyToTweet": boolean,
    "analyzeMore": boolean
  }},
  "reply": string,
  "reasoning": string
}}"""

        result = await self.llm.complete_json(prompt)
        if not result.ok:
            logger.warning(f"Recommendation unavailable for {message.id}: {result.error}")
            return FALLBACK_RECOMMENDATION

        try:
            return RecommendationPayload.model_validate(result.value)
        except ValidationError as e:
            logger.warning(f"Recommendation payload rejected for {message.id}: {e.error_count()} errors")
            return FALLBACK_RECOMMENDATION

    def _templates(self, analysis: TrendAnalysis, should_create_token: bool) -> List[str]:
        if should_create_token:
            return TOKEN_CREATION_TEMPLATES
        if analysis.sentiment.score > 0.8:
            return HIGH_SENTIMENT_TEMPLATES
        return BASE_TEMPLATES

    def contextual_reply(
        self,
        message: Message,
        analysis: TrendAnalysis,
        should_create_token: bool = False,
    ) -> str:
        """Pick a template for the situation and personalize it for the post"""
        reply = self.rng.choice(self._templates(analysis, should_create_token))

        if message.hashtags:
            reply += f" Love the #{message.hashtags[0]} energy!"

        if message.metrics.likes > 100:
            reply += " Already gaining traction - I can see why! 📈"

        return reply

    def get_stats(self):
        return {"processed_messages": len(self.processed)}
