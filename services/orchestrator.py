"""
Pipeline orchestration: polled posts flow through scoring, decision and dispatch
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

from config import get_config, validate_config
from services.chain_client import ChainClient
from services.decision import ALREADY_PROCESSED, DecisionPolicy
from services.dispatcher import ActionDispatcher
from services.llm_adapter import LLMAdapter
from services.logging_utils import get_logger
from services.models import Decision, Message, MessageSource, PipelineOutcome
from services.normalizer import normalize_posts
from services.reply_limiter import ReplyRateLimiter
from services.scoring import TrendScorer, calculate_trending_score
from services.x_client import XClient

logger = get_logger(__name__)


class Orchestrator:
    """Owns the shared pipeline state and runs one message at a time per loop.

    The processed set (in the decision policy) and the reply limiter are
    the only state shared between the mention and trend loops. Both are
    guarded by ``self.lock``.
    """

    def __init__(
        self,
        config=None,
        platform: Optional[XClient] = None,
        llm: Optional[LLMAdapter] = None,
        chain: Optional[ChainClient] = None,
        scorer: Optional[TrendScorer] = None,
        policy: Optional[DecisionPolicy] = None,
        limiter: Optional[ReplyRateLimiter] = None,
        dispatcher: Optional[ActionDispatcher] = None,
    ):
        self.config = config or get_config()
        validate_config(self.config)

        self.lock = asyncio.Lock()
        self.platform = platform or XClient(self.config)
        self.llm = llm or LLMAdapter(self.config)
        self.chain = chain or ChainClient(self.config)
        self.scorer = scorer or TrendScorer(self.llm, self.config)
        self.policy = policy or DecisionPolicy(self.llm, self.config, lock=self.lock)
        self.limiter = limiter or ReplyRateLimiter(self.config.MAX_REPLIES_PER_HOUR)
        self.dispatcher = dispatcher or ActionDispatcher(
            self.platform, self.chain, self.limiter, self.config, lock=self.lock
        )

        self.running = False
        self.started_at: Optional[float] = None
        self.mention_since_id: Optional[str] = None
        self.last_mention_poll: Optional[float] = None
        self.last_trend_poll: Optional[float] = None
        self.last_trend_summary: Optional[Dict[str, Any]] = None

        logger.info("Orchestrator initialized")

    def start(self) -> None:
        self.running = True
        self.started_at = time.time()
        logger.info("Orchestrator started")

    def stop(self) -> None:
        """Stop scheduling new work; calls already in flight finish on their own"""
        self.running = False
        logger.info("Orchestrator stopped")

    async def process_message(self, message: Message, source: MessageSource) -> PipelineOutcome:
        """Run one message through the pipeline; never raises"""
        try:
            return await self._process(message, source)
        except Exception as e:
            logger.error(f"Error processing post {message.id}: {e}")
            return PipelineOutcome(
                message_id=message.id,
                source=source,
                decision=Decision(
                    should_reply=False,
                    should_create_token=False,
                    confidence=0.0,
                    reasoning=f"Error: {e}",
                ),
                skipped=["error"],
            )

    async def _process(self, message: Message, source: MessageSource) -> PipelineOutcome:
        if self.policy.is_processed(message.id):
            return PipelineOutcome(
                message_id=message.id,
                source=source,
                decision=ALREADY_PROCESSED,
                skipped=["already processed"],
            )

        logger.info(f"Processing post {message.id} from @{message.author_handle} ({source.value})")
        analysis = await self.scorer.analyze_trend(message)
        decision = await self.policy.decide(message, analysis, source)
        outcome = PipelineOutcome(
            message_id=message.id,
            source=source,
            decision=decision,
            analysis=analysis,
        )

        if decision is ALREADY_PROCESSED:
            outcome.skipped.append("already processed")
            return outcome

        wants_reply = decision.should_reply and bool(decision.reply_content)
        if wants_reply and source == MessageSource.TREND and not self.config.REPLY_TO_TRENDS:
            outcome.skipped.append("trend replies disabled")
        elif wants_reply:
            outcome.reply = await self.dispatcher.dispatch_reply(message, decision.reply_content)

        if decision.should_create_token:
            if decision.token_concept is None:
                outcome.skipped.append("no token concept")
            else:
                outcome.mint = await self.dispatcher.dispatch_mint(
                    decision.token_concept, message, analysis
                )

        return outcome

    async def poll_mentions(self) -> List[PipelineOutcome]:
        """Fetch new mentions since the last cursor and process them oldest first"""
        if not self.running:
            return []

        self.last_mention_poll = time.time()
        result = await self.platform.get_mentions(
            since_id=self.mention_since_id,
            max_results=self.config.MENTION_MAX_RESULTS,
        )
        if not result.ok:
            logger.warning(f"Mention poll failed: {result.error}")
            return []

        messages = normalize_posts(result.value or [])
        if not messages:
            return []

        # The platform returns newest first
        messages.reverse()
        self.mention_since_id = _newest_id(self.mention_since_id, [m.id for m in messages])

        outcomes = []
        for message in messages:
            if not self.running:
                break
            outcomes.append(await self.process_message(message, MessageSource.MENTION))
        return outcomes

    async def poll_trends(self) -> List[PipelineOutcome]:
        """Search the top trending topics and process what they surface.

        At most ``TREND_ANALYSIS_LIMIT`` new posts are analyzed per poll, and
        the loop stops early once the language model budget is down to the
        share kept for mentions. Posts left unanalyzed are not marked as
        processed, so a later poll can pick them up.
        """
        if not self.running:
            return []

        self.last_trend_poll = time.time()
        trends = await self.platform.list_trends(self.config.TREND_WOEID)
        if not trends.ok:
            logger.warning(f"Trend listing failed: {trends.error}")
            return []

        outcomes: List[PipelineOutcome] = []
        remaining = self.config.TREND_ANALYSIS_LIMIT
        for topic in (trends.value or [])[: self.config.TRENDS_PER_POLL]:
            if not self.running or remaining <= 0:
                break
            found = await self.platform.search(
                f"{topic} -is:retweet",
                max_results=self.config.TREND_MAX_RESULTS,
            )
            if not found.ok:
                logger.warning(f"Trend search for {topic!r} failed: {found.error}")
                continue
            for message in normalize_posts(found.value or []):
                if not self.running:
                    break
                if not self.policy.is_processed(message.id):
                    if remaining <= 0:
                        break
                    if self.llm.remaining_calls() <= self.config.LLM_MENTION_RESERVE:
                        logger.info("Trend poll stopped early: language model budget reserved for mentions")
                        remaining = 0
                        break
                    remaining -= 1
                outcomes.append(await self.process_message(message, MessageSource.TREND))

        self.last_trend_summary = calculate_trending_score(
            [o.analysis for o in outcomes if o.analysis is not None]
        )
        return outcomes

    async def reset_reply_window(self) -> bool:
        async with self.lock:
            return self.limiter.reset_window_if_elapsed()

    def get_stats(self) -> Dict[str, Any]:
        uptime = time.time() - self.started_at if self.running and self.started_at else 0.0
        return {
            "processed_messages": len(self.policy.processed),
            "is_running": self.running,
            "uptime_seconds": uptime,
            "live": self.config.LIVE,
            "mention_since_id": self.mention_since_id,
            "last_mention_poll": self.last_mention_poll,
            "last_trend_poll": self.last_trend_poll,
            "last_trend_summary": self.last_trend_summary,
            "replies": self.limiter.get_stats(),
            "llm_budget": self.llm.get_budget_status(),
        }


def _newest_id(current: Optional[str], ids: List[str]) -> Optional[str]:
    """Largest numeric post id seen so far"""
    numeric = [int(i) for i in ids if i.isdigit()]
    if current and current.isdigit():
        numeric.append(int(current))
    return str(max(numeric)) if numeric else current
