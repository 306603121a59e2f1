"""
Action dispatcher: sends replies and mints tokens for decided messages
"""

import asyncio
import base64
import json
import random
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import quote

from config import get_config
from db.models import MintedToken
from db.session import get_db_session
from services.chain_client import ChainClient
from services.content_policy import (
    NAME_MIN_LENGTH,
    format_token_name,
    is_valid_symbol,
    sanitize_content,
    suggest_token_symbols,
    validate_token_concept,
)
from services.logging_utils import get_logger, get_structured_logger
from services.models import (
    Message,
    ReplyResult,
    TokenConcept,
    TokenCreationResult,
    TokenParams,
    TrendAnalysis,
)
from services.observability import record_action_outcome
from services.reply_limiter import ReplyRateLimiter
from services.x_client import XClient

logger = get_logger(__name__)
actions_log = get_structured_logger("actions")

MAX_POST_LENGTH = 280
ELLIPSIS = "..."
ANNOUNCEMENT_EMOJIS = ["🚀", "✨", "🎭", "💎", "🔥", "⚡"]


def truncate(text: str, limit: int = MAX_POST_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - len(ELLIPSIS)] + ELLIPSIS


def format_reply(message: Message, content: str) -> str:
    """Address the author and fit the post length limit"""
    mention = f"@{message.author_handle}"
    reply = content if mention in content else f"{mention} {content}"
    return truncate(reply)


def build_metadata(
    concept: TokenConcept,
    message: Message,
    analysis: TrendAnalysis,
    creator: str,
) -> Dict[str, Any]:
    """Metaplex-style metadata document for a minted token"""
    image = f"https://via.placeholder.com/400x400/FF6B6B/FFFFFF?text={quote(concept.symbol)}"
    return {
        "name": concept.name,
        "symbol": concept.symbol,
        "description": concept.description,
        "image": image,
        "attributes": [
            {"trait_type": "Source Platform", "value": "X"},
            {"trait_type": "Sentiment Score", "value": analysis.sentiment.score},
            {"trait_type": "Viral Score", "value": analysis.viral.score},
            {"trait_type": "Created By", "value": creator},
            {"trait_type": "Original Post Author", "value": message.author_handle},
        ],
        "properties": {
            "files": [{"uri": image, "type": "image/png"}],
            "category": "image",
            "creators": [{"address": creator, "share": 100}],
        },
        "external_url": f"https://x.com/{message.author_handle}/status/{message.id}",
        "collection": {"name": "TrendMint Memes", "family": "TrendMint"},
    }


def metadata_uri(metadata: Dict[str, Any]) -> str:
    encoded = base64.b64encode(json.dumps(metadata, separators=(",", ":")).encode("utf-8"))
    return "data:application/json;base64," + encoded.decode("ascii")


class ActionDispatcher:
    """Carries out decisions against the platform and the chain.

    The reply budget check and reservation run under ``lock`` so two
    polling loops cannot both spend the last slot of the hour.
    """

    def __init__(
        self,
        platform: XClient,
        chain: ChainClient,
        limiter: ReplyRateLimiter,
        config=None,
        lock: Optional[asyncio.Lock] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or get_config()
        self.platform = platform
        self.chain = chain
        self.limiter = limiter
        self.lock = lock or asyncio.Lock()
        self.sleep = sleep
        self.rng = rng or random.Random()

    async def dispatch_reply(self, message: Message, content: str) -> ReplyResult:
        """Reply to ``message`` within the hourly budget and author cooldown.

        The budget slot is taken under ``lock`` before the delay and the
        write, and given back if the write fails. The lock is not held while
        waiting on the platform.
        """
        if not self.config.ENABLE_REPLIES:
            return ReplyResult(success=False, content=content, error="Replies disabled")

        async with self.lock:
            if not self.limiter.can_reply():
                record_action_outcome("reply", "rate_limited")
                return ReplyResult(success=False, content=content, error="Rate limit exceeded")

            if self.limiter.has_recent_reply(message.author_id):
                logger.info(f"Skipping reply to @{message.author_handle} - recent interaction")
                record_action_outcome("reply", "cooldown")
                return ReplyResult(success=False, content=content, error="Recent reply to this user")

            reservation = self.limiter.record_reply(message.author_id)

        formatted = format_reply(message, content)

        if self.config.REPLY_DELAY_SECONDS > 0:
            await self.sleep(self.config.REPLY_DELAY_SECONDS)

        result = await self.platform.reply(message.id, formatted)
        if not result.ok:
            async with self.lock:
                self.limiter.release_reply(message.author_id, reservation)
            logger.error(f"Reply to {message.id} failed: {result.error}")
            record_action_outcome("reply", "error")
            return ReplyResult(success=False, content=formatted, error=result.error)

        reply_id = result.value["id"]
        record_action_outcome("reply", "success")
        actions_log.action(
            "reply",
            f"Replied to {message.id}",
            post_id=message.id,
            reply_id=reply_id,
            author=message.author_handle,
            dry_run=result.value.get("dry_run", False),
        )
        return ReplyResult(success=True, content=formatted, reply_id=reply_id)

    def _taken_symbols(self):
        with get_db_session() as session:
            return {token.symbol for token in session.query(MintedToken).all()}

    async def dispatch_mint(
        self,
        concept: TokenConcept,
        message: Message,
        analysis: TrendAnalysis,
    ) -> TokenCreationResult:
        """Validate a concept, mint it and announce the launch.

        A concept that breaks the content rules is reported back without
        touching the chain.
        """
        if not self.config.ENABLE_MINTING:
            return TokenCreationResult(success=False, error="Minting disabled")

        error = validate_token_concept(
            concept,
            source_text=message.text,
            sentiment_score=analysis.sentiment.score,
            min_sentiment_score=self.config.MIN_SENTIMENT_SCORE,
        )
        if error:
            logger.info(f"Token concept {concept.symbol} rejected: {error}")
            record_action_outcome("mint", "rejected")
            actions_log.action("token_rejected", error, post_id=message.id, symbol=concept.symbol)
            return TokenCreationResult(success=False, error=error)

        name = format_token_name(concept.name)
        if len(name) < NAME_MIN_LENGTH:
            record_action_outcome("mint", "rejected")
            return TokenCreationResult(success=False, error="Token name empty after formatting")

        symbol = concept.symbol.upper()[:6]
        taken = self._taken_symbols()
        if symbol in taken:
            alternatives = suggest_token_symbols(name, count=1, taken=taken)
            if not alternatives:
                record_action_outcome("mint", "rejected")
                return TokenCreationResult(success=False, error=f"Symbol {symbol} already used")
            logger.info(f"Symbol {symbol} already used, minting as {alternatives[0]}")
            symbol = alternatives[0]

        if not is_valid_symbol(symbol):
            record_action_outcome("mint", "rejected")
            return TokenCreationResult(success=False, error=f"Invalid token symbol {symbol}")

        sanitized = TokenConcept(
            name=name,
            symbol=symbol,
            description=sanitize_content(concept.description),
        )
        creator = self.chain.payer_address or self.config.BOT_USERNAME or "trendmint"
        params = TokenParams(
            name=sanitized.name,
            symbol=sanitized.symbol,
            uri=metadata_uri(build_metadata(sanitized, message, analysis, creator)),
            decimals=self.config.TOKEN_DECIMALS,
            total_supply=self.config.MAX_SUPPLY,
            initial_buy=self.config.INITIAL_LIQUIDITY,
        )

        logger.info(f"Creating token: {params.symbol} - \"{params.name}\"")
        result = await self.chain.mint(params)
        if not result.ok:
            record_action_outcome("mint", "error")
            return TokenCreationResult(success=False, error=result.error)

        minted = result.value
        creation = TokenCreationResult(
            success=True,
            token_address=minted["token_address"],
            bonding_curve_address=minted.get("bonding_curve_address"),
            transaction_id=minted.get("transaction_id"),
        )

        with get_db_session() as session:
            session.add(MintedToken(
                token_address=creation.token_address,
                symbol=sanitized.symbol,
                name=sanitized.name,
                source_message_id=message.id,
                source_author=message.author_handle,
                transaction_id=creation.transaction_id,
                bonding_curve_address=creation.bonding_curve_address,
                sentiment_score=analysis.sentiment.score,
                viral_score=analysis.viral.score,
                dry_run=bool(minted.get("dry_run")),
            ))
            session.commit()

        record_action_outcome("mint", "success")
        actions_log.action(
            "token_created",
            f"Created {sanitized.symbol}",
            post_id=message.id,
            token_address=creation.token_address,
            transaction_id=creation.transaction_id,
            dry_run=bool(minted.get("dry_run")),
        )

        if self.config.ENABLE_ANNOUNCEMENTS:
            await self.announce_token_creation(sanitized, message, analysis, creation)

        return creation

    def token_announcement(
        self,
        concept: TokenConcept,
        message: Message,
        analysis: TrendAnalysis,
        creation: TokenCreationResult,
    ) -> str:
        emoji = self.rng.choice(ANNOUNCEMENT_EMOJIS)
        address = (creation.token_address or "")[:8]
        text = (
            f"{emoji} NEW MEME COIN ALERT! {emoji}\n\n"
            f"Just created ${concept.symbol} - \"{concept.name}\"!\n\n"
            f"{concept.description}\n\n"
            f"Inspired by viral content from @{message.author_handle}\n"
            f"💫 Sentiment Score: {analysis.sentiment.score * 100:.0f}%\n"
            f"🌟 Viral Potential: {analysis.viral.score * 100:.0f}%\n\n"
            f"Token: {address}...\n\n"
            f"#MemeCoin #TokenLaunch"
        )
        return truncate(text)

    async def announce_token_creation(
        self,
        concept: TokenConcept,
        message: Message,
        analysis: TrendAnalysis,
        creation: TokenCreationResult,
    ) -> ReplyResult:
        """Post a standalone announcement for a successful mint"""
        if not creation.success:
            return ReplyResult(success=False, content="", error="Token creation failed")

        announcement = self.token_announcement(concept, message, analysis, creation)
        result = await self.platform.post(announcement)
        if not result.ok:
            logger.error(f"Announcement for {concept.symbol} failed: {result.error}")
            record_action_outcome("announcement", "error")
            return ReplyResult(success=False, content=announcement, error=result.error)

        record_action_outcome("announcement", "success")
        return ReplyResult(success=True, content=announcement, reply_id=result.value["id"])
