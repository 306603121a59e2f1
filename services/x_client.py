"""
Twitter/X API Client wrapper using Tweepy
"""

import asyncio
import random
import uuid
from typing import List, Dict, Optional, Any, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import tweepy

from config import get_config, subscribe_to_updates
from services.logging_utils import get_logger
from services.models import CollaboratorResult
from services.observability import record_external_call

logger = get_logger(__name__)

TWEET_FIELDS = [
    "public_metrics",
    "created_at",
    "author_id",
    "entities",
    "in_reply_to_user_id",
    "referenced_tweets",
]

@dataclass
class CircuitBreaker:
    failure_count: int = 0
    last_failure_time: Optional[datetime] = None
    failure_threshold: int = 5
    reset_timeout: timedelta = field(default_factory=lambda: timedelta(minutes=5))

    def is_open(self) -> bool:
        if self.failure_count < self.failure_threshold:
            return False
        if self.last_failure_time and datetime.now() - self.last_failure_time > self.reset_timeout:
            self.failure_count = 0
            return False
        return True

    def record_failure(self):
        self.failure_count += 1
        self.last_failure_time = datetime.now()

    def record_success(self):
        self.failure_count = 0
        self.last_failure_time = None

class XClient:
    """Twitter/X API wrapper with circuit breakers, backoff and dry runs"""

    def __init__(self, config=None, client: Optional[Any] = None, api: Optional[Any] = None):
        self.config = config or get_config()
        self.client = client
        self.api = api
        self.circuit_breakers: Dict[str, CircuitBreaker] = {}
        # (endpoint, idempotency_key) pairs that already succeeded
        self.idempotency_cache: Dict[tuple[str, str], Any] = {}
        self.max_write_attempts: int = 5
        if self.client is None:
            self._initialize_client()
        self._unsubscribe = subscribe_to_updates(self._on_config_update)

    def _initialize_client(self):
        """Initialize Tweepy clients with credentials"""
        try:
            if not all([
                self.config.X_API_KEY,
                self.config.X_API_SECRET,
                self.config.X_ACCESS_TOKEN,
                self.config.X_ACCESS_SECRET
            ]):
                logger.warning("X API credentials incomplete, running in dry-run mode")
                return

            self.client = tweepy.Client(
                bearer_token=self.config.X_BEARER_TOKEN,
                consumer_key=self.config.X_API_KEY,
                consumer_secret=self.config.X_API_SECRET,
                access_token=self.config.X_ACCESS_TOKEN,
                access_token_secret=self.config.X_ACCESS_SECRET,
                wait_on_rate_limit=False
            )
            # Trends are only served by the v1.1 API
            self.api = tweepy.API(
                tweepy.OAuth1UserHandler(
                    self.config.X_API_KEY,
                    self.config.X_API_SECRET,
                    self.config.X_ACCESS_TOKEN,
                    self.config.X_ACCESS_SECRET,
                )
            )
            logger.info("X API client initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize X client: {e}")
            self.client = None
            self.api = None

    def is_healthy(self) -> bool:
        """Check if client is healthy"""
        return self.client is not None

    def _check_circuit_breaker(self, endpoint: str) -> bool:
        """Check if circuit breaker allows requests"""
        if endpoint not in self.circuit_breakers:
            self.circuit_breakers[endpoint] = CircuitBreaker()

        breaker = self.circuit_breakers[endpoint]
        if breaker.is_open():
            logger.warning(f"Circuit breaker open for {endpoint}")
            return False
        return True

    def _record_success(self, endpoint: str):
        """Record successful API call"""
        if endpoint in self.circuit_breakers:
            self.circuit_breakers[endpoint].record_success()
        record_external_call("x", "success")

    def _record_failure(self, endpoint: str, result: str = "error"):
        """Record failed API call"""
        if endpoint not in self.circuit_breakers:
            self.circuit_breakers[endpoint] = CircuitBreaker()
        self.circuit_breakers[endpoint].record_failure()
        record_external_call("x", result)

    async def _call(self, func: Callable[..., Any], **kwargs) -> Any:
        """Run a blocking Tweepy call off the event loop, bounded by the timeout"""
        return await asyncio.wait_for(
            asyncio.to_thread(func, **kwargs),
            timeout=self.config.COLLABORATOR_TIMEOUT_SECONDS,
        )

    async def _execute_write(
        self,
        *,
        endpoint: str,
        func: Callable[[], Any],
        idempotency_key: str | None = None,
    ) -> CollaboratorResult[Dict[str, Any]]:
        """
        Perform a write (tweet, reply) with exponential backoff and jitter,
        optional idempotency and circuit breaker checks.

        Args:
            endpoint: Name of the API endpoint (used for circuit breakers).
            func: Callable performing the API call and returning the new
                  post id.
            idempotency_key: If a call with the same (endpoint, key) already
                             succeeded, its result is returned again instead
                             of writing twice.

        Returns:
            Success with ``{"id": ..., "dry_run": bool}`` or a failure.
        """
        if not self.config.LIVE:
            post_id = f"dry_run_{endpoint}_{uuid.uuid4().hex[:8]}"
            logger.info(f"DRY RUN - Would perform {endpoint}")
            return CollaboratorResult.success({"id": post_id, "dry_run": True})

        if not self.client:
            return CollaboratorResult.failure("X client not initialized")

        if not self._check_circuit_breaker(endpoint):
            return CollaboratorResult.failure(f"circuit open for {endpoint}")

        key_tuple = None
        if idempotency_key is not None:
            key_tuple = (endpoint, idempotency_key)
            if key_tuple in self.idempotency_cache:
                logger.info(
                    f"Skipping duplicate call for {endpoint} with idempotency_key={idempotency_key}"
                )
                return CollaboratorResult.success(self.idempotency_cache[key_tuple])

        attempt = 0
        while attempt < self.max_write_attempts:
            try:
                post_id = await self._call(func)
                payload = {"id": str(post_id), "dry_run": False}
                self._record_success(endpoint)
                if key_tuple is not None:
                    self.idempotency_cache[key_tuple] = payload
                return CollaboratorResult.success(payload)
            except tweepy.TooManyRequests as e:
                attempt += 1
                self._record_failure(endpoint, "rate_limited")
                backoff_seconds = min(60.0, (2 ** attempt) + random.random())
                logger.warning(
                    f"Rate limited on {endpoint}: {e}. Retrying in {backoff_seconds:.2f}s (attempt {attempt})"
                )
                await asyncio.sleep(backoff_seconds)
            except asyncio.TimeoutError:
                logger.error(f"Timed out performing {endpoint}")
                self._record_failure(endpoint, "timeout")
                return CollaboratorResult.failure("timeout")
            except Exception as e:
                logger.error(f"Failed to perform {endpoint}: {e}")
                self._record_failure(endpoint)
                return CollaboratorResult.failure(str(e))

        logger.error(f"Exceeded max retries for {endpoint}")
        return CollaboratorResult.failure(f"rate limited on {endpoint}")

    async def reply(
        self,
        original_id: str,
        text: str,
        *,
        idempotency_key: str | None = None,
    ) -> CollaboratorResult[Dict[str, Any]]:
        """Reply to a post; the original id doubles as the idempotency key"""

        def _call():
            response = self.client.create_tweet(text=text, in_reply_to_tweet_id=original_id)
            return response.data["id"]

        return await self._execute_write(
            endpoint="reply",
            func=_call,
            idempotency_key=idempotency_key or f"reply:{original_id}",
        )

    async def post(self, text: str) -> CollaboratorResult[Dict[str, Any]]:
        """Publish a standalone post"""

        def _call():
            response = self.client.create_tweet(text=text)
            return response.data["id"]

        return await self._execute_write(endpoint="post", func=_call)

    async def search(
        self,
        query: str,
        max_results: int = 10,
        since_id: Optional[str] = None,
    ) -> CollaboratorResult[List[Dict[str, Any]]]:
        """Search recent posts, returning raw payloads with author handles attached"""
        endpoint = "search"

        if not self.client:
            return CollaboratorResult.failure("X client not initialized")
        if not self._check_circuit_breaker(endpoint):
            return CollaboratorResult.failure(f"circuit open for {endpoint}")

        kwargs: Dict[str, Any] = {
            "query": query,
            # The endpoint only accepts 10..100
            "max_results": max(10, min(100, max_results)),
            "tweet_fields": TWEET_FIELDS,
            "expansions": ["author_id"],
            "user_fields": ["username"],
        }
        if since_id:
            kwargs["since_id"] = since_id

        try:
            response = await self._call(self.client.search_recent_tweets, **kwargs)
        except asyncio.TimeoutError:
            logger.error(f"Search timed out for query '{query}'")
            self._record_failure(endpoint, "timeout")
            return CollaboratorResult.failure("timeout")
        except Exception as e:
            logger.error(f"Failed to search tweets: {e}")
            self._record_failure(endpoint)
            return CollaboratorResult.failure(str(e))

        self._record_success(endpoint)
        return CollaboratorResult.success(self._to_raw_posts(response)[:max_results])

    async def get_mentions(
        self,
        since_id: Optional[str] = None,
        max_results: Optional[int] = None,
    ) -> CollaboratorResult[List[Dict[str, Any]]]:
        """Recent posts mentioning the bot account"""
        if not self.config.BOT_USERNAME:
            return CollaboratorResult.failure("BOT_USERNAME not configured")
        return await self.search(
            f"@{self.config.BOT_USERNAME} -is:retweet",
            max_results=max_results or self.config.MENTION_MAX_RESULTS,
            since_id=since_id,
        )

    async def list_trends(self, woeid: int = 1) -> CollaboratorResult[List[str]]:
        """Trending topic names for a location (WOEID 1 is worldwide)"""
        endpoint = "trends"

        if not self.api:
            return CollaboratorResult.failure("X trends API not initialized")
        if not self._check_circuit_breaker(endpoint):
            return CollaboratorResult.failure(f"circuit open for {endpoint}")

        try:
            payload = await self._call(self.api.get_place_trends, id=woeid)
        except asyncio.TimeoutError:
            self._record_failure(endpoint, "timeout")
            return CollaboratorResult.failure("timeout")
        except Exception as e:
            logger.error(f"Failed to get trending topics: {e}")
            self._record_failure(endpoint)
            return CollaboratorResult.failure(str(e))

        self._record_success(endpoint)
        names: List[str] = []
        if payload:
            for trend in payload[0].get("trends", []) or []:
                name = trend.get("name") if isinstance(trend, dict) else None
                if name:
                    names.append(name)
        return CollaboratorResult.success(names)

    @staticmethod
    def _to_raw_posts(response: Any) -> List[Dict[str, Any]]:
        data = getattr(response, "data", None) or []
        includes = getattr(response, "includes", None) or {}
        usernames = {
            str(user.id): user.username
            for user in includes.get("users", []) or []
        }

        posts: List[Dict[str, Any]] = []
        for tweet in data:
            referenced = [
                {"id": str(ref.id), "type": ref.type}
                for ref in (getattr(tweet, "referenced_tweets", None) or [])
            ]
            posts.append({
                "id": str(tweet.id),
                "text": tweet.text,
                "author_id": str(tweet.author_id) if tweet.author_id else "",
                "username": usernames.get(str(tweet.author_id), "unknown"),
                "created_at": tweet.created_at,
                "public_metrics": tweet.public_metrics or {},
                "entities": getattr(tweet, "entities", None) or {},
                "in_reply_to_user_id": getattr(tweet, "in_reply_to_user_id", None),
                "referenced_tweets": referenced,
            })
        return posts

    def _on_config_update(self, cfg, changes: Dict[str, Any]) -> None:
        if "LIVE" in changes and not cfg.LIVE:
            # Clear idempotency cache to avoid stale entries on resume
            self.idempotency_cache.clear()
            logger.info("XClient observed LIVE toggle -> paused writes")

    def __del__(self):  # pragma: no cover - defensive cleanup
        unsubscribe = getattr(self, "_unsubscribe", None)
        if callable(unsubscribe):
            try:
                unsubscribe()
            except Exception:
                pass
