"""
Reply throttling: a global hourly budget plus a one-hour cooldown per author
"""

from datetime import datetime, timedelta, UTC
from typing import Any, Callable, Dict, Optional, Tuple

from services.logging_utils import get_logger

logger = get_logger(__name__)

REPLY_WINDOW = timedelta(hours=1)
AUTHOR_COOLDOWN = timedelta(hours=1)


class ReplyRateLimiter:
    """Hourly reply counter with lazy window reset.

    ``can_reply`` resets the window itself once it has expired; the
    periodic job calls ``reset_window_if_elapsed`` which applies the same
    check, so a window is never reset twice.
    """

    def __init__(self, max_per_hour: int, clock: Optional[Callable[[], datetime]] = None):
        self.max_per_hour = max_per_hour
        self.clock = clock or (lambda: datetime.now(UTC))

        self.last_reply: Dict[str, datetime] = {}
        self.hourly_count = 0
        self.window_start = self.clock()

    def reset_window_if_elapsed(self) -> bool:
        """Start a new window if the current one is over an hour old"""
        now = self.clock()
        if now - self.window_start <= REPLY_WINDOW:
            return False

        self.hourly_count = 0
        self.window_start = now

        # Authors outside their cooldown no longer need tracking
        cutoff = now - AUTHOR_COOLDOWN
        for author_id in [a for a, ts in self.last_reply.items() if ts <= cutoff]:
            del self.last_reply[author_id]

        logger.info("Hourly reply counter reset")
        return True

    def can_reply(self) -> bool:
        self.reset_window_if_elapsed()
        return self.hourly_count < self.max_per_hour

    def has_recent_reply(self, author_id: str) -> bool:
        last = self.last_reply.get(author_id)
        if last is None:
            return False
        return self.clock() - last < AUTHOR_COOLDOWN

    def record_reply(self, author_id: str) -> Tuple[Optional[datetime], datetime]:
        """Count a reply against the budget and start the author's cooldown.

        Returns what ``release_reply`` needs to undo it if the reply is
        never delivered.
        """
        previous = self.last_reply.get(author_id)
        self.last_reply[author_id] = self.clock()
        self.hourly_count += 1
        logger.info(f"Reply counted. Hourly count: {self.hourly_count}/{self.max_per_hour}")
        return previous, self.window_start

    def release_reply(self, author_id: str, reservation: Tuple[Optional[datetime], datetime]) -> None:
        """Give back a slot taken by ``record_reply`` for an undelivered reply"""
        previous, window_start = reservation
        if window_start == self.window_start and self.hourly_count > 0:
            self.hourly_count -= 1
        if previous is None:
            self.last_reply.pop(author_id, None)
        else:
            self.last_reply[author_id] = previous

    def get_stats(self) -> Dict[str, Any]:
        return {
            "hourly_replies": self.hourly_count,
            "max_hourly_replies": self.max_per_hour,
            "recent_interactions": len(self.last_reply),
            "window_start": self.window_start.isoformat(),
            "can_reply": self.can_reply(),
        }
