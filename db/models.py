"""Records kept in the in-process action log."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any, Dict, Optional
import uuid


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class Action:
    """Outcome of something the agent did (or decided not to do)."""

    id: str = field(default_factory=_uuid)
    kind: str = ""
    meta_json: Optional[Dict[str, Any]] = None
    created_at: datetime = field(default_factory=_utcnow)


@dataclass
class MintedToken:
    """A token launched from a social post."""

    token_address: str
    symbol: str
    name: str
    source_message_id: str
    source_author: str
    transaction_id: Optional[str] = None
    bonding_curve_address: Optional[str] = None
    sentiment_score: float = 0.0
    viral_score: float = 0.0
    dry_run: bool = False
    id: str = field(default_factory=_uuid)
    created_at: datetime = field(default_factory=_utcnow)


__all__ = ["Action", "MintedToken"]
