"""Turn raw platform posts into canonical :class:`Message` records."""

from __future__ import annotations

from datetime import datetime, UTC
from typing import Any, Callable, Iterable, List, Mapping, Optional

from services.models import Message, Metrics


def _as_int(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def _as_optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return None


def _as_datetime(value: Any, now: Callable[[], datetime]) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return now()
    else:
        return now()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _tags(items: Any, key: str) -> List[str]:
    tags: List[str] = []
    if not isinstance(items, Iterable) or isinstance(items, (str, bytes)):
        return tags
    for item in items:
        if isinstance(item, Mapping):
            value = item.get(key)
        else:
            value = item
        if value:
            tags.append(str(value).lstrip("#@"))
    return tags


def _metrics(raw: Mapping[str, Any]) -> Metrics:
    public = raw.get("public_metrics")
    if isinstance(public, Mapping):
        return Metrics(
            likes=_as_int(public.get("like_count")),
            reposts=_as_int(public.get("retweet_count")),
            replies=_as_int(public.get("reply_count")),
            views=_as_optional_int(public.get("impression_count")),
        )
    loose = raw.get("metrics")
    if isinstance(loose, Mapping):
        return Metrics(
            likes=_as_int(loose.get("likes")),
            reposts=_as_int(loose.get("reposts", loose.get("retweets"))),
            replies=_as_int(loose.get("replies")),
            views=_as_optional_int(loose.get("views")),
        )
    return Metrics()


def _parent_id(raw: Mapping[str, Any]) -> Optional[str]:
    if raw.get("parent_id"):
        return str(raw["parent_id"])
    referenced = raw.get("referenced_tweets") or []
    if not isinstance(referenced, list) or not referenced:
        return None
    for ref in referenced:
        if isinstance(ref, Mapping) and ref.get("type") == "replied_to" and ref.get("id"):
            return str(ref["id"])
    first = referenced[0]
    if isinstance(first, Mapping) and first.get("id"):
        return str(first["id"])
    return None


def normalize_post(
    raw: Mapping[str, Any],
    *,
    now: Callable[[], datetime] = lambda: datetime.now(UTC),
) -> Message:
    """Coerce a loosely-typed post payload into a :class:`Message`.

    Only the shape is fixed up. Ids are not validated, missing metrics are
    zero, absent view counts stay ``None`` and hashtag/mention lists are
    never ``None``. Naive timestamps are taken as UTC.
    """

    entities = raw.get("entities") if isinstance(raw.get("entities"), Mapping) else {}

    if "hashtags" in raw:
        hashtags = _tags(raw.get("hashtags"), "tag")
    else:
        hashtags = _tags(entities.get("hashtags"), "tag")

    if "mentions" in raw:
        mentions = _tags(raw.get("mentions"), "username")
    else:
        mentions = _tags(entities.get("mentions"), "username")

    parent_id = _parent_id(raw)
    is_reply = bool(raw.get("is_reply") or raw.get("in_reply_to_user_id"))

    return Message(
        id=str(raw.get("id") or ""),
        text=str(raw.get("text") or ""),
        author_id=str(raw.get("author_id") or ""),
        author_handle=str(raw.get("username") or raw.get("author_handle") or "unknown").lstrip("@"),
        created_at=_as_datetime(raw.get("created_at"), now),
        metrics=_metrics(raw),
        hashtags=tuple(hashtags),
        mentions=frozenset(mentions),
        is_reply=is_reply,
        parent_id=parent_id,
    )


def normalize_posts(raws: Iterable[Mapping[str, Any]]) -> List[Message]:
    return [normalize_post(raw) for raw in raws if isinstance(raw, Mapping)]
