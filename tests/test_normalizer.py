from datetime import datetime, UTC

from services.normalizer import normalize_post, normalize_posts


def test_platform_payload_is_normalized():
    raw = {
        "id": 1789,
        "text": "Diamond hands forever! #WAGMI",
        "author_id": 42,
        "username": "alice",
        "created_at": "2025-01-15T14:00:00Z",
        "public_metrics": {
            "like_count": 150,
            "retweet_count": 45,
            "reply_count": 23,
            "impression_count": 2500,
        },
        "entities": {
            "hashtags": [{"tag": "WAGMI"}],
            "mentions": [{"username": "trendmint"}],
        },
        "in_reply_to_user_id": "7",
        "referenced_tweets": [{"id": "1000", "type": "replied_to"}],
    }

    message = normalize_post(raw)

    assert message.id == "1789"
    assert message.author_id == "42"
    assert message.author_handle == "alice"
    assert message.created_at == datetime(2025, 1, 15, 14, 0, tzinfo=UTC)
    assert message.metrics.likes == 150
    assert message.metrics.reposts == 45
    assert message.metrics.replies == 23
    assert message.metrics.views == 2500
    assert message.hashtags == ("WAGMI",)
    assert message.mentions == frozenset({"trendmint"})
    assert message.is_reply is True
    assert message.parent_id == "1000"


def test_missing_fields_default_predictably():
    now = datetime(2025, 1, 1, tzinfo=UTC)

    message = normalize_post({"id": "x", "text": "hi"}, now=lambda: now)

    assert message.hashtags == ()
    assert message.mentions == frozenset()
    assert message.metrics.views is None
    assert message.metrics.engagement_rate == 0.0
    assert message.author_handle == "unknown"
    assert message.created_at == now
    assert message.is_reply is False
    assert message.parent_id is None


def test_zero_views_never_divides():
    message = normalize_post({"id": "1", "text": "", "metrics": {"likes": 10, "views": 0}})

    assert message.metrics.views == 0
    assert message.metrics.engagement_rate == 0.0


def test_loose_payload_shape():
    message = normalize_post({
        "id": "2",
        "text": "gm",
        "author_handle": "@bob",
        "metrics": {"likes": "5", "retweets": 2, "replies": None},
        "hashtags": ["#gm", "crypto"],
        "mentions": ["@carol"],
        "created_at": datetime(2025, 1, 1, 12, 0),
    })

    assert message.author_handle == "bob"
    assert message.metrics.likes == 5
    assert message.metrics.reposts == 2
    assert message.metrics.replies == 0
    assert message.hashtags == ("gm", "crypto")
    assert message.mentions == frozenset({"carol"})
    assert message.created_at.tzinfo is UTC


def test_quote_is_not_a_reply():
    message = normalize_post({
        "id": "3",
        "text": "look at this",
        "referenced_tweets": [{"id": "99", "type": "quoted"}],
    })

    assert message.is_reply is False
    assert message.parent_id == "99"


def test_malformed_ids_pass_through():
    assert normalize_post({"id": "not-a-number", "text": ""}).id == "not-a-number"


def test_normalize_posts_skips_non_mappings():
    messages = normalize_posts([{"id": "1", "text": "a"}, "junk", None, {"id": "2", "text": "b"}])

    assert [m.id for m in messages] == ["1", "2"]


def test_null_ids_become_empty():
    message = normalize_post({"id": None, "text": "gm", "author_id": None})

    assert message.id == ""
    assert message.author_id == ""
