"""
Content rules for token concepts: validation, sanitizing and naming helpers
"""

import re
from itertools import product
from string import ascii_uppercase
from typing import Iterable, Iterator, List, Optional

from services.models import TokenConcept

# Rejected outright when they appear anywhere in a concept or its source post
BANNED_WORDS = ["scam", "rug", "hack", "steal"]

# Scrubbed from descriptions before they go on chain
SANITIZED_WORDS = ["scam", "rug", "hack", "steal", "fraud"]

SYMBOL_PATTERN = re.compile(r"^[A-Z]{3,6}$")
NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 32
MAX_CONTENT_LENGTH = 500


def validate_token_concept(
    concept: TokenConcept,
    source_text: str = "",
    sentiment_score: Optional[float] = None,
    min_sentiment_score: Optional[float] = None,
) -> Optional[str]:
    """
    Check a concept against the mint rules.

    Returns:
        ``None`` when the concept is acceptable, otherwise a short
        description of the first rule it breaks.
    """
    if (
        sentiment_score is not None
        and min_sentiment_score is not None
        and sentiment_score < min_sentiment_score
    ):
        return f"Sentiment score too low: {sentiment_score} < {min_sentiment_score}"

    if len(concept.name) < NAME_MIN_LENGTH or len(concept.name) > NAME_MAX_LENGTH:
        return f"Token name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters"

    if not SYMBOL_PATTERN.match(concept.symbol):
        return "Token symbol must be 3-6 uppercase letters"

    content = f"{concept.name} {concept.description} {source_text}".lower()
    for word in BANNED_WORDS:
        if word in content:
            return f"Contains banned content: {word}"

    return None


def format_token_name(name: str) -> str:
    """Strip symbols, collapse whitespace and cap the length of a token name"""
    cleaned = re.sub(r"[^\w\s-]", "", name.strip())
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned[:NAME_MAX_LENGTH]


def sanitize_content(content: str) -> str:
    sanitized = content
    for word in SANITIZED_WORDS:
        sanitized = re.sub(re.escape(word), "[REMOVED]", sanitized, flags=re.IGNORECASE)

    sanitized = re.sub(r"\s+", " ", sanitized).strip()
    # Very long unbroken words are usually spam
    sanitized = re.sub(r"\w{50,}", "[LONG_WORD]", sanitized)
    return sanitized[:MAX_CONTENT_LENGTH]


def is_valid_symbol(symbol: str) -> bool:
    return bool(SYMBOL_PATTERN.match(symbol))


def _symbol_candidates(base: str) -> Iterator[str]:
    for length in (1, 2):
        for suffix in product(ascii_uppercase, repeat=length):
            yield base + "".join(suffix)


def suggest_token_symbols(
    base_name: str,
    count: int = 3,
    taken: Optional[Iterable[str]] = None,
) -> List[str]:
    """Letter-suffixed alternatives such as ``DOGEA`` for a name whose symbol is taken.

    The base is the first four letters of the name. One-letter suffixes come
    first, then two-letter ones; every suggestion is a valid symbol and none
    is in ``taken``. Names with no letters yield no suggestions.
    """
    base = re.sub(r"[^A-Z]", "", base_name.upper())[:4]
    if not base:
        return []

    unavailable = {symbol.upper() for symbol in (taken or ())}
    suggestions: List[str] = []
    for variant in _symbol_candidates(base):
        if len(suggestions) >= count:
            break
        if variant not in unavailable and is_valid_symbol(variant):
            suggestions.append(variant)
    return suggestions
