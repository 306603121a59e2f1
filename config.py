"""
Configuration management for the TrendMint agent
"""

import os
from typing import Dict, List, Optional, Callable, Any
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class ConfigurationError(Exception):
    """Raised once at startup when the configuration cannot be used."""


@dataclass
class Config:
    # Environment
    APP_ENV: str
    PORT: int
    TIMEZONE: str

    # API Keys
    OPENAI_API_KEY: str
    OPENAI_MODEL: str
    X_BEARER_TOKEN: Optional[str]
    X_API_KEY: Optional[str]
    X_API_SECRET: Optional[str]
    X_ACCESS_TOKEN: Optional[str]
    X_ACCESS_SECRET: Optional[str]
    BOT_USERNAME: str
    TREND_WOEID: int
    ADMIN_TOKEN: str

    # Operation Mode
    LIVE: bool
    ENABLE_REPLIES: bool
    ENABLE_MINTING: bool
    ENABLE_ANNOUNCEMENTS: bool
    REPLY_TO_TRENDS: bool

    # Reply throttling
    MAX_REPLIES_PER_HOUR: int
    REPLY_DELAY_SECONDS: float

    # Polling (seconds)
    MENTION_POLL_SECONDS: int
    TREND_POLL_SECONDS: int
    MENTION_MAX_RESULTS: int
    TRENDS_PER_POLL: int
    TREND_MAX_RESULTS: int
    TREND_ANALYSIS_LIMIT: int

    # Decision gates
    SENTIMENT_GATE: float
    VIRAL_GATE: float
    TREND_MINT_CONFIDENCE: float
    MIN_SENTIMENT_SCORE: float

    # Token parameters
    MAX_SUPPLY: int
    INITIAL_LIQUIDITY: float
    TOKEN_DECIMALS: int

    # Chain
    CHAIN_RPC_URL: Optional[str]
    CHAIN_ID: Optional[int]
    CHAIN_PRIVATE_KEY: Optional[str]
    TOKEN_FACTORY_ADDRESS: Optional[str]

    # Collaborator calls
    COLLABORATOR_TIMEOUT_SECONDS: float

    # Language model budget
    LLM_MAX_CALLS_PER_HOUR: int
    LLM_MAX_CALLS_PER_DAY: int
    LLM_MENTION_RESERVE: int


ConfigListener = Callable[["Config", Dict[str, Any]], None]

_CONFIG_INSTANCE: Optional[Config] = None
_CONFIG_LISTENERS: List[ConfigListener] = []


def _flag(var: str, default: str) -> bool:
    return os.getenv(var, default).lower() in ("true", "1", "on", "yes")


def _optional_int(var: str) -> Optional[int]:
    raw = os.getenv(var)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _build_config() -> Config:
    """Create a new ``Config`` instance from environment variables."""

    return Config(
        # Environment
        APP_ENV=os.getenv("APP_ENV", "prod"),
        PORT=int(os.getenv("PORT", 8000)),
        TIMEZONE=os.getenv("TIMEZONE", "America/New_York"),

        # API Keys
        OPENAI_API_KEY=os.getenv("OPENAI_API_KEY", ""),
        OPENAI_MODEL=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        X_BEARER_TOKEN=os.getenv("X_BEARER_TOKEN"),
        X_API_KEY=os.getenv("X_API_KEY"),
        X_API_SECRET=os.getenv("X_API_SECRET"),
        X_ACCESS_TOKEN=os.getenv("X_ACCESS_TOKEN"),
        X_ACCESS_SECRET=os.getenv("X_ACCESS_SECRET"),
        BOT_USERNAME=os.getenv("BOT_USERNAME", "").lstrip("@"),
        TREND_WOEID=int(os.getenv("TREND_WOEID", 1)),
        ADMIN_TOKEN=os.getenv("ADMIN_TOKEN", "choose-a-long-random-string"),

        # Operation Mode
        LIVE=_flag("LIVE", "false"),
        ENABLE_REPLIES=_flag("ENABLE_REPLIES", "true"),
        ENABLE_MINTING=_flag("ENABLE_MINTING", "true"),
        ENABLE_ANNOUNCEMENTS=_flag("ENABLE_ANNOUNCEMENTS", "true"),
        REPLY_TO_TRENDS=_flag("REPLY_TO_TRENDS", "false"),

        # Reply throttling
        MAX_REPLIES_PER_HOUR=int(os.getenv("MAX_REPLIES_PER_HOUR", 10)),
        REPLY_DELAY_SECONDS=float(os.getenv("REPLY_DELAY_SECONDS", 5)),

        # Polling
        MENTION_POLL_SECONDS=int(os.getenv("MENTION_POLL_SECONDS", 30)),
        TREND_POLL_SECONDS=int(os.getenv("TREND_POLL_SECONDS", 60)),
        MENTION_MAX_RESULTS=int(os.getenv("MENTION_MAX_RESULTS", 50)),
        TRENDS_PER_POLL=int(os.getenv("TRENDS_PER_POLL", 5)),
        TREND_MAX_RESULTS=int(os.getenv("TREND_MAX_RESULTS", 10)),
        TREND_ANALYSIS_LIMIT=int(os.getenv("TREND_ANALYSIS_LIMIT", 10)),

        # Decision gates
        SENTIMENT_GATE=float(os.getenv("SENTIMENT_GATE", 0.6)),
        VIRAL_GATE=float(os.getenv("VIRAL_GATE", 0.5)),
        TREND_MINT_CONFIDENCE=float(os.getenv("TREND_MINT_CONFIDENCE", 0.8)),
        MIN_SENTIMENT_SCORE=float(os.getenv("MIN_SENTIMENT_SCORE", 0.6)),

        # Token parameters
        MAX_SUPPLY=int(os.getenv("MAX_SUPPLY", 1_000_000_000)),
        INITIAL_LIQUIDITY=float(os.getenv("INITIAL_LIQUIDITY", 0.0)),
        TOKEN_DECIMALS=int(os.getenv("TOKEN_DECIMALS", 9)),

        # Chain
        CHAIN_RPC_URL=os.getenv("CHAIN_RPC_URL"),
        CHAIN_ID=_optional_int("CHAIN_ID"),
        CHAIN_PRIVATE_KEY=os.getenv("CHAIN_PRIVATE_KEY"),
        TOKEN_FACTORY_ADDRESS=os.getenv("TOKEN_FACTORY_ADDRESS"),

        COLLABORATOR_TIMEOUT_SECONDS=float(os.getenv("COLLABORATOR_TIMEOUT_SECONDS", 20)),

        # Language model budget
        LLM_MAX_CALLS_PER_HOUR=int(os.getenv("LLM_MAX_CALLS_PER_HOUR", 100)),
        LLM_MAX_CALLS_PER_DAY=int(os.getenv("LLM_MAX_CALLS_PER_DAY", 1000)),
        LLM_MENTION_RESERVE=int(os.getenv("LLM_MENTION_RESERVE", 40)),
    )


def validate_config(cfg: Config) -> Config:
    """Reject configurations the agent cannot run with.

    Raises:
        ConfigurationError: listing every problem found.
    """

    problems: List[str] = []

    for name in ("SENTIMENT_GATE", "VIRAL_GATE", "TREND_MINT_CONFIDENCE", "MIN_SENTIMENT_SCORE"):
        value = getattr(cfg, name)
        if not 0.0 <= value <= 1.0:
            problems.append(f"{name} must be between 0 and 1 (got {value})")

    if not 1 <= cfg.MAX_REPLIES_PER_HOUR <= 100:
        problems.append("MAX_REPLIES_PER_HOUR must be between 1 and 100")

    if not 1_000_000 <= cfg.MAX_SUPPLY <= 1_000_000_000_000:
        problems.append("MAX_SUPPLY must be between 1M and 1T")

    if not 0 <= cfg.TOKEN_DECIMALS <= 18:
        problems.append("TOKEN_DECIMALS must be between 0 and 18")

    if cfg.INITIAL_LIQUIDITY < 0:
        problems.append("INITIAL_LIQUIDITY cannot be negative")

    for name in ("MENTION_POLL_SECONDS", "TREND_POLL_SECONDS", "COLLABORATOR_TIMEOUT_SECONDS"):
        if getattr(cfg, name) <= 0:
            problems.append(f"{name} must be positive")

    if cfg.REPLY_DELAY_SECONDS < 0:
        problems.append("REPLY_DELAY_SECONDS cannot be negative")

    if not 1 <= cfg.TREND_ANALYSIS_LIMIT <= 50:
        problems.append("TREND_ANALYSIS_LIMIT must be between 1 and 50")

    if cfg.LLM_MAX_CALLS_PER_HOUR < 1 or cfg.LLM_MAX_CALLS_PER_DAY < cfg.LLM_MAX_CALLS_PER_HOUR:
        problems.append("LLM_MAX_CALLS_PER_HOUR must be positive and no larger than LLM_MAX_CALLS_PER_DAY")

    if not 0 <= cfg.LLM_MENTION_RESERVE < cfg.LLM_MAX_CALLS_PER_HOUR:
        problems.append("LLM_MENTION_RESERVE must be below LLM_MAX_CALLS_PER_HOUR")

    if not cfg.OPENAI_API_KEY:
        problems.append("OPENAI_API_KEY is required")

    if cfg.LIVE:
        if not all([cfg.X_API_KEY, cfg.X_API_SECRET, cfg.X_ACCESS_TOKEN, cfg.X_ACCESS_SECRET]):
            problems.append("X API credentials are required in LIVE mode")
        if not cfg.BOT_USERNAME:
            problems.append("BOT_USERNAME is required in LIVE mode")
        if cfg.ENABLE_MINTING and not all(
            [cfg.CHAIN_RPC_URL, cfg.CHAIN_PRIVATE_KEY, cfg.TOKEN_FACTORY_ADDRESS]
        ):
            problems.append(
                "CHAIN_RPC_URL, CHAIN_PRIVATE_KEY and TOKEN_FACTORY_ADDRESS are required to mint in LIVE mode"
            )

    if problems:
        raise ConfigurationError("; ".join(problems))
    return cfg


def _notify_listeners(changes: Dict[str, Any]) -> None:
    """Notify registered listeners of configuration changes."""

    if not changes:
        return

    cfg = get_config()
    for listener in list(_CONFIG_LISTENERS):
        try:
            listener(cfg, changes)
        except Exception:
            # Listeners should not break config updates; ignore failures.
            continue


def get_config() -> Config:
    """Return the shared configuration object."""

    global _CONFIG_INSTANCE
    if _CONFIG_INSTANCE is None:
        _CONFIG_INSTANCE = _build_config()
    return _CONFIG_INSTANCE


def update_config(**updates: Any) -> Config:
    """Mutate the shared config in place and notify listeners."""

    cfg = get_config()
    applied: Dict[str, Any] = {}

    for key, value in updates.items():
        if not hasattr(cfg, key):
            raise AttributeError(f"Config has no attribute '{key}'")
        current = getattr(cfg, key)
        if current == value:
            continue
        setattr(cfg, key, value)
        applied[key] = value

    if applied:
        _notify_listeners(applied)
    return cfg


def subscribe_to_updates(listener: ConfigListener) -> Callable[[], None]:
    """Register a callback invoked when the configuration changes."""

    if listener not in _CONFIG_LISTENERS:
        _CONFIG_LISTENERS.append(listener)

    def _unsubscribe() -> None:
        try:
            _CONFIG_LISTENERS.remove(listener)
        except ValueError:
            pass

    return _unsubscribe


def reset_config() -> Config:
    """Reload configuration from the environment and notify listeners."""

    global _CONFIG_INSTANCE
    _CONFIG_INSTANCE = _build_config()
    _notify_listeners({"__reset__": True})
    return _CONFIG_INSTANCE
