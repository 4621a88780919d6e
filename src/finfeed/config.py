import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple


def _b(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in {
        "1",
        "true",
        "yes",
        "y",
        "on",
    }


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)).strip())
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    """
    Read a float from env. Blank, comment-like or non-numeric values fall
    back to ``default``.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    raw = raw.strip()
    if raw == "" or raw.startswith("#"):
        return default
    try:
        return float(raw)
    except Exception:
        return default


def _env_list(name: str) -> List[str]:
    raw = os.getenv(name, "") or ""
    return [part.strip() for part in raw.split(",") if part.strip()]


def _feed_url_overrides() -> Dict[str, str]:
    """Collect ``FINFEED_FEED_URL_<KEY>`` overrides.

    ``<KEY>`` is the feed name upper-cased with every non-alphanumeric run
    replaced by ``_`` (``Yahoo Finance`` -> ``YAHOO_FINANCE``).
    """
    prefix = "FINFEED_FEED_URL_"
    out: Dict[str, str] = {}
    for key, value in os.environ.items():
        if key.startswith(prefix) and value.strip():
            out[key[len(prefix) :]] = value.strip()
    return out


@dataclass
class Settings:
    # --- Fetching -----------------------------------------------------------
    # Total timeout for one HTTP attempt against a feed.  Slow feeds only
    # delay their own batch.
    fetch_timeout_secs: float = field(
        default_factory=lambda: _env_float("FINFEED_FETCH_TIMEOUT_SECS", 20.0)
    )
    # Attempts per feed per run (first try + retries).
    fetch_attempts: int = field(
        default_factory=lambda: max(1, _env_int("FINFEED_FETCH_ATTEMPTS", 2))
    )
    # Linear backoff unit: attempt N waits N * retry_delay_secs.
    retry_delay_secs: float = field(
        default_factory=lambda: _env_float("FINFEED_RETRY_DELAY_SECS", 2.0)
    )
    # Feeds fetched concurrently per batch.
    batch_size: int = field(
        default_factory=lambda: max(1, _env_int("FINFEED_BATCH_SIZE", 3))
    )
    batch_delay_secs: float = field(
        default_factory=lambda: _env_float("FINFEED_BATCH_DELAY_SECS", 1.0)
    )

    # --- Circuit breaker ----------------------------------------------------
    breaker_threshold: int = field(
        default_factory=lambda: max(1, _env_int("FINFEED_BREAKER_THRESHOLD", 3))
    )
    breaker_cooldown_secs: float = field(
        default_factory=lambda: _env_float("FINFEED_BREAKER_COOLDOWN_SECS", 300.0)
    )

    # --- Result cache -------------------------------------------------------
    cache_fresh_secs: float = field(
        default_factory=lambda: _env_float("FINFEED_CACHE_FRESH_SECS", 300.0)
    )
    cache_stale_secs: float = field(
        default_factory=lambda: _env_float("FINFEED_CACHE_STALE_SECS", 600.0)
    )

    # --- Client facing ------------------------------------------------------
    rate_window_secs: int = field(
        default_factory=lambda: max(1, _env_int("FINFEED_RATE_WINDOW_SECS", 60))
    )
    rate_max: int = field(
        default_factory=lambda: max(1, _env_int("FINFEED_RATE_MAX", 30))
    )
    retry_after_secs: int = field(
        default_factory=lambda: _env_int("FINFEED_RETRY_AFTER_SECS", 60)
    )
    # only behind a proxy that sets X-Forwarded-For itself
    trust_forwarded: bool = field(
        default_factory=lambda: _b("FINFEED_TRUST_FORWARDED", False)
    )
    health_check_port: int = field(
        default_factory=lambda: _env_int("HEALTH_CHECK_PORT", 8080)
    )

    # --- Aggregation defaults (see AggregationOptions) -----------------------
    max_articles_per_feed: int = field(
        default_factory=lambda: _env_int("FINFEED_MAX_ARTICLES_PER_FEED", 10)
    )
    max_total_articles: int = field(
        default_factory=lambda: _env_int("FINFEED_MAX_TOTAL_ARTICLES", 50)
    )
    min_confidence: float = field(
        default_factory=lambda: _env_float("FINFEED_MIN_CONFIDENCE", 0.5)
    )
    max_age_hours: float = field(
        default_factory=lambda: _env_float("FINFEED_MAX_AGE_HOURS", 48.0)
    )
    enable_deduplication: bool = field(
        default_factory=lambda: _b("FINFEED_DEDUPE", True)
    )

    # --- Registry -----------------------------------------------------------
    # Feed names switched off at startup (comma separated).
    disabled_feeds: List[str] = field(
        default_factory=lambda: _env_list("FINFEED_DISABLED_FEEDS")
    )
    feed_url_overrides: Dict[str, str] = field(default_factory=_feed_url_overrides)

    # --- Logging ------------------------------------------------------------
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_plain: bool = field(default_factory=lambda: _b("LOG_PLAIN", False))
    log_dir: Optional[Path] = field(
        default_factory=lambda: (
            Path(os.environ["LOG_DIR"]) if os.getenv("LOG_DIR") else None
        )
    )


SETTINGS = Settings()


def get_settings() -> Settings:
    return SETTINGS


@dataclass(frozen=True)
class AggregationOptions:
    """Options for one aggregation run.

    Attributes
    ----------
    max_articles_per_feed : int
        Items taken from each successfully parsed feed.
    max_total_articles : int
        Final cap on the ranked list.
    min_confidence : float
        Relevance floor applied by the caller (``NewsService``); the
        aggregator itself does not filter on it.
    max_age_hours : float
        Articles older than this are dropped.
    enable_deduplication : bool
        Collapse articles whose normalized titles collide.
    user_watchlist : tuple of str
        Ticker symbols that boost ranking.
    """

    max_articles_per_feed: int = 10
    max_total_articles: int = 50
    min_confidence: float = 0.5
    max_age_hours: float = 48.0
    enable_deduplication: bool = True
    user_watchlist: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        watch = tuple(
            str(sym).strip().upper() for sym in (self.user_watchlist or ()) if sym
        )
        object.__setattr__(self, "user_watchlist", watch)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "AggregationOptions":
        s = settings or get_settings()
        return cls(
            max_articles_per_feed=s.max_articles_per_feed,
            max_total_articles=s.max_total_articles,
            min_confidence=s.min_confidence,
            max_age_hours=s.max_age_hours,
            enable_deduplication=s.enable_deduplication,
        )

    def merged(self, **overrides) -> "AggregationOptions":
        """Return a copy with every non-``None`` override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

    def cache_key(self) -> Tuple:
        return (
            self.max_articles_per_feed,
            self.max_total_articles,
            self.max_age_hours,
            self.enable_deduplication,
            tuple(sorted(self.user_watchlist)),
        )
