"""Catalog of financial news feeds.

The registry holds every candidate source together with its default
category and a credibility weight in [0, 1].  Feeds are never removed at
runtime, only disabled; disabled entries stay in the catalog so operators
can switch them back on once an upstream recovers.

Credibility weights are used twice:
    - ``FeedSource.credibility`` feeds the relevance score of every article
      coming from that feed.
    - ``SOURCE_CREDIBILITY`` overrides the credibility reported on the
      article itself for well-known outlets.

Usage:
    >>> registry = FeedRegistry.from_settings()
    >>> [f.name for f in registry.get_feeds_by_category("economy")]
    ['Federal Reserve News', 'Investing.com Economics', 'CNBC Economics']
"""

from __future__ import annotations

import re
import threading
from typing import Dict, Iterable, List, Optional

from .config import Settings, get_settings
from .logging_utils import get_logger
from .models import FeedSource

log = get_logger(__name__)

# (name, url, category, credibility, enabled)
_DEFAULT_FEEDS = (
    # General market news
    ("Yahoo Finance", "https://finance.yahoo.com/news/rssindex", "General", 0.9, True),
    (
        "Yahoo Finance Headlines",
        "https://feeds.finance.yahoo.com/rss/2.0/headline",
        "General",
        0.9,
        True,
    ),
    (
        "MarketWatch Top Stories",
        "https://feeds.content.dowjones.io/public/rss/mw_topstories",
        "Markets",
        0.8,
        True,
    ),
    (
        "Seeking Alpha Market Currents",
        "https://seekingalpha.com/feed.xml",
        "Markets",
        0.8,
        True,
    ),
    # Business & corporate news
    (
        "CNBC Top News",
        "https://www.cnbc.com/id/100003114/device/rss/rss.html",
        "Business",
        0.9,
        True,
    ),
    ("Fortune", "https://fortune.com/feed/", "Business", 0.9, True),
    ("Motley Fool", "https://www.fool.com/feed/", "Business", 0.8, True),
    ("Benzinga", "https://www.benzinga.com/feed", "Business", 0.8, True),
    # Economic news
    (
        "Federal Reserve News",
        "https://www.federalreserve.gov/feeds/press_all.xml",
        "Economy",
        1.0,
        True,
    ),
    (
        "Investing.com Economics",
        "https://www.investing.com/rss/news.rss",
        "Economy",
        0.8,
        True,
    ),
    (
        "CNBC Economics",
        "https://www.cnbc.com/id/20910258/device/rss/rss.html",
        "Economy",
        0.9,
        True,
    ),
    # Technology
    (
        "TechCrunch Fintech",
        "https://techcrunch.com/category/fintech/feed/",
        "Technology",
        0.9,
        True,
    ),
    # Cryptocurrency
    (
        "CoinDesk",
        "https://www.coindesk.com/arc/outboundfeeds/rss/",
        "Cryptocurrency",
        1.0,
        True,
    ),
    ("Cointelegraph", "https://cointelegraph.com/rss", "Cryptocurrency", 0.9, True),
    # Commodities & energy
    ("OilPrice.com", "https://oilprice.com/rss/main", "Commodities", 0.9, True),
    # --- Disabled (blocked, DNS issues, 403/404, format changes) ---
    ("Financial Times", "https://www.ft.com/rss/home", "General", 1.0, False),
    (
        "Reuters Business",
        "https://feeds.reuters.com/reuters/businessNews",
        "Business",
        1.0,
        False,
    ),
    (
        "Bloomberg Markets",
        "https://feeds.bloomberg.com/markets/news.rss",
        "Markets",
        1.0,
        False,
    ),
    ("Forbes", "https://www.forbes.com/real-time/feed2/", "Business", 0.9, False),
    ("FRED Economic Data", "https://fred.stlouisfed.org/feed", "Economy", 1.0, False),
    (
        "Trading Economics",
        "https://tradingeconomics.com/rss/news",
        "Economy",
        0.9,
        False,
    ),
    (
        "Ars Technica Business",
        "https://feeds.arstechnica.com/arstechnica/technology-lab",
        "Technology",
        0.8,
        False,
    ),
    (
        "Kitco News",
        "https://www.kitco.com/rss/KitcoNews.xml",
        "Commodities",
        0.9,
        False,
    ),
)

# Outlet-level credibility, keyed by feed name.  Premium wires and
# regulators sit at 1.0; aggregators and opinion sites lower.
SOURCE_CREDIBILITY: Dict[str, float] = {
    "Reuters": 1.0,
    "Bloomberg": 1.0,
    "Wall Street Journal": 1.0,
    "Financial Times": 1.0,
    "Associated Press": 0.95,
    "CNBC": 0.9,
    "Yahoo Finance": 0.9,
    "MarketWatch": 0.8,
    "Seeking Alpha": 0.8,
    "Investopedia": 0.8,
    "Business Insider": 0.75,
    "The Street": 0.7,
    "Fortune": 0.9,
    "Motley Fool": 0.8,
    "Benzinga": 0.8,
    "CoinDesk": 1.0,
    "Cointelegraph": 0.9,
    "Federal Reserve News": 1.0,
    "Investing.com": 0.8,
    "OilPrice.com": 0.9,
    "TechCrunch": 0.9,
}


def default_feeds() -> List[FeedSource]:
    """Return a fresh copy of the built-in catalog."""
    return [
        FeedSource(name=n, url=u, category=c, credibility=w, enabled=e)
        for (n, u, c, w, e) in _DEFAULT_FEEDS
    ]


def override_key(name: str) -> str:
    """Environment key suffix for a feed name (``Yahoo Finance`` -> ``YAHOO_FINANCE``)."""
    return re.sub(r"[^A-Za-z0-9]+", "_", name).strip("_").upper()


def get_source_credibility(source: FeedSource) -> float:
    """Outlet credibility for articles from ``source``.

    Exact feed-name matches in :data:`SOURCE_CREDIBILITY` win; otherwise the
    feed's own configured credibility is used.
    """
    return SOURCE_CREDIBILITY.get(source.name, source.credibility)


class FeedRegistry:
    """Mutable view over the feed catalog.

    Only the ``enabled`` flag changes after construction.  Toggling is
    guarded by a lock because the HTTP surface and the aggregation loop may
    run on different threads.
    """

    def __init__(self, feeds: Optional[Iterable[FeedSource]] = None):
        self._feeds: List[FeedSource] = list(
            feeds if feeds is not None else default_feeds()
        )
        names = [f.name for f in self._feeds]
        if len(names) != len(set(names)):
            raise ValueError("feed names must be unique")
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "FeedRegistry":
        """Build the default catalog with env URL overrides and disabled feeds applied."""
        settings = settings or get_settings()
        feeds = default_feeds()
        overrides = settings.feed_url_overrides or {}
        disabled = {name.lower() for name in settings.disabled_feeds}
        for feed in feeds:
            url = overrides.get(override_key(feed.name))
            if url:
                log.info("feed_url_override source=%s url=%s", feed.name, url[:80])
                feed.url = url
            if feed.name.lower() in disabled:
                feed.enabled = False
        return cls(feeds)

    @property
    def feeds(self) -> List[FeedSource]:
        return list(self._feeds)

    def get(self, name: str) -> Optional[FeedSource]:
        for feed in self._feeds:
            if feed.name == name:
                return feed
        return None

    def get_enabled_feeds(self) -> List[FeedSource]:
        return [f for f in self._feeds if f.enabled]

    def get_feeds_by_category(self, category: str) -> List[FeedSource]:
        """Enabled feeds in ``category`` (case-insensitive, ``"all"`` matches every feed)."""
        wanted = (category or "").lower()
        return [
            f
            for f in self._feeds
            if f.enabled and (wanted == "all" or f.category.lower() == wanted)
        ]

    def toggle_feed(self, name: str, enabled: bool) -> bool:
        """Enable or disable a feed by name. Returns False for unknown names."""
        with self._lock:
            feed = self.get(name)
            if feed is None:
                return False
            if feed.enabled != enabled:
                log.info("feed_toggled source=%s enabled=%s", name, enabled)
            feed.enabled = bool(enabled)
            return True

    def get_feed_status(self) -> Dict[str, object]:
        enabled = [f for f in self._feeds if f.enabled]
        categories: List[str] = []
        for f in self._feeds:
            if f.category not in categories:
                categories.append(f.category)
        avg = (
            sum(f.credibility for f in enabled) / len(enabled) if enabled else 0.0
        )
        return {
            "total": len(self._feeds),
            "enabled": len(enabled),
            "disabled": len(self._feeds) - len(enabled),
            "categories": categories,
            "avg_credibility": round(avg, 4),
        }

    def __len__(self) -> int:
        return len(self._feeds)
