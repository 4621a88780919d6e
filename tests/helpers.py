"""Shared builders and fakes for the test suite."""

from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Dict, List, Optional, Sequence, Union

from finfeed.models import Article, FeedSource

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def rss_bytes(items: Sequence[dict], title: str = "Test Feed") -> bytes:
    """Build a small RSS 2.0 document from ``{"title", "link", "description", "published"}`` dicts."""
    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<rss version="2.0"><channel>',
        f"<title>{title}</title><link>https://example.com/</link>",
        "<description>test</description>",
    ]
    for it in items:
        parts.append("<item>")
        parts.append(f"<title>{it['title']}</title>")
        parts.append(f"<link>{it.get('link', 'https://example.com/a')}</link>")
        if it.get("description") is not None:
            parts.append(f"<description>{it['description']}</description>")
        published = it.get("published")
        if isinstance(published, datetime):
            published = format_datetime(published)
        if published:
            parts.append(f"<pubDate>{published}</pubDate>")
        parts.append("</item>")
    parts.append("</channel></rss>")
    return "\n".join(parts).encode("utf-8")


class FakeHttp:
    """Scripted stand-in for ``finfeed.feeds._get_async``.

    ``script`` maps a URL to a list of outcomes consumed one per call: bytes
    are returned as the body, exceptions are raised.  The last outcome
    repeats once the list is exhausted.
    """

    def __init__(self, script: Dict[str, List[Union[bytes, BaseException]]]):
        self.script = {url: list(outcomes) for url, outcomes in script.items()}
        self.calls: List[str] = []

    async def __call__(self, url, session, timeout):
        self.calls.append(url)
        outcomes = self.script[url]
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome, "utf-8"

    def count(self, url: str) -> int:
        return sum(1 for c in self.calls if c == url)


async def no_sleep(_secs: float) -> None:
    return None


def make_source(
    name: str = "Test Feed",
    category: str = "Markets",
    credibility: float = 0.8,
    enabled: bool = True,
    url: Optional[str] = None,
) -> FeedSource:
    return FeedSource(
        name=name,
        url=url or f"https://feeds.example.com/{name.lower().replace(' ', '-')}.xml",
        category=category,
        credibility=credibility,
        enabled=enabled,
    )


def make_article(
    title: str = "Sample headline",
    relevance: float = 0.5,
    source: str = "Test Feed",
    category: str = "Markets",
    sentiment: str = "neutral",
    tickers: Sequence[str] = (),
    published_at: Optional[datetime] = None,
    article_id: Optional[str] = None,
) -> Article:
    return Article(
        id=article_id or f"id-{abs(hash((title, source))) % 10**8:08d}",
        title=title,
        summary=f"Summary for {title}",
        url=f"https://example.com/{abs(hash(title)) % 10**6}",
        source=source,
        category=category,
        published_at=published_at or NOW,
        relevance_score=relevance,
        sentiment=sentiment,
        tickers=tuple(tickers),
    )
