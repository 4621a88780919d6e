from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

# Feed entries are kept in whatever shape the parser produced (feedparser
# returns a dict subclass).  The normalizer reads them through its
# candidate-field tables, so no conversion happens in between.
RawFeedItem = Mapping[str, Any]

POSITIVE = "positive"
NEGATIVE = "negative"
NEUTRAL = "neutral"
SENTIMENTS = (POSITIVE, NEGATIVE, NEUTRAL)


@dataclass
class FeedSource:
    """Catalog entry for one feed.

    Everything except ``enabled`` is fixed at startup; ``enabled`` is
    toggled by operators through the registry.
    """

    name: str
    url: str
    category: str
    credibility: float
    enabled: bool = True

    def __post_init__(self) -> None:
        self.credibility = max(0.0, min(1.0, float(self.credibility)))


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class FeedFailureRecord:
    source_name: str
    consecutive_failures: int = 0
    last_attempt: float = 0.0
    state: BreakerState = BreakerState.CLOSED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source_name,
            "consecutive_failures": self.consecutive_failures,
            "last_attempt": datetime.fromtimestamp(
                self.last_attempt, tz=timezone.utc
            ).isoformat(),
            "state": self.state.value,
        }


@dataclass(frozen=True)
class ExtractedTicker:
    symbol: str
    confidence: float
    context: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "confidence": round(self.confidence, 4),
            "context": self.context,
        }


@dataclass(frozen=True)
class SentimentResult:
    sentiment: str
    confidence: float
    score: float
    keywords: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sentiment": self.sentiment,
            "confidence": round(self.confidence, 4),
            "score": round(self.score, 4),
            "keywords": list(self.keywords),
        }


NEUTRAL_SENTIMENT = SentimentResult(sentiment=NEUTRAL, confidence=0.0, score=0.0)


@dataclass(frozen=True)
class Article:
    """Canonical enriched news unit.

    Produced once per feed item by the normalizer and the enrichment stage
    and never mutated afterwards (new values are derived with
    :func:`dataclasses.replace`).  ``id`` is deterministic for a given
    (title, link, publish date) triple.
    """

    id: str
    title: str
    summary: str
    url: str
    source: str
    category: str
    published_at: datetime
    relevance_score: float = 0.0
    sentiment: str = NEUTRAL
    tickers: Tuple[str, ...] = ()
    image_url: Optional[str] = None
    raw_title: str = ""
    raw_summary: str = ""
    source_credibility: float = 0.0
    extracted_tickers: Tuple[ExtractedTicker, ...] = ()
    sentiment_details: SentimentResult = NEUTRAL_SENTIMENT
    processed_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def to_dict(self, detailed: bool = False) -> Dict[str, Any]:
        """Public JSON shape; ``detailed`` adds the enrichment internals."""
        out: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "summary": self.summary,
            "url": self.url,
            "source": self.source,
            "category": self.category,
            "publishedAt": self.published_at.isoformat(),
            "relevanceScore": round(self.relevance_score, 4),
            "sentiment": self.sentiment,
            "tickers": list(self.tickers),
        }
        if self.image_url:
            out["imageUrl"] = self.image_url
        if detailed:
            out["sourceCredibility"] = self.source_credibility
            out["extractedTickers"] = [t.to_dict() for t in self.extracted_tickers]
            out["sentimentDetails"] = self.sentiment_details.to_dict()
            out["processingTime"] = self.processed_at.isoformat()
        return out
