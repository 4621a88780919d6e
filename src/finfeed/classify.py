from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, Optional, Tuple

from .models import ExtractedTicker, SentimentResult

# Keyword-substring tables per category.  Order is irrelevant: a tie between
# categories falls back to the feed's default.
CATEGORY_PATTERNS: Dict[str, Tuple[str, ...]] = {
    "Markets": (
        "market", "index", "dow", "s&p", "nasdaq", "trading", "stocks",
        "equities", "bull", "bear", "rally", "slump", "volatility", "session",
        "close", "open", "high", "low", "volume",
    ),
    "Economy": (
        "economy", "economic", "fed", "federal reserve", "inflation",
        "interest rates", "gdp", "employment", "jobs", "unemployment",
        "recession", "stimulus", "policy", "central bank",
    ),
    "Commodities": (
        "oil", "gold", "silver", "copper", "commodity", "energy",
        "natural gas", "crude", "futures", "precious metals",
        "industrial metals", "agriculture", "wheat", "corn",
    ),
    "Cryptocurrency": (
        "bitcoin", "crypto", "cryptocurrency", "ethereum", "blockchain",
        "digital currency", "altcoin", "mining", "exchange", "wallet", "defi",
        "nft", "web3",
    ),
    "Banking": (
        "bank", "financial", "loan", "credit", "mortgage", "interest rate",
        "deposit", "lending", "investment bank", "commercial bank",
        "regional bank", "wall street",
    ),
    "Technology": (
        "tech", "technology", "software", "ai", "artificial intelligence",
        "semiconductor", "chip", "cloud", "saas", "internet", "social media",
        "e-commerce", "big tech",
    ),
    "Healthcare": (
        "pharma", "biotech", "health", "medical", "drug", "fda", "healthcare",
        "pharmaceutical", "clinical trial", "treatment", "therapy",
        "hospital", "insurance", "medical device",
    ),
    "Automotive": (
        "auto", "car", "vehicle", "ev", "electric vehicle", "tesla", "ford",
        "gm", "toyota", "automotive", "manufacturing", "assembly",
        "dealership", "autonomous", "self-driving",
    ),
    "Retail": (
        "retail", "consumer", "shopping", "sales", "revenue", "earnings",
        "quarterly", "customer", "store", "mall", "e-commerce", "amazon",
        "walmart", "target", "costco",
    ),
    "Business": (
        "business", "company", "corporate", "merger", "acquisition", "ipo",
        "earnings", "revenue", "profit", "loss", "ceo", "executive",
        "management", "strategy",
    ),
}

FINANCIAL_KEYWORDS: Tuple[str, ...] = (
    "earnings", "revenue", "profit", "loss", "merger", "acquisition", "ipo",
    "dividend", "buyback", "guidance", "forecast", "analyst", "upgrade",
    "downgrade",
)

BASE_RELEVANCE = 0.5


def category_scores(title: str, summary: str) -> Dict[str, int]:
    text = f"{title or ''} {summary or ''}".lower()
    return {
        category: sum(1 for kw in keywords if kw in text)
        for category, keywords in CATEGORY_PATTERNS.items()
    }


def classify_category(title: str, summary: str, default_category: str) -> str:
    """Category with the strictly highest keyword hit count, else the default."""
    scores = category_scores(title, summary)
    best = max(scores.values(), default=0)
    if best <= 0:
        return default_category
    winners = [c for c, n in scores.items() if n == best]
    return winners[0] if len(winners) == 1 else default_category


def _recency_boost(age_hours: float) -> float:
    if age_hours < 2:
        return 0.3
    if age_hours < 6:
        return 0.2
    if age_hours < 24:
        return 0.1
    return 0.0


def calculate_relevance_score(
    title: str,
    summary: str,
    published_at: datetime,
    tickers: Iterable[ExtractedTicker],
    sentiment: SentimentResult,
    credibility: float,
    now: Optional[datetime] = None,
) -> float:
    """Heuristic relevance in [0, 1].

    Base 0.5, plus recency, ticker confidence, strong sentiment, source
    credibility and financial keyword density; the sum is clamped.
    """
    now = now or datetime.now(timezone.utc)
    age_hours = (now - published_at).total_seconds() / 3600.0

    score = BASE_RELEVANCE
    score += _recency_boost(age_hours)
    score += min(0.2, 0.1 * sum(t.confidence for t in tickers))
    if sentiment.confidence > 0.7:
        score += 0.1
    score += 0.1 * max(0.0, min(1.0, credibility))
    text = f"{title or ''} {summary or ''}".lower()
    hits = sum(1 for kw in FINANCIAL_KEYWORDS if kw in text)
    score += min(0.15, 0.05 * hits)
    return max(0.0, min(1.0, score))
