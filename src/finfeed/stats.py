from __future__ import annotations

from collections import Counter
from typing import Any, Dict, Sequence

from .models import NEGATIVE, NEUTRAL, POSITIVE, Article


def get_news_stats(articles: Sequence[Article]) -> Dict[str, Any]:
    """Summary numbers for a batch of articles (the plain-text ``fetch`` summary)."""
    total = len(articles)
    if total == 0:
        return {
            "total": 0,
            "avg_relevance_score": 0.0,
            "sentiment_distribution": {POSITIVE: 0.0, NEGATIVE: 0.0, NEUTRAL: 0.0},
            "category_distribution": {},
            "top_sources": [],
            "avg_tickers_per_article": 0.0,
        }

    sentiments = Counter(a.sentiment for a in articles)
    categories = Counter(a.category for a in articles)
    sources = Counter(a.source for a in articles)
    return {
        "total": total,
        "avg_relevance_score": sum(a.relevance_score for a in articles) / total,
        "sentiment_distribution": {
            label: sentiments.get(label, 0) / total
            for label in (POSITIVE, NEGATIVE, NEUTRAL)
        },
        "category_distribution": dict(categories),
        "top_sources": [
            {"source": name, "count": count} for name, count in sources.most_common(5)
        ],
        "avg_tickers_per_article": sum(len(a.tickers) for a in articles) / total,
    }
