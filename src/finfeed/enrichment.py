"""Attach tickers, sentiment, category and relevance to a normalized article."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from .classify import calculate_relevance_score, classify_category
from .feed_registry import get_source_credibility
from .models import Article, FeedSource
from .sentiment import analyze_article_sentiment
from .ticker_extractor import (
    extract_tickers_from_article,
    filter_tickers_by_confidence,
    get_top_tickers,
)

TICKER_MIN_CONFIDENCE = 0.5
MAX_TICKERS = 5


def enrich_article(
    article: Article, source: FeedSource, now: Optional[datetime] = None
) -> Article:
    """Return a copy of ``article`` with every analyzer's output filled in.

    The analyzers read the uncut title and body; the trimmed display
    fields are what the client sees.
    """
    title = article.raw_title or article.title
    body = article.raw_summary or article.summary

    tickers = get_top_tickers(
        filter_tickers_by_confidence(
            extract_tickers_from_article(title, body), TICKER_MIN_CONFIDENCE
        ),
        MAX_TICKERS,
    )
    sentiment = analyze_article_sentiment(title, body)
    category = classify_category(title, body, source.category)
    relevance = calculate_relevance_score(
        title,
        body,
        article.published_at,
        tickers,
        sentiment,
        source.credibility,
        now=now,
    )
    return replace(
        article,
        category=category,
        relevance_score=relevance,
        sentiment=sentiment.sentiment,
        tickers=tuple(t.symbol for t in tickers),
        extracted_tickers=tuple(tickers),
        sentiment_details=sentiment,
        source_credibility=get_source_credibility(source),
        processed_at=now or datetime.now(timezone.utc),
    )
