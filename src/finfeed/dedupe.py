"""Collapse articles that report the same story.

Two articles are duplicates when their normalized titles share the same
80-character prefix.  This is a heuristic: distinct stories with a
generic headline ("Stocks to watch today") can be merged.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List

from .models import Article

DEDUPE_KEY_CHARS = 80


def dedupe_key(title: str) -> str:
    """Lowercase, drop punctuation, collapse whitespace, keep 80 chars.

    >>> dedupe_key("Apple's  Q3: Beats!") == dedupe_key("apples q3 beats")
    True
    """
    clean = re.sub(r"[^\w\s]", "", (title or "").lower())
    clean = re.sub(r"\s+", " ", clean).strip()
    return clean[:DEDUPE_KEY_CHARS]


def deduplicate_articles(articles: Iterable[Article]) -> List[Article]:
    """Keep the highest-relevance article per key, in first-seen key order."""
    seen: Dict[str, Article] = {}
    for article in articles:
        key = dedupe_key(article.title)
        cur = seen.get(key)
        if cur is None or article.relevance_score > cur.relevance_score:
            seen[key] = article
    return list(seen.values())
