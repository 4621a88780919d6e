"""Lexicon-based sentiment for financial headlines.

Deterministic and stateless.  Each token is looked up in tiered positive
and negative word lists (strong=3, moderate=2, weak=1).  A negation word in
the three preceding tokens flips the hit to the other polarity at half
weight; an amplifier or diminisher immediately before it scales the hit by
1.5 or 0.7.  Financial vocabulary anywhere in the text boosts both sums by
up to 20%.

Lookup is exact first, then by stem: a keyword of three or more letters
matches a token that starts with it and adds at most three letters
("surge" -> "surges", "grow" -> "growing").  This is deliberately narrower
than plain substring matching: a keyword buried inside a longer word
("gain" in "bargaining") or at its end ("cut" in "shortcut") never
counts, and neither does a prefix followed by four or more letters.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .models import NEGATIVE, NEUTRAL, POSITIVE, SentimentResult

TIER_SCORES: Dict[str, float] = {"strong": 3.0, "moderate": 2.0, "weak": 1.0}
TIER_ORDER = ("strong", "moderate", "weak")

SENTIMENT_KEYWORDS: Dict[str, Dict[str, Tuple[str, ...]]] = {
    POSITIVE: {
        "strong": (
            "surge", "soar", "jump", "rally", "boom", "bullish", "outperform",
            "upgrade", "record", "high", "exceptional", "outstanding",
            "excellent", "strong", "robust", "solid", "impressive",
            "remarkable", "breakthrough", "innovation", "growth", "expansion",
            "success", "triumph", "victory", "achievement", "profit",
            "profitable", "gain", "boost", "increase", "rise", "climb",
            "advance", "momentum",
        ),
        "moderate": (
            "grow", "improve", "positive", "optimistic", "upbeat",
            "encouraging", "promising", "favorable", "good", "better",
            "progress", "recovery", "stability", "steady", "stable", "modest",
            "gradual", "incremental", "satisfactory", "decent",
        ),
        "weak": (
            "slow", "moderate", "acceptable", "sufficient", "adequate",
            "reasonable", "fair", "neutral", "balanced", "mixed", "varied",
        ),
    },
    NEGATIVE: {
        "strong": (
            "crash", "plunge", "slump", "tumble", "bearish", "downgrade",
            "crisis", "recession", "collapse", "devastating", "catastrophic",
            "disastrous", "severe", "critical", "urgent", "alarming",
            "worrisome", "bankruptcy", "failure", "loss", "lose", "disaster",
            "turmoil", "chaos", "panic", "meltdown",
        ),
        "moderate": (
            "fall", "drop", "decline", "decrease", "negative", "pessimistic",
            "cut", "reduce", "concern", "worry", "risk", "threat", "challenge",
            "difficulty", "struggle", "pressure", "stress", "declining",
            "falling", "decreasing", "weakening", "slowing", "deteriorating",
            "worsening",
        ),
        "weak": (
            "slip", "dip", "caution", "uncertainty", "volatility",
            "fluctuation", "instability", "hesitation", "pause", "slowdown",
            "moderation", "correction",
        ),
    },
}

FINANCIAL_CONTEXT_BOOSTERS: Tuple[str, ...] = (
    "earnings", "revenue", "profit", "loss", "margin", "outlook", "forecast",
    "guidance", "quarterly", "annual", "fiscal", "financial", "economic",
    "market", "stock", "share", "dividend", "yield", "valuation", "multiple",
    "estimate", "analyst", "rating", "target",
)

NEGATION_WORDS = frozenset(
    (
        "not", "no", "never", "none", "neither", "nor", "nothing", "nowhere",
        "hardly", "scarcely", "barely", "rarely", "seldom", "despite",
        "although", "however",
    )
)

AMPLIFIERS = frozenset(
    (
        "very", "extremely", "highly", "significantly", "substantially",
        "considerably", "remarkably", "exceptionally", "particularly",
        "especially", "really", "truly",
    )
)
DIMINISHERS = frozenset(
    (
        "slightly", "somewhat", "moderately", "partially", "minimally",
        "marginally", "relatively", "comparatively", "barely", "hardly",
    )
)

NEGATION_WINDOW = 3
MAX_STEM_SUFFIX = 3
MIN_STEM_LEN = 3

_PUNCT_RE = re.compile(r"[^\w\s]")


def tokenize(text: str) -> List[str]:
    return _PUNCT_RE.sub(" ", (text or "").lower()).split()


def _stem_hit(token: str, keyword: str) -> bool:
    return (
        len(keyword) >= MIN_STEM_LEN
        and token.startswith(keyword)
        and len(token) - len(keyword) <= MAX_STEM_SUFFIX
    )


def find_sentiment_match(
    token: str, tiers: Mapping[str, Sequence[str]]
) -> Optional[str]:
    """Return the intensity tier ``token`` belongs to, or ``None``."""
    for tier in TIER_ORDER:
        if token in tiers.get(tier, ()):
            return tier
    for tier in TIER_ORDER:
        for keyword in tiers.get(tier, ()):
            if _stem_hit(token, keyword):
                return tier
    return None


def _is_negated(tokens: Sequence[str], index: int) -> bool:
    start = max(0, index - NEGATION_WINDOW)
    return any(tok in NEGATION_WORDS for tok in tokens[start:index])


def _intensity(prev: str) -> float:
    if prev in AMPLIFIERS:
        return 1.5
    if prev in DIMINISHERS:
        return 0.7
    return 1.0


def financial_context_score(text: str) -> float:
    """Fraction (0..1) of the first five booster words present in ``text``."""
    low = (text or "").lower()
    matches = sum(1 for word in FINANCIAL_CONTEXT_BOOSTERS if word in low)
    return min(matches / 5.0, 1.0)


def analyze_sentiment(text: str) -> SentimentResult:
    """Classify ``text`` as positive, negative or neutral.

    >>> analyze_sentiment("Markets crash as recession fears grow").sentiment
    'negative'
    """
    tokens = tokenize(text)
    pos_sum = 0.0
    neg_sum = 0.0
    pos_words: List[str] = []
    neg_words: List[str] = []

    for i, tok in enumerate(tokens):
        negated = _is_negated(tokens, i)
        mult = _intensity(tokens[i - 1]) if i > 0 else 1.0
        for polarity in (POSITIVE, NEGATIVE):
            tier = find_sentiment_match(tok, SENTIMENT_KEYWORDS[polarity])
            if tier is None:
                continue
            score = TIER_SCORES[tier] * mult
            flipped = negated
            if (polarity == POSITIVE) != flipped:
                pos_sum += score * (0.5 if flipped else 1.0)
                pos_words.append(tok)
            else:
                neg_sum += score * (0.5 if flipped else 1.0)
                neg_words.append(tok)

    boost = 1.0 + financial_context_score(" ".join(tokens)) * 0.2
    pos_sum *= boost
    neg_sum *= boost

    net = pos_sum - neg_sum
    if net > 0.5:
        label = POSITIVE
    elif net < -0.5:
        label = NEGATIVE
    else:
        label = NEUTRAL

    magnitude = max(pos_sum, neg_sum)
    strength = min(magnitude / 3.0, 1.0) if magnitude > 0 else 0.0
    keywords = pos_words + neg_words
    coverage = min(len(keywords) / 5.0, 1.0)
    return SentimentResult(
        sentiment=label,
        confidence=(strength + coverage) / 2.0,
        score=net,
        keywords=tuple(keywords),
    )


def analyze_article_sentiment(title: str, summary: str) -> SentimentResult:
    return analyze_sentiment(f"{title or ''} {summary or ''}")


def batch_analyze_sentiment(
    articles: Iterable[Mapping[str, str]]
) -> List[SentimentResult]:
    """Analyze ``{"title": ..., "summary": ...}`` mappings in order."""
    return [
        analyze_article_sentiment(a.get("title", ""), a.get("summary", ""))
        for a in articles
    ]


def get_sentiment_distribution(results: Sequence[SentimentResult]) -> Dict[str, float]:
    total = len(results)
    if total == 0:
        return {POSITIVE: 0.0, NEGATIVE: 0.0, NEUTRAL: 0.0}
    return {
        label: sum(1 for r in results if r.sentiment == label) / total
        for label in (POSITIVE, NEGATIVE, NEUTRAL)
    }
