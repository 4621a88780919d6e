"""finfeed package.

This package aggregates financial news from many RSS/Atom feeds and
enriches every article with ticker mentions, sentiment, a topical category
and a relevance score. The pipeline is split into small modules (registry,
fetcher, normalizer, analyzers, aggregator, cache) so that each stage can be
tested and evolved independently.
"""

__all__: list[str] = []
