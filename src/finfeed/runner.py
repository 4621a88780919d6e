"""Command line entry point.

    finfeed feeds                      list the feed catalog
    finfeed fetch [--max-per-feed N]   run one aggregation and print results
    finfeed serve [--port P]           run the HTTP surface
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
import threading
from typing import List, Optional

# Load .env early so config is available to subsequent imports.
from dotenv import load_dotenv

_env_file = os.getenv("DOTENV_FILE")
if _env_file:
    load_dotenv(_env_file)  # set DOTENV_FILE=.env.staging
else:
    load_dotenv()

from .aggregator import NewsAggregator  # noqa: E402
from .config import AggregationOptions, Settings  # noqa: E402
from .errors import AggregationError  # noqa: E402
from .feed_registry import FeedRegistry  # noqa: E402
from .health_endpoint import start_health_server, stop_health_server  # noqa: E402
from .logging_utils import get_logger, setup_logging  # noqa: E402
from .service import NewsService  # noqa: E402
from .stats import get_news_stats  # noqa: E402

log = get_logger(__name__)


def cmd_feeds(settings: Settings, args: argparse.Namespace) -> int:
    registry = FeedRegistry.from_settings(settings)
    status = registry.get_feed_status()
    print(f"Total feeds:     {status['total']}")
    print(f"Enabled feeds:   {status['enabled']}")
    print(f"Disabled feeds:  {status['disabled']}")
    print(f"Categories:      {', '.join(status['categories'])}")
    print(f"Avg credibility: {status['avg_credibility']:.2f}")
    print("")
    feeds = registry.feeds if args.all else registry.get_enabled_feeds()
    for i, feed in enumerate(feeds, 1):
        flag = "" if feed.enabled else " [disabled]"
        print(f"{i:>3}. {feed.name}{flag}")
        print(f"     {feed.url}")
        print(f"     category={feed.category} credibility={feed.credibility}")
    return 0


def _print_articles(articles, stats) -> None:
    print(f"Total articles:          {stats['total']}")
    print(f"Avg relevance score:     {stats['avg_relevance_score']:.2f}")
    print(f"Avg tickers per article: {stats['avg_tickers_per_article']:.1f}")
    dist = stats["sentiment_distribution"]
    print(
        "Sentiment:               positive={:.0%} negative={:.0%} neutral={:.0%}".format(
            dist["positive"], dist["negative"], dist["neutral"]
        )
    )
    for cat, count in sorted(
        stats["category_distribution"].items(), key=lambda kv: kv[1], reverse=True
    ):
        print(f"  {cat}: {count}")
    print("")
    for i, a in enumerate(articles, 1):
        tickers = ",".join(a.tickers) or "-"
        print(f"{i:>3}. [{a.relevance_score:.2f}] {a.title}")
        print(f"     {a.source} | {a.category} | {a.sentiment} | {tickers}")


def cmd_fetch(settings: Settings, args: argparse.Namespace) -> int:
    options = AggregationOptions.from_settings(settings).merged(
        max_articles_per_feed=args.max_per_feed,
        max_total_articles=args.max_total,
        max_age_hours=args.max_age_hours,
        min_confidence=args.min_confidence,
        user_watchlist=tuple(args.watchlist.split(",")) if args.watchlist else None,
    )
    aggregator = NewsAggregator(settings=settings)
    try:
        articles = asyncio.run(aggregator.aggregate(options, category=args.category))
    except AggregationError as e:
        log.error("fetch_failed err=%s failures=%s", e, e.failures)
        print(f"No articles were fetched: {e}", file=sys.stderr)
        return 1
    articles = [a for a in articles if a.relevance_score >= options.min_confidence]
    if args.json:
        print(json.dumps([a.to_dict(detailed=True) for a in articles], indent=2))
    else:
        _print_articles(articles, get_news_stats(articles))
    return 0


def cmd_serve(settings: Settings, args: argparse.Namespace) -> int:
    service = NewsService(settings=settings)
    port = args.port if args.port is not None else settings.health_check_port
    server = start_health_server(service, port=port, host=args.host)
    stop = threading.Event()
    try:
        stop.wait()
    except KeyboardInterrupt:
        log.info("serve_interrupted")
    finally:
        stop_health_server(server)
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="finfeed", description="Financial news aggregator")
    ap.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = ap.add_subparsers(dest="command", required=True)

    p_feeds = sub.add_parser("feeds", help="List the feed catalog")
    p_feeds.add_argument("--all", action="store_true", help="Include disabled feeds")
    p_feeds.set_defaults(func=cmd_feeds)

    p_fetch = sub.add_parser("fetch", help="Run one aggregation")
    p_fetch.add_argument("--max-per-feed", type=int, default=None)
    p_fetch.add_argument("--max-total", type=int, default=None)
    p_fetch.add_argument("--max-age-hours", type=float, default=None)
    p_fetch.add_argument("--min-confidence", type=float, default=None)
    p_fetch.add_argument("--category", default=None, help="Only fetch feeds in this category")
    p_fetch.add_argument("--watchlist", default=None, help="Comma separated tickers")
    p_fetch.add_argument("--json", action="store_true", help="Print articles as JSON")
    p_fetch.set_defaults(func=cmd_fetch)

    p_serve = sub.add_parser("serve", help="Run the HTTP news service")
    p_serve.add_argument("--port", type=int, default=None)
    p_serve.add_argument("--host", default="0.0.0.0")
    p_serve.set_defaults(func=cmd_serve)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings()
    setup_logging(args.log_level, settings=settings)
    return args.func(settings, args)


if __name__ == "__main__":
    sys.exit(main())
