from __future__ import annotations

import asyncio
import re
import socket
import ssl
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Tuple

import aiohttp
import feedparser  # type: ignore

from .config import Settings, get_settings
from .errors import (
    EmptyFeedError,
    FeedFetchError,
    FeedHTTPError,
    MalformedFeedError,
)
from .failure_tracker import FailureTracker
from .logging_utils import get_logger
from .models import FeedSource, RawFeedItem

log = get_logger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; finfeed/1.0; +https://pypi.org/project/finfeed/)"

# Some publishers (Yahoo, CNBC) reject requests that do not look like a browser.
BROWSER_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "application/rss+xml, application/xml, text/xml;q=0.9, */*;q=0.8",
    "Accept-Encoding": "gzip, deflate",
    "Cache-Control": "no-cache",
}

HttpGet = Callable[
    [str, aiohttp.ClientSession, float], Awaitable[Tuple[bytes, Optional[str]]]
]

# Parser messages that mean the markup itself is broken (as opposed to the
# document simply being empty).  Expat and sgmllib wording both appear here.
_MALFORMED_SIGNATURES = (
    "not well-formed",
    "invalid token",
    "undefined entity",
    "no element found",
    "unclosed token",
    "junk after document element",
    "declaration not at start",
    "xml or text declaration not at start",
)

_UNRECOVERABLE_SIGNATURES = (
    "getaddrinfo",
    "name or service not known",
    "nodename nor servname",
    "certificate",
    "connection refused",
)

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_BARE_AMP_RE = re.compile(
    r"&(?!(?:[a-zA-Z][a-zA-Z0-9]{1,7}|#[0-9]{1,7}|#x[0-9a-fA-F]{1,6});)"
)
_XML_PROLOG_RE = re.compile(r"^\s*<\?xml[^>]*>\s*")


async def _get_async(
    url: str, session: aiohttp.ClientSession, timeout: float = 20
) -> Tuple[bytes, Optional[str]]:
    """GET ``url`` once and return the raw body with the declared charset.

    Raises :class:`FeedHTTPError` on any non-200 status; transport errors
    (timeouts, DNS, TLS) propagate unchanged so the caller can classify them.
    """
    async with session.get(
        url,
        headers=BROWSER_HEADERS,
        timeout=aiohttp.ClientTimeout(total=timeout),
        allow_redirects=True,
    ) as resp:
        if resp.status != 200:
            raise FeedHTTPError(resp.status, url)
        body = await resp.read()
        return body, resp.charset


def clean_xml(text: str) -> str:
    """Best-effort repair of a broken feed document.

    Strips control characters, escapes ampersands that do not start an
    entity and drops the XML prolog (a BOM or whitespace in front of it is a
    common cause of "declaration not at start").  Raises
    :class:`MalformedFeedError` when what remains cannot be markup.

    >>> clean_xml('<?xml version="1.0"?>\\n<rss>AT&T\\x01</rss>')
    '<rss>AT&amp;T</rss>'
    """
    cleaned = _CONTROL_CHARS_RE.sub("", text or "")
    cleaned = _BARE_AMP_RE.sub("&amp;", cleaned)
    cleaned = _XML_PROLOG_RE.sub("", cleaned.lstrip("\ufeff"))
    cleaned = cleaned.strip()
    if not cleaned.startswith("<"):
        raise MalformedFeedError("document does not start with markup after cleanup")
    return cleaned


def is_malformed(parsed: Any) -> bool:
    """True when feedparser found no entries because the markup is broken."""
    if not getattr(parsed, "bozo", False) or getattr(parsed, "entries", None):
        return False
    exc = getattr(parsed, "bozo_exception", None)
    if exc is None:
        return False
    if type(exc).__name__ == "SAXParseException":
        return True
    msg = str(exc).lower()
    return any(sig in msg for sig in _MALFORMED_SIGNATURES)


def is_unrecoverable(exc: BaseException) -> bool:
    """Failures that retrying within the same run cannot fix."""
    if isinstance(exc, FeedFetchError):
        return exc.unrecoverable
    if isinstance(exc, (aiohttp.ClientSSLError, ssl.SSLError)):
        return True
    if isinstance(exc, aiohttp.ClientConnectorError):
        if isinstance(exc.os_error, (socket.gaierror, ConnectionRefusedError)):
            return True
    if isinstance(exc, (socket.gaierror, ConnectionRefusedError)):
        return True
    msg = str(exc).lower()
    return any(sig in msg for sig in _UNRECOVERABLE_SIGNATURES)


def failure_kind(exc: BaseException) -> str:
    """Short label for logs and :class:`AggregationError.failures`."""
    if isinstance(exc, FeedHTTPError):
        return f"http_{exc.status}"
    if isinstance(exc, MalformedFeedError):
        return "malformed"
    if isinstance(exc, EmptyFeedError):
        return "empty"
    # asyncio.TimeoutError is an OSError on 3.11+, so check it first
    if isinstance(exc, asyncio.TimeoutError):
        return "timeout"
    if isinstance(exc, (aiohttp.ClientError, OSError)):
        return "network"
    return "error"


def _decode(body: bytes, charset: Optional[str]) -> str:
    try:
        return body.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


def parse_feed(body: bytes, charset: Optional[str] = None) -> List[RawFeedItem]:
    """Parse a downloaded document into feed entries.

    The bytes are handed to feedparser first.  If that yields nothing and the
    parser complains about the markup, the same bytes are cleaned with
    :func:`clean_xml` and parsed once more; no second download happens.
    """
    parsed = feedparser.parse(body)
    if not parsed.entries and is_malformed(parsed):
        log.info(
            "feed_malformed_recovering err=%s",
            str(getattr(parsed, "bozo_exception", ""))[:120],
        )
        parsed = feedparser.parse(clean_xml(_decode(body, charset)))
        if not parsed.entries:
            raise MalformedFeedError(
                "recovery failed: %s" % getattr(parsed, "bozo_exception", "no entries")
            )
        return list(parsed.entries)
    if not parsed.entries:
        if getattr(parsed, "bozo", False):
            raise MalformedFeedError(str(getattr(parsed, "bozo_exception", "")))
        raise EmptyFeedError("feed contained no items")
    return list(parsed.entries)


@dataclass
class FetchResult:
    source: str
    entries: List[RawFeedItem] = field(default_factory=list)
    failure: Optional[str] = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.failure is None and not self.skipped


class FeedFetcher:
    """Download and parse single feeds with retries and a circuit breaker.

    ``fetch`` never raises: every failure ends up as an empty list, a log
    line and one tracker update.  ``http_get`` and ``sleep`` are injectable
    so the retry logic can be exercised without a network.
    """

    def __init__(
        self,
        tracker: Optional[FailureTracker] = None,
        *,
        settings: Optional[Settings] = None,
        timeout: Optional[float] = None,
        attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        http_get: Optional[HttpGet] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        s = settings or get_settings()
        self.tracker = tracker or FailureTracker.from_settings(s)
        self.timeout = s.fetch_timeout_secs if timeout is None else timeout
        self.attempts = max(1, s.fetch_attempts if attempts is None else attempts)
        self.retry_delay = s.retry_delay_secs if retry_delay is None else retry_delay
        self.concurrency = s.batch_size
        self._http_get: HttpGet = http_get or _get_async
        self._sleep = sleep or asyncio.sleep

    def open_session(self) -> aiohttp.ClientSession:
        """Session shared by one aggregation run; must be called inside a loop."""
        return aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=self.concurrency)
        )

    async def _attempt(
        self, source: FeedSource, session: aiohttp.ClientSession
    ) -> List[RawFeedItem]:
        body, charset = await self._http_get(source.url, session, self.timeout)
        return parse_feed(body, charset)

    async def fetch_result(
        self, source: FeedSource, session: aiohttp.ClientSession, max_items: int = 10
    ) -> FetchResult:
        if self.tracker.should_skip(source.name):
            log.info("feed_skipped_circuit_open source=%s", source.name)
            return FetchResult(source=source.name, skipped=True)

        last_exc: Optional[BaseException] = None
        for attempt in range(1, self.attempts + 1):
            try:
                entries = await self._attempt(source, session)
            except Exception as exc:
                last_exc = exc
                if is_unrecoverable(exc):
                    log.warning(
                        "feed_unrecoverable source=%s kind=%s err=%s",
                        source.name,
                        failure_kind(exc),
                        str(exc)[:200],
                    )
                    break
                log.info(
                    "feed_fetch_failed source=%s attempt=%d kind=%s err=%s",
                    source.name,
                    attempt,
                    failure_kind(exc),
                    str(exc)[:200] or exc.__class__.__name__,
                )
                if attempt < self.attempts:
                    await self._sleep(self.retry_delay * attempt)
                continue
            self.tracker.record_success(source.name)
            items = entries[: max(0, int(max_items))]
            log.debug(
                "feed_fetched source=%s entries=%d kept=%d",
                source.name,
                len(entries),
                len(items),
            )
            return FetchResult(source=source.name, entries=items)

        self.tracker.record_failure(source.name)
        kind = failure_kind(last_exc) if last_exc is not None else "error"
        return FetchResult(source=source.name, failure=kind)

    async def fetch(
        self, source: FeedSource, session: aiohttp.ClientSession, max_items: int = 10
    ) -> List[RawFeedItem]:
        """Return up to ``max_items`` raw entries, or ``[]`` on any failure."""
        result = await self.fetch_result(source, session, max_items)
        return result.entries
