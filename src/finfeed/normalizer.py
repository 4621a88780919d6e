"""Turn raw feed entries into candidate :class:`~finfeed.models.Article` records.

Feed schemas disagree on field names (``summary`` vs ``description`` vs
``content:encoded``, ``published`` vs ``updated`` vs ``dc:date``).  Each
logical field is read through an ordered table of candidate keys; the first
non-empty value wins.  The article returned here is not yet enriched:
tickers, sentiment, category and relevance are filled in by
:mod:`finfeed.enrichment`.
"""

from __future__ import annotations

import calendar
import hashlib
import html
import re
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional, Tuple

from bs4 import BeautifulSoup
from dateutil import parser as dtparse

from .logging_utils import get_logger
from .models import Article, FeedSource, RawFeedItem

log = get_logger(__name__)

MAX_TITLE_CHARS = 200
MAX_SUMMARY_CHARS = 300

TITLE_FIELDS: Tuple[str, ...] = ("title", "dc_title", "title_detail")
SUMMARY_FIELDS: Tuple[str, ...] = (
    "content_snippet",
    "content",
    "summary",
    "description",
    "summary_detail",
    "subtitle",
)
LINK_FIELDS: Tuple[str, ...] = ("link", "guid", "id", "links")
DATE_FIELDS: Tuple[str, ...] = (
    "published",
    "pubDate",
    "isoDate",
    "date",
    "dc_date",
    "updated",
    "created",
)
PARSED_DATE_FIELDS: Tuple[str, ...] = (
    "published_parsed",
    "updated_parsed",
    "created_parsed",
)


def _get(raw: RawFeedItem, key: str) -> Any:
    if isinstance(raw, dict) or hasattr(raw, "get"):
        try:
            return raw.get(key)
        except Exception:
            return None
    return getattr(raw, key, None)


def _as_text(value: Any) -> str:
    """Flatten the shapes feedparser uses for text fields into a string.

    ``content`` is a list of ``{"value": ...}`` dicts, ``*_detail`` and
    ``links`` are dicts or lists of dicts.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        for part in value:
            text = _as_text(part)
            if text:
                return text
        return ""
    if hasattr(value, "get"):
        for key in ("value", "href", "url"):
            text = value.get(key)
            if isinstance(text, str) and text.strip():
                return text.strip()
        return ""
    return str(value).strip()


def first_field(raw: RawFeedItem, fields: Iterable[str]) -> str:
    """Return the first non-empty candidate from ``fields``."""
    for key in fields:
        text = _as_text(_get(raw, key))
        if text:
            return text
    return ""


def clean_html_content(text: Optional[str]) -> str:
    """Decode entities, drop tags and collapse whitespace.

    >>> clean_html_content("<p>Breaking: <b>TSLA</b> surges 10%</p>")
    'Breaking: TSLA surges 10%'
    >>> clean_html_content("Apple &amp; Co")
    'Apple & Co'
    """
    if not text:
        return ""
    try:
        decoded = html.unescape(text)
        soup = BeautifulSoup(decoded, "html.parser")
        text_only = soup.get_text(separator=" ")
        return re.sub(r"\s+", " ", text_only).strip()
    except Exception as e:
        log.warning("html_clean_failed err=%s", e.__class__.__name__)
        return re.sub(r"\s+", " ", re.sub(r"<[^>]*>", " ", text)).strip()


def _aware(d: datetime) -> datetime:
    if d.tzinfo is None:
        d = d.replace(tzinfo=timezone.utc)
    return d.astimezone(timezone.utc)


def parse_published(
    raw: RawFeedItem, now: Optional[Callable[[], datetime]] = None
) -> datetime:
    """Publish timestamp of ``raw`` as an aware UTC datetime.

    Tries dateutil on the textual fields, then ISO-8601, then the
    ``*_parsed`` struct feedparser already computed, then "now".  A bad
    date never rejects an item.
    """
    text = first_field(raw, DATE_FIELDS)
    if text:
        try:
            return _aware(dtparse.parse(text))
        except (ValueError, OverflowError, TypeError):
            pass
        try:
            return _aware(datetime.fromisoformat(text.replace("Z", "+00:00")))
        except ValueError:
            log.debug("timestamp_parse_failed dt_str=%s", text[:40])
    for key in PARSED_DATE_FIELDS:
        st = _get(raw, key)
        if st:
            try:
                return datetime.fromtimestamp(calendar.timegm(st), tz=timezone.utc)
            except (TypeError, ValueError, OverflowError):
                continue
    return (now or (lambda: datetime.now(timezone.utc)))()


def clean_title(title: str) -> str:
    """Collapse whitespace, trim non-alphanumeric edges, cap at 200 chars."""
    t = re.sub(r"\s+", " ", title or "").strip()
    t = re.sub(r"^[^A-Za-z0-9]+", "", t)
    t = re.sub(r"[^A-Za-z0-9]+$", "", t)
    return t[:MAX_TITLE_CHARS]


def generate_summary(content: str, title: str = "") -> str:
    """First meaningful sentence of ``content`` with the title removed.

    A sentence is meaningful at 20 characters or more.  Anything longer
    than 300 characters is cut to 297 and ellipsised.
    """
    body = re.sub(r"\s+", " ", content or "").strip()
    if not body:
        return ""
    sentences = [s.strip() for s in re.split(r"[.!?]+", body) if len(s.strip()) >= 20]
    summary = sentences[0] if sentences else body
    if title:
        summary = re.sub(re.escape(title), "", summary, flags=re.IGNORECASE)
        summary = re.sub(r"\s+", " ", summary).strip()
    if len(summary) > MAX_SUMMARY_CHARS:
        summary = summary[: MAX_SUMMARY_CHARS - 3] + "..."
    if not summary:
        summary = body[: MAX_SUMMARY_CHARS - 3] + ("..." if len(body) > 297 else "")
    return summary


def generate_article_id(title: str, link: str, published_at: datetime) -> str:
    """Deterministic 16-hex-char id from (title, link, publish date)."""
    t = re.sub(r"[^0-9a-z]", "", (title or "").lower())[:50]
    no_scheme = re.sub(r"^[a-z][a-z0-9+.-]*://", "", (link or "").lower())
    lnk = re.sub(r"[^0-9a-z]", "", no_scheme)[:30]
    day = _aware(published_at).strftime("%Y-%m-%d")
    raw = f"{t}-{lnk}-{day}"
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:16]


def extract_image_url(raw: RawFeedItem) -> Optional[str]:
    for key in ("media_content", "media_thumbnail"):
        url = _as_text(_get(raw, key))
        if url.startswith("http"):
            return url
    for enc in _get(raw, "enclosures") or ():
        try:
            if str(enc.get("type", "")).startswith("image/") and enc.get("href"):
                return enc.get("href")
        except AttributeError:
            continue
    return None


def normalize_item(
    raw: RawFeedItem,
    source: FeedSource,
    now: Optional[Callable[[], datetime]] = None,
) -> Optional[Article]:
    """Build an un-enriched :class:`Article` or return ``None`` to reject.

    Items without a title, or without any summary/content body, are
    rejected.  The category starts as the feed's default.
    """
    raw_title = clean_html_content(first_field(raw, TITLE_FIELDS))
    body = clean_html_content(first_field(raw, SUMMARY_FIELDS))
    if not raw_title or not body:
        return None

    link = first_field(raw, LINK_FIELDS)
    published_at = parse_published(raw, now=now)
    return Article(
        id=generate_article_id(raw_title, link, published_at),
        title=clean_title(raw_title),
        summary=generate_summary(body, raw_title),
        url=link,
        source=source.name,
        category=source.category,
        published_at=published_at,
        image_url=extract_image_url(raw),
        raw_title=raw_title,
        raw_summary=body,
        source_credibility=source.credibility,
    )
