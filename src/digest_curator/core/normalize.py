"""Normalization of raw feed entries into posts."""

import html
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from bs4 import BeautifulSoup
from dateutil import parser as date_parser
from dateutil import tz

from digest_curator.core.entities import FeedEntry, Post

_RELATIVE_RE = re.compile(
    r"^(\d+|an?|one)\s+(second|minute|hour|day|week)s?\s+ago$", re.IGNORECASE
)
_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")

# US zone abbreviations that feeds use in place of numeric offsets
_TZINFOS = {
    "EST": tz.tzoffset("EST", -5 * 3600),
    "EDT": tz.tzoffset("EDT", -4 * 3600),
    "CST": tz.tzoffset("CST", -6 * 3600),
    "CDT": tz.tzoffset("CDT", -5 * 3600),
    "MST": tz.tzoffset("MST", -7 * 3600),
    "MDT": tz.tzoffset("MDT", -6 * 3600),
    "PST": tz.tzoffset("PST", -8 * 3600),
    "PDT": tz.tzoffset("PDT", -7 * 3600),
}

_UNITS = {
    "second": timedelta(seconds=1),
    "minute": timedelta(minutes=1),
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
}


def clean_text(value: Optional[str]) -> str:
    """Strip markup, decode HTML entities and collapse whitespace."""
    if not value:
        return ""
    soup = BeautifulSoup(value, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    # Feeds sometimes double-encode (&amp;amp;)
    text = html.unescape(soup.get_text(separator=" "))
    return re.sub(r"\s+", " ", text).strip()


def resolve_date(value: Optional[str], now: datetime) -> Optional[datetime]:
    """Parse absolute (RFC 822, ISO 8601, ...) or relative ("3 hours ago") dates as UTC."""
    if not value:
        return None
    text = value.strip()
    lowered = text.lower()

    if lowered in ("now", "just now", "today"):
        return now
    if lowered == "yesterday":
        return now - timedelta(days=1)

    match = _RELATIVE_RE.match(text)
    if match:
        amount, unit = match.groups()
        count = 1 if amount.lower() in ("a", "an", "one") else int(amount)
        return now - count * _UNITS[unit.lower()]

    try:
        parsed = date_parser.parse(text, tzinfos=_TZINFOS)
    except (ValueError, OverflowError):
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def best_image(candidates: list[str], html_content: str = "") -> Optional[str]:
    """Pick the first usable image reference.

    Explicit media candidates come first; the first ``<img>`` in the
    content is the fallback.
    """
    for candidate in candidates:
        if candidate and candidate.strip().startswith(("http://", "https://")):
            return candidate.strip()

    if html_content:
        img = BeautifulSoup(html_content, "html.parser").find("img", src=True)
        if img:
            return img["src"]
    return None


def looks_like_image(url: str) -> bool:
    return url.lower().split("?")[0].endswith(_IMAGE_EXTENSIONS)


def normalize_entry(
    entry: FeedEntry,
    feed_name: str,
    cycle_id: str,
    now: datetime,
    sequence: int = 0,
) -> Post:
    """Turn a raw feed entry into a Post."""
    description = clean_text(entry.description) or clean_text(entry.content)[:500]
    return Post(
        id=uuid.uuid4().hex,
        cycle_id=cycle_id,
        external_id=entry.external_id or entry.link,
        feed_name=feed_name,
        title=clean_text(entry.title),
        description=description,
        content=clean_text(entry.content),
        ingested_at=now,
        sequence=sequence,
        author=clean_text(entry.author) or None,
        source_url=entry.link or None,
        image_url=best_image(entry.image_candidates, entry.content or entry.description),
        published_at=resolve_date(entry.published, now),
    )
