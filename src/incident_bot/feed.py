"""Utilities for retrieving and parsing the incident Atom feed."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Union

import feedparser
import requests

from . import config

LOGGER = logging.getLogger(__name__)

ALTERNATE_REL = "alternate"
REQUIRED_FIELDS = ("id", "title", "summary", "updated")

# Bozo reasons that do not mean the XML itself is broken.
_BENIGN_BOZO = (feedparser.CharacterEncodingOverride, feedparser.NonXMLContentType)


class FeedFetchError(RuntimeError):
    """Raised when the feed cannot be downloaded."""


class FeedParseError(RuntimeError):
    """Raised when the feed document or one of its entries is malformed."""


@dataclass(frozen=True, slots=True)
class FeedEntry:
    """Structured representation of a single incident entry."""

    id: str
    title: str
    link: str
    summary_html: str
    updated: str


def fetch_feed(feed_url: str, timeout: int = config.DEFAULT_REQUEST_TIMEOUT) -> bytes:
    """Download the raw feed document."""

    try:
        response = requests.get(feed_url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise FeedFetchError(f"Failed to download feed {feed_url}: {exc}") from exc
    return response.content


def select_link(links: Iterable[Mapping[str, Any]], default_link: str) -> str:
    """Return the ``alternate`` link of an entry, or ``default_link`` if none."""

    for link in links:
        rel = link.get("rel") or ALTERNATE_REL
        href = link.get("href")
        if rel == ALTERNATE_REL and href:
            return href
    return default_link


def parse_entries(document: Union[bytes, str], default_link: str) -> List[FeedEntry]:
    """Parse a feed document into entries ordered oldest first.

    Publishers list entries newest first; the order is inverted so that
    notifications go out in the order the incidents happened.
    """

    # Summaries are kept as published; relative hrefs are repaired per entry later on.
    parsed = feedparser.parse(document, resolve_relative_uris=False, sanitize_html=False)
    if parsed.bozo and not isinstance(parsed.bozo_exception, _BENIGN_BOZO):
        raise FeedParseError(f"Malformed feed document: {parsed.bozo_exception}")

    entries: List[FeedEntry] = []
    for position, entry in enumerate(parsed.entries):
        missing = [name for name in REQUIRED_FIELDS if name not in entry]
        if missing:
            label = entry.get("id") or entry.get("title") or "<unidentified>"
            raise FeedParseError(
                f"Entry #{position} ({label}) is missing required element(s): "
                + ", ".join(missing)
            )
        entries.append(
            FeedEntry(
                id=entry.id,
                title=entry.title,
                link=select_link(entry.get("links", []), default_link),
                summary_html=entry.summary,
                updated=entry.updated,
            )
        )

    entries.reverse()
    return entries


def load_entries(settings: config.Settings) -> List[FeedEntry]:
    """Fetch the configured feed and return its entries oldest first."""

    document = fetch_feed(settings.feed_url, timeout=settings.request_timeout)
    entries = parse_entries(document, settings.dashboard_url)
    LOGGER.info("Fetched %d entries from %s", len(entries), settings.feed_url)
    return entries
