"""Text rewrites applied to the HTML summaries published in the incident feed.

The publisher's markup is rewritten with targeted substitutions instead of a
parse and re-serialise round trip, so that everything the rules do not touch
is passed through byte for byte. Each rule is a pure function and treats a
``None`` or empty input as an empty string.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from babel.dates import format_datetime

from . import config

TIMESTAMP_FORMAT = "d MMM, HH:mm"
REPORTED_AT_FORMAT = "medium"

_RELATIVE_HREF = re.compile(r'href="\?(?!http)')
_UTC_TIMESTAMP = re.compile(r"(<strong>)(\d{4}-\d{2}-\d{2} \d{2}:\d{2})(</strong>)")
_UTC_LABEL = re.compile(
    r"\s*(?:<(?P<tag>[a-z][a-z0-9]*)\b[^>]*>\s*\(\s*utc\s+timezone\s*\)\s*</(?P=tag)\s*>"
    r"|\(\s*utc\s+timezone\s*\))",
    re.IGNORECASE,
)
_TITLE_TIMEZONE = re.compile(r"\s*\(\s*utc(?:\s+timezone)?\s*\)\s*$", re.IGNORECASE)


def repair_relative_links(
    html: Optional[str], base_url: Optional[str], fallback_url: Optional[str] = None
) -> str:
    """Prefix ``href="?query"`` attributes with the entry's own URL."""

    if not html:
        return ""
    base = base_url or fallback_url
    if not base:
        return html
    return _RELATIVE_HREF.sub(lambda _match: f'href="{base}?', html)


def localize_timestamps(
    html: Optional[str],
    display_timezone: str = config.DEFAULT_DISPLAY_TIMEZONE,
    locale: str = config.DEFAULT_DISPLAY_LOCALE,
) -> str:
    """Render ``<strong>YYYY-MM-DD HH:MM</strong>`` UTC stamps in local time.

    Values that look like a timestamp but are not a valid date are kept as is.
    """

    if not html:
        return ""
    tzinfo = ZoneInfo(display_timezone)

    def _replace(match: re.Match) -> str:
        opening, stamp, closing = match.groups()
        try:
            moment = datetime.strptime(stamp, "%Y-%m-%d %H:%M").replace(tzinfo=timezone.utc)
        except ValueError:
            return match.group(0)
        local = format_datetime(moment, TIMESTAMP_FORMAT, tzinfo=tzinfo, locale=locale)
        return f"{opening}{local}{closing}"

    return _UTC_TIMESTAMP.sub(_replace, html)


def strip_utc_label(html: Optional[str]) -> str:
    """Remove the ``(UTC timezone)`` caption that follows converted stamps."""

    if not html:
        return ""
    return _UTC_LABEL.sub("", html)


def normalize_summary(
    html: Optional[str], base_url: Optional[str], settings: config.Settings
) -> str:
    """Apply link repair, timestamp localisation and label stripping in order."""

    repaired = repair_relative_links(html, base_url, settings.dashboard_url)
    localized = localize_timestamps(
        repaired, settings.display_timezone, settings.display_locale
    )
    return strip_utc_label(localized)


def strip_title_timezone(title: Optional[str]) -> str:
    if not title:
        return ""
    return _TITLE_TIMEZONE.sub("", title)


def format_reported_at(
    raw: Optional[str],
    display_timezone: str = config.DEFAULT_DISPLAY_TIMEZONE,
    locale: str = config.DEFAULT_DISPLAY_LOCALE,
) -> str:
    """Render the feed's ``updated`` value in the display timezone.

    Anything :meth:`datetime.fromisoformat` cannot read is returned unchanged.
    """

    if not raw:
        return ""
    value = raw.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        moment = datetime.fromisoformat(value)
    except ValueError:
        return raw
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return format_datetime(
        moment, REPORTED_AT_FORMAT, tzinfo=ZoneInfo(display_timezone), locale=locale
    )
