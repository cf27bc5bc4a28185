"""Utility functions for text, URL and date handling."""

from __future__ import annotations

import html
import re
from datetime import date, datetime, time, timezone
from email.utils import parsedate_to_datetime
from typing import Optional
from urllib.parse import urlencode, urlparse
from zoneinfo import ZoneInfo

from bs4 import BeautifulSoup

_WS_RE = re.compile(r"\s+")


def extract_source_from_url(url: str) -> str:
    """Extract a human friendly source name from a URL.

    Removes common subdomains and TLDs and returns a title-cased domain
    name. Returns an empty string if the URL cannot be parsed.
    """
    if not url:
        return ""

    try:
        domain = urlparse(url).netloc.lower()
    except ValueError:
        return ""
    if not domain:
        return ""

    domain = re.sub(r"^(www\.|m\.|mobile\.)", "", domain)
    domain = re.sub(r"\.(com|org|net|edu|gov|us|mn\.us)$", "", domain)
    main_domain = domain.split(".")[0]
    return main_domain.replace("-", " ").replace("_", " ").title()


def clean_text(value: str) -> str:
    """Decode entities, drop markup and collapse whitespace."""
    if not value:
        return ""
    text = html.unescape(value)
    if "<" in text and ">" in text:
        text = BeautifulSoup(text, "html.parser").get_text(" ")
        # Double-encoded feeds leave entities behind after the first pass
        text = html.unescape(text)
    return _WS_RE.sub(" ", text).strip()


def count_words(text: str) -> int:
    return len(text.split()) if text else 0


def parse_datetime(value: str) -> Optional[datetime]:
    """Parse RFC 822 or ISO 8601 timestamps into aware datetimes.

    Args:
        value: Date string in one of the common feed formats

    Returns:
        Timezone-aware datetime (UTC assumed when naive) or None
    """
    if not value:
        return None
    value = value.strip()
    dt = None
    try:
        dt = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def weekday_name(day: date) -> str:
    return day.strftime("%A")


def format_long_date(day: date) -> str:
    """``Friday, October 17, 2025``"""
    return f"{day.strftime('%A')}, {day.strftime('%B')} {day.day}, {day.year}"


def wrap_tracking_url(
    url: str,
    section: str,
    campaign_date: date,
    app_url: str,
    campaign_id: Optional[str] = None,
) -> str:
    """Wrap an outbound link with the click tracking redirect.

    ``{$email}`` and ``{$subscriber_id}`` are merge tags filled in by the
    email provider at send time, so they are left unencoded.
    """
    if not url or url == "#":
        return "#"
    params = {"url": url, "section": section, "date": campaign_date.isoformat()}
    if campaign_id:
        params["campaign_id"] = campaign_id
    query = urlencode(params)
    return (
        f"{app_url.rstrip('/')}/api/link-tracking/click?{query}"
        "&email={$email}&subscriber_id={$subscriber_id}"
    )


def local_now(tz_name: str = "America/Chicago") -> datetime:
    """Current wall-clock time in the newsletter timezone (naive)."""
    return datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None)


def parse_clock(value: str) -> time:
    """``"21:00"`` -> ``time(21, 0)``"""
    hours, minutes = value.strip().split(":")
    return time(int(hours), int(minutes))
