"""Formatting and validation helpers shared by the client and its projections."""

import re
from datetime import datetime, timezone
from typing import Optional

TOPIC_PATTERN = re.compile(r"^t:[a-z0-9][a-z0-9:_-]*$")
HEX64_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


def normalize_community(community: str) -> str:
    """Lower-case and strip a community identifier."""
    return (community or "").strip().lower()


def validate_topic(community: str) -> bool:
    """
    Check that a community is a topic-style external id (``t:<name>``).

    Only topic communities can be published to for now.
    """
    return bool(TOPIC_PATTERN.match(normalize_community(community)))


def is_hex64(value: str) -> bool:
    return bool(value) and bool(HEX64_PATTERN.match(value))


def is_valid_event_id(event_id: str) -> bool:
    """Return True for a 64 character hex content hash."""
    return is_hex64(event_id)


def shorten_pubkey(pubkey: str) -> str:
    if len(pubkey) <= 10:
        return pubkey
    return f"{pubkey[:6]}...{pubkey[-4:]}"


def first_line(text: str) -> str:
    text = text.strip()
    index = text.find("\n")
    if index >= 0:
        return text[:index].strip()
    return text


def from_timestamp(ts: int) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def friendly_time(moment: Optional[datetime], now: Optional[datetime] = None) -> str:
    """
    Render a datetime relative to ``now``.

    Args:
        moment: Timezone-aware datetime to render (None renders as "")
        now: Reference instant, defaults to the current UTC time

    Returns:
        "just now", "5m ago", "3h ago", "2d ago" or an ISO date for older values
    """
    if moment is None:
        return ""

    now = now or datetime.now(timezone.utc)
    seconds = (now - moment).total_seconds()

    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{int(seconds // 60)}m ago"
    if seconds < 24 * 3600:
        return f"{int(seconds // 3600)}h ago"
    if seconds < 7 * 24 * 3600:
        return f"{int(seconds // (24 * 3600))}d ago"
    return moment.strftime("%Y-%m-%d")
