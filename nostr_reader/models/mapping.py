"""Mapping functions to convert relay events to view models."""

import logging
from datetime import datetime
from typing import Callable, Optional, Sequence

from nostr_reader.models.event import Event
from nostr_reader.models.views import Comment, Post
from nostr_reader.utils import (
    first_line,
    friendly_time,
    from_timestamp,
    normalize_community,
    shorten_pubkey,
)

logger = logging.getLogger(__name__)

PERMALINK_BASE = "https://nostr.eu"
UNTITLED = "(untitled)"
UNTAGGED = "untagged"

PermalinkEncoder = Callable[[str, Sequence[str], str], str]


def extract_title(event: Event) -> str:
    """Use the subject tag when it has text, else the first line of the content."""
    title = event.content
    subject = event.first_tag("subject")
    if subject is not None and subject[1].strip():
        title = subject[1]

    title = first_line(title)
    return title or UNTITLED


def extract_community(event: Event) -> str:
    tag = event.first_tag("I", "i")
    if tag is None or not tag[1].strip():
        return UNTAGGED
    return normalize_community(tag[1])


def build_permalink(
    event: Event,
    relays: Sequence[str],
    encoder: Optional[PermalinkEncoder] = None,
) -> str:
    """
    Build a web link for an event, preferring an encoded reference with relay hints.

    Args:
        event: Event to link to
        relays: Relay hints to embed in the reference
        encoder: Transport permalink encoder; the raw id is used without one
            or when encoding fails

    Returns:
        Absolute URL
    """
    if encoder is not None:
        try:
            return f"{PERMALINK_BASE}/{encoder(event.id, list(relays), event.pubkey)}"
        except ValueError as e:
            logger.debug(f"Could not encode permalink for {event.id}: {e}")
    return f"{PERMALINK_BASE}/{event.id}"


def event_to_post(
    event: Event,
    relays: Sequence[str] = (),
    encoder: Optional[PermalinkEncoder] = None,
    now: Optional[datetime] = None,
) -> Post:
    """
    Convert a relay event to a Post.

    Args:
        event: Top-level community event
        relays: Relay hints for the permalink
        encoder: Transport permalink encoder
        now: Reference instant for the relative date

    Returns:
        A Post whose thread id is its own id
    """
    created = from_timestamp(event.created_at)
    return Post(
        id=event.id,
        title=extract_title(event),
        content=event.content,
        author=shorten_pubkey(event.pubkey),
        pubkey=event.pubkey,
        community=extract_community(event),
        friendly_date=friendly_time(created, now),
        created_at=created,
        url=build_permalink(event, relays, encoder),
        thread_id=event.id,
    )


def event_to_comment(event: Event, depth: int = 0, now: Optional[datetime] = None) -> Comment:
    return Comment(
        id=event.id,
        author=shorten_pubkey(event.pubkey),
        text=event.content,
        timestamp=friendly_time(from_timestamp(event.created_at), now),
        depth=depth,
    )
