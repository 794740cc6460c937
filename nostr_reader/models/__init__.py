"""Relay records and the view models projected from them."""

from nostr_reader.models.event import KIND_COMMENT, KIND_TEXT_NOTE, Event, Filter
from nostr_reader.models.views import Comment, Comments, Post, Posts

__all__ = [
    "KIND_COMMENT",
    "KIND_TEXT_NOTE",
    "Event",
    "Filter",
    "Comment",
    "Comments",
    "Post",
    "Posts",
]
