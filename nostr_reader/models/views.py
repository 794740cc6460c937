"""View models handed to the presentation layer."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


def _indent(text: str, depth: int) -> str:
    return "  " * depth + text


@dataclass(frozen=True)
class Post:
    """A top-level community post; every post is the root of its own thread."""

    id: str
    title: str
    content: str
    author: str
    pubkey: str
    community: str
    friendly_date: str
    created_at: datetime
    url: str
    thread_id: str

    @property
    def description(self) -> str:
        prefix = f"{self.community}  " if self.community.strip() else ""
        return f"{prefix}posted {self.friendly_date} by {self.author}"


@dataclass(frozen=True)
class Posts:
    """A page of posts, newest first, with the cursor for the next page."""

    description: str
    community: str
    is_home: bool
    posts: List[Post] = field(default_factory=list)
    after: str = ""
    expiry: Optional[datetime] = None


@dataclass(frozen=True)
class Comment:
    id: str
    author: str
    text: str
    timestamp: str
    depth: int = 0

    @property
    def indented_text(self) -> str:
        return _indent(self.text, self.depth)

    @property
    def indented_description(self) -> str:
        return _indent(f"by {self.author}  {self.timestamp}", self.depth)


@dataclass(frozen=True)
class Comments:
    """A post together with its reply tree flattened in display order."""

    post_id: str
    post_title: str
    post_author: str
    community: str
    post_text: str
    post_url: str
    post_timestamp: str
    comments: List[Comment] = field(default_factory=list)
    expiry: Optional[datetime] = None
