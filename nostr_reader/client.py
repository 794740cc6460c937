"""Nostr community client: feeds, threads and publishing over a set of relays."""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence, Tuple

from nostr_reader.collector.cache import ExpiringCache, utc_now
from nostr_reader.collector.fetcher import RelayFetcher
from nostr_reader.collector.thread import build_thread
from nostr_reader.config import DEFAULT_LIMIT, DEFAULT_TIMEOUT_SECONDS, Config
from nostr_reader.errors import (
    EmptyContentError,
    InvalidCommunityFormatError,
    InvalidKeyError,
    InvalidThreadTargetError,
    NoRelaysConfiguredError,
    NoSigningKeyError,
    NotFoundError,
    PublishRejectedError,
)
from nostr_reader.models.event import KIND_COMMENT, KIND_TEXT_NOTE, Event, Filter
from nostr_reader.models.mapping import event_to_comment, event_to_post
from nostr_reader.models.views import Comment, Comments, Post, Posts
from nostr_reader.transport import BroadcastTransport
from nostr_reader.utils import (
    friendly_time,
    is_hex64,
    is_valid_event_id,
    normalize_community,
    validate_topic,
)

logger = logging.getLogger(__name__)

THREAD_KINDS = [KIND_TEXT_NOTE, KIND_COMMENT]


def parse_cursor(cursor: str) -> Optional[int]:
    """Return the timestamp encoded in a feed cursor, or None if it is not one."""
    if not cursor:
        return None
    try:
        return int(cursor)
    except ValueError:
        return None


class NostrClient:
    """
    Read/write client for Nostr communities.

    Reads fan out to every configured relay through a :class:`RelayFetcher`
    and are cached with a fixed freshness deadline: feeds for
    ``cache.feed_ttl_sec`` and threads for the shorter ``cache.thread_ttl_sec``.
    Any successful publish clears both caches.
    """

    def __init__(
        self,
        config: Config,
        transport: BroadcastTransport,
        prometheus_exporter=None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the client.

        Args:
            config: Application configuration
            transport: Broadcast transport used for relays and signing
            prometheus_exporter: Optional Prometheus exporter for metrics
            now: Clock returning timezone-aware datetimes (defaults to UTC now)

        Raises:
            NoRelaysConfiguredError: If no relays are configured
            InvalidKeyError: If the configured secret key cannot be used
        """
        if not config.nostr.relays:
            raise NoRelaysConfiguredError()

        self.transport = transport
        self.relays: List[str] = list(config.nostr.relays)
        self.prometheus_exporter = prometheus_exporter
        self._now = now or utc_now

        timeout = config.nostr.timeout_seconds
        self.timeout = timeout if timeout > 0 else DEFAULT_TIMEOUT_SECONDS
        self.limit = config.nostr.limit if config.nostr.limit > 0 else DEFAULT_LIMIT
        self.featured: List[str] = list(config.communities.featured)
        self.feed_ttl = timedelta(seconds=config.cache.feed_ttl_sec)
        self.thread_ttl = timedelta(seconds=config.cache.thread_ttl_sec)

        self.private_key, self.public_key = self._parse_private_key(config.nostr.secret_key)

        self.fetcher = RelayFetcher(transport, self.relays, self.timeout, prometheus_exporter)
        self.post_cache: ExpiringCache[Posts] = ExpiringCache(now=self._now)
        self.thread_cache: ExpiringCache[Comments] = ExpiringCache(now=self._now)

    async def connect(self) -> List[str]:
        """Connect to the configured relays and return the reachable ones."""
        return await self.fetcher.connect()

    async def close(self) -> None:
        logger.info("Closing relay connections")
        await self.transport.close()

    async def __aenter__(self) -> "NostrClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # Reads

    async def get_featured_posts(self, cursor: str = "") -> Posts:
        """Home feed across the featured communities."""
        return await self._fetch_posts(self.featured, cursor, is_home=True)

    async def get_community_posts(self, community: str, cursor: str = "") -> Posts:
        return await self._fetch_posts([community], cursor, is_home=False)

    async def get_thread(self, post: Post) -> Comments:
        """
        Fetch and order the replies to a post.

        Replies are looked up through both the lower-case and the upper-case
        ``e`` tag because clients disagree on which one marks the thread root.

        Args:
            post: Post anchoring the thread

        Returns:
            The post's fields with its replies in indented display order
        """
        root_id = post.thread_id
        cached, found = self.thread_cache.get(root_id)
        self._record_cache_lookup("threads", found)
        if found:
            return cached

        queries = [
            Filter(kinds=THREAD_KINDS, tags={"e": [root_id]}, limit=self.limit),
            Filter(kinds=THREAD_KINDS, tags={"E": [root_id]}, limit=self.limit),
        ]
        events = await self.fetcher.fetch_many(queries, operation_type="thread")
        replies = {event_id: event for event_id, event in events.items() if event_id != root_id}

        now = self._now()
        comments = [
            event_to_comment(node.event, node.depth, now)
            for node in build_thread(root_id, replies)
        ]

        result = Comments(
            post_id=post.id,
            post_title=post.title,
            post_author=post.author,
            community=post.community,
            post_text=post.content,
            post_url=post.url,
            post_timestamp=friendly_time(post.created_at, now),
            comments=comments,
            expiry=now + self.thread_ttl,
        )
        self.thread_cache.set(root_id, result, result.expiry)
        logger.debug(f"Built thread {root_id} with {len(comments)} comments")
        return result

    async def get_post_by_id(self, event_id: str) -> Post:
        """
        Look up a single post.

        Raises:
            NotFoundError: If no relay returns the event
        """
        events = await self.fetcher.fetch(Filter(ids=[event_id], limit=1), operation_type="lookup")
        event = events.get(event_id)
        if event is None:
            raise NotFoundError()

        return self._to_post(event)

    def encode_permalink(self, post: Post) -> str:
        """
        Encode a shareable reference to a post with the relays we read from.

        Raises:
            InvalidThreadTargetError: If the post id is not a content hash
        """
        if not is_valid_event_id(post.id):
            raise InvalidThreadTargetError()
        return self.transport.encode_permalink(post.id, list(self.relays), post.pubkey)

    # Writes

    async def publish_post(self, community: str, content: str) -> Post:
        """
        Publish a new post to a topic community.

        Args:
            community: Topic community, e.g. ``t:python``
            content: Post text

        Returns:
            The published post

        Raises:
            EmptyContentError: If the content is blank
            NoSigningKeyError: If no secret key is configured
            InvalidCommunityFormatError: If the community is not a topic
            PublishRejectedError: If no relay accepted the event
        """
        text = self._require_content(content)
        self._require_key()

        normalized = normalize_community(community)
        if not validate_topic(normalized):
            raise InvalidCommunityFormatError()

        event = Event(kind=KIND_COMMENT, tags=[["I", normalized]], content=text)
        signed = await self._sign_and_publish(event)
        return self._to_post(signed)

    async def publish_reply(self, post: Post, content: str, parent: Optional[Comment] = None) -> Comment:
        """
        Reply to a post, or to one of its comments when ``parent`` is given.

        Both the lower-case and upper-case root tags are written so every
        relay convention finds the reply when fetching the thread.

        Raises:
            EmptyContentError: If the content is blank
            NoSigningKeyError: If no secret key is configured
            InvalidThreadTargetError: If the post or parent id is not a content hash
            PublishRejectedError: If no relay accepted the event
        """
        text = self._require_content(content)
        self._require_key()

        root_id = post.thread_id
        if not is_valid_event_id(root_id):
            raise InvalidThreadTargetError()

        if parent is None:
            tags = [["e", root_id], ["E", root_id]]
            depth = 0
        else:
            if not is_valid_event_id(parent.id):
                raise InvalidThreadTargetError()
            tags = [
                ["e", root_id, "", "root"],
                ["e", parent.id, "", "reply"],
                ["E", root_id],
            ]
            depth = parent.depth + 1

        if validate_topic(post.community):
            tags.append(["I", normalize_community(post.community)])

        event = Event(kind=KIND_TEXT_NOTE, tags=tags, content=text)
        signed = await self._sign_and_publish(event)
        return event_to_comment(signed, depth, self._now())

    def invalidate_caches(self) -> None:
        """Drop every cached feed and thread."""
        self.post_cache.clear()
        self.thread_cache.clear()

    # Internals

    async def _fetch_posts(self, communities: Sequence[str], cursor: str, is_home: bool) -> Posts:
        cache_key = self._posts_cache_key(communities, cursor, is_home)
        cached, found = self.post_cache.get(cache_key)
        self._record_cache_lookup("posts", found)
        if found:
            return cached

        until = parse_cursor(cursor)
        if until is not None:
            # The cursor post was already shown; continue strictly older
            until -= 1

        query = Filter(
            kinds=[KIND_COMMENT],
            tags={"I": list(communities)} if communities else {},
            until=until,
            limit=self.limit,
        )
        events = await self.fetcher.fetch(query, operation_type="feed")

        # Relays each return up to limit events; the page is the newest limit of the merge
        page = sorted(events.values(), key=lambda event: (-event.created_at, event.id))[: self.limit]

        now = self._now()
        posts = [self._to_post(event, now) for event in page]
        after = str(page[-1].created_at) if page else ""

        description = "Open community posts"
        community_label = "Communities"
        if not is_home and len(communities) == 1:
            community_label = communities[0]
            description = f"Posts tagged {communities[0]}"
        elif is_home:
            description = "Featured communities timeline"

        result = Posts(
            description=description,
            community=community_label,
            is_home=is_home,
            posts=posts,
            after=after,
            expiry=now + self.feed_ttl,
        )
        self.post_cache.set(cache_key, result, result.expiry)
        logger.debug(f"Fetched {len(posts)} posts for {cache_key}")
        return result

    def _posts_cache_key(self, communities: Sequence[str], cursor: str, is_home: bool) -> str:
        prefix = "home" if is_home else "community"
        return f"{prefix}:{','.join(sorted(communities))}:{cursor}:{self.limit}"

    def _to_post(self, event: Event, now: Optional[datetime] = None) -> Post:
        return event_to_post(event, self.relays, self.transport.encode_permalink, now or self._now())

    async def _sign_and_publish(self, event: Event) -> Event:
        unsigned = event.model_copy(
            update={"created_at": int(self._now().timestamp()), "pubkey": self.public_key}
        )
        signed = self.transport.sign(unsigned, self.private_key)

        results = await self.fetcher.publish(signed)
        accepted = [result.relay for result in results if result.ok]
        if not accepted:
            raise PublishRejectedError([f"{result.relay}: {result.error}" for result in results])

        logger.info(f"Published event {signed.id} to {len(accepted)}/{len(results)} relays")
        self.invalidate_caches()
        return signed

    def _parse_private_key(self, secret: str) -> Tuple[str, str]:
        secret = (secret or "").strip()
        if not secret:
            return "", ""

        if secret.startswith("nsec"):
            secret = self.transport.decode_secret_key(secret)

        if not is_hex64(secret):
            raise InvalidKeyError(f"private key must be 64 hex chars or nsec, got {len(secret)} chars")

        return secret, self.transport.derive_public_key(secret)

    def _require_key(self) -> None:
        if not self.private_key:
            raise NoSigningKeyError()

    @staticmethod
    def _require_content(content: str) -> str:
        text = (content or "").strip()
        if not text:
            raise EmptyContentError()
        return text

    def _record_cache_lookup(self, cache: str, hit: bool) -> None:
        if self.prometheus_exporter:
            self.prometheus_exporter.record_cache_lookup(cache, hit)
