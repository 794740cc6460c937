"""Shared fixtures: an in-memory broadcast transport and a controllable clock."""

import asyncio
import hashlib
import json
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set, Tuple

import pytest

from nostr_reader.client import NostrClient
from nostr_reader.config import Config
from nostr_reader.errors import InvalidKeyError
from nostr_reader.models.event import KIND_COMMENT, Event, Filter
from nostr_reader.transport import BroadcastTransport
from nostr_reader.utils import is_valid_event_id

BASE_TS = 1_700_000_000
RELAYS = ["wss://relay.one", "wss://relay.two", "wss://relay.three"]
SECRET_KEY = "ab" * 32
AUTHOR = "c0ffee" + "00" * 27 + "beef"


def hex_id(n: int) -> str:
    return f"{n:064x}"


def make_event(
    n: int,
    created_at: int = BASE_TS,
    tags: Optional[List[List[str]]] = None,
    kind: int = KIND_COMMENT,
    content: str = "",
    pubkey: str = AUTHOR,
) -> Event:
    return Event(
        id=hex_id(n),
        pubkey=pubkey,
        created_at=created_at,
        kind=kind,
        tags=tags or [],
        content=content or f"event {n}",
        sig="sig",
    )


class FakeClock:
    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class FakeTransport(BroadcastTransport):
    """Serves canned events per relay and records everything it is asked to do."""

    def __init__(self):
        self.events: Dict[str, List[Event]] = {}
        self.raw_events: Dict[str, List[dict]] = {}
        self.failing_connect: Set[str] = set()
        self.failing_query: Set[str] = set()
        self.stalling: Set[str] = set()
        self.publish_errors: Dict[str, str] = {}
        self.stalling_publish: Set[str] = set()
        self.connected: List[str] = []
        self.queries: List[Tuple[str, Filter]] = []
        self.published: List[Tuple[str, Event]] = []
        self.closed = False

    def add(self, relay: str, *events: Event) -> None:
        self.events.setdefault(relay, []).extend(events)

    def add_everywhere(self, *events: Event) -> None:
        for relay in RELAYS:
            self.add(relay, *events)

    async def connect(self, relay: str) -> None:
        if relay in self.failing_connect:
            raise ConnectionError(f"cannot reach {relay}")
        self.connected.append(relay)

    async def query(self, relay: str, query: Filter):
        self.queries.append((relay, query))
        if relay in self.failing_query:
            raise ConnectionError("connection reset")

        # Relays answer newest first, so limit keeps the most recent events
        stored = sorted(self.events.get(relay, []), key=lambda event: -event.created_at)
        sent = 0
        for event in stored:
            if query.limit is not None and sent >= query.limit:
                break
            if query.matches(event):
                sent += 1
                yield event
        for raw in self.raw_events.get(relay, []):
            yield raw

        if relay in self.stalling:
            await asyncio.sleep(3600)

    async def publish(self, relay: str, event: Event) -> None:
        if relay in self.stalling_publish:
            await asyncio.sleep(3600)
        if relay in self.publish_errors:
            raise RuntimeError(self.publish_errors[relay])
        self.published.append((relay, event))

    def sign(self, event: Event, private_key: str) -> Event:
        if not private_key:
            raise InvalidKeyError()
        body = json.dumps(
            [0, event.pubkey, event.created_at, event.kind, event.tags, event.content],
            separators=(",", ":"),
        )
        event_id = hashlib.sha256(body.encode("utf-8")).hexdigest()
        return event.model_copy(update={"id": event_id, "sig": "f" * 128})

    def derive_public_key(self, private_key: str) -> str:
        return hashlib.sha256(private_key.encode("utf-8")).hexdigest()

    def decode_secret_key(self, secret: str) -> str:
        if secret == "nsec1valid":
            return SECRET_KEY
        raise InvalidKeyError("could not decode nsec key payload")

    def encode_permalink(self, event_id: str, relays: List[str], author: str) -> str:
        if not is_valid_event_id(event_id):
            raise ValueError("invalid event id")
        return f"nevent1{event_id[:12]}"

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime.fromtimestamp(BASE_TS + 3600, tz=timezone.utc))


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def config() -> Config:
    config = Config()
    config.nostr.relays = list(RELAYS)
    config.nostr.secret_key = SECRET_KEY
    config.nostr.timeout_seconds = 1
    config.nostr.limit = 50
    config.communities.featured = ["t:nostr", "t:python"]
    return config


@pytest.fixture
def client(config, transport, clock) -> NostrClient:
    return NostrClient(config, transport, now=clock)
