"""Client for reading and writing Nostr community discussions across many relays."""

from nostr_reader.client import NostrClient
from nostr_reader.config import Config
from nostr_reader.errors import (
    EmptyContentError,
    InvalidCommunityFormatError,
    InvalidKeyError,
    InvalidThreadTargetError,
    NoRelaysConfiguredError,
    NoSigningKeyError,
    NostrClientError,
    NotFoundError,
    PublishRejectedError,
)
from nostr_reader.transport import BroadcastTransport, PublishResult

__all__ = [
    "NostrClient",
    "Config",
    "BroadcastTransport",
    "PublishResult",
    "NostrClientError",
    "EmptyContentError",
    "InvalidCommunityFormatError",
    "InvalidKeyError",
    "InvalidThreadTargetError",
    "NoRelaysConfiguredError",
    "NoSigningKeyError",
    "NotFoundError",
    "PublishRejectedError",
]
