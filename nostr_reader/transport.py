"""
Interface to the broadcast transport library.

The client never speaks the relay wire protocol or performs signing itself;
both are delegated to an implementation of :class:`BroadcastTransport`
supplied by the host application.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

from nostr_reader.models.event import Event, Filter


@dataclass(frozen=True)
class PublishResult:
    """Outcome of publishing one event to one relay."""

    relay: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BroadcastTransport(ABC):
    """Per-relay operations the client relies on."""

    @abstractmethod
    async def connect(self, relay: str) -> None:
        """
        Open (or reuse) a connection to a relay.

        Raises:
            Exception: If the relay cannot be reached
        """

    @abstractmethod
    def query(self, relay: str, query: Filter) -> AsyncIterator[Event]:
        """
        Stream the events a relay returns for ``query``.

        ``query.to_dict()`` gives the filter in relay wire shape.

        The iterator ends when the relay signals it has sent all stored
        events. It may yield nothing.
        """

    @abstractmethod
    async def publish(self, relay: str, event: Event) -> None:
        """
        Broadcast a signed event to a relay.

        Raises:
            Exception: Carrying the relay's rejection message
        """

    @abstractmethod
    def sign(self, event: Event, private_key: str) -> Event:
        """
        Compute the id and signature of ``event``.

        Raises:
            InvalidKeyError: If the private key is malformed
        """

    @abstractmethod
    def derive_public_key(self, private_key: str) -> str:
        """Return the hex public key for a hex private key."""

    @abstractmethod
    def decode_secret_key(self, secret: str) -> str:
        """
        Decode a bech32 ``nsec`` secret into hex.

        Raises:
            InvalidKeyError: If the secret cannot be decoded
        """

    @abstractmethod
    def encode_permalink(self, event_id: str, relays: List[str], author: str) -> str:
        """
        Encode a shareable event reference with relay hints.

        Raises:
            ValueError: If ``event_id`` is not a well-formed content hash
        """

    async def close(self) -> None:
        """Release relay connections."""
        return None
