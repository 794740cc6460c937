"""Exception types raised by the Nostr community client."""

from typing import List, Optional


class NostrClientError(Exception):
    """Base class for every error surfaced to callers of the client."""

    default_message = "nostr client error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NoRelaysConfiguredError(NostrClientError):
    """Raised at construction time when the relay list is empty."""

    default_message = "no relays configured"


class NotFoundError(NostrClientError):
    """Raised when a lookup by event id yields nothing."""

    default_message = "event not found"


class NoSigningKeyError(NostrClientError):
    """Raised when a write is attempted without a configured secret key."""

    default_message = "no nostr private key configured"


class InvalidKeyError(NostrClientError):
    """Raised when a configured secret key cannot be decoded or used."""

    default_message = "invalid nostr private key"


class InvalidCommunityFormatError(NostrClientError):
    default_message = "community must be a topic (t:...) for now"


class InvalidThreadTargetError(NostrClientError):
    default_message = "cannot reply: thread id is not a nostr event id (likely demo data)"


class EmptyContentError(NostrClientError):
    default_message = "content is required"


class PublishRejectedError(NostrClientError):
    """Raised when no relay accepted a published event.

    Attributes:
        errors: One ``"<relay>: <reason>"`` entry per relay that failed
    """

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        if self.errors:
            message = f"publish failed: {'; '.join(self.errors)}"
        else:
            message = "publish failed"
        super().__init__(message)
