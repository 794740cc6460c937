"""
Pydantic models for the records exchanged with relays.

Events come from untrusted relays, so they are validated on the way in and
anything that does not fit the record shape is rejected by the fetcher.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

# Kinds used by the client
KIND_TEXT_NOTE = 1
KIND_COMMENT = 1111


class Event(BaseModel):
    """
    A signed, content-addressed record broadcast to relays.

    ``created_at`` is supplied by the author and is neither monotonic nor
    unique, so it is only used for ordering with ``id`` as a tie-breaker.
    """

    id: str = ""
    pubkey: str = ""
    created_at: int = 0
    kind: int = KIND_TEXT_NOTE
    tags: List[List[str]] = Field(default_factory=list)
    content: str = ""
    sig: str = ""

    model_config = {"frozen": True}

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> Any:
        # Relays occasionally send numeric tag values
        if isinstance(value, list):
            return [[str(part) for part in tag] for tag in value if isinstance(tag, list)]
        return value

    def first_tag(self, *names: str) -> Optional[List[str]]:
        """Return the first tag named one of ``names`` that carries a value."""
        for tag in self.tags:
            if len(tag) >= 2 and tag[0] in names:
                return tag
        return None

    def tag_values(self, name: str) -> List[str]:
        return [tag[1] for tag in self.tags if len(tag) >= 2 and tag[0] == name]


class Filter(BaseModel):
    """Query descriptor sent to every relay."""

    ids: Optional[List[str]] = None
    kinds: Optional[List[int]] = None
    authors: Optional[List[str]] = None
    tags: Dict[str, List[str]] = Field(default_factory=dict)
    until: Optional[int] = None
    limit: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Render the filter in relay wire shape (``#<letter>`` keys for tags)."""
        data: Dict[str, Any] = {}
        if self.ids is not None:
            data["ids"] = list(self.ids)
        if self.kinds is not None:
            data["kinds"] = list(self.kinds)
        if self.authors is not None:
            data["authors"] = list(self.authors)
        for name, values in self.tags.items():
            data[f"#{name}"] = list(values)
        if self.until is not None:
            data["until"] = self.until
        if self.limit is not None:
            data["limit"] = self.limit
        return data

    def matches(self, event: Event) -> bool:
        """
        Check an event against this filter locally.

        Relays are not trusted to apply filters, so the fetcher re-checks
        every event it receives. ``limit`` is not a per-event property and is
        ignored.
        """
        if self.ids is not None and event.id not in self.ids:
            return False
        if self.kinds is not None and event.kind not in self.kinds:
            return False
        if self.authors is not None and event.pubkey not in self.authors:
            return False
        if self.until is not None and event.created_at > self.until:
            return False
        for name, values in self.tags.items():
            if not set(event.tag_values(name)) & set(values):
                return False
        return True
