"""
Rebuild a reply tree from the flat set of events fetched for a thread.

Each reply names its immediate parent through tags. Parents may be missing
from the fetched set (never stored on the queried relays) or, in malformed
input, form cycles; both cases fall back to placing the reply directly under
the thread root so nothing fetched is ever dropped.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union

from nostr_reader.models.event import Event
from nostr_reader.utils import is_valid_event_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventRef:
    """Pointer to another event by id (``e`` tag)."""

    id: str

    def reference(self) -> str:
        return self.id


@dataclass(frozen=True)
class EntityRef:
    """Pointer to an addressable entity, ``<kind>:<pubkey>:<d-tag>`` (``a`` tag)."""

    address: str

    def reference(self) -> str:
        return self.address


@dataclass(frozen=True)
class GenericRef:
    """Pointer to anything else, such as an external id (``i`` tag)."""

    value: str

    def reference(self) -> str:
        return self.value


ParentRef = Union[EventRef, EntityRef, GenericRef]


@dataclass(frozen=True)
class ThreadNode:
    event: Event
    depth: int


def _ref_from_tag(tag: Sequence[str]) -> Optional[ParentRef]:
    if len(tag) < 2 or not tag[1]:
        return None
    name, value = tag[0], tag[1]
    if name == "e":
        return EventRef(value) if is_valid_event_id(value) else None
    if name == "a":
        return EntityRef(value)
    if name == "i":
        return GenericRef(value)
    return None


def immediate_parent(tags: Sequence[Sequence[str]]) -> Optional[ParentRef]:
    """
    Find the reference to the event a reply answers.

    An ``e`` tag marked ``reply`` is authoritative. Otherwise the first
    usable lower-case ``e``, ``a`` or ``i`` tag is taken; upper-case tags
    point at the thread root and are never the immediate parent.

    Args:
        tags: Event tags in their original order

    Returns:
        The parent reference, or None when the event names no parent
    """
    for tag in tags:
        if len(tag) >= 4 and tag[0] == "e" and tag[3] == "reply":
            ref = _ref_from_tag(tag)
            if ref is not None:
                return ref

    for tag in tags:
        if tag and tag[0] == "e" and len(tag) >= 4 and tag[3] == "root":
            # Root markers only describe the thread, not the parent
            continue
        ref = _ref_from_tag(tag)
        if ref is not None:
            return ref

    return None


def _order_key(event: Event) -> Tuple[int, str]:
    return event.created_at, event.id


def resolve_parents(root_id: str, events: Mapping[str, Event]) -> Dict[str, str]:
    """
    Map every candidate id to the id it should hang under.

    Orphans and members of parent cycles are attached to ``root_id``.
    """
    parents: Dict[str, str] = {}
    for event_id, event in events.items():
        ref = immediate_parent(event.tags)
        parent_id = ref.reference() if ref is not None else root_id

        if parent_id != root_id and parent_id not in events:
            parent_id = root_id

        parents[event_id] = parent_id

    # Walk each ancestry chain; a node seen twice on one chain closes a cycle
    anchored: Set[str] = {root_id}
    for event_id in sorted(events, key=lambda key: _order_key(events[key])):
        path: List[str] = []
        on_path: Set[str] = set()
        current = event_id
        while current not in anchored:
            if current in on_path:
                logger.debug(f"Breaking reply cycle at {current}, attaching it to the root")
                parents[current] = root_id
                break
            path.append(current)
            on_path.add(current)
            current = parents[current]
        anchored.update(path)

    return parents


def build_thread(root_id: str, events: Mapping[str, Event]) -> List[ThreadNode]:
    """
    Order replies for display as an indented tree.

    Args:
        root_id: Id of the post anchoring the thread
        events: Candidate replies keyed by id (the root itself excluded)

    Returns:
        Preorder traversal where replies to the root have depth 0 and
        siblings are sorted oldest first (ties broken by id)
    """
    if not events:
        return []

    parents = resolve_parents(root_id, events)

    children: Dict[str, List[Event]] = {}
    for event_id, parent_id in parents.items():
        children.setdefault(parent_id, []).append(events[event_id])
    for siblings in children.values():
        siblings.sort(key=_order_key)

    ordered: List[ThreadNode] = []
    visited: Set[str] = {root_id}
    # Stack holds (event, depth); push siblings reversed so the oldest pops first
    stack: List[Tuple[Event, int]] = [(child, 0) for child in reversed(children.get(root_id, []))]

    while stack:
        event, depth = stack.pop()
        if event.id in visited:
            continue
        visited.add(event.id)
        ordered.append(ThreadNode(event=event, depth=depth))
        for child in reversed(children.get(event.id, [])):
            stack.append((child, depth + 1))

    return ordered
