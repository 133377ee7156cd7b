from __future__ import annotations

import abc
import asyncio
import dataclasses
import enum
import re
from typing import AsyncIterator, Callable, List, Optional, Set

from .types import OptionalAwaitable

# Host element ids look like "project-<id>-title", "project-<id>-emoji", ...
_HOST_ELEMENT_ID_PATTERN = re.compile(
    r"^project-(?P<id>.+?)(?:-title|-emoji|-sharing-status)?$"
)

DRAGGING_CLASS = "nlm-notebook-dragging"
DRAG_OVER_CLASS = "drag-over"


class DragEventType(str, enum.Enum):
    DragStart = "dragstart"
    DragEnd = "dragend"
    DragEnter = "dragenter"
    DragOver = "dragover"
    DragLeave = "dragleave"
    Drop = "drop"


@dataclasses.dataclass
class DragEvent:
    type: DragEventType
    # Set by handlers that accept the drag, mirrors preventDefault()
    default_prevented: bool = False
    data: Optional[str] = None

    def prevent_default(self):
        self.default_prevented = True


EventListener = Callable[[DragEvent], OptionalAwaitable]


@dataclasses.dataclass(frozen=True)
class NotebookAttributes:
    """Raw visual attributes of a notebook element, as the host renders them."""

    title: Optional[str] = None
    emoji: Optional[str] = None
    subtitle_parts: List[str] = dataclasses.field(default_factory=list)
    background_color: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class SubtreeChange:
    """One batch of host DOM mutations."""

    notebooks_added: int = 0
    folders_added: int = 0

    @property
    def relevant(self) -> bool:
        return self.notebooks_added > 0 or self.folders_added > 0


def notebook_id_from_element_id(element_id: Optional[str]) -> Optional[str]:
    if not element_id:
        return None
    match = _HOST_ELEMENT_ID_PATTERN.match(element_id)
    return match.group("id") if match else None


class Element(abc.ABC):
    """
    The slice of a host DOM element the reconciler needs. Markers live on the
    element itself (``dataset`` in a browser) so they disappear with it.
    """

    @abc.abstractmethod
    def get_marker(self, name: str) -> Optional[str]:
        ...

    @abc.abstractmethod
    def set_marker(self, name: str, value: str):
        ...

    @abc.abstractmethod
    def add_event_listener(self, event_type: DragEventType, listener: EventListener):
        ...

    @abc.abstractmethod
    def add_class(self, name: str):
        ...

    @abc.abstractmethod
    def remove_class(self, name: str):
        ...

    @abc.abstractmethod
    def has_class(self, name: str) -> bool:
        ...


class NotebookElement(Element):
    @property
    @abc.abstractmethod
    def notebook_id(self) -> Optional[str]:
        ...

    @abc.abstractmethod
    def read_attributes(self) -> NotebookAttributes:
        ...

    @abc.abstractmethod
    def set_draggable(self, draggable: bool):
        ...

    @abc.abstractmethod
    def set_hidden(self, hidden: bool):
        ...


class FolderElement(Element):
    @property
    @abc.abstractmethod
    def folder_id(self) -> Optional[str]:
        ...


class DomAdapter(abc.ABC):
    """Queries and actions against the host page."""

    @abc.abstractmethod
    def notebook_elements(self) -> List[NotebookElement]:
        ...

    @abc.abstractmethod
    def folder_elements(self) -> List[FolderElement]:
        ...

    @abc.abstractmethod
    def section_mount_exists(self) -> bool:
        ...

    @abc.abstractmethod
    def section_exists(self) -> bool:
        ...

    @abc.abstractmethod
    async def inject_section(self):
        ...


class ChangeSubscription:
    """
    Async iterator over the changes published after it was opened. Closing it
    ends iteration; the feed can always be subscribed to again.
    """

    _feed: ChangeFeed
    _queue: asyncio.Queue
    _closed: bool

    def __init__(self, feed: ChangeFeed):
        self._feed = feed
        self._queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _put(self, change: Optional[SubtreeChange]):
        self._queue.put_nowait(change)

    def close(self):
        if self._closed:
            return
        self._closed = True
        self._feed._unsubscribe(self)
        # Wakes up a consumer blocked in __anext__
        self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[SubtreeChange]:
        return self

    async def __anext__(self) -> SubtreeChange:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        change = await self._queue.get()
        if change is None:
            raise StopAsyncIteration
        return change

    async def __aenter__(self) -> ChangeSubscription:
        return self

    async def __aexit__(self, *exc_info):
        self.close()


class ChangeFeed:
    """Fan-out of host subtree change notifications to any number of subscribers."""

    _subscriptions: Set[ChangeSubscription]

    def __init__(self):
        self._subscriptions = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self) -> ChangeSubscription:
        subscription = ChangeSubscription(self)
        self._subscriptions.add(subscription)
        return subscription

    def _unsubscribe(self, subscription: ChangeSubscription):
        self._subscriptions.discard(subscription)

    def publish(self, change: SubtreeChange):
        for subscription in list(self._subscriptions):
            subscription._put(change)
