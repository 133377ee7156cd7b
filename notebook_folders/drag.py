from __future__ import annotations

import asyncio
import enum
import logging
import weakref
from typing import List, Optional

import rollbar

from .constants import (
    DEFAULT_NOTEBOOK_BACKGROUND,
    DEFAULT_NOTEBOOK_EMOJI,
    DEFAULT_NOTEBOOK_TITLE,
    RECONCILE_DELAY_S,
    REINJECT_DELAY_S,
)
from .data.colors import normalize_color
from .data.folders import FolderStore
from .data.models import NotebookRef
from .dom import (
    DRAG_OVER_CLASS,
    DRAGGING_CLASS,
    ChangeFeed,
    DomAdapter,
    DragEvent,
    DragEventType,
    FolderElement,
    NotebookElement,
    SubtreeChange,
)
from .types import AsyncHook
from .util import Debouncer

DRAG_INITIALIZED_MARKER = "dragInitialized"
DROP_INITIALIZED_MARKER = "dropInitialized"

logger = logging.getLogger(__name__)


class DragStateTransitionError(Exception):
    from_state: DragState
    to_state: DragState

    def __init__(self, from_state: DragState, to_state: DragState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid drag state transition from '{from_state.name}' to '{to_state.name}'"
        )


class DragState(enum.Enum):
    """
    Valid state transitions:

    idle → dragging → idle

    Drag-end is unconditional and lands in idle from either state.
    """

    IDLE = enum.auto()
    DRAGGING = enum.auto()


class DragSession:
    """The one active pointer drag. The snapshot is taken at pick-up and never re-read."""

    _state: DragState
    _element: Optional[NotebookElement]
    _snapshot: Optional[NotebookRef]

    def __init__(self):
        self._state = DragState.IDLE
        self._element = None
        self._snapshot = None

    @property
    def state(self) -> DragState:
        return self._state

    @property
    def element(self) -> Optional[NotebookElement]:
        return self._element

    @property
    def snapshot(self) -> Optional[NotebookRef]:
        return self._snapshot

    def start(self, element: NotebookElement, snapshot: NotebookRef):
        if self._state != DragState.IDLE:
            raise DragStateTransitionError(self._state, DragState.DRAGGING)
        self._element = element
        self._snapshot = snapshot
        self._state = DragState.DRAGGING

    def end(self):
        self._element = None
        self._snapshot = None
        self._state = DragState.IDLE


class DropTarget:
    """Drag-over bookkeeping for one folder element."""

    _element: FolderElement
    _depth: int

    def __init__(self, element: FolderElement):
        self._element = element
        self._depth = 0

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def highlighted(self) -> bool:
        return self._depth > 0

    # dragenter/dragleave fire for every descendant the pointer crosses, so the
    # highlight follows a counter rather than the latest event
    def enter(self):
        self._depth += 1
        self._element.add_class(DRAG_OVER_CLASS)

    def leave(self):
        self._depth = max(self._depth - 1, 0)
        if self._depth == 0:
            self._element.remove_class(DRAG_OVER_CLASS)

    def reset(self):
        self._depth = 0
        self._element.remove_class(DRAG_OVER_CLASS)


def snapshot_notebook(element: NotebookElement) -> Optional[NotebookRef]:
    notebook_id = element.notebook_id
    if not notebook_id:
        return None

    attributes = element.read_attributes()
    parts = [part.strip() for part in attributes.subtitle_parts]

    return NotebookRef(
        id=notebook_id,
        title=(attributes.title or "").strip() or DEFAULT_NOTEBOOK_TITLE,
        emoji=(attributes.emoji or "").strip() or DEFAULT_NOTEBOOK_EMOJI,
        color=normalize_color(
            attributes.background_color or DEFAULT_NOTEBOOK_BACKGROUND
        ),
        date=parts[0] if len(parts) > 0 else "",
        sources=parts[1] if len(parts) > 1 else "",
    )


class DragReconciler:
    """
    Keeps notebook and folder elements in step with the folder store while the
    host page re-renders underneath us.
    """

    _store: FolderStore
    _dom: DomAdapter
    _feed: ChangeFeed
    _session: DragSession
    _drop_targets: weakref.WeakKeyDictionary
    _reconcile_debouncer: Debouncer
    _reinject_debouncer: Debouncer
    _on_folders_changed: Optional[AsyncHook]

    def __init__(
        self,
        store: FolderStore,
        dom: DomAdapter,
        feed: ChangeFeed,
        *,
        on_folders_changed: Optional[AsyncHook] = None,
        reconcile_delay: float = RECONCILE_DELAY_S,
        reinject_delay: float = REINJECT_DELAY_S,
    ):
        self._store = store
        self._dom = dom
        self._feed = feed
        self._session = DragSession()
        self._drop_targets = weakref.WeakKeyDictionary()
        self._reconcile_debouncer = Debouncer(self.reconcile, reconcile_delay)
        self._reinject_debouncer = Debouncer(self._reinject_section, reinject_delay)
        self._on_folders_changed = on_folders_changed

    @property
    def session(self) -> DragSession:
        return self._session

    @property
    def reconcile_debouncer(self) -> Debouncer:
        return self._reconcile_debouncer

    @property
    def reinject_debouncer(self) -> Debouncer:
        return self._reinject_debouncer

    def drop_target_for(self, element: FolderElement) -> Optional[DropTarget]:
        return self._drop_targets.get(element)

    # Drag source

    def _attach_drag_source(self, element: NotebookElement) -> bool:
        if element.get_marker(DRAG_INITIALIZED_MARKER):
            return False
        element.set_marker(DRAG_INITIALIZED_MARKER, "true")
        element.set_draggable(True)
        element.add_event_listener(
            DragEventType.DragStart, lambda event: self.handle_drag_start(element, event)
        )
        element.add_event_listener(
            DragEventType.DragEnd, lambda event: self.handle_drag_end(element, event)
        )
        return True

    def handle_drag_start(self, element: NotebookElement, event: DragEvent):
        snapshot = snapshot_notebook(element)
        if snapshot is None:
            logger.warning("Ignoring drag of a notebook element without an id")
            return

        if self._session.state == DragState.DRAGGING:
            logger.warning("Drag started while another was active, ending the stale one")
            self._end_session()

        self._session.start(element, snapshot)
        element.add_class(DRAGGING_CLASS)
        event.data = snapshot.id
        logger.debug(f"Picked up notebook '{snapshot.id}'")

    def handle_drag_end(self, element: NotebookElement, event: DragEvent):
        element.remove_class(DRAGGING_CLASS)
        self._end_session()

    def _end_session(self):
        if self._session.element is not None:
            self._session.element.remove_class(DRAGGING_CLASS)
        self._session.end()
        for folder_element in self._dom.folder_elements():
            target = self._drop_targets.get(folder_element)
            if target is not None:
                target.reset()
            else:
                folder_element.remove_class(DRAG_OVER_CLASS)

    # Drop targets

    def _attach_drop_target(self, element: FolderElement) -> bool:
        if element.get_marker(DROP_INITIALIZED_MARKER):
            return False
        element.set_marker(DROP_INITIALIZED_MARKER, "true")
        target = DropTarget(element)
        self._drop_targets[element] = target

        element.add_event_listener(
            DragEventType.DragEnter, lambda event: self.handle_drag_enter(target, event)
        )
        element.add_event_listener(DragEventType.DragOver, self.handle_drag_over)
        element.add_event_listener(
            DragEventType.DragLeave, lambda event: self.handle_drag_leave(target, event)
        )
        element.add_event_listener(
            DragEventType.Drop, lambda event: self.handle_drop(element, target, event)
        )
        return True

    @staticmethod
    def handle_drag_enter(target: DropTarget, event: DragEvent):
        event.prevent_default()
        target.enter()

    @staticmethod
    def handle_drag_over(event: DragEvent):
        # Accepting dragover is what makes the element a valid drop target
        event.prevent_default()

    @staticmethod
    def handle_drag_leave(target: DropTarget, event: DragEvent):
        target.leave()

    async def handle_drop(
        self, element: FolderElement, target: DropTarget, event: DragEvent
    ):
        event.prevent_default()
        target.reset()

        # dragend can fire while we're awaiting the store, so hold on to what we
        # need from the session up front
        snapshot = self._session.snapshot
        source = self._session.element
        if snapshot is None:
            return

        folder_id = element.folder_id
        if not folder_id:
            logger.warning("Dropped on a folder element without an id")
            return

        folder = await self._store.add_notebook(folder_id, snapshot)
        if folder is None:
            logger.info(f"Drop target folder '{folder_id}' no longer exists")
            return

        logger.info(f"Filed notebook '{snapshot.id}' in folder '{folder_id}'")
        if source is not None:
            source.set_hidden(True)
        if self._on_folders_changed is not None:
            await self._on_folders_changed()

    # Reconciliation

    def attach_handlers(self) -> int:
        attached = 0
        for element in self._dom.notebook_elements():
            attached += self._attach_drag_source(element)
        for element in self._dom.folder_elements():
            attached += self._attach_drop_target(element)
        return attached

    async def refresh_visibility(self):
        filed = await self._store.all_filed_notebook_ids()
        for element in self._dom.notebook_elements():
            notebook_id = element.notebook_id
            element.set_hidden(bool(notebook_id) and notebook_id in filed)

    async def reconcile(self):
        attached = self.attach_handlers()
        if attached:
            logger.debug(f"Attached handlers to {attached} new element(s)")
        await self.refresh_visibility()

    async def _reinject_section(self):
        # The host may have settled differently while we waited
        if not self._dom.section_mount_exists() or self._dom.section_exists():
            return
        logger.info("Folders section went missing, re-injecting")
        await self._dom.inject_section()
        if self._on_folders_changed is not None:
            await self._on_folders_changed()

    def handle_change(self, change: SubtreeChange):
        if change.relevant:
            self._reconcile_debouncer.schedule()

        if self._dom.section_mount_exists() and not self._dom.section_exists():
            self._reinject_debouncer.schedule()

    async def watch(self):
        """Consume subtree changes until cancelled."""
        async with self._feed.subscribe() as changes:
            async for change in changes:
                try:
                    self.handle_change(change)
                except Exception:
                    rollbar.report_exc_info()
                    logger.exception("Error while handling subtree change")

    async def settle(self):
        """Wait for any deferred reconciliation or re-injection to finish."""
        await asyncio.gather(
            self._reconcile_debouncer.flush(), self._reinject_debouncer.flush()
        )

    def cancel_pending(self) -> List[str]:
        cancelled = []
        if self._reconcile_debouncer.cancel():
            cancelled.append("reconcile")
        if self._reinject_debouncer.cancel():
            cancelled.append("reinject")
        return cancelled
