import asyncio
import logging
from typing import Any, Dict, Optional

import rollbar
import tomli

from .constants import RECONCILE_DELAY_S, REINJECT_DELAY_S, load_config_file
from .data.folders import FolderStore
from .data.models import ViewMode
from .data.storage import JsonFileStorage, KeyValueStorage
from .dom import ChangeFeed, DomAdapter
from .drag import DragReconciler
from .types import AsyncHook

logger = logging.getLogger(__name__)


def _read_config() -> Dict[str, Any]:
    try:
        return load_config_file()
    except (OSError, tomli.TOMLDecodeError) as e:
        logger.warning(f"Failed to read config file, using defaults: {e}")
        return {}


class Controller:
    store: FolderStore
    reconciler: Optional[DragReconciler]
    _storage: KeyValueStorage
    _feed: ChangeFeed
    _dom: Optional[DomAdapter]
    _watch_task: Optional[asyncio.Task]
    _view: ViewMode
    _on_folders_changed: Optional[AsyncHook]

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        dom: Optional[DomAdapter] = None,
        *,
        feed: Optional[ChangeFeed] = None,
        account: Optional[str] = None,
        on_folders_changed: Optional[AsyncHook] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        config = config if config is not None else _read_config()

        self._storage = storage if storage is not None else JsonFileStorage()
        self._feed = feed if feed is not None else ChangeFeed()
        self._dom = dom
        self._watch_task = None
        self._view = ViewMode.List
        self._on_folders_changed = on_folders_changed

        self.store = FolderStore(
            self._storage,
            account,
            serialize_writes=bool(config.get("serialize_writes", True)),
        )
        # Without a page to reconcile against we only serve the store
        self.reconciler = (
            DragReconciler(
                self.store,
                dom,
                self._feed,
                on_folders_changed=on_folders_changed,
                reconcile_delay=float(config.get("reconcile_delay", RECONCILE_DELAY_S)),
                reinject_delay=float(config.get("reinject_delay", REINJECT_DELAY_S)),
            )
            if dom is not None
            else None
        )

    @property
    def feed(self) -> ChangeFeed:
        return self._feed

    @property
    def account(self) -> Optional[str]:
        return self.store.account

    @property
    def view(self) -> ViewMode:
        return self._view

    @property
    def watching(self) -> bool:
        return self._watch_task is not None and not self._watch_task.done()

    async def start(self):
        self._view = await self.store.get_view_preference()
        if self.reconciler is None:
            return

        await self.reconciler.reconcile()
        if not self.watching:
            self._watch_task = asyncio.get_event_loop().create_task(
                self._watch_loop()
            )

    async def stop(self):
        if self.reconciler is not None:
            self.reconciler.cancel_pending()
        if not self.watching:
            return
        self._watch_task.cancel()
        try:
            await self._watch_task
        except asyncio.CancelledError:
            pass
        self._watch_task = None

    async def _watch_loop(self):
        while True:
            try:
                # Only returns if the subscription was closed under us
                await self.reconciler.watch()
            except Exception:
                rollbar.report_exc_info()
                logger.exception("Error while watching for page changes")
            await asyncio.sleep(1)

    async def set_account(self, account: Optional[str]) -> bool:
        if not self.store.set_account(account):
            return False

        logger.info("Account changed, refreshing folders")
        if self.reconciler is not None:
            await self.reconciler.reconcile()
        # Folder elements rendered for the previous account are stale
        if self._on_folders_changed is not None:
            await self._on_folders_changed()
        return True

    async def set_view(self, view: ViewMode):
        if view == self._view:
            return
        self._view = view
        await self.store.save_view_preference(view)
