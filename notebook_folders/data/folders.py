from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, AsyncIterator, Callable, List, Optional, Set, Union

import rollbar
from pydantic import ValidationError

from ..constants import (
    DEFAULT_FOLDER_COLOR,
    DEFAULT_FOLDER_EMOJI,
    DEFAULT_FOLDER_NAME,
    DEFAULT_NOTEBOOK_BACKGROUND,
    DEFAULT_STORAGE_KEY,
    VIEW_PREFERENCE_KEY,
)
from ..types import JsonDict
from ..util import generate_folder_id, sanitize_account_id
from .colors import is_canonical, normalize_color
from .models import Folder, FolderDraft, FolderUpdate, NotebookRef, ViewMode
from .storage import KeyValueStorage, StorageUnavailableError

logger = logging.getLogger(__name__)


class FolderStore:
    """
    Account-scoped folder collection on top of a :class:`KeyValueStorage`.

    Every operation reads the whole collection for the active account, works on
    a copy and writes the whole collection back. Two overlapping operations
    would therefore race, with the later write silently dropping the earlier
    one's change. With ``serialize_writes`` (the default) mutating operations
    take an internal lock so they run one at a time.

    Storage failures never reach callers: reads come back empty and writes are
    dropped, and both are logged.
    """

    _storage: KeyValueStorage
    _account: Optional[str]
    _serialize_writes: bool
    _write_lock: asyncio.Lock
    _id_factory: Callable[[], str]

    def __init__(
        self,
        storage: KeyValueStorage,
        account: Optional[str] = None,
        *,
        serialize_writes: bool = True,
        id_factory: Callable[[], str] = generate_folder_id,
    ):
        self._storage = storage
        self._account = account or None
        self._serialize_writes = serialize_writes
        self._write_lock = asyncio.Lock()
        self._id_factory = id_factory

    @property
    def account(self) -> Optional[str]:
        return self._account

    @property
    def serialize_writes(self) -> bool:
        return self._serialize_writes

    @property
    def storage_key(self) -> str:
        return self._storage_key_for(self._account)

    def set_account(self, account: Optional[str]) -> bool:
        """Switch the key namespace; returns whether the account changed."""
        account = account or None
        if account == self._account:
            return False
        logger.info(f"Switching folder storage to key '{self._storage_key_for(account)}'")
        self._account = account
        return True

    @staticmethod
    def _storage_key_for(account: Optional[str]) -> str:
        if not account:
            return DEFAULT_STORAGE_KEY
        return f"{DEFAULT_STORAGE_KEY}_{sanitize_account_id(account)}"

    @contextlib.asynccontextmanager
    async def _modifying(self) -> AsyncIterator[None]:
        if not self._serialize_writes:
            yield
            return
        async with self._write_lock:
            yield

    async def _read(self, key: str) -> Optional[Any]:
        if not self._storage.available:
            logger.info(f"Storage unavailable, ignoring read of '{key}'")
            return None

        try:
            return await self._storage.get(key)
        except StorageUnavailableError as e:
            rollbar.report_exc_info()
            logger.error(f"Error reading '{key}' from storage: {e}")
            return None

    async def _write(self, key: str, value: Any):
        if not self._storage.available:
            logger.info(f"Storage unavailable, dropping write of '{key}'")
            return

        try:
            await self._storage.set(key, value)
        except StorageUnavailableError as e:
            rollbar.report_exc_info()
            logger.error(f"Error writing '{key}' to storage: {e}")

    async def _load(self, key: str) -> List[Folder]:
        data = await self._read(key)
        if not data:
            return []

        if not isinstance(data, list):
            logger.warning(f"Ignoring non-list folder record under '{key}'")
            return []

        folders = []
        for item in data:
            try:
                folders.append(Folder.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping malformed folder record under '{key}': {e}")
        return folders

    async def _save(self, key: str, folders: List[Folder]):
        # Always the key the collection was loaded from, the active account can
        # change while a read-modify-write is suspended
        await self._write(
            key,
            [folder.model_dump(mode="json", by_alias=True) for folder in folders],
        )

    @staticmethod
    def _find(folders: List[Folder], folder_id: str) -> Optional[int]:
        return next(
            (index for index, folder in enumerate(folders) if folder.id == folder_id),
            None,
        )

    @staticmethod
    def _canonical_color(color: Optional[str], default: str = DEFAULT_FOLDER_COLOR) -> str:
        if not color:
            return default

        normalized = normalize_color(color)
        if not is_canonical(normalized):
            logger.warning(f"Color '{color}' isn't a recognized color, using '{default}'")
            return default
        return normalized

    def _new_folder_id(self, folders: List[Folder]) -> str:
        existing = {folder.id for folder in folders}
        while True:
            folder_id = self._id_factory()
            if folder_id not in existing:
                return folder_id
            logger.warning(f"Generated folder id '{folder_id}' already exists, retrying")

    async def get_all(self) -> List[Folder]:
        return await self._load(self.storage_key)

    async def get(self, folder_id: str) -> Optional[Folder]:
        folders = await self._load(self.storage_key)
        index = self._find(folders, folder_id)
        return folders[index] if index is not None else None

    async def create(self, draft: Union[FolderDraft, JsonDict, None] = None) -> Folder:
        if not isinstance(draft, FolderDraft):
            draft = FolderDraft.model_validate(draft or {})

        async with self._modifying():
            key = self.storage_key
            folders = await self._load(key)
            name = draft.name.strip() if draft.name else ""
            folder = Folder(
                id=self._new_folder_id(folders),
                name=name or DEFAULT_FOLDER_NAME,
                emoji=(draft.emoji or "").strip() or DEFAULT_FOLDER_EMOJI,
                color=self._canonical_color(draft.color),
            )
            folders.append(folder)
            await self._save(key, folders)

        logger.debug(f"Created folder '{folder.id}'")
        return folder

    async def update(
        self, folder_id: str, fields: Union[FolderUpdate, JsonDict]
    ) -> Optional[Folder]:
        if not isinstance(fields, FolderUpdate):
            fields = FolderUpdate.model_validate(fields)
        changes = fields.model_dump(exclude_unset=True, exclude_none=True)

        if "name" in changes:
            changes["name"] = changes["name"].strip() or DEFAULT_FOLDER_NAME
        if "emoji" in changes:
            changes["emoji"] = changes["emoji"].strip() or DEFAULT_FOLDER_EMOJI
        if "color" in changes:
            changes["color"] = self._canonical_color(changes["color"])

        async with self._modifying():
            key = self.storage_key
            folders = await self._load(key)
            index = self._find(folders, folder_id)
            if index is None:
                return None

            folders[index] = folders[index].model_copy(update=changes)
            await self._save(key, folders)
            return folders[index]

    async def delete(self, folder_id: str):
        async with self._modifying():
            key = self.storage_key
            folders = await self._load(key)
            remaining = [folder for folder in folders if folder.id != folder_id]
            if len(remaining) == len(folders):
                return
            await self._save(key, remaining)

    async def add_notebook(
        self, folder_id: str, notebook: Union[NotebookRef, JsonDict]
    ) -> Optional[Folder]:
        if not isinstance(notebook, NotebookRef):
            notebook = NotebookRef.model_validate(notebook)
        if not is_canonical(notebook.color):
            notebook = notebook.model_copy(
                update={
                    "color": self._canonical_color(
                        notebook.color, normalize_color(DEFAULT_NOTEBOOK_BACKGROUND)
                    )
                }
            )

        async with self._modifying():
            key = self.storage_key
            folders = await self._load(key)
            index = self._find(folders, folder_id)
            if index is None:
                return None

            folder = folders[index]
            if folder.has_notebook(notebook.id):
                return folder

            folders[index] = folder.model_copy(
                update={"notebooks": (*folder.notebooks, notebook)}
            )
            await self._save(key, folders)
            return folders[index]

    async def remove_notebook(
        self, folder_id: str, notebook_id: str
    ) -> Optional[Folder]:
        async with self._modifying():
            key = self.storage_key
            folders = await self._load(key)
            index = self._find(folders, folder_id)
            if index is None:
                return None

            folder = folders[index]
            if not folder.has_notebook(notebook_id):
                return folder

            folders[index] = folder.model_copy(
                update={
                    "notebooks": tuple(
                        notebook
                        for notebook in folder.notebooks
                        if notebook.id != notebook_id
                    )
                }
            )
            await self._save(key, folders)
            return folders[index]

    async def folder_for_notebook(self, notebook_id: str) -> Optional[Folder]:
        folders = await self._load(self.storage_key)
        return next(
            (folder for folder in folders if folder.has_notebook(notebook_id)), None
        )

    async def all_filed_notebook_ids(self) -> Set[str]:
        return {
            notebook.id
            for folder in await self._load(self.storage_key)
            for notebook in folder.notebooks
        }

    async def get_view_preference(self) -> ViewMode:
        value = await self._read(VIEW_PREFERENCE_KEY)
        try:
            return ViewMode(value) if value else ViewMode.List
        except ValueError:
            logger.warning(f"Ignoring unknown view preference '{value}'")
            return ViewMode.List

    async def save_view_preference(self, view: Union[ViewMode, str]):
        await self._write(VIEW_PREFERENCE_KEY, ViewMode(view).value)
