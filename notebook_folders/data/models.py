from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class ViewMode(str, Enum):
    List = "list"
    Grid = "grid"


class NotebookRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    emoji: str
    color: str
    date: str = ""
    sources: str = ""


class Folder(BaseModel):
    # Persisted with the same camelCase keys the browser extension used
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    emoji: str
    color: str
    notebooks: Tuple[NotebookRef, ...] = ()
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="createdAt"
    )

    @property
    def notebook_ids(self):
        return [notebook.id for notebook in self.notebooks]

    def has_notebook(self, notebook_id: str) -> bool:
        return any(notebook.id == notebook_id for notebook in self.notebooks)


class FolderDraft(BaseModel):
    name: Optional[str] = None
    emoji: Optional[str] = None
    color: Optional[str] = None


class FolderUpdate(BaseModel):
    name: Optional[str] = None
    emoji: Optional[str] = None
    color: Optional[str] = None
