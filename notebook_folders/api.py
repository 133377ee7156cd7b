import contextlib
import logging
from typing import Optional

import rollbar
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from rollbar.contrib.fastapi import add_to as rollbar_add_to

from .constants import (
    FOLDER_COLORS,
    FOLDER_EMOJIS,
    LOG_IGNORE_PATTERNS,
    MAX_FOLDER_NAME_LENGTH,
    ROLLBAR_TOKEN,
)
from .controller import Controller
from .data.colors import PALETTE, normalize_color
from .data.models import Folder, FolderDraft, FolderUpdate, NotebookRef, ViewMode
from .util import datetime_to_timestamp

_controller: Optional[Controller] = None


def set_controller(controller: Optional[Controller]):
    global _controller
    _controller = controller


def get_controller() -> Controller:
    if _controller is None:
        raise HTTPException(status_code=503, detail="Controller isn't running")
    return _controller


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    if _controller is None:
        set_controller(Controller())
    await _controller.start()
    yield
    await _controller.stop()


fastapi_app = FastAPI(lifespan=lifespan)

if ROLLBAR_TOKEN:
    rollbar.init(
        ROLLBAR_TOKEN,
        environment="production",
        handler="async",
        include_request_body=True,
    )
    rollbar_add_to(fastapi_app)

fastapi_app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class CreateFolderBody(BaseModel):
    name: Optional[str] = Field(default=None, max_length=MAX_FOLDER_NAME_LENGTH)
    emoji: Optional[str] = None
    color: Optional[str] = None


class UpdateFolderBody(BaseModel):
    name: Optional[str] = Field(default=None, max_length=MAX_FOLDER_NAME_LENGTH)
    emoji: Optional[str] = None
    color: Optional[str] = None


class SetAccountBody(BaseModel):
    account: Optional[str]


class SetViewBody(BaseModel):
    view: ViewMode


def folder_response(folder: Folder):
    data = folder.model_dump(mode="json", by_alias=True)
    data["count"] = len(folder.notebooks)
    created_at = folder.created_at
    data["createdAtLabel"] = f"{created_at:%b} {created_at.day}, {created_at.year}"
    data["createdAtTimestamp"] = datetime_to_timestamp(created_at)
    return data


def _folder_or_404(folder: Optional[Folder], id: str):
    if folder is None:
        raise HTTPException(status_code=404, detail=f"Folder with id '{id}' not found")
    return folder_response(folder)


@fastapi_app.get("/folders")
async def folders():
    return [folder_response(folder) for folder in await get_controller().store.get_all()]


@fastapi_app.post("/folders", status_code=201)
async def create_folder(body: CreateFolderBody):
    folder = await get_controller().store.create(
        FolderDraft(**body.model_dump(exclude_none=True))
    )
    return folder_response(folder)


@fastapi_app.get("/folders/{id}")
async def folder(id: str):
    return _folder_or_404(await get_controller().store.get(id), id)


@fastapi_app.patch("/folders/{id}")
async def update_folder(id: str, body: UpdateFolderBody):
    folder = await get_controller().store.update(
        id, FolderUpdate(**body.model_dump(exclude_none=True))
    )
    return _folder_or_404(folder, id)


@fastapi_app.delete("/folders/{id}")
async def delete_folder(id: str):
    await get_controller().store.delete(id)
    return {"status": "ok"}


@fastapi_app.post("/folders/{id}/notebooks")
async def add_notebook(id: str, body: NotebookRef):
    controller = get_controller()
    folder = await controller.store.add_notebook(id, body)
    response = _folder_or_404(folder, id)
    if controller.reconciler is not None:
        await controller.reconciler.refresh_visibility()
    return response


@fastapi_app.delete("/folders/{id}/notebooks/{notebook_id}")
async def remove_notebook(id: str, notebook_id: str):
    controller = get_controller()
    folder = await controller.store.remove_notebook(id, notebook_id)
    response = _folder_or_404(folder, id)
    if controller.reconciler is not None:
        await controller.reconciler.refresh_visibility()
    return response


@fastapi_app.get("/notebooks/filed")
async def filed_notebooks():
    return {"ids": sorted(await get_controller().store.all_filed_notebook_ids())}


@fastapi_app.get("/notebooks/{notebook_id}/folder")
async def notebook_folder(notebook_id: str):
    folder = await get_controller().store.folder_for_notebook(notebook_id)
    if folder is None:
        return {}
    return folder_response(folder)


@fastapi_app.get("/view")
async def view():
    return {"view": get_controller().view}


@fastapi_app.put("/view")
async def set_view(body: SetViewBody):
    await get_controller().set_view(body.view)
    return {"status": "ok"}


@fastapi_app.get("/account")
async def account():
    controller = get_controller()
    return {"account": controller.account, "key": controller.store.storage_key}


@fastapi_app.put("/account")
async def set_account(body: SetAccountBody):
    changed = await get_controller().set_account(body.account)
    return {"status": "ok", "changed": changed}


@fastapi_app.get("/colors/palette")
async def palette():
    return {"palette": PALETTE, "folder_colors": FOLDER_COLORS, "emojis": FOLDER_EMOJIS}


@fastapi_app.get("/colors/normalize")
async def normalize(sample: str):
    return {"sample": sample, "color": normalize_color(sample)}


# See https://github.com/encode/starlette/issues/864#issuecomment-653076434
class PolledEndpointsFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno > logging.INFO:
            return True

        message = record.getMessage()

        if any(filter(lambda a: a.search(message), LOG_IGNORE_PATTERNS)):
            return False

        return True


# Filter out especially verbose endpoints
logging.getLogger("uvicorn.access").addFilter(PolledEndpointsFilter())
