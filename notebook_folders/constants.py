import os
import re
from pathlib import Path
from typing import Any, Dict, List, Pattern

import tomli
from xdg import xdg_config_home, xdg_data_home

BASE_DATA_PATH = (
    Path(os.environ["NF_DATA_PATH"])
    if "NF_DATA_PATH" in os.environ
    else Path(xdg_data_home(), "notebook-folders")
)

BASE_CONFIG_PATH = (
    Path(os.environ["NF_CONFIG_PATH"])
    if "NF_CONFIG_PATH" in os.environ
    else Path(xdg_config_home(), "notebook-folders")
)

ROLLBAR_TOKEN = os.environ["NF_ROLLBAR"] if "NF_ROLLBAR" in os.environ else None

HOST = os.environ["NF_HOST"] if "NF_HOST" in os.environ else "127.0.0.1"

PORT = int(os.environ["NF_PORT"]) if "NF_PORT" in os.environ else 8000

STORAGE_PATH = BASE_DATA_PATH / "storage.json"

CONFIG_FILE_PATH = BASE_CONFIG_PATH / "config.toml"

# Storage keys are kept compatible with the records the browser extension wrote
# to storage.local
DEFAULT_STORAGE_KEY = "nlm_folders"
VIEW_PREFERENCE_KEY = "nlm_view_pref"

DEFAULT_FOLDER_NAME = "New Folder"
DEFAULT_FOLDER_EMOJI = "📁"
DEFAULT_FOLDER_COLOR = "#F8CCC8"
MAX_FOLDER_NAME_LENGTH = 50

DEFAULT_NOTEBOOK_TITLE = "Untitled"
DEFAULT_NOTEBOOK_EMOJI = "📓"
DEFAULT_NOTEBOOK_BACKGROUND = "rgb(194, 231, 255)"

# Colors offered by the folder dialogs, in picker order
FOLDER_COLORS: Dict[str, str] = {
    "pink": "#F8CCC8",
    "blue": "#C2E7FF",
    "green": "#C4EED0",
    "yellow": "#FFF3CD",
    "purple": "#E8D5F9",
    "cyan": "#A8F0F0",
    "orange": "#FFE5CC",
    "mint": "#D0F0C0",
    "lavender": "#E6E6FA",
    "rose": "#FFE4E1",
    "sky": "#E0F7FA",
    "peach": "#FFDAB9",
    "lime": "#F0FFF0",
    "lilac": "#F3E5F5",
    "apricot": "#FFF5EE",
    "mist": "#F5F5F5",
}

FOLDER_EMOJIS: List[str] = [
    "📁", "📂", "🗂️", "📚", "💼", "🎯", "⭐", "💡", "🔥", "💎",
    "🌟", "📌", "🚀", "🎨", "🎵", "🎬", "🧩", "🌈", "🌍", "🛠️",
]

# Seconds; the host page batches its own rendering so we wait for it to settle
RECONCILE_DELAY_S = 0.1
REINJECT_DELAY_S = 0.5

# noinspection PyTypeChecker
LOG_IGNORE_PATTERNS: List[Pattern] = list(
    map(
        re.compile,
        [r"GET /notebooks/filed.*200", r"GET /view.*200"],
    )
)


def load_config_file(path: Path = CONFIG_FILE_PATH) -> Dict[str, Any]:
    if not path.exists():
        return {}

    with open(path, "rb") as config_file:
        return tomli.load(config_file)
