import logging

import uvicorn

from .constants import HOST, PORT

logging.basicConfig(level=logging.INFO)

uvicorn.run("notebook_folders.api:fastapi_app", host=HOST, port=PORT)
