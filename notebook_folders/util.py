import asyncio
import logging
import re
import secrets
from datetime import datetime
from typing import Awaitable, Callable, Optional, Set

import rollbar

logger = logging.getLogger(__name__)

_UNSAFE_ACCOUNT_CHARS = re.compile(r"[^a-zA-Z0-9]")
_FOLDER_ID_RANDOM_BYTES = 4


def datetime_to_timestamp(at: datetime):
    return int(at.timestamp() * 1000)


def sanitize_account_id(account: str) -> str:
    return _UNSAFE_ACCOUNT_CHARS.sub("_", account)


def generate_folder_id(at: Optional[datetime] = None) -> str:
    # The timestamp alone collides for folders created within the same
    # millisecond, so every id carries a random suffix as well
    at = at if at is not None else datetime.now()
    return (
        f"folder_{datetime_to_timestamp(at)}_"
        f"{secrets.token_hex(_FOLDER_ID_RANDOM_BYTES)}"
    )


class Debouncer:
    """
    Runs ``callback`` once ``delay`` seconds after the most recent call to
    :meth:`schedule`. Scheduling again before the timer fires cancels the pending
    run and starts a new timer, so a burst of calls collapses into one run. A
    run that is already inside ``callback`` is never interrupted.
    """

    _callback: Callable[[], Awaitable[None]]
    _delay: float
    _task: Optional[asyncio.Task]
    _running: Set[asyncio.Task]

    def __init__(self, callback: Callable[[], Awaitable[None]], delay: float):
        self._callback = callback
        self._delay = delay
        self._task = None
        self._running = set()

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> bool:
        """Whether a run is waiting out its delay or executing."""
        return (self._task is not None and not self._task.done()) or bool(self._running)

    def schedule(self):
        self.cancel()
        self._task = asyncio.get_event_loop().create_task(self._run())

    def cancel(self) -> bool:
        # Only a run still sleeping is superseded
        if self._task is None or self._task.done() or self._task in self._running:
            return False
        self._task.cancel()
        self._task = None
        return True

    async def flush(self):
        """Wait until no run is pending, following any reschedules."""
        current = asyncio.current_task()
        while True:
            tasks = {
                task
                for task in (self._task, *self._running)
                if task is not None and not task.done() and task is not current
            }
            if not tasks:
                return
            await asyncio.wait(tasks)

    async def _run(self):
        await asyncio.sleep(self._delay)
        task = asyncio.current_task()
        self._running.add(task)
        try:
            await self._callback()
        except Exception:
            rollbar.report_exc_info()
            logger.exception("Error while running debounced callback")
        finally:
            self._running.discard(task)
