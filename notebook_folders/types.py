from typing import Any, Awaitable, Callable, Dict, Optional

JsonDict = Dict[str, Any]

# Async no-argument hook, e.g. "folders changed, re-render them"
AsyncHook = Callable[[], Awaitable[None]]

OptionalAwaitable = Optional[Awaitable[None]]
