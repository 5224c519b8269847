"""Dedicated event loop thread shared by the HTTP handlers.

BaseHTTPRequestHandler is synchronous; running every coroutine on one
long-lived loop lets tasks spawned during a request (mention answers)
keep running after the response has been written.
"""

import asyncio
import threading
from typing import Any, Awaitable, Optional

_loop: Optional[asyncio.AbstractEventLoop] = None
_loop_lock = threading.Lock()

DEFAULT_TIMEOUT_SECONDS = 30.0


def get_background_loop() -> asyncio.AbstractEventLoop:
    """Start (once) and return the background event loop."""
    global _loop
    with _loop_lock:
        if _loop is not None and not _loop.is_closed():
            return _loop

        loop_container: list[asyncio.AbstractEventLoop] = []
        ready = threading.Event()

        def run_loop():
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            loop_container.append(loop)
            ready.set()
            loop.run_forever()

        thread = threading.Thread(target=run_loop, name="doppel-event-loop", daemon=True)
        thread.start()
        if not ready.wait(timeout=5.0):
            raise RuntimeError("Failed to start background event loop")
        _loop = loop_container[0]
        return _loop


def run_coroutine(coro: Awaitable[Any], timeout: Optional[float] = DEFAULT_TIMEOUT_SECONDS) -> Any:
    """Run a coroutine on the background loop and block for its result."""
    future = asyncio.run_coroutine_threadsafe(coro, get_background_loop())
    return future.result(timeout=timeout)
