"""
Background event loop for the HTTP surface.

The stdlib HTTP server handles requests on plain threads, while the
aggregator, the result cache and its ``asyncio.Lock`` live on one event
loop.  ``EventLoopManager`` owns that loop in a daemon thread and lets
synchronous callers submit coroutines to it, so the lock is never shared
between loops.
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Coroutine, Optional, TypeVar

_logger = logging.getLogger(__name__)
T = TypeVar("T")


class EventLoopManager:
    """Runs a persistent event loop in a background thread."""

    def __init__(self, name: str = "finfeed-loop"):
        self.name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()
        self._started = False

    def start(self, timeout: float = 5.0) -> bool:
        """Start the loop thread; returns False if it was already running."""
        if self._started:
            _logger.debug("event_loop_manager_already_started name=%s", self.name)
            return False

        def run_event_loop():
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            self._loop = loop
            loop.call_soon(self._ready.set)
            _logger.info("event_loop_manager_started name=%s", self.name)
            try:
                loop.run_forever()
            finally:
                pending = asyncio.all_tasks(loop)
                for task in pending:
                    task.cancel()
                loop.run_until_complete(
                    asyncio.gather(*pending, return_exceptions=True)
                )
                loop.close()
                _logger.info("event_loop_manager_stopped name=%s", self.name)

        self._ready.clear()
        self._thread = threading.Thread(
            target=run_event_loop, name=self.name, daemon=True
        )
        self._thread.start()
        if not self._ready.wait(timeout):
            _logger.error("event_loop_manager_start_timeout name=%s", self.name)
            return False
        self._started = True
        return True

    def stop(self, timeout: float = 5.0) -> None:
        if not self._started:
            return
        if self._loop is not None and self._loop.is_running():
            self._loop.call_soon_threadsafe(self._loop.stop)
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                _logger.warning("event_loop_manager_stop_timeout name=%s", self.name)
        self._started = False
        self._loop = None

    def is_running(self) -> bool:
        return self._started and self._loop is not None and self._loop.is_running()

    def run_async(
        self, coro: Coroutine[Any, Any, T], timeout: Optional[float] = None
    ) -> T:
        """Run ``coro`` on the managed loop and block for its result."""
        if not self._started or self._loop is None:
            coro.close()
            raise RuntimeError("EventLoopManager not started - call start() first")

        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            _logger.error("event_loop_manager_timeout name=%s", self.name)
            future.cancel()
            raise

    def __enter__(self) -> "EventLoopManager":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()
