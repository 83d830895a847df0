"""Background asyncio loop used to run icon generation off the event path."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Coroutine, Optional, Set

logger = logging.getLogger("personalmotd.workers")


class BackgroundLoop:
    """An asyncio event loop on a daemon thread accepting coroutines from any thread."""

    def __init__(self, name: str = "personalmotd-icons"):
        self.name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._pending: Set[concurrent.futures.Future] = set()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            loop = asyncio.new_event_loop()
            ready = threading.Event()
            self._loop = loop
            self._thread = threading.Thread(
                target=self._run_loop,
                args=(loop, ready),
                name=self.name,
                daemon=True,
            )
            self._thread.start()
        ready.wait()
        logger.debug("Started background loop %s", self.name)

    @staticmethod
    def _run_loop(loop: asyncio.AbstractEventLoop, ready: threading.Event) -> None:
        asyncio.set_event_loop(loop)
        loop.call_soon(ready.set)
        try:
            loop.run_forever()
        finally:
            loop.run_until_complete(loop.shutdown_default_executor())
            loop.close()

    def submit(self, coro: Coroutine[Any, Any, Any]) -> concurrent.futures.Future:
        """Schedule coro on the loop and return a thread-safe future for its result."""
        with self._lock:
            if not self.running or self._loop is None:
                coro.close()
                raise RuntimeError(f"Background loop {self.name} is not running")
            future = asyncio.run_coroutine_threadsafe(coro, self._loop)
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: concurrent.futures.Future) -> None:
        with self._lock:
            self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Background task on %s failed: %s", self.name, exc, exc_info=exc)

    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Wait for submitted work to finish, then stop the loop thread."""
        with self._lock:
            loop, thread = self._loop, self._thread
            pending = list(self._pending)
        if loop is None or thread is None:
            return
        if pending:
            logger.info("Waiting for %d icon task(s) to finish", len(pending))
            concurrent.futures.wait(pending, timeout=timeout)
        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout)
        with self._lock:
            self._loop = None
            self._thread = None
        logger.debug("Stopped background loop %s", self.name)


__all__ = ["BackgroundLoop"]
