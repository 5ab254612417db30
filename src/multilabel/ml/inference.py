"""Inference queue for the HTTP API.

Architecture:
    FastAPI (async) -> asyncio.Semaphore(max_pending) -> ThreadPoolExecutor(1) -> Predictor

The predictor only ever runs on one worker thread. At most ``max_pending``
requests are admitted at once; a request that cannot be admitted within
``queue_timeout`` seconds fails with TimeoutError (served as 503).
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

    from multilabel.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InferenceQueue:
    """Serializes predictor calls onto a single worker thread."""

    def __init__(self, settings: Settings) -> None:
        self._timeout = settings.queue_timeout
        self._admission = asyncio.Semaphore(settings.max_pending)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="predictor")
        self._pending = 0
        self._running = 0
        self._lock = threading.Lock()

    def _invoke(self, func: Callable[..., T], *args: object) -> T:
        with self._lock:
            self._running += 1
        try:
            return func(*args)
        finally:
            with self._lock:
                self._running -= 1

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Run ``func(*args)`` on the predictor thread and await its result.

        Raises:
            TimeoutError: If no admission slot frees up within the timeout.
        """
        with self._lock:
            self._pending += 1
        try:
            try:
                await asyncio.wait_for(self._admission.acquire(), timeout=self._timeout)
            except TimeoutError:
                logger.warning("Inference queue full for %.1fs, rejecting request", self._timeout)
                raise
            try:
                loop = asyncio.get_running_loop()
                return await loop.run_in_executor(self._executor, self._invoke, func, *args)
            finally:
                self._admission.release()
        finally:
            with self._lock:
                self._pending -= 1

    @property
    def active_count(self) -> int:
        """Number of predictor calls currently executing (0 or 1)."""
        with self._lock:
            return self._running

    @property
    def queue_depth(self) -> int:
        """Number of admitted or waiting requests not yet executing."""
        with self._lock:
            return self._pending - self._running

    def shutdown(self) -> None:
        """Wait for in-flight work and stop the worker thread."""
        self._executor.shutdown(wait=True)
