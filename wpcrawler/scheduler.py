"""
Bounded concurrency fetch scheduler.

A fixed pool of worker coroutines pulls requests from a queue, so a new
request is dispatched as soon as any in-flight one completes. The completion
callback runs inside the worker before it picks up its next request, which
keeps at most ``max_concurrent`` response bodies alive at any time.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List

import structlog

from .fetcher import FetchResult, HTTPFetcher

logger = structlog.get_logger(__name__)

DEFAULT_MAX_CONCURRENT = 10


@dataclass(frozen=True)
class FetchRequest:
    url: str
    extra_info: Any = None


# on_complete(request, result, scheduler)
CompletionCallback = Callable[[FetchRequest, FetchResult, 'FetchScheduler'], None]


class FetchScheduler:
    """Fetch many URLs with at most ``max_concurrent`` requests in flight."""

    def __init__(self, fetcher: HTTPFetcher, max_concurrent: int = DEFAULT_MAX_CONCURRENT):
        if isinstance(max_concurrent, bool) or not isinstance(max_concurrent, int) or max_concurrent < 1:
            raise ValueError(f"max_concurrent must be a positive integer, got {max_concurrent!r}")

        self.fetcher = fetcher
        self.max_concurrent = max_concurrent
        self.total = 0
        self.completed = 0
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def progress(self) -> float:
        """Fraction of requests completed, 0.0 to 1.0."""
        if not self.total:
            return 0.0
        return self.completed / self.total

    async def run(self, requests: Iterable[FetchRequest], on_complete: CompletionCallback) -> int:
        """
        Fetch every request and hand each result to ``on_complete``.

        Args:
            requests: Requests to fetch, each fetched exactly once
            on_complete: Called synchronously per finished request

        Returns:
            int: Number of completed requests

        Raises:
            Exception: whatever ``on_complete`` raised; remaining requests are abandoned
        """
        queue: asyncio.Queue = asyncio.Queue()
        for request in requests:
            queue.put_nowait(request)

        self.total = queue.qsize()
        self.completed = 0
        self.in_flight = 0
        self.max_in_flight = 0

        if not self.total:
            return 0

        worker_count = min(self.max_concurrent, self.total)
        logger.info("scheduler_started", total=self.total, workers=worker_count)

        workers: List[asyncio.Task] = [
            asyncio.ensure_future(self._worker(queue, on_complete))
            for _ in range(worker_count)
        ]
        try:
            await asyncio.gather(*workers)
        finally:
            for worker in workers:
                if not worker.done():
                    worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        logger.info("scheduler_finished", total=self.total, completed=self.completed)
        return self.completed

    async def _worker(self, queue: asyncio.Queue, on_complete: CompletionCallback):
        while True:
            try:
                request = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            try:
                result = await self.fetcher.fetch(request.url)
            finally:
                self.in_flight -= 1

            self.completed += 1
            try:
                on_complete(request, result, self)
            finally:
                # recoup some memory
                result.release()
