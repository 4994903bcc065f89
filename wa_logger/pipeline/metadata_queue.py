"""
Rate-limited group metadata fetch queue.

Group events only carry partial data, so every group update is resolved by a
``fetch_group_metadata`` call. The transport rejects those calls when they are
issued too quickly, so they go through a single FIFO worker that paces calls
and backs off on rate-limit errors.
"""
import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, Optional

from wa_logger.core.logging import get_logger
from wa_logger.transport.base import is_rate_limit_error

logger = get_logger(__name__)

DEFAULT_DELAY_MS = 1000
DEFAULT_MAX_RETRIES = 3

GroupMetadata = Dict[str, Any]
Continuation = Callable[[Optional[GroupMetadata]], Awaitable[None]]
FetchFn = Callable[[str], Awaitable[GroupMetadata]]
SleepFn = Callable[[float], Awaitable[Any]]


@dataclass
class GroupMetadataTask:
    """In-memory queue entry; lost on restart."""
    group_id: str
    continuation: Continuation


async def retry_with_backoff(
    fn: Callable[[], Awaitable[Any]],
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay_ms: int = DEFAULT_DELAY_MS,
    sleep: SleepFn = asyncio.sleep,
    context: str = "operation",
) -> Any:
    """
    Call ``fn`` up to ``max_retries`` times.

    Only rate-limit errors are retried, after ``base_delay_ms * 2**(attempt-1)``.
    Any other error, or the last rate-limit error, is raised.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await fn()
        except Exception as e:
            if not is_rate_limit_error(e):
                raise
            if attempt >= max_retries:
                logger.warning(f"Retry exhausted for {context} after {attempt} attempts. Last error: {e}")
                raise
            delay_ms = base_delay_ms * (2 ** (attempt - 1))
            logger.info(f"Rate limit hit for {context}, retrying in {delay_ms}ms (attempt {attempt}/{max_retries})")
            await sleep(delay_ms / 1000)


class GroupMetadataQueue:
    """
    Single-consumer FIFO of metadata fetches.

    Producers call ``enqueue``; at most one drain loop runs at a time, so
    bursts of enqueues coalesce into one pass. Every task's continuation is
    invoked exactly once, with ``None`` when the fetch failed.
    """

    def __init__(
        self,
        fetch: FetchFn,
        delay_ms: int = DEFAULT_DELAY_MS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        sleep: Optional[SleepFn] = None,
    ):
        self._fetch = fetch
        self.delay_ms = delay_ms
        self.max_retries = max_retries
        self._sleep = sleep or asyncio.sleep
        self._tasks: Deque[GroupMetadataTask] = deque()
        self._draining = False
        self._drain_task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @property
    def is_draining(self) -> bool:
        return self._draining or (self._drain_task is not None and not self._drain_task.done())

    def enqueue(self, group_id: str, continuation: Continuation) -> None:
        """Queue a fetch and make sure a drain loop is running."""
        self._tasks.append(GroupMetadataTask(group_id=group_id, continuation=continuation))
        logger.debug(
            "Group metadata fetch queued",
            extra={"extra_data": {"group_id": group_id, "pending": len(self._tasks)}}
        )
        if not self.is_draining:
            self._drain_task = asyncio.get_running_loop().create_task(self.drain())

    async def drain(self) -> int:
        """
        Process queued tasks until the queue is empty.

        Returns the number of tasks processed; 0 if another drain is active.
        """
        if self._draining:
            return 0
        self._draining = True
        processed = 0
        try:
            while self._tasks:
                task = self._tasks.popleft()
                await self._process(task)
                processed += 1
                await self._sleep(self.delay_ms / 1000)
        finally:
            self._draining = False
        return processed

    async def wait_idle(self) -> None:
        """Wait for the current drain loop, if any, to finish."""
        while self._drain_task is not None and not self._drain_task.done():
            await asyncio.wait({self._drain_task})

    async def close(self) -> int:
        """
        Drop queued fetches and cancel the running drain loop.

        Returns the number of dropped tasks; their continuations are not called.
        """
        dropped = len(self._tasks)
        self._tasks.clear()
        drain_task, self._drain_task = self._drain_task, None
        if drain_task is not None and not drain_task.done():
            drain_task.cancel()
            try:
                await drain_task
            except asyncio.CancelledError:
                pass
        self._draining = False
        return dropped

    async def _process(self, task: GroupMetadataTask) -> None:
        metadata: Optional[GroupMetadata] = None
        try:
            metadata = await retry_with_backoff(
                lambda: self._fetch(task.group_id),
                max_retries=self.max_retries,
                base_delay_ms=self.delay_ms,
                sleep=self._sleep,
                context=f"group metadata {task.group_id}",
            )
        except Exception as e:
            logger.error(f"Failed to fetch metadata for group {task.group_id}: {e}")

        try:
            await task.continuation(metadata)
        except Exception as e:
            logger.error(f"Group metadata continuation failed for {task.group_id}: {e}", exc_info=True)
