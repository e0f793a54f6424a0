"""Write-batching pool: buffer items, flush at a size threshold or after a delay, retry with backoff"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Literal, Optional, TypeVar

from mdcms.errors import AppError, ErrorCode, ErrorTag

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class BackoffPolicy:
    attempts:       int = 5
    starting_delay: float = 0.1
    multiplier:     float = 2.0
    max_delay:      Optional[float] = None
    jitter:         Literal["full", "none"] = "full"

    def delay(self, attempt: int, rand: Callable[[], float] = random.random) -> float:
        """Delay before retry number attempt+1 (attempt counts from 0)."""
        base = self.starting_delay * self.multiplier ** attempt
        if self.max_delay is not None:
            base = min(base, self.max_delay)
        return rand() * base if self.jitter == "full" else base


async def retry_with_backoff(
    fn: Callable[[], Awaitable[R]],
    policy: BackoffPolicy,
    sleep: Sleep = asyncio.sleep,
    ) -> R:
    """Call fn until it succeeds or policy.attempts calls have failed; re-raises the last error."""
    for attempt in range(policy.attempts):
        try:
            return await fn()
        except Exception as e:
            if attempt + 1 >= policy.attempts:
                raise
            delay = policy.delay(attempt)
            logger.warning(f"attempt {attempt + 1}/{policy.attempts} failed ({e!r}); retrying in {delay:.3f}s")
            await sleep(delay)
    raise AppError.internal("retry policy allows no attempts")


class CachePool(Generic[T]):
    """Accumulates items and delivers them in batches through flush_fn.

    A batch goes out when `size` items are buffered or `ttl` seconds after the
    first unflushed add. Flushes are single-flight: a flush requested while
    another is running waits for it, then delivers whatever is buffered then.
    A batch that still fails after all retries is put back at the front of
    the buffer, so queued items are never dropped.
    """

    def __init__(
        self,
        flush_fn: Callable[[list[T]], Awaitable[None]],
        size: int = 64,
        ttl: float = 300.0,
        backoff: BackoffPolicy = BackoffPolicy(),
        sleep: Sleep = asyncio.sleep,
        name: str = "pool",
        ):
        if size < 1:
            raise ValueError("size must be >= 1")
        self.size = size
        self.ttl = ttl
        self.name = name
        self._flush_fn = flush_fn
        self._backoff = backoff
        self._sleep = sleep
        self._buffer: list[T] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._buffer)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def armed(self) -> bool:
        return self._timer is not None

    def check_open(self) -> None:
        if self._closed:
            raise AppError(ErrorCode.INTERNAL, "cache pool closed", tag=ErrorTag.DB)

    async def add(self, item: T) -> None:
        """Buffer item; flushes inline when the buffer reaches `size`."""
        self.check_open()
        self._buffer.append(item)
        if len(self._buffer) >= self.size:
            await self.flush()
        else:
            self._arm()

    async def flush(self) -> int:
        """Deliver the buffered batch. Returns the number of items delivered.

        Delivery runs in a task owned by the pool. Cancelling the caller stops
        the wait, not the delivery; close() still waits for it to finish.
        """
        task = asyncio.get_running_loop().create_task(self._deliver())
        self._track(task)
        return await asyncio.shield(task)

    async def _deliver(self) -> int:
        async with self._lock:
            self._disarm()
            if not self._buffer:
                return 0
            batch, self._buffer = self._buffer, []
            try:
                await retry_with_backoff(lambda: self._flush_fn(batch), self._backoff, self._sleep)
            except asyncio.CancelledError:
                self._buffer[:0] = batch
                logger.warning(f"{self.name}: flush of {len(batch)} item(s) cancelled; re-queued")
                raise
            except Exception as e:
                self._buffer[:0] = batch
                self._arm()
                logger.error(f"{self.name}: flush of {len(batch)} item(s) failed; re-queued ({e!r})")
                raise AppError(ErrorCode.INTERNAL, "cache pool flush failed", tag=ErrorTag.DB) from e
            logger.debug(f"{self.name}: flushed {len(batch)} item(s)")
            return len(batch)

    async def close(self) -> None:
        """Reject further adds and flush what is buffered."""
        self._closed = True
        self._disarm()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.flush()

    def _arm(self) -> None:
        if self._timer is None:
            self._timer = asyncio.get_running_loop().call_later(self.ttl, self._on_timer)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        self._track(asyncio.get_running_loop().create_task(self._background_flush()))

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._forget)

    def _forget(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        # a delivery whose caller was cancelled has nobody left to raise to
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"{self.name}: delivery ended with {task.exception()!r}")

    async def _background_flush(self) -> None:
        try:
            await self.flush()
        except AppError as e:
            logger.warning(f"{self.name}: timed flush failed, {self.pending} item(s) queued: {e.message}")
