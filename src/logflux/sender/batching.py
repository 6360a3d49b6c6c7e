"""Batching, retrying point sender.

Producers hand points to the sender through a bounded asyncio queue.
A single background task owns the current batch and is its only
mutator. It waits on whichever comes first of a queued point, the
periodic flush tick or the close signal:

- a point is appended to the batch; reaching batch_size flushes
- a tick flushes a non-empty batch and is a no-op otherwise
- close drains what is left and leaves the loop

A failed flush is retried with the same batch after retry_backoff
seconds, for as long as it keeps failing. Nothing is pulled from the
queue meanwhile, so once the queue fills producers block in submit()
until a flush succeeds. Close interrupts the backoff wait; after that
each remaining batch gets one last attempt and is dropped, with an
error log, if it fails.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Mapping, Optional, Protocol, Sequence

from pydantic import ValidationError

from logflux.config import SenderConfig
from logflux.errors import PointError, SenderClosed, StartupError
from logflux.models.points import FieldValue, MetricPoint

logger = logging.getLogger("logflux.sender")


class PointWriter(Protocol):
    """Destination contract. Both calls block and raise on failure."""

    endpoint: str

    def ping(self) -> None:
        ...

    def write(self, points: Sequence[MetricPoint]) -> None:
        ...


class SenderState(str, Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    FLUSHING = "flushing"
    RETRYING = "retrying"
    DRAINING = "draining"
    CLOSED = "closed"


@dataclass
class SenderStats:
    """Snapshot of sender activity."""
    state: SenderState = SenderState.IDLE
    points_accepted: int = 0
    points_written: int = 0
    points_dropped: int = 0
    batches_written: int = 0
    write_errors: int = 0
    pending: int = 0
    queued: int = 0
    last_error: str = ""
    last_flush_at: Optional[datetime] = None


class BatchingSender:
    """Queue-backed sender flushing on size or time.

    Use BatchingSender.open() to validate the destination and start
    the background task in one step.
    """

    def __init__(self, writer: PointWriter, config: SenderConfig):
        self._writer = writer
        self.batch_size = config.batch_size
        self.flush_period = config.flush_period
        self.retry_backoff = config.retry_backoff
        self.drain_timeout = config.drain_timeout
        self._queue: asyncio.Queue[MetricPoint] = asyncio.Queue(
            maxsize=config.queue_size
        )
        self._closing = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._stats = SenderStats()

    @classmethod
    async def open(cls, writer: PointWriter, config: SenderConfig) -> BatchingSender:
        """Check the destination is alive and start sending.

        Raises StartupError when the destination cannot be reached.
        """
        logger.debug("Connecting to: %s", writer.endpoint)
        try:
            await asyncio.to_thread(writer.ping)
        except Exception as e:
            raise StartupError(f"failed connecting to: {writer.endpoint}: {e}") from e
        logger.info("Connected to: %s", writer.endpoint)
        sender = cls(writer, config)
        sender.start()
        return sender

    def start(self) -> None:
        if self._task is not None:
            return
        self._stats.state = SenderState.ACCUMULATING
        self._task = asyncio.create_task(self._run(), name="logflux-sender")

    async def accept(
        self,
        name: str,
        tags: Mapping[str, str],
        fields: Mapping[str, FieldValue],
        timestamp: datetime,
    ) -> None:
        """Build a point and queue it, waiting while the queue is full."""
        try:
            point = MetricPoint(
                name=name, tags=dict(tags), fields=dict(fields), timestamp=timestamp
            )
        except ValidationError as e:
            raise PointError(str(e)) from e
        await self.submit(point)

    async def submit(self, point: MetricPoint) -> None:
        """Queue a point, waiting while the queue is full.

        Raises SenderClosed if the sender is closed, including when it
        closes while this call is still waiting for queue space.
        """
        if self._closing.is_set():
            raise SenderClosed("sender is closed")
        try:
            self._queue.put_nowait(point)
        except asyncio.QueueFull:
            await self._put_or_close(point)
        self._stats.points_accepted += 1

    async def _put_or_close(self, point: MetricPoint) -> None:
        put = asyncio.ensure_future(self._queue.put(point))
        closing = asyncio.ensure_future(self._closing.wait())
        try:
            await asyncio.wait({put, closing}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            closing.cancel()
            queued = put.done()
            if not queued:
                put.cancel()
        if not queued:
            raise SenderClosed("sender closed while waiting for queue space")

    def stats(self) -> SenderStats:
        return replace(self._stats, queued=self._queue.qsize())

    @property
    def closed(self) -> bool:
        return self._closing.is_set()

    async def close(self, timeout: Optional[float] = None) -> None:
        """Stop accepting points, flush what is pending and stop the task.

        The task is cancelled if draining takes longer than timeout
        (drain_timeout by default); points it still held, and any left
        in the queue, are counted as dropped.
        """
        self._closing.set()
        if self._task is None:
            self._discard_leftovers()
            self._stats.state = SenderState.CLOSED
            return
        timeout = self.drain_timeout if timeout is None else timeout
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout)
        except asyncio.TimeoutError:
            logger.error("Sender did not drain within %.1fs, cancelling", timeout)
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._discard_leftovers()
        self._stats.state = SenderState.CLOSED

    def _discard_leftovers(self) -> None:
        """Count whatever the stopped task did not write as dropped."""
        lost = self._stats.pending
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            lost += 1
        self._stats.pending = 0
        if lost:
            self._stats.points_dropped += lost
            logger.error("Dropping %d points left unsent at close", lost)

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        batch: list[MetricPoint] = []
        next_tick = loop.time() + self.flush_period
        closing = asyncio.ensure_future(self._closing.wait())
        getter: Optional[asyncio.Future] = None
        try:
            while not self._closing.is_set():
                if getter is None:
                    getter = asyncio.ensure_future(self._queue.get())
                timeout = max(0.0, next_tick - loop.time())
                done, _ = await asyncio.wait(
                    {getter, closing},
                    timeout=timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if getter in done:
                    batch.append(getter.result())
                    getter = None
                    self._stats.pending = len(batch)
                    if len(batch) < self.batch_size:
                        continue
                elif closing in done:
                    break
                else:
                    next_tick = loop.time() + self.flush_period
                    logger.debug("Flush tick: %d points pending", len(batch))
                    if not batch:
                        continue
                await self._flush_or_drop(batch)
                batch = []
                self._stats.pending = 0
        finally:
            closing.cancel()
            if getter is not None:
                getter.cancel()

        self._stats.state = SenderState.DRAINING
        await self._drain(batch)

    async def _drain(self, batch: list[MetricPoint]) -> None:
        pending = list(batch)
        while True:
            try:
                pending.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                break
        logger.info("Draining %d points", len(pending))
        self._stats.pending = len(pending)
        for start in range(0, len(pending), self.batch_size):
            chunk = pending[start:start + self.batch_size]
            await self._flush_or_drop(chunk)
            self._stats.pending -= len(chunk)

    async def _flush_or_drop(self, batch: list[MetricPoint]) -> None:
        if not await self._flush(batch):
            self._stats.points_dropped += len(batch)
            logger.error(
                "Dropping %d points: destination unavailable at shutdown",
                len(batch),
            )

    async def _flush(self, batch: list[MetricPoint]) -> bool:
        """Write batch, retrying until it succeeds or the sender closes.

        Returns False only when a write fails after close was requested.
        """
        points = tuple(batch)
        attempt = 0
        while True:
            attempt += 1
            if self._stats.state is not SenderState.DRAINING:
                self._stats.state = SenderState.FLUSHING
            try:
                await asyncio.to_thread(self._writer.write, points)
            except Exception as e:
                self._stats.write_errors += 1
                self._stats.last_error = str(e)
                logger.error(
                    "Write of %d points failed (attempt %d): %s",
                    len(points), attempt, e,
                )
                if self._closing.is_set():
                    return False
                self._stats.state = SenderState.RETRYING
                await self._backoff()
                continue
            break

        self._stats.points_written += len(points)
        self._stats.batches_written += 1
        self._stats.last_flush_at = datetime.now(timezone.utc)
        if self._stats.state is not SenderState.DRAINING:
            self._stats.state = SenderState.ACCUMULATING
        logger.debug("Flushed %d points", len(points))
        return True

    async def _backoff(self) -> None:
        """Sleep retry_backoff seconds, waking early on close."""
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._closing.wait(), self.retry_backoff)
