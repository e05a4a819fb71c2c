"""Chunk delivery from a streaming backend into its owning agent.

Backends invoke their partial callback from whatever context produces the
chunk. ChunkPump turns those calls into messages on an asyncio queue that a
single consumer task drains, so every chunk is applied by one writer, in
arrival order, even if the producer is a different thread.

Usage:
    async with ChunkPump(apply_chunk) as pump:
        response = await backend.complete(prompt, pump.push)
    # every pushed chunk has been applied here
"""

import asyncio
import logging
import threading
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

_END = object()


class ChunkPump:
    """Single-writer channel for streamed chunks."""

    def __init__(self, apply: Callable[[str], Awaitable[None]]):
        self._apply = apply
        self._queue: "asyncio.Queue[object]" = asyncio.Queue()
        self._consumer: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[int] = None
        self._applied = 0

    @property
    def applied(self) -> int:
        """Number of chunks applied so far."""
        return self._applied

    def push(self, chunk: str) -> None:
        """Queue a chunk for the consumer. Callable from any thread."""
        if not chunk:
            return
        if self._loop is None:
            raise RuntimeError("ChunkPump.push called outside of its context")
        if threading.get_ident() == self._loop_thread:
            self._queue.put_nowait(chunk)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, chunk)

    async def _drain(self) -> None:
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            await self._apply(item)  # type: ignore[arg-type]
            self._applied += 1

    async def __aenter__(self) -> "ChunkPump":
        self._loop = asyncio.get_running_loop()
        self._loop_thread = threading.get_ident()
        self._consumer = asyncio.ensure_future(self._drain())
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        # Chunks already generated are applied even when the turn failed or
        # was cancelled, so the running prompt reflects what was produced.
        self._queue.put_nowait(_END)
        assert self._consumer is not None
        try:
            await asyncio.shield(self._consumer)
        except asyncio.CancelledError:
            # Cancelled again while draining; finish the drain before leaving.
            await self._consumer
            raise
        logger.debug(f"ChunkPump drained {self._applied} chunks")
