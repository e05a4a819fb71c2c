import asyncio
import inspect
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from parley.llm.backend_config import BackendConfig
from parley.utils.errors import BackendBusyError

logger = logging.getLogger(__name__)

PartialCallback = Callable[[str], Union[None, Awaitable[None]]]
Emit = Callable[[str], Awaitable[None]]


@dataclass
class CompleteResponse:
    """Result of a single completion request."""
    text: str
    # Wall-clock seconds from request start to the first chunk.
    response_start_seconds: float = 0.0
    predicted_per_second: Optional[float] = None
    model_name: Optional[str] = None
    n_predicted: Optional[int] = None
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CompletionStats:
    """Server-reported metadata a backend collects while streaming."""
    predicted_per_second: Optional[float] = None
    model_name: Optional[str] = None
    n_predicted: Optional[int] = None


class BaseBackend(ABC):
    """Base interface for local inference backends.

    ``complete`` owns the parts every backend shares: the single in-flight
    request guard, cancellation through ``interrupt``, and assembling the
    final text from exactly the chunks handed to ``on_partial``. Subclasses
    only implement ``_generate``, which streams chunks through ``emit``.
    """

    def __init__(self, config: BackendConfig):
        self.config = config
        self._inflight: Optional[asyncio.Task] = None
        self._interrupt_requested = False

    @property
    @abstractmethod
    def provider(self) -> str:
        """Return the provider name"""
        pass

    @property
    def model_name(self) -> Optional[str]:
        return self.config.model

    @property
    def is_busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @abstractmethod
    async def _generate(
        self,
        prompt: str,
        emit: Emit,
        *,
        stop: List[str],
        max_tokens: Optional[int],
    ) -> CompletionStats:
        """Stream a completion for ``prompt``, awaiting ``emit`` once per chunk."""
        pass

    @abstractmethod
    async def health(self) -> bool:
        """Return True when the inference server answers."""
        pass

    async def aclose(self) -> None:
        """Release network resources held by the backend."""
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    def _stop_sequences(self, stop: Optional[List[str]]) -> List[str]:
        merged = list(stop or [])
        for s in self.config.extra_stop:
            if s not in merged:
                merged.append(s)
        return merged

    async def complete(
        self,
        prompt: str,
        on_partial: Optional[PartialCallback] = None,
        *,
        stop: Optional[List[str]] = None,
        max_tokens: Optional[int] = None,
    ) -> CompleteResponse:
        """
        Run a completion and stream chunks to ``on_partial``.

        Args:
            prompt: Fully formatted prompt text.
            on_partial: Sync or async callback invoked once per chunk, in order.
            stop: Stop sequences for this request.
            max_tokens: Generation cap; falls back to the configured output cap.

        Returns:
            CompleteResponse whose text equals the concatenated chunks. If
            ``interrupt`` was called, ``cancelled`` is True and the text holds
            whatever was generated before the interrupt.

        Raises:
            BackendBusyError: another completion is still in flight.
            BackendError: the server could not produce a completion.
        """
        if self.is_busy:
            raise BackendBusyError()

        chunks: List[str] = []
        started = time.monotonic()
        first_chunk_at: Optional[float] = None

        async def emit(chunk: str) -> None:
            nonlocal first_chunk_at
            if not chunk:
                return
            if first_chunk_at is None:
                first_chunk_at = time.monotonic()
            chunks.append(chunk)
            if on_partial is not None:
                result = on_partial(chunk)
                if inspect.isawaitable(result):
                    await result

        if max_tokens is None:
            max_tokens = self.config.max_output_tokens

        self._interrupt_requested = False
        self._inflight = asyncio.ensure_future(
            self._generate(
                prompt,
                emit,
                stop=self._stop_sequences(stop),
                max_tokens=max_tokens,
            )
        )
        try:
            stats = await self._inflight
        except asyncio.CancelledError:
            current = asyncio.current_task()
            caller_cancelled = current is not None and current.cancelling() > 0
            if not self._interrupt_requested or caller_cancelled:
                raise
            logger.info(f"{self.provider} completion interrupted after {len(chunks)} chunks")
            return CompleteResponse(
                text="".join(chunks),
                response_start_seconds=(first_chunk_at or time.monotonic()) - started,
                model_name=self.model_name,
                cancelled=True,
            )
        finally:
            self._inflight = None
            self._interrupt_requested = False

        return CompleteResponse(
            text="".join(chunks),
            response_start_seconds=(first_chunk_at or time.monotonic()) - started,
            predicted_per_second=stats.predicted_per_second,
            model_name=stats.model_name or self.model_name,
            n_predicted=stats.n_predicted,
        )

    async def interrupt(self) -> None:
        """Cancel the in-flight completion, if any. Safe to call repeatedly."""
        task = self._inflight
        if task is None or task.done():
            return
        logger.debug(f"Interrupting in-flight {self.provider} completion")
        self._interrupt_requested = True
        task.cancel()
