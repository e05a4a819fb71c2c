import asyncio
import os
import sys
from pathlib import Path
from typing import List, Optional

import pytest

# Keep test runs from writing logs into the user's home directory
os.environ.setdefault("PARLEY_LOG_DIR", str(Path(__file__).resolve().parent.parent / "tmp_logs"))

# Add the project root to the Python path so that tests can perform
# absolute imports like 'from parley.agent import ...'
# This is executed by pytest before it collects any tests.
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from parley.llm.adapters.base import BaseBackend, CompletionStats  # noqa: E402
from parley.llm.backend_config import BackendConfig  # noqa: E402


class ScriptedBackend(BaseBackend):
    """In-process backend that replays a fixed list of chunks.

    ``blocking_calls`` makes that many calls stop after their chunks and wait
    on ``release`` (or an interrupt); ``started`` is set when they do.
    """

    def __init__(
        self,
        chunks: Optional[List[str]] = None,
        error: Optional[Exception] = None,
        blocking_calls: int = 0,
        model: str = "test-model",
    ):
        super().__init__(BackendConfig(provider="llama_server", model=model))
        self.chunks = list(chunks or [])
        self.error = error
        self.blocking_calls = blocking_calls
        self.calls: List[dict] = []
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    @property
    def provider(self) -> str:
        return "scripted"

    async def _generate(self, prompt, emit, *, stop, max_tokens):
        self.calls.append({"prompt": prompt, "stop": stop, "max_tokens": max_tokens})
        for chunk in self.chunks:
            await emit(chunk)
            await asyncio.sleep(0)
        if self.blocking_calls > 0:
            self.blocking_calls -= 1
            self.started.set()
            await self.release.wait()
        if self.error is not None:
            raise self.error
        return CompletionStats(predicted_per_second=42.0, n_predicted=len(self.chunks))

    async def health(self) -> bool:
        return True


@pytest.fixture
def scripted_backend():
    """Factory for ScriptedBackend instances."""
    return ScriptedBackend
