import logging
from typing import Any, Dict, List, Optional

import httpx  # type: ignore
import ollama  # type: ignore

from parley.llm.backend_config import BackendConfig
from parley.utils.errors import BackendResponseError, BackendUnavailableError, ConfigError
from .base import BaseBackend, CompletionStats, Emit

logger = logging.getLogger(__name__)


class OllamaBackend(BaseBackend):
    """Backend using the official `ollama` Python library.

    Requests run in raw mode so Ollama does not wrap the already formatted
    running prompt in the model's own chat template.
    """

    def __init__(self, config: BackendConfig):
        super().__init__(config)
        if not config.model:
            raise ConfigError("The ollama backend needs a model name (backend.model)")
        self.client = ollama.AsyncClient(host=config.api_base, timeout=config.request_timeout)

    @property
    def provider(self) -> str:
        return "ollama"

    def _options(self, stop: List[str], max_tokens: Optional[int]) -> Dict[str, Any]:
        options: Dict[str, Any] = {"temperature": self.config.temperature}
        if max_tokens is not None:
            options["num_predict"] = max_tokens
        if stop:
            options["stop"] = stop
        return options

    async def _generate(
        self,
        prompt: str,
        emit: Emit,
        *,
        stop: List[str],
        max_tokens: Optional[int],
    ) -> CompletionStats:
        stats = CompletionStats(model_name=self.model_name)
        try:
            response = await self.client.generate(
                model=self.config.model,
                prompt=prompt,
                raw=True,
                stream=True,
                options=self._options(stop, max_tokens),
            )
            async for chunk in response:
                await emit(chunk.get("response") or "")
                if chunk.get("done"):
                    self._read_final_chunk(chunk, stats)
        except ollama.ResponseError as e:
            raise BackendResponseError(
                f"Ollama error: {e.error}", status_code=getattr(e, "status_code", None)
            ) from e
        except (ConnectionError, httpx.ConnectError, httpx.TimeoutException) as e:
            raise BackendUnavailableError(
                f"Cannot reach Ollama at {self.config.api_base}. Is `ollama serve` running? ({e})"
            ) from e
        except httpx.HTTPError as e:
            raise BackendResponseError(f"Ollama request failed: {e}") from e
        return stats

    @staticmethod
    def _read_final_chunk(chunk: Any, stats: CompletionStats) -> None:
        eval_count = chunk.get("eval_count")
        eval_duration = chunk.get("eval_duration")  # nanoseconds
        if eval_count is not None:
            stats.n_predicted = int(eval_count)
            if eval_duration:
                stats.predicted_per_second = eval_count / (eval_duration / 1e9)
        if chunk.get("model"):
            stats.model_name = str(chunk.get("model"))

    async def health(self) -> bool:
        try:
            await self.client.list()
        except (ollama.ResponseError, ConnectionError, httpx.HTTPError) as e:
            logger.debug(f"Ollama health probe failed: {e}")
            return False
        return True
