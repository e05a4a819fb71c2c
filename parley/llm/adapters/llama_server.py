import json
import logging
from typing import Any, Dict, List, Optional

import httpx  # type: ignore

from parley.constants import HEALTH_TIMEOUT_SECONDS
from parley.llm.backend_config import BackendConfig
from parley.utils.errors import BackendResponseError, BackendUnavailableError
from .base import BaseBackend, CompletionStats, Emit

logger = logging.getLogger(__name__)


class LlamaServerBackend(BaseBackend):
    """Backend for the llama.cpp HTTP server (`/completion` endpoint).

    The server streams server-sent events, one JSON object per ``data:``
    line. Each carries a ``content`` fragment; the last one has
    ``stop: true`` plus timing information and the model path.
    """

    def __init__(
        self,
        config: BackendConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(config)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def provider(self) -> str:
        return "llama_server"

    def _http(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.api_base,
                timeout=httpx.Timeout(self.config.request_timeout, connect=HEALTH_TIMEOUT_SECONDS),
                transport=self._transport,
            )
        return self._client

    def _build_payload(self, prompt: str, stop: List[str], max_tokens: Optional[int]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "prompt": prompt,
            "stream": True,
            "temperature": self.config.temperature,
            "n_predict": max_tokens if max_tokens is not None else -1,
            # Reuse the KV cache for the shared prefix of the running prompt
            "cache_prompt": True,
        }
        if stop:
            payload["stop"] = stop
        return payload

    async def _generate(
        self,
        prompt: str,
        emit: Emit,
        *,
        stop: List[str],
        max_tokens: Optional[int],
    ) -> CompletionStats:
        payload = self._build_payload(prompt, stop, max_tokens)
        stats = CompletionStats(model_name=self.model_name)
        logger.debug(f"POST /completion ({len(prompt)} prompt chars, n_predict={payload['n_predict']})")

        try:
            async with self._http().stream("POST", "/completion", json=payload) as resp:
                if not resp.is_success:
                    text = (await resp.aread()).decode(errors="replace")
                    logger.error(f"llama server /completion failed {resp.status_code}: {text}")
                    raise BackendResponseError(
                        f"llama server returned HTTP {resp.status_code}: {text[:200]}",
                        status_code=resp.status_code,
                    )
                async for line in resp.aiter_lines():
                    event = self._parse_event(line)
                    if event is None:
                        continue
                    if "error" in event:
                        raise BackendResponseError(f"llama server error: {event['error']}")
                    await emit(event.get("content") or "")
                    if event.get("stop"):
                        self._read_final_event(event, stats)
                        break
        except (httpx.ConnectError, httpx.TimeoutException, httpx.RemoteProtocolError) as e:
            raise BackendUnavailableError(
                f"Cannot reach llama server at {self.config.api_base}: {e}"
            ) from e
        except httpx.HTTPError as e:
            raise BackendResponseError(f"llama server request failed: {e}") from e

        return stats

    @staticmethod
    def _parse_event(line: str) -> Optional[Dict[str, Any]]:
        if not line or not line.startswith("data:"):
            return None
        data = line[len("data:"):].strip()
        if not data or data == "[DONE]":
            return None
        try:
            event = json.loads(data)
        except json.JSONDecodeError as e:
            raise BackendResponseError(f"Undecodable llama server event: {data[:200]}") from e
        if not isinstance(event, dict):
            raise BackendResponseError(f"Unexpected llama server event: {data[:200]}")
        return event

    @staticmethod
    def _read_final_event(event: Dict[str, Any], stats: CompletionStats) -> None:
        timings = event.get("timings") or {}
        if timings.get("predicted_per_second") is not None:
            stats.predicted_per_second = float(timings["predicted_per_second"])
        n_predicted = timings.get("predicted_n", event.get("tokens_predicted"))
        if n_predicted is not None:
            stats.n_predicted = int(n_predicted)
        if event.get("model"):
            stats.model_name = str(event["model"])

    async def health(self) -> bool:
        try:
            resp = await self._http().get("/health", timeout=HEALTH_TIMEOUT_SECONDS)
        except httpx.HTTPError as e:
            logger.debug(f"llama server health probe failed: {e}")
            return False
        return resp.status_code == 200

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
