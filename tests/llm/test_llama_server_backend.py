"""Tests for the llama.cpp server backend using an in-process httpx transport."""

import asyncio
import json

import httpx
import pytest

from parley.llm.adapters.llama_server import LlamaServerBackend
from parley.llm.backend_config import BackendConfig
from parley.utils.errors import BackendResponseError, BackendUnavailableError


def sse_body(*events) -> bytes:
    return "".join(f"data: {json.dumps(e)}\n\n" for e in events).encode()


def make_backend(handler, **config_kwargs) -> LlamaServerBackend:
    config = BackendConfig(provider="llama_server", api_base="http://llama.test", **config_kwargs)
    return LlamaServerBackend(config, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_streams_chunks_and_reads_final_stats():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        body = sse_body(
            {"content": "Hel", "stop": False},
            {"content": "lo.", "stop": False},
            {
                "content": "",
                "stop": True,
                "model": "/models/llama-2-7b.gguf",
                "tokens_predicted": 2,
                "timings": {"predicted_per_second": 31.5, "predicted_n": 2},
            },
        )
        return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

    backend = make_backend(handler)
    chunks = []
    response = await backend.complete("PROMPT", chunks.append, stop=["</s>"])
    await backend.aclose()

    assert chunks == ["Hel", "lo."]
    assert response.text == "Hello."
    assert response.predicted_per_second == 31.5
    assert response.n_predicted == 2
    assert response.model_name == "/models/llama-2-7b.gguf"
    assert response.response_start_seconds >= 0
    assert not response.cancelled

    payload = requests[0]
    assert payload["prompt"] == "PROMPT"
    assert payload["stream"] is True
    assert payload["cache_prompt"] is True
    assert payload["n_predict"] == -1
    assert payload["stop"] == ["</s>"]
    assert payload["temperature"] == 0.7


@pytest.mark.asyncio
async def test_max_tokens_and_extra_stop_are_sent():
    requests = []

    def handler(request):
        requests.append(json.loads(request.content))
        return httpx.Response(200, content=sse_body({"content": "", "stop": True}))

    backend = make_backend(handler, extra_stop=["\nUser:"])
    response = await backend.complete("P", stop=["</s>"], max_tokens=1)
    await backend.aclose()

    assert response.text == ""
    assert requests[0]["n_predict"] == 1
    assert requests[0]["stop"] == ["</s>", "\nUser:"]


@pytest.mark.asyncio
async def test_http_error_status_raises_response_error():
    backend = make_backend(lambda request: httpx.Response(500, text="model crashed"))

    with pytest.raises(BackendResponseError) as exc_info:
        await backend.complete("P")
    await backend.aclose()

    assert exc_info.value.status_code == 500
    assert "model crashed" in str(exc_info.value)
    assert not backend.is_busy


@pytest.mark.asyncio
async def test_error_event_raises_response_error():
    backend = make_backend(
        lambda request: httpx.Response(200, content=sse_body({"error": {"message": "context full"}}))
    )

    with pytest.raises(BackendResponseError, match="context full"):
        await backend.complete("P")
    await backend.aclose()


@pytest.mark.asyncio
async def test_garbled_event_raises_response_error():
    backend = make_backend(lambda request: httpx.Response(200, content=b"data: {not json\n\n"))

    with pytest.raises(BackendResponseError):
        await backend.complete("P")
    await backend.aclose()


@pytest.mark.asyncio
async def test_connection_failure_raises_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    backend = make_backend(handler)

    with pytest.raises(BackendUnavailableError) as exc_info:
        await backend.complete("P")
    await backend.aclose()

    assert exc_info.value.code == "BACKEND_UNAVAILABLE"
    assert "http://llama.test" in str(exc_info.value)


@pytest.mark.asyncio
async def test_interrupt_returns_partial_text():
    entered = asyncio.Event()

    class SlowStream(httpx.AsyncByteStream):
        async def __aiter__(self):
            yield b'data: {"content": "partial", "stop": false}\n\n'
            entered.set()
            await asyncio.sleep(3600)
            yield b""

    def handler(request):
        return httpx.Response(200, stream=SlowStream())

    backend = make_backend(handler)
    chunks = []
    task = asyncio.create_task(backend.complete("P", chunks.append))
    await entered.wait()
    # Let the consumer process the first line
    for _ in range(5):
        await asyncio.sleep(0)
    await backend.interrupt()
    response = await task
    await backend.aclose()

    assert response.cancelled
    assert response.text == "".join(chunks)
    assert not backend.is_busy


@pytest.mark.asyncio
async def test_health():
    def handler(request):
        assert request.url.path == "/health"
        return httpx.Response(200, json={"status": "ok"})

    backend = make_backend(handler)
    assert await backend.health() is True
    await backend.aclose()

    down = make_backend(lambda request: httpx.Response(503, json={"status": "loading model"}))
    assert await down.health() is False
    await down.aclose()


@pytest.mark.asyncio
async def test_health_connection_failure():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    backend = make_backend(handler)
    assert await backend.health() is False
    await backend.aclose()
