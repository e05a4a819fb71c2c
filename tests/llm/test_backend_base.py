"""Tests for the shared completion logic in BaseBackend."""

import asyncio

import pytest

from parley.llm.adapters.base import CompleteResponse
from parley.llm.backend_config import BackendConfig
from parley.utils.errors import BackendBusyError, BackendUnavailableError


@pytest.mark.asyncio
async def test_text_is_concatenation_of_partials(scripted_backend):
    backend = scripted_backend(chunks=["a", "", "b", "c"])
    seen = []

    response = await backend.complete("p", seen.append)

    assert seen == ["a", "b", "c"]
    assert response.text == "abc"
    assert response.predicted_per_second == 42.0
    assert response.model_name == "test-model"


@pytest.mark.asyncio
async def test_async_partial_callback_is_awaited(scripted_backend):
    backend = scripted_backend(chunks=["x", "y"])
    seen = []

    async def on_partial(chunk):
        await asyncio.sleep(0)
        seen.append(chunk)

    await backend.complete("p", on_partial)

    assert seen == ["x", "y"]


@pytest.mark.asyncio
async def test_max_tokens_defaults_to_configured_cap(scripted_backend):
    backend = scripted_backend()
    backend.config.max_output_tokens = 64

    await backend.complete("p")
    await backend.complete("p", max_tokens=1)

    assert [c["max_tokens"] for c in backend.calls] == [64, 1]


@pytest.mark.asyncio
async def test_second_request_while_busy_is_rejected(scripted_backend):
    backend = scripted_backend(chunks=["x"], blocking_calls=1)
    first = asyncio.create_task(backend.complete("p"))
    await backend.started.wait()

    assert backend.is_busy
    with pytest.raises(BackendBusyError):
        await backend.complete("q")

    backend.release.set()
    response = await first
    assert response.text == "x"
    assert not backend.is_busy


@pytest.mark.asyncio
async def test_interrupt_returns_cancelled_response(scripted_backend):
    backend = scripted_backend(chunks=["par", "tial"], blocking_calls=1)
    task = asyncio.create_task(backend.complete("p"))
    await backend.started.wait()

    await backend.interrupt()
    response = await task

    assert isinstance(response, CompleteResponse)
    assert response.cancelled
    assert response.text == "partial"
    assert not backend.is_busy


@pytest.mark.asyncio
async def test_interrupt_when_idle_is_noop(scripted_backend):
    backend = scripted_backend(chunks=["x"])
    await backend.interrupt()

    response = await backend.complete("p")

    assert not response.cancelled


@pytest.mark.asyncio
async def test_caller_cancellation_propagates(scripted_backend):
    backend = scripted_backend(blocking_calls=1)
    task = asyncio.create_task(backend.complete("p"))
    await backend.started.wait()

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert not backend.is_busy


@pytest.mark.asyncio
async def test_caller_cancellation_wins_over_pending_interrupt(scripted_backend):
    backend = scripted_backend(chunks=["x"], blocking_calls=1)
    task = asyncio.create_task(backend.complete("p"))
    await backend.started.wait()

    await backend.interrupt()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert not backend.is_busy


@pytest.mark.asyncio
async def test_errors_propagate_and_clear_inflight(scripted_backend):
    backend = scripted_backend(error=BackendUnavailableError("down"))

    with pytest.raises(BackendUnavailableError):
        await backend.complete("p")
    assert not backend.is_busy


def test_config_defaults_per_provider():
    assert BackendConfig().api_base == "http://127.0.0.1:8690"
    assert BackendConfig(provider="ollama").api_base == "http://localhost:11434"
    assert BackendConfig(api_base="http://host:1234/").api_base == "http://host:1234"


def test_config_from_dict_ignores_unknown_keys():
    config = BackendConfig.from_dict({"provider": "ollama", "model": "m", "colour": "blue"})
    assert config.provider == "ollama"
    assert config.get_config() == {
        "provider": "ollama",
        "api_base": "http://localhost:11434",
        "temperature": config.temperature,
        "request_timeout": config.request_timeout,
        "warmup_max_tokens": config.warmup_max_tokens,
        "model": "m",
    }

