"""Parley - a conversational agent controller for local language models.

Parley keeps a running, model-formatted prompt for a conversation, streams
replies from a local inference server (llama.cpp server or Ollama), and
exposes a small status state machine for serializing turns and interrupting
generation.

Example Usage:
    ```python
    from parley import Agent, BackendConfig, get_backend

    backend = get_backend(BackendConfig(provider="llama_server"))
    agent = Agent("Assistant", "", "Be terse.", backend)

    await agent.warmup()
    response = await agent.submit_turn("### User", "hi")
    print(response.text, agent.status)

    # Persist agent.running_prompt yourself to resume later
    ```
"""

from ._version import __version__
from .agent import Agent, AgentStatus, ChatMLFormat, Llama2Format
from .config import AgentSettings, Settings, load_config
from .llm import BackendConfig, BaseBackend, CompleteResponse, get_backend
from .utils import AgentEvent, BackendError, ParleyError

__all__ = [
    "Agent",
    "AgentEvent",
    "AgentSettings",
    "AgentStatus",
    "BackendConfig",
    "BackendError",
    "BaseBackend",
    "ChatMLFormat",
    "CompleteResponse",
    "Llama2Format",
    "ParleyError",
    "Settings",
    "__version__",
    "get_backend",
    "load_config",
]
