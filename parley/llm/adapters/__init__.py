import logging

__all__ = [
    "BaseBackend",
    "CompleteResponse",
    "CompletionStats",
    "get_backend",
]

from parley.llm.backend_config import BackendConfig
from parley.utils.errors import ConfigError
from .base import BaseBackend, CompleteResponse, CompletionStats
# Lazy import the concrete backends so `ollama` is only loaded when used
# from .llama_server import LlamaServerBackend
# from .ollama import OllamaBackend

_BACKENDS = {
    "llama_server": ("llama_server", "LlamaServerBackend"),
    "ollama": ("ollama", "OllamaBackend"),
}


def get_backend(config: BackendConfig) -> BaseBackend:
    """Instantiate the backend named by ``config.provider``."""
    if config.provider not in _BACKENDS:
        raise ConfigError(
            f"Unknown backend provider: {config.provider!r}. "
            f"Expected one of: {', '.join(sorted(_BACKENDS))}"
        )
    module_name, class_name = _BACKENDS[config.provider]
    backend_module = __import__(
        f"parley.llm.adapters.{module_name}", fromlist=[class_name]
    )
    backend_class = getattr(backend_module, class_name)
    logger = logging.getLogger(__name__)
    logger.info(f"Using {config.provider} backend at {config.api_base}")
    logger.debug(f"Backend config: {config.get_config()}")
    return backend_class(config)

