from .adapters import BaseBackend, CompleteResponse, CompletionStats, get_backend
from .backend_config import BackendConfig
from .stream_handler import ChunkPump

__all__ = [
    "BackendConfig",
    "BaseBackend",
    "ChunkPump",
    "CompleteResponse",
    "CompletionStats",
    "get_backend",
]
