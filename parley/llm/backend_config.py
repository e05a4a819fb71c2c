from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from parley.constants import (
    DEFAULT_LLAMA_SERVER_URL,
    DEFAULT_OLLAMA_URL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_TEMPERATURE,
    WARMUP_MAX_TOKENS,
)

BackendProvider = Literal['llama_server', 'ollama']


@dataclass
class BackendConfig:
    """Configuration for a local inference backend."""
    provider: BackendProvider = 'llama_server'
    # Model identifier; llama.cpp serves a single model and may leave this empty.
    model: Optional[str] = None
    api_base: Optional[str] = None
    temperature: float = DEFAULT_TEMPERATURE
    # Max tokens generated per turn; None lets the server decide.
    max_output_tokens: Optional[int] = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    warmup_max_tokens: int = WARMUP_MAX_TOKENS
    # Extra stop sequences on top of the ones the prompt format supplies.
    extra_stop: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.api_base is None:
            self.api_base = self.default_api_base(self.provider)
        self.api_base = self.api_base.rstrip("/")

    @staticmethod
    def default_api_base(provider: str) -> str:
        return DEFAULT_OLLAMA_URL if provider == "ollama" else DEFAULT_LLAMA_SERVER_URL

    def get_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {
            "provider": self.provider,
            "api_base": self.api_base,
            "temperature": self.temperature,
            "request_timeout": self.request_timeout,
            "warmup_max_tokens": self.warmup_max_tokens,
        }
        if self.model:
            config["model"] = self.model
        if self.max_output_tokens is not None:
            config["max_output_tokens"] = self.max_output_tokens
        if self.extra_stop:
            config["extra_stop"] = list(self.extra_stop)
        return config

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "BackendConfig":
        data = dict(data or {})
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})

