from .errors import (
    AgentBusyError,
    BackendBusyError,
    BackendError,
    BackendResponseError,
    BackendUnavailableError,
    ConfigError,
    InvalidTransitionError,
    ParleyError,
)
from .events import AgentEvent, EventBus, EventPriority
from .logs import setup_logger

__all__ = [
    "AgentBusyError",
    "AgentEvent",
    "BackendBusyError",
    "BackendError",
    "BackendResponseError",
    "BackendUnavailableError",
    "ConfigError",
    "EventBus",
    "EventPriority",
    "InvalidTransitionError",
    "ParleyError",
    "setup_logger",
]
