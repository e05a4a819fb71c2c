"""
Event system for Parley agents.

Each Agent owns an EventBus and publishes its observable state changes
(status, pending output, prompt resets) through it. Presentation layers
subscribe instead of polling agent attributes.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, Union
from collections import defaultdict
from enum import Enum, auto
import asyncio
import inspect
import logging

logger = logging.getLogger(__name__)

# Type for event data - could be any type
T = TypeVar('T')
# Type for event handlers - could be synchronous or asynchronous
EventHandler = Union[Callable[[T], None], Callable[[T], Awaitable[None]]]


class EventPriority(Enum):
    """Priority levels for event handling."""
    HIGH = auto()    # State bookkeeping that other handlers may rely on
    NORMAL = auto()  # Standard observers
    LOW = auto()     # Logging, metrics


class AgentEvent(Enum):
    """Events published by an Agent."""
    STATUS_CHANGED = "status_changed"    # {"agent_id", "old", "new"}
    PENDING_OUTPUT = "pending_output"    # {"agent_id", "chunk", "text", "final"}
    PROMPT_RESET = "prompt_reset"        # {"agent_id", "prompt"}


class EventBus:
    """
    Per-agent event bus.

    Features:
    - Supports both sync and async subscribers
    - Prioritized event handling
    - Publications are serialized, so handlers observe events in publish order
    """

    def __init__(self):
        self._handlers: Dict[str, Dict[EventPriority, List[EventHandler]]] = defaultdict(
            lambda: {
                EventPriority.HIGH: [],
                EventPriority.NORMAL: [],
                EventPriority.LOW: []
            }
        )
        self._lock = asyncio.Lock()

    @staticmethod
    def _key(event_type: Union[str, AgentEvent]) -> str:
        return event_type.value if isinstance(event_type, AgentEvent) else event_type

    def subscribe(
        self,
        event_type: Union[str, AgentEvent],
        handler: EventHandler[T],
        priority: EventPriority = EventPriority.NORMAL
    ) -> None:
        """
        Subscribe to an event with a handler function.

        Args:
            event_type: The name/type of the event
            handler: The function to call when event occurs (sync or async)
            priority: Execution priority for this handler
        """
        key = self._key(event_type)
        self._handlers[key][priority].append(handler)
        logger.debug(f"Subscribed to {key} with {priority.name} priority")

    def unsubscribe(self, event_type: Union[str, AgentEvent], handler: EventHandler[T]) -> None:
        """
        Unsubscribe a handler from an event.

        Args:
            event_type: The name/type of the event
            handler: The handler to remove
        """
        key = self._key(event_type)
        if key not in self._handlers:
            return

        for priority in EventPriority:
            self._handlers[key][priority] = [
                h for h in self._handlers[key][priority] if h != handler
            ]

        logger.debug(f"Unsubscribed from {key}")

    async def publish(self, event_type: Union[str, AgentEvent], data: Optional[Any] = None) -> None:
        """
        Publish an event to all subscribers.

        Handler errors are logged and do not stop delivery to other handlers
        or propagate into the publisher.
        """
        key = self._key(event_type)
        if key not in self._handlers:
            return

        async with self._lock:
            for priority in [EventPriority.HIGH, EventPriority.NORMAL, EventPriority.LOW]:
                for handler in list(self._handlers[key][priority]):
                    try:
                        result = handler(data)
                        if inspect.isawaitable(result):
                            await result
                    except Exception as e:
                        logger.error(f"Error in event handler for {key}: {e}")

    def clear_all_handlers(self) -> None:
        """Clear all event handlers - useful for testing."""
        self._handlers.clear()

    def get_subscriber_count(self, event_type: Union[str, AgentEvent]) -> int:
        """Get the number of subscribers for an event type."""
        key = self._key(event_type)
        if key not in self._handlers:
            return 0
        return sum(len(self._handlers[key][priority]) for priority in EventPriority)
