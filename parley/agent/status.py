"""Agent status state machine.

    COLD ──submit──▶ COLD_PROCESSING ──complete──▶ READY
     ▲                    │ cancel / fail              │ submit
     └────────────────────┘                            ▼
    READY ◀──────complete / cancel / fail────── PROCESSING

Warmup never enters a processing state: success moves COLD or READY to
READY, failure moves either to COLD.
"""

from enum import Enum
from typing import Dict, Tuple

from parley.utils.errors import InvalidTransitionError


class AgentStatus(Enum):
    COLD = "cold"                        # never successfully warmed
    COLD_PROCESSING = "cold_processing"  # first-ever generation in flight
    READY = "ready"                      # warmed, idle
    PROCESSING = "processing"            # generation in flight after a prior success

    @property
    def is_busy(self) -> bool:
        """True while a generation is in flight."""
        return self in (AgentStatus.COLD_PROCESSING, AgentStatus.PROCESSING)

    @property
    def is_warm(self) -> bool:
        return self in (AgentStatus.READY, AgentStatus.PROCESSING)


class TurnEvent(Enum):
    SUBMIT = "submit"
    COMPLETE = "complete"
    CANCEL = "cancel"
    FAIL = "fail"
    WARMUP_OK = "warmup_ok"
    WARMUP_FAILED = "warmup_failed"


_TRANSITIONS: Dict[Tuple[AgentStatus, TurnEvent], AgentStatus] = {
    (AgentStatus.COLD, TurnEvent.SUBMIT): AgentStatus.COLD_PROCESSING,
    (AgentStatus.READY, TurnEvent.SUBMIT): AgentStatus.PROCESSING,

    (AgentStatus.COLD_PROCESSING, TurnEvent.COMPLETE): AgentStatus.READY,
    (AgentStatus.PROCESSING, TurnEvent.COMPLETE): AgentStatus.READY,

    # The first-ever turn never proved the backend works
    (AgentStatus.COLD_PROCESSING, TurnEvent.CANCEL): AgentStatus.COLD,
    (AgentStatus.PROCESSING, TurnEvent.CANCEL): AgentStatus.READY,
    (AgentStatus.COLD_PROCESSING, TurnEvent.FAIL): AgentStatus.COLD,
    (AgentStatus.PROCESSING, TurnEvent.FAIL): AgentStatus.READY,

    (AgentStatus.COLD, TurnEvent.WARMUP_OK): AgentStatus.READY,
    (AgentStatus.READY, TurnEvent.WARMUP_OK): AgentStatus.READY,
    (AgentStatus.COLD, TurnEvent.WARMUP_FAILED): AgentStatus.COLD,
    (AgentStatus.READY, TurnEvent.WARMUP_FAILED): AgentStatus.COLD,
}


def transition(status: AgentStatus, event: TurnEvent) -> AgentStatus:
    """Return the status reached by applying ``event`` in ``status``.

    Raises:
        InvalidTransitionError: the pair is not in the transition table.
    """
    try:
        return _TRANSITIONS[(status, event)]
    except KeyError:
        raise InvalidTransitionError(status.value, event.value) from None
