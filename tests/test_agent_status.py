import pytest

from parley.agent.status import AgentStatus, TurnEvent, transition
from parley.utils.errors import InvalidTransitionError


@pytest.mark.parametrize(
    "status,event,expected",
    [
        (AgentStatus.COLD, TurnEvent.SUBMIT, AgentStatus.COLD_PROCESSING),
        (AgentStatus.READY, TurnEvent.SUBMIT, AgentStatus.PROCESSING),
        (AgentStatus.COLD_PROCESSING, TurnEvent.COMPLETE, AgentStatus.READY),
        (AgentStatus.PROCESSING, TurnEvent.COMPLETE, AgentStatus.READY),
        (AgentStatus.COLD_PROCESSING, TurnEvent.CANCEL, AgentStatus.COLD),
        (AgentStatus.PROCESSING, TurnEvent.CANCEL, AgentStatus.READY),
        (AgentStatus.COLD_PROCESSING, TurnEvent.FAIL, AgentStatus.COLD),
        (AgentStatus.PROCESSING, TurnEvent.FAIL, AgentStatus.READY),
        (AgentStatus.COLD, TurnEvent.WARMUP_OK, AgentStatus.READY),
        (AgentStatus.READY, TurnEvent.WARMUP_FAILED, AgentStatus.COLD),
    ],
)
def test_valid_transitions(status, event, expected):
    assert transition(status, event) is expected


@pytest.mark.parametrize(
    "status,event",
    [
        (AgentStatus.PROCESSING, TurnEvent.SUBMIT),
        (AgentStatus.COLD_PROCESSING, TurnEvent.SUBMIT),
        (AgentStatus.READY, TurnEvent.COMPLETE),
        (AgentStatus.COLD, TurnEvent.CANCEL),
        (AgentStatus.PROCESSING, TurnEvent.WARMUP_OK),
    ],
)
def test_invalid_transitions_raise(status, event):
    with pytest.raises(InvalidTransitionError) as exc_info:
        transition(status, event)
    assert exc_info.value.code == "INVALID_TRANSITION"


def test_busy_and_warm_flags():
    assert [s for s in AgentStatus if s.is_busy] == [AgentStatus.COLD_PROCESSING, AgentStatus.PROCESSING]
    assert [s for s in AgentStatus if s.is_warm] == [AgentStatus.READY, AgentStatus.PROCESSING]
