import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ParleyError(Exception):
    """Base exception for all Parley errors with structured error information."""

    def __init__(
        self,
        message: str,
        code: str = "PARLEY_ERROR",
        recoverable: bool = True,
        suggested_action: str = "retry",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.code = code
        self.recoverable = recoverable
        self.suggested_action = suggested_action
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for callers that persist or display it."""
        return {
            "code": self.code,
            "message": str(self),
            "recoverable": self.recoverable,
            "suggested_action": self.suggested_action,
            "details": self.details
        }


class ConfigError(ParleyError):
    """Configuration could not be parsed or names an unknown option."""
    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            code="CONFIG_ERROR",
            recoverable=False,
            suggested_action="fix_config",
            **kwargs
        )


# Backend failures. Cancellation is deliberately not part of this hierarchy.
class BackendError(ParleyError):
    """The inference backend failed to produce a completion."""
    def __init__(self, message: str, code: str = "BACKEND_ERROR", **kwargs):
        kwargs.setdefault("suggested_action", "retry")
        super().__init__(message, code=code, **kwargs)


class BackendUnavailableError(BackendError):
    """The inference server could not be reached or timed out."""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("suggested_action", "check_server")
        super().__init__(message, code="BACKEND_UNAVAILABLE", **kwargs)


class BackendResponseError(BackendError):
    """The inference server answered with an error or an unreadable stream."""
    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        details = kwargs.pop("details", {}) or {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, code="BACKEND_RESPONSE_ERROR", details=details, **kwargs)
        self.status_code = status_code


class BackendBusyError(BackendError):
    """A second completion was issued while one is still in flight."""
    def __init__(self, message: str = "A completion is already in flight", **kwargs):
        super().__init__(
            message,
            code="BACKEND_BUSY",
            recoverable=False,
            suggested_action="interrupt_then_resubmit",
            **kwargs
        )


class AgentBusyError(ParleyError):
    """An operation that needs an idle agent was attempted mid-generation."""
    def __init__(self, agent_id: str, status: str, **kwargs):
        super().__init__(
            f"Agent '{agent_id}' is busy ({status})",
            code="AGENT_BUSY",
            recoverable=True,
            suggested_action="interrupt_then_retry",
            details={"agent_id": agent_id, "status": status},
            **kwargs
        )


class InvalidTransitionError(ParleyError):
    """A status transition was requested that the state machine does not allow."""
    def __init__(self, status: str, event: str, **kwargs):
        super().__init__(
            f"Cannot apply '{event}' while in status '{status}'",
            code="INVALID_TRANSITION",
            recoverable=False,
            suggested_action="report_bug",
            details={"status": status, "event": event},
            **kwargs
        )
