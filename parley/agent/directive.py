from abc import ABC, abstractmethod
from typing import Optional

from parley.constants import DEFAULT_DIRECTIVE_INTERVAL, DIRECTIVE_SCAN_WINDOW
from parley.utils.errors import ConfigError


class DirectivePolicy(ABC):
    """Decides whether the next turn re-emits the system directive."""

    @abstractmethod
    def should_inject(self, running_prompt: str, directive: str) -> bool:
        pass

    def record(self, directive: str, injected: bool) -> None:
        """Called once per appended turn (and for the seeded preamble)."""
        pass

    def reset(self) -> None:
        """Called when the caller replaces the running prompt."""
        pass


class RecentMentionPolicy(DirectivePolicy):
    """Re-inject unless the directive text appears in the prompt's tail.

    Matching is on the literal text, so editing the directive makes the old
    mention invisible and the new text is injected on the next turn.
    """

    def __init__(self, window: int = DIRECTIVE_SCAN_WINDOW):
        self.window = window

    def should_inject(self, running_prompt: str, directive: str) -> bool:
        if not directive:
            return False
        return directive not in running_prompt[-self.window:]


class TurnIntervalPolicy(DirectivePolicy):
    """Re-inject every ``every`` turns, or as soon as the directive changes."""

    def __init__(self, every: int = DEFAULT_DIRECTIVE_INTERVAL):
        if every < 1:
            raise ConfigError(f"Directive interval must be >= 1, got {every}")
        self.every = every
        self._turns_since: Optional[int] = None
        self._last_directive: Optional[str] = None

    def should_inject(self, running_prompt: str, directive: str) -> bool:
        if not directive:
            return False
        if self._turns_since is None or directive != self._last_directive:
            # Nothing known about a prompt we did not build; scan it once.
            if self._turns_since is None and directive in running_prompt:
                self._turns_since = 0
                self._last_directive = directive
                return False
            return True
        return self._turns_since + 1 >= self.every

    def record(self, directive: str, injected: bool) -> None:
        if injected:
            self._turns_since = 0
            self._last_directive = directive
        elif self._turns_since is not None:
            self._turns_since += 1

    def reset(self) -> None:
        self._turns_since = None
        self._last_directive = None


def get_directive_policy(name: str, **kwargs) -> DirectivePolicy:
    if name == "recent_mention":
        return RecentMentionPolicy(window=kwargs.get("window", DIRECTIVE_SCAN_WINDOW))
    if name == "turn_interval":
        return TurnIntervalPolicy(every=kwargs.get("every", DEFAULT_DIRECTIVE_INTERVAL))
    raise ConfigError(
        f"Unknown directive policy: {name!r}. Expected 'recent_mention' or 'turn_interval'"
    )
