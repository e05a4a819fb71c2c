"""Prompt text formats.

All knowledge of turn markers lives here, so the agent can be pointed at a
model that expects a different template by swapping the format object.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Type

from parley.utils.errors import ConfigError

GREETING_USER_MESSAGE = "hi"
GREETING_AGENT_REPLY = "Hello there."


class PromptFormat(ABC):
    """Builds the pieces of a running prompt."""

    name: str = ""

    @property
    @abstractmethod
    def terminator(self) -> str:
        """Marker closing a completed turn. A non-empty prompt always ends with it."""
        pass

    @abstractmethod
    def directive_block(self, directive: str) -> str:
        """The system directive wrapped in its dedicated markers."""
        pass

    @abstractmethod
    def preamble(self, directive: str, user_speaker: str, agent_tag: str) -> str:
        """Opening text for an empty prompt: directive plus a canned greeting exchange."""
        pass

    @abstractmethod
    def turn(
        self,
        speaker: str,
        message: str,
        agent_tag: str,
        directive: Optional[str] = None,
    ) -> str:
        """A user turn followed by the agent continuation marker.

        When ``directive`` is given, the directive block is emitted first.
        """
        pass

    @abstractmethod
    def stop_sequences(self, user_speaker: str) -> List[str]:
        pass


class Llama2Format(PromptFormat):
    """Llama 2 instruct format. Works acceptably across many local models."""

    name = "llama2"

    @property
    def terminator(self) -> str:
        return "</s>"

    def directive_block(self, directive: str) -> str:
        return f"<<SYS>>\n{directive}\n<</SYS>>\n\n"

    def preamble(self, directive: str, user_speaker: str, agent_tag: str) -> str:
        sys_block = self.directive_block(directive) if directive else ""
        return (
            f"<s>[INST] {sys_block}{user_speaker}: {GREETING_USER_MESSAGE} [/INST] "
            f"### {agent_tag}: {GREETING_AGENT_REPLY}{self.terminator}"
        )

    def turn(
        self,
        speaker: str,
        message: str,
        agent_tag: str,
        directive: Optional[str] = None,
    ) -> str:
        sys_block = self.directive_block(directive) if directive else ""
        return f"<s>[INST] {sys_block}{speaker}: {message} [/INST] ### {agent_tag}:"

    def stop_sequences(self, user_speaker: str) -> List[str]:
        stops = [self.terminator, "[INST]", "[/INST]", f"\n{user_speaker}:"]
        lowered = f"\n{user_speaker.lower()}:"
        if lowered not in stops:
            stops.append(lowered)
        return stops


class ChatMLFormat(PromptFormat):
    """ChatML (`<|im_start|>role ... <|im_end|>`) format."""

    name = "chatml"

    @property
    def terminator(self) -> str:
        return "<|im_end|>"

    def _block(self, role: str, content: str) -> str:
        return f"<|im_start|>{role}\n{content}{self.terminator}"

    def directive_block(self, directive: str) -> str:
        return self._block("system", directive)

    def preamble(self, directive: str, user_speaker: str, agent_tag: str) -> str:
        parts = []
        if directive:
            parts.append(self.directive_block(directive))
        parts.append(self._block("user", f"{user_speaker}: {GREETING_USER_MESSAGE}"))
        parts.append(self._block("assistant", GREETING_AGENT_REPLY))
        return "\n".join(parts)

    def turn(
        self,
        speaker: str,
        message: str,
        agent_tag: str,
        directive: Optional[str] = None,
    ) -> str:
        sys_block = f"\n{self.directive_block(directive)}" if directive else ""
        return (
            f"{sys_block}\n{self._block('user', f'{speaker}: {message}')}"
            f"\n<|im_start|>assistant\n"
        )

    def stop_sequences(self, user_speaker: str) -> List[str]:
        return [self.terminator, "<|im_start|>"]


PROMPT_FORMATS: Dict[str, Type[PromptFormat]] = {
    Llama2Format.name: Llama2Format,
    ChatMLFormat.name: ChatMLFormat,
}


def get_prompt_format(name: str) -> PromptFormat:
    try:
        return PROMPT_FORMATS[name]()
    except KeyError:
        raise ConfigError(
            f"Unknown prompt format: {name!r}. "
            f"Expected one of: {', '.join(sorted(PROMPT_FORMATS))}"
        ) from None
