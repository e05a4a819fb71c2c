from .controller import Agent
from .directive import (
    DirectivePolicy,
    RecentMentionPolicy,
    TurnIntervalPolicy,
    get_directive_policy,
)
from .prompt_format import (
    ChatMLFormat,
    Llama2Format,
    PROMPT_FORMATS,
    PromptFormat,
    get_prompt_format,
)
from .status import AgentStatus, TurnEvent, transition

__all__ = [
    "Agent",
    "AgentStatus",
    "ChatMLFormat",
    "DirectivePolicy",
    "Llama2Format",
    "PROMPT_FORMATS",
    "PromptFormat",
    "RecentMentionPolicy",
    "TurnEvent",
    "TurnIntervalPolicy",
    "get_directive_policy",
    "get_prompt_format",
    "transition",
]
