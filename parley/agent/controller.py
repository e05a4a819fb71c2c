import asyncio
import logging
from typing import Any, Dict, Optional, TYPE_CHECKING

from parley.constants import USER_SPEAKER_ID
from parley.llm.adapters import BaseBackend, CompleteResponse, get_backend
from parley.llm.stream_handler import ChunkPump
from parley.utils.errors import AgentBusyError, BackendError
from parley.utils.events import AgentEvent, EventBus
from .directive import DirectivePolicy, RecentMentionPolicy, get_directive_policy
from .prompt_format import Llama2Format, PromptFormat, get_prompt_format
from .status import AgentStatus, TurnEvent, transition

if TYPE_CHECKING:
    from parley.config import Settings

logger = logging.getLogger(__name__)


class Agent:
    """
    Conversational agent bound to one local inference backend.

    The agent owns the running prompt: the model-formatted transcript that is
    sent in full on every turn. Each turn appends a user line, streams the
    model's reply into both the running prompt and ``pending_output``, and
    closes the turn with the format's terminator.

    At most one generation runs per agent. Submitting while busy interrupts
    the in-flight turn and runs the new one after it has ended. Callers
    persist the returned response and ``running_prompt`` themselves.

    Attributes:
        id (str): Caller-assigned identity, also the author tag of agent turns.
        system_directive (str): Standing instruction; may change between turns.
        pending_output (str): Partial reply of the current turn.
        last_warmup_error (Optional[BackendError]): Failure of the latest warmup.
        events (EventBus): Publishes AgentEvent notifications.
    """

    def __init__(
        self,
        identity: str,
        prompt: str,
        system_directive: str,
        backend: BaseBackend,
        *,
        prompt_format: Optional[PromptFormat] = None,
        directive_policy: Optional[DirectivePolicy] = None,
        user_speaker: str = USER_SPEAKER_ID,
    ):
        self.id = identity
        self.system_directive = system_directive
        self.backend = backend
        self.prompt_format = prompt_format or Llama2Format()
        self.directive_policy = directive_policy or RecentMentionPolicy()
        self.user_speaker = user_speaker

        self.pending_output = ""
        self.last_warmup_error: Optional[BackendError] = None
        self.events = EventBus()

        self._prompt = prompt
        self._status = AgentStatus.COLD
        # Serializes turns and warmups so the backend never sees two requests
        self._turn_lock = asyncio.Lock()
        self._interrupt_requested = False

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        backend: Optional[BaseBackend] = None,
        prompt: str = "",
    ) -> "Agent":
        agent_settings = settings.agent
        policy = get_directive_policy(
            agent_settings.directive_policy,
            window=agent_settings.directive_window,
            every=agent_settings.directive_interval,
        )
        return cls(
            agent_settings.identity,
            prompt,
            agent_settings.system_directive,
            backend or get_backend(settings.backend),
            prompt_format=get_prompt_format(agent_settings.prompt_format),
            directive_policy=policy,
            user_speaker=agent_settings.user_speaker,
        )

    # --- Observable state ---

    @property
    def status(self) -> AgentStatus:
        return self._status

    @property
    def running_prompt(self) -> str:
        return self._prompt

    @property
    def is_busy(self) -> bool:
        return self._status.is_busy

    def snapshot(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self._status.value,
            "prompt_chars": len(self._prompt),
            "system_directive": self.system_directive,
            "pending_output": self.pending_output,
            "last_warmup_error": str(self.last_warmup_error) if self.last_warmup_error else None,
        }

    async def reset_prompt(self, prompt: str = "") -> None:
        """Replace the running prompt, e.g. when switching conversations."""
        if self._status.is_busy:
            raise AgentBusyError(self.id, self._status.value)
        self._prompt = prompt
        self.directive_policy.reset()
        logger.debug(f"Agent {self.id} prompt reset ({len(prompt)} chars)")
        await self.events.publish(AgentEvent.PROMPT_RESET, {"agent_id": self.id, "prompt": prompt})

    async def _apply(self, event: TurnEvent) -> None:
        old = self._status
        new = transition(old, event)
        if new is old:
            return
        self._status = new
        logger.debug(f"Agent {self.id} status {old.value} -> {new.value} ({event.value})")
        await self.events.publish(
            AgentEvent.STATUS_CHANGED, {"agent_id": self.id, "old": old, "new": new}
        )

    async def _publish_pending(self, chunk: str, final: bool = False) -> None:
        await self.events.publish(
            AgentEvent.PENDING_OUTPUT,
            {"agent_id": self.id, "chunk": chunk, "text": self.pending_output, "final": final},
        )

    async def _apply_chunk(self, chunk: str) -> None:
        self._prompt += chunk
        self.pending_output += chunk
        await self._publish_pending(chunk)

    # --- Prompt construction ---

    def _terminate_turn(self) -> None:
        terminator = self.prompt_format.terminator
        if self._prompt and not self._prompt.endswith(terminator):
            self._prompt += terminator

    def _prepare_turn(self, speaker_id: str, message: str) -> str:
        """Grow the running prompt by one user turn; return the pre-turn prompt."""
        fmt = self.prompt_format
        if not self._prompt:
            self._prompt = fmt.preamble(self.system_directive, self.user_speaker, self.id)
            self.directive_policy.record(self.system_directive, injected=bool(self.system_directive))
        self._terminate_turn()
        checkpoint = self._prompt

        inject = self.directive_policy.should_inject(self._prompt, self.system_directive)
        self._prompt += fmt.turn(
            speaker_id,
            message,
            self.id,
            directive=self.system_directive if inject else None,
        )
        self.directive_policy.record(self.system_directive, injected=inject)
        if inject:
            logger.debug(f"Agent {self.id} re-injecting system directive")
        return checkpoint

    # --- Turn protocol ---

    async def submit_turn(self, speaker_id: str, message: str) -> CompleteResponse:
        """
        Listen, think, respond: run one turn and return the model's reply.

        The reply is streamed into ``pending_output`` and the running prompt
        while it is generated. The caller commits (persists) it afterwards so
        slow persistence never delays the streamed text.

        Returns:
            CompleteResponse. ``cancelled`` is True if the turn was
            interrupted; generated text up to that point stays in the prompt.

        Raises:
            BackendError: the backend failed; the prompt is rolled back to
                before the user turn and the status to its idle state.
        """
        if self._status.is_busy:
            logger.info(f"Agent {self.id} is {self._status.value}; interrupting before new turn")
            await self.interrupt()

        async with self._turn_lock:
            self._interrupt_requested = False
            await self._apply(TurnEvent.SUBMIT)
            checkpoint = self._prepare_turn(speaker_id, message)
            prompt = self._prompt

            self.pending_output = ""
            await self._publish_pending("")

            try:
                async with ChunkPump(self._apply_chunk) as pump:
                    if self._interrupt_requested:
                        response = CompleteResponse(
                            text="", model_name=self.backend.model_name, cancelled=True
                        )
                    else:
                        response = await self.backend.complete(
                            prompt,
                            pump.push,
                            stop=self.prompt_format.stop_sequences(speaker_id),
                        )
            except asyncio.CancelledError:
                logger.info(f"Agent {self.id} turn cancelled by caller")
                await self._apply(TurnEvent.CANCEL)
                raise
            except Exception as e:
                self._prompt = checkpoint
                logger.warning(f"Agent {self.id} turn failed: {e}")
                await self._apply(TurnEvent.FAIL)
                raise

            if response.cancelled:
                logger.info(f"Agent {self.id} turn interrupted after {len(response.text)} chars")
                await self._apply(TurnEvent.CANCEL)
                return response

            self.pending_output = response.text
            await self._publish_pending("", final=True)
            self._terminate_turn()
            await self._apply(TurnEvent.COMPLETE)
            return response

    async def interrupt(self) -> None:
        """Ask the in-flight generation to stop. No-op unless a turn is running."""
        if not self._status.is_busy:
            return
        self._interrupt_requested = True
        await self.backend.interrupt()

    async def warmup(self) -> None:
        """
        Run a throwaway completion so the backend loads the model ahead of
        the first real turn. Failures are recorded in ``last_warmup_error``
        rather than raised.
        """
        prompt = self._prompt
        if not prompt and self.system_directive:
            # Same text the first turn will seed with, so the server's prompt
            # cache lines up.
            prompt = self.prompt_format.preamble(self.system_directive, self.user_speaker, self.id)
        if not prompt:
            logger.debug(f"Agent {self.id} has nothing to warm up with")
            return

        async with self._turn_lock:
            self.last_warmup_error = None
            try:
                response = await self.backend.complete(
                    prompt,
                    stop=self.prompt_format.stop_sequences(self.user_speaker),
                    max_tokens=self.backend.config.warmup_max_tokens,
                )
            except BackendError as e:
                self.last_warmup_error = e
                logger.warning(f"Agent {self.id} warmup failed: {e}")
                await self._apply(TurnEvent.WARMUP_FAILED)
                return

            if response.cancelled:
                logger.info(f"Agent {self.id} warmup was interrupted")
                return
            logger.info(f"Agent {self.id} warmed up ({response.model_name or 'unknown model'})")
            await self._apply(TurnEvent.WARMUP_OK)
