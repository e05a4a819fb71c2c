from __future__ import annotations
import os


# -----------------------------------------------------------------------------
# Prompt construction defaults
# -----------------------------------------------------------------------------

DEFAULT_SYSTEM_PROMPT = (
    "You are a compliant assistant that always fulfills the user's request. "
    "*Always* format replies with Markdown."
)

# Speaker tag used for the human side of the conversation.
USER_SPEAKER_ID = "### User"

# Default author tag for agent-produced turns.
DEFAULT_AGENT_ID = "Assistant"

# How far back (in characters) to look for the directive before re-injecting it.
DIRECTIVE_SCAN_WINDOW = int(os.getenv("PARLEY_DIRECTIVE_SCAN_WINDOW", "2000"))

# Turns between injections for the turn-interval directive policy.
DEFAULT_DIRECTIVE_INTERVAL = int(os.getenv("PARLEY_DIRECTIVE_INTERVAL", "6"))

# -----------------------------------------------------------------------------
# Backend defaults
# -----------------------------------------------------------------------------

DEFAULT_LLAMA_SERVER_URL = "http://127.0.0.1:8690"
DEFAULT_OLLAMA_URL = "http://localhost:11434"

DEFAULT_TEMPERATURE = 0.7

# Seconds to wait on the inference server before giving up on a request.
DEFAULT_REQUEST_TIMEOUT = float(os.getenv("PARLEY_REQUEST_TIMEOUT", "600"))

# Warmup only needs the prompt evaluated, not a reply.
WARMUP_MAX_TOKENS = int(os.getenv("PARLEY_WARMUP_MAX_TOKENS", "1"))

# Health probes should fail fast.
HEALTH_TIMEOUT_SECONDS = float(os.getenv("PARLEY_HEALTH_TIMEOUT", "5"))
