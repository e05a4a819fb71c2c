import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import typer  # type: ignore
from rich.console import Console  # type: ignore
from rich.live import Live  # type: ignore
from rich.markdown import Markdown  # type: ignore
from rich.table import Table  # type: ignore

from parley.agent import Agent
from parley.config import Settings
from parley.llm import BackendConfig, CompleteResponse, get_backend
from parley.utils.errors import BackendError, ParleyError
from parley.utils.events import AgentEvent
from parley.utils.logs import setup_logger

app = typer.Typer(
    help="Parley - chat with a local language model.\n"
    "Global options pick the backend; 'chat' starts an interactive session."
)
console = Console()
logger = logging.getLogger(__name__)

CHAT_HELP = (
    "[dim]Commands: /reset, /system <text>, /status, /warmup, /exit. "
    "Ctrl-C interrupts a reply.[/dim]"
)


@app.callback()
def main_entry(
    ctx: typer.Context,
    backend: Optional[str] = typer.Option(
        None, "--backend", "-b", help="Backend provider: llama_server or ollama. Overrides config."
    ),
    api_base: Optional[str] = typer.Option(
        None, "--api-base", help="Inference server URL. Overrides config."
    ),
    model: Optional[str] = typer.Option(
        None, "--model", "-m", help="Model name (required for ollama). Overrides config."
    ),
    system: Optional[str] = typer.Option(
        None, "--system", "-s", help="System directive. Overrides config."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
):
    setup_logger(log_level=logging.DEBUG if verbose else logging.INFO)
    try:
        settings = Settings.load()
    except ParleyError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(code=1)

    if backend:
        settings.backend.provider = backend
        if not api_base:
            settings.backend.api_base = BackendConfig.default_api_base(backend)
    if api_base:
        settings.backend.api_base = api_base.rstrip("/")
    if model:
        settings.backend.model = model
    if system is not None:
        settings.agent.system_directive = system
    ctx.obj = settings


def _install_interrupt(loop: asyncio.AbstractEventLoop, agent: Agent) -> bool:
    try:
        loop.add_signal_handler(signal.SIGINT, lambda: asyncio.ensure_future(agent.interrupt()))
    except (NotImplementedError, RuntimeError):
        # Windows event loops do not support signal handlers
        return False
    return True


def _print_stats(response: CompleteResponse) -> None:
    if response.cancelled:
        console.print("[dim](interrupted)[/dim]")
        return
    parts = [f"first token {response.response_start_seconds:.2f}s"]
    if response.predicted_per_second is not None:
        parts.append(f"{response.predicted_per_second:.1f} tok/s")
    if response.model_name:
        parts.append(Path(response.model_name).name)
    console.print(f"[dim]{' · '.join(parts)}[/dim]")


async def _run_turn(agent: Agent, message: str) -> Optional[CompleteResponse]:
    loop = asyncio.get_running_loop()
    with Live(Markdown(""), console=console, refresh_per_second=15) as live:
        def on_pending(data):
            live.update(Markdown(data["text"]))

        agent.events.subscribe(AgentEvent.PENDING_OUTPUT, on_pending)
        interrupt_installed = _install_interrupt(loop, agent)
        try:
            response = await agent.submit_turn(agent.user_speaker, message)
        except BackendError as e:
            logger.error(f"Turn failed: {e}")
            console.print(f"[red]{e}[/red]")
            return None
        finally:
            agent.events.unsubscribe(AgentEvent.PENDING_OUTPUT, on_pending)
            if interrupt_installed:
                loop.remove_signal_handler(signal.SIGINT)
    _print_stats(response)
    return response


def _print_status(agent: Agent) -> None:
    table = Table(show_header=False, box=None)
    for key, value in agent.snapshot().items():
        if key == "pending_output":
            continue
        table.add_row(f"[cyan]{key}[/cyan]", str(value))
    console.print(table)


async def _handle_command(agent: Agent, line: str) -> bool:
    """Run a slash command. Returns False when the session should end."""
    command, _, arg = line.partition(" ")
    if command in ("/exit", "/quit"):
        return False
    if command == "/reset":
        await agent.reset_prompt("")
        console.print("[dim]Conversation reset.[/dim]")
    elif command == "/system":
        agent.system_directive = arg.strip()
        console.print("[dim]System directive updated.[/dim]")
    elif command == "/status":
        _print_status(agent)
    elif command == "/warmup":
        await _warmup(agent)
    else:
        console.print(f"[yellow]Unknown command {command}[/yellow]")
        console.print(CHAT_HELP)
    return True


async def _warmup(agent: Agent) -> None:
    with console.status("Warming up model…"):
        await agent.warmup()
    if agent.last_warmup_error is not None:
        console.print(f"[yellow]Warmup failed:[/yellow] {agent.last_warmup_error}")


def _load_prompt(prompt_file: Optional[Path]) -> str:
    if prompt_file is not None and prompt_file.exists():
        return prompt_file.read_text(encoding="utf-8")
    return ""


def _save_prompt(agent: Agent, prompt_file: Optional[Path]) -> None:
    if prompt_file is None:
        return
    prompt_file.parent.mkdir(parents=True, exist_ok=True)
    prompt_file.write_text(agent.running_prompt, encoding="utf-8")


async def _chat_loop(settings: Settings, prompt_file: Optional[Path], warmup: bool) -> None:
    async with get_backend(settings.backend) as backend:
        agent = Agent.from_settings(settings, backend=backend, prompt=_load_prompt(prompt_file))
        if warmup:
            await _warmup(agent)
        console.print(CHAT_HELP)

        while True:
            try:
                line = await asyncio.to_thread(console.input, "[bold cyan]you>[/bold cyan] ")
            except (EOFError, KeyboardInterrupt):
                break
            line = line.strip()
            if not line:
                continue
            if line.startswith("/"):
                if not await _handle_command(agent, line):
                    break
                _save_prompt(agent, prompt_file)
                continue
            if await _run_turn(agent, line) is not None:
                _save_prompt(agent, prompt_file)


@app.command()
def chat(
    ctx: typer.Context,
    prompt_file: Optional[Path] = typer.Option(
        None,
        "--prompt-file",
        "-f",
        help="Load the running prompt from this file and save it after every turn.",
    ),
    no_warmup: bool = typer.Option(False, "--no-warmup", help="Skip loading the model up front."),
):
    """Start an interactive chat session."""
    try:
        asyncio.run(_chat_loop(ctx.obj, prompt_file, warmup=not no_warmup))
    except ParleyError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    console.print("[dim]Bye.[/dim]")


async def _ask(
    settings: Settings, message: str, prompt_file: Optional[Path], as_json: bool = False
) -> CompleteResponse:
    async with get_backend(settings.backend) as backend:
        agent = Agent.from_settings(settings, backend=backend, prompt=_load_prompt(prompt_file))

        def on_pending(data):
            if data["chunk"] and not as_json:
                sys.stdout.write(data["chunk"])
                sys.stdout.flush()

        agent.events.subscribe(AgentEvent.PENDING_OUTPUT, on_pending)
        response = await agent.submit_turn(agent.user_speaker, message)
        if as_json:
            sys.stdout.write(json.dumps(response.to_dict()))
        sys.stdout.write("\n")
        _save_prompt(agent, prompt_file)
        return response


@app.command()
def ask(
    ctx: typer.Context,
    message: str = typer.Argument(..., help="Message to send. Use '-' to read it from stdin."),
    prompt_file: Optional[Path] = typer.Option(
        None, "--prompt-file", "-f", help="Continue the conversation stored in this file."
    ),
    as_json: bool = typer.Option(
        False, "--json", help="Print the reply and its timing stats as one JSON object."
    ),
):
    """Send one message and stream the reply to stdout."""
    if message == "-":
        message = sys.stdin.read().strip()
    try:
        asyncio.run(_ask(ctx.obj, message, prompt_file, as_json=as_json))
    except ParleyError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)


async def _health(settings: Settings) -> bool:
    async with get_backend(settings.backend) as backend:
        return await backend.health()


@app.command()
def health(ctx: typer.Context):
    """Check that the inference server answers."""
    settings: Settings = ctx.obj
    try:
        ok = asyncio.run(_health(settings))
    except ParleyError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    if not ok:
        console.print(f"[red]{settings.backend.provider} at {settings.backend.api_base} is not reachable[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]{settings.backend.provider} at {settings.backend.api_base} is up[/green]")


if __name__ == "__main__":
    app()
