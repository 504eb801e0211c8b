"""Command-line interface for chatwire.

Provides an interactive terminal chat over the client core:
- Streamed replies rendered as they arrive
- Session switching and deletion via slash commands
- Clear error messages (no stack traces)
"""

import asyncio
import sys
import threading
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table
from rich.text import Text

from chatwire.bus.events import ChatEvent, ChatEventKind, CloseInfo
from chatwire.client import ChatClient
from chatwire.config import ClientSettings
from chatwire.exceptions import (
    ConfigurationError,
    NotConnectedError,
    TransportError,
    format_exception_chain,
    user_friendly_error,
)
from chatwire.session.store import Session

app = typer.Typer(
    name="chatwire",
    help="Terminal chat client for streaming agent gateways",
    no_args_is_help=True,
)
console = Console()


def print_error(error: BaseException) -> None:
    """Print a user-friendly error message."""
    error_text = Text()
    error_text.append(user_friendly_error(error), style="red")

    console.print(Panel(
        error_text,
        title="[bold red]Error[/bold red]",
        border_style="red",
        padding=(0, 1),
    ))


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green][bold]Success:[/bold][/green] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue][bold]Info:[/bold][/blue] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow][bold]Warning:[/bold][/yellow] {message}")


def setup_logging(level: str) -> None:
    """Route loguru output to stderr at the given level."""
    logger.remove()
    logger.add(sys.stderr, level=level)


def load_settings(
    url: Optional[str],
    token: Optional[str],
    storage: Optional[Path],
    memory: bool,
) -> ClientSettings:
    """Load settings from the environment, applying CLI overrides."""
    overrides: dict = {}
    if url:
        overrides["base_url"] = url
    if token:
        overrides["token"] = token
    if storage:
        overrides["storage_path"] = storage
    if memory:
        overrides["storage_path"] = None

    try:
        return ClientSettings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def sessions_table(sessions: list[Session], current_id: str | None = None) -> Table:
    """Render sessions as a table."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Messages", justify="right")
    table.add_column("Created")
    for session in sessions:
        table.add_row(
            "*" if session.id == current_id else "",
            session.id,
            session.title or "New Chat",
            str(len(session.messages)),
            session.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    return table


class ChatView:
    """Renders chat events to the terminal."""

    def __init__(self, console: Console):
        self.console = console
        self._printed = 0

    def on_event(self, event: ChatEvent) -> None:
        if event.kind == ChatEventKind.CHUNK:
            if self._printed == 0:
                self.console.print("[bold green]Agent:[/bold green] ", end="")
            self.console.print(
                event.content[self._printed:], end="", markup=False, highlight=False
            )
            self._printed = len(event.content)
        elif event.kind in (ChatEventKind.DONE, ChatEventKind.MESSAGE):
            if self._printed:
                self.console.print()
            elif event.content:
                self.console.print(Panel(Markdown(event.content), border_style="dim", padding=(0, 1)))
            self._printed = 0
            self.console.print()
        elif event.kind == ChatEventKind.TOOL_CALL:
            self._break_line()
            frame = event.frame
            self.console.print(f"[dim][Tool Call] {frame.name}({frame.args})[/dim]", highlight=False)
        elif event.kind == ChatEventKind.TOOL_RESULT:
            self._break_line()
            self.console.print(Text(f"[Tool Result] {event.content}", style="dim"))
        elif event.kind == ChatEventKind.ERROR:
            self._break_line()
            self._printed = 0
            if event.error is not None:
                print_error(event.error)

    def on_open(self) -> None:
        print_success("Connected.")

    def on_close(self, info: CloseInfo) -> None:
        self._break_line()
        if info.reconnect_delay is not None:
            print_warning(f"Disconnected. Reconnecting in {info.reconnect_delay:g}s...")
        else:
            print_warning("Disconnected.")

    def on_error(self, error: TransportError) -> None:
        logger.debug(f"Transport error: {format_exception_chain(error)}")

    def _break_line(self) -> None:
        if self._printed:
            self.console.print()
            self._printed = 0


def print_help() -> None:
    help_table = Table(show_header=True, header_style="bold")
    help_table.add_column("Command")
    help_table.add_column("Description")
    help_table.add_row("/help", "Show this help message")
    help_table.add_row("/exit, /quit", "Exit the chat")
    help_table.add_row("/new, /clear", "Start a new session")
    help_table.add_row("/sessions", "List stored sessions")
    help_table.add_row("/switch <id>", "Switch to a session")
    help_table.add_row("/delete <id>", "Delete a session")
    help_table.add_row("/history", "Show the current session's messages")
    help_table.add_row("/status", "Show connection status")
    console.print(help_table)


def handle_command(client: ChatClient, command: str) -> bool:
    """
    Run a slash command.

    Returns:
        False if the REPL should exit.
    """
    name, _, arg = command.partition(" ")
    name = name.lower()
    arg = arg.strip()

    if name in ("/exit", "/quit"):
        return False
    if name == "/help":
        print_help()
    elif name in ("/new", "/clear"):
        session_id = client.new_session()
        print_success(f"Started new session {session_id}")
    elif name == "/sessions":
        sessions = client.get_sessions()
        if not sessions:
            print_info("No stored sessions yet.")
        else:
            console.print(sessions_table(sessions, client.get_session_id()))
    elif name == "/switch":
        if not arg:
            print_warning("Usage: /switch <session id>")
        elif client.sessions.get_session(arg) is None:
            print_warning(f"Session '{arg}' not found.")
        else:
            client.set_current_session(arg)
            print_success(f"Switched to session {arg}")
    elif name == "/delete":
        if not arg:
            print_warning("Usage: /delete <session id>")
        elif client.delete_session(arg):
            print_success(f"Deleted session {arg}")
        else:
            print_warning(f"Session '{arg}' not found.")
    elif name == "/history":
        history = client.get_history()
        if not history:
            print_info("No messages in this session.")
        for message in history:
            console.print(Text(f"{message.role.value}: {message.content}"))
    elif name == "/status":
        status_table = Table.grid(padding=(0, 2))
        status_table.add_row("[dim]State:[/dim]", client.state.value)
        status_table.add_row("[dim]Session:[/dim]", client.get_session_id())
        status_table.add_row("[dim]History:[/dim]", f"{len(client.get_history())} messages")
        console.print(Panel(status_table, title="[bold]Chat Status[/bold]"))
    else:
        print_warning(f"Unknown command: {name}. Use /help for commands.")
    return True


async def read_input(prompt: str) -> str:
    """
    Prompt for a line without blocking the event loop.

    The prompt runs on a daemon thread, so cancelling the awaiting task
    returns at once and a pending prompt never delays interpreter exit.
    Errors from the prompt, EOFError and KeyboardInterrupt included, are
    re-raised in the awaiting task.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[str] = loop.create_future()

    def deliver(line: str | None, error: BaseException | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(line)

    def reader() -> None:
        try:
            line = Prompt.ask(prompt)
        except (Exception, KeyboardInterrupt) as e:
            result: tuple[str | None, BaseException | None] = (None, e)
        else:
            result = (line, None)
        try:
            loop.call_soon_threadsafe(deliver, *result)
        except RuntimeError:
            logger.debug("Event loop closed before the prompt returned")

    threading.Thread(target=reader, name="chatwire-input", daemon=True).start()
    return await future


@app.command()
def chat(
    url: Optional[str] = typer.Option(
        None, "-u", "--url",
        help="Gateway base URL (overrides CHATWIRE_BASE_URL)",
    ),
    token: Optional[str] = typer.Option(
        None, "-t", "--token",
        help="Bearer token (overrides CHATWIRE_TOKEN)",
    ),
    storage: Optional[Path] = typer.Option(
        None, "-s", "--storage",
        help="Session store file",
    ),
    memory: bool = typer.Option(
        False, "--memory",
        help="Keep sessions in memory only",
    ),
):
    """
    Start an interactive chat with the agent gateway.
    """
    try:
        settings = load_settings(url, token, storage, memory)
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    setup_logging(settings.log_level)
    try:
        asyncio.run(_run_chat(settings))
    except KeyboardInterrupt:
        console.print("\n[dim]Goodbye![/dim]")


async def _run_chat(settings: ClientSettings) -> None:
    """Internal async chat runner."""
    client = ChatClient.from_settings(settings)
    view = ChatView(console)
    client.on_message(view.on_event)
    client.on_open(view.on_open)
    client.on_close(view.on_close)
    client.on_error(view.on_error)

    startup_info = Table.grid(padding=(0, 2))
    startup_info.add_column()
    startup_info.add_column()
    startup_info.add_row("[dim]Gateway:[/dim]", settings.base_url)
    startup_info.add_row("[dim]Session:[/dim]", client.get_session_id())
    startup_info.add_row(
        "[dim]Storage:[/dim]",
        str(settings.storage_path) if settings.storage_path else "memory",
    )
    console.print(Panel(
        startup_info,
        title="[bold blue]chatwire[/bold blue]",
        subtitle="Use /help for commands, /exit to quit",
        border_style="blue",
    ))

    client.connect()
    try:
        while True:
            try:
                user_input = await read_input("[bold cyan]You[/bold cyan]")
            except (EOFError, KeyboardInterrupt, asyncio.CancelledError):
                console.print("\n[dim]Goodbye![/dim]")
                break

            user_input = user_input.strip()
            if not user_input:
                continue
            if user_input.lower() in ("exit", "quit"):
                break
            if user_input.startswith("/"):
                if not handle_command(client, user_input):
                    break
                continue

            try:
                client.send_message(user_input)
            except NotConnectedError as e:
                print_warning(e.user_message())
    finally:
        await client.aclose()


@app.command()
def sessions(
    storage: Optional[Path] = typer.Option(
        None, "-s", "--storage",
        help="Session store file",
    ),
):
    """
    List stored chat sessions.
    """
    try:
        settings = load_settings(None, None, storage, False)
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    setup_logging(settings.log_level)
    client = ChatClient.from_settings(settings)
    stored = client.get_sessions()
    if not stored:
        print_info("No stored sessions.")
        return
    console.print(sessions_table(stored, client.get_session_id()))


if __name__ == "__main__":
    app()
