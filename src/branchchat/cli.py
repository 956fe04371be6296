"""branchchat CLI - typer application entry point."""

from __future__ import annotations

import asyncio
import atexit
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from dotenv import load_dotenv
from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from branchchat.config import ConfigError, load_config
from branchchat.graph.algorithms import find_roots, get_parent_id
from branchchat.graph.models import GraphSnapshot, NodeKind
from branchchat.observability import (
    GenerationLogger,
    close_file_logging,
    configure_logging,
)
from branchchat.providers.base import ProviderError
from branchchat.session import ChatSession

if TYPE_CHECKING:
    from branchchat.config import ChatConfig
    from branchchat.regeneration.orchestrator import RegenerationReport

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="branchchat",
    help="branchchat: branching conversations with cascading regeneration.",
    no_args_is_help=True,
)
console = Console()

CHAT_HELP = """\
Type a message to reply to the current node. Commands:
  /tree                show the conversation graph
  /goto <ref>          make <ref> the current node
  /regen [ref]         regenerate below <ref> (default: re-answer current)
  /edit <ref> <text>   replace a node's text
  /delete <ref>        delete a node
  /history [ref]       show the transcript leading to <ref>
  /help                show this help
  /quit                leave
A <ref> is a node id or the [n] index shown by /tree."""

# Global state for logging flags (set by callback, used by commands)
_verbose: int = 0
_log_enabled: bool = False
_config_path: Path | None = None


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log_: Annotated[
        bool,
        typer.Option(
            "--log",
            help="Write debug.jsonl and generations.jsonl to the configured log dir.",
        ),
    ] = False,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Config file or directory containing branchchat.yaml.",
            envvar="BRANCHCHAT_CONFIG",
        ),
    ] = None,
) -> None:
    """branchchat: branching conversations with cascading regeneration."""
    global _verbose, _log_enabled, _config_path
    _verbose = verbose
    _log_enabled = log_
    _config_path = config

    configure_logging(verbosity=verbose)


def _load_config() -> ChatConfig:
    try:
        return load_config(_config_path)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e


def _build_session(config: ChatConfig, provider: str | None) -> ChatSession:
    """Create a session, enabling file logging if --log was given."""
    generation_logger = None
    if _log_enabled:
        configure_logging(verbosity=_verbose, log_to_file=True, log_dir=config.log_dir)
        atexit.register(close_file_logging)
        generation_logger = GenerationLogger(config.log_dir)

    try:
        return ChatSession.from_config(
            config, provider_override=provider, generation_logger=generation_logger
        )
    except ProviderError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e


class StreamPrinter:
    """Prints response text to the console as chunks land in the store.

    Subscribed to the store; compares each published snapshot with the last
    one seen and echoes only the newly appended suffix.
    """

    def __init__(self, console_: Console) -> None:
        self._console = console_
        self._seen: dict[str, str] = {}
        self._current: str | None = None

    def __call__(self, snapshot: GraphSnapshot) -> None:
        for node in snapshot.nodes:
            if node.kind is not NodeKind.LLM_RESPONSE:
                continue
            before = self._seen.get(node.id, "")
            self._seen[node.id] = node.text
            if not node.text.startswith(before) or node.text == before:
                continue
            if self._current != node.id:
                self._current = node.id
                self._console.print(f"\n[bold cyan]{node.id}[/bold cyan]")
            self._console.print(node.text[len(before) :], end="", markup=False, highlight=False)

    def reset(self) -> None:
        self._current = None


def _print_report(report: RegenerationReport) -> None:
    console.print()
    if report.cancelled:
        console.print("[yellow]Regeneration superseded.[/yellow]")
    for node_id, reason in report.failed.items():
        console.print(f"[red]✗[/red] {node_id}: {escape(reason)} (partial text kept)")
    if report.regenerated:
        console.print(f"[green]✓[/green] Regenerated {len(report.regenerated)} node(s)")


def _render_tree(snapshot: GraphSnapshot) -> Tree:
    index = {node.id: i for i, node in enumerate(snapshot.nodes)}
    children: dict[str, list[str]] = {}
    for edge in snapshot.edges:
        children.setdefault(edge.source, []).append(edge.target)

    def label(node_id: str) -> str:
        node = snapshot.get_node(node_id)
        if node is None:
            return node_id
        who = "you" if node.kind is NodeKind.USER_INPUT else "llm"
        preview = node.text.replace("\n", " ")
        if len(preview) > 60:
            preview = preview[:57] + "..."
        return f"[{index[node_id]}] [bold]{who}[/bold] {escape(preview)}"

    tree = Tree("conversation")

    def add(parent: Tree, node_id: str, seen: set[str]) -> None:
        if node_id in seen:
            return
        seen.add(node_id)
        branch = parent.add(label(node_id), highlight=False)
        for child in children.get(node_id, []):
            add(branch, child, seen)

    seen: set[str] = set()
    for root_id in find_roots(snapshot.nodes, snapshot.edges):
        add(tree, root_id, seen)
    return tree


def _resolve_ref(session: ChatSession, ref: str) -> str | None:
    nodes = session.store.get_nodes()
    if ref.isdigit():
        i = int(ref)
        return nodes[i].id if i < len(nodes) else None
    return ref if session.store.get_node(ref) is not None else None


def _reanswer_target(session: ChatSession, current: str | None) -> str | None:
    """Node to regenerate from so that *current* itself is rewritten.

    For a response that is its parent; anything else regenerates below itself.
    """
    if current is None:
        return None
    node = session.store.get_node(current)
    if node is None:
        return None
    if node.kind is NodeKind.LLM_RESPONSE:
        return get_parent_id(current, session.store.get_edges()) or current
    return current


@app.command()
def version() -> None:
    """Show version information."""
    from branchchat import __version__

    console.print(f"branchchat v{__version__}")


@app.command()
def ask(
    prompt: Annotated[str, typer.Argument(help="Message to send.")],
    provider: Annotated[
        str | None,
        typer.Option("--provider", "-p", help="Provider string, e.g. openai/gpt-5-mini."),
    ] = None,
) -> None:
    """Send one message and stream the reply."""
    session = _build_session(_load_config(), provider)
    session.store.subscribe(StreamPrinter(console))

    _, report = asyncio.run(session.ask(prompt))
    _print_report(report)
    if report.failed:
        raise typer.Exit(1)


@app.command()
def chat(
    provider: Annotated[
        str | None,
        typer.Option("--provider", "-p", help="Provider string, e.g. openai/gpt-5-mini."),
    ] = None,
) -> None:
    """Interactive branching conversation."""
    session = _build_session(_load_config(), provider)
    printer = StreamPrinter(console)
    session.store.subscribe(printer)
    console.print(CHAT_HELP, markup=False)
    asyncio.run(_chat_loop(session, printer))


async def _chat_loop(session: ChatSession, printer: StreamPrinter) -> None:
    prompt_session: PromptSession[str] = PromptSession()
    current: str | None = None

    while True:
        try:
            with patch_stdout():
                line = await prompt_session.prompt_async(HTML("<b>you</b> &gt; "))
        except (EOFError, KeyboardInterrupt):
            return

        line = line.strip()
        if not line:
            continue
        printer.reset()

        if not line.startswith("/"):
            node, report = await session.ask(line, parent_id=current)
            current = report.created_node_id or node.id
            _print_report(report)
            continue

        command, _, rest = line.partition(" ")
        rest = rest.strip()

        if command in ("/quit", "/exit"):
            return
        elif command == "/help":
            console.print(CHAT_HELP, markup=False)
        elif command == "/tree":
            console.print(_render_tree(session.store.snapshot()))
        elif command == "/goto":
            target = _resolve_ref(session, rest)
            if target is None:
                console.print(f"[red]Unknown node:[/red] {rest}")
            else:
                current = target
        elif command == "/regen":
            target = _resolve_ref(session, rest) if rest else _reanswer_target(session, current)
            if target is None:
                console.print("[red]Nothing to regenerate.[/red]")
            else:
                _print_report(await session.regenerate(target))
        elif command == "/edit":
            ref, _, text = rest.partition(" ")
            target = _resolve_ref(session, ref)
            if target is None or not session.edit_text(target, text):
                console.print(f"[red]Unknown node:[/red] {ref}")
        elif command == "/delete":
            target = _resolve_ref(session, rest)
            if target is None or not session.delete_node(target):
                console.print(f"[red]Unknown node:[/red] {rest}")
            elif target == current:
                current = None
        elif command == "/history":
            target = _resolve_ref(session, rest) if rest else current
            _print_history(session, target)
        else:
            console.print(f"[red]Unknown command:[/red] {command}")


def _print_history(session: ChatSession, node_id: str | None) -> None:
    history = session.transcript(node_id) if node_id else []
    if not history:
        console.print("[dim]No history.[/dim]")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("Role")
    table.add_column("Content")
    for message in history:
        table.add_row(message["role"], message["content"])
    console.print(table)
