"""
stepgraph - Main Entry Point

Command line interface for running the demo graphs.
"""

import asyncio
import json
import sys
from datetime import datetime, timezone
from typing import Optional, Sequence

import click
from langchain_core.messages import AIMessage, BaseMessage, ToolMessage
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.syntax import Syntax
from rich.table import Table

from .core.config import settings
from .core.errors import GraphError
from .core.events import LoggingObserver, RecordingObserver
from .core.state import create_initial_state
from .demos.workflows import (
    build_arithmetic_agent,
    build_category_workflow,
    build_functional_arithmetic_agent,
    offline_workflow_model,
)
from .memory.checkpoint import BaseCheckpointStore, FileCheckpointStore, InMemoryCheckpointStore
from .providers.base import ChatModelProvider
from .providers.gemini import GeminiChatModel
from .utils.helpers import preview
from .utils.logger import get_logger, setup_logger


console = Console()
logger = get_logger()


def _make_provider(offline: bool) -> ChatModelProvider:
    if offline or not settings.gemini_api_key:
        if not offline:
            console.print("[dim]No Gemini API key configured; using the offline model[/dim]")
        return offline_workflow_model()
    return GeminiChatModel()


def _new_session_id() -> str:
    return f"chat_{datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')}"


def _spinner(description: str) -> Progress:
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    )
    progress.add_task(description, total=None)
    return progress


# ==================== CLI Interface ====================

@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, debug: bool):
    """stepgraph - graph-based agent execution"""
    ctx.ensure_object(dict)["debug"] = debug
    if debug:
        setup_logger(level="DEBUG")


@cli.command()
@click.argument("query")
@click.option("--offline", is_flag=True, help="Use the scripted offline model")
@click.option("--max-steps", type=int, default=None, help="Node execution bound")
@click.option("--events", "show_events", is_flag=True, help="Print graph events")
@click.option("--json-output", "-j", is_flag=True, help="Output as JSON")
@click.option("--functional", is_flag=True, help="Use the task/entrypoint version of the agent")
@click.pass_context
def run(
    ctx: click.Context,
    query: str,
    offline: bool,
    max_steps: Optional[int],
    show_events: bool,
    json_output: bool,
    functional: bool,
):
    """Run the arithmetic tool-calling agent once."""
    asyncio.run(_run_agent(
        query, offline, max_steps, show_events, json_output, ctx.obj["debug"], functional
    ))


async def _run_agent(
    query: str,
    offline: bool,
    max_steps: Optional[int],
    show_events: bool,
    json_output: bool,
    debug: bool = False,
    functional: bool = False,
):
    recorder = RecordingObserver()
    observers = [recorder, LoggingObserver("CLI")] if debug else [recorder]
    async with _make_provider(offline) as provider:
        with _spinner("Running agent..."):
            try:
                if functional:
                    agent = build_functional_arithmetic_agent(provider, max_steps=max_steps)
                    messages = await agent.ainvoke(
                        create_initial_state(query)["messages"], {"observers": observers}
                    )
                else:
                    graph = build_arithmetic_agent(provider, max_steps=max_steps)
                    result = await graph.ainvoke(
                        create_initial_state(query), {"observers": observers}
                    )
                    messages = result["messages"]
            except GraphError as e:
                console.print(f"[red]{e.kind}:[/red] {e}")
                sys.exit(1)

    if json_output:
        payload = [
            {
                "type": message.type,
                "content": message.content,
                "tool_calls": getattr(message, "tool_calls", []),
            }
            for message in messages
        ]
        console.print_json(json.dumps(payload, default=str))
    else:
        _display_transcript(messages)

    if show_events:
        _display_events(recorder)


@cli.command()
@click.option("--offline", is_flag=True, help="Use the scripted offline model")
@click.option("--session", "-s", default=None, help="Session ID to resume")
@click.option("--persist", is_flag=True, help="Store sessions on disk")
def chat(offline: bool, session: Optional[str], persist: bool):
    """Start an interactive multi-turn session."""
    store = FileCheckpointStore() if persist else InMemoryCheckpointStore()
    asyncio.run(_chat_mode(offline, session, store))


async def _chat_mode(offline: bool, session: Optional[str], store: BaseCheckpointStore):
    console.print(Panel(
        "[bold]Ask for additions, multiplications or divisions.[/bold]\n\n"
        "Commands:\n"
        "  /quit - Exit chat\n"
        "  /history - Show the session transcript\n"
        "  /clear - Start a new session",
        title="stepgraph chat",
        border_style="green",
    ))

    session_id = session or _new_session_id()
    logger.with_component("CLI").info(f"Chat session {session_id}")
    async with _make_provider(offline) as provider:
        graph = build_arithmetic_agent(provider, checkpointer=store)

        while True:
            try:
                query = console.input("\n[bold cyan]You:[/bold cyan] ")
            except (KeyboardInterrupt, EOFError):
                console.print("\n[yellow]Goodbye![/yellow]")
                break

            if not query.strip():
                continue

            if query.startswith("/"):
                if query == "/quit":
                    console.print("[yellow]Goodbye![/yellow]")
                    break
                elif query == "/history":
                    saved = await store.load(session_id)
                    _display_transcript((saved or {}).get("messages") or [])
                elif query == "/clear":
                    await store.delete(session_id)
                    session_id = _new_session_id()
                    logger.with_component("CLI").info(f"Started new session {session_id}")
                    console.print("[green]Session cleared[/green]")
                else:
                    console.print("[yellow]Unknown command[/yellow]")
                continue

            with _spinner("Thinking..."):
                try:
                    result = await graph.ainvoke(
                        create_initial_state(query), {"session_id": session_id}
                    )
                except GraphError as e:
                    console.print(f"[red]{e.kind}: {e}[/red]")
                    continue

            answer = result["messages"][-1]
            console.print("\n[bold green]Agent:[/bold green]")
            console.print(Markdown(answer.text() or "_(no answer)_"))


@cli.command()
@click.argument("name", type=click.Choice(["arithmetic", "workflow"]), default="arithmetic")
def graph(name: str):
    """Print a demo graph as a Mermaid flowchart."""
    provider = offline_workflow_model()
    if name == "workflow":
        compiled = build_category_workflow(provider)
    else:
        compiled = build_arithmetic_agent(provider)
    console.print(Syntax(compiled.draw_mermaid(), "text"))


@cli.command()
@click.argument("text")
@click.option("--offline", is_flag=True, help="Use the scripted offline model")
@click.option("--seed", type=int, default=None, help="Seed for the sentiment sub-task")
@click.option("--json-output", "-j", is_flag=True, help="Output as JSON")
def workflow(text: str, offline: bool, seed: Optional[int], json_output: bool):
    """Run the category-routing workflow."""
    asyncio.run(_run_workflow(text, offline, seed, json_output))


async def _run_workflow(text: str, offline: bool, seed: Optional[int], json_output: bool):
    console.print(Panel(
        f"[bold blue]Input:[/bold blue] {text}",
        title="Category workflow",
        border_style="blue",
    ))

    async with _make_provider(offline) as provider:
        compiled = build_category_workflow(provider, seed=seed)
        with _spinner("Running workflow..."):
            try:
                result = await compiled.ainvoke({"input": text})
            except GraphError as e:
                console.print(f"[red]{e.kind}:[/red] {e}")
                sys.exit(1)

    if json_output:
        console.print_json(json.dumps(result, default=str))
        return

    table = Table(title="Result")
    table.add_column("Channel", style="cyan")
    table.add_column("Value", style="green")
    for key in ("category", "confidence", "path", "response", "sentiment", "complexity", "tags"):
        table.add_row(key, preview(result.get(key), 80))
    console.print(table)
    console.print(Panel(result.get("summary") or "", title="Summary", border_style="green"))
    console.print(f"[dim]Trace: {' -> '.join(result.get('trace') or [])}[/dim]")


# ==================== Display ====================

def _display_transcript(messages: Sequence[BaseMessage]):
    table = Table(title="Transcript")
    table.add_column("#", style="dim")
    table.add_column("Role", style="cyan")
    table.add_column("Content")
    for index, message in enumerate(messages, start=1):
        if isinstance(message, AIMessage) and message.tool_calls:
            content = ", ".join(
                f"{call['name']}({json.dumps(call['args'])})" for call in message.tool_calls
            )
        elif isinstance(message, ToolMessage):
            style = "red" if message.status == "error" else "green"
            content = f"[{style}]{message.name}: {message.text()}[/{style}]"
        else:
            content = message.text()
        table.add_row(str(index), message.type, content)
    console.print(table)


def _display_events(recorder: RecordingObserver):
    table = Table(title="Events")
    table.add_column("Step", style="dim")
    table.add_column("Event", style="cyan")
    table.add_column("Node")
    table.add_column("Data")
    for event in recorder.events:
        table.add_row(str(event.step), event.type.value, event.node or "", preview(event.data, 60))
    console.print(table)


# ==================== Entry Point ====================

def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
