"""
NLDB CLI

Command-line interface for NLDB Chat.

Usage:
    nldb serve                           # Run the API server
    nldb chat "查询 users 表"             # Single chat turn
    nldb chat                            # Interactive REPL mode
    nldb ask "如何查询文档？"              # Documentation question
    nldb index-docs --force              # Rebuild the documentation index
"""

import asyncio
import json
import logging
import sys
from typing import Any

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from nldb import __version__
from nldb.api.container import ServiceContainer, build_container
from nldb.config import get_settings
from nldb.knowledge import RetrievalError
from nldb.models.agent import AgentResponse

console = Console()

EXIT_WORDS = {"exit", "quit", "bye", "退出"}
MAX_TABLE_ROWS = 20


def configure_cli_logging(verbose: bool) -> None:
    if verbose:
        return
    for logger_name in ("nldb", "httpx", "openai", "chromadb"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def _cell(value: Any) -> str:
    if isinstance(value, dict | list):
        return json.dumps(value, ensure_ascii=False)
    return "" if value is None else str(value)


def print_response(response: AgentResponse) -> None:
    """Render an agent response: message panel, result table, suggestions."""
    style = "red" if response.type == "error" else "green"
    if response.type == "confirmation_required":
        style = "yellow"
    console.print(
        Panel(Markdown(response.message), title=f"[bold {style}]{response.type}[/bold {style}]")
    )

    rows = response.data if isinstance(response.data, list) else None
    if rows and isinstance(rows[0], dict):
        columns = (response.metadata or {}).get("columns") or list(rows[0].keys())
        table = Table(show_header=True, header_style="bold cyan")
        for column in columns:
            table.add_column(str(column))
        for row in rows[:MAX_TABLE_ROWS]:
            table.add_row(*[_cell(row.get(column)) for column in columns])
        console.print(table)
        if len(rows) > MAX_TABLE_ROWS:
            console.print(f"[dim]... {len(rows) - MAX_TABLE_ROWS} more rows[/dim]")
    elif response.data is not None:
        console.print_json(json.dumps(response.data, ensure_ascii=False, default=str))

    if response.type == "confirmation_required" and response.metadata:
        for risk in response.metadata.get("risks", []):
            console.print(f"[yellow]  • {risk}[/yellow]")

    if response.suggestions:
        console.print("[dim]Suggestions: " + " | ".join(response.suggestions) + "[/dim]")


async def _confirm_interactively(container: ServiceContainer, response: AgentResponse) -> None:
    metadata = response.metadata or {}
    operation = metadata.get("operation")
    if not operation:
        return
    confirmed = click.confirm("Execute this operation?", default=False)
    result = await container.pipeline.confirm(operation, metadata, confirmed)
    print_response(result)


@click.group()
@click.version_option(version=__version__, prog_name="NLDB Chat")
@click.option("--verbose", "-v", is_flag=True, help="Show application logs")
def cli(verbose: bool):
    """NLDB Chat - natural language chat over cloud databases."""
    configure_cli_logging(verbose)


@cli.command()
@click.option("--host", default=None, help="Bind address (defaults to API_HOST)")
@click.option("--port", default=None, type=int, help="Port (defaults to API_PORT)")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: str | None, port: int | None, reload: bool):
    """Run the API server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "nldb.api.main:create_app",
        factory=True,
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
    )


@cli.command()
@click.argument("message", required=False)
@click.option("--env", "env_id", default=None, help="Cloud environment ID")
@click.option("--db-type", type=click.Choice(["flexdb", "mysql"]), default=None)
@click.option("--session", "session_id", default="cli", show_default=True)
def chat(message: str | None, env_id: str | None, db_type: str | None, session_id: str):
    """Send one message, or start a REPL when MESSAGE is omitted."""

    context: dict[str, Any] = {"sessionId": session_id}
    if env_id:
        context["envId"] = env_id
    if db_type:
        context["dbType"] = db_type

    async def run_chat():
        container = build_container()
        try:
            if message:
                with console.status("[cyan]Thinking...[/cyan]", spinner="dots"):
                    response = await container.pipeline.run(message, dict(context))
                print_response(response)
                if response.type == "confirmation_required":
                    await _confirm_interactively(container, response)
                return

            console.print("[bold]NLDB Chat[/bold] - type 'exit' to quit")
            while True:
                query = console.input("[bold cyan]You:[/bold cyan] ").strip()
                if not query:
                    continue
                if query.lower() in EXIT_WORDS:
                    console.print("[yellow]Goodbye![/yellow]")
                    break
                with console.status("[cyan]Thinking...[/cyan]", spinner="dots"):
                    response = await container.pipeline.run(query, dict(context))
                print_response(response)
                if response.type == "confirmation_required":
                    await _confirm_interactively(container, response)
        finally:
            await container.aclose()

    try:
        asyncio.run(run_chat())
    except (KeyboardInterrupt, EOFError):
        console.print("\n[yellow]Goodbye![/yellow]")


@cli.command()
@click.argument("question")
def ask(question: str):
    """Ask a question about the documentation."""

    async def run_ask():
        container = build_container()
        try:
            with console.status("[cyan]Searching documentation...[/cyan]", spinner="dots"):
                result = await container.rag.answer(question)
        finally:
            await container.aclose()

        console.print(Panel(Markdown(result["answer"]), title="[bold green]Answer[/bold green]"))
        if result["sources"]:
            table = Table(show_header=True, header_style="bold cyan", title="Sources")
            table.add_column("Document")
            table.add_column("Score", justify="right")
            for source in result["sources"]:
                table.add_row(source["title"], f"{source['score']:.3f}")
            console.print(table)

    try:
        asyncio.run(run_ask())
    except RetrievalError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command("index-docs")
@click.option("--force", is_flag=True, help="Ignore the embedding cache")
def index_docs(force: bool):
    """Build the documentation index and refresh the embedding cache."""

    async def run_index() -> int:
        container = build_container()
        try:
            with console.status("[cyan]Indexing documentation...[/cyan]", spinner="dots"):
                return await container.index.initialize(force=force)
        finally:
            await container.aclose()

    try:
        count = asyncio.run(run_index())
    except RetrievalError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    console.print(f"[green]✓ Indexed {count} documentation chunks[/green]")


if __name__ == "__main__":
    cli()
