"""Typer CLI interface for VP Context."""

import asyncio
import os
import signal
import sys
from pathlib import Path
from typing import Optional

import httpx
import typer
import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .exceptions import SessionNotFoundError
from .session_store import SessionStore
from .state_store import StateStore

app = typer.Typer(
    name="vp-context",
    help="VP Context - capture screen and page content as tutoring context",
    add_completion=False,
)
console = Console()


async def check_service_running(port: int) -> bool:
    """Check if service is already running on port."""
    try:
        async with httpx.AsyncClient() as client:
            resp = await client.get(f"http://localhost:{port}/health", timeout=2.0)
            return resp.status_code == 200
    except httpx.HTTPError:
        return False


def _resolve_data_dir(data_dir: str) -> Path:
    path = Path(data_dir).resolve()
    if not path.exists():
        console.print(f"[red]Error:[/red] Data directory not found: {path}")
        raise typer.Exit(1)
    return path


async def _load_store(data_dir: Path) -> SessionStore:
    store = SessionStore(StateStore(data_dir=str(data_dir)))
    await store.load()
    return store


@app.command()
def serve(
    data_dir: str = typer.Option(
        ".", "--data-dir", "-d", help="Directory holding .vp-context/ state"
    ),
    port: int = typer.Option(3457, "--port", help="Service port"),
    host: str = typer.Option("localhost", "--host", help="Bind address"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
    traffic: bool = typer.Option(
        False, "--traffic", help="Log every bus message and OCR sample (with --debug)"
    ),
    reload: bool = typer.Option(
        False, "--reload", help="Enable auto-reload (dev mode)"
    ),
):
    """Start the VP Context service."""
    data_path = _resolve_data_dir(data_dir)

    # Set environment variables BEFORE importing settings to ensure they're picked up
    os.environ["VP_CONTEXT_DATA_DIR"] = str(data_path)
    os.environ["DEBUG"] = "true" if debug else "false"
    os.environ["LOG_TRAFFIC"] = "true" if traffic else "false"

    # Check if already running
    if asyncio.run(check_service_running(port)):
        console.print(f"[red]Error:[/red] Service already running on port {port}")
        raise typer.Exit(1)

    # Auto-add .vp-context/ to .gitignore
    gitignore = data_path / ".gitignore"
    if gitignore.exists():
        content = gitignore.read_text()
        if ".vp-context/" not in content:
            with gitignore.open("a") as f:
                f.write("\n# VP Context\n.vp-context/\n")
            console.print("[green]✓[/green] Added .vp-context/ to .gitignore")

    # Setup signal handlers for graceful shutdown
    def signal_handler(sig, frame):
        console.print("\n[yellow]Shutting down gracefully...[/yellow]")
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    from .config import settings

    console.print(
        Panel.fit(
            f"[bold]VP Context Service[/bold]\n\n"
            f"📁 Data: {data_path}\n"
            f"🔗 Tutoring API: {', '.join(settings.BASE_URL_CANDIDATES)}\n"
            f"📡 Page bridge: ws://{host}:{port}/ws/page/<tab_id>\n"
            f"🔍 Debug: {'enabled' if debug else 'disabled'}",
            border_style="green",
        )
    )

    uvicorn.run(
        "vp_context.main:app",
        host=host,
        port=port,
        log_level="debug" if debug else "info",
        reload=reload,
        access_log=debug,
        timeout_keep_alive=120,  # HTTP keepalive 2min
    )


@app.command()
def sessions(
    data_dir: str = typer.Option(
        ".", "--data-dir", "-d", help="Directory holding .vp-context/ state"
    ),
):
    """List chat sessions."""
    store = asyncio.run(_load_store(_resolve_data_dir(data_dir)))
    chats = store.list()
    if not chats:
        console.print("[yellow]No chat sessions yet[/yellow]")
        return

    table = Table(title="Chat sessions")
    table.add_column("", width=1)
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Updated")
    table.add_column("Messages", justify="right")
    table.add_column("Context", justify="right")

    for chat in chats:
        table.add_row(
            "*" if chat.id == store.active_id else "",
            chat.id,
            chat.title,
            chat.updated_at.strftime("%Y-%m-%d %H:%M:%S"),
            str(len(chat.messages)),
            f"{len(chat.context)} chars",
        )
    console.print(table)


@app.command()
def context(
    session_id: Optional[str] = typer.Option(
        None, "--session", "-s", help="Session ID (defaults to the active session)"
    ),
    data_dir: str = typer.Option(
        ".", "--data-dir", "-d", help="Directory holding .vp-context/ state"
    ),
):
    """Print the captured context of a session."""
    store = asyncio.run(_load_store(_resolve_data_dir(data_dir)))

    if session_id is None:
        chat = store.active()
        if chat is None:
            console.print("[yellow]No active session[/yellow]")
            raise typer.Exit(1)
    else:
        try:
            chat = store.get(session_id)
        except SessionNotFoundError as e:
            console.print(f"[red]Error:[/red] {e.message}")
            raise typer.Exit(1)

    console.print(f"[bold]{chat.title}[/bold] ({chat.id})")
    console.print(chat.context or "[dim](empty)[/dim]", markup=False, highlight=False)


if __name__ == "__main__":
    app()
