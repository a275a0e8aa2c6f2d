"""
Clinicomm CLI.

Serve the API and run maintenance tasks against the configured database.
"""

import asyncio
import subprocess
import sys
from datetime import timedelta

import typer

from clinicomm.core.config.settings import settings
from clinicomm.database import adapter_for_url
from clinicomm.models.tables import ALL_MODELS
from clinicomm.store.conversation_store import ConversationStore

app = typer.Typer(help="Clinicomm multi-channel messaging service CLI")

APP_IMPORT = "clinicomm.core.app:create_app"


def _uvicorn_cmd(host: str, port: int, *extra: str) -> list[str]:
    return [
        sys.executable,
        "-m",
        "uvicorn",
        APP_IMPORT,
        "--factory",
        "--host",
        host,
        "--port",
        str(port),
        "--log-level",
        settings.log_level.lower(),
        *extra,
    ]


def _run_server(cmd: list[str], label: str) -> None:
    try:
        subprocess.run(cmd, check=True)
    except subprocess.CalledProcessError as e:
        typer.echo(f"❌ {label} server failed to start (exit code: {e.returncode})", err=True)
        typer.echo("", err=True)
        typer.echo("Common issues:", err=True)
        typer.echo("• Port already in use (try --port with different number)", err=True)
        typer.echo("• DATABASE_URL or REDIS_URL unreachable", err=True)
        raise typer.Exit(1)
    except KeyboardInterrupt:
        typer.echo(f"👋 {label} server stopped")


@app.command()
def dev(
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(settings.port, "--port", "-p", help="Port to bind to"),
):
    """
    Run development server with auto-reload.
    """
    typer.echo("🚀 Starting clinicomm development server...")
    typer.echo(f"🌐 Server: http://{host}:{port}")
    typer.echo(f"📝 Docs: http://{host}:{port}/docs")
    typer.echo("💡 Press CTRL+C to stop")
    typer.echo()
    _run_server(_uvicorn_cmd(host, port, "--reload"), "Development")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(settings.port, "--port", "-p", help="Port to bind to"),
    workers: int = typer.Option(1, "--workers", "-w", help="Number of worker processes"),
):
    """
    Run production server (no auto-reload).

    Presence is per process without REDIS_URL, so use a single worker then.
    """
    if workers > 1 and not settings.has_redis:
        typer.echo("⚠️ Multiple workers without REDIS_URL: users only receive live "
                   "events from the worker holding their socket", err=True)

    typer.echo("🚀 Starting clinicomm production server...")
    typer.echo(f"🌐 Server: http://{host}:{port}")
    typer.echo(f"👥 Workers: {workers}")
    typer.echo()
    _run_server(_uvicorn_cmd(host, port, "--workers", str(workers)), "Production")


async def _open_store(database_url: str, init_schema: bool):
    adapter = adapter_for_url(database_url)
    engine = await adapter.create_engine(database_url)
    if init_schema:
        await adapter.initialize_schema(engine, ALL_MODELS)
    session_factory = await adapter.create_session_factory(engine)
    return engine, ConversationStore(session_factory)


@app.command("init-db")
def init_db(
    database_url: str = typer.Option(
        settings.database_url, "--database-url", help="Database connection URL"
    ),
):
    """
    Create all tables in the configured database.
    """

    async def _run() -> None:
        engine, _ = await _open_store(database_url, init_schema=True)
        await engine.dispose()

    asyncio.run(_run())
    typer.echo("✅ Database schema initialized")


@app.command("sweep-stale")
def sweep_stale(
    older_than: int = typer.Option(
        settings.stale_sending_seconds,
        "--older-than",
        help="Seconds a message may stay in 'sending' before it is marked failed",
    ),
    database_url: str = typer.Option(
        settings.database_url, "--database-url", help="Database connection URL"
    ),
):
    """
    Mark messages stuck in 'sending' as failed.
    """

    async def _run() -> int:
        engine, store = await _open_store(database_url, init_schema=False)
        try:
            return await store.fail_stale_sending(timedelta(seconds=older_than))
        finally:
            await engine.dispose()

    count = asyncio.run(_run())
    typer.echo(f"🧹 Marked {count} stale message(s) as failed")


if __name__ == "__main__":
    app()
