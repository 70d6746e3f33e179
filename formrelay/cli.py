"""FormRelay CLI - serve the API, run the job worker, inspect the queue."""

from __future__ import annotations

import asyncio
import logging
import signal
import uuid

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import settings

app = typer.Typer(
    name="formrelay",
    help="FormRelay - form submission intake and notification delivery",
    no_args_is_help=True,
)
console = Console()

jobs_app = typer.Typer(help="Notification job queue")
app.add_typer(jobs_app, name="jobs")


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


@app.command("serve")
def serve(
    port: int = typer.Option(8030, "--port", "-p", help="Port to run on"),
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Launch the FormRelay API."""
    import uvicorn

    configure_logging()
    console.print(f"[bold cyan]Starting FormRelay at http://{host}:{port}[/bold cyan]")
    uvicorn.run("formrelay.app:app", host=host, port=port, reload=reload, log_config=None)


async def _run_worker() -> None:
    from .worker import JobWorker

    worker = JobWorker()
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    worker.start(force=True)
    try:
        await stop.wait()
    finally:
        console.print("[yellow]Shutting down, waiting for in-flight jobs...[/yellow]")
        await worker.stop()


@app.command("worker")
def worker():
    """Run the notification job worker until interrupted."""
    configure_logging()
    console.print("[bold cyan]FormRelay job worker running (Ctrl+C to stop)[/bold cyan]")
    asyncio.run(_run_worker())


async def _list_jobs(status: str | None, kind: str | None, limit: int):
    from .database import async_session_factory
    from .services import job_svc

    async with async_session_factory() as db:
        return await job_svc.list_jobs(db, status=status, kind=kind, limit=limit)


@jobs_app.command("list")
def jobs_list(
    status: str = typer.Option(None, "--status", "-s", help="pending, running or dead"),
    kind: str = typer.Option(None, "--kind", "-k", help="Job kind"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum rows"),
):
    """List queued and dead-lettered jobs."""
    jobs = asyncio.run(_list_jobs(status, kind, limit))
    if not jobs:
        console.print("[dim]No jobs found.[/dim]")
        return

    table = Table(title="Notification jobs")
    table.add_column("ID", style="dim")
    table.add_column("Kind")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Scheduled for")
    table.add_column("Last error", overflow="fold")
    for job in jobs:
        table.add_row(
            str(job.id),
            job.kind,
            job.status,
            f"{job.attempts}/{job.max_attempts}",
            str(job.scheduled_for),
            (job.last_error or "")[:120],
        )
    console.print(table)


async def _retry_job(job_id: uuid.UUID):
    from .database import async_session_factory
    from .services import job_svc

    async with async_session_factory() as db:
        return await job_svc.retry_job(db, job_id)


@jobs_app.command("retry")
def jobs_retry(job_id: str = typer.Argument(..., help="ID of a dead job")):
    """Requeue a dead job with a fresh attempt budget."""
    try:
        parsed = uuid.UUID(job_id)
    except ValueError:
        console.print(f"[red]Not a valid job ID: {job_id}[/red]")
        raise typer.Exit(1)

    job = asyncio.run(_retry_job(parsed))
    if not job:
        console.print(f"[red]No dead job with ID {job_id}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Requeued job {job.id} ({job.kind})[/green]")


if __name__ == "__main__":
    app()
