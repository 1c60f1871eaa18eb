import asyncio
import contextlib
import logging
import signal
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import typer
from rich import print
from rich.console import Console
from rich.table import Table

from backup_scheduler.audit import AuditLog
from backup_scheduler.backends.local import LocalBackend
from backup_scheduler.config import Settings, get_settings
from backup_scheduler.domain.job import BackupJob, JobStatus
from backup_scheduler.domain.log import LogLevel
from backup_scheduler.errors import BackupSchedulerError, StartupError
from backup_scheduler.executors.folder import FolderBackupExecutor
from backup_scheduler.storages.sqlalchemy import SqlAlchemyStorage

T = TypeVar("T")

app = typer.Typer(help="backup-scheduler - periodic folder backups with retries and an audit log.")
jobs_app = typer.Typer(help="Manage backup jobs.")
app.add_typer(jobs_app, name="jobs")

LEVEL_STYLES = {
    LogLevel.INFO: "cyan",
    LogLevel.WARNING: "yellow",
    LogLevel.ERROR: "red",
}


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _with_storage(action: Callable[[SqlAlchemyStorage], Awaitable[T]]) -> T:
    settings = get_settings()

    async def _run() -> T:
        storage = SqlAlchemyStorage(settings.database_url)
        try:
            await storage.create_tables()
            return await action(storage)
        finally:
            await storage.dispose()

    try:
        return asyncio.run(_run())
    except BackupSchedulerError as e:
        print(f"[red]{e}[/red]")
        raise typer.Exit(1)


async def _run_worker(settings: Settings) -> None:
    storage = SqlAlchemyStorage(settings.database_url)
    await storage.create_tables()
    executor = FolderBackupExecutor(
        storage,
        settings.backup_root,
        copy_timeout=settings.copy_timeout_seconds,
    )
    backend = LocalBackend(storage, settings.backup_root, executor)

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on Windows, where Ctrl+C still cancels asyncio.run.
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_requested.set)

    try:
        await backend.start()
        await stop_requested.wait()
        logging.getLogger(__name__).info("Shutdown signal received, stopping backup worker...")
    finally:
        await backend.stop()
        await storage.dispose()


@app.command()
def worker():
    """Run the backup scheduler until SIGINT/SIGTERM."""
    settings = get_settings()
    _configure_logging(settings)
    print(f"Backing up into [bold]{settings.backup_root}[/bold]. Ctrl+C to stop.")
    try:
        asyncio.run(_run_worker(settings))
    except StartupError as e:
        print(f"[red]Backup worker failed to start:[/red] {e}")
        raise typer.Exit(1)
    print("[yellow]Backup worker stopped.[/yellow]")


@jobs_app.command("add")
def jobs_add(
    folder: Path = typer.Argument(..., help="Source folder to back up"),
    every: int = typer.Option(..., "--every", "-e", min=1, help="Minutes between backups"),
):
    """Create a backup job."""
    folder_path = str(folder.expanduser().resolve(strict=False))
    job = _with_storage(lambda storage: storage.create_job(folder_path, every))
    print(f"[green]Created[/green] job [bold]{job.id}[/bold] for {job.folder_path} every {job.frequency_minutes} min")


@jobs_app.command("list")
def jobs_list():
    """List backup jobs."""
    jobs = _with_storage(lambda storage: storage.list_jobs())
    t = Table(title="Backup jobs")
    for c in ["id", "folder_path", "frequency_minutes", "last_run", "status", "retries", "active"]:
        t.add_column(c)
    for job in jobs:
        t.add_row(
            str(job.id),
            job.folder_path,
            str(job.frequency_minutes),
            job.last_run.isoformat() if job.last_run else "-",
            job.status.value,
            str(job.retries),
            "yes" if job.active else "no",
        )
    Console().print(t)


def _set_active(job_id: int, active: bool) -> None:
    if not _with_storage(lambda storage: storage.set_job_active(job_id, active)):
        print(f"[red]Job not found:[/red] {job_id}")
        raise typer.Exit(1)
    print(f"[green]Job {job_id} {'enabled' if active else 'disabled'}[/green]")


@jobs_app.command("enable")
def jobs_enable(job_id: int):
    """Resume scheduling a job."""
    _set_active(job_id, True)


@jobs_app.command("disable")
def jobs_disable(job_id: int):
    """Stop scheduling a job."""
    _set_active(job_id, False)


@jobs_app.command("update")
def jobs_update(
    job_id: int,
    folder: Optional[Path] = typer.Option(None, "--path", "-p", help="New source folder"),
    every: Optional[int] = typer.Option(None, "--every", "-e", min=1, help="New minutes between backups"),
):
    """Change a job's source folder or frequency, keeping its history."""
    if folder is None and every is None:
        print("[red]Nothing to update: pass --path and/or --every[/red]")
        raise typer.Exit(1)
    folder_path = str(folder.expanduser().resolve(strict=False)) if folder is not None else None
    job = _with_storage(
        lambda storage: storage.update_job(job_id, folder_path=folder_path, frequency_minutes=every)
    )
    if job is None:
        print(f"[red]Job not found:[/red] {job_id}")
        raise typer.Exit(1)
    print(f"[green]Job {job.id} updated:[/green] {job.folder_path} every {job.frequency_minutes} min")


@jobs_app.command("remove")
def jobs_remove(job_id: int):
    """Delete a job. Existing snapshots and log entries are kept."""
    if not _with_storage(lambda storage: storage.delete_job(job_id)):
        print(f"[red]Job not found:[/red] {job_id}")
        raise typer.Exit(1)
    print(f"[green]Job {job_id} removed[/green]")


@jobs_app.command("reset")
def jobs_reset(job_id: int):
    """Re-arm a job in the error state: reset status and retries."""

    async def _reset(storage: SqlAlchemyStorage) -> Optional[BackupJob]:
        job = await storage.get_job(job_id)
        if job is not None and job.status == JobStatus.ERROR:
            await storage.update_job_status(job_id, JobStatus.PENDING, retries=0)
            await AuditLog(storage).info(job_id, "Job reset manually")
        return job

    job = _with_storage(_reset)
    if job is None:
        print(f"[red]Job not found:[/red] {job_id}")
        raise typer.Exit(1)
    if job.status != JobStatus.ERROR:
        print(f"[red]Job {job_id} is not in the error state ({job.status.value})[/red]")
        raise typer.Exit(1)
    print(f"[green]Job {job_id} re-armed[/green]")


@app.command()
def logs(
    limit: int = typer.Option(100, "--limit", "-n", min=1, help="Number of entries to show"),
    job: Optional[int] = typer.Option(None, "--job", help="Only show entries of this job"),
):
    """Show the audit log, newest first."""
    entries = _with_storage(lambda storage: storage.list_logs(limit, job))
    t = Table(title="Backup log")
    for c in ["timestamp", "job_id", "folder_path", "level", "message"]:
        t.add_column(c)
    for entry in entries:
        style = LEVEL_STYLES[entry.level]
        t.add_row(
            entry.timestamp.isoformat(),
            str(entry.job_id) if entry.job_id is not None else "-",
            entry.folder_path or "-",
            f"[{style}]{entry.level.value}[/{style}]",
            entry.message,
        )
    Console().print(t)


if __name__ == "__main__":
    app()
