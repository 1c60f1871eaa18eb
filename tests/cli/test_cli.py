import asyncio
from pathlib import Path

import pytest
from typer.testing import CliRunner

from backup_scheduler.cli import app
from backup_scheduler.config import get_settings
from backup_scheduler.domain.job import JobStatus
from backup_scheduler.storages.sqlalchemy import SqlAlchemyStorage

runner = CliRunner()


@pytest.fixture(scope="function")
def database_url(tmp_path: Path, monkeypatch) -> str:
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("BACKUP_SCHEDULER_DATABASE_URL", url)
    monkeypatch.setenv("BACKUP_SCHEDULER_BACKUP_ROOT", str(tmp_path / "backups"))
    monkeypatch.setenv("COLUMNS", "250")
    get_settings.cache_clear()
    yield url
    get_settings.cache_clear()


def read_job(database_url: str, job_id: int):
    async def _read():
        storage = SqlAlchemyStorage(database_url)
        try:
            return await storage.get_job(job_id)
        finally:
            await storage.dispose()

    return asyncio.run(_read())


def mark_failed(database_url: str, job_id: int) -> None:
    async def _update():
        storage = SqlAlchemyStorage(database_url)
        try:
            await storage.update_job_status(job_id, JobStatus.ERROR, retries=3)
        finally:
            await storage.dispose()

    asyncio.run(_update())


def test_add_and_list_jobs(database_url: str, tmp_path: Path):
    source = tmp_path / "photos"
    source.mkdir()

    result = runner.invoke(app, ["jobs", "add", str(source), "--every", "15"])
    assert result.exit_code == 0, result.output
    assert "Created job 1" in result.output

    job = read_job(database_url, 1)
    assert job.folder_path == str(source.resolve())
    assert job.frequency_minutes == 15

    result = runner.invoke(app, ["jobs", "list"])
    assert result.exit_code == 0, result.output
    assert "pending" in result.output


def test_add_rejects_non_positive_frequency(database_url: str, tmp_path: Path):
    result = runner.invoke(app, ["jobs", "add", str(tmp_path), "--every", "0"])
    assert result.exit_code != 0


def test_disable_and_enable(database_url: str, tmp_path: Path):
    runner.invoke(app, ["jobs", "add", str(tmp_path), "--every", "5"])

    result = runner.invoke(app, ["jobs", "disable", "1"])
    assert result.exit_code == 0, result.output
    assert read_job(database_url, 1).active is False

    result = runner.invoke(app, ["jobs", "enable", "1"])
    assert result.exit_code == 0, result.output
    assert read_job(database_url, 1).active is True


def test_unknown_job(database_url: str):
    for command in (["jobs", "disable", "42"], ["jobs", "remove", "42"], ["jobs", "reset", "42"]):
        result = runner.invoke(app, command)
        assert result.exit_code == 1
        assert "Job not found" in result.output


def test_remove_job(database_url: str, tmp_path: Path):
    runner.invoke(app, ["jobs", "add", str(tmp_path), "--every", "5"])

    result = runner.invoke(app, ["jobs", "remove", "1"])
    assert result.exit_code == 0, result.output
    assert read_job(database_url, 1) is None


def test_reset_failed_job(database_url: str, tmp_path: Path):
    runner.invoke(app, ["jobs", "add", str(tmp_path), "--every", "5"])

    result = runner.invoke(app, ["jobs", "reset", "1"])
    assert result.exit_code == 1
    assert "not in the error state" in result.output

    mark_failed(database_url, 1)
    result = runner.invoke(app, ["jobs", "reset", "1"])
    assert result.exit_code == 0, result.output
    job = read_job(database_url, 1)
    assert job.status == JobStatus.PENDING
    assert job.retries == 0


def test_logs(database_url: str, tmp_path: Path):
    runner.invoke(app, ["jobs", "add", str(tmp_path), "--every", "5"])

    result = runner.invoke(app, ["logs", "--limit", "10"])
    assert result.exit_code == 0, result.output
    assert "Job created for path" in result.output
    assert str(tmp_path.resolve()) in result.output


def test_worker_refuses_to_start_without_backup_root(database_url: str, tmp_path: Path, monkeypatch):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    monkeypatch.setenv("BACKUP_SCHEDULER_BACKUP_ROOT", str(blocker / "backups"))
    get_settings.cache_clear()

    result = runner.invoke(app, ["worker"])

    assert result.exit_code == 1
    assert "failed to start" in result.output


def test_update_job(database_url: str, tmp_path: Path):
    runner.invoke(app, ["jobs", "add", str(tmp_path), "--every", "5"])
    moved = tmp_path / "moved"

    result = runner.invoke(app, ["jobs", "update", "1", "--path", str(moved), "--every", "30"])
    assert result.exit_code == 0, result.output
    job = read_job(database_url, 1)
    assert job.folder_path == str(moved.resolve())
    assert job.frequency_minutes == 30

    result = runner.invoke(app, ["jobs", "update", "1", "--every", "45"])
    assert result.exit_code == 0, result.output
    job = read_job(database_url, 1)
    assert job.folder_path == str(moved.resolve())
    assert job.frequency_minutes == 45


def test_update_requires_a_change(database_url: str, tmp_path: Path):
    runner.invoke(app, ["jobs", "add", str(tmp_path), "--every", "5"])

    result = runner.invoke(app, ["jobs", "update", "1"])
    assert result.exit_code == 1
    assert "Nothing to update" in result.output

    result = runner.invoke(app, ["jobs", "update", "1", "--every", "0"])
    assert result.exit_code != 0

    result = runner.invoke(app, ["jobs", "update", "42", "--every", "5"])
    assert result.exit_code == 1
    assert "Job not found" in result.output
