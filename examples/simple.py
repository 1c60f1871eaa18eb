import asyncio
import logging
import tempfile
from pathlib import Path

from backup_scheduler.backends.local import LocalBackend
from backup_scheduler.executors.folder import FolderBackupExecutor
from backup_scheduler.storages.sqlalchemy import InMemoryStorage

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")


async def main():
    workdir = Path(tempfile.mkdtemp(prefix="backup-example-"))
    source = workdir / "documents"
    source.mkdir()
    (source / "todo.txt").write_text("water the plants\n")

    storage = InMemoryStorage()
    await storage.create_tables()
    executor = FolderBackupExecutor(storage, workdir / "backups", retry_delay=1)
    backend = LocalBackend(storage, workdir / "backups", executor)

    await backend.create_job(str(source), frequency_minutes=5)
    await backend.create_job(str(workdir / "not-mounted-yet"), frequency_minutes=5)

    await backend.start()
    # Run a pass right away instead of waiting for the next minute.
    await backend.tick()
    await backend.wait_for_idle()
    await backend.stop()

    for job in await backend.list_jobs():
        print(f"job {job.id}: {job.status.value} (retries={job.retries}) {job.folder_path}")
    for entry in reversed(await backend.list_logs()):
        print(entry.readable_string)

    await storage.dispose()


if __name__ == "__main__":
    asyncio.run(main())
