from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.future import select
from sqlalchemy.orm import declarative_base, sessionmaker

from backup_scheduler.domain.job import BackupJob, JobStatus
from backup_scheduler.domain.log import LogEntry, LogLevel
from backup_scheduler.errors import StoreError
from backup_scheduler.storages.protocol import Storage

Base = declarative_base()


class JobModel(Base):
    __tablename__ = 'jobs'

    id = Column(Integer, primary_key=True, autoincrement=True)
    folder_path = Column(String, nullable=False)
    frequency_minutes = Column(Integer, nullable=False)
    last_run = Column(DateTime(timezone=True))
    status = Column(String, nullable=False, default=JobStatus.PENDING.value)
    retries = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index('idx_jobs_active', 'active'),)


class LogModel(Base):
    __tablename__ = 'logs'

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(Integer, ForeignKey('jobs.id'))
    message = Column(String, nullable=False)
    level = Column(String, nullable=False, default=LogLevel.INFO.value)
    timestamp = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index('idx_logs_timestamp', 'timestamp'),)


class SqlAlchemyStorage(Storage):
    def __init__(self, db_url: str):
        self.engine = create_async_engine(db_url)
        self.async_session = sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.async_session() as session:
                yield session
        except SQLAlchemyError as e:
            raise StoreError(f"Job store operation failed: {e}") from e

    async def create_tables(self) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StoreError(f"Could not create tables: {e}") from e

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def create_job(self, folder_path: str, frequency_minutes: int, active: bool = True) -> BackupJob:
        now = datetime.now(ZoneInfo("UTC"))
        async with self._session() as session:
            db_job = JobModel(
                folder_path=folder_path,
                frequency_minutes=frequency_minutes,
                status=JobStatus.PENDING.value,
                retries=0,
                active=active,
                created_at=now
            )
            session.add(db_job)
            await session.flush()
            session.add(LogModel(
                job_id=db_job.id,
                message=f"Job created for path: {folder_path}",
                level=LogLevel.INFO.value,
                timestamp=now
            ))
            await session.commit()
            return self._db_to_job(db_job)

    async def get_job(self, job_id: int) -> Optional[BackupJob]:
        async with self._session() as session:
            result = await session.execute(select(JobModel).filter_by(id=job_id))
            db_job = result.scalar_one_or_none()
            if db_job:
                return self._db_to_job(db_job)
            return None

    async def list_jobs(self) -> List[BackupJob]:
        async with self._session() as session:
            result = await session.execute(select(JobModel).order_by(JobModel.id.desc()))
            return [self._db_to_job(db_job) for db_job in result.scalars()]

    async def list_active_jobs(self) -> List[BackupJob]:
        async with self._session() as session:
            result = await session.execute(
                select(JobModel).filter_by(active=True).order_by(JobModel.id)
            )
            return [self._db_to_job(db_job) for db_job in result.scalars()]

    async def list_error_jobs(self, active: bool = True) -> List[BackupJob]:
        async with self._session() as session:
            result = await session.execute(
                select(JobModel)
                .filter_by(status=JobStatus.ERROR.value, active=active)
                .order_by(JobModel.id)
            )
            return [self._db_to_job(db_job) for db_job in result.scalars()]

    async def _update_job(self, job_id: int, **values) -> bool:
        async with self._session() as session:
            result = await session.execute(
                update(JobModel).where(JobModel.id == job_id).values(**values)
            )
            await session.commit()
            return result.rowcount > 0

    async def update_job_status(self, job_id: int, status: JobStatus, retries: Optional[int] = None) -> bool:
        values = {"status": JobStatus(status).value}
        if retries is not None:
            values["retries"] = retries
        return await self._update_job(job_id, **values)

    async def update_last_run(self, job_id: int, timestamp: datetime) -> bool:
        return await self._update_job(job_id, last_run=timestamp)

    async def set_job_active(self, job_id: int, active: bool) -> bool:
        return await self._update_job(job_id, active=active)

    async def update_job(
        self,
        job_id: int,
        folder_path: Optional[str] = None,
        frequency_minutes: Optional[int] = None,
        active: Optional[bool] = None,
    ) -> Optional[BackupJob]:
        if frequency_minutes is not None and frequency_minutes <= 0:
            raise ValueError("frequency_minutes must be a positive integer")
        values = {
            name: value
            for name, value in (
                ("folder_path", folder_path),
                ("frequency_minutes", frequency_minutes),
                ("active", active),
            )
            if value is not None
        }
        if values and not await self._update_job(job_id, **values):
            return None
        return await self.get_job(job_id)

    async def release_running_job(self, job_id: int) -> bool:
        async with self._session() as session:
            result = await session.execute(
                update(JobModel)
                .where(JobModel.id == job_id, JobModel.status == JobStatus.RUNNING.value)
                .values(status=JobStatus.PENDING.value)
            )
            await session.commit()
            return result.rowcount > 0

    async def delete_job(self, job_id: int) -> bool:
        async with self._session() as session:
            result = await session.execute(select(JobModel).filter_by(id=job_id))
            db_job = result.scalar_one_or_none()
            if db_job:
                await session.delete(db_job)
                await session.commit()
                return True
            return False

    async def append_log(self, job_id: Optional[int], message: str, level: LogLevel, timestamp: datetime) -> LogEntry:
        async with self._session() as session:
            db_log = LogModel(
                job_id=job_id,
                message=message,
                level=LogLevel(level).value,
                timestamp=timestamp
            )
            session.add(db_log)
            await session.commit()
            return self._db_to_log(db_log)

    async def list_logs(self, limit: int = 100, job_id: Optional[int] = None) -> List[LogEntry]:
        async with self._session() as session:
            query = select(LogModel, JobModel.folder_path).outerjoin(JobModel, LogModel.job_id == JobModel.id)
            if job_id is not None:
                query = query.where(LogModel.job_id == job_id)
            result = await session.execute(
                query.order_by(LogModel.timestamp.desc(), LogModel.id.desc()).limit(limit)
            )
            return [self._db_to_log(db_log, folder_path) for db_log, folder_path in result.all()]

    def _db_to_job(self, db_job: JobModel) -> BackupJob:
        return BackupJob(
            id=db_job.id,
            folder_path=db_job.folder_path,
            frequency_minutes=db_job.frequency_minutes,
            last_run=db_job.last_run,
            status=JobStatus(db_job.status),
            retries=db_job.retries,
            active=db_job.active,
            created_at=db_job.created_at
        )

    def _db_to_log(self, db_log: LogModel, folder_path: Optional[str] = None) -> LogEntry:
        return LogEntry(
            id=db_log.id,
            job_id=db_log.job_id,
            message=db_log.message,
            level=LogLevel(db_log.level),
            timestamp=db_log.timestamp,
            folder_path=folder_path
        )


class InMemoryStorage(SqlAlchemyStorage):
    def __init__(self):
        super().__init__("sqlite+aiosqlite:///:memory:")
