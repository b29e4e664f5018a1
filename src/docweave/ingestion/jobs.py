"""Background sync jobs with one running sync per repository."""

import asyncio

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docweave.errors import NotFoundError, SyncConflictError
from docweave.ingestion.pipeline import SyncPipeline
from docweave.models.document import Repository
from docweave.models.sync import SyncJob, SyncMode
from docweave.retrieval.cache import QueryCache
from docweave.storage import RepositoryRepository, SyncJobRepository, get_session_factory

logger = structlog.get_logger()


class SyncJobManager:
    """
    Starts syncs as asyncio tasks and records their state as SyncJob rows.

    A second request for a repository that is already syncing is rejected
    with SyncConflictError, never queued. Different repositories sync
    concurrently.
    """

    def __init__(
        self,
        pipeline: SyncPipeline,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        cache: QueryCache | None = None,
        background_indexing: bool = True,
    ):
        self.pipeline = pipeline
        self.session_factory = session_factory or get_session_factory()
        self.cache = cache
        self.background_indexing = background_indexing
        self._locks: dict[str, asyncio.Lock] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    async def start_sync(
        self,
        repository_id: str,
        branch: str | None = None,
        mode: SyncMode = SyncMode.INCREMENTAL,
        target_commit: str | None = None,
        enable_embedding: bool = True,
    ) -> SyncJob:
        """
        Create a PENDING job and run the sync in the background.

        Raises:
            NotFoundError: the repository does not exist
            SyncConflictError: a sync of the repository is pending or running
        """
        async with self.session_factory() as session:
            repository = await RepositoryRepository(session).get(repository_id)
        if repository is None:
            raise NotFoundError("repository", repository_id)

        lock = self._locks.setdefault(repository_id, asyncio.Lock())
        if lock.locked():
            raise SyncConflictError(repository_id)
        await lock.acquire()

        try:
            async with self.session_factory() as session:
                jobs = SyncJobRepository(session)
                running = await jobs.get_running(repository_id)
                if running is not None:
                    raise SyncConflictError(repository_id, running.id)
                job = await jobs.create(
                    repository_id,
                    mode,
                    target_branch=branch or repository.default_branch,
                    target_commit_sha=target_commit,
                )
        except BaseException:
            lock.release()
            raise

        task = asyncio.create_task(self._run(job, repository, lock, enable_embedding))
        self._tasks[job.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job.id, None))

        logger.info("sync_job_started", job_id=job.id, repository_id=repository_id, mode=mode.value)
        return job

    async def _run(
        self,
        job: SyncJob,
        repository: Repository,
        lock: asyncio.Lock,
        enable_embedding: bool,
    ) -> None:
        try:
            async with self.session_factory() as session:
                jobs = SyncJobRepository(session)
                await jobs.mark_running(job.id)
                last_synced = await jobs.get_last_synced_commit(repository.id)

            async def report(processed: int, total: int) -> None:
                async with self.session_factory() as session:
                    await SyncJobRepository(session).update_progress(job.id, processed, total)

            last_commit = await self.pipeline.sync_repository(
                repository.id,
                branch=job.target_branch,
                mode=job.mode,
                target_commit=job.target_commit_sha,
                last_synced_commit=last_synced,
                enable_embedding=enable_embedding,
                background_indexing=self.background_indexing,
                on_progress=report,
            )

            async with self.session_factory() as session:
                await SyncJobRepository(session).mark_succeeded(job.id, last_commit)
            if self.cache is not None:
                self.cache.invalidate(repository.project_id)
            logger.info("sync_job_succeeded", job_id=job.id, last_commit=last_commit)

        except Exception as e:
            logger.error("sync_job_failed", job_id=job.id, repository_id=repository.id, error=str(e))
            async with self.session_factory() as session:
                await SyncJobRepository(session).mark_failed(job.id, str(e))
        finally:
            lock.release()

    async def wait(self, job_id: str) -> SyncJob | None:
        """Wait until a job started by this manager has finished."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return await self.get_job(job_id)

    async def get_job(self, job_id: str) -> SyncJob | None:
        async with self.session_factory() as session:
            return await SyncJobRepository(session).get(job_id)

    async def list_jobs(self, repository_id: str, limit: int = 20) -> list[SyncJob]:
        async with self.session_factory() as session:
            return await SyncJobRepository(session).get_by_repository(repository_id, limit)

    async def last_synced_commit(self, repository_id: str) -> str | None:
        async with self.session_factory() as session:
            return await SyncJobRepository(session).get_last_synced_commit(repository_id)
