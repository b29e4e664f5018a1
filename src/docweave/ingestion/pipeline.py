"""Git-to-document sync orchestration."""

import asyncio
import posixpath
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable

import structlog
from git import Repo
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docweave.errors import DocweaveError, NotFoundError
from docweave.git import ChangedFile, ChangeType, CommitInfo, CommitWalker, FileScanner, GitWorkspace
from docweave.ingestion.chunker import HeadingChunker, get_chunker
from docweave.ingestion.links import LinkParser, get_link_parser
from docweave.ingestion.parser import DocumentParser, get_parser
from docweave.models.document import DocType, DocumentLink, LinkType, Repository
from docweave.models.sync import SyncMode
from docweave.observability.metrics import INDEXING_FAILURES, SYNC_DOCUMENTS, SYNC_LATENCY
from docweave.retrieval.base import SearchStrategy
from docweave.storage import (
    ChunkRepository,
    DocumentRepository,
    LinkRepository,
    RepositoryRepository,
    get_session_factory,
)

logger = structlog.get_logger()

ProgressCallback = Callable[[int, int], Awaitable[None]]

_ADR_PATH = re.compile(r"(^|/)adrs?/", re.IGNORECASE)
_OPENAPI_NAME = re.compile(r"(^|\.)(openapi|swagger)\.(ya?ml|json)$", re.IGNORECASE)


def detect_doc_type(path: str) -> DocType:
    """Classify a document by its path; ADR directories win over extensions."""
    if _ADR_PATH.search(path):
        return DocType.ADR
    name = posixpath.basename(path).lower()
    if _OPENAPI_NAME.search(name):
        return DocType.OPENAPI
    ext = posixpath.splitext(name)[1]
    if ext in (".md", ".markdown"):
        return DocType.MD
    if ext in (".adoc", ".asciidoc"):
        return DocType.ADOC
    return DocType.OTHER


@dataclass
class SyncStats:
    """Statistics from a sync run."""

    repository_id: str
    mode: str
    commits_processed: int = 0
    documents_processed: int = 0
    versions_created: int = 0
    documents_unchanged: int = 0
    documents_deleted: int = 0
    chunks_created: int = 0
    links_found: int = 0
    links_broken: int = 0
    errors: int = 0
    last_commit: str | None = None
    duration_seconds: float = 0.0
    versions_to_index: list[str] = field(default_factory=list)


@dataclass
class _Change:
    """One unit of work: a change applied at a commit."""

    change: ChangedFile
    commit: CommitInfo


class SyncPipeline:
    """
    Mirrors the documentation of a Git repository into the store.

    Flow per document:
    1. Read the blob at the commit
    2. Upsert the document; a version is written only for unseen content
    3. For a new (or restored) version, replace its chunks and links
    4. Hand the version to the indexing strategies after the sync
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        workspace: GitWorkspace | None = None,
        scanner: FileScanner | None = None,
        parser: DocumentParser | None = None,
        chunker: HeadingChunker | None = None,
        link_parser: LinkParser | None = None,
        indexers: list[SearchStrategy] | None = None,
    ):
        self.session_factory = session_factory or get_session_factory()
        self.workspace = workspace or GitWorkspace()
        self.scanner = scanner or FileScanner()
        self.parser = parser or get_parser()
        self.chunker = chunker or get_chunker()
        self.link_parser = link_parser or get_link_parser()
        self.indexers = list(indexers or [])
        self._indexing_tasks: set[asyncio.Task] = set()

    async def sync_repository(
        self,
        repository_id: str,
        branch: str | None = None,
        mode: SyncMode = SyncMode.FULL_SCAN,
        target_commit: str | None = None,
        last_synced_commit: str | None = None,
        enable_embedding: bool = True,
        background_indexing: bool = True,
        on_progress: ProgressCallback | None = None,
    ) -> str:
        """
        Sync a repository and return the last commit processed.

        Raises:
            NotFoundError: unknown repository, branch or target commit
            TransientIOError: clone, fetch or checkout failed
        """
        stats = await self.sync(
            repository_id,
            branch=branch,
            mode=mode,
            target_commit=target_commit,
            last_synced_commit=last_synced_commit,
            enable_embedding=enable_embedding,
            background_indexing=background_indexing,
            on_progress=on_progress,
        )
        return stats.last_commit

    async def sync(
        self,
        repository_id: str,
        branch: str | None = None,
        mode: SyncMode = SyncMode.FULL_SCAN,
        target_commit: str | None = None,
        last_synced_commit: str | None = None,
        enable_embedding: bool = True,
        background_indexing: bool = True,
        on_progress: ProgressCallback | None = None,
    ) -> SyncStats:
        """Same as sync_repository, returning the full statistics."""
        start_time = time.monotonic()

        async with self.session_factory() as session:
            repository = await RepositoryRepository(session).get(repository_id)
        if repository is None:
            raise NotFoundError("repository", repository_id)

        branch = branch or repository.default_branch
        repo = await asyncio.to_thread(self.workspace.clone_or_open, repository)
        await asyncio.to_thread(self.workspace.fetch, repo)
        await asyncio.to_thread(self.workspace.checkout, repo, branch)
        tip = await asyncio.to_thread(self.workspace.get_latest_commit_sha, repo, branch)
        walker = CommitWalker(repo, self.workspace.remote_name)

        if mode == SyncMode.INCREMENTAL and not last_synced_commit:
            logger.info("incremental_without_baseline", repository_id=repository_id)
            mode = SyncMode.FULL_SCAN
        elif mode == SyncMode.INCREMENTAL and walker.resolve_commit(last_synced_commit) is None:
            logger.warning(
                "baseline_commit_not_found",
                repository_id=repository_id,
                last_synced_commit=last_synced_commit,
            )
            mode = SyncMode.FULL_SCAN

        stats = SyncStats(repository_id=repository_id, mode=mode.value)
        logger.info(
            "sync_started",
            repository_id=repository_id,
            branch=branch,
            mode=mode.value,
            tip=tip[:7],
        )

        if mode == SyncMode.SPECIFIC_COMMIT:
            await self._sync_commit(repo, repository, walker, target_commit, stats, on_progress)
        elif mode == SyncMode.INCREMENTAL:
            if last_synced_commit == tip:
                logger.info("already_up_to_date", repository_id=repository_id, commit=tip[:7])
                stats.last_commit = tip
                return stats
            await self._sync_range(repo, repository, walker, last_synced_commit, tip, stats, on_progress)
        else:
            await self._sync_full(repo, repository, walker, target_commit or tip, stats, on_progress)

        await self._resolve_broken_links(repository)

        stats.duration_seconds = time.monotonic() - start_time
        SYNC_LATENCY.labels(mode=stats.mode).observe(stats.duration_seconds)

        if enable_embedding and stats.versions_to_index and self.indexers:
            versions = list(stats.versions_to_index)
            if background_indexing:
                task = asyncio.create_task(self._index_versions(versions))
                self._indexing_tasks.add(task)
                task.add_done_callback(self._indexing_tasks.discard)
            else:
                await self._index_versions(versions)

        logger.info(
            "sync_complete",
            repository_id=repository_id,
            mode=stats.mode,
            last_commit=stats.last_commit,
            commits=stats.commits_processed,
            processed=stats.documents_processed,
            versions_created=stats.versions_created,
            unchanged=stats.documents_unchanged,
            deleted=stats.documents_deleted,
            chunks=stats.chunks_created,
            errors=stats.errors,
            duration=f"{stats.duration_seconds:.2f}s",
        )
        return stats

    async def wait_for_indexing(self) -> None:
        """Wait for background indexing started by earlier syncs."""
        if self._indexing_tasks:
            await asyncio.gather(*list(self._indexing_tasks))

    async def _sync_full(
        self,
        repo: Repo,
        repository: Repository,
        walker: CommitWalker,
        commit_sha: str,
        stats: SyncStats,
        on_progress: ProgressCallback | None,
    ) -> None:
        commit = walker.resolve_commit(commit_sha)
        if commit is None:
            raise NotFoundError("commit", commit_sha)
        target = await asyncio.to_thread(self.workspace.get_commit_info, repo, commit.hexsha)
        if target is None:
            raise NotFoundError("commit", commit_sha)

        paths = await asyncio.to_thread(self.scanner.scan_document_files, repo, target.sha)
        for i, path in enumerate(paths, start=1):
            provenance = await asyncio.to_thread(
                self.workspace.get_last_commit_for_file, repo, path, target.sha
            )
            await self._process_path(repo, repository, path, provenance or target, stats)
            if on_progress:
                await on_progress(i, len(paths))

        present = set(paths)
        async with self.session_factory() as session:
            known = await DocumentRepository(session).get_all(repository.id)
        for document in known:
            if document.path not in present:
                await self._delete_path(repository, document.path, stats)

        stats.commits_processed = 1
        stats.last_commit = target.sha

    async def _sync_range(
        self,
        repo: Repo,
        repository: Repository,
        walker: CommitWalker,
        from_exclusive: str,
        to_inclusive: str,
        stats: SyncStats,
        on_progress: ProgressCallback | None,
    ) -> None:
        commits = await asyncio.to_thread(walker.walk_range, from_exclusive, to_inclusive, True)
        work: list[_Change] = []
        for commit in commits:
            changes = await asyncio.to_thread(walker.changed_files, commit.sha)
            work.extend(_Change(change, commit) for change in self.scanner.filter_document_files(changes))

        await self._apply_changes(repo, repository, work, stats, on_progress)
        stats.commits_processed = len(commits)
        stats.last_commit = to_inclusive

    async def _sync_commit(
        self,
        repo: Repo,
        repository: Repository,
        walker: CommitWalker,
        commit_sha: str | None,
        stats: SyncStats,
        on_progress: ProgressCallback | None,
    ) -> None:
        if not commit_sha:
            raise DocweaveError("target_commit is required for SPECIFIC_COMMIT sync")
        commit = walker.resolve_commit(commit_sha)
        if commit is None:
            raise NotFoundError("commit", commit_sha)

        info = await asyncio.to_thread(self.workspace.get_commit_info, repo, commit.hexsha)
        if info is None:
            raise NotFoundError("commit", commit_sha)
        changes = await asyncio.to_thread(walker.changed_files, info.sha)
        work = [_Change(change, info) for change in self.scanner.filter_document_files(changes)]

        await self._apply_changes(repo, repository, work, stats, on_progress)
        stats.commits_processed = 1
        stats.last_commit = info.sha

    async def _apply_changes(
        self,
        repo: Repo,
        repository: Repository,
        work: list[_Change],
        stats: SyncStats,
        on_progress: ProgressCallback | None,
    ) -> None:
        for i, item in enumerate(work, start=1):
            change = item.change
            if change.change_type == ChangeType.DELETED:
                await self._delete_path(repository, change.path, stats)
            elif change.change_type == ChangeType.RENAMED:
                if change.old_path:
                    await self._delete_path(repository, change.old_path, stats)
                if self.scanner.is_document_file(change.path):
                    await self._process_path(repo, repository, change.path, item.commit, stats)
            else:
                await self._process_path(repo, repository, change.path, item.commit, stats)

            if on_progress:
                await on_progress(i, len(work))

    async def _process_path(
        self,
        repo: Repo,
        repository: Repository,
        path: str,
        commit: CommitInfo,
        stats: SyncStats,
    ) -> None:
        """Write one document at one commit. Failures are counted, not raised."""
        stats.documents_processed += 1
        try:
            content = await asyncio.to_thread(self.workspace.read_file, repo, commit.sha, path)
            if content is None:
                raise NotFoundError("file", f"{path}@{commit.short_sha}")

            # Version, chunks and links commit together or not at all
            link_counts = (0, 0)
            chunk_count = 0
            async with self.session_factory() as session, session.begin():
                result = await DocumentRepository(session).upsert_document(
                    repository_id=repository.id,
                    path=path,
                    title=self.parser.extract_title(content),
                    doc_type=detect_doc_type(path),
                    commit_sha=commit.sha,
                    content=content,
                    author_name=commit.author_name,
                    author_email=commit.author_email,
                    committed_at=commit.committed_at,
                    message=commit.message,
                )
                if result.new_version is not None:
                    drafts = self.chunker.chunk(content)
                    chunks = await ChunkRepository(session).replace_for_version(result.new_version.id, drafts)
                    chunk_count = len(chunks)
                if result.new_version is not None or result.reverted_to_version_id:
                    link_counts = await self._replace_links(session, repository, result.document.id, path, content)

            if result.new_version is not None:
                stats.versions_created += 1
                stats.chunks_created += chunk_count
                stats.versions_to_index.append(result.new_version.id)
                SYNC_DOCUMENTS.labels(status="created").inc()
            else:
                stats.documents_unchanged += 1
                SYNC_DOCUMENTS.labels(status="unchanged").inc()
                if result.reverted_to_version_id:
                    stats.versions_to_index.append(result.reverted_to_version_id)
            stats.links_found += link_counts[0]
            stats.links_broken += link_counts[1]

            logger.debug("processed_document", path=path, commit=commit.short_sha)

        except Exception as e:
            stats.errors += 1
            SYNC_DOCUMENTS.labels(status="error").inc()
            logger.error(
                "document_processing_error",
                repository_id=repository.id,
                path=path,
                commit=commit.short_sha,
                error=str(e),
            )

    async def _delete_path(self, repository: Repository, path: str, stats: SyncStats) -> None:
        async with self.session_factory() as session:
            deleted = await DocumentRepository(session).mark_deleted(repository.id, path)
        if deleted:
            stats.documents_deleted += 1
            SYNC_DOCUMENTS.labels(status="deleted").inc()
            logger.debug("document_deleted", repository_id=repository.id, path=path)

    async def _replace_links(
        self,
        session: AsyncSession,
        repository: Repository,
        document_id: str,
        path: str,
        content: str,
    ) -> tuple[int, int]:
        """Replace a document's outgoing links; returns (found, broken)."""
        documents = DocumentRepository(session)
        links = []
        broken_count = 0
        for extracted in self.link_parser.extract_links(content):
            target_id = await self._resolve_target(
                documents, repository.id, path, extracted.link_target, extracted.link_type
            )
            broken = target_id is None and extracted.link_type in (LinkType.INTERNAL, LinkType.WIKI)
            links.append(
                DocumentLink(
                    id=str(uuid.uuid4()),
                    source_document_id=document_id,
                    target_document_id=target_id,
                    link_text=extracted.link_text,
                    link_target=extracted.link_target,
                    link_type=extracted.link_type,
                    line_number=extracted.line_number,
                    broken=broken,
                )
            )
            broken_count += int(broken)

        await LinkRepository(session).replace_for_document(document_id, links)
        return len(links), broken_count

    async def _resolve_target(
        self,
        documents: DocumentRepository,
        repository_id: str,
        source_path: str,
        target: str,
        link_type: LinkType,
    ) -> str | None:
        for candidate in self.link_parser.candidate_paths(source_path, target, link_type):
            document = await documents.get_by_path(repository_id, candidate)
            if document is not None and not document.deleted:
                return document.id
        return None

    async def _resolve_broken_links(self, repository: Repository) -> None:
        """Retry broken links whose target may have appeared later in the sync."""
        async with self.session_factory() as session:
            links = LinkRepository(session)
            documents = DocumentRepository(session)
            resolved = 0
            for link in await links.get_broken(repository.id):
                source = await documents.get(link.source_document_id)
                if source is None:
                    continue
                target_id = await self._resolve_target(
                    documents, repository.id, source.path, link.link_target, link.link_type
                )
                if target_id is not None:
                    await links.set_target(link.id, target_id)
                    resolved += 1
        if resolved:
            logger.info("broken_links_resolved", repository_id=repository.id, count=resolved)

    async def _index_versions(self, version_ids: list[str]) -> None:
        """Run every indexer over the versions. Failures are logged per strategy and version."""
        for version_id in version_ids:
            for indexer in self.indexers:
                try:
                    await indexer.index(version_id)
                except Exception as e:
                    INDEXING_FAILURES.labels(strategy=indexer.mode.value).inc()
                    logger.error(
                        "version_indexing_failed",
                        strategy=indexer.mode.value,
                        version_id=version_id,
                        error=str(e),
                    )
        logger.info("versions_indexed", count=len(version_ids), strategies=len(self.indexers))
