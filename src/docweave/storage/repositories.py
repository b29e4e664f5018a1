"""Repository pattern for database operations."""

import hashlib
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import and_, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from docweave.models.document import (
    ChunkContext,
    ChunkDraft,
    DocChunk,
    DocType,
    Document,
    DocumentLink,
    DocumentVersion,
    LinkType,
    Repository,
)
from docweave.models.sync import SyncJob, SyncMode, SyncStatus
from docweave.storage.database import (
    DocChunkORM,
    DocumentLinkORM,
    DocumentORM,
    DocumentVersionORM,
    RepositoryORM,
    SyncJobORM,
)

logger = structlog.get_logger()


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RepositoryRepository:
    """Repository for Git repository registrations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, repository_id: str) -> Repository | None:
        """Get a repository by ID."""
        orm = await self.session.get(RepositoryORM, repository_id)
        return self._to_model(orm) if orm else None

    async def get_all(self, project_id: str | None = None) -> list[Repository]:
        """Get all repositories, optionally filtered by project."""
        query = select(RepositoryORM).order_by(RepositoryORM.name)
        if project_id:
            query = query.where(RepositoryORM.project_id == project_id)
        result = await self.session.execute(query)
        return [self._to_model(orm) for orm in result.scalars()]

    async def upsert(self, repository: Repository) -> Repository:
        """Create or update a repository registration."""
        orm = await self.session.get(RepositoryORM, repository.id)
        if orm is None:
            orm = RepositoryORM(id=repository.id)
            self.session.add(orm)
        orm.project_id = repository.project_id
        orm.name = repository.name
        orm.clone_url = repository.clone_url
        orm.default_branch = repository.default_branch
        orm.local_path = repository.local_path
        await self.session.commit()
        return repository

    def _to_model(self, orm: RepositoryORM) -> Repository:
        return Repository(
            id=orm.id,
            project_id=orm.project_id,
            name=orm.name,
            clone_url=orm.clone_url,
            default_branch=orm.default_branch,
            local_path=orm.local_path,
            created_at=orm.created_at,
        )


@dataclass
class UpsertResult:
    """Outcome of writing one document at one commit."""

    document: Document
    new_version: DocumentVersion | None = None
    # Set when identical content reappeared and the latest version moved back to it
    reverted_to_version_id: str | None = None


class DocumentRepository:
    """Repository for documents and their versions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, document_id: str) -> Document | None:
        """Get a document by ID."""
        orm = await self.session.get(DocumentORM, document_id)
        return self._to_model(orm) if orm else None

    async def get_by_path(self, repository_id: str, path: str) -> Document | None:
        """Get a document by repository and path."""
        orm = await self._get_orm_by_path(repository_id, path)
        return self._to_model(orm) if orm else None

    async def get_all(self, repository_id: str, include_deleted: bool = False) -> list[Document]:
        """Get all documents of a repository ordered by path."""
        query = (
            select(DocumentORM)
            .where(DocumentORM.repository_id == repository_id)
            .order_by(DocumentORM.path)
        )
        if not include_deleted:
            query = query.where(DocumentORM.deleted.is_(False))
        result = await self.session.execute(query)
        return [self._to_model(orm) for orm in result.scalars()]

    async def get_version(self, version_id: str) -> DocumentVersion | None:
        """Get a document version by ID."""
        orm = await self.session.get(DocumentVersionORM, version_id)
        return self._version_to_model(orm) if orm else None

    async def get_versions(self, document_id: str) -> list[DocumentVersion]:
        """Get all versions of a document, oldest first."""
        result = await self.session.execute(
            select(DocumentVersionORM)
            .where(DocumentVersionORM.document_id == document_id)
            .order_by(DocumentVersionORM.created_at, DocumentVersionORM.committed_at)
        )
        return [self._version_to_model(orm) for orm in result.scalars()]

    async def count_versions(self, repository_id: str | None = None) -> int:
        """Count version rows, optionally within one repository."""
        query = select(func.count(DocumentVersionORM.id))
        if repository_id:
            query = query.join(DocumentORM, DocumentORM.id == DocumentVersionORM.document_id).where(
                DocumentORM.repository_id == repository_id
            )
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def upsert_document(
        self,
        repository_id: str,
        path: str,
        title: str,
        doc_type: DocType,
        commit_sha: str,
        content: str,
        author_name: str | None = None,
        author_email: str | None = None,
        committed_at: datetime | None = None,
        message: str | None = None,
    ) -> UpsertResult:
        """
        Create or update a document and record its content at a commit.

        A new version row is written only when no earlier version of the
        document has the same content hash. Otherwise only the document's
        latest-commit pointer advances.

        Changes are flushed, not committed, so the caller can commit the
        version together with its chunks and links.
        """
        content_hash = compute_content_hash(content)
        orm = await self._get_orm_by_path(repository_id, path)
        if orm is None:
            orm = DocumentORM(
                id=_new_id(),
                repository_id=repository_id,
                path=path,
                title=title,
                doc_type=doc_type.value,
                deleted=False,
            )
            self.session.add(orm)
            await self.session.flush()
        else:
            orm.title = title
            orm.doc_type = doc_type.value
            orm.deleted = False

        result = await self.session.execute(
            select(DocumentVersionORM)
            .where(
                DocumentVersionORM.document_id == orm.id,
                DocumentVersionORM.content_hash == content_hash,
            )
            .limit(1)
        )
        existing = result.scalar_one_or_none()

        new_version = None
        reverted_to = None
        if existing is None:
            version_orm = DocumentVersionORM(
                id=_new_id(),
                document_id=orm.id,
                commit_sha=commit_sha,
                author_name=author_name,
                author_email=author_email,
                committed_at=committed_at,
                message=message,
                content_hash=content_hash,
                content=content,
            )
            self.session.add(version_orm)
            orm.latest_version_id = version_orm.id
            new_version = version_orm
        else:
            logger.debug(
                "version_deduplicated",
                document_id=orm.id,
                path=path,
                commit_sha=commit_sha,
                existing_version_id=existing.id,
            )
            if orm.latest_version_id != existing.id:
                orm.latest_version_id = existing.id
                reverted_to = existing.id

        orm.latest_commit_sha = commit_sha
        await self.session.flush()

        return UpsertResult(
            document=self._to_model(orm),
            new_version=self._version_to_model(new_version) if new_version else None,
            reverted_to_version_id=reverted_to,
        )

    async def mark_deleted(self, repository_id: str, path: str) -> bool:
        """Soft-delete a document. Returns False if it is unknown or already deleted."""
        orm = await self._get_orm_by_path(repository_id, path)
        if orm is None or orm.deleted:
            return False
        orm.deleted = True
        await self.session.commit()
        return True

    async def search_latest_content(
        self, project_id: str, query: str, limit: int
    ) -> list[tuple[Document, DocumentVersion]]:
        """Case-insensitive substring match over each live document's latest version."""
        result = await self.session.execute(
            select(DocumentORM, DocumentVersionORM)
            .join(DocumentVersionORM, DocumentVersionORM.id == DocumentORM.latest_version_id)
            .join(RepositoryORM, RepositoryORM.id == DocumentORM.repository_id)
            .where(
                RepositoryORM.project_id == project_id,
                DocumentORM.deleted.is_(False),
                func.lower(DocumentVersionORM.content).contains(query.lower(), autoescape=True),
            )
            .order_by(DocumentORM.path)
            .limit(limit)
        )
        return [
            (self._to_model(doc), self._version_to_model(version))
            for doc, version in result.all()
        ]

    async def _get_orm_by_path(self, repository_id: str, path: str) -> DocumentORM | None:
        result = await self.session.execute(
            select(DocumentORM).where(
                DocumentORM.repository_id == repository_id,
                DocumentORM.path == path,
            )
        )
        return result.scalar_one_or_none()

    def _to_model(self, orm: DocumentORM) -> Document:
        return Document(
            id=orm.id,
            repository_id=orm.repository_id,
            path=orm.path,
            title=orm.title,
            doc_type=DocType(orm.doc_type),
            latest_commit_sha=orm.latest_commit_sha,
            latest_version_id=orm.latest_version_id,
            deleted=orm.deleted,
            created_at=orm.created_at or _utcnow(),
            updated_at=orm.updated_at or _utcnow(),
        )

    def _version_to_model(self, orm: DocumentVersionORM) -> DocumentVersion:
        return DocumentVersion(
            id=orm.id,
            document_id=orm.document_id,
            commit_sha=orm.commit_sha,
            author_name=orm.author_name,
            author_email=orm.author_email,
            committed_at=orm.committed_at,
            message=orm.message,
            content_hash=orm.content_hash,
            content=orm.content,
            created_at=orm.created_at or _utcnow(),
        )


class ChunkRepository:
    """Repository for chunk CRUD operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_version(self, version_id: str) -> list[DocChunk]:
        """Get all chunks of a version in index order."""
        result = await self.session.execute(
            select(DocChunkORM)
            .where(DocChunkORM.document_version_id == version_id)
            .order_by(DocChunkORM.chunk_index)
        )
        return [self._to_model(orm) for orm in result.scalars()]

    async def replace_for_version(self, version_id: str, drafts: list[ChunkDraft]) -> list[DocChunk]:
        """
        Replace a version's chunk set.

        Delete and insert are flushed in the caller's transaction, so readers
        see either the old set or the new one once it commits.
        """
        await self.session.execute(
            delete(DocChunkORM).where(DocChunkORM.document_version_id == version_id)
        )
        orms = [
            DocChunkORM(
                id=_new_id(),
                document_version_id=version_id,
                chunk_index=draft.chunk_index,
                heading_path=draft.heading_path,
                content=draft.content,
                token_count=draft.token_count,
            )
            for draft in drafts
        ]
        self.session.add_all(orms)
        await self.session.flush()
        return [self._to_model(orm) for orm in orms]

    async def count(self) -> int:
        """Count total chunks."""
        result = await self.session.execute(select(func.count(DocChunkORM.id)))
        return result.scalar() or 0

    async def get_contexts(
        self, chunk_ids: list[str], include_deleted: bool = False
    ) -> dict[str, ChunkContext]:
        """Load chunks with their document, version and repository metadata."""
        if not chunk_ids:
            return {}
        condition = DocChunkORM.id.in_(chunk_ids)
        if not include_deleted:
            condition = and_(condition, DocumentORM.deleted.is_(False))
        rows = await self._context_rows(condition)
        return {ctx.chunk.id: ctx for ctx in rows}

    async def get_contexts_for_version(self, version_id: str) -> list[ChunkContext]:
        """Load every chunk of a version with its metadata, in index order."""
        return await self._context_rows(DocChunkORM.document_version_id == version_id)

    async def _context_rows(self, condition) -> list[ChunkContext]:
        result = await self.session.execute(
            select(DocChunkORM, DocumentVersionORM, DocumentORM, RepositoryORM)
            .join(DocumentVersionORM, DocumentVersionORM.id == DocChunkORM.document_version_id)
            .join(DocumentORM, DocumentORM.id == DocumentVersionORM.document_id)
            .join(RepositoryORM, RepositoryORM.id == DocumentORM.repository_id)
            .where(condition)
            .order_by(DocChunkORM.chunk_index)
        )
        return [
            ChunkContext(
                chunk=self._to_model(chunk),
                document_id=doc.id,
                path=doc.path,
                title=doc.title,
                commit_sha=version.commit_sha,
                repository_id=repo.id,
                project_id=repo.project_id,
            )
            for chunk, version, doc, repo in result.all()
        ]

    def _to_model(self, orm: DocChunkORM) -> DocChunk:
        return DocChunk(
            id=orm.id,
            document_version_id=orm.document_version_id,
            chunk_index=orm.chunk_index,
            heading_path=orm.heading_path,
            content=orm.content,
            token_count=orm.token_count,
            created_at=orm.created_at or _utcnow(),
        )


class LinkRepository:
    """Repository for links between documents."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def replace_for_document(
        self, source_document_id: str, links: list[DocumentLink]
    ) -> list[DocumentLink]:
        """Replace every outgoing link of a document within the caller's transaction."""
        await self.session.execute(
            delete(DocumentLinkORM).where(DocumentLinkORM.source_document_id == source_document_id)
        )
        for link in links:
            self.session.add(
                DocumentLinkORM(
                    id=link.id,
                    source_document_id=source_document_id,
                    target_document_id=link.target_document_id,
                    link_text=link.link_text,
                    link_target=link.link_target,
                    link_type=link.link_type.value,
                    line_number=link.line_number,
                    broken=link.broken,
                )
            )
        await self.session.flush()
        return links

    async def get_outgoing(self, source_document_id: str) -> list[DocumentLink]:
        """Get the links found in a document, in line order."""
        result = await self.session.execute(
            select(DocumentLinkORM)
            .where(DocumentLinkORM.source_document_id == source_document_id)
            .order_by(DocumentLinkORM.line_number)
        )
        return [self._to_model(orm) for orm in result.scalars()]

    async def get_incoming(self, target_document_id: str) -> list[DocumentLink]:
        """Get the links that point at a document."""
        result = await self.session.execute(
            select(DocumentLinkORM).where(DocumentLinkORM.target_document_id == target_document_id)
        )
        return [self._to_model(orm) for orm in result.scalars()]

    async def get_broken(self, repository_id: str) -> list[DocumentLink]:
        """Get unresolved links across a repository."""
        result = await self.session.execute(
            select(DocumentLinkORM)
            .join(DocumentORM, DocumentORM.id == DocumentLinkORM.source_document_id)
            .where(
                DocumentORM.repository_id == repository_id,
                DocumentLinkORM.broken.is_(True),
            )
            .order_by(DocumentORM.path, DocumentLinkORM.line_number)
        )
        return [self._to_model(orm) for orm in result.scalars()]

    async def set_target(self, link_id: str, target_document_id: str) -> None:
        """Point a link at a document and clear its broken flag."""
        orm = await self.session.get(DocumentLinkORM, link_id)
        if orm is None:
            return
        orm.target_document_id = target_document_id
        orm.broken = False
        await self.session.commit()

    def _to_model(self, orm: DocumentLinkORM) -> DocumentLink:
        return DocumentLink(
            id=orm.id,
            source_document_id=orm.source_document_id,
            target_document_id=orm.target_document_id,
            link_text=orm.link_text,
            link_target=orm.link_target,
            link_type=LinkType(orm.link_type),
            line_number=orm.line_number,
            broken=orm.broken,
        )


class SyncJobRepository:
    """Repository for sync job state."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        repository_id: str,
        mode: SyncMode,
        target_branch: str | None = None,
        target_commit_sha: str | None = None,
    ) -> SyncJob:
        """Create a PENDING job."""
        orm = SyncJobORM(
            id=_new_id(),
            repository_id=repository_id,
            status=SyncStatus.PENDING.value,
            mode=mode.value,
            target_branch=target_branch,
            target_commit_sha=target_commit_sha,
        )
        self.session.add(orm)
        await self.session.commit()
        return self._to_model(orm)

    async def get(self, job_id: str) -> SyncJob | None:
        """Get a job by ID."""
        orm = await self.session.get(SyncJobORM, job_id)
        return self._to_model(orm) if orm else None

    async def get_by_repository(self, repository_id: str, limit: int = 20) -> list[SyncJob]:
        """Get the most recent jobs of a repository."""
        result = await self.session.execute(
            select(SyncJobORM)
            .where(SyncJobORM.repository_id == repository_id)
            .order_by(SyncJobORM.created_at.desc())
            .limit(limit)
        )
        return [self._to_model(orm) for orm in result.scalars()]

    async def get_running(self, repository_id: str) -> SyncJob | None:
        """Get a RUNNING or PENDING job of a repository, if any."""
        result = await self.session.execute(
            select(SyncJobORM)
            .where(
                SyncJobORM.repository_id == repository_id,
                SyncJobORM.status.in_([SyncStatus.PENDING.value, SyncStatus.RUNNING.value]),
            )
            .limit(1)
        )
        orm = result.scalar_one_or_none()
        return self._to_model(orm) if orm else None

    async def get_last_synced_commit(self, repository_id: str) -> str | None:
        """Get the commit recorded by the most recent successful job."""
        result = await self.session.execute(
            select(SyncJobORM.last_synced_commit)
            .where(
                SyncJobORM.repository_id == repository_id,
                SyncJobORM.status == SyncStatus.SUCCEEDED.value,
            )
            .order_by(SyncJobORM.finished_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def mark_running(self, job_id: str) -> None:
        await self._update(job_id, status=SyncStatus.RUNNING.value, started_at=_utcnow())

    async def mark_succeeded(self, job_id: str, last_synced_commit: str) -> None:
        await self._update(
            job_id,
            status=SyncStatus.SUCCEEDED.value,
            last_synced_commit=last_synced_commit,
            finished_at=_utcnow(),
        )

    async def mark_failed(self, job_id: str, error_message: str) -> None:
        await self._update(
            job_id,
            status=SyncStatus.FAILED.value,
            error_message=error_message,
            finished_at=_utcnow(),
        )

    async def update_progress(self, job_id: str, processed: int, total: int) -> None:
        await self._update(job_id, processed_documents=processed, total_documents=total)

    async def _update(self, job_id: str, **values) -> None:
        orm = await self.session.get(SyncJobORM, job_id)
        if orm is None:
            return
        for key, value in values.items():
            setattr(orm, key, value)
        await self.session.commit()

    def _to_model(self, orm: SyncJobORM) -> SyncJob:
        return SyncJob(
            id=orm.id,
            repository_id=orm.repository_id,
            status=SyncStatus(orm.status),
            mode=SyncMode(orm.mode),
            target_branch=orm.target_branch,
            target_commit_sha=orm.target_commit_sha,
            last_synced_commit=orm.last_synced_commit,
            error_message=orm.error_message,
            total_documents=orm.total_documents or 0,
            processed_documents=orm.processed_documents or 0,
            created_at=orm.created_at or _utcnow(),
            started_at=orm.started_at,
            finished_at=orm.finished_at,
        )


def compute_content_hash(content: str) -> str:
    """Compute SHA256 hash of content."""
    return hashlib.sha256(content.encode()).hexdigest()
