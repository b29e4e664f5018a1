"""Database setup with SQLAlchemy async support (SQLite for local, Postgres for prod)."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, relationship

from docweave.config import get_settings


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RepositoryORM(Base):
    """Repositories table - Git remotes mirrored into a project."""

    __tablename__ = "repositories"

    id = Column(String, primary_key=True)
    project_id = Column(String, nullable=False)
    name = Column(String, nullable=False)
    clone_url = Column(String, nullable=False)
    default_branch = Column(String, nullable=False, default="main")
    local_path = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    documents = relationship("DocumentORM", back_populates="repository")

    __table_args__ = (Index("idx_repositories_project", "project_id"),)


class DocumentORM(Base):
    """Documents table - one row per (repository, path)."""

    __tablename__ = "documents"

    id = Column(String, primary_key=True)
    repository_id = Column(String, ForeignKey("repositories.id"), nullable=False)
    path = Column(String, nullable=False)
    title = Column(String, nullable=False)
    doc_type = Column(String, nullable=False, default="OTHER")
    latest_commit_sha = Column(String, nullable=True)
    latest_version_id = Column(String, nullable=True)
    deleted = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    repository = relationship("RepositoryORM", back_populates="documents")
    versions = relationship("DocumentVersionORM", back_populates="document")

    __table_args__ = (
        UniqueConstraint("repository_id", "path", name="uq_documents_repository_path"),
        Index("idx_documents_repository", "repository_id"),
    )


class DocumentVersionORM(Base):
    """Document versions table - immutable content snapshots."""

    __tablename__ = "document_versions"

    id = Column(String, primary_key=True)
    document_id = Column(String, ForeignKey("documents.id"), nullable=False)
    commit_sha = Column(String, nullable=False)
    author_name = Column(String, nullable=True)
    author_email = Column(String, nullable=True)
    committed_at = Column(DateTime(timezone=True), nullable=True)
    message = Column(Text, nullable=True)
    content_hash = Column(String, nullable=False)
    content = Column(Text, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    document = relationship("DocumentORM", back_populates="versions")
    chunks = relationship("DocChunkORM", back_populates="version")

    __table_args__ = (
        UniqueConstraint("document_id", "commit_sha", name="uq_versions_document_commit"),
        Index("idx_versions_hash", "document_id", "content_hash"),
    )


class DocChunkORM(Base):
    """Chunks table - heading-scoped slices of a version."""

    __tablename__ = "doc_chunks"

    id = Column(String, primary_key=True)
    document_version_id = Column(String, ForeignKey("document_versions.id"), nullable=False)
    chunk_index = Column(Integer, nullable=False)
    heading_path = Column(String, nullable=True)
    content = Column(Text, nullable=False)
    token_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    version = relationship("DocumentVersionORM", back_populates="chunks")

    __table_args__ = (
        UniqueConstraint("document_version_id", "chunk_index", name="uq_chunks_version_index"),
    )


class DocumentLinkORM(Base):
    """Links table - edges between documents."""

    __tablename__ = "document_links"

    id = Column(String, primary_key=True)
    source_document_id = Column(String, ForeignKey("documents.id"), nullable=False)
    target_document_id = Column(String, ForeignKey("documents.id"), nullable=True)
    link_text = Column(String, nullable=True)
    link_target = Column(String, nullable=False)
    link_type = Column(String, nullable=False)
    line_number = Column(Integer, nullable=True)
    broken = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("idx_links_source", "source_document_id"),
        Index("idx_links_target", "target_document_id"),
    )


class SyncJobORM(Base):
    """Sync jobs table - one row per background sync."""

    __tablename__ = "sync_jobs"

    id = Column(String, primary_key=True)
    repository_id = Column(String, ForeignKey("repositories.id"), nullable=False)
    status = Column(String, nullable=False, default="PENDING")
    mode = Column(String, nullable=False)
    target_branch = Column(String, nullable=True)
    target_commit_sha = Column(String, nullable=True)
    last_synced_commit = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)
    total_documents = Column(Integer, default=0, nullable=False)
    processed_documents = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_sync_jobs_repository", "repository_id", "status"),)


_async_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def _register_sqlite_functions(dbapi_connection, connection_record) -> None:
    # SQLite's built-in lower() only folds ASCII; Postgres folds all of Unicode
    dbapi_connection.create_function("lower", 1, _unicode_lower)


def create_engine_for_url(db_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine, adding pool options for server databases."""
    engine_kwargs = {"echo": echo}

    # Pooling options should NOT be forced on SQLite.
    if not _is_sqlite(db_url):
        engine_kwargs.update(
            {
                "pool_pre_ping": True,
                "pool_size": 5,
                "max_overflow": 5,
            }
        )

    engine = create_async_engine(db_url, **engine_kwargs)
    if _is_sqlite(db_url):
        event.listen(engine.sync_engine, "connect", _register_sqlite_functions)
    return engine


def get_async_engine() -> AsyncEngine:
    """Get or create the async database engine."""
    global _async_engine
    if _async_engine is None:
        settings = get_settings()
        _async_engine = create_engine_for_url(settings.database_url, echo=settings.debug)
    return _async_engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the process-wide session factory."""
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(get_async_engine(), expire_on_commit=False)
    return _async_session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with get_session_factory()() as session:
        yield session


async def init_database(engine: AsyncEngine | None = None):
    """Create tables if they don't exist."""
    engine = engine or get_async_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine():
    """Close pooled connections of the process-wide engine."""
    global _async_engine, _async_session_factory
    if _async_engine is not None:
        await _async_engine.dispose()
    _async_engine = None
    _async_session_factory = None
