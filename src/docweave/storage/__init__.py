"""Storage package."""

from docweave.storage.database import (
    Base,
    DocChunkORM,
    DocumentLinkORM,
    DocumentORM,
    DocumentVersionORM,
    RepositoryORM,
    SyncJobORM,
    create_engine_for_url,
    dispose_engine,
    get_async_engine,
    get_session,
    get_session_factory,
    init_database,
)
from docweave.storage.repositories import (
    ChunkRepository,
    DocumentRepository,
    LinkRepository,
    RepositoryRepository,
    SyncJobRepository,
    UpsertResult,
    compute_content_hash,
)

__all__ = [
    "Base",
    "ChunkRepository",
    "DocChunkORM",
    "DocumentLinkORM",
    "DocumentORM",
    "DocumentRepository",
    "DocumentVersionORM",
    "LinkRepository",
    "RepositoryORM",
    "RepositoryRepository",
    "SyncJobORM",
    "SyncJobRepository",
    "UpsertResult",
    "compute_content_hash",
    "create_engine_for_url",
    "dispose_engine",
    "get_async_engine",
    "get_session",
    "get_session_factory",
    "init_database",
]
