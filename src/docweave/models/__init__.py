"""Models package."""

from docweave.models.document import (
    ChunkContext,
    ChunkDraft,
    DocChunk,
    DocType,
    Document,
    DocumentLink,
    DocumentVersion,
    Heading,
    LinkType,
    ParsedDocument,
    Repository,
    Section,
)
from docweave.models.search import (
    ScoreBreakdown,
    SearchMode,
    SearchRequest,
    SearchResponse,
    SearchResult,
)
from docweave.models.sync import SyncJob, SyncMode, SyncStatus

__all__ = [
    "ChunkContext",
    "ChunkDraft",
    "DocChunk",
    "DocType",
    "Document",
    "DocumentLink",
    "DocumentVersion",
    "Heading",
    "LinkType",
    "ParsedDocument",
    "Repository",
    "ScoreBreakdown",
    "SearchMode",
    "SearchRequest",
    "SearchResponse",
    "SearchResult",
    "Section",
    "SyncJob",
    "SyncMode",
    "SyncStatus",
]
