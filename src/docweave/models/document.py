"""Data models for repositories, documents, versions, chunks and links."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocType(str, Enum):
    """Classification of a document by path and extension."""

    MD = "MD"
    ADOC = "ADOC"
    OPENAPI = "OPENAPI"
    ADR = "ADR"
    OTHER = "OTHER"


class LinkType(str, Enum):
    """Kind of a link found inside a document."""

    INTERNAL = "INTERNAL"
    WIKI = "WIKI"
    EXTERNAL = "EXTERNAL"
    ANCHOR = "ANCHOR"


class Repository(BaseModel):
    """A Git repository mirrored into a project's knowledge base."""

    id: str
    project_id: str
    name: str
    clone_url: str
    default_branch: str = "main"
    local_path: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class Document(BaseModel):
    """A document file tracked at (repository, path)."""

    id: str
    repository_id: str
    path: str
    title: str
    doc_type: DocType = DocType.OTHER
    latest_commit_sha: str | None = None
    latest_version_id: str | None = None
    deleted: bool = False
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class DocumentVersion(BaseModel):
    """Immutable snapshot of a document's content at one commit."""

    id: str
    document_id: str
    commit_sha: str
    author_name: str | None = None
    author_email: str | None = None
    committed_at: datetime | None = None
    message: str | None = None
    content_hash: str
    content: str
    created_at: datetime = Field(default_factory=_utcnow)


class DocChunk(BaseModel):
    """A heading-scoped slice of a document version."""

    id: str
    document_version_id: str
    chunk_index: int
    heading_path: str | None = None
    content: str
    token_count: int = 0
    created_at: datetime = Field(default_factory=_utcnow)


class ChunkDraft(BaseModel):
    """Chunker output before it is persisted against a version."""

    chunk_index: int
    heading_path: str | None = None
    content: str
    token_count: int


class DocumentLink(BaseModel):
    """A directed link from one document to another document or URL."""

    id: str
    source_document_id: str
    target_document_id: str | None = None
    link_text: str | None = None
    link_target: str
    link_type: LinkType
    line_number: int | None = None
    broken: bool = False


class ChunkContext(BaseModel):
    """A chunk joined with the document metadata needed to index or show it."""

    chunk: DocChunk
    document_id: str
    path: str
    title: str
    commit_sha: str
    repository_id: str
    project_id: str


class Heading(BaseModel):
    """A markdown heading with level, text and 1-based line number."""

    level: int
    text: str
    line: int


class Section(BaseModel):
    """Content between two headings."""

    heading: str  # "" for content before the first heading
    level: int
    content: str
    start_line: int


class ParsedDocument(BaseModel):
    """Document after parsing markdown."""

    title: str
    headings: list[Heading] = Field(default_factory=list)
    sections: list[Section] = Field(default_factory=list)
