"""Ingestion package."""

from docweave.ingestion.chunker import HeadingChunker, get_chunker, get_tokenizer
from docweave.ingestion.jobs import SyncJobManager
from docweave.ingestion.links import ExtractedLink, LinkParser, get_link_parser
from docweave.ingestion.parser import DocumentParser, get_parser
from docweave.ingestion.pipeline import SyncPipeline, SyncStats, detect_doc_type

__all__ = [
    "DocumentParser",
    "ExtractedLink",
    "HeadingChunker",
    "LinkParser",
    "SyncJobManager",
    "SyncPipeline",
    "SyncStats",
    "detect_doc_type",
    "get_chunker",
    "get_link_parser",
    "get_parser",
    "get_tokenizer",
]
