"""Graph RAG package."""

from docweave.graph.extraction import (
    ENTITY_TYPES,
    RELATION_TYPES,
    EntityExtractor,
    ExtractedEntity,
    ExtractedRelation,
    ExtractionResult,
    parse_extraction,
)
from docweave.graph.indexer import GraphIndexer
from docweave.graph.search import GraphSearch
from docweave.graph.store import GraphStore, escape_lucene, single_row
from docweave.graph.text2cypher import QuerySynthesizer

__all__ = [
    "ENTITY_TYPES",
    "RELATION_TYPES",
    "EntityExtractor",
    "ExtractedEntity",
    "ExtractedRelation",
    "ExtractionResult",
    "GraphIndexer",
    "GraphSearch",
    "GraphStore",
    "QuerySynthesizer",
    "escape_lucene",
    "parse_extraction",
    "single_row",
]
