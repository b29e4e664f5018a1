"""Retrieval package."""

from docweave.retrieval.base import SearchStrategy, StrategyRegistry
from docweave.retrieval.cache import QueryCache, get_query_cache
from docweave.retrieval.embedding import Embedder, OpenAIEmbedder, get_embedder
from docweave.retrieval.fusion import (
    RRF_K,
    HybridSearch,
    reciprocal_rank_fusion,
    weighted_sum_fusion,
)
from docweave.retrieval.keyword import KeywordSearch, build_snippet, highlight
from docweave.retrieval.semantic import SemanticSearch, distance_to_score
from docweave.retrieval.vector_store import (
    FaissVectorStore,
    VectorMatch,
    VectorRecord,
    get_vector_store,
)

__all__ = [
    "Embedder",
    "FaissVectorStore",
    "HybridSearch",
    "KeywordSearch",
    "OpenAIEmbedder",
    "QueryCache",
    "RRF_K",
    "SearchStrategy",
    "SemanticSearch",
    "StrategyRegistry",
    "VectorMatch",
    "VectorRecord",
    "build_snippet",
    "distance_to_score",
    "get_embedder",
    "get_query_cache",
    "get_vector_store",
    "highlight",
    "reciprocal_rank_fusion",
    "weighted_sum_fusion",
]
