"""Observability package."""

from docweave.observability.logging import configure_logging
from docweave.observability.metrics import (
    CACHE_HITS,
    CACHE_MISSES,
    HYBRID_SOURCE_FAILURES,
    INDEXING_FAILURES,
    QUERY_SYNTHESIS_ATTEMPTS,
    QUERY_SYNTHESIS_OUTCOMES,
    SEARCH_LATENCY,
    SEARCH_REQUESTS,
    SYNC_DOCUMENTS,
    SYNC_LATENCY,
    get_metrics,
)

__all__ = [
    "CACHE_HITS",
    "CACHE_MISSES",
    "HYBRID_SOURCE_FAILURES",
    "INDEXING_FAILURES",
    "QUERY_SYNTHESIS_ATTEMPTS",
    "QUERY_SYNTHESIS_OUTCOMES",
    "SEARCH_LATENCY",
    "SEARCH_REQUESTS",
    "SYNC_DOCUMENTS",
    "SYNC_LATENCY",
    "configure_logging",
    "get_metrics",
]
