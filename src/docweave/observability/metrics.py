from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Search Metrics
SEARCH_REQUESTS = Counter(
    "docweave_search_requests_total",
    "Total number of search requests",
    ["status", "mode"]
)

SEARCH_LATENCY = Histogram(
    "docweave_search_latency_seconds",
    "Search request latency in seconds",
    ["mode"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0]
)

CACHE_HITS = Counter(
    "docweave_search_cache_hits_total",
    "Total number of cache hits"
)

CACHE_MISSES = Counter(
    "docweave_search_cache_misses_total",
    "Total number of cache misses"
)

HYBRID_SOURCE_FAILURES = Counter(
    "docweave_hybrid_source_failures_total",
    "Hybrid sub-queries that failed or timed out",
    ["source"]
)

# Sync Metrics
SYNC_DOCUMENTS = Counter(
    "docweave_sync_documents_total",
    "Documents processed by sync",
    ["status"]
)

SYNC_LATENCY = Histogram(
    "docweave_sync_latency_seconds",
    "Repository sync latency in seconds",
    ["mode"]
)

INDEXING_FAILURES = Counter(
    "docweave_indexing_failures_total",
    "Version indexing failures",
    ["strategy"]
)

# Graph Metrics
QUERY_SYNTHESIS_ATTEMPTS = Counter(
    "docweave_query_synthesis_attempts_total",
    "LLM generations made while synthesizing graph queries"
)

QUERY_SYNTHESIS_OUTCOMES = Counter(
    "docweave_query_synthesis_outcomes_total",
    "Final outcome of query synthesis",
    ["outcome"]
)


def get_metrics():
    """Return latest metrics in Prometheus format."""
    return generate_latest(), CONTENT_TYPE_LATEST
