"""Search service: mode dispatch, caching and metrics."""

import time
from dataclasses import dataclass, field

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docweave.config import get_settings
from docweave.graph import EntityExtractor, GraphIndexer, GraphSearch, GraphStore, QuerySynthesizer
from docweave.llm import get_llm_client
from docweave.models.search import SearchMode, SearchResponse
from docweave.observability.metrics import CACHE_HITS, CACHE_MISSES, SEARCH_LATENCY, SEARCH_REQUESTS
from docweave.retrieval import (
    HybridSearch,
    KeywordSearch,
    QueryCache,
    SearchStrategy,
    SemanticSearch,
    StrategyRegistry,
    get_embedder,
    get_query_cache,
    get_vector_store,
)
from docweave.storage import get_session_factory

logger = structlog.get_logger()


class SearchService:
    """
    High-level search service.

    Orchestrates:
    - Strategy selection by mode
    - Query caching per project
    - top_k clamping
    - Request metrics
    """

    def __init__(
        self,
        registry: StrategyRegistry,
        cache: QueryCache | None = None,
        default_top_k: int | None = None,
        max_top_k: int | None = None,
    ):
        settings = get_settings()
        self.registry = registry
        self.cache = cache
        self.default_top_k = default_top_k or settings.default_top_k
        self.max_top_k = max_top_k or settings.max_top_k

    def clamp_top_k(self, top_k: int | None) -> int:
        if top_k is None:
            return self.default_top_k
        return max(1, min(top_k, self.max_top_k))

    async def search(
        self,
        project_id: str,
        query: str,
        mode: SearchMode = SearchMode.HYBRID,
        top_k: int | None = None,
    ) -> SearchResponse:
        """
        Run a search in one mode.

        Raises:
            ValueError: the mode has no configured strategy
        """
        start_time = time.time()
        top_k = self.clamp_top_k(top_k)
        strategy = self.registry.get(mode)

        if not query.strip():
            return SearchResponse(query=query, mode=mode, results=[], total_results=0, latency_ms=0.0)

        if self.cache is not None:
            cached = self.cache.get(project_id, mode.value, query, top_k)
            if cached is not None:
                CACHE_HITS.inc()
                logger.info("search_cache_hit", query=query, mode=mode.value)
                latency_ms = (time.time() - start_time) * 1000
                return SearchResponse(
                    query=query,
                    mode=mode,
                    results=cached,
                    total_results=len(cached),
                    latency_ms=latency_ms,
                    cache_hit=True,
                )
            CACHE_MISSES.inc()

        try:
            results = await strategy.search(project_id, query, top_k)
        except Exception:
            SEARCH_REQUESTS.labels(status="error", mode=mode.value).inc()
            raise

        results = results[:top_k]
        if self.cache is not None:
            self.cache.set(project_id, mode.value, query, top_k, results)

        latency_ms = (time.time() - start_time) * 1000
        SEARCH_REQUESTS.labels(status="success", mode=mode.value).inc()
        SEARCH_LATENCY.labels(mode=mode.value).observe(latency_ms / 1000.0)

        logger.info(
            "search_complete",
            project_id=project_id,
            query=query,
            mode=mode.value,
            results_count=len(results),
            latency_ms=latency_ms,
        )

        return SearchResponse(
            query=query,
            mode=mode,
            results=results,
            total_results=len(results),
            latency_ms=latency_ms,
        )


@dataclass
class SearchComponents:
    """Strategies wired from settings, shared by search and sync."""

    registry: StrategyRegistry
    indexers: list[SearchStrategy] = field(default_factory=list)
    graph_store: GraphStore | None = None
    synthesizer: QuerySynthesizer | None = None

    async def close(self) -> None:
        if self.graph_store is not None:
            await self.graph_store.close()


def build_search_components(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> SearchComponents:
    """
    Wire the default strategies.

    Keyword and semantic search are always registered. Graph search and
    query synthesis are added when Neo4j is enabled.
    """
    settings = get_settings()
    session_factory = session_factory or get_session_factory()

    keyword = KeywordSearch(session_factory)
    semantic = SemanticSearch(get_embedder(), get_vector_store(), session_factory)
    components = SearchComponents(
        registry=StrategyRegistry([keyword, semantic]),
        indexers=[semantic],
    )

    graph = None
    if settings.neo4j_enabled:
        store = GraphStore()
        llm = get_llm_client()
        graph = GraphSearch(store, GraphIndexer(store, EntityExtractor(llm), session_factory), session_factory)
        components.registry.register(graph)
        components.indexers.append(graph)
        components.graph_store = store
        components.synthesizer = QuerySynthesizer(store, llm)

    components.registry.register(
        HybridSearch(keyword, semantic, graph=graph if settings.hybrid_include_graph else None)
    )
    return components


def build_search_service(components: SearchComponents) -> SearchService:
    return SearchService(components.registry, get_query_cache())
