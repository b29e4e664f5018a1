"""Tests for the search service and default strategy wiring."""

from __future__ import annotations

import pytest

from docweave.models.document import DocType
from docweave.models.search import SearchMode, SearchResult
from docweave.retrieval import KeywordSearch, QueryCache, StrategyRegistry
from docweave.search import SearchService, build_search_components
from docweave.storage import DocumentRepository


class CountingStrategy:
    """Strategy double returning a fixed number of results and counting calls."""

    def __init__(self, mode: SearchMode, count: int = 30, error: Exception | None = None):
        self.mode = mode
        self.count = count
        self.error = error
        self.requested: list[int] = []

    async def search(self, project_id: str, query: str, top_k: int) -> list[SearchResult]:
        self.requested.append(top_k)
        if self.error:
            raise self.error
        return [
            SearchResult(document_id=f"d{i}", path=f"docs/{i}.md", chunk_id=f"c{i}", score=1.0 / (i + 1), snippet="s")
            for i in range(self.count)
        ]

    async def index(self, version_id: str) -> int:
        return 0


def _service(*strategies, cache: QueryCache | None = None) -> SearchService:
    return SearchService(StrategyRegistry(list(strategies)), cache=cache, default_top_k=10, max_top_k=50)


async def _store(session_factory, repository_id: str, path: str, content: str) -> None:
    async with session_factory() as session:
        await DocumentRepository(session).upsert_document(
            repository_id=repository_id,
            path=path,
            title=path,
            doc_type=DocType.MD,
            commit_sha="c1",
            content=content,
        )
        await session.commit()


class TestSearchService:
    """Dispatch, clamping and caching."""

    def test_clamp_top_k(self) -> None:
        service = _service()
        assert service.clamp_top_k(None) == 10
        assert service.clamp_top_k(0) == 1
        assert service.clamp_top_k(-5) == 1
        assert service.clamp_top_k(500) == 50
        assert service.clamp_top_k(7) == 7

    @pytest.mark.asyncio
    async def test_results_truncated_to_clamped_top_k(self) -> None:
        strategy = CountingStrategy(SearchMode.KEYWORD, count=80)

        response = await _service(strategy).search("proj", "q", mode=SearchMode.KEYWORD, top_k=200)

        assert strategy.requested == [50]
        assert response.total_results == len(response.results) == 50
        assert response.mode == SearchMode.KEYWORD
        assert response.cache_hit is False

    @pytest.mark.asyncio
    async def test_cache_hit_on_repeat(self) -> None:
        strategy = CountingStrategy(SearchMode.HYBRID, count=3)
        service = _service(strategy, cache=QueryCache(max_size=10, ttl_seconds=60))

        first = await service.search("proj", "Deploy Guide")
        second = await service.search("proj", "deploy   guide")

        assert first.cache_hit is False
        assert second.cache_hit is True
        assert [r.chunk_id for r in second.results] == [r.chunk_id for r in first.results]
        assert strategy.requested == [10]

    @pytest.mark.asyncio
    async def test_cache_is_per_mode(self) -> None:
        keyword = CountingStrategy(SearchMode.KEYWORD, count=1)
        hybrid = CountingStrategy(SearchMode.HYBRID, count=1)
        service = _service(keyword, hybrid, cache=QueryCache(max_size=10, ttl_seconds=60))

        await service.search("proj", "q", mode=SearchMode.KEYWORD)
        response = await service.search("proj", "q", mode=SearchMode.HYBRID)

        assert response.cache_hit is False
        assert hybrid.requested == [10]

    @pytest.mark.asyncio
    async def test_unconfigured_mode(self) -> None:
        with pytest.raises(ValueError):
            await _service(CountingStrategy(SearchMode.KEYWORD)).search("proj", "q", mode=SearchMode.GRAPH)

    @pytest.mark.asyncio
    async def test_blank_query_returns_nothing(self) -> None:
        strategy = CountingStrategy(SearchMode.HYBRID)

        response = await _service(strategy).search("proj", "   ")

        assert response.results == []
        assert strategy.requested == []

    @pytest.mark.asyncio
    async def test_strategy_error_propagates_and_is_not_cached(self) -> None:
        cache = QueryCache(max_size=10, ttl_seconds=60)
        strategy = CountingStrategy(SearchMode.HYBRID, error=RuntimeError("down"))

        with pytest.raises(RuntimeError):
            await _service(strategy, cache=cache).search("proj", "q")

        assert cache.size == 0


class TestKeywordSearch:
    @pytest.mark.asyncio
    async def test_matches_latest_content(self, session_factory, registered_repo) -> None:
        await _store(session_factory, registered_repo.id, "docs/deploy.md", "How to Deploy the service safely.")
        await _store(session_factory, registered_repo.id, "docs/other.md", "Unrelated text.")

        results = await KeywordSearch(session_factory).search("proj", "deploy", top_k=5)

        assert [r.path for r in results] == ["docs/deploy.md"]
        assert results[0].score == 0.9
        assert results[0].highlighted_snippet == "How to **Deploy** the service safely."
        assert results[0].chunk_id is None

    @pytest.mark.asyncio
    async def test_non_ascii_query_any_case(self, session_factory, registered_repo) -> None:
        await _store(session_factory, registered_repo.id, "docs/de.md", "Über die Straße")
        search = KeywordSearch(session_factory)

        assert [r.path for r in await search.search("proj", "über", top_k=10)] == ["docs/de.md"]
        assert [r.path for r in await search.search("proj", "Über", top_k=10)] == ["docs/de.md"]


class TestBuildSearchComponents:
    """Default wiring with Neo4j disabled."""

    @pytest.mark.asyncio
    async def test_modes_without_graph(self, session_factory) -> None:
        components = build_search_components(session_factory)

        assert components.registry.available_modes() == [
            SearchMode.KEYWORD,
            SearchMode.SEMANTIC,
            SearchMode.HYBRID,
        ]
        assert [s.mode for s in components.indexers] == [SearchMode.SEMANTIC]
        assert components.graph_store is None
        assert components.synthesizer is None
        await components.close()

    @pytest.mark.asyncio
    async def test_hybrid_degrades_to_keyword_without_embeddings(self, session_factory, registered_repo) -> None:
        await _store(session_factory, registered_repo.id, "docs/deploy.md", "Deploy steps.")
        components = build_search_components(session_factory)
        service = SearchService(components.registry, default_top_k=10, max_top_k=50)

        response = await service.search("proj", "deploy")

        assert [r.path for r in response.results] == ["docs/deploy.md"]
        assert response.results[0].scores.keyword_rank == 0
        assert response.results[0].scores.semantic_rank is None
