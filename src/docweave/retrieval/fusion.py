"""Hybrid retrieval: rank fusion of keyword and semantic results."""

import asyncio
from dataclasses import dataclass
from typing import Awaitable

import structlog

from docweave.config import get_settings
from docweave.models.search import ScoreBreakdown, SearchMode, SearchResult
from docweave.observability.metrics import HYBRID_SOURCE_FAILURES
from docweave.retrieval.base import SearchStrategy

logger = structlog.get_logger()

RRF_K = 60
DEFAULT_PRIMARY_WEIGHT = 0.6
DEFAULT_GRAPH_WEIGHT = 0.4


@dataclass
class _Fused:
    result: SearchResult
    score: float
    breakdown: ScoreBreakdown


def reciprocal_rank_fusion(
    keyword_results: list[SearchResult],
    semantic_results: list[SearchResult],
    top_k: int,
    k: int = RRF_K,
) -> list[SearchResult]:
    """
    Merge two ranked lists using Reciprocal Rank Fusion (RRF).

    RRF score = Σ 1 / (k + rank + 1), with 0-based rank in each list.

    A result is identified by its chunk id, falling back to its document id.
    A result missing from one list gets nothing from it. Ties keep the
    order in which results were first seen, keyword list first. Only the
    best rank of a key within one list counts.
    """
    fused: dict[str, _Fused] = {}

    for rank, result in enumerate(keyword_results):
        key = result.fusion_key
        entry = fused.get(key)
        if entry is None:
            entry = fused[key] = _Fused(result=result, score=0.0, breakdown=ScoreBreakdown())
        if entry.breakdown.keyword_rank is not None:
            continue
        entry.score += 1.0 / (k + rank + 1)
        entry.breakdown.keyword_rank = rank
        entry.breakdown.keyword_score = result.score

    for rank, result in enumerate(semantic_results):
        key = result.fusion_key
        entry = fused.get(key)
        if entry is None:
            entry = fused[key] = _Fused(result=result, score=0.0, breakdown=ScoreBreakdown())
        if entry.breakdown.semantic_rank is not None:
            continue
        entry.score += 1.0 / (k + rank + 1)
        entry.breakdown.semantic_rank = rank
        entry.breakdown.semantic_score = result.score

    # sorted() is stable, so equal scores keep insertion order
    ranked = sorted(fused.values(), key=lambda e: -e.score)

    results = []
    for entry in ranked[:top_k]:
        entry.breakdown.final_score = entry.score
        results.append(
            entry.result.model_copy(update={"score": entry.score, "scores": entry.breakdown})
        )
    return results


def weighted_sum_fusion(
    primary_results: list[SearchResult],
    graph_results: list[SearchResult],
    top_k: int,
    primary_weight: float = DEFAULT_PRIMARY_WEIGHT,
    graph_weight: float = DEFAULT_GRAPH_WEIGHT,
) -> list[SearchResult]:
    """
    Combine two scored lists by weighted sum of max-normalized scores.

    Each list's scores are divided by that list's best score before
    weighting. Ties keep first-seen order.
    """
    def normalized(results: list[SearchResult]) -> dict[str, float]:
        best = max((r.score for r in results), default=0.0)
        scores: dict[str, float] = {}
        for r in results:
            scores.setdefault(r.fusion_key, r.score / best if best > 0 else 0.0)
        return scores

    primary_scores = normalized(primary_results)
    graph_scores = normalized(graph_results)

    first_seen: dict[str, SearchResult] = {}
    for r in [*primary_results, *graph_results]:
        first_seen.setdefault(r.fusion_key, r)

    combined = [
        (key, primary_weight * primary_scores.get(key, 0.0) + graph_weight * graph_scores.get(key, 0.0))
        for key in first_seen
    ]
    combined.sort(key=lambda item: -item[1])

    return [first_seen[key].model_copy(update={"score": score}) for key, score in combined[:top_k]]


class HybridSearch:
    """
    Hybrid retrieval combining keyword and semantic search.

    Both sources are queried concurrently for twice the requested number
    of results. A source that fails or times out contributes an empty list,
    so the other source is fused alone. When a graph strategy is attached,
    its results are blended into the fused list by weighted sum.
    """

    mode = SearchMode.HYBRID

    def __init__(
        self,
        keyword: SearchStrategy,
        semantic: SearchStrategy,
        graph: SearchStrategy | None = None,
        rrf_k: int | None = None,
        source_timeout: float | None = None,
    ):
        settings = get_settings()
        self.keyword = keyword
        self.semantic = semantic
        self.graph = graph
        self.rrf_k = rrf_k or settings.rrf_k
        self.source_timeout = source_timeout or settings.hybrid_source_timeout_seconds

    async def search(self, project_id: str, query: str, top_k: int) -> list[SearchResult]:
        fetch_k = top_k * 2
        sources = [
            self._run_source("keyword", self.keyword.search(project_id, query, fetch_k)),
            self._run_source("semantic", self.semantic.search(project_id, query, fetch_k)),
        ]
        if self.graph is not None:
            sources.append(self._run_source("graph", self.graph.search(project_id, query, fetch_k)))

        outcomes = await asyncio.gather(*sources)
        keyword_results, semantic_results = outcomes[0], outcomes[1]

        if self.graph is None:
            return reciprocal_rank_fusion(keyword_results, semantic_results, top_k, k=self.rrf_k)

        fused = reciprocal_rank_fusion(keyword_results, semantic_results, fetch_k, k=self.rrf_k)
        return weighted_sum_fusion(fused, outcomes[2], top_k)

    async def index(self, version_id: str) -> int:
        # The underlying strategies index themselves
        return 0

    async def _run_source(self, name: str, call: Awaitable[list[SearchResult]]) -> list[SearchResult]:
        try:
            return await asyncio.wait_for(call, timeout=self.source_timeout)
        except asyncio.TimeoutError:
            logger.warning("hybrid_source_timeout", source=name, timeout=self.source_timeout)
            HYBRID_SOURCE_FAILURES.labels(source=name).inc()
        except Exception as e:
            logger.warning("hybrid_source_failed", source=name, error=str(e))
            HYBRID_SOURCE_FAILURES.labels(source=name).inc()
        return []
