"""Search result models with score breakdowns."""

from enum import Enum

from pydantic import BaseModel


class SearchMode(str, Enum):
    """Retrieval modality selected for a query."""

    KEYWORD = "keyword"
    SEMANTIC = "semantic"
    HYBRID = "hybrid"
    GRAPH = "graph"


class ScoreBreakdown(BaseModel):
    """Per-source ranks and scores behind a fused result."""

    keyword_score: float | None = None
    keyword_rank: int | None = None
    semantic_score: float | None = None
    semantic_rank: int | None = None
    final_score: float = 0.0


class SearchResult(BaseModel):
    """A single search result."""

    document_id: str
    path: str
    title: str | None = None
    commit_sha: str | None = None
    chunk_id: str | None = None
    heading_path: str | None = None
    score: float
    snippet: str
    highlighted_snippet: str | None = None
    scores: ScoreBreakdown | None = None

    @property
    def fusion_key(self) -> str:
        """Identity used when merging result lists."""
        return self.chunk_id or self.document_id


class SearchRequest(BaseModel):
    """Search request from the CLI."""

    project_id: str
    query: str
    mode: SearchMode = SearchMode.HYBRID
    top_k: int = 10


class SearchResponse(BaseModel):
    """Search response with timing and cache information."""

    query: str
    mode: SearchMode
    results: list[SearchResult]
    total_results: int
    latency_ms: float
    cache_hit: bool = False
