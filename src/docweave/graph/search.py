"""Graph retrieval over the chunk full-text index."""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docweave.graph.indexer import GraphIndexer
from docweave.graph.store import GraphStore
from docweave.models.search import SearchMode, SearchResult
from docweave.storage import ChunkRepository, get_session_factory

logger = structlog.get_logger()

SNIPPET_LENGTH = 300


class GraphSearch:
    """
    Full-text search over chunk nodes, scoped by project.

    Hits are re-hydrated from the relational store; a chunk that exists
    only in the graph is skipped.
    """

    mode = SearchMode.GRAPH

    def __init__(
        self,
        store: GraphStore,
        indexer: GraphIndexer,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ):
        self.store = store
        self.indexer = indexer
        self.session_factory = session_factory or get_session_factory()

    async def index(self, version_id: str) -> int:
        return await self.indexer.index(version_id)

    async def search(self, project_id: str, query: str, top_k: int) -> list[SearchResult]:
        if not query.strip() or top_k <= 0:
            return []

        records = await self.store.fulltext_search(project_id, query, top_k)
        if not records:
            return []

        async with self.session_factory() as session:
            contexts = await ChunkRepository(session).get_contexts([r["chunkId"] for r in records])

        results = []
        for record in records:
            ctx = contexts.get(record["chunkId"])
            if ctx is None:
                logger.warning("graph_chunk_missing", chunk_id=record["chunkId"])
                continue
            content = ctx.chunk.content
            results.append(
                SearchResult(
                    document_id=ctx.document_id,
                    path=ctx.path,
                    title=ctx.title,
                    commit_sha=ctx.commit_sha,
                    chunk_id=ctx.chunk.id,
                    heading_path=ctx.chunk.heading_path,
                    score=float(record["score"]),
                    snippet=content[:SNIPPET_LENGTH] + ("..." if len(content) > SNIPPET_LENGTH else ""),
                )
            )
        return results
