"""Semantic retrieval over chunk embeddings."""

import asyncio

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docweave.config import get_settings
from docweave.models.search import SearchMode, SearchResult
from docweave.retrieval.embedding import Embedder
from docweave.retrieval.vector_store import FaissVectorStore, VectorRecord
from docweave.storage import ChunkRepository, get_session_factory

logger = structlog.get_logger()

SNIPPET_LENGTH = 300
# Used when the store returns a match without a distance
DEFAULT_SCORE = 0.5


def distance_to_score(distance: float | None) -> float:
    """Map cosine distance in [0, 2] to a similarity in [0, 1]."""
    if distance is None:
        return DEFAULT_SCORE
    return 1.0 - distance / 2.0


class SemanticSearch:
    """
    Nearest-neighbor search over embedded chunks.

    Each vector carries the chunk's project, repository, document and
    version ids as metadata so queries can be filtered to one project.
    """

    mode = SearchMode.SEMANTIC

    def __init__(
        self,
        embedder: Embedder,
        store: FaissVectorStore,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        similarity_threshold: float | None = None,
    ):
        self.embedder = embedder
        self.store = store
        self.session_factory = session_factory or get_session_factory()
        self.similarity_threshold = (
            similarity_threshold
            if similarity_threshold is not None
            else get_settings().similarity_threshold
        )

    async def search(
        self,
        project_id: str,
        query: str,
        top_k: int,
        similarity_threshold: float | None = None,
    ) -> list[SearchResult]:
        """
        Find the chunks closest to a query.

        Args:
            project_id: Project to search in
            query: Natural-language query
            top_k: Maximum number of results
            similarity_threshold: Minimum score, defaults to the configured one

        Returns:
            Results ordered by descending score
        """
        if not query.strip() or top_k <= 0:
            return []
        threshold = self.similarity_threshold if similarity_threshold is None else similarity_threshold

        vector = await self.embedder.embed_query(query)
        matches = await asyncio.to_thread(self.store.query, vector, top_k, {"project_id": project_id})

        scored = [(m, distance_to_score(m.distance)) for m in matches]
        scored = [(m, score) for m, score in scored if score >= threshold]
        if not scored:
            return []

        async with self.session_factory() as session:
            contexts = await ChunkRepository(session).get_contexts([m.key for m, _ in scored])

        results = []
        for match, score in scored:
            ctx = contexts.get(match.key)
            if ctx is None or ctx.project_id != project_id:
                logger.warning("semantic_chunk_missing", chunk_id=match.key)
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
                    score=score,
                    snippet=content[:SNIPPET_LENGTH] + ("..." if len(content) > SNIPPET_LENGTH else ""),
                )
            )
        return results

    async def index(self, version_id: str) -> int:
        """
        Embed a version's chunks and replace the document's vectors with them.

        Returns:
            Number of chunks embedded
        """
        async with self.session_factory() as session:
            contexts = await ChunkRepository(session).get_contexts_for_version(version_id)
        if not contexts:
            return 0

        vectors = await self.embedder.embed_texts([ctx.chunk.content for ctx in contexts])
        records = [
            VectorRecord(
                key=ctx.chunk.id,
                vector=vector,
                metadata={
                    "doc_chunk_id": ctx.chunk.id,
                    "chunk_index": ctx.chunk.chunk_index,
                    "heading_path": ctx.chunk.heading_path,
                    "token_count": ctx.chunk.token_count,
                    "document_version_id": version_id,
                    "document_id": ctx.document_id,
                    "path": ctx.path,
                    "title": ctx.title,
                    "repository_id": ctx.repository_id,
                    "project_id": ctx.project_id,
                    "commit_sha": ctx.commit_sha,
                },
            )
            for ctx, vector in zip(contexts, vectors)
        ]

        document_id = contexts[0].document_id
        removed = await asyncio.to_thread(self.store.delete, {"document_id": document_id})
        await asyncio.to_thread(self.store.upsert, records)
        logger.info(
            "version_embedded",
            version_id=version_id,
            document_id=document_id,
            chunks=len(records),
            replaced=removed,
        )
        return len(records)
