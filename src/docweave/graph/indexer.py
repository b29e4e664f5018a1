"""Projects document chunks and their extracted entities into the graph."""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docweave.graph.extraction import EntityExtractor
from docweave.graph.store import GraphStore
from docweave.storage import ChunkRepository, get_session_factory

logger = structlog.get_logger()


class GraphIndexer:
    """
    Writes one version's chunks into Neo4j.

    For each chunk: MERGE the chunk node under its document node, extract
    entities and relations with the LLM, then MERGE entities by name with
    HAS_ENTITY edges and the typed relation edges between them.
    """

    def __init__(
        self,
        store: GraphStore,
        extractor: EntityExtractor,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ):
        self.store = store
        self.extractor = extractor
        self.session_factory = session_factory or get_session_factory()

    async def index(self, version_id: str) -> int:
        async with self.session_factory() as session:
            contexts = await ChunkRepository(session).get_contexts_for_version(version_id)
        if not contexts:
            return 0

        await self.store.delete_document_chunks(contexts[0].document_id)

        entity_count = 0
        relation_count = 0
        for ctx in contexts:
            await self.store.upsert_chunk(ctx)

            extraction = await self.extractor.extract(ctx.chunk.content, ctx.chunk.heading_path)
            for entity in extraction.entities:
                await self.store.upsert_entity(entity, ctx.chunk.id)
            for relation in extraction.relations:
                await self.store.upsert_relation(relation)

            entity_count += len(extraction.entities)
            relation_count += len(extraction.relations)

        logger.info(
            "version_graph_indexed",
            version_id=version_id,
            chunks=len(contexts),
            entities=entity_count,
            relations=relation_count,
        )
        return len(contexts)
