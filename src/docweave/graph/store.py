"""Neo4j access for chunk, document and entity nodes."""

import re
from typing import Any

import structlog
from neo4j import AsyncDriver, AsyncGraphDatabase, basic_auth

from docweave.config import get_settings
from docweave.graph.extraction import ENTITY_TYPES, RELATION_TYPES, ExtractedEntity, ExtractedRelation
from docweave.models.document import ChunkContext

logger = structlog.get_logger()

FULLTEXT_INDEX = "chunk_content_fulltext"

SCHEMA_STATEMENTS = (
    f"CREATE FULLTEXT INDEX {FULLTEXT_INDEX} IF NOT EXISTS "
    "FOR (c:Chunk) ON EACH [c.content, c.headingPath]",
    "CREATE INDEX entity_name_index IF NOT EXISTS FOR (e:Entity) ON (e.name)",
    "CREATE INDEX chunk_id_index IF NOT EXISTS FOR (c:Chunk) ON (c.chunkId)",
    "CREATE INDEX document_id_index IF NOT EXISTS FOR (d:Document) ON (d.documentId)",
)

UPSERT_CHUNK = """
MERGE (c:Chunk {chunkId: $chunkId})
SET c.documentId = $documentId,
    c.projectId = $projectId,
    c.content = $content,
    c.headingPath = $headingPath,
    c.chunkIndex = $chunkIndex
MERGE (d:Document {documentId: $documentId})
SET d.path = $path,
    d.title = $title,
    d.projectId = $projectId
MERGE (c)-[:BELONGS_TO]->(d)
"""

UPSERT_ENTITY = """
MERGE (e:Entity {name: $name})
SET e.type = $type,
    e.description = $description
WITH e
MATCH (c:Chunk {chunkId: $chunkId})
MERGE (c)-[:HAS_ENTITY]->(e)
"""

# Relation type is interpolated; callers pass only whitelisted values
UPSERT_RELATION = """
MATCH (source:Entity {{name: $source}})
MATCH (target:Entity {{name: $target}})
MERGE (source)-[r:{relation_type}]->(target)
SET r.description = $description
"""

FULLTEXT_SEARCH = f"""
CALL db.index.fulltext.queryNodes('{FULLTEXT_INDEX}', $query) YIELD node AS chunk, score
WHERE chunk.projectId = $projectId
RETURN chunk.chunkId AS chunkId, chunk.documentId AS documentId, score
ORDER BY score DESC
LIMIT $topK
"""

DELETE_DOCUMENT_CHUNKS = """
MATCH (c:Chunk {documentId: $documentId})
DETACH DELETE c
"""

_LUCENE_SPECIAL = re.compile(r'([+\-!(){}\[\]^"~*?:\\/]|&&|\|\|)')
_TRAILING_LIMIT = re.compile(r"\bLIMIT\s+\d+\s*$", re.IGNORECASE)


def escape_lucene(query: str) -> str:
    """Escape Lucene query syntax so user text is searched literally."""
    return _LUCENE_SPECIAL.sub(r"\\\1", query)


def single_row(query: str) -> str:
    """Bound a read query to one row."""
    query = query.strip().rstrip(";").strip()
    if _TRAILING_LIMIT.search(query):
        return _TRAILING_LIMIT.sub("LIMIT 1", query)
    return f"{query} LIMIT 1"


class GraphStore:
    """
    Thin async wrapper over the Neo4j driver.

    Every operation opens its own session and closes it before returning.
    """

    def __init__(
        self,
        uri: str | None = None,
        user: str | None = None,
        password: str | None = None,
        database: str | None = None,
        driver: AsyncDriver | None = None,
    ):
        settings = get_settings()
        self.uri = uri or settings.neo4j_uri
        self.user = user or settings.neo4j_user
        self.password = password or settings.neo4j_password
        self.database = database or settings.neo4j_database
        self._driver = driver

    def _get_driver(self) -> AsyncDriver:
        if self._driver is None:
            self._driver = AsyncGraphDatabase.driver(self.uri, auth=basic_auth(self.user, self.password))
            logger.info("neo4j_driver_created", uri=self.uri, database=self.database)
        return self._driver

    async def close(self) -> None:
        if self._driver is not None:
            await self._driver.close()
            self._driver = None

    async def run(self, query: str, **params: Any) -> list[dict[str, Any]]:
        """Execute a query and return its records as dicts."""
        async with self._get_driver().session(database=self.database) as session:
            result = await session.run(query, params)
            return [record.data() async for record in result]

    async def validate(self, query: str) -> None:
        """Execute a query bounded to a single row. Raises the driver's error on failure."""
        async with self._get_driver().session(database=self.database) as session:
            result = await session.run(single_row(query))
            await result.consume()

    async def ensure_indexes(self) -> None:
        """Create the full-text and lookup indexes if missing."""
        for statement in SCHEMA_STATEMENTS:
            await self.run(statement)
        logger.info("graph_indexes_ready")

    async def upsert_chunk(self, ctx: ChunkContext) -> None:
        await self.run(
            UPSERT_CHUNK,
            chunkId=ctx.chunk.id,
            documentId=ctx.document_id,
            projectId=ctx.project_id,
            content=ctx.chunk.content,
            headingPath=ctx.chunk.heading_path,
            chunkIndex=ctx.chunk.chunk_index,
            path=ctx.path,
            title=ctx.title,
        )

    async def upsert_entity(self, entity: ExtractedEntity, chunk_id: str) -> None:
        if entity.type not in ENTITY_TYPES:
            raise ValueError(f"Unknown entity type: {entity.type}")
        await self.run(
            UPSERT_ENTITY,
            name=entity.name,
            type=entity.type,
            description=entity.description,
            chunkId=chunk_id,
        )

    async def upsert_relation(self, relation: ExtractedRelation) -> None:
        if relation.type not in RELATION_TYPES:
            raise ValueError(f"Unknown relation type: {relation.type}")
        await self.run(
            UPSERT_RELATION.format(relation_type=relation.type),
            source=relation.source,
            target=relation.target,
            description=relation.description,
        )

    async def delete_document_chunks(self, document_id: str) -> None:
        """Remove a document's chunk nodes; entities stay shared."""
        await self.run(DELETE_DOCUMENT_CHUNKS, documentId=document_id)

    async def fulltext_search(self, project_id: str, query: str, top_k: int) -> list[dict[str, Any]]:
        """Chunk ids ranked by the full-text index score within a project."""
        return await self.run(
            FULLTEXT_SEARCH,
            query=escape_lucene(query),
            projectId=project_id,
            topK=top_k,
        )
