"""Natural-language questions to Cypher, with validation-driven retries."""

import asyncio
from dataclasses import dataclass
from typing import Any

import structlog
from neo4j.exceptions import Neo4jError

from docweave.config import get_settings
from docweave.errors import QuerySynthesisError
from docweave.graph.store import GraphStore
from docweave.llm.client import LLMClient, get_llm_client, strip_code_fences
from docweave.observability.metrics import QUERY_SYNTHESIS_ATTEMPTS, QUERY_SYNTHESIS_OUTCOMES

logger = structlog.get_logger()

SYSTEM_PROMPT = """You are an expert at converting natural language questions to Neo4j Cypher queries.

Graph Schema:
- (:Chunk {chunkId, documentId, projectId, content, headingPath, chunkIndex})
- (:Entity {name, type, description})
- (:Document {documentId, path, title, projectId})
- (Chunk)-[:HAS_ENTITY]->(Entity)
- (Entity)-[:RELATED_TO|DEPENDS_ON|USES|PART_OF]->(Entity)
- (Chunk)-[:BELONGS_TO]->(Document)

Entity types: Concept, API, Component, Technology

Guidelines:
1. Return ONLY the Cypher query, no explanations or markdown
2. Use MATCH for reading data
3. Use WHERE clauses for filtering
4. Limit results with LIMIT clause (default: 20)
5. Return relevant node properties
6. Use case-insensitive matching with toLower() when appropriate

Example queries:
- "What is authentication?" -> MATCH (e:Entity {name: 'Authentication'}) RETURN e
- "Components that use Redis" -> MATCH (e1:Entity)-[:USES]->(e2:Entity {name: 'Redis'}) WHERE e1.type = 'Component' RETURN e1"""

ERROR_ADDENDUM = """

IMPORTANT: Your previous query had this error:
{error}

Please fix the query to avoid this error."""

USER_PROMPT = "Question: {question}\n\nGenerate a Cypher query to answer this question."

RETRY_USER_PROMPT = """Question: {question}

Previous error: {error}

Generate a corrected Cypher query."""


def build_system_prompt(previous_error: str | None = None) -> str:
    if previous_error is None:
        return SYSTEM_PROMPT
    return SYSTEM_PROMPT + ERROR_ADDENDUM.format(error=previous_error)


def build_user_prompt(question: str, previous_error: str | None = None) -> str:
    if previous_error is None:
        return USER_PROMPT.format(question=question)
    return RETRY_USER_PROMPT.format(question=question, error=previous_error)


def _error_text(error: Neo4jError) -> str:
    return getattr(error, "message", None) or (error.args[0] if error.args else str(error))


@dataclass
class _Progress:
    """Attempts made so far in one synthesis, kept readable after a timeout."""

    attempts: int = 0
    last_error: str | None = None


class QuerySynthesizer:
    """
    Generates Cypher for a question and checks it against the live graph.

    A query that fails validation is sent back to the model together with
    the database's error message. At most max_retries + 1 generations are
    attempted.
    """

    def __init__(
        self,
        store: GraphStore,
        llm: LLMClient | None = None,
        max_retries: int | None = None,
        timeout_seconds: float | None = None,
    ):
        settings = get_settings()
        self.store = store
        self.llm = llm or get_llm_client()
        self.max_retries = max_retries if max_retries is not None else settings.query_synthesis_max_retries
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.query_synthesis_timeout_seconds
        )

    async def generate_query(self, question: str) -> str:
        """
        Produce a Cypher query that executes without error.

        Raises:
            QuerySynthesisError: if every attempt failed validation, the
                model call failed, or the overall timeout expired
        """
        progress = _Progress()
        try:
            query = await asyncio.wait_for(self._synthesize(question, progress), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            QUERY_SYNTHESIS_OUTCOMES.labels(outcome="timeout").inc()
            logger.error(
                "query_synthesis_timeout",
                question=question,
                timeout=self.timeout_seconds,
                attempts=progress.attempts,
                last_error=progress.last_error,
            )
            raise QuerySynthesisError(
                f"Query synthesis timed out after {self.timeout_seconds}s",
                attempts=progress.attempts,
                last_error=progress.last_error,
            ) from None
        QUERY_SYNTHESIS_OUTCOMES.labels(outcome="success").inc()
        return query

    async def _synthesize(self, question: str, progress: _Progress) -> str:
        max_attempts = self.max_retries + 1

        while progress.attempts < max_attempts:
            progress.attempts += 1
            attempt = progress.attempts
            QUERY_SYNTHESIS_ATTEMPTS.inc()

            try:
                response = await self.llm.complete(
                    build_system_prompt(progress.last_error),
                    build_user_prompt(question, progress.last_error),
                )
            except Exception as e:
                QUERY_SYNTHESIS_OUTCOMES.labels(outcome="error").inc()
                logger.error("query_generation_failed", attempt=attempt, error=str(e))
                raise QuerySynthesisError(
                    "Query generation failed",
                    attempts=attempt,
                    last_error=str(e),
                ) from e

            query = strip_code_fences(response)
            logger.debug("query_generated", attempt=attempt, query=query)

            try:
                await self.store.validate(query)
            except Neo4jError as e:
                progress.last_error = _error_text(e)
                logger.warning("query_validation_failed", attempt=attempt, error=progress.last_error)
                continue

            logger.info("query_synthesized", attempts=attempt)
            return query

        QUERY_SYNTHESIS_OUTCOMES.labels(outcome="exhausted").inc()
        raise QuerySynthesisError(
            f"Failed to generate a valid query after {self.max_retries} retries",
            attempts=progress.attempts,
            last_error=progress.last_error,
        )

    async def execute(self, question: str) -> list[dict[str, Any]]:
        """Generate a query for the question and return its records."""
        query = await self.generate_query(question)
        return await self.store.run(query)
