"""Tests for entity extraction, graph indexing, graph search and query synthesis."""

from __future__ import annotations

import asyncio

import pytest
from conftest import ScriptedLLM
from neo4j.exceptions import Neo4jError

from docweave.errors import QuerySynthesisError
from docweave.graph import (
    EntityExtractor,
    GraphIndexer,
    GraphSearch,
    QuerySynthesizer,
    escape_lucene,
    parse_extraction,
    single_row,
)
from docweave.models.document import ChunkDraft, DocType
from docweave.storage import ChunkRepository, DocumentRepository


class FakeCypherError(Neo4jError):
    """Neo4jError carrying a fixed database message."""

    def __init__(self, text: str):
        Exception.__init__(self, text)
        self._text = text

    @property
    def message(self) -> str:
        return self._text


class FakeGraphStore:
    """Records graph writes; validation fails with queued errors."""

    def __init__(self, validation_errors: list[str] | None = None, fulltext: list[dict] | None = None):
        self.validation_errors = list(validation_errors or [])
        self.fulltext = fulltext or []
        self.validated: list[str] = []
        self.calls: list[tuple] = []

    async def validate(self, query: str) -> None:
        self.validated.append(query)
        if self.validation_errors:
            raise FakeCypherError(self.validation_errors.pop(0))

    async def run(self, query: str, **params) -> list[dict]:
        self.calls.append(("run", query))
        return [{"name": "Redis"}]

    async def delete_document_chunks(self, document_id: str) -> None:
        self.calls.append(("delete", document_id))

    async def upsert_chunk(self, ctx) -> None:
        self.calls.append(("chunk", ctx.chunk.id))

    async def upsert_entity(self, entity, chunk_id: str) -> None:
        self.calls.append(("entity", entity.name, chunk_id))

    async def upsert_relation(self, relation) -> None:
        self.calls.append(("relation", relation.source, relation.type, relation.target))

    async def fulltext_search(self, project_id: str, query: str, top_k: int) -> list[dict]:
        self.calls.append(("fulltext", project_id, query, top_k))
        return list(self.fulltext)


class SlowLLM:
    """Answers with the given replies, then stalls."""

    def __init__(self, replies: list[str] | None = None):
        self.replies = list(replies or [])

    async def complete(self, system: str, user: str) -> str:
        if self.replies:
            return self.replies.pop(0)
        await asyncio.sleep(5)
        return "MATCH (n) RETURN n"


class FailingLLM:
    async def complete(self, system: str, user: str) -> str:
        raise RuntimeError("rate limited")


EXTRACTION_REPLY = """```json
{
  "entities": [
    {"name": "Auth Service", "type": "Component", "description": "Issues tokens"},
    {"name": "Redis", "type": "Technology"},
    {"name": "Mood", "type": "Feeling"},
    {"name": "", "type": "Concept"}
  ],
  "relations": [
    {"source": "Auth Service", "target": "Redis", "type": "USES"},
    {"source": "Auth Service", "target": "Redis", "type": "LOVES"}
  ]
}
```"""


async def _stored_chunks(session_factory, repository_id: str) -> tuple[str, list[str]]:
    async with session_factory() as session:
        result = await DocumentRepository(session).upsert_document(
            repository_id=repository_id,
            path="docs/auth.md",
            title="Auth",
            doc_type=DocType.MD,
            commit_sha="c1",
            content="# Auth\n\nThe auth service caches sessions in Redis.",
        )
        chunks = await ChunkRepository(session).replace_for_version(
            result.new_version.id,
            [
                ChunkDraft(chunk_index=0, heading_path="Auth", content="# Auth\n\nThe auth service", token_count=5),
                ChunkDraft(chunk_index=1, heading_path="Auth > Cache", content="caches sessions in Redis", token_count=4),
            ],
        )
        await session.commit()
    return result.new_version.id, [c.id for c in chunks]


# =============================================================================
# Extraction
# =============================================================================


class TestParseExtraction:
    def test_fenced_reply_with_invalid_items(self) -> None:
        result = parse_extraction(EXTRACTION_REPLY)

        assert [(e.name, e.type) for e in result.entities] == [
            ("Auth Service", "Component"),
            ("Redis", "Technology"),
        ]
        assert [(r.source, r.type, r.target) for r in result.relations] == [("Auth Service", "USES", "Redis")]

    def test_malformed_json_is_empty(self) -> None:
        assert parse_extraction("Sure! Here are the entities:").is_empty
        assert parse_extraction("[1, 2]").is_empty


class TestEntityExtractor:
    @pytest.mark.asyncio
    async def test_prompt_carries_heading_and_content(self) -> None:
        llm = ScriptedLLM([EXTRACTION_REPLY])

        result = await EntityExtractor(llm).extract("caches sessions", "Auth > Cache")

        assert len(result.entities) == 2
        _, user = llm.prompts[0]
        assert user.startswith("Documentation Section: Auth > Cache")
        assert "caches sessions" in user

    @pytest.mark.asyncio
    async def test_llm_failure_is_empty(self) -> None:
        result = await EntityExtractor(FailingLLM()).extract("anything")
        assert result.is_empty


# =============================================================================
# Store helpers
# =============================================================================


class TestStoreHelpers:
    def test_escape_lucene(self) -> None:
        assert escape_lucene("auth:token (v2)") == r"auth\:token \(v2\)"
        assert escape_lucene("plain words") == "plain words"

    def test_single_row(self) -> None:
        assert single_row("MATCH (n) RETURN n LIMIT 20;") == "MATCH (n) RETURN n LIMIT 1"
        assert single_row("MATCH (n) RETURN n") == "MATCH (n) RETURN n LIMIT 1"


# =============================================================================
# Indexing and search
# =============================================================================


class TestGraphIndexer:
    @pytest.mark.asyncio
    async def test_writes_chunks_entities_and_relations(self, session_factory, registered_repo) -> None:
        version_id, chunk_ids = await _stored_chunks(session_factory, registered_repo.id)
        store = FakeGraphStore()
        llm = ScriptedLLM([EXTRACTION_REPLY, '{"entities": [], "relations": []}'])

        indexed = await GraphIndexer(store, EntityExtractor(llm), session_factory).index(version_id)

        assert indexed == 2
        assert store.calls[0][0] == "delete"
        assert store.calls[1:] == [
            ("chunk", chunk_ids[0]),
            ("entity", "Auth Service", chunk_ids[0]),
            ("entity", "Redis", chunk_ids[0]),
            ("relation", "Auth Service", "USES", "Redis"),
            ("chunk", chunk_ids[1]),
        ]

    @pytest.mark.asyncio
    async def test_unknown_version_indexes_nothing(self, session_factory) -> None:
        store = FakeGraphStore()
        indexer = GraphIndexer(store, EntityExtractor(ScriptedLLM([])), session_factory)
        assert await indexer.index("missing") == 0
        assert store.calls == []


class TestGraphSearch:
    @pytest.mark.asyncio
    async def test_rehydrates_and_skips_unknown_chunks(self, session_factory, registered_repo) -> None:
        _, chunk_ids = await _stored_chunks(session_factory, registered_repo.id)
        store = FakeGraphStore(
            fulltext=[
                {"chunkId": chunk_ids[1], "documentId": "d", "score": 2.5},
                {"chunkId": "ghost", "documentId": "d", "score": 1.0},
            ]
        )
        search = GraphSearch(store, indexer=None, session_factory=session_factory)

        results = await search.search("proj", "redis", top_k=5)

        assert store.calls == [("fulltext", "proj", "redis", 5)]
        assert [(r.chunk_id, r.score, r.path) for r in results] == [(chunk_ids[1], 2.5, "docs/auth.md")]
        assert results[0].heading_path == "Auth > Cache"

    @pytest.mark.asyncio
    async def test_empty_query(self, session_factory) -> None:
        store = FakeGraphStore()
        assert await GraphSearch(store, None, session_factory).search("proj", " ", 5) == []
        assert store.calls == []


# =============================================================================
# Query synthesis
# =============================================================================


class TestQuerySynthesizer:
    """The generate, validate and retry loop."""

    @pytest.mark.asyncio
    async def test_first_valid_query_is_returned(self) -> None:
        store = FakeGraphStore()
        llm = ScriptedLLM(["```cypher\nMATCH (e:Entity) RETURN e LIMIT 20\n```"])

        query = await QuerySynthesizer(store, llm, max_retries=3, timeout_seconds=5).generate_query("entities?")

        assert query == "MATCH (e:Entity) RETURN e LIMIT 20"
        assert store.validated == [query]
        system, user = llm.prompts[0]
        assert "IMPORTANT" not in system
        assert user == "Question: entities?\n\nGenerate a Cypher query to answer this question."

    @pytest.mark.asyncio
    async def test_validation_error_is_fed_back(self) -> None:
        store = FakeGraphStore(validation_errors=["Variable `x` not defined"])
        llm = ScriptedLLM(["MATCH (e) RETURN x", "MATCH (e) RETURN e"])

        query = await QuerySynthesizer(store, llm, max_retries=3, timeout_seconds=5).generate_query("q")

        assert query == "MATCH (e) RETURN e"
        system, user = llm.prompts[1]
        assert "IMPORTANT: Your previous query had this error:\nVariable `x` not defined" in system
        assert "Previous error: Variable `x` not defined" in user

    @pytest.mark.asyncio
    async def test_exhausted_after_max_retries_plus_one(self) -> None:
        store = FakeGraphStore(validation_errors=["e1", "e2", "e3", "e4"])
        llm = ScriptedLLM(["bad 1", "bad 2", "bad 3", "bad 4"])

        with pytest.raises(QuerySynthesisError) as exc_info:
            await QuerySynthesizer(store, llm, max_retries=3, timeout_seconds=5).generate_query("q")

        assert exc_info.value.attempts == 4
        assert exc_info.value.last_error == "e4"
        assert len(llm.prompts) == 4
        assert "Previous error: e3" in llm.prompts[3][1]

    @pytest.mark.asyncio
    async def test_zero_retries_means_one_attempt(self) -> None:
        store = FakeGraphStore(validation_errors=["boom"])
        llm = ScriptedLLM(["bad"])

        with pytest.raises(QuerySynthesisError) as exc_info:
            await QuerySynthesizer(store, llm, max_retries=0, timeout_seconds=5).generate_query("q")

        assert exc_info.value.attempts == 1

    @pytest.mark.asyncio
    async def test_llm_failure_stops_the_loop(self) -> None:
        with pytest.raises(QuerySynthesisError) as exc_info:
            await QuerySynthesizer(FakeGraphStore(), FailingLLM(), max_retries=3, timeout_seconds=5).generate_query("q")

        assert exc_info.value.attempts == 1
        assert exc_info.value.last_error == "rate limited"

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        synthesizer = QuerySynthesizer(FakeGraphStore(), SlowLLM(), max_retries=3, timeout_seconds=0.05)

        with pytest.raises(QuerySynthesisError) as exc_info:
            await synthesizer.generate_query("q")

        assert exc_info.value.attempts == 1
        assert exc_info.value.last_error is None

    @pytest.mark.asyncio
    async def test_timeout_keeps_attempts_and_last_error(self) -> None:
        store = FakeGraphStore(validation_errors=["Unknown label :Entiti"])
        llm = SlowLLM(["MATCH (e:Entiti) RETURN e"])
        synthesizer = QuerySynthesizer(store, llm, max_retries=3, timeout_seconds=0.05)

        with pytest.raises(QuerySynthesisError) as exc_info:
            await synthesizer.generate_query("q")

        assert exc_info.value.attempts == 2
        assert exc_info.value.last_error == "Unknown label :Entiti"
        assert exc_info.value.details == {"attempts": 2, "last_error": "Unknown label :Entiti"}

    @pytest.mark.asyncio
    async def test_execute_runs_the_validated_query(self) -> None:
        store = FakeGraphStore()
        synthesizer = QuerySynthesizer(store, ScriptedLLM(["MATCH (e) RETURN e.name AS name"]), timeout_seconds=5)

        records = await synthesizer.execute("names")

        assert records == [{"name": "Redis"}]
        assert store.calls == [("run", "MATCH (e) RETURN e.name AS name")]
