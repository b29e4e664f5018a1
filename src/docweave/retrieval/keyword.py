"""Keyword retrieval by case-insensitive substring match."""

import re

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docweave.models.search import SearchMode, SearchResult
from docweave.storage import DocumentRepository, get_session_factory

logger = structlog.get_logger()

# Keyword hits carry no relevance signal of their own; ranking happens in fusion.
PLACEHOLDER_SCORE = 0.9
SNIPPET_PADDING = 50
FALLBACK_SNIPPET_LENGTH = 200


def build_snippet(content: str, query: str, padding: int = SNIPPET_PADDING) -> str:
    """
    Cut a window around the first case-insensitive occurrence of query.

    Truncated sides get "...". Without an occurrence, the start of the
    content is used.
    """
    index = content.lower().find(query.lower()) if query else -1
    if index < 0:
        if len(content) <= FALLBACK_SNIPPET_LENGTH:
            return content
        return content[:FALLBACK_SNIPPET_LENGTH] + "..."

    start = max(0, index - padding)
    end = min(len(content), index + len(query) + padding)
    snippet = content[start:end]
    if start > 0:
        snippet = "..." + snippet
    if end < len(content):
        snippet = snippet + "..."
    return snippet


def highlight(text: str, query: str) -> str:
    """Wrap every occurrence of query in ** markers."""
    if not query:
        return text
    return re.sub(re.escape(query), lambda m: f"**{m.group(0)}**", text, flags=re.IGNORECASE)


class KeywordSearch:
    """Substring search over the latest version of every live document in a project."""

    mode = SearchMode.KEYWORD

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self.session_factory = session_factory or get_session_factory()

    async def search(self, project_id: str, query: str, top_k: int) -> list[SearchResult]:
        """
        Search document content.

        Args:
            project_id: Project whose repositories are searched
            query: Substring to look for
            top_k: Maximum number of results

        Returns:
            One result per matching document
        """
        query = query.strip()
        if not query or top_k <= 0:
            return []

        async with self.session_factory() as session:
            rows = await DocumentRepository(session).search_latest_content(project_id, query, top_k)

        results = []
        for document, version in rows:
            snippet = build_snippet(version.content, query)
            results.append(
                SearchResult(
                    document_id=document.id,
                    path=document.path,
                    title=document.title,
                    commit_sha=version.commit_sha,
                    score=PLACEHOLDER_SCORE,
                    snippet=snippet,
                    highlighted_snippet=highlight(snippet, query),
                )
            )

        logger.debug("keyword_search", project_id=project_id, results=len(results))
        return results

    async def index(self, version_id: str) -> int:
        # Reads version content directly; nothing to build
        return 0
