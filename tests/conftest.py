"""Shared fixtures: isolated settings, a temporary database and Git repositories."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import numpy as np
import pytest
import pytest_asyncio
from git import Actor, Repo
from sqlalchemy.ext.asyncio import async_sessionmaker

from docweave.config import get_settings
from docweave.models.document import Repository
from docweave.storage import RepositoryRepository, create_engine_for_url, init_database

AUTHOR = Actor("Ada Writer", "ada@example.com")


# =============================================================================
# Settings and database
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Point every directory and the database at tmp_path."""
    monkeypatch.setenv("DOCWEAVE_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("DOCWEAVE_INDEX_DIR", str(tmp_path / "data" / "indexes"))
    monkeypatch.setenv("DOCWEAVE_REPOS_DIR", str(tmp_path / "data" / "repos"))
    monkeypatch.setenv("DOCWEAVE_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'data' / 'test.db'}")
    monkeypatch.setenv("DOCWEAVE_NEO4J_ENABLED", "false")
    monkeypatch.delenv("DOCWEAVE_OPENAI_API_KEY", raising=False)
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path):
    """A fresh SQLite database with all tables created."""
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await init_database(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


# =============================================================================
# Git repositories
# =============================================================================


class GitRepoBuilder:
    """Builds commits in a throwaway repository."""

    def __init__(self, path: Path):
        self.path = path
        self.repo = Repo.init(path)
        self._tick = 0

    def write(self, rel_path: str, content: str) -> "GitRepoBuilder":
        target = self.path / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
        self.repo.index.add([rel_path])
        return self

    def remove(self, rel_path: str) -> "GitRepoBuilder":
        self.repo.index.remove([rel_path], working_tree=True)
        return self

    def rename(self, old_path: str, new_path: str) -> "GitRepoBuilder":
        (self.path / new_path).parent.mkdir(parents=True, exist_ok=True)
        self.repo.index.move([old_path, new_path])
        return self

    def commit(self, message: str) -> str:
        self._tick += 1
        # GitPython parse_date rejects the "+00:00" offset that isoformat() emits
        when = datetime(2024, 1, 1, 12, self._tick, tzinfo=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S +0000")
        commit = self.repo.index.commit(
            message,
            author=AUTHOR,
            committer=AUTHOR,
            author_date=when,
            commit_date=when,
        )
        if self.repo.active_branch.name != "main":
            self.repo.git.branch("-M", "main")
        return commit.hexsha


@pytest.fixture
def git_repo(tmp_path: Path) -> GitRepoBuilder:
    return GitRepoBuilder(tmp_path / "source")


@pytest_asyncio.fixture
async def registered_repo(session_factory, git_repo: GitRepoBuilder, tmp_path: Path) -> Repository:
    """The builder's repository registered under project "proj"."""
    repository = Repository(
        id="repo-1",
        project_id="proj",
        name="source",
        clone_url=str(git_repo.path),
        default_branch="main",
        local_path=str(tmp_path / "mirror"),
    )
    async with session_factory() as session:
        await RepositoryRepository(session).upsert(repository)
    return repository


# =============================================================================
# Test doubles
# =============================================================================


class FakeEmbedder:
    """Deterministic bag-of-words embedder over a fixed vocabulary."""

    def __init__(self, vocabulary: list[str], dimension: int = 8):
        self.vocabulary = [w.lower() for w in vocabulary]
        self.dimension = max(dimension, len(self.vocabulary) + 1)
        self.calls: list[list[str]] = []

    def _vector(self, text: str) -> np.ndarray:
        words = text.lower().split()
        vec = np.zeros(self.dimension, dtype=np.float32)
        for i, term in enumerate(self.vocabulary):
            vec[i] = sum(1 for w in words if term in w)
        vec[-1] = 0.01
        return vec

    async def embed_query(self, text: str) -> np.ndarray:
        return self._vector(text)

    async def embed_texts(self, texts: list[str]) -> np.ndarray:
        self.calls.append(list(texts))
        return np.stack([self._vector(t) for t in texts]) if texts else np.zeros((0, self.dimension), np.float32)


class ScriptedLLM:
    """LLM double that replays canned replies and records prompts."""

    def __init__(self, replies: list[str]):
        self.replies = list(replies)
        self.prompts: list[tuple[str, str]] = []

    async def complete(self, system: str, user: str) -> str:
        self.prompts.append((system, user))
        if not self.replies:
            raise AssertionError("ScriptedLLM ran out of replies")
        return self.replies.pop(0)
