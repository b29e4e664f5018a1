"""Tests for commit walking, document scanning and working copies."""

from __future__ import annotations

import pytest
from conftest import AUTHOR

from docweave.errors import NotFoundError, TransientIOError
from docweave.git import ChangedFile, ChangeType, CommitWalker, FileScanner, GitWorkspace, ScanConfig
from docweave.models.document import Repository

# =============================================================================
# FileScanner
# =============================================================================


class TestIsDocumentFile:
    """The fixed document pattern set."""

    @pytest.mark.parametrize(
        "path",
        [
            "README.md",
            "readme",
            "ReadMe.rst",
            "docs/guide.md",
            "docs/deep/nested/page.adoc",
            "Documentation/intro.md",
            "architecture/overview.md",
            "adr/0001-use-postgres.md",
            "ADRS/0002.md",
            "openapi.yaml",
            "api/openapi.json",
            "services/billing/swagger.yml",
            "billing.openapi.yaml",
            "CHANGELOG.md",
            "contributing",
        ],
    )
    def test_matches(self, path: str) -> None:
        assert FileScanner().is_document_file(path)

    @pytest.mark.parametrize(
        "path",
        [
            "src/main.py",
            "src/README.md",
            "notes.md",
            "mydocs/guide.md",
            "openapi.txt",
            "lib/CHANGELOG.md",
        ],
    )
    def test_rejects(self, path: str) -> None:
        assert not FileScanner().is_document_file(path)

    def test_exclude_paths(self) -> None:
        scanner = FileScanner(ScanConfig(exclude_paths=["docs/internal"]))
        assert scanner.is_document_file("docs/public.md")
        assert not scanner.is_document_file("docs/internal/secret.md")

    def test_include_paths_restrict(self) -> None:
        scanner = FileScanner(ScanConfig(include_paths=["docs"]))
        assert scanner.is_document_file("docs/a.md")
        assert not scanner.is_document_file("README.md")

    def test_custom_patterns_extend(self) -> None:
        scanner = FileScanner(ScanConfig(custom_patterns=[r"^handbook/.+\.md$", "("]))
        assert scanner.is_document_file("handbook/onboarding.md")
        # The invalid pattern is ignored rather than raising
        assert len(scanner.patterns) == len(FileScanner().patterns) + 1


class TestFilterDocumentFiles:
    """Diff entries are filtered on their relevant path."""

    def test_deleted_uses_pre_image(self) -> None:
        changes = [
            ChangedFile(path="docs/gone.md", change_type=ChangeType.DELETED, old_path="docs/gone.md"),
            ChangedFile(path="src/gone.py", change_type=ChangeType.DELETED, old_path="src/gone.py"),
        ]
        kept = FileScanner().filter_document_files(changes)
        assert [c.path for c in kept] == ["docs/gone.md"]

    def test_rename_out_of_docs_is_kept(self) -> None:
        change = ChangedFile(path="attic/old.md", change_type=ChangeType.RENAMED, old_path="docs/old.md")
        assert FileScanner().filter_document_files([change]) == [change]


# =============================================================================
# CommitWalker
# =============================================================================


class TestCommitWalker:
    """Commit listing, ranges and tree diffs on a real repository."""

    def test_list_commits_skip_and_limit(self, git_repo) -> None:
        shas = []
        for i in range(3):
            git_repo.write("docs/page.md", f"# Page\n\nrevision {i}\n")
            shas.append(git_repo.commit(f"revision {i}"))

        walker = CommitWalker(git_repo.repo)
        commits = walker.list_commits("main", skip=1, limit=1)

        assert [c.sha for c in commits] == [shas[1]]
        assert commits[0].short_sha == shas[1][:7]
        assert commits[0].short_message == "revision 1"
        assert commits[0].author_email == "ada@example.com"

    def test_list_commits_unknown_branch(self, git_repo) -> None:
        git_repo.write("README.md", "# Hi\n")
        git_repo.commit("init")
        assert CommitWalker(git_repo.repo).list_commits("nope") == []

    def test_diff_classifies_rename_and_delete(self, git_repo) -> None:
        git_repo.write("docs/a.md", "# A\n\nalpha alpha alpha\nmore text here\n")
        git_repo.write("docs/b.md", "# B\n\nbeta\n")
        git_repo.write("docs/c.md", "# C\n\ngamma\n")
        first = git_repo.commit("init")

        git_repo.rename("docs/a.md", "docs/renamed.md")
        git_repo.remove("docs/b.md")
        git_repo.write("docs/c.md", "# C\n\ngamma delta\n")
        git_repo.write("docs/d.md", "# D\n")
        second = git_repo.commit("rework")

        changes = {c.change_type: c for c in CommitWalker(git_repo.repo).diff(first, second)}

        assert changes[ChangeType.RENAMED].path == "docs/renamed.md"
        assert changes[ChangeType.RENAMED].old_path == "docs/a.md"
        assert changes[ChangeType.DELETED].path == "docs/b.md"
        assert changes[ChangeType.MODIFIED].path == "docs/c.md"
        assert changes[ChangeType.ADDED].path == "docs/d.md"

    def test_changed_files_of_root_commit(self, git_repo) -> None:
        git_repo.write("README.md", "# Root\n").write("docs/x.md", "x\n")
        sha = git_repo.commit("root")

        changes = CommitWalker(git_repo.repo).changed_files(sha)

        assert sorted(c.path for c in changes) == ["README.md", "docs/x.md"]
        assert {c.change_type for c in changes} == {ChangeType.ADDED}

    def test_walk_range(self, git_repo) -> None:
        shas = []
        for i in range(3):
            git_repo.write("docs/page.md", f"v{i}\n")
            shas.append(git_repo.commit(f"v{i}"))
        walker = CommitWalker(git_repo.repo)

        assert [c.sha for c in walker.walk_range(shas[0], shas[2], oldest_first=True)] == shas[1:]
        assert {c.sha for c in walker.walk_range(None, shas[2])} == set(shas)
        assert walker.walk_range("0" * 40, shas[2]) == []

    @pytest.mark.parametrize("missing", ["0" * 40, "1" * 40, "not-a-rev"])
    def test_unresolvable_commits_yield_empty(self, git_repo, missing: str) -> None:
        git_repo.write("docs/page.md", "v0\n")
        sha = git_repo.commit("v0")
        walker = CommitWalker(git_repo.repo)

        assert walker.resolve_commit(missing) is None
        assert walker.walk_range(missing, sha) == []
        assert walker.walk_range(None, missing) == []
        assert walker.diff(missing, sha) == []
        assert walker.diff(sha, missing) == []
        assert walker.changed_files(missing) == []


# =============================================================================
# GitWorkspace
# =============================================================================


class TestGitWorkspace:
    """Clone, fetch, checkout and blob reads."""

    def _repository(self, git_repo, tmp_path) -> Repository:
        return Repository(
            id="ws",
            project_id="proj",
            name="ws",
            clone_url=str(git_repo.path),
            local_path=str(tmp_path / "clone"),
        )

    def test_clone_read_and_follow_remote(self, git_repo, tmp_path) -> None:
        git_repo.write("docs/a.md", "# A\n\nfirst\n")
        first = git_repo.commit("first")
        workspace = GitWorkspace(tmp_path / "repos")
        repository = self._repository(git_repo, tmp_path)

        repo = workspace.clone_or_open(repository)
        workspace.checkout(repo, "main")
        assert workspace.get_latest_commit_sha(repo, "main") == first
        assert workspace.read_file(repo, first, "docs/a.md") == "# A\n\nfirst\n"
        assert workspace.read_file(repo, first, "docs/missing.md") is None

        git_repo.write("docs/a.md", "# A\n\nsecond\n")
        second = git_repo.commit("second")

        repo = workspace.clone_or_open(repository)
        workspace.fetch(repo)
        workspace.checkout(repo, "main")
        assert workspace.get_latest_commit_sha(repo, "main") == second
        assert workspace.get_last_commit_for_file(repo, "docs/a.md").sha == second

    def test_checkout_unknown_branch(self, git_repo, tmp_path) -> None:
        git_repo.write("README.md", "# R\n")
        git_repo.commit("init")
        workspace = GitWorkspace(tmp_path / "repos")
        repo = workspace.clone_or_open(self._repository(git_repo, tmp_path))

        with pytest.raises(NotFoundError):
            workspace.checkout(repo, "does-not-exist")

    def test_clone_failure_is_transient(self, tmp_path) -> None:
        repository = Repository(
            id="bad",
            project_id="proj",
            name="bad",
            clone_url=str(tmp_path / "no-such-repo"),
            local_path=str(tmp_path / "bad-clone"),
        )
        with pytest.raises(TransientIOError):
            GitWorkspace(tmp_path / "repos").clone_or_open(repository)

    def test_unpushed_commits(self, git_repo, tmp_path) -> None:
        git_repo.write("docs/a.md", "# A\n")
        git_repo.commit("first")
        workspace = GitWorkspace(tmp_path / "repos")
        repo = workspace.clone_or_open(self._repository(git_repo, tmp_path))
        workspace.checkout(repo, "main")
        walker = CommitWalker(repo)
        assert walker.list_unpushed_commits("main") == []

        (tmp_path / "clone" / "docs" / "local.md").write_text("# Local\n")
        repo.index.add(["docs/local.md"])
        local = repo.index.commit("local only", author=AUTHOR, committer=AUTHOR)

        assert [c.sha for c in walker.list_unpushed_commits("main")] == [local.hexsha]
        assert walker.list_unpushed_commits("nope") == []
