"""Local working copies of mirrored repositories."""

from pathlib import Path

import structlog
from git import Commit, Repo
from git.exc import BadName, BadObject, GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from docweave.config import get_settings
from docweave.errors import NotFoundError, TransientIOError
from docweave.git.walker import CommitInfo, to_commit_info
from docweave.models.document import Repository

logger = structlog.get_logger()


class GitWorkspace:
    """
    Read surface over local clones: clone-or-open, fetch, checkout, blobs
    and commit metadata.

    Clone, fetch and checkout failures are raised as TransientIOError.
    Blob and commit lookups return None when nothing is found.
    """

    def __init__(self, root_dir: Path | str | None = None, remote_name: str | None = None):
        settings = get_settings()
        self.root_dir = Path(root_dir or settings.repos_dir)
        self.remote_name = remote_name or settings.git_remote_name

    def local_path(self, repository: Repository) -> Path:
        """Directory holding a repository's working copy."""
        if repository.local_path:
            return Path(repository.local_path)
        return self.root_dir / repository.id

    def clone_or_open(self, repository: Repository) -> Repo:
        """Open the working copy if it exists, otherwise clone it."""
        path = self.local_path(repository)
        if (path / ".git").exists():
            try:
                return Repo(path)
            except (InvalidGitRepositoryError, NoSuchPathError) as e:
                raise TransientIOError(f"Cannot open working copy at {path}: {e}") from e

        logger.info("cloning_repository", repository_id=repository.id, url=repository.clone_url)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            return Repo.clone_from(repository.clone_url, path)
        except GitCommandError as e:
            raise TransientIOError(
                f"Clone failed for {repository.clone_url}: {e.stderr or e}",
                details={"repository_id": repository.id},
            ) from e

    def fetch(self, repo: Repo) -> None:
        """Fetch from the configured remote, if the working copy has one."""
        if self.remote_name not in [remote.name for remote in repo.remotes]:
            logger.debug("fetch_skipped_no_remote", remote=self.remote_name, path=repo.working_dir)
            return
        try:
            repo.remote(self.remote_name).fetch()
        except GitCommandError as e:
            raise TransientIOError(f"Fetch failed: {e.stderr or e}") from e

    def checkout(self, repo: Repo, branch: str) -> None:
        """
        Check out a branch.

        When a remote-tracking branch exists the local branch is reset to it,
        so the working copy mirrors the remote.
        """
        refs = {ref.path for ref in repo.references}
        try:
            if f"refs/remotes/{self.remote_name}/{branch}" in refs:
                repo.git.checkout("-B", branch, f"{self.remote_name}/{branch}")
            elif f"refs/heads/{branch}" in refs:
                repo.git.checkout(branch)
            else:
                raise NotFoundError("branch", branch)
        except GitCommandError as e:
            raise TransientIOError(f"Checkout of {branch} failed: {e.stderr or e}") from e

    def get_latest_commit_sha(self, repo: Repo, branch: str) -> str:
        """Tip of a branch, from the local ref or else the remote-tracking ref."""
        refs = {ref.path: ref for ref in repo.references}
        for name in (f"refs/heads/{branch}", f"refs/remotes/{self.remote_name}/{branch}"):
            if name in refs:
                return refs[name].commit.hexsha
        raise NotFoundError("branch", branch)

    def read_file(self, repo: Repo, commit_sha: str, path: str) -> str | None:
        """Read a blob as UTF-8 text at a commit, None if missing."""
        try:
            blob = repo.commit(commit_sha).tree / path
        except (BadName, BadObject, ValueError, KeyError):
            return None
        if blob.type != "blob":
            return None
        return blob.data_stream.read().decode("utf-8", errors="replace")

    def get_commit_info(self, repo: Repo, commit_sha: str) -> CommitInfo | None:
        """Author, time and message of a commit, None if unknown."""
        if commit_sha.strip() == Commit.NULL_HEX_SHA:
            return None
        try:
            return to_commit_info(repo.commit(commit_sha))
        except (BadName, BadObject, ValueError):
            return None

    def get_last_commit_for_file(self, repo: Repo, path: str, rev: str = "HEAD") -> CommitInfo | None:
        """Most recent commit reachable from ``rev`` that touched ``path``."""
        try:
            commit = next(repo.iter_commits(rev, paths=path, max_count=1), None)
        except GitCommandError:
            return None
        return to_commit_info(commit) if commit else None
