"""Commit graph traversal and tree diffs over a local Git repository."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

import structlog
from git import Commit, Repo
from git.exc import BadName, BadObject, GitCommandError

logger = structlog.get_logger()


class ChangeType(str, Enum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    RENAMED = "RENAMED"


@dataclass(frozen=True)
class CommitInfo:
    """Summary of a single commit."""

    sha: str
    short_sha: str
    message: str
    short_message: str
    author_name: str | None
    author_email: str | None
    committed_at: datetime


@dataclass(frozen=True)
class ChangedFile:
    """A file touched by a commit.

    ``path`` is the post-image path, except for deletions where it is the
    path the file had before it was removed. ``old_path`` is set for
    renames.
    """

    path: str
    change_type: ChangeType
    old_path: str | None = None


# git diff-tree status letters
_CHANGE_TYPES = {
    "A": ChangeType.ADDED,
    "M": ChangeType.MODIFIED,
    "T": ChangeType.MODIFIED,
    "C": ChangeType.MODIFIED,
    "D": ChangeType.DELETED,
    "R": ChangeType.RENAMED,
}


class CommitWalker:
    """
    Walk commits and diff trees of one repository.

    Lookups that cannot be resolved log a warning and return empty results
    instead of raising.
    """

    def __init__(self, repo: Repo, remote_name: str = "origin"):
        self.repo = repo
        self.remote_name = remote_name

    def list_commits(self, branch: str, skip: int = 0, limit: int = 50) -> list[CommitInfo]:
        """
        List commits reachable from a branch tip, newest first.

        Args:
            branch: Branch name, resolved locally first, then on the remote
            skip: Number of commits to skip from the tip
            limit: Maximum number of commits to return

        Returns:
            Commit summaries, empty if the branch is unknown
        """
        tip = self.resolve_branch(branch)
        if tip is None:
            logger.warning("branch_not_found", branch=branch)
            return []

        commits = self.repo.iter_commits(tip.hexsha, skip=skip, max_count=limit)
        return [to_commit_info(commit) for commit in commits]

    def resolve_branch(self, branch: str) -> Commit | None:
        """Resolve a branch tip from refs/heads, then refs/remotes/<remote>."""
        refs = {ref.path: ref for ref in self.repo.references}
        for name in (f"refs/heads/{branch}", f"refs/remotes/{self.remote_name}/{branch}"):
            ref = refs.get(name)
            if ref is not None:
                return ref.commit
        return None

    def resolve_commit(self, rev: str) -> Commit | None:
        """Resolve a SHA or revision expression, None if it does not exist."""
        if not rev or rev.strip() == Commit.NULL_HEX_SHA:
            return None
        try:
            commit = self.repo.commit(rev)
            # A full SHA is not looked up until an attribute is read
            commit.tree
        except (BadName, BadObject, GitCommandError, ValueError):
            return None
        return commit

    def diff(self, old_sha: str, new_sha: str) -> list[ChangedFile]:
        """
        Diff two commit trees.

        Args:
            old_sha: Pre-image commit
            new_sha: Post-image commit

        Returns:
            Classified changes, empty if either commit is unknown
        """
        old_commit = self.resolve_commit(old_sha)
        new_commit = self.resolve_commit(new_sha)
        if old_commit is None or new_commit is None:
            logger.warning("diff_commit_not_found", old_sha=old_sha, new_sha=new_sha)
            return []
        return _classify(old_commit.diff(new_commit))

    def changed_files(self, sha: str) -> list[ChangedFile]:
        """Changes introduced by one commit relative to its first parent."""
        commit = self.resolve_commit(sha)
        if commit is None:
            logger.warning("commit_not_found", sha=sha)
            return []

        if not commit.parents:
            # Root commit: everything in the tree is new
            return [
                ChangedFile(path=item.path, change_type=ChangeType.ADDED)
                for item in commit.tree.traverse()
                if item.type == "blob"
            ]

        return _classify(commit.parents[0].diff(commit))

    def walk_range(
        self,
        from_exclusive: str | None,
        to_inclusive: str,
        oldest_first: bool = False,
    ) -> list[CommitInfo]:
        """
        Commits reachable from ``to_inclusive`` but not from ``from_exclusive``.

        Order follows ``git rev-list``; only reachability is guaranteed.
        """
        to_commit = self.resolve_commit(to_inclusive)
        if to_commit is None:
            logger.warning("walk_commit_not_found", sha=to_inclusive)
            return []

        rev = to_commit.hexsha
        if from_exclusive:
            from_commit = self.resolve_commit(from_exclusive)
            if from_commit is None:
                logger.warning("walk_commit_not_found", sha=from_exclusive)
                return []
            rev = f"{from_commit.hexsha}..{to_commit.hexsha}"

        commits = self.repo.iter_commits(rev, reverse=oldest_first)
        return [to_commit_info(commit) for commit in commits]

    def list_unpushed_commits(self, branch: str) -> list[CommitInfo]:
        """Local commits on a branch that its remote-tracking branch lacks."""
        refs = {ref.path: ref for ref in self.repo.references}
        local = refs.get(f"refs/heads/{branch}")
        if local is None:
            logger.warning("branch_not_found", branch=branch)
            return []

        remote = refs.get(f"refs/remotes/{self.remote_name}/{branch}")
        if remote is None:
            return [to_commit_info(c) for c in self.repo.iter_commits(local.commit.hexsha)]
        rev = f"{remote.commit.hexsha}..{local.commit.hexsha}"
        return [to_commit_info(c) for c in self.repo.iter_commits(rev)]


def to_commit_info(commit: Commit) -> CommitInfo:
    """Convert a GitPython commit into a CommitInfo."""
    message = commit.message if isinstance(commit.message, str) else commit.message.decode()
    return CommitInfo(
        sha=commit.hexsha,
        short_sha=commit.hexsha[:7],
        message=message,
        short_message=message.strip().splitlines()[0] if message.strip() else "",
        author_name=commit.author.name,
        author_email=commit.author.email,
        committed_at=commit.committed_datetime,
    )


def _classify(diff_index) -> list[ChangedFile]:
    changes = []
    for entry in diff_index:
        change_type = _CHANGE_TYPES.get(entry.change_type, ChangeType.MODIFIED)
        if change_type == ChangeType.DELETED:
            changes.append(ChangedFile(path=entry.a_path, change_type=change_type, old_path=entry.a_path))
        elif change_type == ChangeType.RENAMED:
            changes.append(ChangedFile(path=entry.b_path, change_type=change_type, old_path=entry.a_path))
        else:
            changes.append(ChangedFile(path=entry.b_path or entry.a_path, change_type=change_type))
    return changes
