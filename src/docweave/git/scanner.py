"""Classify repository paths as documentation files."""

import re
from dataclasses import dataclass, field

import structlog
from git import Repo
from git.exc import BadName, BadObject

from docweave.git.walker import ChangedFile, ChangeType

logger = structlog.get_logger()

# Ordered; the first match wins. Paths are repository-relative with "/".
DOC_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"^readme(\.[^/]+)?$", re.IGNORECASE),
    re.compile(r"^docs/.+", re.IGNORECASE),
    re.compile(r"^documentation/.+", re.IGNORECASE),
    re.compile(r"^architecture/.+", re.IGNORECASE),
    re.compile(r"^adrs?/.+", re.IGNORECASE),
    re.compile(r"^(.*/)?([^/]+\.)?(openapi|swagger)\.(ya?ml|json)$", re.IGNORECASE),
    re.compile(r"^changelog(\.[^/]+)?$", re.IGNORECASE),
    re.compile(r"^contributing(\.[^/]+)?$", re.IGNORECASE),
)

MAX_CUSTOM_PATTERN_LENGTH = 100


@dataclass
class ScanConfig:
    """Per-repository narrowing of the document filter."""

    include_paths: list[str] = field(default_factory=list)
    exclude_paths: list[str] = field(default_factory=list)
    custom_patterns: list[str] = field(default_factory=list)


class FileScanner:
    """
    Decide which files of a repository are documents.

    The default pattern set is fixed. A ScanConfig can restrict it to some
    directories, exclude others, and add extra regular expressions.
    """

    def __init__(self, config: ScanConfig | None = None):
        self.config = config or ScanConfig()
        self.patterns = list(DOC_PATTERNS) + self._compile_custom(self.config.custom_patterns)

    def is_document_file(self, path: str) -> bool:
        """Check a repository-relative path against the document patterns."""
        path = path.lstrip("/")
        if self._is_excluded(path) or not self._is_included(path):
            return False
        return any(pattern.match(path) for pattern in self.patterns)

    def scan_document_files(self, repo: Repo, commit_sha: str) -> list[str]:
        """
        List every document path in a commit's tree.

        Args:
            repo: Repository to read
            commit_sha: Commit whose tree is scanned

        Returns:
            Sorted document paths, empty if the commit is unknown
        """
        try:
            commit = repo.commit(commit_sha)
        except (BadName, BadObject, ValueError) as e:
            logger.warning("scan_commit_not_found", sha=commit_sha, error=str(e))
            return []

        paths = sorted(
            item.path
            for item in commit.tree.traverse()
            if item.type == "blob" and self.is_document_file(item.path)
        )
        logger.info("scanned_document_files", sha=commit_sha[:7], count=len(paths))
        return paths

    def filter_document_files(self, changes: list[ChangedFile]) -> list[ChangedFile]:
        """Keep changes whose relevant path is a document (pre-image for deletions)."""
        kept = []
        for change in changes:
            path = change.old_path if change.change_type == ChangeType.DELETED else change.path
            if path and self.is_document_file(path):
                kept.append(change)
            elif change.change_type == ChangeType.RENAMED and change.old_path and self.is_document_file(change.old_path):
                # Renamed out of the documentation tree: still needs a delete
                kept.append(change)
        return kept

    def _is_excluded(self, path: str) -> bool:
        for excluded in self.config.exclude_paths:
            excluded = excluded.strip("/")
            if path == excluded or path.startswith(excluded + "/") or f"/{excluded}/" in f"/{path}":
                return True
        return False

    def _is_included(self, path: str) -> bool:
        if not self.config.include_paths:
            return True
        return any(
            path == included.strip("/") or path.startswith(included.strip("/") + "/")
            for included in self.config.include_paths
        )

    @staticmethod
    def _compile_custom(patterns: list[str]) -> list[re.Pattern]:
        compiled = []
        for raw in patterns:
            if not raw or len(raw) > MAX_CUSTOM_PATTERN_LENGTH:
                logger.warning("custom_pattern_ignored", pattern=raw, reason="empty or too long")
                continue
            try:
                compiled.append(re.compile(raw, re.IGNORECASE))
            except re.error as e:
                logger.warning("custom_pattern_ignored", pattern=raw, reason=str(e))
        return compiled
