"""Git access: commit walking, document scanning and working copies."""

from docweave.git.scanner import DOC_PATTERNS, FileScanner, ScanConfig
from docweave.git.walker import ChangedFile, ChangeType, CommitInfo, CommitWalker
from docweave.git.workspace import GitWorkspace

__all__ = [
    "ChangeType",
    "ChangedFile",
    "CommitInfo",
    "CommitWalker",
    "DOC_PATTERNS",
    "FileScanner",
    "GitWorkspace",
    "ScanConfig",
]
