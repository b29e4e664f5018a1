"""Exceptions raised at docweave's orchestration boundaries."""


class DocweaveError(Exception):
    """Base exception for all docweave errors."""

    def __init__(self, message: str, *, details: dict[str, object] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(DocweaveError):
    """Raised when a repository, commit, document or version does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(
            f"{kind} not found: {identifier}",
            details={"kind": kind, "identifier": identifier},
        )
        self.kind = kind
        self.identifier = identifier


class TransientIOError(DocweaveError):
    """Raised when cloning, fetching or checking out a working copy fails."""


class SyncConflictError(DocweaveError):
    """Raised when a sync is requested for a repository that is already syncing."""

    def __init__(self, repository_id: str, running_job_id: str | None = None) -> None:
        super().__init__(
            f"Sync already running for repository: {repository_id}",
            details={"repository_id": repository_id, "running_job_id": running_job_id},
        )
        self.repository_id = repository_id
        self.running_job_id = running_job_id


class QuerySynthesisError(DocweaveError):
    """Raised when no executable graph query could be generated."""

    def __init__(self, message: str, *, attempts: int, last_error: str | None) -> None:
        super().__init__(
            message,
            details={"attempts": attempts, "last_error": last_error},
        )
        self.attempts = attempts
        self.last_error = last_error
