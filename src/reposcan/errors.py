"""Exceptions raised by the scan pipeline.

Every error carries a ``category`` that is one of ``invalid-input``,
``not-found`` or ``internal-error``. That is all a caller ever sees of a
failed scan.
"""

INVALID_INPUT = "invalid-input"
NOT_FOUND = "not-found"
INTERNAL_ERROR = "internal-error"


class ScanError(Exception):
    """Base class for scan failures."""

    category: str = INTERNAL_ERROR


class InvalidRepositoryURLError(ScanError):
    """Raised when a repository URL does not have the owner/repo shape."""

    category = INVALID_INPUT

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Invalid GitHub repository URL: '{url}'")


class RepositoryNotFoundError(ScanError):
    """Raised when the repository metadata request returns 404."""

    category = NOT_FOUND

    def __init__(self, full_name: str) -> None:
        self.full_name = full_name
        super().__init__(f"Repository '{full_name}' not found")


class UpstreamError(ScanError):
    """Raised when the repository metadata request fails for another reason."""

    category = INTERNAL_ERROR


class StorageError(ScanError):
    """Raised when a scan record cannot be written or read."""

    category = INTERNAL_ERROR


class ScanFailedError(ScanError):
    """Terminal failure of a scan job. No partial result is attached."""

    def __init__(self, category: str, message: str) -> None:
        self.category = category
        super().__init__(message)
