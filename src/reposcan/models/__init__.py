"""Data models and schemas."""

from reposcan.models.schemas import (
    FileEntry,
    RepositorySnapshot,
    RepoRef,
    ScoringConfig,
    ScoringResult,
    Vulnerability,
)

__all__ = [
    "FileEntry",
    "RepositorySnapshot",
    "RepoRef",
    "ScoringConfig",
    "ScoringResult",
    "Vulnerability",
]
