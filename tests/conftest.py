"""
Test fixtures shared across the reposcan tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from reposcan.models.schemas import (
    CommitInfo,
    ContributorInfo,
    FileEntry,
    OwnerProfile,
    RepoMetadata,
    RepoRef,
    RepositorySnapshot,
    SourceStatus,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


class FakeFetcher:
    """In-memory stand-in for GitHubFetcher."""

    def __init__(
        self,
        files: dict[str, str] | None = None,
        branches: dict[str, dict] | None = None,
        directories: dict[str, list[FileEntry]] | None = None,
        failing: tuple[str, ...] = (),
        snapshot: RepositorySnapshot | None = None,
        snapshot_error: Exception | None = None,
    ) -> None:
        self.files = files or {}
        self.branches = branches or {}
        self.directories = directories or {}
        self.failing = failing
        self.snapshot = snapshot
        self.snapshot_error = snapshot_error
        self.requested: list[str] = []

    async def fetch_snapshot(self, repo_ref: RepoRef) -> RepositorySnapshot:
        if self.snapshot_error:
            raise self.snapshot_error
        return self.snapshot

    async def fetch_file_content(self, repo_ref: RepoRef, path: str) -> str | None:
        self.requested.append(path)
        if path in self.failing:
            raise RuntimeError(f"boom: {path}")
        return self.files.get(path)

    async def list_directory(self, repo_ref: RepoRef, path: str) -> list[FileEntry]:
        return list(self.directories.get(path, []))

    async def fetch_branch(self, repo_ref: RepoRef, branch: str) -> dict | None:
        return self.branches.get(branch)


def entries(*paths: str, sizes: dict[str, int] | None = None) -> tuple[FileEntry, ...]:
    """File entries for paths. A trailing slash marks a directory."""
    sizes = sizes or {}
    result = []
    for path in paths:
        is_dir = path.endswith("/")
        clean = path.rstrip("/")
        result.append(
            FileEntry(
                name=clean.rsplit("/", 1)[-1],
                path=clean,
                type="dir" if is_dir else "file",
                size=sizes.get(clean, 100),
            )
        )
    return tuple(result)


def make_snapshot(
    listing: tuple[str, ...] = (),
    tree: tuple[str, ...] = (),
    description: str | None = None,
    stars: int = 0,
    forks: int = 0,
    license_name: str | None = None,
    archived: bool = False,
    default_branch: str = "main",
    security_and_analysis: dict | None = None,
    commits: tuple[CommitInfo, ...] = (),
    contributors: tuple[ContributorInfo, ...] | None = None,
    owner: OwnerProfile | None = None,
    sources: SourceStatus | None = None,
) -> RepositorySnapshot:
    """Build a snapshot with sensible defaults for tests."""
    file_listing = entries(*listing)
    return RepositorySnapshot(
        ref=RepoRef(owner="acme", repo="widget"),
        repo=RepoMetadata(
            owner="acme",
            name="widget",
            description=description,
            stars=stars,
            forks=forks,
            default_branch=default_branch,
            license_name=license_name,
            archived=archived,
            security_and_analysis=security_and_analysis,
        ),
        file_listing=file_listing,
        file_tree=entries(*tree),
        recent_commits=commits,
        contributors=contributors,
        owner=owner,
        sources=sources or SourceStatus(
            repo=True,
            contents=bool(file_listing),
            commits=bool(commits),
            contributors=contributors is not None,
            owner=owner is not None,
        ),
    )


def make_commits(count: int, days_ago: int = 1, authors: int = 1) -> tuple[CommitInfo, ...]:
    """Commits spaced one day apart, newest first."""
    return tuple(
        CommitInfo(
            sha=f"{i:040d}",
            author_email=f"dev{i % authors}@example.com",
            authored_at=NOW - timedelta(days=days_ago + i),
        )
        for i in range(count)
    )


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def empty_snapshot():
    """A repository with no files, commits, contributors or owner."""
    return make_snapshot(sources=SourceStatus(repo=True))


@pytest.fixture
def healthy_snapshot():
    """A well-kept organization repository."""
    return make_snapshot(
        listing=(
            "README.md", "LICENSE", ".gitignore", ".env.example", "Dockerfile",
            "package.json", "package-lock.json", "SECURITY.md", "CONTRIBUTING.md",
            "CHANGELOG.md", "examples/", "test/", ".github/", "src/",
        ),
        description="A small, well documented widget toolkit for web apps",
        stars=2500,
        forks=120,
        license_name="MIT License",
        commits=make_commits(30, days_ago=2, authors=4),
        contributors=tuple(ContributorInfo(login=f"dev{i}", contributions=10) for i in range(8)),
        owner=OwnerProfile(
            login="acme",
            type="Organization",
            created_at=NOW - timedelta(days=3000),
            public_repos=40,
        ),
    )
