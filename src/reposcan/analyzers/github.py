"""GitHub data fetcher for repository scans."""

import asyncio
import base64
import binascii
import logging
import os
import re
from datetime import datetime, timezone
from urllib.parse import quote

import httpx

from reposcan import __version__
from reposcan.errors import InvalidRepositoryURLError, RepositoryNotFoundError, UpstreamError
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

logger = logging.getLogger(__name__)

# https://github.com/owner/repo with an optional trailing slash and nothing else
REPO_URL_PATTERN = re.compile(r"^https?://(?:www\.)?github\.com/([\w-]+)/([\w.-]+)/?$")


def parse_repo_url(url: str) -> RepoRef:
    """Parse a repository URL into a RepoRef.

    Only ``http(s)://(www.)?github.com/<owner>/<repo>`` is accepted. A
    trailing ``.git`` is stripped from the repository name.

    Args:
        url: Repository URL to parse.

    Returns:
        RepoRef for the repository.

    Raises:
        InvalidRepositoryURLError: If the URL does not have the expected shape.
    """
    match = REPO_URL_PATTERN.match((url or "").strip())
    if not match:
        raise InvalidRepositoryURLError(url)

    owner, repo = match.groups()
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not repo or repo in (".", ".."):
        raise InvalidRepositoryURLError(url)

    return RepoRef(owner=owner, repo=repo)


class GitHubFetcher:
    """Fetches repository data and file contents from the GitHub API.

    All calls are reads. A token is optional; without one the anonymous
    rate limit applies. Set GITHUB_TOKEN or pass token to the constructor.
    """

    BASE_URL = "https://api.github.com"

    def __init__(
        self,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
        http_timeout: float = 30.0,
        fetch_timeout: float = 20.0,
        max_content_bytes: int = 500_000,
        commit_limit: int = 30,
        contributor_limit: int = 10,
    ) -> None:
        """Initialize the fetcher.

        Args:
            token: GitHub personal access token. If not provided, uses GITHUB_TOKEN env var.
            client: Optional httpx client. If not provided, a client is created per request.
            http_timeout: Transport timeout for created clients, in seconds.
            fetch_timeout: Upper bound for any single fetch, in seconds.
            max_content_bytes: Files at or above this size are never downloaded.
            commit_limit: Number of recent commits to request.
            contributor_limit: Number of contributors to request.
        """
        self._token = token or os.environ.get("GITHUB_TOKEN")
        self._client = client
        self.http_timeout = http_timeout
        self.fetch_timeout = fetch_timeout
        self.max_content_bytes = max_content_bytes
        self.commit_limit = commit_limit
        self.contributor_limit = contributor_limit

        # Rate limit tracking
        self.rate_limit_remaining: int | None = None
        self.rate_limit_total: int | None = None
        self.rate_limit_reset: datetime | None = None

    def _headers(self) -> dict[str, str]:
        """Get headers for GitHub API requests."""
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": f"reposcan/{__version__}",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create an HTTP client."""
        if self._client is not None:
            return self._client
        return httpx.AsyncClient(
            timeout=self.http_timeout, headers=self._headers(), follow_redirects=True
        )

    def _update_rate_limits(self, response: httpx.Response) -> None:
        """Extract and store rate limit info from response headers."""
        remaining = response.headers.get("X-RateLimit-Remaining")
        limit = response.headers.get("X-RateLimit-Limit")
        reset = response.headers.get("X-RateLimit-Reset")

        if remaining is not None:
            self.rate_limit_remaining = int(remaining)
        if limit is not None:
            self.rate_limit_total = int(limit)
        if reset is not None:
            self.rate_limit_reset = datetime.fromtimestamp(int(reset), tz=timezone.utc)

    async def _fetch(self, path: str, params: dict | None = None) -> dict | list | None:
        """Fetch from GitHub API.

        Follows redirects for renamed or transferred repositories. Returns
        None on 404 and on an empty (204) body, raises on other errors.
        """
        client = await self._get_client()
        url = f"{self.BASE_URL}{path}"

        try:
            response = await client.get(
                url, params=params, headers=self._headers(), follow_redirects=True
            )
            self._update_rate_limits(response)
            if response.status_code in (204, 404):
                return None
            response.raise_for_status()
            return response.json()
        finally:
            if self._client is None:
                await client.aclose()

    async def _fetch_optional(self, path: str, params: dict | None = None) -> dict | list | None:
        """Fetch a secondary resource, treating every failure as missing data."""
        try:
            return await asyncio.wait_for(self._fetch(path, params), self.fetch_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out fetching {path}")
        except httpx.HTTPStatusError as e:
            logger.info(f"GitHub returned {e.response.status_code} for {path}")
        except httpx.HTTPError as e:
            logger.warning(f"Request for {path} failed: {e}")
        except ValueError as e:
            logger.warning(f"Could not decode response for {path}: {e}")
        return None

    async def _fetch_repo_info(self, repo_ref: RepoRef) -> RepoMetadata:
        """Fetch repository metadata. This is the only fetch allowed to fail the scan."""
        path = f"/repos/{repo_ref.owner}/{repo_ref.repo}"
        try:
            data = await asyncio.wait_for(self._fetch(path), self.fetch_timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamError(f"Timed out fetching {repo_ref.full_name}") from e
        except httpx.HTTPStatusError as e:
            raise UpstreamError(
                f"GitHub returned {e.response.status_code} for {repo_ref.full_name}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamError(f"Failed to fetch {repo_ref.full_name}: {e}") from e

        if data is None:
            raise RepositoryNotFoundError(repo_ref.full_name)
        if not isinstance(data, dict):
            raise UpstreamError(f"Unexpected repository payload for {repo_ref.full_name}")

        return RepoMetadata.from_api(data)

    async def fetch_snapshot(self, repo_ref: RepoRef) -> RepositorySnapshot:
        """Fetch everything a scan needs for one repository.

        The repository, root listing, recent commits, contributors, owner
        profile and recursive file tree are requested concurrently. Only the
        repository request can fail the scan; the others fall back to empty
        defaults.

        Args:
            repo_ref: Reference to the repository.

        Returns:
            RepositorySnapshot for the repository.

        Raises:
            RepositoryNotFoundError: If the repository does not exist.
            UpstreamError: If the repository request fails for another reason.
        """
        owner = repo_ref.owner
        repo = repo_ref.repo

        results = await asyncio.gather(
            self._fetch_repo_info(repo_ref),
            self._fetch_optional(f"/repos/{owner}/{repo}/contents"),
            self._fetch_optional(
                f"/repos/{owner}/{repo}/commits", params={"per_page": self.commit_limit}
            ),
            self._fetch_optional(
                f"/repos/{owner}/{repo}/contributors",
                params={"per_page": self.contributor_limit},
            ),
            self._fetch_optional(f"/users/{owner}"),
            self._fetch_optional(
                f"/repos/{owner}/{repo}/git/trees/HEAD", params={"recursive": "1"}
            ),
            return_exceptions=True,
        )
        repo_result, contents_data, commits_data, contributors_data, owner_data, tree_data = (
            results
        )
        if isinstance(repo_result, BaseException):
            raise repo_result

        listing = tuple(
            FileEntry.from_api(item)
            for item in (contents_data if isinstance(contents_data, list) else [])
            if isinstance(item, dict)
        )

        commits = tuple(
            CommitInfo.from_api(item)
            for item in (commits_data if isinstance(commits_data, list) else [])
            if isinstance(item, dict)
        )

        contributors = None
        if isinstance(contributors_data, list):
            contributors = tuple(
                ContributorInfo.from_api(item)
                for item in contributors_data
                if isinstance(item, dict)
            )

        owner_profile = None
        if isinstance(owner_data, dict):
            owner_profile = OwnerProfile.from_api(owner_data)

        tree: tuple[FileEntry, ...] = ()
        if isinstance(tree_data, dict) and isinstance(tree_data.get("tree"), list):
            tree = tuple(
                FileEntry.from_tree(item)
                for item in tree_data["tree"]
                if isinstance(item, dict) and item.get("type") == "blob"
            )
            if tree_data.get("truncated"):
                logger.info(f"File tree for {repo_ref.full_name} was truncated by GitHub")

        sources = SourceStatus(
            repo=True,
            contents=bool(listing),
            commits=bool(commits),
            contributors=contributors is not None,
            owner=owner_profile is not None,
        )
        logger.debug(
            f"Fetched {repo_ref.full_name}: {len(listing)} root entries, "
            f"{len(tree)} tree files, {len(commits)} commits, "
            f"{sources.succeeded}/{sources.attempted} sources"
        )

        return RepositorySnapshot(
            ref=repo_ref,
            repo=repo_result,
            file_listing=listing,
            file_tree=tree,
            recent_commits=commits,
            contributors=contributors,
            owner=owner_profile,
            sources=sources,
        )

    async def fetch_file_content(self, repo_ref: RepoRef, path: str) -> str | None:
        """Fetch and decode the text content of a single file.

        Args:
            repo_ref: Reference to the repository.
            path: Path of the file within the repository.

        Returns:
            Decoded text, or None if the file is missing, too large, binary or
            could not be fetched.
        """
        data = await self._fetch_optional(f"/repos/{repo_ref.owner}/{repo_ref.repo}/contents/{quote(path)}")
        if not isinstance(data, dict):
            return None

        content = data.get("content")
        size = data.get("size") or 0
        if not content or size >= self.max_content_bytes:
            return None

        try:
            raw = base64.b64decode(content)
        except (binascii.Error, ValueError):
            logger.debug(f"Could not base64-decode {path}")
            return None

        if b"\x00" in raw:
            return None
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            return None

    async def list_directory(self, repo_ref: RepoRef, path: str) -> list[FileEntry]:
        """List a directory of the repository.

        Returns:
            The directory entries, or an empty list if it cannot be listed.
        """
        data = await self._fetch_optional(f"/repos/{repo_ref.owner}/{repo_ref.repo}/contents/{quote(path)}")
        if not isinstance(data, list):
            return []
        return [FileEntry.from_api(item) for item in data if isinstance(item, dict)]

    async def fetch_branch(self, repo_ref: RepoRef, branch: str) -> dict | None:
        """Fetch a branch record, including its ``protected`` flag.

        Returns:
            The raw branch payload, or None if the branch does not exist or
            the request failed.
        """
        data = await self._fetch_optional(
            f"/repos/{repo_ref.owner}/{repo_ref.repo}/branches/{quote(branch)}"
        )
        return data if isinstance(data, dict) else None
