"""Shared plumbing for the repository analyzers."""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple, Protocol

from reposcan.analyzers.tables import CODE_EXTENSIONS, MAX_SCANNABLE_FILE_SIZE
from reposcan.models.schemas import (
    FileEntry,
    RepoRef,
    RepositorySnapshot,
    Severity,
    Vulnerability,
    VulnerabilityType,
)

logger = logging.getLogger(__name__)

WORKFLOW_DIR = ".github/workflows"


class ContentFetcher(Protocol):
    """What analyzers need from the fetcher."""

    async def fetch_file_content(self, repo_ref: RepoRef, path: str) -> str | None: ...

    async def list_directory(self, repo_ref: RepoRef, path: str) -> list[FileEntry]: ...

    async def fetch_branch(self, repo_ref: RepoRef, branch: str) -> dict | None: ...


class PatternRule(NamedTuple):
    """A regex rule that produces one finding per match."""

    pattern: str
    severity: Severity
    description: str
    details: str | None = None
    flags: int = re.IGNORECASE


def line_number(content: str, offset: int) -> int:
    """1-based line number of a character offset."""
    return content.count("\n", 0, offset) + 1


def match_rules(
    content: str,
    path: str,
    rules: Iterable[PatternRule],
    vuln_type: VulnerabilityType = VulnerabilityType.CODE_PATTERN,
) -> list[Vulnerability]:
    """Apply regex rules to content, emitting a finding for every match."""
    findings = []
    for rule in rules:
        for match in re.finditer(rule.pattern, content, rule.flags):
            findings.append(
                Vulnerability(
                    severity=rule.severity,
                    type=vuln_type,
                    description=rule.description,
                    location=f"{path}:{line_number(content, match.start())}",
                    details=rule.details,
                )
            )
    return findings


def first_match(content: str, patterns: Iterable[str], flags: int = re.IGNORECASE) -> re.Match | None:
    """Return the first match of any pattern, trying them in order."""
    for pattern in patterns:
        match = re.search(pattern, content, flags)
        if match:
            return match
    return None


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round halves away from zero (2.5 -> 3), unlike the built-in round()."""
    quantum = Decimal(1).scaleb(-ndigits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def has_extension(name: str, extensions: Iterable[str]) -> bool:
    return any(name.endswith(ext) for ext in extensions)


class FileSampler:
    """Picks and fetches the files an analyzer looks at.

    Content is fetched through the injected fetcher; a failure on one file
    is logged and skipped.
    """

    name: str = "analyzer"

    def __init__(self, fetcher: ContentFetcher, max_files: int = 20) -> None:
        """Initialize the analyzer.

        Args:
            fetcher: Source of file contents.
            max_files: Maximum number of code files to fetch per scan.
        """
        self.fetcher = fetcher
        self.max_files = max_files

    def code_files(
        self,
        snapshot: RepositorySnapshot,
        extensions: Iterable[str] = CODE_EXTENSIONS,
        limit: int | None = None,
    ) -> list[FileEntry]:
        """Pick the bounded sample of code files to fetch."""
        extensions = tuple(extensions)
        candidates = [
            entry
            for entry in snapshot.scan_candidates
            if entry.type == "file"
            and has_extension(entry.name, extensions)
            and entry.size < MAX_SCANNABLE_FILE_SIZE
        ]
        return candidates[: self.max_files if limit is None else limit]

    async def fetch_contents(
        self, snapshot: RepositorySnapshot, entries: Iterable[FileEntry]
    ) -> list[tuple[FileEntry, str]]:
        """Fetch file contents concurrently, dropping files that yield nothing."""
        entries = list(entries)
        results = await asyncio.gather(
            *(self.fetcher.fetch_file_content(snapshot.ref, entry.path) for entry in entries),
            return_exceptions=True,
        )

        fetched = []
        for entry, result in zip(entries, results):
            if isinstance(result, Exception):
                logger.warning(f"[{self.name}] Error fetching {entry.path}: {result}")
                continue
            if result:
                fetched.append((entry, result))
        return fetched

    async def scan_files(
        self,
        snapshot: RepositorySnapshot,
        entries: Iterable[FileEntry],
        scan: Callable[[str, str], list[Vulnerability]],
    ) -> list[Vulnerability]:
        """Fetch each file and run ``scan(content, path)`` on it.

        An exception from one file is logged and the remaining files are
        still scanned.
        """
        findings: list[Vulnerability] = []
        for entry, content in await self.fetch_contents(snapshot, entries):
            try:
                findings.extend(scan(content, entry.path))
            except Exception as e:
                logger.warning(f"[{self.name}] Error analyzing {entry.path}: {e}")
        return findings

    async def workflow_files(self, snapshot: RepositorySnapshot) -> list[FileEntry]:
        """GitHub Actions workflow files of the repository.

        Taken from the recursive tree when it is available. Otherwise the
        workflow directory is listed if the root listing shows ``.github``.
        """
        workflows = [
            entry
            for entry in snapshot.scan_candidates
            if entry.type == "file"
            and entry.path.startswith(f"{WORKFLOW_DIR}/")
            and entry.name.endswith((".yml", ".yaml"))
        ]
        if workflows or snapshot.file_tree:
            return workflows

        if any(e.name == ".github" and e.type == "dir" for e in snapshot.file_listing):
            listed = await self.fetcher.list_directory(snapshot.ref, WORKFLOW_DIR)
            return [
                entry
                for entry in listed
                if entry.type == "file" and entry.name.endswith((".yml", ".yaml"))
            ]
        return []


class BaseAnalyzer(FileSampler, ABC):
    """Base class for analyzers that turn a snapshot into findings."""

    @abstractmethod
    async def analyze(self, snapshot: RepositorySnapshot) -> list[Vulnerability]:
        """Scan the snapshot and return findings."""
        ...
