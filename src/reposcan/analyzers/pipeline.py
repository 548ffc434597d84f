"""End-to-end scan pipeline for repositories."""

import asyncio
import logging
import uuid
from datetime import datetime, timezone

import httpx

from reposcan.analyzers.advanced_patterns import AdvancedPatternDetector
from reposcan.analyzers.aggregator import aggregate, summarize
from reposcan.analyzers.base import BaseAnalyzer
from reposcan.analyzers.code_patterns import CodePatternDetector
from reposcan.analyzers.code_quality import CodeQualityAnalyzer
from reposcan.analyzers.configuration import ConfigurationScanner
from reposcan.analyzers.dependencies import DependencyScanner
from reposcan.analyzers.github import GitHubFetcher, parse_repo_url
from reposcan.analyzers.platform_security import PlatformSecurityScanner
from reposcan.analyzers.scorer import Scorer
from reposcan.analyzers.supply_chain import SupplyChainScanner
from reposcan.config import Settings
from reposcan.errors import INTERNAL_ERROR, ScanError, ScanFailedError
from reposcan.models.schemas import (
    CodeQualityMetrics,
    RepoRef,
    ScanRecord,
    ScanStatus,
    ScoringResult,
)
from reposcan.store import ScanStore

logger = logging.getLogger(__name__)

# Allowed status changes. Completed and failed are terminal.
TRANSITIONS = {
    ScanStatus.PENDING: {ScanStatus.PROCESSING},
    ScanStatus.PROCESSING: {ScanStatus.COMPLETED, ScanStatus.FAILED},
    ScanStatus.COMPLETED: set(),
    ScanStatus.FAILED: set(),
}

INTERNAL_ERROR_MESSAGE = "Scan failed due to an internal error"


class ScanJob:
    """One scan request moving through pending, processing and a terminal state.

    A failed job is never retried; a new request needs a new job.
    """

    def __init__(self, repo_url: str, repo_name: str, scan_id: str | None = None) -> None:
        self.scan_id = scan_id or uuid.uuid4().hex
        self.repo_url = repo_url
        self.repo_name = repo_name
        self.status = ScanStatus.PENDING
        self.created_at = datetime.now(timezone.utc)
        self.completed_at: datetime | None = None
        self.result: ScoringResult | None = None
        self.error_category: str | None = None

    def _transition(self, status: ScanStatus) -> None:
        if status not in TRANSITIONS[self.status]:
            raise ValueError(
                f"Scan {self.scan_id} cannot move from {self.status.value} to {status.value}"
            )
        logger.debug(f"Scan {self.scan_id}: {self.status.value} -> {status.value}")
        self.status = status

    def start(self) -> None:
        self._transition(ScanStatus.PROCESSING)

    def complete(self, result: ScoringResult, completed_at: datetime | None = None) -> None:
        self._transition(ScanStatus.COMPLETED)
        self.result = result
        self.completed_at = completed_at or datetime.now(timezone.utc)

    def fail(self, category: str) -> None:
        self._transition(ScanStatus.FAILED)
        self.result = None
        self.error_category = category
        self.completed_at = datetime.now(timezone.utc)

    def to_record(self) -> ScanRecord:
        return ScanRecord(
            scan_id=self.scan_id,
            repo_url=self.repo_url,
            repo_name=self.repo_name,
            status=self.status,
            created_at=self.created_at,
            completed_at=self.completed_at,
            result=self.result,
            error_category=self.error_category,
        )


class ScanPipeline:
    """Orchestrates a repository scan.

    Pipeline stages:
    1. Validate the repository URL
    2. Fetch the repository snapshot
    3. Run every analyzer concurrently over the snapshot
    4. Aggregate findings and calculate scores
    5. Save the scan record
    """

    def __init__(
        self,
        settings: Settings | None = None,
        store: ScanStore | None = None,
        fetcher: GitHubFetcher | None = None,
        scorer: Scorer | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Runtime settings. Defaults to Settings().
            store: Where scan records are written. Defaults to a ScanStore in settings.data_dir.
            fetcher: GitHub fetcher. Built from settings when entering the context if omitted.
            scorer: Score calculator. Built from settings.scoring_config() if omitted.
        """
        self.settings = settings or Settings()
        self.store = store or ScanStore(self.settings.data_dir)
        self.scorer = scorer or Scorer(self.settings.scoring_config())
        self.fetcher = fetcher
        self._owns_fetcher = fetcher is None
        self._http_client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "ScanPipeline":
        """Set up shared HTTP client."""
        if self._owns_fetcher:
            self._http_client = httpx.AsyncClient(
                timeout=self.settings.http_timeout, follow_redirects=True
            )
            self.fetcher = GitHubFetcher(
                token=self.settings.github_token,
                client=self._http_client,
                http_timeout=self.settings.http_timeout,
                fetch_timeout=self.settings.fetch_timeout,
                max_content_bytes=self.settings.max_content_bytes,
            )
        return self

    async def __aexit__(self, *args) -> None:
        """Clean up HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        if self._owns_fetcher:
            self.fetcher = None

    def _analyzers(self, fetcher: GitHubFetcher) -> list[BaseAnalyzer]:
        max_files = self.settings.max_files
        return [
            DependencyScanner(fetcher),
            CodePatternDetector(fetcher, max_files=max_files),
            AdvancedPatternDetector(fetcher, max_files=max_files),
            ConfigurationScanner(fetcher, max_files=max_files),
            SupplyChainScanner(fetcher),
            PlatformSecurityScanner(fetcher, max_files=max_files),
        ]

    async def analyze(self, repo_ref: RepoRef, now: datetime | None = None) -> ScoringResult:
        """Fetch, analyze and score one repository.

        An analyzer that raises contributes nothing; the scan goes on.

        Raises:
            RepositoryNotFoundError: If the repository does not exist.
            UpstreamError: If the repository metadata cannot be fetched.
        """
        if self.fetcher is None:
            raise RuntimeError("ScanPipeline must be used as an async context manager")

        snapshot = await self.fetcher.fetch_snapshot(repo_ref)
        logger.info(
            f"Fetched {snapshot.full_name}: {len(snapshot.file_listing)} root entries, "
            f"{len(snapshot.file_tree)} tree entries, "
            f"{snapshot.sources.succeeded}/{snapshot.sources.attempted} sources"
        )

        analyzers = self._analyzers(self.fetcher)
        quality = CodeQualityAnalyzer(self.fetcher, max_files=self.settings.max_quality_files)
        results = await asyncio.gather(
            *(analyzer.analyze(snapshot) for analyzer in analyzers),
            quality.analyze(snapshot),
            return_exceptions=True,
        )

        finding_lists = []
        for analyzer, result in zip(analyzers, results[:-1]):
            if isinstance(result, Exception):
                logger.warning(f"[{analyzer.name}] Analyzer failed: {result}")
                continue
            finding_lists.append(result)

        code_quality = results[-1]
        if isinstance(code_quality, Exception):
            logger.warning(f"[{quality.name}] Analyzer failed: {code_quality}")
            code_quality = CodeQualityMetrics()

        vulnerabilities = aggregate(finding_lists)
        summary = summarize(vulnerabilities)
        logger.info(f"{snapshot.full_name}: {summary.total_count} findings")

        return self.scorer.score(snapshot, vulnerabilities, summary, code_quality, now=now)

    async def scan(
        self,
        repo_url: str,
        save: bool = True,
        now: datetime | None = None,
    ) -> ScanRecord:
        """Run a full scan of a repository URL.

        Args:
            repo_url: URL of the form https://github.com/<owner>/<repo>.
            save: Whether to persist the scan record.
            now: Reference time for scoring. Defaults to the job creation time.

        Returns:
            The completed ScanRecord.

        Raises:
            ScanFailedError: With category invalid-input, not-found or
                internal-error. No partial result is ever returned.
        """
        try:
            repo_ref = parse_repo_url(repo_url)
        except ScanError as e:
            raise ScanFailedError(e.category, str(e)) from e

        job = ScanJob(repo_url, repo_ref.full_name)
        job.start()

        try:
            result = await self.analyze(repo_ref, now=now or job.created_at)
            completed_at = datetime.now(timezone.utc)
            record = job.to_record().model_copy(
                update={
                    "status": ScanStatus.COMPLETED,
                    "completed_at": completed_at,
                    "result": result,
                }
            )
            if save:
                self.store.save(record)
            job.complete(result, completed_at)
            return record
        except ScanError as e:
            logger.error(f"Scan {job.scan_id} of {repo_ref.full_name} failed: {e}")
            category = e.category
            message = str(e) if category != INTERNAL_ERROR else INTERNAL_ERROR_MESSAGE
            cause: Exception = e
        except Exception as e:
            logger.exception(f"Scan {job.scan_id} of {repo_ref.full_name} failed unexpectedly")
            category = INTERNAL_ERROR
            message = INTERNAL_ERROR_MESSAGE
            cause = e

        job.fail(category)
        if save:
            self._save_failure(job)
        raise ScanFailedError(category, message) from cause

    def _save_failure(self, job: ScanJob) -> None:
        try:
            self.store.save(job.to_record())
        except ScanError as e:
            logger.error(f"Could not record failure of scan {job.scan_id}: {e}")
