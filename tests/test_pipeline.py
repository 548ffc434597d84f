"""
Tests for the scan pipeline, the scan job state machine and the scan store.
"""

import pytest

from conftest import NOW, FakeFetcher, make_snapshot
from reposcan.analyzers.configuration import ConfigurationScanner
from reposcan.analyzers.pipeline import ScanJob, ScanPipeline
from reposcan.config import Settings
from reposcan.errors import (
    INTERNAL_ERROR,
    INVALID_INPUT,
    NOT_FOUND,
    RepositoryNotFoundError,
    ScanFailedError,
    StorageError,
)
from reposcan.models.schemas import ScanStatus
from reposcan.store import ScanStore

URL = "https://github.com/acme/widget"


class FailingStore(ScanStore):
    def save(self, record):
        raise StorageError("disk full")


def _pipeline(tmp_path, fetcher, store=None) -> ScanPipeline:
    settings = Settings(data_dir=tmp_path)
    return ScanPipeline(settings=settings, fetcher=fetcher, store=store)


# --- ScanJob ---


def test_job_lifecycle():
    job = ScanJob(URL, "acme/widget")
    assert job.status == ScanStatus.PENDING

    job.start()
    job.fail(NOT_FOUND)

    record = job.to_record()
    assert record.status == ScanStatus.FAILED
    assert record.error_category == NOT_FOUND
    assert record.result is None
    assert record.completed_at is not None


def test_job_cannot_skip_processing():
    job = ScanJob(URL, "acme/widget")
    with pytest.raises(ValueError):
        job.fail(INTERNAL_ERROR)


def test_failed_job_is_terminal():
    job = ScanJob(URL, "acme/widget")
    job.start()
    job.fail(INTERNAL_ERROR)
    with pytest.raises(ValueError):
        job.start()


# --- ScanPipeline ---


@pytest.mark.asyncio
async def test_successful_scan_is_saved(tmp_path, healthy_snapshot):
    fetcher = FakeFetcher(snapshot=healthy_snapshot, branches={"main": {"protected": False}})

    async with _pipeline(tmp_path, fetcher) as pipeline:
        record = await pipeline.scan(URL, now=NOW)

    assert record.status == ScanStatus.COMPLETED
    assert record.repo_name == "acme/widget"
    assert record.result is not None
    assert record.result.overall_score == 98
    assert "Branch 'main' is not protected" in [
        v.description for v in record.result.vulnerabilities
    ]

    stored = ScanStore(tmp_path).load(record.scan_id)
    assert stored == record


@pytest.mark.asyncio
async def test_scan_without_save(tmp_path, healthy_snapshot):
    async with _pipeline(tmp_path, FakeFetcher(snapshot=healthy_snapshot)) as pipeline:
        record = await pipeline.scan(URL, save=False, now=NOW)

    assert record.status == ScanStatus.COMPLETED
    assert ScanStore(tmp_path).list_scans() == []


@pytest.mark.asyncio
async def test_empty_repository_scan(tmp_path, empty_snapshot):
    async with _pipeline(tmp_path, FakeFetcher(snapshot=empty_snapshot)) as pipeline:
        record = await pipeline.scan(URL, now=NOW)

    metrics = record.result.code_quality_metrics
    assert metrics.total_files_analyzed == 0
    assert record.result.risk_factors
    assert "Code quality: No code files found to analyze" in record.result.notes


@pytest.mark.asyncio
async def test_invalid_url_fails_before_fetching(tmp_path):
    fetcher = FakeFetcher(snapshot_error=AssertionError("must not fetch"))

    async with _pipeline(tmp_path, fetcher) as pipeline:
        with pytest.raises(ScanFailedError) as exc_info:
            await pipeline.scan("https://example.com/acme/widget")

    assert exc_info.value.category == INVALID_INPUT
    assert ScanStore(tmp_path).list_scans() == []


@pytest.mark.asyncio
async def test_missing_repository_fails_with_not_found(tmp_path):
    fetcher = FakeFetcher(snapshot_error=RepositoryNotFoundError("acme/widget"))

    async with _pipeline(tmp_path, fetcher) as pipeline:
        with pytest.raises(ScanFailedError) as exc_info:
            await pipeline.scan(URL)

    assert exc_info.value.category == NOT_FOUND
    [stored] = ScanStore(tmp_path).list_scans()
    assert stored.status == ScanStatus.FAILED
    assert stored.error_category == NOT_FOUND
    assert stored.result is None


@pytest.mark.asyncio
async def test_unexpected_error_is_internal(tmp_path):
    fetcher = FakeFetcher(snapshot_error=KeyError("surprise"))

    async with _pipeline(tmp_path, fetcher) as pipeline:
        with pytest.raises(ScanFailedError) as exc_info:
            await pipeline.scan(URL)

    assert exc_info.value.category == INTERNAL_ERROR
    assert "surprise" not in str(exc_info.value)


@pytest.mark.asyncio
async def test_storage_failure_discards_result(tmp_path, healthy_snapshot):
    fetcher = FakeFetcher(snapshot=healthy_snapshot)

    async with _pipeline(tmp_path, fetcher, store=FailingStore(tmp_path)) as pipeline:
        with pytest.raises(ScanFailedError) as exc_info:
            await pipeline.scan(URL, now=NOW)

    assert exc_info.value.category == INTERNAL_ERROR


@pytest.mark.asyncio
async def test_failing_analyzer_does_not_abort_scan(tmp_path, monkeypatch):
    async def boom(self, snapshot):
        raise RuntimeError("analyzer crashed")

    monkeypatch.setattr(ConfigurationScanner, "analyze", boom)
    snapshot = make_snapshot(listing=(".env", "app.py"))
    fetcher = FakeFetcher(snapshot=snapshot, files={"app.py": "eval(x)\n"})

    async with _pipeline(tmp_path, fetcher) as pipeline:
        record = await pipeline.scan(URL, now=NOW)

    descriptions = [v.description for v in record.result.vulnerabilities]
    assert "Use of eval() function" in descriptions
    assert "Environment file (.env) committed to repository" not in descriptions
    summary = record.result.vulnerability_summary
    assert summary.total_count == len(record.result.vulnerabilities)


@pytest.mark.asyncio
async def test_env_file_scan_end_to_end(tmp_path):
    snapshot = make_snapshot(listing=(".env", "README.md"))
    fetcher = FakeFetcher(snapshot=snapshot, files={".env": "DB_PASSWORD=x\n"})

    async with _pipeline(tmp_path, fetcher) as pipeline:
        record = await pipeline.scan(URL, now=NOW)

    result = record.result
    env = [v for v in result.vulnerabilities if v.location == ".env" and v.severity == "critical"]
    assert env
    assert "WARNING: .env file committed (may expose secrets)" in result.risk_factors
    assert result.vulnerability_summary.critical_count >= 2


# --- ScanStore ---


def test_store_missing_scan(tmp_path):
    assert ScanStore(tmp_path).load("0123abcd") is None


def test_store_corrupt_file(tmp_path):
    store = ScanStore(tmp_path)
    store.scans_dir.mkdir(parents=True)
    (store.scans_dir / "badc0ffee.json").write_text("{not json")

    with pytest.raises(StorageError):
        store.load("badc0ffee")
    assert store.list_scans() == []


def test_store_lists_newest_first(tmp_path):
    store = ScanStore(tmp_path)
    older = ScanJob(URL, "acme/widget")
    newer = ScanJob("https://github.com/acme/gadget", "acme/gadget")
    newer.created_at = older.created_at.replace(year=older.created_at.year + 1)
    store.save(older.to_record())
    store.save(newer.to_record())

    assert [r.repo_name for r in store.list_scans()] == ["acme/gadget", "acme/widget"]
    assert [r.repo_name for r in store.list_scans(limit=1)] == ["acme/gadget"]


@pytest.mark.parametrize("scan_id", ["../x", "../../etc/passwd", "ABC", "abc\n", ""])
def test_store_rejects_non_hex_ids(tmp_path, scan_id):
    with pytest.raises(StorageError, match="Invalid scan id"):
        ScanStore(tmp_path).load(scan_id)


@pytest.mark.asyncio
async def test_pipeline_can_be_reentered(tmp_path):
    pipeline = ScanPipeline(settings=Settings(data_dir=tmp_path))

    async with pipeline:
        first_client = pipeline._http_client
        assert first_client.follow_redirects is True
    assert first_client.is_closed
    assert pipeline.fetcher is None

    async with pipeline:
        assert not pipeline._http_client.is_closed
        assert pipeline.fetcher._client is pipeline._http_client


@pytest.mark.asyncio
async def test_injected_fetcher_survives_two_contexts(tmp_path, healthy_snapshot):
    fetcher = FakeFetcher(snapshot=healthy_snapshot)
    pipeline = _pipeline(tmp_path, fetcher)

    async with pipeline:
        first = await pipeline.scan(URL, now=NOW)
    async with pipeline:
        second = await pipeline.scan(URL, now=NOW)

    assert pipeline.fetcher is fetcher
    assert first.scan_id != second.scan_id
    assert len(ScanStore(tmp_path).list_scans()) == 2
