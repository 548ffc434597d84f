"""Analyzers for fetching, scanning and scoring repositories."""

from reposcan.analyzers.github import GitHubFetcher, parse_repo_url
from reposcan.analyzers.pipeline import ScanJob, ScanPipeline
from reposcan.analyzers.scorer import Scorer

__all__ = ["GitHubFetcher", "parse_repo_url", "ScanJob", "ScanPipeline", "Scorer"]
