"""Merge analyzer findings and summarize them."""

from collections.abc import Iterable

from reposcan.models.schemas import (
    Severity,
    TypeCounts,
    Vulnerability,
    VulnerabilitySummary,
    VulnerabilityType,
)


def aggregate(finding_lists: Iterable[Iterable[Vulnerability]]) -> list[Vulnerability]:
    """Concatenate the outputs of every analyzer."""
    return [finding for findings in finding_lists for finding in findings]


def summarize(vulnerabilities: Iterable[Vulnerability]) -> VulnerabilitySummary:
    """Count findings per severity and per type."""
    severities = {s.value: 0 for s in Severity}
    types = {t.value: 0 for t in VulnerabilityType}

    for vuln in vulnerabilities:
        severities[Severity(vuln.severity).value] += 1
        types[VulnerabilityType(vuln.type).value] += 1

    return VulnerabilitySummary(
        total_count=sum(severities.values()),
        critical_count=severities[Severity.CRITICAL.value],
        high_count=severities[Severity.HIGH.value],
        medium_count=severities[Severity.MEDIUM.value],
        low_count=severities[Severity.LOW.value],
        by_type=TypeCounts(**types),
    )
