"""GitHub platform security checks."""

import logging
import re

from reposcan.analyzers.base import BaseAnalyzer, line_number
from reposcan.models.schemas import (
    RepositorySnapshot,
    Severity,
    Vulnerability,
    VulnerabilityType,
)

logger = logging.getLogger(__name__)

SETTINGS_LOCATION = "GitHub Settings"

# Repository features GitHub reports under security_and_analysis
SECURITY_FEATURES = (
    ("secret_scanning", "GitHub secret scanning not enabled",
     "Enable secret scanning to detect committed secrets"),
    ("dependabot_security_updates", "Dependabot security updates not enabled",
     "Enable Dependabot to automatically fix security vulnerabilities"),
)

# Event fields an outside contributor controls
UNTRUSTED_CONTEXTS = (
    "github.event.issue.title",
    "github.event.issue.body",
    "github.event.pull_request.title",
    "github.event.pull_request.body",
    "github.event.comment.body",
    "github.head_ref",
)

FALLBACK_BRANCHES = ("main", "master")


def _settings(severity: Severity, description: str, location: str, details: str) -> Vulnerability:
    return Vulnerability(
        severity=severity,
        type=VulnerabilityType.CONFIGURATION,
        description=description,
        location=location,
        details=details,
    )


class PlatformSecurityScanner(BaseAnalyzer):
    """Checks branch protection, workflows, security policy and feature flags."""

    name = "platform_security"

    async def analyze(self, snapshot: RepositorySnapshot) -> list[Vulnerability]:
        findings: list[Vulnerability] = []
        findings.extend(await self.check_branch_protection(snapshot))
        findings.extend(self.check_security_policy(snapshot))

        workflows = await self.workflow_files(snapshot)
        findings.extend(await self.scan_files(snapshot, workflows, self.scan_workflow))

        findings.extend(self.check_security_features(snapshot))
        return findings

    async def check_branch_protection(self, snapshot: RepositorySnapshot) -> list[Vulnerability]:
        """Inspect the default branch, falling back to main and then master.

        A branch that cannot be fetched produces no finding.
        """
        candidates = [snapshot.repo.default_branch]
        candidates += [b for b in FALLBACK_BRANCHES if b not in candidates]

        for branch_name in candidates:
            branch = await self.fetcher.fetch_branch(snapshot.ref, branch_name)
            if branch is None:
                continue

            if not branch.get("protected"):
                return [_settings(
                    Severity.MEDIUM,
                    f"Branch '{branch_name}' is not protected",
                    SETTINGS_LOCATION,
                    "Enable branch protection to prevent force pushes and require reviews",
                )]

            protection = branch.get("protection") or {}
            if not protection.get("required_pull_request_reviews"):
                return [_settings(
                    Severity.LOW,
                    "No required pull request reviews",
                    SETTINGS_LOCATION,
                    f"Require code reviews before merging to {branch_name}",
                )]
            return []

        logger.debug(f"No branch information available for {snapshot.full_name}")
        return []

    def check_security_policy(self, snapshot: RepositorySnapshot) -> list[Vulnerability]:
        """Flag a missing SECURITY.md (root or .github/)."""
        paths = {e.path.lower() for e in snapshot.scan_candidates}
        paths |= {e.name.lower() for e in snapshot.file_listing}
        if {"security.md", ".github/security.md", "docs/security.md"} & paths:
            return []
        return [_settings(
            Severity.LOW,
            "No security policy (SECURITY.md)",
            "SECURITY.md",
            "Add a SECURITY.md describing how to report vulnerabilities",
        )]

    def check_security_features(self, snapshot: RepositorySnapshot) -> list[Vulnerability]:
        """Flag security features whose status is anything but "enabled".

        GitHub only reports the block to callers with admin access. When it
        is absent nothing can be concluded, so nothing is flagged.
        """
        features = snapshot.repo.security_and_analysis
        if features is None:
            return []

        findings = []
        for feature, description, details in SECURITY_FEATURES:
            if features.get(feature) != "enabled":
                findings.append(_settings(Severity.MEDIUM, description, SETTINGS_LOCATION, details))
        return findings

    def scan_workflow(self, content: str, path: str) -> list[Vulnerability]:
        """Check one workflow for outdated pins, leaked secrets and injection."""
        findings = []

        def at(match: re.Match) -> str:
            return f"{path}:{line_number(content, match.start())}"

        match = re.search(r"actions/checkout@v[12](?!\d)", content)
        if match:
            findings.append(_settings(
                Severity.MEDIUM, "Outdated actions/checkout version", at(match),
                "Update to actions/checkout@v3 or later for security improvements",
            ))

        match = re.search(r"uses:[^\n]*@master\b", content)
        if match:
            findings.append(_settings(
                Severity.MEDIUM, "GitHub Action pinned to @master branch", at(match),
                "Pin actions to specific commit SHA or version tag",
            ))

        match = re.search(
            r"secrets\.(?:GITHUB_TOKEN|\w*PASSWORD|\w*SECRET|\w*KEY)[^\n]*>>", content, re.IGNORECASE
        )
        if match:
            findings.append(_settings(
                Severity.CRITICAL, "Secret potentially written to file in workflow", at(match),
                "Never write secrets to files or logs",
            ))

        match = re.search(r"curl[^\n]*\|\s*(?:ba)?sh\b", content, re.IGNORECASE)
        if match:
            findings.append(_settings(
                Severity.HIGH, "Piping curl to bash in GitHub Actions", at(match),
                "Downloading and executing scripts is dangerous. Use verified actions instead",
            ))

        match = re.search(r"^on:\s*(?:push\s*$|\[[^\]]*\bpush\b)|^\s+push:\s*$", content, re.MULTILINE)
        if match and not re.search(r"branches\s*:", content, re.IGNORECASE):
            findings.append(_settings(
                Severity.LOW, "Workflow triggers on all pushes", at(match),
                "Consider limiting workflow triggers to specific branches",
            ))

        for ctx in UNTRUSTED_CONTEXTS:
            match = re.search(r"\$\{\{\s*" + re.escape(ctx), content, re.IGNORECASE)
            if match:
                findings.append(_settings(
                    Severity.CRITICAL, f"Script injection risk using {ctx}", at(match),
                    "User-controlled data in run commands can lead to code injection",
                ))

        return findings
