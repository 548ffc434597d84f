"""Dependency manifest and known-bad package scanner."""

from collections.abc import Mapping

from reposcan.analyzers.base import BaseAnalyzer, ContentFetcher
from reposcan.analyzers.manifests import parse_package_json, parse_requirements
from reposcan.analyzers.tables import (
    KNOWN_BAD_PACKAGES,
    LOCK_FILES,
    MANIFEST_FILES,
    MANIFEST_LOCK_FILES,
    KnownBadPackage,
)
from reposcan.models.schemas import (
    RepositorySnapshot,
    Severity,
    Vulnerability,
    VulnerabilityType,
)

# Version specs that float to whatever was published last
FLOATING_VERSIONS = {"*", "latest", "x", ""}


class DependencyScanner(BaseAnalyzer):
    """Checks manifests and lock files and flags known-bad packages."""

    name = "dependencies"

    def __init__(
        self,
        fetcher: ContentFetcher,
        known_bad: Mapping[str, Mapping[str, KnownBadPackage]] = KNOWN_BAD_PACKAGES,
        manifest_files: frozenset[str] = MANIFEST_FILES,
        lock_files: frozenset[str] = LOCK_FILES,
    ) -> None:
        super().__init__(fetcher)
        self.known_bad = known_bad
        self.manifest_files = manifest_files
        self.lock_files = lock_files

    async def analyze(self, snapshot: RepositorySnapshot) -> list[Vulnerability]:
        root_files = {e.name for e in snapshot.file_listing if e.type == "file"}
        findings: list[Vulnerability] = []

        manifests = sorted(root_files & self.manifest_files)
        for manifest in manifests:
            expected = MANIFEST_LOCK_FILES.get(manifest, self.lock_files)
            if expected and not (root_files & expected):
                findings.append(
                    Vulnerability(
                        severity=Severity.LOW,
                        type=VulnerabilityType.DEPENDENCY,
                        description=f"{manifest} has no lock file",
                        location=manifest,
                        details="Commit a lock file so installs resolve to the same versions",
                    )
                )

        scannable = [
            e for e in snapshot.file_listing
            if e.type == "file" and e.name in ("package.json", "requirements.txt")
        ]
        findings.extend(await self.scan_files(snapshot, scannable, self._scan_manifest))
        return findings

    def _scan_manifest(self, content: str, path: str) -> list[Vulnerability]:
        if path.endswith("package.json"):
            return self._scan_package_json(content, path)
        return self._scan_requirements(content, path)

    def _known_bad_finding(
        self, ecosystem: str, name: str, location: str
    ) -> Vulnerability | None:
        entry = self.known_bad.get(ecosystem, {}).get(name)
        if entry is None:
            return None
        return Vulnerability(
            severity=entry.severity,
            type=VulnerabilityType.DEPENDENCY,
            description=f"Known malicious or compromised package: {name}",
            location=location,
            cve_id=entry.cve_id,
            details=entry.reason,
        )

    def _scan_package_json(self, content: str, path: str) -> list[Vulnerability]:
        manifest = parse_package_json(content)
        findings = []

        for dep_name, version in manifest.all_dependencies.items():
            finding = self._known_bad_finding("npm", dep_name.lower(), path)
            if finding:
                findings.append(finding)

            if version.strip().lower() in FLOATING_VERSIONS:
                findings.append(
                    Vulnerability(
                        severity=Severity.LOW,
                        type=VulnerabilityType.DEPENDENCY,
                        description=f"Unpinned dependency version: {dep_name}@{version or '(empty)'}",
                        location=path,
                        details="Wildcard and latest versions install whatever was published last",
                    )
                )
        return findings

    def _scan_requirements(self, content: str, path: str) -> list[Vulnerability]:
        findings = []
        for requirement in parse_requirements(content):
            finding = self._known_bad_finding(
                "pypi", requirement.name, f"{path}:{requirement.line}"
            )
            if finding:
                findings.append(finding)
        return findings
