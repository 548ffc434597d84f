"""Supply chain analyzers for dependency manifests.

Detects:
- Typosquatting (names one edit away from a popular package)
- Suspicious naming patterns
- Deprecated packages and direct GitHub dependencies
- License conflicts between the project and GPL-named dependencies
- Oversized or badly split dependency sets
"""

from __future__ import annotations

import re

from reposcan.analyzers.base import BaseAnalyzer, ContentFetcher
from reposcan.analyzers.manifests import PackageJson, parse_package_json, parse_requirements
from reposcan.analyzers.tables import (
    DEPRECATED_NPM_PACKAGES,
    DEPRECATED_PYPI_PACKAGES,
    PERMISSIVE_LICENSES,
    POPULAR_NPM_PACKAGES,
    POPULAR_PYPI_PACKAGES,
    SUSPICIOUS_NAME_PATTERNS,
)
from reposcan.models.schemas import (
    RepositorySnapshot,
    Severity,
    Vulnerability,
    VulnerabilityType,
)

TYPOSQUAT_MAX_DISTANCE = 1

MAX_TOTAL_DEPENDENCIES = 100
MAX_RUNTIME_DEPENDENCIES_WITHOUT_DEV = 50


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance between two strings (insert, delete, substitute)."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def _dependency(severity: Severity, description: str, location: str, details: str) -> Vulnerability:
    return Vulnerability(
        severity=severity,
        type=VulnerabilityType.DEPENDENCY,
        description=description,
        location=location,
        details=details,
    )


class SupplyChainScanner(BaseAnalyzer):
    """Analyzes package.json and requirements.txt for supply chain risks."""

    name = "supply_chain"

    def __init__(
        self,
        fetcher: ContentFetcher,
        popular_npm: frozenset[str] = POPULAR_NPM_PACKAGES,
        popular_pypi: frozenset[str] = POPULAR_PYPI_PACKAGES,
        deprecated_npm: frozenset[str] = DEPRECATED_NPM_PACKAGES,
        deprecated_pypi: frozenset[str] = DEPRECATED_PYPI_PACKAGES,
    ) -> None:
        super().__init__(fetcher)
        self.popular_npm = popular_npm
        self.popular_pypi = popular_pypi
        self.deprecated_npm = deprecated_npm
        self.deprecated_pypi = deprecated_pypi

    async def analyze(self, snapshot: RepositorySnapshot) -> list[Vulnerability]:
        manifests = [
            e for e in snapshot.file_listing
            if e.type == "file" and e.name in ("package.json", "requirements.txt")
        ]
        return await self.scan_files(snapshot, manifests, self._scan_manifest)

    def _scan_manifest(self, content: str, path: str) -> list[Vulnerability]:
        if path.endswith("package.json"):
            return self.analyze_package_json(parse_package_json(content), path)
        return self.analyze_requirements(content, path)

    def find_typosquat_target(self, name: str, popular: frozenset[str]) -> str | None:
        """Return the popular package ``name`` imitates, if any.

        A name that is itself popular never matches.
        """
        name = name.lower()
        if name in popular:
            return None
        for target in sorted(popular):
            if abs(len(target) - len(name)) > TYPOSQUAT_MAX_DISTANCE:
                continue
            if levenshtein_distance(name, target) <= TYPOSQUAT_MAX_DISTANCE:
                return target
        return None

    def analyze_package_json(self, manifest: PackageJson, path: str) -> list[Vulnerability]:
        """Run every npm check against a parsed package.json."""
        findings: list[Vulnerability] = []
        all_deps = manifest.all_dependencies

        for dep_name, version in all_deps.items():
            target = self.find_typosquat_target(dep_name, self.popular_npm)
            if target:
                findings.append(_dependency(
                    Severity.CRITICAL,
                    f"Potential typosquatting: {dep_name} looks similar to {target}",
                    path,
                    "This package name is suspiciously similar to a popular package",
                ))

            if any(re.match(p, dep_name) for p in SUSPICIOUS_NAME_PATTERNS):
                findings.append(_dependency(
                    Severity.MEDIUM,
                    f"Suspicious package naming pattern: {dep_name}",
                    path,
                    "Package name follows common typosquatting patterns",
                ))

            if dep_name in self.deprecated_npm:
                findings.append(_dependency(
                    Severity.HIGH,
                    f"Deprecated npm package: {dep_name}",
                    path,
                    "This package is no longer maintained. Find an alternative",
                ))

            if version.startswith("github:"):
                findings.append(_dependency(
                    Severity.MEDIUM,
                    f"GitHub dependency: {dep_name}",
                    path,
                    "Direct GitHub dependencies can pose security and stability risks",
                ))

        findings.extend(self._license_conflicts(manifest, path))
        findings.extend(self._dependency_shape(manifest, path))
        return findings

    def analyze_requirements(self, content: str, path: str) -> list[Vulnerability]:
        """Run the PyPI checks against requirements.txt content."""
        findings = []
        for requirement in parse_requirements(content):
            location = f"{path}:{requirement.line}"

            target = self.find_typosquat_target(requirement.name, self.popular_pypi)
            if target:
                findings.append(_dependency(
                    Severity.CRITICAL,
                    f"Potential typosquatting: {requirement.name} looks similar to {target}",
                    location,
                    "This package name is suspiciously similar to a popular package",
                ))

            if requirement.name in self.deprecated_pypi:
                findings.append(_dependency(
                    Severity.HIGH,
                    f"Deprecated Python package: {requirement.name}",
                    location,
                    "This package is no longer maintained. Find an alternative",
                ))
        return findings

    def _license_conflicts(self, manifest: PackageJson, path: str) -> list[Vulnerability]:
        project_license = manifest.license
        if not project_license:
            return []
        if not any(lic in project_license for lic in PERMISSIVE_LICENSES):
            return []

        problematic = [name for name in manifest.all_dependencies if "gpl" in name.lower()]
        if not problematic:
            return []
        return [_dependency(
            Severity.MEDIUM,
            "Potential license conflict detected",
            path,
            f"Project uses {project_license} but may have GPL dependencies. "
            f"Review: {', '.join(problematic)}",
        )]

    def _dependency_shape(self, manifest: PackageJson, path: str) -> list[Vulnerability]:
        findings = []
        dep_count = len(manifest.dependencies)
        dev_count = len(manifest.dev_dependencies)
        total = dep_count + dev_count

        if total > MAX_TOTAL_DEPENDENCIES:
            findings.append(_dependency(
                Severity.LOW,
                f"High dependency count: {total} packages",
                path,
                "Large dependency trees increase attack surface. Consider reducing dependencies",
            ))

        if dep_count > MAX_RUNTIME_DEPENDENCIES_WITHOUT_DEV and dev_count == 0:
            findings.append(_dependency(
                Severity.LOW,
                "No devDependencies separation",
                path,
                "Consider moving build/test dependencies to devDependencies",
            ))

        missing_peers = [
            peer for peer in manifest.peer_dependencies
            if peer not in manifest.dependencies and peer not in manifest.dev_dependencies
        ]
        if missing_peers:
            findings.append(_dependency(
                Severity.MEDIUM,
                "Missing peer dependencies",
                path,
                f"Peer dependencies not installed: {', '.join(missing_peers)}",
            ))

        return findings
