"""Scanner for committed secrets and insecure build, CI and server configs."""

import re

from reposcan.analyzers.base import BaseAnalyzer, first_match, line_number
from reposcan.models.schemas import (
    FileEntry,
    RepositorySnapshot,
    Severity,
    Vulnerability,
    VulnerabilityType,
)

# (pattern, name) checked against a committed .env file
ENV_SECRET_PATTERNS = (
    (r"password|passwd|pwd", "password"),
    (r"api[_-]?key|apikey", "API key"),
    (r"secret", "secret"),
    (r"token", "token"),
    (r"aws[_-]?access", "AWS credential"),
)

CONFIG_FILE_PATTERN = re.compile(r"config\.(js|ts|json|yml|yaml)$")

CONFIG_SECRET_PATTERNS = (
    r"['\"]?(?:api[_-]?key|apikey)['\"]?\s*[:=]\s*['\"]\w{20,}['\"]",
    r"['\"]?password['\"]?\s*[:=]\s*['\"]\w+['\"]",
    r"['\"]?secret['\"]?\s*[:=]\s*['\"]\w{20,}['\"]",
)

DOCKER_SECRET_PATTERNS = (
    r"^\s*ARG\s+[^\n]*(?:password|secret|token|key)",
    r"^\s*ENV\s+[^\n]*(?:password|secret|token|key)\s*=\s*\w+",
)

MAX_ENTRY_FILES = 5


def _config(severity: Severity, description: str, location: str, details: str) -> Vulnerability:
    return Vulnerability(
        severity=severity,
        type=VulnerabilityType.CONFIGURATION,
        description=description,
        location=location,
        details=details,
    )


def _at(path: str, content: str, match: re.Match) -> str:
    return f"{path}:{line_number(content, match.start())}"


class ConfigurationScanner(BaseAnalyzer):
    """Flags committed secrets and risky Docker, CI and web server settings."""

    name = "configuration"

    async def analyze(self, snapshot: RepositorySnapshot) -> list[Vulnerability]:
        findings: list[Vulnerability] = []
        candidates = snapshot.scan_candidates

        env_files = [
            e for e in self._unique(snapshot.file_listing, candidates)
            if e.type == "file" and e.name == ".env"
        ]
        for env_file in env_files:
            findings.append(_config(
                Severity.CRITICAL,
                "Environment file (.env) committed to repository",
                env_file.path,
                "This file may contain sensitive credentials. Remove it and use .env.example instead",
            ))
        findings.extend(await self.scan_files(snapshot, env_files, self.scan_env_file))

        config_files = [
            e for e in candidates
            if e.type == "file" and CONFIG_FILE_PATTERN.search(e.name) and "test" not in e.name
        ][: self.max_files]
        findings.extend(await self.scan_files(snapshot, config_files, self.scan_config_file))

        dockerfiles = [
            e for e in candidates if e.type == "file" and "dockerfile" in e.name.lower()
        ][: self.max_files]
        findings.extend(await self.scan_files(snapshot, dockerfiles, self.scan_dockerfile))

        workflows = await self.workflow_files(snapshot)
        findings.extend(await self.scan_files(snapshot, workflows, self.scan_workflow))

        gitlab = [e for e in snapshot.file_listing if e.name == ".gitlab-ci.yml"]
        findings.extend(await self.scan_files(snapshot, gitlab, self.scan_gitlab_ci))

        nginx = [
            e for e in candidates
            if e.type == "file" and "nginx" in e.name and e.name.endswith(".conf")
        ][: self.max_files]
        findings.extend(await self.scan_files(snapshot, nginx, self.scan_nginx_config))

        entry_files = [
            e for e in candidates
            if e.type == "file"
            and ("server" in e.name or "app" in e.name)
            and e.name.endswith((".js", ".ts"))
        ][:MAX_ENTRY_FILES]
        findings.extend(await self.scan_files(snapshot, entry_files, self.scan_web_entry))

        return findings

    @staticmethod
    def _unique(*listings: tuple[FileEntry, ...]) -> list[FileEntry]:
        seen: dict[str, FileEntry] = {}
        for listing in listings:
            for entry in listing:
                seen.setdefault(entry.path, entry)
        return list(seen.values())

    def scan_env_file(self, content: str, path: str) -> list[Vulnerability]:
        findings = []
        for pattern, name in ENV_SECRET_PATTERNS:
            if re.search(pattern, content, re.IGNORECASE):
                findings.append(_config(
                    Severity.CRITICAL,
                    f"Potential {name} exposed in .env file",
                    path,
                    f"Found {name} reference in committed .env file",
                ))
        return findings

    def scan_config_file(self, content: str, path: str) -> list[Vulnerability]:
        match = first_match(content, CONFIG_SECRET_PATTERNS)
        if not match:
            return []
        return [_config(
            Severity.HIGH,
            "Hardcoded credential in configuration file",
            _at(path, content, match),
            "Configuration contains hardcoded secrets. Use environment variables",
        )]

    def scan_dockerfile(self, content: str, path: str) -> list[Vulnerability]:
        findings = []

        match = re.search(r"^\s*FROM\s+\S+:latest\b", content, re.IGNORECASE | re.MULTILINE)
        if match:
            findings.append(_config(
                Severity.MEDIUM, "Docker image using :latest tag", _at(path, content, match),
                "Pin specific image versions for reproducible builds",
            ))

        users = list(re.finditer(r"^\s*USER\s+(\S+)", content, re.IGNORECASE | re.MULTILINE))
        if not users:
            findings.append(_config(
                Severity.MEDIUM, "Dockerfile runs as root user", path,
                "No USER instruction, so the container runs as root. Create and use a non-root user",
            ))
        elif users[-1].group(1).split(":")[0] in ("root", "0"):
            findings.append(_config(
                Severity.MEDIUM, "Dockerfile runs as root user", _at(path, content, users[-1]),
                "Create and use a non-root user for better security",
            ))

        match = re.search(r"^\s*ADD\s+https?://", content, re.IGNORECASE | re.MULTILINE)
        if match:
            findings.append(_config(
                Severity.LOW, "Dockerfile uses ADD with URLs", _at(path, content, match),
                "Use COPY or RUN with curl/wget for better control",
            ))

        match = first_match(content, DOCKER_SECRET_PATTERNS, re.IGNORECASE | re.MULTILINE)
        if match:
            findings.append(_config(
                Severity.HIGH, "Potential secrets in Dockerfile", _at(path, content, match),
                "Avoid hardcoding secrets in Dockerfile. Use build secrets or runtime environment",
            ))

        return findings

    def scan_workflow(self, content: str, path: str) -> list[Vulnerability]:
        findings = []

        match = re.search(r"\$\{\{\s*github\.event\.", content, re.IGNORECASE)
        if match:
            findings.append(_config(
                Severity.HIGH, "Potential script injection in GitHub Actions",
                _at(path, content, match),
                "Using github.event context in run commands can allow code injection",
            ))

        if re.search(r"pull_request_target", content, re.IGNORECASE):
            match = re.search(r"actions/checkout", content, re.IGNORECASE)
            if match:
                findings.append(_config(
                    Severity.HIGH, "Unsafe pull_request_target with checkout",
                    _at(path, content, match),
                    "pull_request_target with checkout can execute untrusted code",
                ))

        match = re.search(r"echo[^\n]*GITHUB_TOKEN|GITHUB_TOKEN[^\n]*echo", content, re.IGNORECASE)
        if match:
            findings.append(_config(
                Severity.CRITICAL, "GITHUB_TOKEN potentially exposed in logs",
                _at(path, content, match),
                "Never echo or log GITHUB_TOKEN",
            ))

        if not re.search(r"^\s*permissions\s*:", content, re.IGNORECASE | re.MULTILINE):
            findings.append(_config(
                Severity.LOW, "No explicit permissions in GitHub Actions workflow", path,
                "Define explicit permissions to follow principle of least privilege",
            ))

        return findings

    def scan_gitlab_ci(self, content: str, path: str) -> list[Vulnerability]:
        match = re.search(r"script:[^\n]*\$\{?[A-Z_]+|script:\s*\n(?:\s+-[^\n]*\n)*?\s+-[^\n]*\$\{?[A-Z_]+", content)
        if not match:
            return []
        return [_config(
            Severity.MEDIUM, "Environment variables used directly in GitLab CI scripts",
            _at(path, content, match),
            "Validate and sanitize environment variables before use",
        )]

    def scan_nginx_config(self, content: str, path: str) -> list[Vulnerability]:
        findings = []
        if not re.search(r"add_header\s+X-Frame-Options", content, re.IGNORECASE):
            findings.append(_config(
                Severity.MEDIUM, "Missing X-Frame-Options header in nginx config", path,
                "Add X-Frame-Options header to prevent clickjacking",
            ))

        match = re.search(r"server_tokens\s+on", content, re.IGNORECASE)
        if match:
            findings.append(_config(
                Severity.LOW, "Nginx server tokens enabled", _at(path, content, match),
                "Set server_tokens off to hide version information",
            ))
        return findings

    def scan_web_entry(self, content: str, path: str) -> list[Vulnerability]:
        findings = []

        match = re.search(r"cors\s*\(\s*\{[^}]*origin\s*:\s*['\"]?\*['\"]?", content, re.IGNORECASE)
        if match:
            findings.append(_config(
                Severity.MEDIUM, "Overly permissive CORS configuration", _at(path, content, match),
                "CORS allows all origins (*). Restrict to specific domains",
            ))

        match = re.search(r"\bexpress\s*\(\s*\)", content)
        if match and not re.search(r"helmet\s*\(", content, re.IGNORECASE):
            findings.append(_config(
                Severity.LOW, "Express app without helmet security headers",
                _at(path, content, match),
                "Consider using helmet middleware for security headers",
            ))

        return findings
