"""Detector for weak crypto, races, memory safety and injection sinks.

Complements the basic code pattern detector with checks that are either
language specific (C string functions, Rust unsafe counts, Go globals)
or look for a source-to-sink shape rather than a single call.
"""

import re

from reposcan.analyzers.base import (
    BaseAnalyzer,
    ContentFetcher,
    PatternRule,
    first_match,
    line_number,
    match_rules,
)
from reposcan.models.schemas import (
    RepositorySnapshot,
    Severity,
    Vulnerability,
    VulnerabilityType,
)

CRYPTO_DETAILS = "Use modern, secure cryptographic algorithms"

WEAK_CRYPTO_RULES = (
    PatternRule(r"crypto\.createCipher(?:iv)?\s*\(\s*['\"]des", Severity.HIGH,
                "Weak DES encryption algorithm", CRYPTO_DETAILS),
    PatternRule(r"crypto\.createHash\s*\(\s*['\"]md5['\"]", Severity.MEDIUM,
                "Weak MD5 hash algorithm", CRYPTO_DETAILS),
    PatternRule(r"hashlib\.md5\s*\(", Severity.MEDIUM,
                "Weak MD5 hash algorithm", CRYPTO_DETAILS),
    PatternRule(r"crypto\.createHash\s*\(\s*['\"]sha1['\"]", Severity.MEDIUM,
                "Weak SHA-1 hash algorithm", CRYPTO_DETAILS),
    PatternRule(r"Cipher\.getInstance\s*\(\s*['\"]DES", Severity.HIGH,
                "Weak DES encryption in Java", CRYPTO_DETAILS),
    PatternRule(r"new\s+Random\s*\(\s*\)", Severity.MEDIUM,
                "Insecure Random number generator", CRYPTO_DETAILS),
    PatternRule(r"Math\.random\s*\(\s*\)", Severity.MEDIUM,
                "Math.random() not cryptographically secure", CRYPTO_DETAILS, 0),
)

HARDCODED_KEY_PATTERNS = (
    r"(?:aes[_-]?key|encryption[_-]?key)\s*=\s*['\"]\w{16,}['\"]",
    r"(?:secret[_-]?key|private[_-]?key)\s*=\s*['\"]\w{32,}['\"]",
)

# (pattern, description)
TOCTOU_PATTERNS = (
    (r"if\s*\([^)]*\.exists?\([^)]*\)\s*\)\s*\{[^}]*(?:open|create|write)",
     "Time-of-check to time-of-use (TOCTOU) race condition"),
    (r"os\.path\.exists[^\n]*\n(?:[^\n]*\n){0,3}?[^\n]*\bopen\s*\(",
     "Potential TOCTOU in file operations"),
)

UNSAFE_C_FUNCTIONS = (
    ("strcpy", "Use strncpy or strlcpy instead"),
    ("strcat", "Use strncat or strlcat instead"),
    ("sprintf", "Use snprintf instead"),
    ("gets", "Use fgets instead"),
    ("scanf", "Validate input and use bounds checking"),
)

DESERIALIZATION_RULES = (
    PatternRule(r"\bpickle\.loads?\s*\(", Severity.CRITICAL,
                "Unsafe deserialization in Python",
                "pickle can execute arbitrary code during deserialization"),
    PatternRule(r"\byaml\.load\s*\((?![^)]*Loader\s*=)[^)]*\)", Severity.CRITICAL,
                "Unsafe deserialization in Python",
                "Use yaml.safe_load() instead of yaml.load()"),
    PatternRule(r"JSON\.parse\s*\([^)]*\)[^;\n]*eval", Severity.CRITICAL,
                "Unsafe deserialization in JavaScript",
                "Deserializing and evaluating JSON can execute arbitrary code"),
    PatternRule(r"ObjectInputStream\s*\([^)]*\)\s*\.readObject", Severity.CRITICAL,
                "Unsafe deserialization in Java",
                "Java deserialization can lead to remote code execution"),
    PatternRule(r"(?<![\w.>])unserialize\s*\(", Severity.CRITICAL,
                "Unsafe deserialization in PHP",
                "PHP unserialize() vulnerable to object injection"),
)

PATH_TRAVERSAL_PATTERNS = (
    r"(?:open|read|write)[^\n]*\([^\n]*(?:req\.query|req\.params|request\.args)[^\n]*\+[^\n]*['\"]/",
    r"fs\.readFile[^\n]*\([^\n]*(?:req\.|request\.)[^\n]*\)",
    r"path\.join\s*\([^)]*(?:req\.|request\.)",
)

XXE_PATTERNS = (
    r"XMLParser\s*\((?![^)]*resolve_entities\s*=\s*False)[^)]*\)",
    r"DocumentBuilderFactory(?![^;]*setFeature[^;]*external-general-entities[^;]*false)",
    r"SAXParser(?![^;]*setFeature[^;]*external)",
)

SSRF_PATTERNS = (
    r"(?:fetch|axios|request)\s*\([^)]*(?:req\.|request\.|params\.|query\.)",
    r"urllib\.request\.urlopen\s*\([^)]*(?:request\.|args\.|form\.)",
    r"HttpClient[^\n]*\.get\s*\([^)]*(?:request\.|params\.)",
)


class AdvancedPatternDetector(BaseAnalyzer):
    """Scans a sample of code files for deeper vulnerability shapes."""

    name = "advanced_patterns"

    def __init__(
        self,
        fetcher: ContentFetcher,
        max_files: int = 20,
        weak_crypto_rules: tuple[PatternRule, ...] = WEAK_CRYPTO_RULES,
        deserialization_rules: tuple[PatternRule, ...] = DESERIALIZATION_RULES,
    ) -> None:
        super().__init__(fetcher, max_files)
        self.weak_crypto_rules = weak_crypto_rules
        self.deserialization_rules = deserialization_rules

    async def analyze(self, snapshot: RepositorySnapshot) -> list[Vulnerability]:
        return await self.scan_files(snapshot, self.code_files(snapshot), self.scan_content)

    def scan_content(self, content: str, path: str) -> list[Vulnerability]:
        """Run every advanced check against one file."""
        findings: list[Vulnerability] = []
        findings.extend(match_rules(content, path, self.weak_crypto_rules))
        findings.extend(self._hardcoded_keys(content, path))
        findings.extend(self._race_conditions(content, path))
        findings.extend(self._memory_safety(content, path))
        findings.extend(match_rules(content, path, self.deserialization_rules))
        findings.extend(self._first_match_finding(
            content, path, PATH_TRAVERSAL_PATTERNS, Severity.HIGH,
            "Potential path traversal vulnerability",
            "User input used in file paths without validation. Sanitize and validate paths",
        ))
        findings.extend(self._first_match_finding(
            content, path, XXE_PATTERNS, Severity.HIGH,
            "XML External Entity (XXE) vulnerability",
            "XML parser may be vulnerable to XXE attacks. Disable external entity resolution",
        ))
        findings.extend(self._first_match_finding(
            content, path, SSRF_PATTERNS, Severity.HIGH,
            "Potential Server-Side Request Forgery (SSRF)",
            "User-controlled URLs can lead to SSRF. Validate and whitelist URLs",
        ))
        return findings

    def _first_match_finding(
        self,
        content: str,
        path: str,
        patterns: tuple[str, ...],
        severity: Severity,
        description: str,
        details: str,
        flags: int = re.IGNORECASE,
    ) -> list[Vulnerability]:
        """One finding at the first match of any pattern, or none."""
        match = first_match(content, patterns, flags)
        if not match:
            return []
        return [
            Vulnerability(
                severity=severity,
                type=VulnerabilityType.CODE_PATTERN,
                description=description,
                location=f"{path}:{line_number(content, match.start())}",
                details=details,
            )
        ]

    def _hardcoded_keys(self, content: str, path: str) -> list[Vulnerability]:
        findings = []
        for pattern in HARDCODED_KEY_PATTERNS:
            findings.extend(self._first_match_finding(
                content, path, (pattern,), Severity.CRITICAL,
                "Hardcoded encryption key",
                "Encryption keys should be stored securely, not hardcoded",
            ))
        return findings

    def _race_conditions(self, content: str, path: str) -> list[Vulnerability]:
        findings = []
        for pattern, description in TOCTOU_PATTERNS:
            findings.extend(self._first_match_finding(
                content, path, (pattern,), Severity.HIGH, description,
                "Check-then-act pattern can lead to race conditions",
            ))

        if re.search(r"\.(go|rs|cpp|c)$", path):
            match = re.search(r"(?:^|\s)(?:static|global)\s+[^\n]*=", content)
            if match and not re.search(r"mutex|lock|atomic", content, re.IGNORECASE):
                findings.append(
                    Vulnerability(
                        severity=Severity.MEDIUM,
                        type=VulnerabilityType.CODE_PATTERN,
                        description="Global variable without synchronization",
                        location=f"{path}:{line_number(content, match.start())}",
                        details="Global state without proper synchronization can cause race conditions",
                    )
                )
        return findings

    def _memory_safety(self, content: str, path: str) -> list[Vulnerability]:
        findings = []

        if re.search(r"\.(c|cpp)$", path):
            for func, advice in UNSAFE_C_FUNCTIONS:
                findings.extend(match_rules(
                    content, path,
                    (PatternRule(rf"\b{func}\s*\(", Severity.HIGH, f"Unsafe function: {func}()", advice, 0),),
                ))

            # An allocation with no free() anywhere after it
            for match in re.finditer(r"\bmalloc\s*\(", content):
                if not re.search(r"\bfree\s*\(", content[match.end():]):
                    findings.append(
                        Vulnerability(
                            severity=Severity.MEDIUM,
                            type=VulnerabilityType.CODE_PATTERN,
                            description="Potential memory leak",
                            location=f"{path}:{line_number(content, match.start())}",
                            details="Allocated memory may not be freed",
                        )
                    )
                    break

        if path.endswith(".rs"):
            blocks = list(re.finditer(r"\bunsafe\s*\{", content))
            if len(blocks) > 5:
                findings.append(
                    Vulnerability(
                        severity=Severity.MEDIUM,
                        type=VulnerabilityType.CODE_PATTERN,
                        description=f"Excessive unsafe blocks ({len(blocks)})",
                        location=f"{path}:{line_number(content, blocks[0].start())}",
                        details="High number of unsafe blocks may indicate unsafe memory practices",
                    )
                )

        return findings
