"""Regex detector for secrets, dangerous calls and injection in source files."""

from reposcan.analyzers.base import BaseAnalyzer, ContentFetcher, PatternRule, match_rules
from reposcan.models.schemas import RepositorySnapshot, Severity, Vulnerability

CREDENTIALS_DETAILS = "Hardcoded credentials should be moved to environment variables"

# === Pattern Definitions ===

# The captured secret must be long enough to look like a real credential
SECRET_RULES = (
    PatternRule(
        r"(?:api[_-]?key|apikey|api[_-]?secret)\s*[=:]\s*['\"](?P<secret>[a-zA-Z0-9_\-]{20,})['\"]",
        Severity.CRITICAL,
        "Potential hardcoded API key",
        CREDENTIALS_DETAILS,
    ),
    PatternRule(
        r"(?:password|passwd|pwd)\s*[=:]\s*['\"](?P<secret>[^'\"\n]{8,})['\"]",
        Severity.CRITICAL,
        "Potential hardcoded password",
        CREDENTIALS_DETAILS,
    ),
    PatternRule(
        r"(?:private[_-]?key|privatekey)\s*[=:]\s*['\"](?P<secret>[^'\"\n]{20,})['\"]",
        Severity.CRITICAL,
        "Potential hardcoded private key",
        CREDENTIALS_DETAILS,
    ),
    PatternRule(
        r"(?:secret[_-]?key|secretkey)\s*[=:]\s*['\"](?P<secret>[a-zA-Z0-9_\-]{20,})['\"]",
        Severity.CRITICAL,
        "Potential hardcoded secret key",
        CREDENTIALS_DETAILS,
    ),
    PatternRule(
        r"(?:aws[_-]?access[_-]?key[_-]?id)\s*[=:]\s*['\"](?P<secret>[A-Z0-9]{20})['\"]",
        Severity.CRITICAL,
        "Potential AWS access key",
        CREDENTIALS_DETAILS,
    ),
    PatternRule(
        r"(?:github[_-]?token|gh[_-]?token)\s*[=:]\s*['\"](?P<secret>[a-zA-Z0-9_]{40})['\"]",
        Severity.CRITICAL,
        "Potential GitHub token",
        CREDENTIALS_DETAILS,
    ),
    PatternRule(
        r"-----BEGIN (?:RSA |EC |OPENSSH |DSA )?PRIVATE KEY-----",
        Severity.CRITICAL,
        "Embedded private key block",
        CREDENTIALS_DETAILS,
        0,
    ),
)

DANGEROUS_CALL_RULES = (
    PatternRule(
        r"(?<![\w.])eval\s*\(",
        Severity.HIGH,
        "Use of eval() function",
        "eval() can execute arbitrary code and is a major security risk",
    ),
    PatternRule(
        r"new\s+Function\s*\(",
        Severity.HIGH,
        "Dynamic code execution via Function constructor",
        "Function constructor can execute arbitrary code",
    ),
    PatternRule(
        r"innerHTML\s*=(?!=)",
        Severity.MEDIUM,
        "Direct innerHTML assignment",
        "innerHTML can introduce XSS vulnerabilities. Consider using textContent or sanitization",
    ),
    PatternRule(
        r"dangerouslySetInnerHTML",
        Severity.MEDIUM,
        "React dangerouslySetInnerHTML usage",
        "Ensure content is properly sanitized before using dangerouslySetInnerHTML",
    ),
    PatternRule(
        r"child_process\.exec\s*\(",
        Severity.HIGH,
        "Use of child_process.exec()",
        "exec() can lead to command injection. Use execFile() with arguments array instead",
    ),
    PatternRule(
        r"os\.system\s*\(",
        Severity.HIGH,
        "Use of os.system() in Python",
        "os.system() is vulnerable to command injection. Use subprocess.run() instead",
    ),
    PatternRule(
        r"\bunsafe\s*\{",
        Severity.MEDIUM,
        "Unsafe code block in Rust",
        "Unsafe blocks bypass memory safety guarantees. Ensure proper validation",
    ),
)

COMMAND_INJECTION_RULES = tuple(
    PatternRule(
        pattern,
        Severity.HIGH,
        "Potential command injection vulnerability",
        "User input appears to be concatenated into shell command. Use parameterized execution",
    )
    for pattern in (
        r"shell\s*=\s*True",
        r"\bexec\s*\([^)]*\+[^)]*\)",
        r"\bsystem\s*\([^)]*\+[^)]*\)",
        r"\bProcess\s*\([^)]*\+[^)]*\)",
    )
)

SQL_INJECTION_RULES = tuple(
    PatternRule(
        pattern,
        Severity.CRITICAL,
        "Potential SQL injection vulnerability",
        "SQL query appears to use string concatenation. Use parameterized queries instead",
    )
    for pattern in (
        r"\bexecute\s*\(\s*['\"][^'\"]*['\"]?\s*\+",
        r"\bquery\s*\(\s*['\"][^'\"]*['\"]?\s*\+",
        r"\braw\s*\(\s*['\"][^'\"]*['\"]?\s*\+",
        r"\bSELECT\s+[^\n]*\s+FROM\s+[^\n]*\+",
    )
)

DEFAULT_RULES = SECRET_RULES + DANGEROUS_CALL_RULES + COMMAND_INJECTION_RULES + SQL_INJECTION_RULES


class CodePatternDetector(BaseAnalyzer):
    """Scans a sample of code files for secrets and dangerous constructs."""

    name = "code_patterns"

    def __init__(
        self,
        fetcher: ContentFetcher,
        max_files: int = 20,
        rules: tuple[PatternRule, ...] = DEFAULT_RULES,
    ) -> None:
        super().__init__(fetcher, max_files)
        self.rules = rules

    async def analyze(self, snapshot: RepositorySnapshot) -> list[Vulnerability]:
        return await self.scan_files(snapshot, self.code_files(snapshot), self.scan_content)

    def scan_content(self, content: str, path: str) -> list[Vulnerability]:
        """Apply every rule to one file."""
        return match_rules(content, path, self.rules)
