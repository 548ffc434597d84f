"""Pydantic models for repository scan data."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _parse_timestamp(value: str | None) -> datetime | None:
    """Parse a GitHub ISO-8601 timestamp."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class Platform(str, Enum):
    """Source code hosting platforms."""

    GITHUB = "github"


class RepoRef(BaseModel):
    """Reference to a source code repository."""

    model_config = ConfigDict(frozen=True)

    platform: Platform = Platform.GITHUB
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        """Get the owner/repo identifier."""
        return f"{self.owner}/{self.repo}"

    @property
    def url(self) -> str:
        """Get the full repository URL."""
        return f"https://github.com/{self.owner}/{self.repo}"


# --- Snapshot Models ---


class FileEntry(BaseModel):
    """A single entry of a repository file listing."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    type: Literal["file", "dir"] = "file"
    size: int = 0

    @classmethod
    def from_api(cls, data: dict) -> "FileEntry":
        """Build from a contents API item."""
        return cls(
            name=data.get("name") or "",
            path=data.get("path") or data.get("name") or "",
            type="dir" if data.get("type") == "dir" else "file",
            size=data.get("size") or 0,
        )

    @classmethod
    def from_tree(cls, data: dict) -> "FileEntry":
        """Build from a git tree item."""
        path = data.get("path") or ""
        return cls(
            name=path.rsplit("/", 1)[-1],
            path=path,
            type="dir" if data.get("type") == "tree" else "file",
            size=data.get("size") or 0,
        )


class RepoMetadata(BaseModel):
    """Repository metadata as reported by the hosting platform."""

    model_config = ConfigDict(frozen=True)

    owner: str
    name: str
    description: str | None = None
    stars: int = 0
    forks: int = 0
    default_branch: str = "main"
    license_name: str | None = None
    license_spdx: str | None = None
    archived: bool = False
    created_at: datetime | None = None
    pushed_at: datetime | None = None
    # Feature name -> status ("enabled"/"disabled"); None when not reported.
    security_and_analysis: dict[str, str | None] | None = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def from_api(cls, data: dict) -> "RepoMetadata":
        """Decode the /repos/{owner}/{repo} payload."""
        license_info = data.get("license") or {}
        owner_info = data.get("owner") or {}

        security = None
        raw_security = data.get("security_and_analysis")
        if isinstance(raw_security, dict):
            security = {
                feature: (value or {}).get("status") if isinstance(value, dict) else None
                for feature, value in raw_security.items()
            }

        return cls(
            owner=owner_info.get("login") or "",
            name=data.get("name") or "",
            description=data.get("description"),
            stars=data.get("stargazers_count") or 0,
            forks=data.get("forks_count") or 0,
            default_branch=data.get("default_branch") or "main",
            license_name=license_info.get("name"),
            license_spdx=license_info.get("spdx_id"),
            archived=bool(data.get("archived", False)),
            created_at=_parse_timestamp(data.get("created_at")),
            pushed_at=_parse_timestamp(data.get("pushed_at")),
            security_and_analysis=security,
        )


class CommitInfo(BaseModel):
    """A single commit from the recent history."""

    model_config = ConfigDict(frozen=True)

    sha: str = ""
    author_email: str | None = None
    authored_at: datetime | None = None

    @classmethod
    def from_api(cls, data: dict) -> "CommitInfo":
        author = (data.get("commit") or {}).get("author") or {}
        return cls(
            sha=data.get("sha") or "",
            author_email=author.get("email"),
            authored_at=_parse_timestamp(author.get("date")),
        )


class ContributorInfo(BaseModel):
    """A repository contributor."""

    model_config = ConfigDict(frozen=True)

    login: str = ""
    contributions: int = 0

    @classmethod
    def from_api(cls, data: dict) -> "ContributorInfo":
        return cls(
            login=data.get("login") or data.get("name") or "",
            contributions=data.get("contributions") or 0,
        )


class OwnerProfile(BaseModel):
    """Profile of the repository owner (user or organization)."""

    model_config = ConfigDict(frozen=True)

    login: str
    type: str = "User"
    created_at: datetime | None = None
    public_repos: int = 0
    followers: int = 0

    @property
    def is_organization(self) -> bool:
        return self.type == "Organization"

    @classmethod
    def from_api(cls, data: dict) -> "OwnerProfile":
        return cls(
            login=data.get("login") or "",
            type=data.get("type") or "User",
            created_at=_parse_timestamp(data.get("created_at")),
            public_repos=data.get("public_repos") or 0,
            followers=data.get("followers") or 0,
        )


class SourceStatus(BaseModel):
    """Which of the five core fetch calls produced data."""

    model_config = ConfigDict(frozen=True)

    repo: bool = False
    contents: bool = False
    commits: bool = False
    contributors: bool = False
    owner: bool = False

    @property
    def succeeded(self) -> int:
        return sum([self.repo, self.contents, self.commits, self.contributors, self.owner])

    @property
    def attempted(self) -> int:
        return 5


class RepositorySnapshot(BaseModel):
    """Everything fetched for one scan. Read-only once built."""

    model_config = ConfigDict(frozen=True)

    ref: RepoRef
    repo: RepoMetadata
    file_listing: tuple[FileEntry, ...] = ()
    file_tree: tuple[FileEntry, ...] = ()
    recent_commits: tuple[CommitInfo, ...] = ()
    contributors: tuple[ContributorInfo, ...] | None = None
    owner: OwnerProfile | None = None
    sources: SourceStatus = Field(default_factory=SourceStatus)

    @property
    def full_name(self) -> str:
        return self.ref.full_name

    @property
    def scan_candidates(self) -> tuple[FileEntry, ...]:
        """Files eligible for content scanning (recursive tree when available)."""
        return self.file_tree or self.file_listing


# --- Finding Models ---


class Severity(str, Enum):
    """Finding severity."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class VulnerabilityType(str, Enum):
    """Finding category."""

    DEPENDENCY = "dependency"
    CODE_PATTERN = "code_pattern"
    CONFIGURATION = "configuration"


class Vulnerability(BaseModel):
    """A single flagged issue."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    severity: Severity
    type: VulnerabilityType
    description: str
    location: str  # file or file:line
    cve_id: str | None = None
    details: str | None = None


class TypeCounts(BaseModel):
    """Finding counts per type."""

    dependency: int = 0
    code_pattern: int = 0
    configuration: int = 0


class VulnerabilitySummary(BaseModel):
    """Severity and type counts over a finding list."""

    total_count: int = 0
    critical_count: int = 0
    high_count: int = 0
    medium_count: int = 0
    low_count: int = 0
    by_type: TypeCounts = Field(default_factory=TypeCounts)


class CodeQualityMetrics(BaseModel):
    """Aggregated code quality metrics over a sample of files."""

    total_files_analyzed: int = 0
    avg_file_size: int = 0
    avg_complexity: int = 0
    comment_ratio: float = 0.0
    large_files_count: int = 0
    code_duplication_risk: int = 0
    quality_score: int = Field(default=50, ge=0, le=100)
    issues: list[str] = Field(default_factory=list)


# --- Scoring Models ---


class SafetyBreakdown(BaseModel):
    """Safety total and its five sub-scores."""

    total: float = Field(ge=0, le=100)
    dependency_risks: float = Field(ge=0, le=100)
    code_security: float = Field(ge=0, le=100)
    config_hygiene: float = Field(ge=0, le=100)
    code_quality: float = Field(ge=0, le=100)
    maintenance_posture: float = Field(ge=0, le=100)


class LegitimacyBreakdown(BaseModel):
    """Legitimacy total and its five sub-scores."""

    total: float = Field(ge=0, le=100)
    working_evidence: float = Field(ge=0, le=100)
    transparency_docs: float = Field(ge=0, le=100)
    community_signals: float = Field(ge=0, le=100)
    author_reputation: float = Field(ge=0, le=100)
    license_compliance: float = Field(ge=0, le=100)


class ScoreBreakdown(BaseModel):
    """Nested breakdown as persisted (breakdown.safety.*, breakdown.legitimacy.*)."""

    safety: SafetyBreakdown
    legitimacy: LegitimacyBreakdown


class ScoringResult(BaseModel):
    """Final output of a scan."""

    model_config = ConfigDict(frozen=True)

    safety_score: int = Field(ge=0, le=100)
    legitimacy_score: int = Field(ge=0, le=100)
    overall_score: int = Field(ge=0, le=100)
    confidence: int = Field(ge=0, le=100)
    breakdown: ScoreBreakdown
    notes: list[str] = Field(default_factory=list)
    risk_factors: list[str] = Field(default_factory=list)
    positive_indicators: list[str] = Field(default_factory=list)
    vulnerabilities: list[Vulnerability] = Field(default_factory=list)
    vulnerability_summary: VulnerabilitySummary = Field(default_factory=VulnerabilitySummary)
    code_quality_metrics: CodeQualityMetrics = Field(default_factory=CodeQualityMetrics)
    analysis_summary: str = ""


# --- Scoring Configuration ---


class SafetyWeights(BaseModel):
    """Category weights for the safety total."""

    model_config = ConfigDict(frozen=True)

    dependency_risks: float = 0.30
    code_security: float = 0.30
    config_hygiene: float = 0.15
    code_quality: float = 0.15
    maintenance_posture: float = 0.10

    @model_validator(mode="after")
    def _check_sum(self) -> "SafetyWeights":
        if abs(sum(self.model_dump().values()) - 1.0) > 1e-6:
            raise ValueError("safety weights must sum to 1.0")
        return self


class LegitimacyWeights(BaseModel):
    """Category weights for the legitimacy total."""

    model_config = ConfigDict(frozen=True)

    working_evidence: float = 0.40
    transparency_docs: float = 0.20
    community_signals: float = 0.15
    author_reputation: float = 0.15
    license_compliance: float = 0.10

    @model_validator(mode="after")
    def _check_sum(self) -> "LegitimacyWeights":
        if abs(sum(self.model_dump().values()) - 1.0) > 1e-6:
            raise ValueError("legitimacy weights must sum to 1.0")
        return self


DEPLOYED_LEGITIMACY_WEIGHTS = LegitimacyWeights()
BUNDLED_LEGITIMACY_WEIGHTS = LegitimacyWeights(
    working_evidence=0.25,
    transparency_docs=0.20,
    community_signals=0.25,
    author_reputation=0.20,
    license_compliance=0.10,
)


class ConfidenceFormula(str, Enum):
    """How the confidence value is derived."""

    DATA_COMPLETENESS = "data_completeness"
    SIGNAL_BONUS = "signal_bonus"


class ScoringConfig(BaseModel):
    """Tunable parameters of the scoring engine."""

    model_config = ConfigDict(frozen=True)

    safety_weights: SafetyWeights = Field(default_factory=SafetyWeights)
    legitimacy_weights: LegitimacyWeights = DEPLOYED_LEGITIMACY_WEIGHTS
    overall_safety_weight: float = Field(default=0.45, ge=0, le=1)
    confidence_formula: ConfidenceFormula = ConfidenceFormula.DATA_COMPLETENESS
    include_code_quality: bool = True

    script_file_threshold: int = 10
    recent_commit_days: int = 90
    active_commit_count: int = 5
    fresh_commit_days: int = 30
    stale_commit_days: int = 365


# --- Scan Records ---


class ScanStatus(str, Enum):
    """Lifecycle of a scan request."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ScanRecord(BaseModel):
    """What gets persisted for one scan."""

    scan_id: str
    repo_url: str
    repo_name: str
    status: ScanStatus
    created_at: datetime
    completed_at: datetime | None = None
    result: ScoringResult | None = None
    error_category: str | None = None
