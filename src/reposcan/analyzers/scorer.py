"""Score calculator for repository safety and legitimacy."""

import math
from datetime import datetime, timezone

from reposcan.analyzers.aggregator import summarize
from reposcan.analyzers.base import has_extension, round_half_up
from reposcan.analyzers.tables import (
    CI_INDICATORS,
    DANGEROUS_BINARY_EXTENSIONS,
    ENV_TEMPLATE_FILES,
    EXAMPLE_DIR_INDICATORS,
    LOCK_FILES,
    MANIFEST_FILES,
    POPULAR_LICENSE_FAMILIES,
    SCRIPT_EXTENSIONS,
    TEST_INDICATORS,
)
from reposcan.models.schemas import (
    CodeQualityMetrics,
    ConfidenceFormula,
    LegitimacyBreakdown,
    RepositorySnapshot,
    SafetyBreakdown,
    ScoreBreakdown,
    ScoringConfig,
    ScoringResult,
    Vulnerability,
    VulnerabilitySummary,
)

LOW_QUALITY_THRESHOLD = 40

SUMMARY_STRONG = (
    "This repository demonstrates strong safety practices and legitimate development "
    "patterns with solid community trust."
)
SUMMARY_MODERATE = (
    "This repository shows moderate indicators of quality and legitimacy. "
    "Review the risk factors carefully before use."
)
SUMMARY_CONCERNS = (
    "This repository has significant concerns. Thoroughly review all risk factors "
    "and exercise caution before using this code."
)


def clamp(value: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, value))


def round_score(value: float) -> int:
    """Round a score to an integer, halves up."""
    return int(round_half_up(value))


def summary_text(overall_score: int) -> str:
    """Narrative summary for an overall score."""
    if overall_score >= 70:
        return SUMMARY_STRONG
    if overall_score >= 50:
        return SUMMARY_MODERATE
    return SUMMARY_CONCERNS


class Narrative:
    """Notes, risk factors and positive indicators collected while scoring."""

    def __init__(self) -> None:
        self.notes: list[str] = []
        self.risks: list[str] = []
        self.positives: list[str] = []


class Scorer:
    """Calculates safety and legitimacy scores from a repository snapshot.

    Safety (default weights):
    - Dependency risks: 30%
    - Code security: 30%
    - Config hygiene: 15%
    - Code quality: 15%
    - Maintenance posture: 10%

    Legitimacy (default weights):
    - Working evidence: 40%
    - Transparency and docs: 20%
    - Community signals: 15%
    - Author reputation: 15%
    - License compliance: 10%

    Overall is 45% safety and 55% legitimacy. Every sub-score is clamped to
    [0, 100] after it is computed. Scoring is a pure function of its inputs
    and ``now``.
    """

    def __init__(self, config: ScoringConfig | None = None) -> None:
        self.config = config or ScoringConfig()

    def score(
        self,
        snapshot: RepositorySnapshot,
        vulnerabilities: list[Vulnerability],
        summary: VulnerabilitySummary | None = None,
        code_quality: CodeQualityMetrics | None = None,
        now: datetime | None = None,
    ) -> ScoringResult:
        """Score a snapshot together with the findings of the analyzers.

        Args:
            snapshot: Fetched repository data.
            vulnerabilities: All analyzer findings.
            summary: Precomputed summary of the findings. Computed if omitted.
            code_quality: Code quality metrics, if the analyzer ran.
            now: Reference time for age computations. Defaults to the current time.

        Returns:
            The final ScoringResult.
        """
        now = now or datetime.now(timezone.utc)
        summary = summary or summarize(vulnerabilities)
        code_quality = code_quality or CodeQualityMetrics()
        narrative = Narrative()

        if summary.critical_count > 0:
            narrative.risks.append(
                f"CRITICAL: {summary.critical_count} critical vulnerabilities found"
            )
        if summary.high_count > 0:
            narrative.risks.append(f"{summary.high_count} high-severity vulnerabilities found")

        safety = self._calculate_safety(snapshot, narrative, now)
        legitimacy = self._calculate_legitimacy(snapshot, narrative, now)

        if self.config.include_code_quality:
            self._apply_code_quality(code_quality, narrative)

        safety_score = round_score(safety.total)
        legitimacy_score = round_score(legitimacy.total)
        w = self.config.overall_safety_weight
        overall_score = round_score(w * safety_score + (1 - w) * legitimacy_score)
        confidence = self._calculate_confidence(snapshot, safety, legitimacy)

        return ScoringResult(
            safety_score=safety_score,
            legitimacy_score=legitimacy_score,
            overall_score=overall_score,
            confidence=confidence,
            breakdown=ScoreBreakdown(safety=safety, legitimacy=legitimacy),
            notes=narrative.notes,
            risk_factors=narrative.risks,
            positive_indicators=narrative.positives,
            vulnerabilities=list(vulnerabilities),
            vulnerability_summary=summary,
            code_quality_metrics=code_quality,
            analysis_summary=summary_text(overall_score),
        )

    # === Safety ===

    def _calculate_safety(
        self, snapshot: RepositorySnapshot, narrative: Narrative, now: datetime
    ) -> SafetyBreakdown:
        names = [e.name for e in snapshot.file_listing]
        weights = self.config.safety_weights

        dependency_risks = self._score_dependency_risks(names, narrative)
        code_security = self._score_code_security(names, narrative)
        config_hygiene = self._score_config_hygiene(names, narrative)
        code_quality = self._score_code_quality(snapshot, names, narrative)
        maintenance = self._score_maintenance_posture(snapshot, narrative, now)

        total = (
            dependency_risks * weights.dependency_risks
            + code_security * weights.code_security
            + config_hygiene * weights.config_hygiene
            + code_quality * weights.code_quality
            + maintenance * weights.maintenance_posture
        )
        return SafetyBreakdown(
            total=clamp(total),
            dependency_risks=dependency_risks,
            code_security=code_security,
            config_hygiene=config_hygiene,
            code_quality=code_quality,
            maintenance_posture=maintenance,
        )

    def _score_dependency_risks(self, names: list[str], narrative: Narrative) -> float:
        score = 50

        has_manifest = any(n in MANIFEST_FILES for n in names)
        if has_manifest:
            score += 30
            narrative.positives.append("Has dependency management files")
        else:
            score -= 20
            narrative.risks.append("No standard dependency files detected")

        if any(n in LOCK_FILES for n in names):
            score += 20
            narrative.positives.append("Uses lock files for reproducible builds")
        elif has_manifest:
            score -= 10
            narrative.risks.append("Missing lock file - dependencies not pinned")

        return clamp(score)

    def _score_code_security(self, names: list[str], narrative: Narrative) -> float:
        score = 70
        lowered = [n.lower() for n in names]

        for ext, penalty, message in DANGEROUS_BINARY_EXTENSIONS:
            if any(n.endswith(ext) for n in lowered):
                score -= penalty
                narrative.risks.append(message)

        if "security.md" in lowered:
            score += 20
            narrative.positives.append("Has SECURITY.md policy")

        scripts = sum(1 for n in names if has_extension(n, SCRIPT_EXTENSIONS))
        if scripts > self.config.script_file_threshold:
            score -= 15
            narrative.risks.append(f"High number of script files ({scripts})")

        return clamp(score)

    def _score_config_hygiene(self, names: list[str], narrative: Narrative) -> float:
        score = 50

        if ".gitignore" in names:
            score += 30
            narrative.positives.append("Has .gitignore file")
        else:
            score -= 20
            narrative.risks.append("Missing .gitignore file")

        if any(n in ENV_TEMPLATE_FILES for n in names):
            score += 20
            narrative.positives.append("Provides environment variable template")

        if ".env" in names:
            score -= 40
            narrative.risks.append("WARNING: .env file committed (may expose secrets)")

        if any("dockerfile" in n.lower() for n in names):
            score += 10
            narrative.positives.append("Has Dockerfile for containerization")

        return clamp(score)

    def _score_code_quality(
        self, snapshot: RepositorySnapshot, names: list[str], narrative: Narrative
    ) -> float:
        score = 40
        lowered = [n.lower() for n in names]

        if any("readme" in n for n in lowered):
            score += 30
            narrative.positives.append("Has README documentation")
        else:
            score -= 20
            narrative.risks.append("Missing README file")

        if any(t in n for n in lowered for t in TEST_INDICATORS):
            score += 20
            narrative.positives.append("Includes test files")
        else:
            narrative.risks.append("No test files detected")

        if snapshot.repo.license_name:
            score += 10
            narrative.positives.append(f"Licensed: {snapshot.repo.license_name}")
        else:
            score -= 10
            narrative.risks.append("No license specified")

        return clamp(score)

    def _score_maintenance_posture(
        self, snapshot: RepositorySnapshot, narrative: Narrative, now: datetime
    ) -> float:
        if snapshot.repo.archived:
            narrative.risks.append("Repository is archived (no longer maintained)")
            return 0

        score = 20
        commits = snapshot.recent_commits
        if not commits:
            narrative.risks.append("No commit history available")
            return clamp(score)

        dates = [c.authored_at for c in commits if c.authored_at is not None]
        ages = [(now - d).total_seconds() / 86400 for d in dates]

        recent = sum(1 for age in ages if age <= self.config.recent_commit_days)
        if recent >= self.config.active_commit_count:
            score += 40
            narrative.positives.append(
                f"Active development ({self.config.active_commit_count}+ commits in "
                f"{self.config.recent_commit_days} days)"
            )
        elif recent > 0:
            score += 20

        if ages:
            newest = min(ages)
            if newest < self.config.fresh_commit_days:
                score += 30
                narrative.positives.append(
                    f"Recently updated (last {self.config.fresh_commit_days} days)"
                )
            elif newest > self.config.stale_commit_days:
                score -= 20
                narrative.risks.append("No commits in over a year")

        authors = {c.author_email for c in commits if c.author_email}
        if len(authors) >= 3:
            score += 10
            narrative.positives.append(f"Multiple contributors ({len(authors)})")

        return clamp(score)

    # === Legitimacy ===

    def _calculate_legitimacy(
        self, snapshot: RepositorySnapshot, narrative: Narrative, now: datetime
    ) -> LegitimacyBreakdown:
        names = [e.name for e in snapshot.file_listing]
        weights = self.config.legitimacy_weights

        working = self._score_working_evidence(names, narrative)
        transparency = self._score_transparency(snapshot, names, narrative)
        community = self._score_community(snapshot, narrative)
        author = self._score_author_reputation(snapshot, narrative, now)
        license_score = self._score_license(snapshot, narrative)

        total = (
            working * weights.working_evidence
            + transparency * weights.transparency_docs
            + community * weights.community_signals
            + author * weights.author_reputation
            + license_score * weights.license_compliance
        )
        return LegitimacyBreakdown(
            total=clamp(total),
            working_evidence=working,
            transparency_docs=transparency,
            community_signals=community,
            author_reputation=author,
            license_compliance=license_score,
        )

    def _score_working_evidence(self, names: list[str], narrative: Narrative) -> float:
        score = 30
        lowered = [n.lower() for n in names]

        if any(n in LOCK_FILES for n in names):
            score += 20
            narrative.positives.append("Reproducible environment with lock files")
        else:
            narrative.risks.append("No lock file - build may not be reproducible")

        if any("dockerfile" in n for n in lowered):
            score += 15
            narrative.positives.append("Has Dockerfile for containerized builds")

        if any(d in n for n in lowered for d in EXAMPLE_DIR_INDICATORS):
            score += 20
            narrative.positives.append("Includes example code/demos")
        else:
            narrative.risks.append("No example code found")

        if any(ci in n for n in names for ci in CI_INDICATORS):
            score += 15
            narrative.positives.append("Has CI/CD configuration")

        return clamp(score)

    def _score_transparency(
        self, snapshot: RepositorySnapshot, names: list[str], narrative: Narrative
    ) -> float:
        score = 20
        lowered = [n.lower() for n in names]

        if any("readme" in n for n in lowered):
            score += 35
        else:
            score -= 20
            narrative.risks.append("No README found")

        description = snapshot.repo.description or ""
        if len(description) > 30:
            score += 20
            narrative.positives.append("Has detailed description")
        elif len(description) < 10:
            narrative.risks.append("Missing or minimal description")

        if "contributing.md" in lowered:
            score += 15
            narrative.positives.append("Has CONTRIBUTING.md guidelines")

        if any("changelog" in n for n in lowered):
            score += 10
            narrative.positives.append("Maintains a changelog")

        return clamp(score)

    def _score_community(self, snapshot: RepositorySnapshot, narrative: Narrative) -> float:
        stars = snapshot.repo.stars
        forks = snapshot.repo.forks
        score = 20.0

        # Log-scaled so 10k stars saturates the star component
        star_score = min(math.log10(stars + 1) / 4 * 100, 100)
        score += star_score * 0.40

        if stars > 1000:
            narrative.positives.append(f"Highly popular: {stars} stars")
        elif stars > 100:
            narrative.positives.append(f"Popular: {stars} stars")
        elif stars < 5:
            narrative.risks.append("Very low star count")

        contributors = len(snapshot.contributors or ())
        if contributors > 5:
            score += 25
            narrative.positives.append(f"{contributors}+ contributors")
        elif contributors == 1:
            score += 5
            narrative.risks.append("Single contributor project")
        else:
            score += 15

        if forks > 50:
            score += 15
            narrative.positives.append(f"{forks} forks")

        return clamp(score)

    def _score_author_reputation(
        self, snapshot: RepositorySnapshot, narrative: Narrative, now: datetime
    ) -> float:
        owner = snapshot.owner
        if owner is None:
            return 30

        score = 40
        if owner.is_organization:
            score += 30
            narrative.positives.append("Owned by an organization")

        if owner.created_at is not None:
            age_days = (now - owner.created_at).total_seconds() / 86400
            if age_days > 730:
                score += 20
                narrative.positives.append("Well-established account (2+ years)")
            elif age_days < 90:
                score -= 10
                narrative.risks.append("Relatively new account")
            else:
                score += 10

        if owner.public_repos > 5:
            score += 10
            narrative.positives.append(f"{owner.public_repos} public repositories")
        elif owner.public_repos == 1:
            narrative.risks.append("Only one public repository")

        return clamp(score)

    def _score_license(self, snapshot: RepositorySnapshot, narrative: Narrative) -> float:
        license_name = snapshot.repo.license_name
        if not license_name:
            narrative.risks.append("No license - unclear usage rights")
            return 30

        score = 70
        narrative.positives.append(f"Licensed: {license_name}")
        if any(family in license_name for family in POPULAR_LICENSE_FAMILIES):
            score += 30
        else:
            score += 10
        return clamp(score)

    # === Confidence and quality ===

    def _calculate_confidence(
        self,
        snapshot: RepositorySnapshot,
        safety: SafetyBreakdown,
        legitimacy: LegitimacyBreakdown,
    ) -> int:
        """Confidence on a 0-100 integer scale."""
        if self.config.confidence_formula == ConfidenceFormula.SIGNAL_BONUS:
            confidence = 70
            if len(snapshot.recent_commits) >= 20:
                confidence += 10
            if snapshot.repo.stars > 50:
                confidence += 10
            if snapshot.contributors and len(snapshot.contributors) > 3:
                confidence += 5
            return round_score(clamp(confidence))

        sources = snapshot.sources
        data_quality = sources.succeeded / sources.attempted
        avg_total = (safety.total + legitimacy.total) / 2
        score_confidence = 0.8 if avg_total > 30 else 0.5
        return round_score(clamp(100 * (0.6 * data_quality + 0.4 * score_confidence)))

    def _apply_code_quality(self, metrics: CodeQualityMetrics, narrative: Narrative) -> None:
        for issue in metrics.issues:
            narrative.notes.append(f"Code quality: {issue}")
        if metrics.total_files_analyzed > 0:
            narrative.notes.append(
                f"Code quality score {metrics.quality_score}/100 "
                f"over {metrics.total_files_analyzed} files"
            )
            if metrics.quality_score < LOW_QUALITY_THRESHOLD:
                narrative.risks.append(f"Low code quality score ({metrics.quality_score}/100)")
