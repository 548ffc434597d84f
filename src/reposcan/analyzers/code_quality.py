"""Code quality metrics over a sample of source files.

Complexity and comment density are estimated from token and line
patterns, not parsed. The numbers are only meant to separate tidy
codebases from sprawling ones.
"""

import logging
import re
from typing import NamedTuple

from reposcan.analyzers.base import ContentFetcher, FileSampler, round_half_up
from reposcan.analyzers.tables import QUALITY_EXTENSIONS
from reposcan.models.schemas import CodeQualityMetrics, FileEntry, RepositorySnapshot

logger = logging.getLogger(__name__)

LARGE_FILE_BYTES = 50_000

C_FAMILY_EXTENSIONS = (
    ".js", ".ts", ".jsx", ".tsx", ".java", ".c", ".cpp", ".cs",
    ".go", ".rs", ".swift", ".kt", ".scala", ".php",
)

# Branching and boolean tokens per language family
C_FAMILY_BRANCHES = (
    r"\bif\b", r"\bfor\b", r"\bwhile\b", r"\bcase\b", r"\bcatch\b",
    r"\s\?\s[^:\n]*\s:\s", r"&&", r"\|\|",
)
PYTHON_BRANCHES = (
    r"\bif\b", r"\belif\b", r"\bfor\b", r"\bwhile\b", r"\bexcept\b", r"\band\b", r"\bor\b",
)
RUBY_BRANCHES = (
    r"\bif\b", r"\belsif\b", r"\bunless\b", r"\bwhile\b", r"\buntil\b", r"\brescue\b",
    r"&&", r"\|\|",
)

STEM_EXTENSIONS = re.compile(r"\.(js|ts|jsx|tsx|py|rb|java)$")


class FileMetrics(NamedTuple):
    """Measurements for one file."""

    name: str
    size: int
    complexity: int
    comment_lines: int
    code_lines: int

    @property
    def comment_ratio(self) -> float:
        return self.comment_lines / self.code_lines if self.code_lines > 0 else 0.0


def _count(patterns: tuple[str, ...], content: str) -> int:
    return sum(len(re.findall(p, content)) for p in patterns)


def _block_lines(pattern: str, content: str) -> int:
    return sum(m.group(0).count("\n") + 1 for m in re.finditer(pattern, content))


def cyclomatic_complexity(content: str, filename: str) -> int:
    """Approximate cyclomatic complexity: 1 + branching tokens."""
    if filename.endswith(".py"):
        patterns = PYTHON_BRANCHES
    elif filename.endswith(".rb"):
        patterns = RUBY_BRANCHES
    else:
        patterns = C_FAMILY_BRANCHES
    return 1 + _count(patterns, content)


def count_comment_lines(content: str, filename: str) -> int:
    """Count comment lines using the file's comment syntax."""
    if filename.endswith(".py"):
        return (
            len(re.findall(r"^\s*#", content, re.MULTILINE))
            + _block_lines(r"(?:'''|\"\"\")[\s\S]*?(?:'''|\"\"\")", content)
        )
    if filename.endswith(".rb"):
        return (
            len(re.findall(r"^\s*#", content, re.MULTILINE))
            + _block_lines(r"(?m)^=begin[\s\S]*?^=end", content)
        )
    if filename.endswith(C_FAMILY_EXTENSIONS):
        count = len(re.findall(r"^\s*//", content, re.MULTILINE))
        count += _block_lines(r"/\*[\s\S]*?\*/", content)
        if filename.endswith(".php"):
            count += len(re.findall(r"^\s*#", content, re.MULTILINE))
        return count
    return 0


def measure_file(content: str, entry: FileEntry) -> FileMetrics:
    """Compute size, complexity and comment counts for one file."""
    non_empty = [line for line in content.split("\n") if line.strip()]
    comment_lines = count_comment_lines(content, entry.name)
    return FileMetrics(
        name=entry.name,
        size=entry.size or len(content.encode("utf-8")),
        complexity=cyclomatic_complexity(content, entry.name),
        comment_lines=comment_lines,
        code_lines=max(0, len(non_empty) - comment_lines),
    )


def duplication_risk(files: list[FileMetrics]) -> int:
    """Estimate duplication from clustering of sizes, complexity and names.

    Weighted 40% share of files within 10% of the mean size, 30% share
    within 3 of the mean complexity, 30% share with a name stem contained
    in another file's stem.
    """
    if len(files) < 2:
        return 0

    avg_size = sum(f.size for f in files) / len(files)
    avg_complexity = sum(f.complexity for f in files) / len(files)

    similar_size = sum(1 for f in files if abs(f.size - avg_size) < avg_size * 0.1)
    similar_complexity = sum(1 for f in files if abs(f.complexity - avg_complexity) < 3)

    names = [f.name.lower() for f in files]
    stems = [STEM_EXTENSIONS.sub("", n) for n in names]
    similar_names = set()
    for i in range(len(stems)):
        for j in range(i + 1, len(stems)):
            if stems[i] in stems[j] or stems[j] in stems[i]:
                similar_names.add(i)
                similar_names.add(j)

    risk = (
        similar_size / len(files) * 40
        + similar_complexity / len(files) * 30
        + len(similar_names) / len(files) * 30
    )
    return int(round_half_up(risk))


def quality_score(metrics: CodeQualityMetrics) -> int:
    """Derive the 0-100 quality score from aggregate metrics."""
    score = 100

    if metrics.avg_complexity > 20:
        score -= 30
    elif metrics.avg_complexity > 15:
        score -= 20
    elif metrics.avg_complexity > 10:
        score -= 10

    if metrics.comment_ratio < 0.05:
        score -= 20
    elif metrics.comment_ratio < 0.10:
        score -= 10
    elif metrics.comment_ratio > 0.20:
        score += 10

    if metrics.large_files_count > 10:
        score -= 20
    elif metrics.large_files_count > 5:
        score -= 10

    if metrics.avg_file_size > 50_000:
        score -= 15
    elif metrics.avg_file_size > 30_000:
        score -= 10

    if metrics.code_duplication_risk > 40:
        score -= 20
    elif metrics.code_duplication_risk > 30:
        score -= 10

    return max(0, min(100, score))


def aggregate_metrics(files: list[FileMetrics]) -> CodeQualityMetrics:
    """Fold per-file measurements into repository metrics."""
    if not files:
        return CodeQualityMetrics(quality_score=50, issues=["Unable to analyze any files"])

    count = len(files)
    metrics = CodeQualityMetrics(
        total_files_analyzed=count,
        avg_file_size=int(round_half_up(sum(f.size for f in files) / count)),
        avg_complexity=int(round_half_up(sum(f.complexity for f in files) / count)),
        comment_ratio=round_half_up(sum(f.comment_ratio for f in files) / count, 2),
        large_files_count=sum(1 for f in files if f.size > LARGE_FILE_BYTES),
        code_duplication_risk=duplication_risk(files),
    )

    issues = []
    if metrics.avg_complexity > 15:
        issues.append(f"High average cyclomatic complexity: {metrics.avg_complexity}")
    if metrics.comment_ratio < 0.05:
        issues.append(f"Low comment ratio: {metrics.comment_ratio * 100:.1f}%")
    if metrics.large_files_count > 5:
        issues.append(f"{metrics.large_files_count} files exceed 50KB")
    if metrics.avg_file_size > 30_000:
        issues.append(f"Large average file size: {metrics.avg_file_size / 1000:.1f}KB")
    if metrics.code_duplication_risk > 30:
        issues.append(f"High code duplication risk: {metrics.code_duplication_risk}%")

    return metrics.model_copy(update={"quality_score": quality_score(metrics), "issues": issues})


class CodeQualityAnalyzer(FileSampler):
    """Samples code files and reports aggregate quality metrics."""

    name = "code_quality"

    def __init__(self, fetcher: ContentFetcher, max_files: int = 30) -> None:
        super().__init__(fetcher, max_files)

    async def analyze(self, snapshot: RepositorySnapshot) -> CodeQualityMetrics:
        """Measure the sampled files of a snapshot."""
        entries = self.code_files(snapshot, QUALITY_EXTENSIONS)
        if not entries:
            return CodeQualityMetrics(quality_score=50, issues=["No code files found to analyze"])

        measured = []
        for entry, content in await self.fetch_contents(snapshot, entries):
            try:
                measured.append(measure_file(content, entry))
            except Exception as e:
                logger.warning(f"[{self.name}] Error analyzing {entry.path}: {e}")

        logger.debug(f"Measured {len(measured)} of {len(entries)} sampled files")
        return aggregate_metrics(measured)
