"""
Tests for the code quality analyzer.
"""

import pytest

from conftest import FakeFetcher, make_snapshot
from reposcan.analyzers.code_quality import (
    CodeQualityAnalyzer,
    FileMetrics,
    aggregate_metrics,
    count_comment_lines,
    cyclomatic_complexity,
    duplication_risk,
    measure_file,
    quality_score,
)
from reposcan.models.schemas import CodeQualityMetrics, FileEntry

PY_SOURCE = '''# helper module
def f(x):
    if x and x > 1:
        return 1
    return 0
'''

JS_SOURCE = """// entry point
/* multi
   line */
function g(a) {
  if (a || b) { return 1; }
  for (let i = 0; i < 3; i++) {}
}
"""


def test_python_complexity():
    # 1 + if + and
    assert cyclomatic_complexity(PY_SOURCE, "helper.py") == 3


def test_c_family_complexity():
    # 1 + if + || + for
    assert cyclomatic_complexity(JS_SOURCE, "index.js") == 4


def test_comment_lines_by_language():
    assert count_comment_lines(PY_SOURCE, "helper.py") == 1
    assert count_comment_lines(JS_SOURCE, "index.js") == 3
    assert count_comment_lines("=begin\nnotes\n=end\nputs 1\n", "x.rb") == 3
    assert count_comment_lines("# not a comment here", "notes.txt") == 0


def test_measure_file():
    metrics = measure_file(PY_SOURCE, FileEntry(name="helper.py", path="lib/helper.py"))

    assert metrics.comment_lines == 1
    assert metrics.code_lines == 4
    assert metrics.size == len(PY_SOURCE.encode("utf-8"))
    assert metrics.comment_ratio == 0.25


def test_duplication_needs_two_files():
    assert duplication_risk([FileMetrics("a.py", 100, 3, 1, 10)]) == 0


def test_identical_files_have_high_duplication():
    files = [FileMetrics("user.py", 1000, 5, 1, 50), FileMetrics("user_test.py", 1000, 5, 1, 50)]
    assert duplication_risk(files) == 100


def test_quality_score_penalties():
    metrics = CodeQualityMetrics(
        avg_complexity=25,
        comment_ratio=0.01,
        large_files_count=12,
        avg_file_size=60_000,
        code_duplication_risk=50,
    )
    assert quality_score(metrics) == 0


def test_quality_score_rewards_comments():
    assert quality_score(CodeQualityMetrics(avg_complexity=5, comment_ratio=0.3)) == 100
    assert quality_score(CodeQualityMetrics(avg_complexity=12, comment_ratio=0.07)) == 80


def test_aggregate_metrics_reports_issues():
    files = [FileMetrics(f"mod{i}.py", 60_000, 30, 0, 100) for i in range(7)]
    metrics = aggregate_metrics(files)

    assert metrics.total_files_analyzed == 7
    assert metrics.large_files_count == 7
    assert "High average cyclomatic complexity: 30" in metrics.issues
    assert "7 files exceed 50KB" in metrics.issues
    assert "Low comment ratio: 0.0%" in metrics.issues


def test_aggregate_of_nothing():
    metrics = aggregate_metrics([])
    assert metrics.total_files_analyzed == 0
    assert metrics.quality_score == 50


@pytest.mark.asyncio
async def test_no_code_files(empty_snapshot):
    metrics = await CodeQualityAnalyzer(FakeFetcher()).analyze(empty_snapshot)

    assert metrics.total_files_analyzed == 0
    assert metrics.quality_score == 50
    assert metrics.issues == ["No code files found to analyze"]


@pytest.mark.asyncio
async def test_analyze_samples_code_files():
    snapshot = make_snapshot(listing=("helper.py", "index.js", "README.md", "Main.scala"))
    fetcher = FakeFetcher(files={
        "helper.py": PY_SOURCE,
        "index.js": JS_SOURCE,
        "Main.scala": "object Main { def main() = {} }\n",
    })

    metrics = await CodeQualityAnalyzer(fetcher).analyze(snapshot)

    assert metrics.total_files_analyzed == 3
    assert "README.md" not in fetcher.requested
    assert 0 <= metrics.quality_score <= 100


@pytest.mark.asyncio
async def test_analyze_with_unreadable_files():
    snapshot = make_snapshot(listing=("a.py",))
    metrics = await CodeQualityAnalyzer(FakeFetcher(failing=("a.py",))).analyze(snapshot)

    assert metrics.total_files_analyzed == 0
    assert metrics.issues == ["Unable to analyze any files"]
