"""
Tests for the dependency, code pattern and configuration analyzers.
"""

import json

import pytest

from conftest import FakeFetcher, entries, make_snapshot
from reposcan.analyzers.advanced_patterns import AdvancedPatternDetector
from reposcan.analyzers.aggregator import aggregate, summarize
from reposcan.analyzers.base import line_number, round_half_up
from reposcan.analyzers.code_patterns import CodePatternDetector
from reposcan.analyzers.configuration import ConfigurationScanner
from reposcan.analyzers.dependencies import DependencyScanner
from reposcan.models.schemas import Severity, Vulnerability, VulnerabilityType


def _descriptions(findings: list[Vulnerability]) -> list[str]:
    return [f.description for f in findings]


# --- Shared helpers ---


def test_line_number_is_one_based():
    content = "a\nb\nc"
    assert line_number(content, 0) == 1
    assert line_number(content, content.index("c")) == 3


def test_round_half_up():
    assert round_half_up(0.5) == 1
    assert round_half_up(1.5) == 2
    assert round_half_up(0.125, 2) == 0.13


# --- Dependency scanner ---


@pytest.mark.asyncio
async def test_manifest_without_lock_file():
    snapshot = make_snapshot(listing=("package.json",))
    fetcher = FakeFetcher(files={"package.json": json.dumps({"dependencies": {}})})

    findings = await DependencyScanner(fetcher).analyze(snapshot)

    assert len(findings) == 1
    assert findings[0].description == "package.json has no lock file"
    assert findings[0].severity == Severity.LOW
    assert findings[0].type == VulnerabilityType.DEPENDENCY


@pytest.mark.asyncio
async def test_known_bad_npm_package():
    snapshot = make_snapshot(listing=("package.json", "package-lock.json"))
    manifest = {"dependencies": {"node-ipc": "^10.1.0", "left-pad": "*"}}
    fetcher = FakeFetcher(files={"package.json": json.dumps(manifest)})

    findings = await DependencyScanner(fetcher).analyze(snapshot)

    bad = [f for f in findings if "node-ipc" in f.description]
    assert len(bad) == 1
    assert bad[0].severity == Severity.CRITICAL
    assert bad[0].cve_id == "CVE-2022-23812"
    assert "Unpinned dependency version: left-pad@*" in _descriptions(findings)


@pytest.mark.asyncio
async def test_known_bad_pypi_package_has_line_location():
    snapshot = make_snapshot(listing=("requirements.txt", "poetry.lock"))
    fetcher = FakeFetcher(files={"requirements.txt": "# pinned\nflask==3.0\nctx==0.1.2\n"})

    findings = await DependencyScanner(fetcher).analyze(snapshot)

    assert len(findings) == 1
    assert findings[0].location == "requirements.txt:3"
    assert findings[0].severity == Severity.CRITICAL


@pytest.mark.asyncio
async def test_invalid_package_json_is_skipped():
    snapshot = make_snapshot(listing=("package.json", "yarn.lock"))
    fetcher = FakeFetcher(files={"package.json": "{not json"})

    assert await DependencyScanner(fetcher).analyze(snapshot) == []


# --- Code pattern detector ---


def test_detects_secret_and_eval():
    content = 'import os\npassword = "hunter2hunter2"\nresult = eval(user_input)\n'
    findings = CodePatternDetector(FakeFetcher()).scan_content(content, "app.py")

    by_description = {f.description: f for f in findings}
    assert by_description["Potential hardcoded password"].location == "app.py:2"
    assert by_description["Potential hardcoded password"].severity == Severity.CRITICAL
    assert by_description["Use of eval() function"].location == "app.py:3"


def test_short_password_is_not_a_secret():
    findings = CodePatternDetector(FakeFetcher()).scan_content('password = "abc"\n', "a.py")
    assert findings == []


def test_each_match_is_reported():
    content = "os.system(a)\nx = 1\nos.system(b)\n"
    findings = CodePatternDetector(FakeFetcher()).scan_content(content, "run.py")
    assert [f.location for f in findings] == ["run.py:1", "run.py:3"]


def test_sql_concatenation():
    content = 'cursor.execute("SELECT * FROM users WHERE id = " + user_id)\n'
    findings = CodePatternDetector(FakeFetcher()).scan_content(content, "db.py")
    assert "Potential SQL injection vulnerability" in _descriptions(findings)


def test_pickle_only_flagged_by_advanced_detector():
    content = "data = pickle.loads(blob)\n"
    basic = CodePatternDetector(FakeFetcher()).scan_content(content, "x.py")
    advanced = AdvancedPatternDetector(FakeFetcher()).scan_content(content, "x.py")

    assert basic == []
    assert "Unsafe deserialization in Python" in _descriptions(advanced)


@pytest.mark.asyncio
async def test_failing_file_does_not_stop_scan():
    snapshot = make_snapshot(listing=("a.py", "b.py"))
    fetcher = FakeFetcher(files={"b.py": "eval(x)\n"}, failing=("a.py",))

    findings = await CodePatternDetector(fetcher).analyze(snapshot)

    assert [f.location for f in findings] == ["b.py:1"]


@pytest.mark.asyncio
async def test_file_sample_is_bounded():
    paths = tuple(f"src/m{i}.py" for i in range(25))
    snapshot = make_snapshot(listing=("src/",), tree=paths + ("README.md",))
    fetcher = FakeFetcher()

    await CodePatternDetector(fetcher, max_files=20).analyze(snapshot)

    assert len(fetcher.requested) == 20
    assert "README.md" not in fetcher.requested


# --- Advanced pattern detector ---


def test_weak_crypto():
    findings = AdvancedPatternDetector(FakeFetcher()).scan_content(
        "digest = hashlib.md5(data).hexdigest()\n", "h.py"
    )
    assert _descriptions(findings) == ["Weak MD5 hash algorithm"]
    assert findings[0].severity == Severity.MEDIUM


def test_yaml_load_requires_loader():
    detector = AdvancedPatternDetector(FakeFetcher())
    unsafe = detector.scan_content("cfg = yaml.load(f)\n", "c.py")
    safe = detector.scan_content("cfg = yaml.load(f, Loader=yaml.SafeLoader)\n", "c.py")

    assert "Unsafe deserialization in Python" in _descriptions(unsafe)
    assert safe == []


def test_c_memory_safety():
    content = "char buf[10];\nstrcpy(buf, src);\nchar *p = malloc(10);\n"
    findings = AdvancedPatternDetector(FakeFetcher()).scan_content(content, "main.c")

    by_description = {f.description: f for f in findings}
    assert by_description["Unsafe function: strcpy()"].location == "main.c:2"
    assert by_description["Potential memory leak"].location == "main.c:3"


def test_freed_allocation_is_not_a_leak():
    content = "char *p = malloc(10);\nfree(p);\n"
    findings = AdvancedPatternDetector(FakeFetcher()).scan_content(content, "main.c")
    assert "Potential memory leak" not in _descriptions(findings)


def test_python_toctou():
    content = "if os.path.exists(path):\n    with open(path) as f:\n        pass\n"
    findings = AdvancedPatternDetector(FakeFetcher()).scan_content(content, "io.py")
    assert "Potential TOCTOU in file operations" in _descriptions(findings)


# --- Configuration scanner ---


@pytest.mark.asyncio
async def test_committed_env_file():
    snapshot = make_snapshot(listing=(".env",))
    fetcher = FakeFetcher(files={".env": "API_KEY=abc123\n"})

    findings = await ConfigurationScanner(fetcher).analyze(snapshot)

    env = [f for f in findings if f.description == "Environment file (.env) committed to repository"]
    assert len(env) == 1
    assert env[0].severity == Severity.CRITICAL
    assert env[0].location == ".env"
    assert "Potential API key exposed in .env file" in _descriptions(findings)


@pytest.mark.asyncio
async def test_env_file_found_in_listing_and_tree_once():
    snapshot = make_snapshot(listing=(".env",), tree=(".env", "config/.env"))
    findings = await ConfigurationScanner(FakeFetcher()).analyze(snapshot)

    locations = sorted(
        f.location for f in findings
        if f.description == "Environment file (.env) committed to repository"
    )
    assert locations == [".env", "config/.env"]


@pytest.mark.asyncio
async def test_dockerfile_checks():
    snapshot = make_snapshot(listing=("Dockerfile",))
    fetcher = FakeFetcher(files={"Dockerfile": "FROM node:latest\nRUN npm ci\n"})

    findings = await ConfigurationScanner(fetcher).analyze(snapshot)

    by_description = {f.description: f for f in findings}
    assert by_description["Docker image using :latest tag"].location == "Dockerfile:1"
    assert by_description["Dockerfile runs as root user"].location == "Dockerfile"


def test_dockerfile_with_non_root_user():
    content = "FROM python:3.12-slim\nUSER app\nCMD [\"python\"]\n"
    findings = ConfigurationScanner(FakeFetcher()).scan_dockerfile(content, "Dockerfile")
    assert findings == []


def test_dockerfile_switching_back_to_root():
    content = "FROM python:3.12\nUSER app\nRUN x\nUSER root\n"
    findings = ConfigurationScanner(FakeFetcher()).scan_dockerfile(content, "Dockerfile")
    assert [f.location for f in findings] == ["Dockerfile:4"]


@pytest.mark.asyncio
async def test_workflow_from_tree():
    workflow = (
        "on: issues\n"
        "jobs:\n"
        "  greet:\n"
        "    steps:\n"
        "      - run: echo \"${{ github.event.issue.title }}\"\n"
    )
    snapshot = make_snapshot(listing=(".github/",), tree=(".github/workflows/greet.yml",))
    fetcher = FakeFetcher(files={".github/workflows/greet.yml": workflow})

    findings = await ConfigurationScanner(fetcher).analyze(snapshot)

    by_description = {f.description: f for f in findings}
    injection = by_description["Potential script injection in GitHub Actions"]
    assert injection.location == ".github/workflows/greet.yml:5"
    assert "No explicit permissions in GitHub Actions workflow" in by_description


@pytest.mark.asyncio
async def test_workflow_listed_when_tree_missing():
    snapshot = make_snapshot(listing=(".github/",))
    fetcher = FakeFetcher(
        files={".github/workflows/ci.yml": "permissions: read-all\nrun: echo $GITHUB_TOKEN\n"},
        directories={".github/workflows": list(entries(".github/workflows/ci.yml"))},
    )

    findings = await ConfigurationScanner(fetcher).analyze(snapshot)

    assert _descriptions(findings) == ["GITHUB_TOKEN potentially exposed in logs"]


@pytest.mark.asyncio
async def test_express_without_helmet():
    snapshot = make_snapshot(listing=("server.js",))
    fetcher = FakeFetcher(files={"server.js": "const app = express();\napp.listen(3000);\n"})

    findings = await ConfigurationScanner(fetcher).analyze(snapshot)

    assert _descriptions(findings) == ["Express app without helmet security headers"]
    assert findings[0].location == "server.js:1"


def test_express_with_helmet():
    content = "const app = express();\napp.use(helmet());\n"
    assert ConfigurationScanner(FakeFetcher()).scan_web_entry(content, "app.js") == []


def test_nginx_config():
    content = "server {\n  server_tokens on;\n}\n"
    findings = ConfigurationScanner(FakeFetcher()).scan_nginx_config(content, "nginx.conf")
    assert sorted(_descriptions(findings)) == [
        "Missing X-Frame-Options header in nginx config",
        "Nginx server tokens enabled",
    ]


# --- Aggregator ---


def test_summary_counts_are_consistent():
    vulns = aggregate([
        [Vulnerability(severity="critical", type="dependency", description="a", location="x")],
        [],
        [
            Vulnerability(severity="low", type="configuration", description="b", location="y"),
            Vulnerability(severity="low", type="code_pattern", description="c", location="z"),
        ],
    ])
    summary = summarize(vulns)

    assert summary.total_count == len(vulns) == 3
    assert summary.total_count == (
        summary.critical_count + summary.high_count + summary.medium_count + summary.low_count
    )
    assert summary.total_count == sum(summary.by_type.model_dump().values())
    assert summary.critical_count == 1
    assert summary.low_count == 2
    assert summary.by_type.configuration == 1


def test_empty_summary():
    summary = summarize([])
    assert summary.total_count == 0
    assert summary.by_type.dependency == 0
