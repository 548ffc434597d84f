"""Embedded reference tables used by the analyzers.

Everything here is immutable. Analyzers take these as constructor
defaults, so tests can inject their own tables.
"""

from types import MappingProxyType
from typing import NamedTuple

from reposcan.models.schemas import Severity


class KnownBadPackage(NamedTuple):
    """A package release known to be malicious or compromised."""

    severity: Severity
    reason: str
    cve_id: str | None = None


# === File Classification ===

CODE_EXTENSIONS = (
    ".js", ".ts", ".jsx", ".tsx", ".py", ".rs", ".go", ".java",
    ".c", ".cpp", ".cs", ".php", ".rb", ".swift", ".kt",
)

# The quality analyzer also samples Scala sources
QUALITY_EXTENSIONS = CODE_EXTENSIONS + (".scala",)

# Files above this size are never sampled for content scanning
MAX_SCANNABLE_FILE_SIZE = 1_000_000

MANIFEST_FILES = frozenset({
    "package.json",
    "requirements.txt",
    "Cargo.toml",
    "go.mod",
    "pom.xml",
    "build.gradle",
})

LOCK_FILES = frozenset({
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "Cargo.lock",
    "go.sum",
    "poetry.lock",
    "Pipfile.lock",
})

# Which lock files satisfy which manifest
MANIFEST_LOCK_FILES = MappingProxyType({
    "package.json": frozenset({"package-lock.json", "yarn.lock", "pnpm-lock.yaml"}),
    "requirements.txt": frozenset({"poetry.lock", "Pipfile.lock"}),
    "Cargo.toml": frozenset({"Cargo.lock"}),
    "go.mod": frozenset({"go.sum"}),
    "pom.xml": frozenset(),
    "build.gradle": frozenset(),
})

ENV_TEMPLATE_FILES = frozenset({".env.example", ".env.sample", "env.example"})

SCRIPT_EXTENSIONS = (".sh", ".bat", ".cmd", ".ps1")

# (extension, penalty, risk message)
DANGEROUS_BINARY_EXTENSIONS = (
    (".exe", 30, "Contains Windows executables (.exe)"),
    (".dll", 25, "Contains DLL files"),
    (".so", 20, "Contains shared object files (.so)"),
    (".dylib", 20, "Contains dynamic libraries (.dylib)"),
    (".bin", 25, "Contains binary files (.bin)"),
)

TEST_INDICATORS = ("test", "spec", "__tests__", ".test.", ".spec.")

EXAMPLE_DIR_INDICATORS = ("examples", "example", "demo", "demos", "samples")

CI_INDICATORS = (".github", ".gitlab-ci.yml", ".travis.yml", "azure-pipelines.yml", ".circleci")

POPULAR_LICENSE_FAMILIES = ("MIT", "Apache", "GPL", "BSD", "ISC", "Mozilla")

PERMISSIVE_LICENSES = ("MIT", "Apache-2.0", "BSD", "ISC")


# === Package Tables ===

KNOWN_BAD_PACKAGES = MappingProxyType({
    "npm": MappingProxyType({
        "node-ipc": KnownBadPackage(
            Severity.CRITICAL,
            "Protestware releases overwrote files on Russian and Belarusian hosts",
            "CVE-2022-23812",
        ),
        "event-stream": KnownBadPackage(
            Severity.CRITICAL,
            "Compromised release pulled in the flatmap-stream wallet-stealing backdoor",
        ),
        "flatmap-stream": KnownBadPackage(
            Severity.CRITICAL,
            "Malicious package that shipped a cryptocurrency wallet stealer",
        ),
        "crossenv": KnownBadPackage(
            Severity.CRITICAL,
            "Typosquat of cross-env that exfiltrated environment variables",
        ),
        "ua-parser-js": KnownBadPackage(
            Severity.HIGH,
            "Hijacked releases installed a cryptominer and password stealer",
        ),
        "coa": KnownBadPackage(
            Severity.HIGH,
            "Hijacked releases ran a credential-stealing install script",
        ),
        "rc": KnownBadPackage(
            Severity.HIGH,
            "Hijacked releases ran a credential-stealing install script",
        ),
        "colors": KnownBadPackage(
            Severity.HIGH,
            "Sabotaged release loops forever printing garbage output",
        ),
        "faker": KnownBadPackage(
            Severity.HIGH,
            "Sabotaged release removed all functionality",
        ),
    }),
    "pypi": MappingProxyType({
        "ctx": KnownBadPackage(
            Severity.CRITICAL,
            "Hijacked releases exfiltrated environment variables",
        ),
        "jeilyfish": KnownBadPackage(
            Severity.CRITICAL,
            "Typosquat of jellyfish that stole SSH and GPG keys",
        ),
        "python3-dateutil": KnownBadPackage(
            Severity.CRITICAL,
            "Typosquat of python-dateutil that stole SSH and GPG keys",
        ),
        "colourama": KnownBadPackage(
            Severity.CRITICAL,
            "Typosquat of colorama that hijacked cryptocurrency addresses",
        ),
    }),
})

DEPRECATED_NPM_PACKAGES = frozenset({
    "request",
    "node-uuid",
    "babel-preset-es2015",
    "babel-preset-es2016",
    "babel-preset-es2017",
    "gulp-util",
    "natives",
    "coffeescript",
    "babel-preset-stage-0",
    "babel-preset-stage-1",
    "babel-preset-stage-2",
    "babel-preset-stage-3",
})

DEPRECATED_PYPI_PACKAGES = frozenset({
    "pycrypto",
    "python-oauth2",
    "django-guardian",
    "nose",
    "optparse",
    "imp",
})

# Typosquatting targets. Well-known packages that sit one edit away from
# another entry are listed too, so neither gets flagged.
POPULAR_NPM_PACKAGES = frozenset({
    "react", "preact", "react-dom", "react-dnd", "react-router", "react-redux",
    "lodash", "lodash-es", "axios", "express", "webpack", "webpack-cli",
    "typescript", "eslint", "tslint", "prettier", "jquery", "moment",
    "chalk", "commander", "mocha", "redux", "rxjs", "mongoose", "nodemon",
    "dotenv", "cross-env", "socket.io", "underscore", "bluebird", "yargs",
    "classnames", "core-js", "body-parser", "babel-loader", "css-loader",
    "style-loader", "jsonwebtoken", "nodemailer", "puppeteer", "angular",
    "svelte", "vuex", "graphql", "sequelize", "inquirer",
})

POPULAR_PYPI_PACKAGES = frozenset({
    "requests", "numpy", "pandas", "django", "flask", "urllib3",
    "setuptools", "boto3", "botocore", "pyyaml", "cryptography", "pytest",
    "scipy", "scapy", "matplotlib", "pillow", "sqlalchemy", "fastapi",
    "pydantic", "httpx", "python-dateutil", "colorama", "jellyfish",
    "beautifulsoup4", "selenium", "tensorflow", "torch", "scikit-learn",
    "aiohttp", "celery", "redis", "psycopg2", "psycopg", "paramiko",
    "click", "rich", "typer", "uvicorn", "gunicorn",
})

SUSPICIOUS_NAME_PATTERNS = (
    r"^@[a-z0-9-]+/[a-z0-9-]+-official$",
    r"^@types/[a-z]+-types$",
)
