"""Parsers for dependency manifests."""

import json
import re

from pydantic import BaseModel, ConfigDict, Field

# Leading distribution name of a requirements.txt line
REQUIREMENT_NAME = re.compile(r"^([A-Za-z0-9][A-Za-z0-9._-]*)")


class PackageJson(BaseModel):
    """The parts of a package.json the scanners look at."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str | None = None
    license: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)
    dev_dependencies: dict[str, str] = Field(default_factory=dict, alias="devDependencies")
    peer_dependencies: dict[str, str] = Field(default_factory=dict, alias="peerDependencies")

    @property
    def all_dependencies(self) -> dict[str, str]:
        """Runtime and development dependencies together."""
        return {**self.dependencies, **self.dev_dependencies}


class Requirement(BaseModel):
    """One requirement from a requirements.txt file."""

    name: str
    line: int
    specifier: str = ""


def _string_map(value: object) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in value.items()}


def parse_package_json(content: str) -> PackageJson:
    """Parse package.json content.

    Raises:
        ValueError: If the content is not a JSON object.
    """
    data = json.loads(content)
    if not isinstance(data, dict):
        raise ValueError("package.json is not a JSON object")

    license_value = data.get("license")
    if isinstance(license_value, dict):
        license_value = license_value.get("type")

    return PackageJson(
        name=data.get("name") if isinstance(data.get("name"), str) else None,
        license=license_value if isinstance(license_value, str) else None,
        dependencies=_string_map(data.get("dependencies")),
        dev_dependencies=_string_map(data.get("devDependencies")),
        peer_dependencies=_string_map(data.get("peerDependencies")),
    )


def normalize_pypi_name(name: str) -> str:
    """Normalize a distribution name the way PyPI compares them."""
    return re.sub(r"[-_.]+", "-", name).lower()


def parse_requirements(content: str) -> list[Requirement]:
    """Parse requirements.txt content into named requirements.

    Comments, blank lines, options (``-r``, ``--index-url``) and URL or
    path requirements are skipped.
    """
    requirements = []
    for lineno, raw in enumerate(content.splitlines(), start=1):
        line = raw.split("#", 1)[0].strip()
        if not line or line.startswith("-"):
            continue
        match = REQUIREMENT_NAME.match(line)
        if not match or "://" in line:
            continue
        name = match.group(1)
        requirements.append(
            Requirement(
                name=normalize_pypi_name(name),
                line=lineno,
                specifier=line[len(name):].strip(),
            )
        )
    return requirements
