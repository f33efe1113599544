"""Dependency manifest parsing.

Extracts declared dependency names from:
- package.json (JavaScript/TypeScript)
- requirements.txt, pyproject.toml (Python)
- go.mod (Go)
- Cargo.toml (Rust)

Malformed manifests parse to an empty result; nothing here raises.
"""

import json
import logging
import re
import tomllib
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from repolens.classifier.patterns import Ecosystem

logger = logging.getLogger(__name__)

ManifestReader = Callable[[str], str | None]

_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")
_GO_MAJOR_SUFFIX = re.compile(r"/v\d+$")


@dataclass
class ManifestInfo:
    """Dependencies and package-level facts read from a repository's manifests.

    Attributes:
        dependencies: Declared dependency names (lowercase) per ecosystem
        package_json: Parsed package.json, if present and valid
        has_python_build_system: pyproject.toml declares [build-system]
        manifests_read: Manifest names that parsed successfully
    """

    dependencies: dict[str, set[str]] = field(default_factory=dict)
    package_json: dict[str, Any] | None = None
    has_python_build_system: bool = False
    manifests_read: list[str] = field(default_factory=list)

    def add(self, ecosystem: str, names: set[str]) -> None:
        """Add dependency names for an ecosystem."""
        self.dependencies.setdefault(ecosystem, set()).update(names)

    def names(self, ecosystem: str | None = None) -> set[str]:
        """Return declared names for one ecosystem, or all of them."""
        if ecosystem is not None:
            return self.dependencies.get(ecosystem, set())
        merged: set[str] = set()
        for names in self.dependencies.values():
            merged.update(names)
        return merged


def _normalize_python_name(name: str) -> str:
    return re.sub(r"[-_.]+", "-", name).lower()


def parse_package_json(content: str) -> dict[str, Any] | None:
    """Parse package.json; None if it is not a JSON object."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        logger.debug("Malformed package.json: %s", e)
        return None
    return data if isinstance(data, dict) else None


def package_json_dependencies(data: dict[str, Any]) -> set[str]:
    """Return dependency and devDependency names from package.json."""
    names: set[str] = set()
    for section in ("dependencies", "devDependencies"):
        deps = data.get(section)
        if isinstance(deps, dict):
            names.update(str(name).lower() for name in deps)
    return names


def parse_requirements_txt(content: str) -> set[str]:
    """Parse requirement names from requirements.txt."""
    names: set[str] = set()
    for line in content.splitlines():
        line = line.split("#", 1)[0].strip()
        # Skip options (-r, -e, --index-url) and URLs
        if not line or line.startswith("-") or "://" in line:
            continue
        match = _REQUIREMENT_NAME.match(line)
        if match:
            names.add(_normalize_python_name(match.group(1)))
    return names


def parse_pyproject_toml(content: str) -> tuple[set[str], bool] | None:
    """Parse pyproject.toml.

    Returns:
        Tuple of (dependency names, declares [build-system]), or None if malformed
    """
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        logger.debug("Malformed pyproject.toml: %s", e)
        return None

    names: set[str] = set()
    project = data.get("project", {})
    requirement_lists: list[Any] = [project.get("dependencies", [])]
    optional = project.get("optional-dependencies", {})
    if isinstance(optional, dict):
        requirement_lists.extend(optional.values())

    for requirements in requirement_lists:
        if not isinstance(requirements, list):
            continue
        for requirement in requirements:
            match = _REQUIREMENT_NAME.match(str(requirement))
            if match:
                names.add(_normalize_python_name(match.group(1)))

    # Poetry declares dependencies as table keys
    poetry = data.get("tool", {}).get("poetry", {})
    for section in ("dependencies", "dev-dependencies"):
        table = poetry.get(section, {})
        if isinstance(table, dict):
            names.update(_normalize_python_name(n) for n in table if n.lower() != "python")

    return names, "build-system" in data


def parse_go_mod(content: str) -> set[str]:
    """Parse module paths from go.mod require directives, without major version suffixes."""
    names: set[str] = set()

    for block in re.finditer(r"^require\s*\((.*?)\)", content, re.DOTALL | re.MULTILINE):
        for line in block.group(1).splitlines():
            line = line.strip()
            if line and not line.startswith("//"):
                names.add(line.split()[0])

    for match in re.finditer(r"^require\s+([^\s(]+)\s+\S+", content, re.MULTILINE):
        names.add(match.group(1))

    return {_GO_MAJOR_SUFFIX.sub("", name).lower() for name in names}


def parse_cargo_toml(content: str) -> set[str] | None:
    """Parse crate names from Cargo.toml; None if malformed."""
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        logger.debug("Malformed Cargo.toml: %s", e)
        return None

    names: set[str] = set()
    for section in ("dependencies", "dev-dependencies", "build-dependencies"):
        table = data.get(section, {})
        if isinstance(table, dict):
            names.update(str(name).lower() for name in table)
    workspace_deps = data.get("workspace", {}).get("dependencies", {})
    if isinstance(workspace_deps, dict):
        names.update(str(name).lower() for name in workspace_deps)
    return names


def _safe_read(read_manifest: ManifestReader, name: str) -> str | None:
    try:
        return read_manifest(name)
    except (OSError, ValueError) as e:
        logger.debug("Skipping unreadable manifest %s: %s", name, e)
        return None


def read_manifests(read_manifest: ManifestReader) -> ManifestInfo:
    """Read and parse every supported root-level manifest.

    Args:
        read_manifest: Returns a manifest's content by relative path, or None

    Returns:
        ManifestInfo with whatever could be parsed
    """
    info = ManifestInfo()

    content = _safe_read(read_manifest, "package.json")
    if content:
        data = parse_package_json(content)
        if data is not None:
            info.package_json = data
            info.add(Ecosystem.NPM, package_json_dependencies(data))
            info.manifests_read.append("package.json")

    content = _safe_read(read_manifest, "requirements.txt")
    if content:
        info.add(Ecosystem.PYTHON, parse_requirements_txt(content))
        info.manifests_read.append("requirements.txt")

    content = _safe_read(read_manifest, "pyproject.toml")
    if content:
        parsed = parse_pyproject_toml(content)
        if parsed is not None:
            names, has_build_system = parsed
            info.add(Ecosystem.PYTHON, names)
            info.has_python_build_system = has_build_system
            info.manifests_read.append("pyproject.toml")

    content = _safe_read(read_manifest, "go.mod")
    if content:
        info.add(Ecosystem.GO, parse_go_mod(content))
        info.manifests_read.append("go.mod")

    content = _safe_read(read_manifest, "Cargo.toml")
    if content:
        crates = parse_cargo_toml(content)
        if crates is not None:
            info.add(Ecosystem.RUST, crates)
            info.manifests_read.append("Cargo.toml")

    return info
