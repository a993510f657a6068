"""Dependency manifest scanning (package.json, requirements, pyproject)."""
import re
import json
import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .files import walk_project

logger = logging.getLogger(__name__)

REQUIREMENT_NAME_PATTERN = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")


@dataclass
class ManifestScanResult:
    """Dependency names declared anywhere in the project."""
    files: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)


def _requirement_name(spec: str) -> Optional[str]:
    spec = spec.strip()
    if not spec or spec.startswith(("#", "-")):
        return None
    match = REQUIREMENT_NAME_PATTERN.match(spec)
    return match.group(1).lower() if match else None


def _package_json_deps(path: Path) -> List[str]:
    data = json.loads(path.read_text(encoding="utf-8"))
    names = []
    for section in ("dependencies", "devDependencies"):
        deps = data.get(section) or {}
        if isinstance(deps, dict):
            names.extend(name.lower() for name in deps)
    return names


def _requirements_deps(path: Path) -> List[str]:
    names = []
    for line in path.read_text(encoding="utf-8").splitlines():
        name = _requirement_name(line)
        if name:
            names.append(name)
    return names


def _pyproject_deps(path: Path) -> List[str]:
    with open(path, "rb") as f:
        data = tomllib.load(f)
    deps = (data.get("project") or {}).get("dependencies") or []
    return [name for name in (_requirement_name(d) for d in deps if isinstance(d, str)) if name]


def _parser_for(filename: str):
    if filename == "package.json":
        return _package_json_deps
    if filename == "pyproject.toml":
        return _pyproject_deps
    if filename.startswith("requirements") and filename.endswith(".txt"):
        return _requirements_deps
    return None


def scan_manifests(project_root) -> ManifestScanResult:
    """
    Collect dependency names from every manifest in the project tree.

    Args:
        project_root: Project directory

    Returns:
        ManifestScanResult with lowercased, de-duplicated names
    """
    project_root = Path(project_root)
    result = ManifestScanResult()

    for dirpath, filenames in walk_project(project_root):
        for name in filenames:
            parser = _parser_for(name)
            if parser is None:
                continue

            path = dirpath / name
            try:
                deps = parser(path)
            except (OSError, ValueError, AttributeError) as e:
                logger.warning(f"Failed to parse manifest {path}: {e}")
                continue

            result.files.append(path.relative_to(project_root).as_posix())
            for dep in deps:
                if dep not in result.dependencies:
                    result.dependencies.append(dep)

    return result


def detect_project_name(project_root) -> str:
    """
    Project name from package.json, then pyproject.toml, then the directory
    name.
    """
    project_root = Path(project_root)

    package_json = project_root / "package.json"
    if package_json.is_file():
        try:
            name = json.loads(package_json.read_text(encoding="utf-8")).get("name")
            if isinstance(name, str) and name:
                return name
        except (OSError, ValueError, AttributeError) as e:
            logger.debug(f"Ignoring invalid package.json: {e}")

    pyproject = project_root / "pyproject.toml"
    if pyproject.is_file():
        try:
            with open(pyproject, "rb") as f:
                name = (tomllib.load(f).get("project") or {}).get("name")
            if isinstance(name, str) and name:
                return name
        except (OSError, ValueError, AttributeError) as e:
            logger.debug(f"Ignoring invalid pyproject.toml: {e}")

    return project_root.resolve().name
