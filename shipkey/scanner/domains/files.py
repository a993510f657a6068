"""Env file discovery across a project tree."""
import os
import re
import logging
from pathlib import Path
from typing import Dict, List, Tuple

from .dotenv import parse_dotenv
from .models import EnvVar, ScannedFile, ScanResult, SubProjectGroup

logger = logging.getLogger(__name__)

ENV_PATTERNS = (
    re.compile(r"^\.env$"),
    re.compile(r"^\.env\..+$"),  # .env.local, .env.example, ...
    re.compile(r"^\.dev\.vars$"),
    re.compile(r"^\.dev\.vars\..+$"),  # .dev.vars.example
)

SKIP_DIRS = frozenset({
    "node_modules",
    ".git",
    "dist",
    "build",
    ".next",
    ".turbo",
    ".cache",
})

ROOT_GROUP = "."


def is_env_file(filename: str) -> bool:
    return any(pattern.match(filename) for pattern in ENV_PATTERNS)


def is_template(filename: str) -> bool:
    return ".example" in filename or ".template" in filename


def walk_project(project_root: Path):
    """
    Yield (dirpath, filenames) for every directory below project_root,
    pruning SKIP_DIRS at any depth. Directories and files are sorted.
    """
    for dirpath, dirnames, filenames in os.walk(project_root):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
        yield Path(dirpath), sorted(filenames)


def find_env_files(project_root: Path) -> List[Tuple[str, Path]]:
    """Return (relative posix path, absolute path) for each env file."""
    found = []
    for dirpath, filenames in walk_project(project_root):
        for name in filenames:
            if is_env_file(name):
                full_path = dirpath / name
                found.append((full_path.relative_to(project_root).as_posix(), full_path))
    return found


def scan(project_root) -> ScanResult:
    """
    Scan a project tree for env files.

    Template files (.example / .template) only declare keys: their values are
    always dropped, whatever the file contains.

    Args:
        project_root: Directory to scan

    Returns:
        ScanResult with files grouped by containing directory
    """
    project_root = Path(project_root)
    groups: Dict[str, List[ScannedFile]] = {}
    total_files = 0

    for rel_path, full_path in find_env_files(project_root):
        try:
            content = full_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Skipping unreadable env file {rel_path}: {e}")
            continue

        template = is_template(full_path.name)
        env_vars = [
            EnvVar(
                key=parsed.key,
                value=None if template else parsed.value,
                source=rel_path,
                is_template=template,
            )
            for parsed in parse_dotenv(content)
        ]

        parent = Path(rel_path).parent.as_posix()
        group_key = ROOT_GROUP if parent in ("", ".") else parent
        groups.setdefault(group_key, []).append(
            ScannedFile(path=rel_path, is_template=template, vars=env_vars)
        )
        total_files += 1

    result_groups = [SubProjectGroup(path=path, files=files) for path, files in groups.items()]
    total_vars = sum(len(f.vars) for g in result_groups for f in g.files)

    logger.debug(f"Scanned {project_root}: {total_files} files, {total_vars} variables")
    return ScanResult(
        project_root=str(project_root),
        groups=result_groups,
        total_files=total_files,
        total_vars=total_vars,
    )
