"""Cloudflare wrangler config scanning."""
import json
import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .files import SKIP_DIRS

logger = logging.getLogger(__name__)

WRANGLER_FILES = ("wrangler.toml", "wrangler.json")

BINDING_KINDS = (
    "kv_namespaces",
    "r2_buckets",
    "d1_databases",
    "queues",
    "ai",
    "durable_objects",
    "vectorize",
)


@dataclass
class WranglerScanResult:
    """Worker names and binding kinds declared by wrangler configs."""
    file: Optional[str] = None  # first config found, relative to the root
    projects: List[str] = field(default_factory=list)
    bindings: List[str] = field(default_factory=list)


def _load(path: Path) -> Dict[str, Any]:
    if path.suffix == ".toml":
        with open(path, "rb") as f:
            return tomllib.load(f)
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _candidate_files(project_root: Path) -> List[Path]:
    # Root first, then one level of sub-directories (monorepo workers)
    candidates = [project_root / name for name in WRANGLER_FILES]
    for child in sorted(project_root.iterdir()):
        if child.is_dir() and child.name not in SKIP_DIRS:
            candidates.extend(child / name for name in WRANGLER_FILES)
    return [p for p in candidates if p.is_file()]


def scan_wrangler(project_root) -> WranglerScanResult:
    """
    Scan wrangler.toml / wrangler.json files at the root and one directory
    below it.

    Args:
        project_root: Project directory

    Returns:
        WranglerScanResult; configs that fail to parse are skipped
    """
    project_root = Path(project_root)
    result = WranglerScanResult()
    if not project_root.is_dir():
        return result

    for path in _candidate_files(project_root):
        try:
            data = _load(path)
        except (OSError, ValueError) as e:
            # tomllib.TOMLDecodeError and json.JSONDecodeError are ValueErrors
            logger.warning(f"Failed to parse {path}: {e}")
            continue

        if not isinstance(data, dict):
            logger.warning(f"Ignoring {path}: top level is not a table")
            continue

        if result.file is None:
            result.file = path.relative_to(project_root).as_posix()

        name = data.get("name")
        if isinstance(name, str) and name and name not in result.projects:
            result.projects.append(name)

        for kind in BINDING_KINDS:
            if data.get(kind) and kind not in result.bindings:
                result.bindings.append(kind)

    return result
