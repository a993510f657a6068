"""GitHub Actions workflow scanning and git remote detection."""
import re
import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

import yaml

logger = logging.getLogger(__name__)

WORKFLOWS_DIR = Path(".github") / "workflows"

SECRET_REF_PATTERN = re.compile(r"\$\{\{\s*secrets\.([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")

# Provided by GitHub itself, never stored by the user
BUILTIN_SECRETS = frozenset({"GITHUB_TOKEN"})

DEPLOY_COMMAND_MARKERS = ("wrangler", "npm publish", "vercel", "fly")

GITHUB_REMOTE_PATTERN = re.compile(
    r"github\.com[:/](?P<owner>[^/\s]+)/(?P<repo>[^/\s]+?)(?:\.git)?/?$"
)


@dataclass
class WorkflowScanResult:
    """Secrets and deploy commands referenced by CI workflows."""
    files: List[str] = field(default_factory=list)
    secrets: List[str] = field(default_factory=list)
    commands: List[str] = field(default_factory=list)


def _iter_run_steps(node: Any):
    """Yield every `run:` string in a parsed workflow document."""
    if isinstance(node, dict):
        for key, value in node.items():
            if key == "run" and isinstance(value, str):
                yield value
            else:
                yield from _iter_run_steps(value)
    elif isinstance(node, list):
        for item in node:
            yield from _iter_run_steps(item)


def _deploy_commands(run_text: str) -> List[str]:
    commands = []
    for line in run_text.splitlines():
        line = line.strip()
        if line and any(marker in line for marker in DEPLOY_COMMAND_MARKERS):
            commands.append(line)
    return commands


def scan_workflows(project_root) -> WorkflowScanResult:
    """
    Collect `${{ secrets.NAME }}` references and deploy commands from
    .github/workflows/*.yml. Unparseable YAML still contributes secrets found
    in the raw text.

    Args:
        project_root: Project directory

    Returns:
        WorkflowScanResult (empty when there is no workflows directory)
    """
    result = WorkflowScanResult()
    workflows_dir = Path(project_root) / WORKFLOWS_DIR
    if not workflows_dir.is_dir():
        return result

    paths = sorted(
        p for p in workflows_dir.iterdir()
        if p.is_file() and p.suffix in (".yml", ".yaml")
    )

    for path in paths:
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read workflow {path}: {e}")
            continue

        result.files.append(path.relative_to(project_root).as_posix())

        for name in SECRET_REF_PATTERN.findall(content):
            if name not in BUILTIN_SECRETS and name not in result.secrets:
                result.secrets.append(name)

        try:
            document = yaml.safe_load(content)
        except yaml.YAMLError as e:
            logger.warning(f"Failed to parse workflow YAML {path}: {e}")
            continue

        for run_text in _iter_run_steps(document):
            for command in _deploy_commands(run_text):
                if command not in result.commands:
                    result.commands.append(command)

    return result


def parse_github_remote(url: str) -> Optional[str]:
    """Return "owner/repo" for a GitHub remote URL, None otherwise."""
    match = GITHUB_REMOTE_PATTERN.search(url.strip())
    if not match:
        return None
    return f"{match.group('owner')}/{match.group('repo')}"


def detect_git_repo(project_root) -> Optional[str]:
    """
    Detect the GitHub repository of the project from its origin remote.

    Returns:
        "owner/repo", or None when git is missing or origin is not GitHub
    """
    try:
        result = subprocess.run(
            ["git", "remote", "get-url", "origin"],
            capture_output=True, text=True, cwd=str(project_root)
        )
    except OSError as e:
        logger.debug(f"git not available: {e}")
        return None

    if result.returncode != 0:
        return None
    return parse_github_remote(result.stdout)
