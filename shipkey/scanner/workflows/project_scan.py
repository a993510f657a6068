"""Workflow building a shipkey.json from everything a project declares."""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from shipkey.config.domains.config_loader import DEFAULT_VAULT
from shipkey.config.domains.models import ShipkeyConfig, TargetConfig
from shipkey.providers.domains.permissions import infer_permissions
from shipkey.providers.domains.registry import group_by_provider
from ..domains.ci_workflows import WorkflowScanResult, detect_git_repo, scan_workflows
from ..domains.dotenv import DEV_VARS_FILE
from ..domains.files import scan
from ..domains.manifests import detect_project_name, scan_manifests
from ..domains.models import ScanResult
from ..domains.wrangler import WranglerScanResult, scan_wrangler

logger = logging.getLogger(__name__)


@dataclass
class ProjectScanStats:
    env_files: int
    env_vars: int
    workflow_files: int
    workflow_secrets: int
    git_repo: Optional[str]
    wrangler_file: Optional[str]
    wrangler_projects: List[str] = field(default_factory=list)


@dataclass
class ProjectScanResult:
    config: ShipkeyConfig
    stats: ProjectScanStats
    workflow_secrets: List[str]


def collect_env_keys(result: ScanResult) -> List[str]:
    keys: List[str] = []
    for env_var in result.iter_vars():
        if env_var.key not in keys:
            keys.append(env_var.key)
    return keys


def collect_dev_vars_keys(result: ScanResult) -> List[str]:
    """Keys of real (non-template) .dev.vars files: the worker's secrets."""
    keys: List[str] = []
    for group in result.groups:
        for scanned in group.files:
            if DEV_VARS_FILE in scanned.path and not scanned.is_template:
                for env_var in scanned.vars:
                    if env_var.key not in keys:
                        keys.append(env_var.key)
    return keys


def build_targets(
    workflow: WorkflowScanResult,
    wrangler: WranglerScanResult,
    git_repo: Optional[str],
    env_result: ScanResult
) -> Dict[str, TargetConfig]:
    targets: Dict[str, TargetConfig] = {}

    if workflow.secrets and git_repo:
        targets["github"] = {git_repo: list(workflow.secrets)}

    if wrangler.projects:
        dev_vars_keys = collect_dev_vars_keys(env_result)
        if dev_vars_keys:
            targets["cloudflare"] = {project: list(dev_vars_keys) for project in wrangler.projects}

    return targets


def scan_project(project_root, max_workers: int = 5) -> ProjectScanResult:
    """
    Scan env files, CI workflows, wrangler configs, the git remote and
    dependency manifests, then derive providers, permissions and targets.

    The five scans are independent and run concurrently; results are only
    combined once all of them have finished.

    Args:
        project_root: Project directory
        max_workers: Thread pool size

    Returns:
        ProjectScanResult with a fresh (unmerged) ShipkeyConfig
    """
    project_root = Path(project_root)

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        env_future = executor.submit(scan, project_root)
        workflow_future = executor.submit(scan_workflows, project_root)
        wrangler_future = executor.submit(scan_wrangler, project_root)
        git_future = executor.submit(detect_git_repo, project_root)
        manifest_future = executor.submit(scan_manifests, project_root)

        env_result = env_future.result()
        workflow_result = workflow_future.result()
        wrangler_result = wrangler_future.result()
        git_repo = git_future.result()
        manifest_result = manifest_future.result()

    all_keys = collect_env_keys(env_result)
    for secret in workflow_result.secrets:
        if secret not in all_keys:
            all_keys.append(secret)

    providers = group_by_provider(all_keys)
    infer_permissions(
        providers,
        dependencies=manifest_result.dependencies,
        bindings=wrangler_result.bindings,
        wrangler_file=wrangler_result.file,
        commands=workflow_result.commands,
    )

    config = ShipkeyConfig(
        project=detect_project_name(project_root),
        vault=DEFAULT_VAULT,
        providers=providers,
        targets=build_targets(workflow_result, wrangler_result, git_repo, env_result),
    )

    stats = ProjectScanStats(
        env_files=env_result.total_files,
        env_vars=env_result.total_vars,
        workflow_files=len(workflow_result.files),
        workflow_secrets=len(workflow_result.secrets),
        git_repo=git_repo,
        wrangler_file=wrangler_result.file,
        wrangler_projects=list(wrangler_result.projects),
    )

    logger.debug(f"Project scan found {len(providers)} providers in {project_root}")
    return ProjectScanResult(config=config, stats=stats, workflow_secrets=list(workflow_result.secrets))


def format_scan_summary(result: ProjectScanResult) -> List[str]:
    """Human-readable summary lines for the CLI."""
    stats, config = result.stats, result.config
    lines = [f"  Env files: {stats.env_files} files, {stats.env_vars} variables"]

    if stats.workflow_files:
        lines.append(f"  Workflows: {stats.workflow_files} files, {stats.workflow_secrets} secrets")
        lines.extend(f"    · {secret}" for secret in result.workflow_secrets)
    if stats.git_repo:
        lines.append(f"  Git repo:  {stats.git_repo}")
    if stats.wrangler_file:
        lines.append(f"  Wrangler:  {stats.wrangler_file} → {', '.join(stats.wrangler_projects)}")

    if config.providers:
        lines.append("")
        lines.append(f"  Providers ({len(config.providers)}):")
        for name, provider in config.providers.items():
            lines.append(f"    {name}: {', '.join(provider.fields)}")
            if provider.permissions:
                lines.append(f"      → {', '.join(p.permission for p in provider.permissions)}")

    target_lines = []
    for platform, destinations in config.targets.items():
        for destination, spec in destinations.items():
            target_lines.append(f"    {platform}/{destination}: {len(spec)} secrets")
    if target_lines:
        lines.append("")
        lines.append("  Targets:")
        lines.extend(target_lines)

    return lines
