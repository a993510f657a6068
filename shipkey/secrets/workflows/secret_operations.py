"""Workflows moving secrets between project files, the store and sync targets."""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from shipkey.config.domains.models import ShipkeyConfig, TargetConfig, TargetDestination
from shipkey.config.domains.refs import ref_for_field
from shipkey.providers.domains.registry import ProviderClassifier, default_classifier
from shipkey.scanner.domains.dotenv import upsert_lines, write_local_env
from shipkey.scanner.domains.files import scan
from shipkey.scanner.domains.models import ScanResult
from shipkey.targets.domains.base import ResolvedSecret, SyncFailure, SyncResult, TargetRegistry
from ..domains.base import DEFAULT_VAULT, SecretBackend
from ..domains.errors import ShipkeyError
from ..domains.models import BackendStatus, SecretEntry, SecretRef

logger = logging.getLogger(__name__)

ENVRC_FILE = ".envrc"


@dataclass
class PushResult:
    """Per-key outcome of a push."""
    succeeded: List[str] = field(default_factory=list)
    failed: List[SyncFailure] = field(default_factory=list)


@dataclass
class PullResult:
    lines: Dict[str, str] = field(default_factory=dict)  # env key -> .envrc line
    values: Dict[str, str] = field(default_factory=dict)  # keys resolved to plain values
    failed: List[SyncFailure] = field(default_factory=list)


@dataclass
class DestinationReport:
    destination: str
    result: SyncResult
    unresolved: List[SyncFailure] = field(default_factory=list)


@dataclass
class TargetReport:
    target: str
    error: Optional[str] = None
    destinations: List[DestinationReport] = field(default_factory=list)


def collect_push_entries(
    result: ScanResult,
    classifier: ProviderClassifier = default_classifier
) -> Dict[str, Tuple[str, str]]:
    """
    Values worth storing: non-empty values from real (non-template) files.
    A key found in several files keeps its last value.

    Returns:
        Dict of env key -> (provider, value)
    """
    entries: Dict[str, Tuple[str, str]] = {}
    for env_var in result.iter_vars():
        if env_var.is_template or not env_var.value:
            continue
        entries[env_var.key] = (classifier.classify(env_var.key), env_var.value)
    return entries


def _write_provider_fields(
    backend: SecretBackend,
    refs: List[SecretRef],
    values: Dict[str, str]
) -> PushResult:
    result = PushResult()
    for ref in refs:
        try:
            backend.write(SecretEntry(ref=ref, value=values[ref.field]))
            result.succeeded.append(ref.field)
        except ShipkeyError as e:
            logger.debug(f"Failed to write {ref.field}: {e}")
            result.failed.append(SyncFailure(name=ref.field, error=str(e)))
        except Exception as e:
            # Malformed CLI output (bad JSON, missing ids) fails only this field
            logger.warning(f"Unexpected error writing {ref.field}: {e}")
            result.failed.append(SyncFailure(name=ref.field, error=str(e)))
    return result


def write_entries(
    backend: SecretBackend,
    entries: Dict[str, Tuple[str, str]],
    project: str,
    env: str,
    vault: str = DEFAULT_VAULT,
    max_workers: int = 4
) -> PushResult:
    """
    Write entries to the backend.

    Providers are written concurrently, fields of one provider one at a time
    since each write rewrites the provider's record. A failed field is
    reported and the remaining fields are still written.

    Args:
        backend: Target secret backend
        entries: env key -> (provider, value)
        project: Project name for the refs
        env: Environment name for the refs
        vault: Vault name
        max_workers: Providers written in parallel

    Returns:
        PushResult listing written and failed keys
    """
    by_provider: Dict[str, List[SecretRef]] = {}
    values: Dict[str, str] = {}
    for key, (provider, value) in entries.items():
        by_provider.setdefault(provider, []).append(
            SecretRef(vault=vault, provider=provider, project=project, env=env, field=key)
        )
        values[key] = value

    total = PushResult()
    if not by_provider:
        return total

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [
            executor.submit(_write_provider_fields, backend, refs, values)
            for refs in by_provider.values()
        ]
        for future in futures:
            partial = future.result()
            total.succeeded.extend(partial.succeeded)
            total.failed.extend(partial.failed)

    return total


def push_env(
    project_root,
    backend: SecretBackend,
    project: str,
    env: str = "dev",
    vault: str = DEFAULT_VAULT
) -> PushResult:
    """Scan project_root and store every real env value in the backend."""
    entries = collect_push_entries(scan(project_root))
    logger.debug(f"Pushing {len(entries)} keys to {backend.name}")
    return write_entries(backend, entries, project=project, env=env, vault=vault)


def list_secrets(
    backend: SecretBackend,
    project: Optional[str] = None,
    env: Optional[str] = None,
    vault: str = DEFAULT_VAULT
) -> List[SecretRef]:
    return backend.list(project, env, vault)


def group_refs(refs: Iterable[SecretRef]) -> Dict[str, List[SecretRef]]:
    """Group refs under "Provider (project.env)" labels, in first-seen order."""
    grouped: Dict[str, List[SecretRef]] = {}
    for ref in refs:
        grouped.setdefault(f"{ref.provider} ({ref.project}.{ref.env})", []).append(ref)
    return grouped


def _shell_quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("$", "\\$").replace("`", "\\`")
    return f'"{escaped}"'


def envrc_line(key: str, inline_ref: Optional[str], value: Optional[str] = None) -> str:
    """
    One .envrc export: resolved at shell time through `op read` when the
    backend has inline refs, otherwise the value itself.
    """
    if inline_ref:
        return f'export {key}=$(op read "{inline_ref}")'
    return f"export {key}={_shell_quote(value or '')}"


def pull_env(
    project_root,
    config: ShipkeyConfig,
    backend: SecretBackend,
    env: str = "dev",
    write_dotenv: bool = False
) -> PullResult:
    """
    Write .envrc exports for every secret stored for this project and env.

    Args:
        project_root: Project directory receiving .envrc
        config: Loaded shipkey.json
        backend: Secret backend
        env: Environment to pull
        write_dotenv: Also upsert plain values into the local env file

    Returns:
        PullResult with the generated lines and per-key failures
    """
    project_root = Path(project_root)
    result = PullResult()

    for ref in backend.list(config.project, env, config.vault):
        inline_ref = backend.build_inline_ref(ref)
        value = None
        if inline_ref is None or write_dotenv:
            try:
                value = backend.read(ref)
            except ShipkeyError as e:
                result.failed.append(SyncFailure(name=ref.field, error=str(e)))
                continue
            result.values[ref.field] = value
        result.lines[ref.field] = envrc_line(ref.field, inline_ref, value)

    if result.lines:
        upsert_lines(project_root / ENVRC_FILE, {f"export {key}=": line for key, line in result.lines.items()})
    if write_dotenv and result.values:
        write_local_env(project_root, result.values)

    return result


def field_status(config: ShipkeyConfig, backend: SecretBackend, env: str) -> Tuple[BackendStatus, Dict[str, Dict[str, str]]]:
    """
    Which configured fields are stored for this project and env.

    Returns:
        (backend status, {provider: {field: "stored" | "missing"}}); every
        field is "missing" when the backend is not ready
    """
    status = backend.check_status()
    stored = set()
    if status == BackendStatus.READY:
        stored = {(ref.provider, ref.field) for ref in backend.list(config.project, env, config.vault)}

    statuses: Dict[str, Dict[str, str]] = {}
    for name, provider in config.providers.items():
        statuses[name] = {
            field_name: "stored" if (name, field_name) in stored else "missing"
            for field_name in provider.fields
        }
    return status, statuses


def _resolve_field(config: ShipkeyConfig, backend: SecretBackend, name: str, env: str) -> str:
    ref = ref_for_field(config, name, env)
    if ref is None:
        raise KeyError(f'Cannot resolve secret "{name}". Ensure it is listed under providers in shipkey.json.')
    return backend.read(ref)


def build_sync_secrets(
    config: ShipkeyConfig,
    backend: SecretBackend,
    spec: TargetDestination,
    env: str = "prod"
) -> Tuple[List[ResolvedSecret], List[SyncFailure]]:
    """
    Resolve one destination's secrets to plain {name, value} pairs.

    A list holds env keys looked up through `providers`. A map holds
    secret name -> reference; references the backend can decode (op:// URIs)
    are read directly, anything else is treated as an env key.
    """
    secrets: List[ResolvedSecret] = []
    failures: List[SyncFailure] = []

    if isinstance(spec, list):
        pairs = [(name, name) for name in spec]
    else:
        pairs = list(spec.items())

    for name, reference in pairs:
        try:
            ref = backend.parse_inline_ref(reference)
            if ref is not None:
                value = backend.read(ref)
            else:
                value = _resolve_field(config, backend, reference, env)
            secrets.append(ResolvedSecret(name=name, value=value))
        except KeyError as e:
            failures.append(SyncFailure(name=name, error=e.args[0]))
        except ShipkeyError as e:
            failures.append(SyncFailure(name=name, error=str(e)))

    return secrets, failures


def sync_target(
    config: ShipkeyConfig,
    backend: SecretBackend,
    target,
    destinations: TargetConfig,
    env: str = "prod"
) -> List[DestinationReport]:
    reports = []
    for destination, spec in destinations.items():
        secrets, unresolved = build_sync_secrets(config, backend, spec, env)
        result = target.sync(secrets, destination) if secrets else SyncResult()
        reports.append(DestinationReport(destination=destination, result=result, unresolved=unresolved))
    return reports


def sync_targets(
    config: ShipkeyConfig,
    backend: SecretBackend,
    registry: TargetRegistry,
    target_names: Optional[List[str]] = None,
    env: str = "prod"
) -> List[TargetReport]:
    """
    Push configured secrets to each target platform.

    Unknown, unconfigured or unavailable targets are reported and skipped;
    they never stop the remaining targets.
    """
    reports: List[TargetReport] = []

    for name in target_names or list(config.targets):
        try:
            target = registry.get(name)
        except ShipkeyError as e:
            reports.append(TargetReport(target=name, error=str(e)))
            continue

        destinations = config.targets.get(name)
        if not destinations:
            reports.append(TargetReport(target=name, error=f'No configuration for target "{name}" in shipkey.json'))
            continue

        if not target.is_available():
            reports.append(TargetReport(target=name, error=target.install_hint()))
            continue

        reports.append(TargetReport(
            target=name,
            destinations=sync_target(config, backend, target, destinations, env),
        ))

    return reports
