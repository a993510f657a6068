"""Reconciling a fresh scan with an existing shipkey.json."""
import copy
import logging
from typing import Dict, Iterable, List, Optional

from .models import ProviderConfig, ShipkeyConfig, TargetConfig

logger = logging.getLogger(__name__)


def _union(first: Iterable[str], second: Iterable[str]) -> List[str]:
    merged: List[str] = []
    for item in list(first) + list(second):
        if item not in merged:
            merged.append(item)
    return merged


def _merge_provider(existing: ProviderConfig, scanned: ProviderConfig) -> ProviderConfig:
    # Guides may be user-edited; permissions are scan-derived and refreshed.
    return ProviderConfig(
        fields=_union(existing.fields, scanned.fields),
        guide_url=existing.guide_url or scanned.guide_url,
        guide=existing.guide or scanned.guide,
        permissions=copy.deepcopy(scanned.permissions or existing.permissions),
    )


def _merge_targets(existing: TargetConfig, scanned: TargetConfig) -> TargetConfig:
    merged: TargetConfig = copy.deepcopy(existing)
    for destination, spec in scanned.items():
        current = merged.get(destination)
        if current is None:
            merged[destination] = copy.deepcopy(spec)
        elif isinstance(current, list) and isinstance(spec, list):
            merged[destination] = _union(current, spec)
        # an existing name -> reference map always wins
    return merged


def merge_configs(existing: Optional[ShipkeyConfig], scanned: Optional[ShipkeyConfig]) -> Optional[ShipkeyConfig]:
    """
    Merge a freshly scanned config into an existing one.

    Identity (project, vault, backend) always comes from `existing`. Providers
    known to both are merged by field union, providers only in `existing` are
    kept verbatim and new providers are added. Targets are merged per platform
    and destination. Neither input is modified, and merging the same scan
    twice gives the same result as merging it once.

    Args:
        existing: Config loaded from shipkey.json
        scanned: Config produced by a project scan

    Returns:
        Merged config; `existing` unchanged when the scan is empty
    """
    if existing is None:
        return copy.deepcopy(scanned)
    if scanned is None:
        return copy.deepcopy(existing)

    providers: Dict[str, ProviderConfig] = copy.deepcopy(existing.providers)
    for name, provider in scanned.providers.items():
        if name in providers:
            providers[name] = _merge_provider(providers[name], provider)
        else:
            providers[name] = copy.deepcopy(provider)

    targets: Dict[str, TargetConfig] = copy.deepcopy(existing.targets)
    for platform, destinations in scanned.targets.items():
        targets[platform] = _merge_targets(targets.get(platform, {}), destinations)

    added = [name for name in scanned.providers if name not in existing.providers]
    if added:
        logger.info(f"New providers detected: {', '.join(added)}")

    return ShipkeyConfig(
        project=existing.project,
        vault=existing.vault,
        backend=existing.backend,
        providers=providers,
        targets=targets,
    )
