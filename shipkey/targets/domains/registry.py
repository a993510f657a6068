"""Sync targets by platform name, matching the keys of shipkey.json targets."""
from .base import TargetRegistry
from .cloudflare import CloudflareTarget
from .github import GitHubTarget


def default_targets() -> TargetRegistry:
    return TargetRegistry({
        "github": GitHubTarget(),
        "cloudflare": CloudflareTarget(),
    })
