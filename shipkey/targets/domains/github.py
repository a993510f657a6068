"""GitHub Actions repository secrets via the gh CLI."""
from typing import List

from .base import SyncTarget


class GitHubTarget(SyncTarget):
    """Destinations are "owner/repo" names."""

    name = "GitHub Actions"
    executable = "gh"
    auth_args = ["auth", "status"]

    def install_hint(self) -> str:
        return "GitHub CLI (gh) not available. Install: brew install gh, then run: gh auth login"

    def put_args(self, name: str, destination: str) -> List[str]:
        return ["secret", "set", name, "--repo", destination]
