"""Cloudflare Worker secrets via wrangler."""
from typing import List

from .base import SyncTarget


class CloudflareTarget(SyncTarget):
    """Destinations are worker names."""

    name = "Cloudflare Workers"
    executable = "wrangler"
    auth_args = ["whoami"]

    def install_hint(self) -> str:
        return "Wrangler not available. Install: npm install -g wrangler, then run: wrangler login"

    def put_args(self, name: str, destination: str) -> List[str]:
        return ["secret", "put", name, "--name", destination]
