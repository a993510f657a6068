"""
1Password secrets backend.

Layout: one "API Credential" item per provider inside the vault, one section
per "{project}-{env}", one concealed field per env key. Every ref is also
addressable as op://{vault}/{provider}/{project}-{env}/{field}, which the op
CLI (and `op run` / `op inject`) can resolve without shipkey.
"""
import json
import logging
from typing import Dict, List, Optional

from .base import DEFAULT_VAULT, SecretBackend
from .errors import BackendNotAuthenticated, CommandError, SecretNotFound
from .models import SecretEntry, SecretRef, split_section

logger = logging.getLogger(__name__)

URI_SCHEME = "op://"
ITEM_CATEGORY = "API Credential"

# stderr fragments op prints when no session is usable
AUTH_ERROR_MARKERS = ("not currently signed in", "not signed in", "session expired", "authorization prompt dismissed")


class OnePasswordBackend(SecretBackend):
    """Secret backend driving the 1Password CLI (`op`)."""

    name = "1Password"
    executable = "op"
    extra_env = {"OP_BIOMETRIC_UNLOCK_ENABLED": "true"}

    def install_hint(self) -> str:
        return "1Password CLI (op) not available. Install: brew install --cask 1password-cli, then run: op signin"

    def _probe_login(self) -> bool:
        accounts = json.loads(self._exec(["account", "list", "--format=json"]) or "[]")
        return isinstance(accounts, list) and len(accounts) > 0

    def build_ref(self, ref: SecretRef) -> str:
        return f"{URI_SCHEME}{ref.vault}/{ref.provider}/{ref.section}/{ref.field}"

    def build_inline_ref(self, ref: SecretRef) -> Optional[str]:
        return self.build_ref(ref)

    def parse_inline_ref(self, text: str) -> Optional[SecretRef]:
        if not text.startswith(URI_SCHEME):
            return None
        parts = text[len(URI_SCHEME):].split("/")
        if len(parts) != 4 or not all(parts):
            return None
        vault, provider, section, field = parts
        split = split_section(section)
        if split is None:
            return None
        project, env = split
        return SecretRef(vault=vault, provider=provider, project=project, env=env, field=field)

    def build_write_args(self, entry: SecretEntry, create: bool = False) -> List[str]:
        """op arguments that set one concealed field on the provider item."""
        ref = entry.ref
        assignment = f"{ref.section}.{ref.field}[password]={entry.value}"
        if create:
            return [
                "item", "create",
                "--vault", ref.vault,
                "--category", ITEM_CATEGORY,
                "--title", ref.provider,
                assignment,
            ]
        return ["item", "edit", ref.provider, "--vault", ref.vault, assignment]

    def read(self, ref: SecretRef) -> str:
        try:
            return self._exec(["read", self.build_ref(ref)])
        except CommandError as e:
            if any(marker in e.stderr.lower() for marker in AUTH_ERROR_MARKERS):
                raise BackendNotAuthenticated("1Password CLI not signed in. Run: op signin") from e
            raise SecretNotFound(ref, e.stderr) from e

    def ensure_vault(self, vault: str) -> None:
        try:
            self._exec(["vault", "get", vault])
        except CommandError:
            logger.info(f"Creating 1Password vault: {vault}")
            self._exec(["vault", "create", vault, "--icon", "vault-door"])

    def _write(self, entry: SecretEntry) -> None:
        self.ensure_vault(entry.ref.vault)
        try:
            # Try editing the existing provider item first
            self._exec(self.build_write_args(entry))
        except CommandError as e:
            logger.debug(f"op item edit failed for {entry.ref.provider}, creating item: {e.stderr}")
            self._exec(self.build_write_args(entry, create=True))

    def vault_exists(self, vault: str) -> bool:
        vaults = json.loads(self._exec(["vault", "list", "--format", "json"]) or "[]")
        return any(v.get("name") == vault for v in vaults)

    def list_vault_items(self, vault: str) -> List[Dict]:
        raw = self._exec(["item", "list", "--vault", vault, "--format", "json"])
        return json.loads(raw or "[]")

    def get_item_fields(self, item: str, vault: str) -> List[Dict[str, str]]:
        """Section label and field label of every sectioned field of an item."""
        detail = json.loads(self._exec(["item", "get", item, "--vault", vault, "--format", "json"]) or "{}")
        fields = []
        for f in detail.get("fields") or []:
            section = (f.get("section") or {}).get("label")
            if section and f.get("label"):
                fields.append({"section": section, "label": f["label"]})
        return fields

    def list(
        self,
        project: Optional[str] = None,
        env: Optional[str] = None,
        vault: str = DEFAULT_VAULT
    ) -> List[SecretRef]:
        if not self.vault_exists(vault):
            return []

        refs: List[SecretRef] = []
        for item in self.list_vault_items(vault):
            for f in self.get_item_fields(item["id"], vault):
                split = split_section(f["section"])
                if split is None:
                    continue
                proj, e = split
                if project and proj != project:
                    continue
                if env and e != env:
                    continue
                refs.append(SecretRef(
                    vault=vault,
                    provider=item["title"],
                    project=proj,
                    env=e,
                    field=f["label"],
                ))
        return refs
