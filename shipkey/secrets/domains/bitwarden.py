"""
Bitwarden secrets backend.

Layout: vault -> folder, provider -> Secure Note item in that folder,
(project, env, field) -> hidden custom field named "{project}-{env}.{field}".
Bitwarden has no reference URIs, so values are always resolved by shipkey.
"""
import json
import base64
import logging
from typing import Any, Dict, List, Optional

from .base import DEFAULT_VAULT, SecretBackend
from .errors import BackendNotAuthenticated, CommandError, SecretNotFound
from .models import SecretEntry, SecretRef, split_section

logger = logging.getLogger(__name__)

FIELD_TYPE_HIDDEN = 1
ITEM_TYPE_SECURE_NOTE = 2


def _encode(payload: Dict[str, Any]) -> str:
    """Base64 JSON, the format `bw create` / `bw edit` expect."""
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


class BitwardenBackend(SecretBackend):
    """Secret backend driving the Bitwarden CLI (`bw`)."""

    name = "Bitwarden"
    executable = "bw"

    def install_hint(self) -> str:
        return "Bitwarden CLI (bw) not available. Install: npm install -g @bitwarden/cli, then run: bw login && bw unlock"

    def _status(self) -> str:
        return json.loads(self._exec(["status"])).get("status", "")

    def _probe_login(self) -> bool:
        # "unlocked" is the only usable state; "locked" needs `bw unlock`
        return self._status() not in ("unauthenticated", "locked")

    def _ensure_unlocked(self) -> None:
        status = self._status()
        if status == "locked":
            raise BackendNotAuthenticated("Bitwarden vault is locked. Run: bw unlock")
        if status == "unauthenticated":
            raise BackendNotAuthenticated("Bitwarden CLI not logged in. Run: bw login")

    @staticmethod
    def build_field_name(ref: SecretRef) -> str:
        return f"{ref.section}.{ref.field}"

    @staticmethod
    def parse_field_name(field_name: str) -> Optional[Dict[str, str]]:
        """
        Decode "{project}-{env}.{field}".

        The first '.' separates section from field, the last '-' of the
        section separates project from env.

        Returns:
            {"project", "env", "field"}, or None for names shipkey did not write
        """
        section, dot, field = field_name.partition(".")
        if not dot:
            return None
        split = split_section(section)
        if split is None:
            return None
        project, env = split
        return {"project": project, "env": env, "field": field}

    def _list_folders(self) -> List[Dict[str, Any]]:
        return json.loads(self._exec(["list", "folders"]) or "[]")

    def find_folder(self, name: str) -> Optional[str]:
        for folder in self._list_folders():
            if folder.get("name") == name:
                return folder["id"]
        return None

    def find_or_create_folder(self, name: str) -> str:
        folder_id = self.find_folder(name)
        if folder_id:
            return folder_id

        template = json.loads(self._exec(["get", "template", "folder"]))
        template["name"] = name
        created = json.loads(self._exec(["create", "folder", _encode(template)]))
        logger.info(f"Created Bitwarden folder: {name}")
        return created["id"]

    def find_item(self, provider: str, folder_id: str) -> Optional[Dict[str, Any]]:
        try:
            items = json.loads(self._exec([
                "list", "items", "--folderid", folder_id, "--search", provider,
            ]) or "[]")
        except CommandError as e:
            logger.debug(f"bw list items failed for {provider}: {e.stderr}")
            return None
        # --search is fuzzy; only an exact name is ours
        for item in items:
            if item.get("name") == provider:
                return item
        return None

    def read(self, ref: SecretRef) -> str:
        self._ensure_unlocked()

        folder_id = self.find_folder(ref.vault)
        if folder_id is None:
            raise SecretNotFound(ref, f'folder "{ref.vault}" does not exist')

        item = self.find_item(ref.provider, folder_id)
        if item is None:
            raise SecretNotFound(ref, f'item "{ref.provider}" not found')

        field_name = self.build_field_name(ref)
        for field in item.get("fields") or []:
            if field.get("name") == field_name:
                return field.get("value") or ""
        raise SecretNotFound(ref, f'field "{field_name}" not found')

    def _write(self, entry: SecretEntry) -> None:
        self._ensure_unlocked()

        ref = entry.ref
        folder_id = self.find_or_create_folder(ref.vault)
        field_name = self.build_field_name(ref)
        item = self.find_item(ref.provider, folder_id)

        if item is None:
            template = json.loads(self._exec(["get", "template", "item"]))
            template.update({
                "type": ITEM_TYPE_SECURE_NOTE,
                "secureNote": {"type": 0},
                "name": ref.provider,
                "folderId": folder_id,
                "fields": [{"name": field_name, "value": entry.value, "type": FIELD_TYPE_HIDDEN}],
            })
            # Secure notes carry no login block
            template.pop("login", None)
            self._exec(["create", "item", _encode(template)])
            return

        fields = item.get("fields") or []
        for field in fields:
            if field.get("name") == field_name:
                if field.get("value") == entry.value:
                    logger.debug(f"{field_name} unchanged in {ref.provider}, skipping edit")
                    return
                field["value"] = entry.value
                break
        else:
            fields.append({"name": field_name, "value": entry.value, "type": FIELD_TYPE_HIDDEN})

        item["fields"] = fields
        self._exec(["edit", "item", item["id"], _encode(item)])

    def list(
        self,
        project: Optional[str] = None,
        env: Optional[str] = None,
        vault: str = DEFAULT_VAULT
    ) -> List[SecretRef]:
        self._ensure_unlocked()

        folder_id = self.find_folder(vault)
        if folder_id is None:
            return []

        items = json.loads(self._exec(["list", "items", "--folderid", folder_id]) or "[]")
        refs: List[SecretRef] = []

        for item in items:
            for field in item.get("fields") or []:
                parsed = self.parse_field_name(field.get("name") or "")
                if parsed is None:
                    continue
                if project and parsed["project"] != project:
                    continue
                if env and parsed["env"] != env:
                    continue
                refs.append(SecretRef(vault=vault, provider=item["name"], **parsed))

        return refs
