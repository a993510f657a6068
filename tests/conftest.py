"""Shared fixtures: an in-memory backend and fakes for the external CLIs."""
import json
import base64
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from shipkey.config.domains import preferences
from shipkey.secrets.domains.base import DEFAULT_VAULT, SecretBackend
from shipkey.secrets.domains.errors import SecretNotFound
from shipkey.secrets.domains.models import BackendStatus, SecretEntry, SecretRef, split_section


def completed(args, stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=args, returncode=returncode, stdout=stdout, stderr=stderr)


class MemoryBackend(SecretBackend):
    """SecretBackend keeping values in a dict keyed by "provider/section/field"."""

    name = "Memory"
    executable = "memory"

    def __init__(self, inline: bool = False, status: BackendStatus = BackendStatus.READY):
        super().__init__()
        self.inline = inline
        self.status = status
        self.store: Dict[str, str] = {}
        self.calls: List[tuple] = []
        self.fail_fields = set()

    def check_status(self) -> BackendStatus:
        return self.status

    def _probe_login(self) -> bool:
        return True

    def install_hint(self) -> str:
        return "memory backend unavailable"

    @staticmethod
    def _key(ref: SecretRef) -> str:
        return f"{ref.provider}/{ref.section}/{ref.field}"

    def seed(self, provider, project, env, field, value):
        ref = SecretRef(vault=DEFAULT_VAULT, provider=provider, project=project, env=env, field=field)
        self.store[self._key(ref)] = value

    def read(self, ref: SecretRef) -> str:
        self.calls.append(("read", ref))
        if self._key(ref) not in self.store:
            raise SecretNotFound(ref)
        return self.store[self._key(ref)]

    def _write(self, entry: SecretEntry) -> None:
        self.calls.append(("write", entry))
        if entry.ref.field in self.fail_fields:
            raise SecretNotFound(entry.ref, "write rejected")
        self.store[self._key(entry.ref)] = entry.value

    def list(self, project=None, env=None, vault=DEFAULT_VAULT) -> List[SecretRef]:
        self.calls.append(("list", project, env))
        refs = []
        for key in self.store:
            provider, section, field = key.split("/")
            proj, e = split_section(section)
            if project and proj != project:
                continue
            if env and e != env:
                continue
            refs.append(SecretRef(vault=vault, provider=provider, project=proj, env=e, field=field))
        return refs

    def build_inline_ref(self, ref: SecretRef) -> Optional[str]:
        if not self.inline:
            return None
        return f"op://{ref.vault}/{ref.provider}/{ref.section}/{ref.field}"


class FakeOnePasswordCLI:
    """
    Stateful stand-in for `op`, installed as subprocess.run.

    Items are keyed by (vault, title); each field keeps its section label.
    """

    def __init__(self, signed_in: bool = True):
        self.signed_in = signed_in
        self.vaults = set()
        self.items: Dict[tuple, dict] = {}
        self.calls: List[List[str]] = []

    def _item(self, vault, title):
        return self.items.get((vault, title))

    @staticmethod
    def _apply(item, assignment):
        target, _, value = assignment.partition("=")
        section, _, rest = target.partition(".")
        label = rest.replace("[password]", "")
        for f in item["fields"]:
            if f["section"]["label"] == section and f["label"] == label:
                f["value"] = value
                return
        item["fields"].append({"section": {"label": section}, "label": label, "value": value})

    def __call__(self, cmd, capture_output=True, text=True, input=None, env=None, **kwargs):
        assert cmd[0] == "op"
        args = cmd[1:]
        self.calls.append(args)

        if args == ["--version"]:
            return completed(cmd, "2.30.0\n")
        if args[:2] == ["account", "list"]:
            accounts = [{"email": "dev@example.com"}] if self.signed_in else []
            return completed(cmd, json.dumps(accounts))
        if args[:2] == ["vault", "get"]:
            if args[2] in self.vaults:
                return completed(cmd, args[2])
            return completed(cmd, returncode=1, stderr=f'"{args[2]}" isn\'t a vault')
        if args[:2] == ["vault", "create"]:
            self.vaults.add(args[2])
            return completed(cmd, args[2])
        if args[:2] == ["vault", "list"]:
            return completed(cmd, json.dumps([{"id": v, "name": v} for v in sorted(self.vaults)]))
        if args[:2] == ["item", "edit"]:
            item = self._item(args[4], args[2])
            if item is None:
                return completed(cmd, returncode=1, stderr=f'"{args[2]}" isn\'t an item')
            self._apply(item, args[5])
            return completed(cmd, "{}")
        if args[:2] == ["item", "create"]:
            vault, title = args[args.index("--vault") + 1], args[args.index("--title") + 1]
            item = {"id": f"id-{title}", "title": title, "fields": []}
            self._apply(item, args[-1])
            self.items[(vault, title)] = item
            return completed(cmd, "{}")
        if args[:2] == ["item", "list"]:
            vault = args[args.index("--vault") + 1]
            items = [{"id": i["id"], "title": i["title"]} for (v, _), i in self.items.items() if v == vault]
            return completed(cmd, json.dumps(items))
        if args[:2] == ["item", "get"]:
            vault = args[args.index("--vault") + 1]
            for (v, _), item in self.items.items():
                if v == vault and item["id"] == args[2]:
                    return completed(cmd, json.dumps(item))
            return completed(cmd, returncode=1, stderr="item not found")
        if args[0] == "read":
            if not self.signed_in:
                return completed(cmd, returncode=1, stderr="[ERROR] You are not currently signed in. Please run `op signin --help` for instructions")
            vault, title, section, label = args[1][len("op://"):].split("/")
            item = self._item(vault, title)
            for f in (item or {}).get("fields", []):
                if f["section"]["label"] == section and f["label"] == label:
                    return completed(cmd, f["value"] + "\n")
            return completed(cmd, returncode=1, stderr=f"could not read secret {args[1]}")
        return completed(cmd, returncode=1, stderr=f"unknown command: {' '.join(args)}")


def _decode(payload: str) -> dict:
    return json.loads(base64.b64decode(payload).decode("utf-8"))


class FakeBitwardenCLI:
    """Stateful stand-in for `bw`, installed as subprocess.run."""

    def __init__(self, status: str = "unlocked"):
        self.status = status
        self.folders: List[dict] = []
        self.items: List[dict] = []
        self.calls: List[List[str]] = []

    def add_item(self, name, folder_id, fields):
        item = {"id": f"item-{len(self.items) + 1}", "name": name, "folderId": folder_id, "fields": fields}
        self.items.append(item)
        return item

    def add_folder(self, name):
        folder = {"id": f"folder-{len(self.folders) + 1}", "name": name}
        self.folders.append(folder)
        return folder["id"]

    def __call__(self, cmd, capture_output=True, text=True, input=None, env=None, **kwargs):
        assert cmd[0] == "bw"
        args = cmd[1:]
        self.calls.append(args)

        if args == ["--version"]:
            return completed(cmd, "2024.9.0\n")
        if args == ["status"]:
            return completed(cmd, json.dumps({"status": self.status}))
        if args == ["list", "folders"]:
            return completed(cmd, json.dumps(self.folders))
        if args == ["get", "template", "folder"]:
            return completed(cmd, json.dumps({"name": "Folder name"}))
        if args == ["get", "template", "item"]:
            return completed(cmd, json.dumps({"type": 1, "name": "Item name", "login": {}, "fields": []}))
        if args[:2] == ["create", "folder"]:
            folder_id = self.add_folder(_decode(args[2])["name"])
            return completed(cmd, json.dumps({"id": folder_id}))
        if args[:2] == ["create", "item"]:
            data = _decode(args[2])
            data["id"] = f"item-{len(self.items) + 1}"
            self.items.append(data)
            return completed(cmd, json.dumps(data))
        if args[:2] == ["edit", "item"]:
            data = _decode(args[3])
            for index, item in enumerate(self.items):
                if item["id"] == args[2]:
                    self.items[index] = data
            return completed(cmd, json.dumps(data))
        if args[:2] == ["list", "items"]:
            folder_id = args[args.index("--folderid") + 1]
            search = args[args.index("--search") + 1] if "--search" in args else None
            items = [
                i for i in self.items
                if i.get("folderId") == folder_id and (search is None or search.lower() in i["name"].lower())
            ]
            return completed(cmd, json.dumps(items))
        return completed(cmd, returncode=1, stderr=f"unknown command: {' '.join(args)}")


@pytest.fixture
def temp_home(tmp_path, monkeypatch):
    """Fixture to create a temporary home directory for testing."""
    fake_home = tmp_path / "home"
    fake_home.mkdir()
    monkeypatch.setenv("HOME", str(fake_home))
    monkeypatch.setattr(Path, "home", lambda: fake_home)
    monkeypatch.delenv("SHIPKEY_BACKEND", raising=False)

    fake_config_dir = fake_home / ".config" / "shipkey"
    monkeypatch.setattr(preferences, "PREFERENCES_DIR", fake_config_dir)
    monkeypatch.setattr(preferences, "PREFERENCES_FILE", fake_config_dir / "preferences.json")

    return fake_home


@pytest.fixture
def memory_backend():
    return MemoryBackend()


@pytest.fixture
def fake_op(monkeypatch):
    cli = FakeOnePasswordCLI()
    monkeypatch.setattr(subprocess, "run", cli)
    return cli


@pytest.fixture
def fake_bw(monkeypatch):
    cli = FakeBitwardenCLI()
    monkeypatch.setattr(subprocess, "run", cli)
    return cli


@pytest.fixture
def sample_project(tmp_path):
    """
    Project tree with 3 env files (8 variables) in 2 groups, plus a
    node_modules env file that must be skipped.
    """
    root = tmp_path / "project"
    root.mkdir()
    (root / ".env").write_text("OPENAI_API_KEY=sk-openai\nDATABASE_URL=postgres://localhost/db\n")
    (root / ".env.example").write_text("OPENAI_API_KEY=\nDATABASE_URL=\nSTRIPE_SECRET_KEY=sk_test_placeholder\n")

    api = root / "packages" / "api"
    api.mkdir(parents=True)
    (api / ".dev.vars").write_text('STRIPE_SECRET_KEY="sk_live_123"\nFOO_BAR=baz\n# comment\nSESSION_SECRET=s3cret\n')

    modules = root / "node_modules" / "pkg"
    modules.mkdir(parents=True)
    (modules / ".env").write_text("SHOULD_NOT=appear\n")
    return root
