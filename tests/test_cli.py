"""Tests for the shipkey command-line interface."""
import json
from argparse import Namespace

import pytest

from shipkey import VERSION
from shipkey.cli import main as cli
from shipkey.cli.validators import validate_env_name
from shipkey.config.domains import preferences
from shipkey.config.domains.config_loader import load_config
from shipkey.scanner.workflows import project_scan
from shipkey.secrets.domains import registry
from shipkey.secrets.domains.models import BackendStatus

from conftest import MemoryBackend


@pytest.fixture
def backend(monkeypatch):
    """Route every backend lookup to one in-memory backend."""
    memory = MemoryBackend()
    monkeypatch.setattr(registry, "get_backend", lambda name=None: memory)
    return memory


@pytest.fixture
def no_git(monkeypatch):
    monkeypatch.setattr(project_scan, "detect_git_repo", lambda root: None)


def write_config(root, **extra):
    data = {
        "project": "myapp",
        "vault": "shipkey",
        "providers": {"OpenAI": {"fields": ["OPENAI_API_KEY"]}, "Stripe": {"fields": ["STRIPE_SECRET_KEY"]}},
    }
    data.update(extra)
    (root / "shipkey.json").write_text(json.dumps(data))


class TestMain:
    """Test suite for argument parsing and exit codes."""

    def test_version(self, capsys):
        """Test the version command."""
        cli.main(["version"])
        assert capsys.readouterr().out.strip() == f"shipkey {VERSION}"

    def test_no_command_is_usage_error(self, capsys):
        """Test that running without a command exits 2."""
        with pytest.raises(SystemExit) as exc_info:
            cli.main([])
        assert exc_info.value.code == 2

    def test_config_without_subcommand(self, capsys):
        """Test that a bare config command exits 2."""
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["config"])
        assert exc_info.value.code == 2

    def test_invalid_env_is_usage_error(self, tmp_path, capsys):
        """Test that hyphenated environments are rejected."""
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["push", str(tmp_path), "-e", "pre-prod"])
        assert exc_info.value.code == 2
        assert "Invalid environment name 'pre-prod'" in capsys.readouterr().err

    def test_runtime_errors_exit_1(self, tmp_path, backend, capsys):
        """Test that a missing shipkey.json is reported as a runtime error."""
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["pull", str(tmp_path)])
        assert exc_info.value.code == 1
        assert capsys.readouterr().err.startswith("Error: Cannot read")

    def test_validate_env_name_accepts_underscores(self):
        """Test that letters, digits and underscores are valid."""
        validate_env_name("staging_eu1")


class TestScanCommand:
    """Test suite for the scan command."""

    def test_scan_without_write(self, sample_project, no_git, capsys):
        """Test that scanning alone does not write shipkey.json."""
        cli.main(["scan", str(sample_project)])

        out = capsys.readouterr().out
        assert "Env files: 3 files, 8 variables" in out
        assert "Run with --write" in out
        assert not (sample_project / "shipkey.json").exists()

    def test_scan_write_then_merge(self, sample_project, no_git, capsys):
        """Test that --write creates the config and later scans merge into it."""
        cli.main(["scan", str(sample_project), "--write"])
        assert "Created" in capsys.readouterr().out

        config = json.loads((sample_project / "shipkey.json").read_text())
        assert config["project"] == "project"
        assert config["providers"]["Stripe"]["fields"] == ["STRIPE_SECRET_KEY"]

        config["project"] = "renamed"
        config["providers"]["Stripe"]["fields"].append("STRIPE_MANUAL")
        (sample_project / "shipkey.json").write_text(json.dumps(config))

        cli.main(["scan", str(sample_project), "--write"])
        assert "Updated" in capsys.readouterr().out

        merged = load_config(sample_project)
        assert merged.project == "renamed"
        assert merged.providers["Stripe"].fields == ["STRIPE_SECRET_KEY", "STRIPE_MANUAL"]

    def test_scan_missing_directory(self, tmp_path):
        """Test that a missing directory is a usage error."""
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["scan", str(tmp_path / "missing")])
        assert exc_info.value.code == 2


class TestSecretCommands:
    """Test suite for push, pull, list and status."""

    def test_push_uses_config_identity(self, sample_project, backend, capsys):
        """Test that push takes project and vault from shipkey.json."""
        write_config(sample_project)

        cli.main(["push", str(sample_project), "-e", "dev"])

        assert backend.store["OpenAI/myapp-dev/OPENAI_API_KEY"] == "sk-openai"
        assert "Pushed 5 keys, 0 failed" in capsys.readouterr().out

    def test_push_reports_failures(self, sample_project, backend, capsys):
        """Test exit code 1 when a key fails to store."""
        backend.fail_fields = {"FOO_BAR"}

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["push", str(sample_project), "--project", "cli-app"])

        assert exc_info.value.code == 1
        assert "FOO_BAR" in capsys.readouterr().err
        assert "Stripe/cli-app-dev/STRIPE_SECRET_KEY" in backend.store

    def test_unavailable_backend(self, sample_project, backend, capsys):
        """Test that an unavailable backend prints its install hint."""
        backend.status = BackendStatus.NOT_INSTALLED

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["push", str(sample_project)])

        assert exc_info.value.code == 1
        assert "memory backend unavailable" in capsys.readouterr().err

    def test_pull_writes_envrc(self, tmp_path, backend, capsys):
        """Test pull output and the generated .envrc."""
        write_config(tmp_path)
        backend.seed("OpenAI", "myapp", "prod", "OPENAI_API_KEY", "sk-1")

        cli.main(["pull", str(tmp_path), "-e", "prod"])

        assert (tmp_path / ".envrc").read_text() == 'export OPENAI_API_KEY="sk-1"\n'
        assert "Wrote 1 keys" in capsys.readouterr().out

    def test_list(self, tmp_path, backend, capsys):
        """Test grouped listing with the --all flag."""
        write_config(tmp_path)
        backend.seed("OpenAI", "myapp", "dev", "OPENAI_API_KEY", "a")
        backend.seed("Stripe", "other", "prod", "STRIPE_SECRET_KEY", "b")

        cli.main(["list", str(tmp_path)])
        out = capsys.readouterr().out
        assert "Found 1 keys" in out
        assert "OpenAI (myapp.dev)" in out

        cli.main(["list", str(tmp_path), "--all"])
        out = capsys.readouterr().out
        assert "Found 2 keys" in out
        assert "Stripe (other.prod)" in out

    def test_list_empty(self, tmp_path, backend, capsys):
        """Test the message when nothing is stored."""
        write_config(tmp_path)
        cli.main(["list", str(tmp_path), "-e", "dev"])
        assert "No keys found for myapp.dev." in capsys.readouterr().out

    def test_status(self, tmp_path, backend, capsys):
        """Test stored/missing output and exit code."""
        write_config(tmp_path)
        backend.seed("OpenAI", "myapp", "prod", "OPENAI_API_KEY", "a")

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["status", str(tmp_path)])

        assert exc_info.value.code == 1
        out = capsys.readouterr().out
        assert "✓ OPENAI_API_KEY" in out
        assert "✗ STRIPE_SECRET_KEY" in out
        assert "1 keys missing" in out

    def test_sync_without_targets(self, tmp_path, backend, capsys):
        """Test that sync with no targets does nothing."""
        write_config(tmp_path)
        cli.main(["sync", str(tmp_path)])
        assert "No targets configured" in capsys.readouterr().out


class TestConfigCommands:
    """Test suite for backend preference commands."""

    def test_set_show_and_clear_backend(self, temp_home, tmp_path, capsys):
        """Test the preference round trip through the CLI."""
        cli.cmd_config_set_backend(Namespace(name="bitwarden"))
        assert preferences.get_backend_preference() == "bitwarden"

        cli.cmd_config_show(Namespace(dir=str(tmp_path)))
        out = capsys.readouterr().out
        assert "Backend: bitwarden" in out
        assert "Source: preference" in out

        cli.cmd_config_clear_backend(Namespace())
        assert preferences.get_backend_preference() is None
        assert "Will use default: 1password" in capsys.readouterr().out

    def test_set_unknown_backend(self, temp_home, capsys):
        """Test that unknown backends are rejected with exit code 2."""
        with pytest.raises(SystemExit) as exc_info:
            cli.cmd_config_set_backend(Namespace(name="keychain"))
        assert exc_info.value.code == 2
        assert preferences.get_backend_preference() is None

    def test_show_prefers_project_config(self, temp_home, tmp_path, monkeypatch, capsys):
        """Test that shipkey.json beats the environment variable."""
        write_config(tmp_path, backend="bitwarden")
        monkeypatch.setenv("SHIPKEY_BACKEND", "1password")

        cli.cmd_config_show(Namespace(dir=str(tmp_path)))

        out = capsys.readouterr().out
        assert "Backend: bitwarden" in out
        assert "Source: shipkey.json" in out

    def test_show_default(self, temp_home, tmp_path, capsys):
        """Test the default backend when nothing is configured."""
        cli.cmd_config_show(Namespace(dir=str(tmp_path)))
        out = capsys.readouterr().out
        assert "Backend: 1password" in out
        assert "Source: default" in out
