"""CLI entrypoint for shipkey."""
import sys
import argparse
import logging
from pathlib import Path

from shipkey import VERSION
from .validators import validate_directory, validate_env_name, validate_project_name

# Configure logging to stderr
logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    stream=sys.stderr
)
logger = logging.getLogger(__name__)


def _load_optional_config(project_root):
    """shipkey.json if present; a broken file is still an error."""
    from shipkey.config.domains.config_loader import ConfigMissing, load_config

    try:
        return load_config(project_root)
    except ConfigMissing:
        return None


def _ready_backend(config=None):
    """
    Resolve the project's backend and make sure it can be used.

    Exits with code 1 (after printing the install hint) when the CLI is
    missing or not signed in.
    """
    from shipkey.config.domains.config_loader import resolve_backend_name
    from shipkey.secrets.domains.registry import get_backend

    backend = get_backend(resolve_backend_name(config))
    if not backend.is_available():
        print(f"Error: {backend.install_hint()}", file=sys.stderr)
        sys.exit(1)
    return backend


def _print_failures(failures):
    for failure in failures:
        print(f"  ✗ {failure.name}: {failure.error}", file=sys.stderr)


def cmd_version(args):
    """Show version information."""
    print(f"shipkey {VERSION}")


def cmd_scan(args):
    """Scan a project and optionally write shipkey.json."""
    from shipkey.config.domains.config_loader import save_config
    from shipkey.config.domains.merge import merge_configs
    from shipkey.scanner.workflows.project_scan import format_scan_summary, scan_project

    project_root = validate_directory(args.dir)
    print(f"Scanning {project_root}...\n")

    result = scan_project(project_root)
    for line in format_scan_summary(result):
        print(line)

    if not result.config.providers:
        print("\nNo secrets found.")
        return

    if not args.write:
        print("\nRun with --write to save shipkey.json")
        return

    existing = _load_optional_config(project_root)
    merged = merge_configs(existing, result.config)
    path = save_config(project_root, merged)
    action = "Updated" if existing else "Created"
    print(f"\n{action} {path}")


def cmd_push(args):
    """Push local env values to the secret backend."""
    from shipkey.config.domains.config_loader import DEFAULT_VAULT
    from shipkey.scanner.domains.manifests import detect_project_name
    from shipkey.secrets.workflows.secret_operations import push_env

    validate_env_name(args.env)
    project_root = validate_directory(args.dir)
    config = _load_optional_config(project_root)

    project = args.project or (config.project if config else detect_project_name(project_root))
    validate_project_name(project)
    vault = args.vault or (config.vault if config else DEFAULT_VAULT)

    backend = _ready_backend(config)
    print(f"Pushing to {backend.name} (vault: {vault}, {project}.{args.env})...\n")

    result = push_env(project_root, backend, project=project, env=args.env, vault=vault)

    if not result.succeeded and not result.failed:
        print("No values to push.")
        return

    for key in result.succeeded:
        print(f"  ✓ {key}")
    _print_failures(result.failed)

    print(f"\nPushed {len(result.succeeded)} keys, {len(result.failed)} failed")
    if result.failed:
        sys.exit(1)


def cmd_pull(args):
    """Generate .envrc (and optionally local env file) from stored secrets."""
    from shipkey.config.domains.config_loader import load_config
    from shipkey.secrets.workflows.secret_operations import ENVRC_FILE, pull_env

    validate_env_name(args.env)
    project_root = validate_directory(args.dir)
    config = load_config(project_root)
    backend = _ready_backend(config)

    result = pull_env(project_root, config, backend, env=args.env, write_dotenv=args.dotenv)

    if not result.lines and not result.failed:
        print(f"No keys found for {config.project}.{args.env}.")
        return

    for key in result.lines:
        print(f"  ✓ {key}")
    _print_failures(result.failed)

    if result.lines:
        print(f"\nWrote {len(result.lines)} keys to {project_root / ENVRC_FILE}")
    if result.failed:
        sys.exit(1)


def cmd_list(args):
    """List keys stored for this project."""
    from shipkey.config.domains.config_loader import DEFAULT_VAULT
    from shipkey.scanner.domains.manifests import detect_project_name
    from shipkey.secrets.workflows.secret_operations import group_refs, list_secrets

    if args.env:
        validate_env_name(args.env)
    project_root = validate_directory(args.dir)
    config = _load_optional_config(project_root)

    project = None
    if not args.all:
        project = args.project or (config.project if config else detect_project_name(project_root))

    backend = _ready_backend(config)
    vault = config.vault if config else DEFAULT_VAULT
    refs = list_secrets(backend, project, args.env, vault)

    if not refs:
        scope = "any project" if args.all else f"{project}{'.' + args.env if args.env else ''}"
        print(f"No keys found for {scope}.")
        return

    print(f"Found {len(refs)} keys:\n")
    for group, items in group_refs(refs).items():
        print(f"  {group}")
        for ref in items:
            print(f"    · {ref.field}")


def cmd_status(args):
    """Show which configured fields are stored."""
    from shipkey.config.domains.config_loader import load_config, resolve_backend_name
    from shipkey.secrets.domains.models import BackendStatus
    from shipkey.secrets.domains.registry import get_backend
    from shipkey.secrets.workflows.secret_operations import field_status

    validate_env_name(args.env)
    project_root = validate_directory(args.dir)
    config = load_config(project_root)
    backend = get_backend(resolve_backend_name(config))

    status, statuses = field_status(config, backend, args.env)
    print(f"Backend: {backend.name} ({status.value})")
    if status != BackendStatus.READY:
        print(f"  {backend.install_hint()}")
    print(f"Project: {config.project}.{args.env} (vault: {config.vault})\n")

    missing = 0
    for provider, fields in statuses.items():
        print(f"  {provider}")
        for field_name, state in fields.items():
            mark = "✓" if state == "stored" else "✗"
            print(f"    {mark} {field_name}")
            if state != "stored":
                missing += 1

    if missing:
        print(f"\n{missing} keys missing")
        sys.exit(1)


def cmd_sync(args):
    """Sync stored secrets to target platforms."""
    from shipkey.config.domains.config_loader import load_config
    from shipkey.secrets.workflows.secret_operations import sync_targets
    from shipkey.targets.domains.registry import default_targets

    validate_env_name(args.env)
    targets = default_targets()

    # `shipkey sync <dir>`: a lone positional that is a directory, not a target
    if args.target and args.dir == "." and args.target not in targets.names() and Path(args.target).is_dir():
        args.target, args.dir = None, args.target

    project_root = validate_directory(args.dir)
    config = load_config(project_root)

    target_names = [args.target] if args.target else None
    if not target_names and not config.targets:
        print("No targets configured in shipkey.json.")
        return

    backend = _ready_backend(config)
    reports = sync_targets(config, backend, targets, target_names=target_names, env=args.env)

    failed = False
    for report in reports:
        print(f"{report.target}:")
        if report.error:
            print(f"  Error: {report.error}", file=sys.stderr)
            failed = True
            continue
        for destination in report.destinations:
            print(f"  {destination.destination}")
            for name in destination.result.success:
                print(f"    ✓ {name}")
            for failure in destination.unresolved + destination.result.failed:
                print(f"    ✗ {failure.name}: {failure.error}", file=sys.stderr)
                failed = True

    if failed:
        sys.exit(1)


def cmd_backends(args):
    """List available backends and their status."""
    from shipkey.config.domains.config_loader import resolve_backend_name
    from shipkey.secrets.domains.registry import get_backend, list_backends

    selected = resolve_backend_name() or list_backends()[0]
    for name in list_backends():
        backend = get_backend(name)
        marker = "*" if name == selected else " "
        print(f"{marker} {name:<10} {backend.name:<10} {backend.check_status().value}")


def cmd_config_show(args):
    """Show the selected backend and where the selection came from."""
    import os
    from shipkey.config.domains.config_loader import BACKEND_ENV_VAR
    from shipkey.config.domains.preferences import PREFERENCES_FILE, get_backend_preference
    from shipkey.secrets.domains.registry import list_backends

    project_root = validate_directory(args.dir)
    config = _load_optional_config(project_root)

    if config is not None and config.backend:
        print(f"Backend: {config.backend}")
        print("Source: shipkey.json")
    elif os.getenv(BACKEND_ENV_VAR):
        print(f"Backend: {os.getenv(BACKEND_ENV_VAR)}")
        print(f"Source: {BACKEND_ENV_VAR}")
    elif get_backend_preference():
        print(f"Backend: {get_backend_preference()}")
        print(f"Source: preference ({PREFERENCES_FILE})")
    else:
        print(f"Backend: {list_backends()[0]}")
        print("Source: default")


def cmd_config_set_backend(args):
    """Set the backend preference."""
    from shipkey.config.domains.preferences import set_backend_preference
    from shipkey.secrets.domains.registry import list_backends

    if args.name not in list_backends():
        print(f"Error: Unknown backend '{args.name}'. Available: {', '.join(list_backends())}", file=sys.stderr)
        sys.exit(2)

    path = set_backend_preference(args.name)
    print(f"Backend preference set to: {args.name} ({path})")


def cmd_config_clear_backend(args):
    """Clear the backend preference."""
    from shipkey.config.domains.preferences import clear_backend_preference
    from shipkey.secrets.domains.registry import list_backends

    if clear_backend_preference():
        print(f"Backend preference cleared. Will use default: {list_backends()[0]}")
    else:
        print(f"No backend preference set. Using default: {list_backends()[0]}")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="shipkey",
        description="shipkey - scan, store and sync project secrets",
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (backend unavailable, secret not found, sync failure, etc.)
  2 - Usage error (invalid arguments, invalid environment name, etc.)

Environment variables:
  SHIPKEY_BACKEND - Secret backend (overrides preference, not shipkey.json)

Configuration:
  Project config: shipkey.json in the project root
  Preferences:    ~/.config/shipkey/preferences.json
        """
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # version command
    _version_parser = subparsers.add_parser(
        "version",
        help="Show version information",
        description="Display the current version of shipkey"
    )

    # scan command
    scan_parser = subparsers.add_parser(
        "scan",
        help="Scan a project for secrets",
        description="""
Scan env files, GitHub workflows, wrangler config and dependency manifests.

With --write, the result is merged into shipkey.json. Existing project,
vault, backend, fields and guides are kept.
        """
    )
    scan_parser.add_argument("dir", nargs="?", default=".", help="Project directory")
    scan_parser.add_argument("--write", action="store_true", help="Write shipkey.json")

    # push command
    push_parser = subparsers.add_parser(
        "push",
        help="Push env values to the secret backend",
        description="Store every non-empty value from the project's env files"
    )
    push_parser.add_argument("dir", nargs="?", default=".", help="Project directory")
    push_parser.add_argument("-e", "--env", default="dev", help="Environment (default: dev)")
    push_parser.add_argument("--vault", help="Vault name (default: from shipkey.json or 'shipkey')")
    push_parser.add_argument("--project", help="Project name (default: from shipkey.json or detected)")

    # pull command
    pull_parser = subparsers.add_parser(
        "pull",
        help="Write .envrc from stored secrets",
        description="""
Generate .envrc exports for the project's stored secrets.

1Password keys are written as `op read` references resolved at shell time;
other backends embed the values.
        """
    )
    pull_parser.add_argument("dir", nargs="?", default=".", help="Project directory")
    pull_parser.add_argument("-e", "--env", default="dev", help="Environment (default: dev)")
    pull_parser.add_argument("--dotenv", action="store_true", help="Also write values to the local env file")

    # list command
    list_parser = subparsers.add_parser(
        "list",
        help="List stored keys",
        description="List keys stored in the backend for this project"
    )
    list_parser.add_argument("dir", nargs="?", default=".", help="Project directory")
    list_parser.add_argument("-e", "--env", help="Filter by environment")
    list_parser.add_argument("--all", action="store_true", help="List all projects")
    list_parser.add_argument("--project", help="Project name (default: from shipkey.json or detected)")

    # status command
    status_parser = subparsers.add_parser(
        "status",
        help="Show stored/missing keys",
        description="Compare the keys in shipkey.json with what the backend holds"
    )
    status_parser.add_argument("dir", nargs="?", default=".", help="Project directory")
    status_parser.add_argument("-e", "--env", default="prod", help="Environment (default: prod)")

    # sync command
    sync_parser = subparsers.add_parser(
        "sync",
        help="Sync secrets to target platforms",
        description="Publish configured secrets to GitHub Actions and Cloudflare Workers"
    )
    sync_parser.add_argument("target", nargs="?", help="Target name (default: every configured target)")
    sync_parser.add_argument("dir", nargs="?", default=".", help="Project directory")
    sync_parser.add_argument("-e", "--env", default="prod", help="Environment (default: prod)")

    # backends command
    _backends_parser = subparsers.add_parser(
        "backends",
        help="List secret backends",
        description="List registered backends and whether their CLI is ready"
    )

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Preference management",
        description="Manage shipkey user preferences"
    )
    config_subparsers = config_parser.add_subparsers(dest="config_command")

    config_show_parser = config_subparsers.add_parser(
        "show",
        help="Show the selected backend",
        description="""
Display the backend shipkey will use and its source.

Sources, highest priority first:
  - shipkey.json: `backend` in the project config
  - SHIPKEY_BACKEND: environment variable
  - preference: set via 'config set-backend'
  - default: first registered backend
        """
    )
    config_show_parser.add_argument("dir", nargs="?", default=".", help="Project directory")

    config_set_backend_parser = config_subparsers.add_parser(
        "set-backend",
        help="Set the backend preference",
        description="Store the default backend in ~/.config/shipkey/preferences.json"
    )
    config_set_backend_parser.add_argument("name", help="Backend name")

    _config_clear_backend_parser = config_subparsers.add_parser(
        "clear-backend",
        help="Clear the backend preference",
        description="Remove the backend preference"
    )

    return parser, config_parser


COMMANDS = {
    "version": cmd_version,
    "scan": cmd_scan,
    "push": cmd_push,
    "pull": cmd_pull,
    "list": cmd_list,
    "status": cmd_status,
    "sync": cmd_sync,
    "backends": cmd_backends,
}

CONFIG_COMMANDS = {
    "show": cmd_config_show,
    "set-backend": cmd_config_set_backend,
    "clear-backend": cmd_config_clear_backend,
}


def main(argv=None):
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors (backend unavailable, secret not found, etc.)
        2 - Usage errors (invalid arguments, invalid environment name, etc.)
    """
    parser, config_parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # If no command provided, show help and exit with usage error code
    if not args.command:
        parser.print_help()
        sys.exit(2)

    # Route to command handlers
    try:
        if args.command == "config":
            handler = CONFIG_COMMANDS.get(args.config_command)
            if handler is None:
                config_parser.print_help()
                sys.exit(2)
            handler(args)
        else:
            COMMANDS[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
