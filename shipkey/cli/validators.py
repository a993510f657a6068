"""Input validation for CLI arguments."""
import re
import sys
from pathlib import Path


def validate_env_name(env: str) -> None:
    """
    Validate an environment name.

    Environment names end up in the "project-env" section of every stored
    secret, which is split on its last hyphen when read back. A hyphen in
    the environment would therefore decode as part of the project.

    Args:
        env: Environment name to validate

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not env:
        print("Error: Environment name cannot be empty", file=sys.stderr)
        sys.exit(2)

    if not re.match(r'^[A-Za-z0-9_]+$', env):
        print(f"Error: Invalid environment name '{env}'", file=sys.stderr)
        print("\nAllowed characters: letters, numbers, underscores (_)", file=sys.stderr)
        print("Not allowed: hyphens (-), dots (.), spaces", file=sys.stderr)
        print("\nExamples of valid names:", file=sys.stderr)
        print("  ✓ dev", file=sys.stderr)
        print("  ✓ prod", file=sys.stderr)
        print("  ✓ staging_eu", file=sys.stderr)
        sys.exit(2)


def validate_project_name(project: str) -> None:
    """Project names may contain hyphens but must not be blank or contain dots."""
    if not project or not project.strip():
        print("Error: Project name cannot be empty", file=sys.stderr)
        sys.exit(2)

    if "." in project or "/" in project:
        print(f"Error: Invalid project name '{project}'", file=sys.stderr)
        print("\nProject names cannot contain dots (.) or slashes (/)", file=sys.stderr)
        sys.exit(2)


def validate_directory(path: str) -> Path:
    """
    Resolve a project directory argument.

    Raises:
        SystemExit with code 2 if the path is not a directory
    """
    directory = Path(path).resolve()
    if not directory.is_dir():
        print(f"Error: Not a directory: {directory}", file=sys.stderr)
        sys.exit(2)
    return directory
