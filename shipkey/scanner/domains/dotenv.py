"""Reading and writing dotenv-style files."""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

DEV_VARS_FILE = ".dev.vars"
LOCAL_ENV_FILE = ".env.local"


@dataclass
class ParsedVar:
    """One KEY=value assignment, in file order."""
    key: str
    value: str


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def parse_dotenv(content: str) -> List[ParsedVar]:
    """
    Parse env file text into ordered key/value pairs.

    Blank lines and '#' comments are skipped, as are lines without '='.
    A single matching pair of outer quotes is removed from the value; no
    escape sequences are interpreted. Duplicate keys are kept as separate
    entries, callers decide which one wins.

    Args:
        content: Raw file contents

    Returns:
        List of ParsedVar in input order
    """
    results: List[ParsedVar] = []

    # Only "\n" ends a line; other Unicode line breaks stay inside values
    for raw_line in content.split("\n"):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue

        key, sep, value = line.partition("=")
        if not sep:
            continue

        results.append(ParsedVar(key=key.strip(), value=_strip_quotes(value.strip())))

    return results


def _default_env_filename(project_root: Path) -> str:
    # Cloudflare workers read local secrets from .dev.vars
    if (project_root / "wrangler.toml").exists():
        return DEV_VARS_FILE
    return LOCAL_ENV_FILE


def write_local_env(
    project_root: Path,
    values: Dict[str, str],
    filename: Optional[str] = None
) -> Path:
    """
    Upsert KEY=value lines into the project's local env file.

    Existing lines for a key are replaced in place, new keys are appended and
    every other line is left untouched.

    Args:
        project_root: Project directory
        values: Mapping of env key to value
        filename: Target file name (default: .dev.vars when wrangler.toml
                  exists, .env.local otherwise)

    Returns:
        Path of the file that was written
    """
    project_root = Path(project_root)
    env_path = project_root / (filename or _default_env_filename(project_root))
    upsert_lines(env_path, {f"{key}=": f"{key}={value}" for key, value in values.items()})
    return env_path


def upsert_lines(path: Path, replacements: Dict[str, str]) -> None:
    """
    Replace the first line starting with each prefix, or append the line.

    Args:
        path: File to update (created when missing)
        replacements: Mapping of line prefix to the full replacement line
    """
    lines: List[str] = []
    if path.exists():
        lines = path.read_text(encoding="utf-8").splitlines()

    for prefix, new_line in replacements.items():
        for index, line in enumerate(lines):
            if line.startswith(prefix):
                lines[index] = new_line
                break
        else:
            lines.append(new_line)

    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    logger.debug(f"Wrote {len(replacements)} lines to {path}")
