"""
User-level shipkey settings.

Only the default secret backend is kept here; everything project specific
belongs in shipkey.json. The file lives under $XDG_CONFIG_HOME (default
~/.config) as shipkey/preferences.json.
"""
import os
import json
import logging
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

BACKEND_KEY = "backend"


def _config_home() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    return Path(xdg) if xdg else Path.home() / ".config"


PREFERENCES_DIR = _config_home() / "shipkey"
PREFERENCES_FILE = PREFERENCES_DIR / "preferences.json"


def read_preferences() -> Dict[str, str]:
    """
    Current settings as a flat {name: value} mapping.

    A missing, unreadable or malformed file reads as no settings at all so a
    broken preferences file never blocks commands that fall back to the
    default backend. Non-string values are dropped.
    """
    if not PREFERENCES_FILE.exists():
        return {}

    try:
        data = json.loads(PREFERENCES_FILE.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable preferences file {PREFERENCES_FILE}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Ignoring preferences file {PREFERENCES_FILE}: expected a JSON object")
        return {}
    return {key: value for key, value in data.items() if isinstance(value, str)}


def _write_preferences(settings: Dict[str, str]) -> None:
    PREFERENCES_DIR.mkdir(parents=True, exist_ok=True)
    # Write then rename so a crash never leaves half a file behind
    tmp = PREFERENCES_FILE.with_suffix(".json.tmp")
    tmp.write_text(json.dumps(settings, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    os.replace(tmp, PREFERENCES_FILE)


def get_backend_preference() -> Optional[str]:
    return read_preferences().get(BACKEND_KEY)


def set_backend_preference(name: str) -> Path:
    """
    Remember name as the default backend.

    Args:
        name: Registered backend name (validated by the caller)

    Returns:
        Path of the preferences file
    """
    settings = read_preferences()
    settings[BACKEND_KEY] = name
    _write_preferences(settings)
    logger.info(f"Default backend set to {name} in {PREFERENCES_FILE}")
    return PREFERENCES_FILE


def clear_backend_preference() -> bool:
    """Forget the default backend. Returns False when none was set."""
    settings = read_preferences()
    if settings.pop(BACKEND_KEY, None) is None:
        logger.debug("No backend preference to clear")
        return False

    if settings:
        _write_preferences(settings)
    else:
        PREFERENCES_FILE.unlink()
    logger.info("Default backend preference cleared")
    return True
