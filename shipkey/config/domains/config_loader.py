"""Configuration loader for shipkey.json."""
import os
import json
import logging
from pathlib import Path
from typing import Optional

from .models import ShipkeyConfig
from .preferences import get_backend_preference

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "shipkey.json"
DEFAULT_VAULT = "shipkey"
BACKEND_ENV_VAR = "SHIPKEY_BACKEND"


class ConfigError(Exception):
    """Configuration error exception."""
    pass


class ConfigMissing(ConfigError):
    """No shipkey.json in the project directory."""
    pass


def config_path(project_dir) -> Path:
    return Path(project_dir) / CONFIG_FILENAME


def load_config(project_dir) -> ShipkeyConfig:
    """
    Load and validate shipkey.json from a project directory.

    Args:
        project_dir: Project root containing shipkey.json

    Returns:
        Parsed ShipkeyConfig

    Raises:
        ConfigMissing: If shipkey.json does not exist
        ConfigError: If the file is unreadable, not JSON, or lacks project/vault
    """
    path = config_path(project_dir)

    if not path.exists():
        raise ConfigMissing(
            f"Cannot read {path}. Run 'shipkey scan --write' or create it manually."
        )

    try:
        with open(path, 'r', encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Failed to parse JSON config at {path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {path}: {e}")

    if not isinstance(data, dict) or not data:
        raise ConfigError(f"Config file at {path} is empty")

    for key in ("project", "vault"):
        if not isinstance(data.get(key), str) or not data[key]:
            raise ConfigError(
                f"Missing '{key}' in config at {path}\n"
                f"Required format:\n"
                f'{{"project": "myapp", "vault": "{DEFAULT_VAULT}"}}'
            )

    logger.debug(f"Configuration loaded from {path}")
    return ShipkeyConfig.from_dict(data)


def save_config(project_dir, config: ShipkeyConfig) -> Path:
    """Write shipkey.json with 2-space indentation and a trailing newline."""
    path = config_path(project_dir)
    path.write_text(json.dumps(config.to_dict(), indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    logger.info(f"Saved configuration to {path}")
    return path


def resolve_backend_name(config: Optional[ShipkeyConfig] = None) -> Optional[str]:
    """
    Backend selected for this project.

    Priority order:
    1. `backend` in shipkey.json
    2. SHIPKEY_BACKEND environment variable
    3. User preference (~/.config/shipkey/preferences.json)

    Returns:
        Backend name, or None to use the first registered backend
    """
    if config is not None and config.backend:
        return config.backend

    env_backend = os.getenv(BACKEND_ENV_VAR)
    if env_backend:
        logger.debug(f"Using {BACKEND_ENV_VAR} from environment: {env_backend}")
        return env_backend

    return get_backend_preference()
