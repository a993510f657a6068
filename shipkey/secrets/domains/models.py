"""Domain models for secret management."""
from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class SecretRef:
    """Identifies one stored credential field."""
    vault: str
    provider: str
    project: str
    env: str
    field: str

    @property
    def section(self) -> str:
        return f"{self.project}-{self.env}"


@dataclass
class SecretEntry:
    """A value to store at a ref."""
    ref: SecretRef
    value: str


class BackendStatus(str, Enum):
    NOT_INSTALLED = "not_installed"
    NOT_LOGGED_IN = "not_logged_in"
    READY = "ready"


def split_section(section: str):
    """
    Split a "{project}-{env}" section label on its last '-'.

    Returns:
        (project, env), or None when the label has no '-'
    """
    project, sep, env = section.rpartition("-")
    if not sep:
        return None
    return project, env
