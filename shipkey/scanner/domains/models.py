"""Domain models for env file scanning."""
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class EnvVar:
    """A variable declared in an env file."""
    key: str
    value: Optional[str]  # None when declared by a template file
    source: str  # file path relative to the project root
    is_template: bool


@dataclass
class ScannedFile:
    """An env file and the variables it declares."""
    path: str
    is_template: bool
    vars: List[EnvVar] = field(default_factory=list)


@dataclass
class SubProjectGroup:
    """Env files sharing a directory ("." for the project root)."""
    path: str
    files: List[ScannedFile] = field(default_factory=list)


@dataclass
class ScanResult:
    """Result of scanning one project tree."""
    project_root: str
    groups: List[SubProjectGroup]
    total_files: int
    total_vars: int

    def find_group(self, path: str) -> Optional[SubProjectGroup]:
        for group in self.groups:
            if group.path == path:
                return group
        return None

    def iter_vars(self):
        for group in self.groups:
            for scanned in group.files:
                yield from scanned.vars
