"""Sync target interface: platforms secrets are published to."""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List

from shipkey.secrets.domains.base import run_cli
from shipkey.secrets.domains.errors import BackendNotInstalled, CommandError, ShipkeyError, UnknownTarget
from shipkey.secrets.domains.models import BackendStatus

logger = logging.getLogger(__name__)


@dataclass
class ResolvedSecret:
    name: str
    value: str


@dataclass
class SyncFailure:
    name: str
    error: str


@dataclass
class SyncResult:
    """Per-secret outcome of one destination sync."""
    success: List[str] = field(default_factory=list)
    failed: List[SyncFailure] = field(default_factory=list)


class SyncTarget(ABC):
    """Publishes resolved {name, value} pairs to one platform's destinations."""

    name: str = "base"
    executable: str = ""
    auth_args: List[str] = []

    def check_status(self) -> BackendStatus:
        try:
            run_cli(self.executable, ["--version"])
        except (BackendNotInstalled, CommandError):
            return BackendStatus.NOT_INSTALLED
        try:
            run_cli(self.executable, self.auth_args)
        except CommandError:
            return BackendStatus.NOT_LOGGED_IN
        return BackendStatus.READY

    def is_available(self) -> bool:
        return self.check_status() == BackendStatus.READY

    @abstractmethod
    def install_hint(self) -> str:
        pass

    @abstractmethod
    def put_args(self, name: str, destination: str) -> List[str]:
        """CLI arguments that set secret `name` from stdin."""
        pass

    def sync(self, secrets: List[ResolvedSecret], destination: str) -> SyncResult:
        """
        Set each secret on destination. A failing secret does not stop the rest.
        """
        result = SyncResult()
        for secret in secrets:
            try:
                run_cli(self.executable, self.put_args(secret.name, destination), input=secret.value)
                result.success.append(secret.name)
            except ShipkeyError as e:
                logger.debug(f"{self.name}: failed to set {secret.name} on {destination}: {e}")
                result.failed.append(SyncFailure(name=secret.name, error=str(e)))
        return result


class TargetRegistry:
    """Immutable name -> target table."""

    def __init__(self, targets: Dict[str, SyncTarget]):
        self._targets = dict(targets)

    def names(self) -> List[str]:
        return list(self._targets)

    def get(self, name: str) -> SyncTarget:
        target = self._targets.get(name)
        if target is None:
            raise UnknownTarget(f"Unknown target: {name}. Available: {', '.join(self.names())}")
        return target
