"""
Secret backend interface.

A backend maps SecretRef (vault, provider, project, env, field) onto one
store's native layout and drives that store through its command-line tool.
"""
import os
import logging
import subprocess
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .errors import BackendNotInstalled, CommandError
from .models import BackendStatus, SecretEntry, SecretRef

logger = logging.getLogger(__name__)

DEFAULT_VAULT = "shipkey"


def run_cli(
    executable: str,
    args: Sequence[str],
    input: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None
) -> str:
    """
    Run an external CLI and return its stripped stdout.

    Args:
        executable: Program name (e.g. "op", "bw", "gh")
        args: Arguments after the program name
        input: Text to send on stdin
        env: Extra environment variables layered over os.environ

    Returns:
        Standard output, stripped

    Raises:
        BackendNotInstalled: If the executable cannot be found
        CommandError: If the process exits non-zero
    """
    child_env = {**os.environ, **env} if env else None
    logger.debug(f"Running: {executable} {args[0] if args else ''}")

    try:
        result = subprocess.run(
            [executable, *args],
            capture_output=True,
            text=True,
            input=input,
            env=child_env,
        )
    except FileNotFoundError as e:
        raise BackendNotInstalled(f"'{executable}' not found on PATH") from e

    if result.returncode != 0:
        raise CommandError(executable, result.returncode, (result.stderr or "").strip())
    return (result.stdout or "").strip()


class SecretBackend(ABC):
    """
    Abstract base class for secret stores.

    Subclasses implement the store-specific `_write`; `write` wraps it in a
    lock per (vault, provider) because both stores rewrite a whole provider
    record to change one field.
    """

    name: str = "base"
    executable: str = ""
    extra_env: Dict[str, str] = {}

    def __init__(self):
        self._locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _exec(self, args: Sequence[str], input: Optional[str] = None) -> str:
        return run_cli(self.executable, args, input=input, env=self.extra_env or None)

    def _lock_for(self, vault: str, provider: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault((vault, provider), threading.Lock())

    def check_status(self) -> BackendStatus:
        """
        Probe the store: CLI installed, then authenticated/unlocked.

        Returns:
            BackendStatus.NOT_INSTALLED, NOT_LOGGED_IN or READY
        """
        try:
            self._exec(["--version"])
        except (BackendNotInstalled, CommandError):
            return BackendStatus.NOT_INSTALLED

        try:
            logged_in = self._probe_login()
        except (CommandError, ValueError) as e:
            logger.debug(f"{self.name} login probe failed: {e}")
            return BackendStatus.NOT_LOGGED_IN
        return BackendStatus.READY if logged_in else BackendStatus.NOT_LOGGED_IN

    def is_available(self) -> bool:
        return self.check_status() == BackendStatus.READY

    @abstractmethod
    def _probe_login(self) -> bool:
        """True when the CLI is authenticated and usable."""
        pass

    @abstractmethod
    def install_hint(self) -> str:
        pass

    @abstractmethod
    def read(self, ref: SecretRef) -> str:
        """
        Read the value stored at ref.

        Raises:
            SecretNotFound: If the vault/provider/field path does not resolve
        """
        pass

    def write(self, entry: SecretEntry) -> None:
        """Upsert entry.value at entry.ref. Writing the same value twice is a no-op."""
        with self._lock_for(entry.ref.vault, entry.ref.provider):
            self._write(entry)

    @abstractmethod
    def _write(self, entry: SecretEntry) -> None:
        pass

    @abstractmethod
    def list(
        self,
        project: Optional[str] = None,
        env: Optional[str] = None,
        vault: str = DEFAULT_VAULT
    ) -> List[SecretRef]:
        """Refs stored in vault, optionally filtered; empty when nothing matches."""
        pass

    def build_inline_ref(self, ref: SecretRef) -> Optional[str]:
        """
        A store-native reference external tools can resolve on their own, or
        None when the store has no such mechanism and values must be embedded.
        """
        return None

    def parse_inline_ref(self, text: str) -> Optional[SecretRef]:
        """Inverse of build_inline_ref; None when text is not one of ours."""
        return None
