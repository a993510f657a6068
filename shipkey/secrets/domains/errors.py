"""Exceptions raised by secret backends and sync targets."""


class ShipkeyError(Exception):
    """Base class for shipkey runtime errors."""
    pass


class BackendNotInstalled(ShipkeyError):
    """The store's command-line tool is not on PATH."""
    pass


class BackendNotAuthenticated(ShipkeyError):
    """The store's CLI is present but locked or logged out."""
    pass


class SecretNotFound(ShipkeyError):
    """A ref does not resolve to a stored value."""

    def __init__(self, ref, detail: str = ""):
        self.ref = ref
        message = f"Secret not found: {ref.provider}/{ref.section}/{ref.field} in {ref.vault}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class CommandError(ShipkeyError):
    """An external CLI exited with a non-zero status."""

    def __init__(self, command: str, returncode: int, stderr: str):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"{command} command failed: {stderr}")


class UnknownBackend(ShipkeyError):
    pass


class UnknownTarget(ShipkeyError):
    pass
