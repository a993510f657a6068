"""Backend selection by name."""
from typing import Callable, List, Optional, Sequence, Tuple

from .base import SecretBackend
from .bitwarden import BitwardenBackend
from .errors import UnknownBackend
from .onepassword import OnePasswordBackend

BackendFactory = Callable[[], SecretBackend]


class BackendRegistry:
    """Immutable, ordered name -> factory table. The first entry is the default."""

    def __init__(self, factories: Sequence[Tuple[str, BackendFactory]]):
        self._factories = tuple(factories)

    def names(self) -> List[str]:
        return [name for name, _ in self._factories]

    def get(self, name: Optional[str] = None) -> SecretBackend:
        """
        Create the backend registered under name.

        Args:
            name: Registered backend name; None selects the first one

        Raises:
            UnknownBackend: If name is not registered
        """
        if name is None:
            return self._factories[0][1]()
        for registered, factory in self._factories:
            if registered == name:
                return factory()
        raise UnknownBackend(f"Unknown backend: {name}. Available: {', '.join(self.names())}")


DEFAULT_REGISTRY = BackendRegistry((
    ("1password", OnePasswordBackend),
    ("bitwarden", BitwardenBackend),
))


def get_backend(name: Optional[str] = None) -> SecretBackend:
    return DEFAULT_REGISTRY.get(name)


def list_backends() -> List[str]:
    return DEFAULT_REGISTRY.names()
