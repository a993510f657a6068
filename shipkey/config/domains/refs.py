"""Mapping configured env keys to backend refs."""
from typing import Optional

from shipkey.secrets.domains.models import SecretRef

from .models import ShipkeyConfig


def ref_for_field(config: ShipkeyConfig, field: str, env: str) -> Optional[SecretRef]:
    """SecretRef of a configured field, or None when no provider lists it."""
    provider = config.provider_for_field(field)
    if provider is None:
        return None
    return SecretRef(vault=config.vault, provider=provider, project=config.project, env=env, field=field)
