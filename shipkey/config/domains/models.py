"""Domain models for shipkey.json."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

# destination -> field names, or secret name -> reference
TargetDestination = Union[List[str], Dict[str, str]]
TargetConfig = Dict[str, TargetDestination]


@dataclass
class PermissionHint:
    """Recommended access scope for a provider credential."""
    permission: str
    source: str

    def to_dict(self) -> Dict[str, str]:
        return {"permission": self.permission, "source": self.source}


@dataclass
class ProviderConfig:
    """Fields issued by one provider, with optional setup guidance."""
    fields: List[str] = field(default_factory=list)
    guide_url: Optional[str] = None
    guide: Optional[str] = None
    permissions: List[PermissionHint] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProviderConfig":
        return cls(
            fields=list(data.get("fields") or []),
            guide_url=data.get("guide_url"),
            guide=data.get("guide"),
            permissions=[
                PermissionHint(permission=p["permission"], source=p.get("source", ""))
                for p in data.get("permissions") or []
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"fields": list(self.fields)}
        if self.guide_url:
            data["guide_url"] = self.guide_url
        if self.guide:
            data["guide"] = self.guide
        if self.permissions:
            data["permissions"] = [p.to_dict() for p in self.permissions]
        return data


@dataclass
class ShipkeyConfig:
    """Root record persisted as shipkey.json."""
    project: str
    vault: str
    backend: Optional[str] = None  # None means the first registered backend
    providers: Dict[str, ProviderConfig] = field(default_factory=dict)
    targets: Dict[str, TargetConfig] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShipkeyConfig":
        return cls(
            project=data["project"],
            vault=data["vault"],
            backend=data.get("backend"),
            providers={
                name: ProviderConfig.from_dict(provider)
                for name, provider in (data.get("providers") or {}).items()
            },
            targets={
                platform: {
                    dest: list(spec) if isinstance(spec, list) else dict(spec)
                    for dest, spec in (destinations or {}).items()
                }
                for platform, destinations in (data.get("targets") or {}).items()
            },
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"project": self.project, "vault": self.vault}
        if self.backend:
            data["backend"] = self.backend
        if self.providers:
            data["providers"] = {name: p.to_dict() for name, p in self.providers.items()}
        if self.targets:
            data["targets"] = {
                platform: {
                    dest: list(spec) if isinstance(spec, list) else dict(spec)
                    for dest, spec in destinations.items()
                }
                for platform, destinations in self.targets.items()
            }
        return data

    def provider_for_field(self, field_name: str) -> Optional[str]:
        """Name of the first provider listing field_name."""
        for name, provider in self.providers.items():
            if field_name in provider.fields:
                return name
        return None
