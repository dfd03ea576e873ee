"""Namespace/name identity of a KDC and of the resources it owns."""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .errors import ConfigurationError


@dataclass(frozen=True)
class ResourceIdentity:
    """Identity of a namespaced object. Either field may be missing until
    it is required by an operation."""

    namespace: Optional[str]
    name: Optional[str]

    @classmethod
    def from_meta(cls, meta: Mapping[str, Any]) -> "ResourceIdentity":
        return cls(namespace=meta.get("namespace"), name=meta.get("name"))

    def require_namespace(self) -> str:
        if not self.namespace:
            raise ConfigurationError(f"Metadata namespace is empty: {self}")
        return self.namespace

    def require_name(self) -> str:
        if not self.name:
            raise ConfigurationError(f"Metadata name is empty: {self}")
        return self.name

    def with_name(self, name: str) -> "ResourceIdentity":
        return ResourceIdentity(namespace=self.namespace, name=name)

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"
