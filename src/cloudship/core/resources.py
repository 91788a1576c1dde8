"""
Resource descriptors and lookup results.

A Resource Adapter never signals "resource is missing" with an exception.
Lookups return either a ResourceDescriptor or a NotFound value, so the
create-on-missing path is ordinary control flow.

Identifiers and attributes are opaque to the core: they are produced by a
backend binding and threaded back into the same binding by later steps.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Union


class ResourceKind(str, Enum):
    """Kinds of backend resources the deployer manages."""

    RESOURCE_GROUP = "resource_group"
    SERVICE_APIS = "service_apis"
    REGISTRY = "registry"
    NETWORK = "network"
    IDENTITY = "identity"
    CLUSTER = "cluster"
    LOAD_BALANCER = "load_balancer"
    LOG_SINK = "log_sink"
    REVISION = "revision"
    SERVICE = "service"

    @property
    def label(self) -> str:
        """Human-readable name used in log lines and error messages."""
        return _LABELS[self]


_LABELS = {
    ResourceKind.RESOURCE_GROUP: "Resource Group",
    ResourceKind.SERVICE_APIS: "Service APIs",
    ResourceKind.REGISTRY: "Image Registry",
    ResourceKind.NETWORK: "Network",
    ResourceKind.IDENTITY: "Identity",
    ResourceKind.CLUSTER: "Cluster",
    ResourceKind.LOAD_BALANCER: "Load Balancer",
    ResourceKind.LOG_SINK: "Log Sink",
    ResourceKind.REVISION: "Revision",
    ResourceKind.SERVICE: "Service",
}


@dataclass(frozen=True)
class ResourceDescriptor:
    """
    A resource that exists in the backend.

    Attributes:
        kind: The resource kind
        name: Stable logical name the resource was looked up or created by
        identifier: Backend identifier (ARN, resource path, URI)
        attributes: Additional opaque identifiers for dependent steps
    """

    kind: ResourceKind
    name: str
    identifier: str
    attributes: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    def get(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)

    @property
    def complete(self) -> bool:
        """False when only some of the resource's parts exist."""
        return bool(self.attributes.get("complete", True))


@dataclass(frozen=True)
class NotFound:
    """Lookup result for a resource that does not exist in the backend."""

    kind: ResourceKind
    name: str

    def __bool__(self) -> bool:
        return False


LookupResult = Union[ResourceDescriptor, NotFound]


def is_found(result: LookupResult) -> bool:
    return isinstance(result, ResourceDescriptor)
