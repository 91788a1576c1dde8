"""
Protocol definitions for the container deployer.

This module defines the abstract interfaces (Protocols) that every backend
binding must implement. Using Python's Protocol (structural subtyping) keeps
the core free of backend imports while still providing IDE support and
type checking.

Design Pattern: Strategy Pattern + Abstract Factory
    - ResourceAdapter: idempotent lookup/ensure/remove per resource kind
    - RolloutTarget: publish/register/update/stability hooks used by deploy
    - LogSource: fetches log entries for the running service
    - CloudProvider: a backend binding combining all three plus client setup

The core modules (sequencer, rollout, deployer) only ever talk to these
protocols. Concrete bindings live in cloudship.providers.<backend>.
"""

from datetime import datetime
from typing import (
    Any, Dict, List, Mapping, Optional, Protocol, Sequence, TYPE_CHECKING,
    runtime_checkable,
)

from .resources import LookupResult, ResourceDescriptor, ResourceKind

if TYPE_CHECKING:
    # Avoid circular imports - only import for type hints
    from .context import DeploymentSpec
    from .log_stream import LogEntry
    from .sequencer import ProvisioningStep


Inputs = Mapping[ResourceKind, ResourceDescriptor]


@runtime_checkable
class ResourceAdapter(Protocol):
    """
    Idempotent resource operations for one backend.

    Invariants:
        - lookup() never creates or mutates anything.
        - ensure() returns an existing resource unchanged; calling it any
          number of times with identical inputs has no side effects after
          the first successful call.
        - remove() treats "already gone" as success and raises
          ResourceRemovalError for anything else.
    """

    @property
    def name(self) -> str:
        """Backend identifier used for logging and registry lookup."""
        ...

    def resource_name(self, kind: ResourceKind) -> str:
        """
        Return the stable name a resource of this kind is managed under.

        Used for error messages and teardown summaries even when the
        resource itself could not be looked up.
        """
        ...

    def lookup(self, kind: ResourceKind, inputs: Inputs) -> LookupResult:
        """
        Look up a resource by its stable name.

        Args:
            kind: The resource kind
            inputs: Descriptors of already-resolved dependencies

        Returns:
            The ResourceDescriptor, or NotFound when it does not exist.

        Raises:
            DeploymentError: Classified failure (FATAL or TRANSIENT).
        """
        ...

    def ensure(self, kind: ResourceKind, inputs: Inputs) -> ResourceDescriptor:
        """Return the existing resource, or create it when NotFound."""
        ...

    def remove(self, descriptor: ResourceDescriptor) -> None:
        """Delete a resource. NotFound is success."""
        ...


@runtime_checkable
class RolloutTarget(Protocol):
    """
    Backend hooks driven by the rollout state machine.

    Each hook receives the descriptors resolved by the precondition gate,
    keyed by ResourceKind.
    """

    def publish(self, tag: str, resources: Inputs) -> str:
        """
        Build and push the container image under a unique tag.

        Returns:
            The fully qualified image URI.

        Raises:
            BuildError: If the image cannot be built or pushed.
        """
        ...

    def probe_image(self, image_uri: str, resources: Inputs) -> bool:
        """Return True when the registry reports the image as present."""
        ...

    def register_revision(self, image_uri: str, resources: Inputs) -> ResourceDescriptor:
        """Register a new immutable revision referencing the image."""
        ...

    def update_service(self, revision: ResourceDescriptor, resources: Inputs) -> ResourceDescriptor:
        """Create the service if absent, otherwise update it in place."""
        ...

    def is_service_stable(self, service: ResourceDescriptor) -> bool:
        """Stability predicate polled after the service update."""
        ...

    def service_endpoint(self, service: ResourceDescriptor, resources: Inputs) -> Optional[str]:
        """Public URL of the service, if the backend exposes one."""
        ...


@runtime_checkable
class LogSource(Protocol):
    """Fetches log entries for the running service."""

    log_poll_interval: float

    def fetch_logs(self, since: datetime) -> List['LogEntry']:
        """
        Return entries with a timestamp at or after `since`, oldest first.

        A missing log sink yields an empty list rather than an error.
        """
        ...


@runtime_checkable
class CloudProvider(ResourceAdapter, RolloutTarget, LogSource, Protocol):
    """
    Protocol defining a complete backend binding.

    Responsibilities:
        - Initialize and manage SDK clients (boto3, azure-mgmt-*, google-cloud-*)
        - Generate consistent resource names from the service name
        - Declare the provisioning steps in dependency order
        - Implement the adapter, rollout and log hooks
    """

    @property
    def clients(self) -> Dict[str, Any]:
        """Return initialized SDK clients keyed by short service name."""
        ...

    @property
    def steps(self) -> Sequence['ProvisioningStep']:
        """Declared provisioning steps with their named dependencies."""
        ...

    def initialize_clients(self, spec: 'DeploymentSpec') -> None:
        """
        Bind the deployment spec and create authenticated SDK clients.

        Raises:
            ConfigurationError: If settings are missing or credentials
                cannot be resolved.
        """
        ...

    def manual_check_hint(self) -> List[str]:
        """Lines naming resources to inspect when teardown was incomplete."""
        ...
