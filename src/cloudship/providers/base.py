"""
Shared base class for backend bindings.

BaseProvider implements the ResourceAdapter contract once. Each backend
supplies:

    - a naming helper with for_kind(kind) -> stable resource name
    - HANDLERS: ResourceKind -> ResourceHandler(lookup, create, delete),
      plain functions in the backend's resources.py
    - translate_error(exc): raw SDK exception -> classified DeploymentError
    - registry_login()/image_uri() for publish

lookup/ensure/remove here add the common policy on top:

    lookup  - a NOT_FOUND failure becomes a NotFound result
    ensure  - lookup first; an "already exists" create race looks up again
    remove  - NOT_FOUND is success; anything else is ResourceRemovalError
"""

import logging
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence

from ..core.context import DeploymentSpec
from ..core.exceptions import (
    ConfigurationError,
    DeploymentError,
    ErrorClass,
    ImagePropagationError,
    ResourceExistsError,
    ResourceRemovalError,
)
from ..core.protocols import Inputs
from ..core.resources import LookupResult, NotFound, ResourceDescriptor, ResourceKind
from ..core.sequencer import ProvisioningStep

logger = logging.getLogger(__name__)

_IMAGE_ERROR_MARKERS = ("not found", "pull", "manifest")


class ResourceHandler(NamedTuple):
    """
    Per-kind backend functions.

    lookup(provider, inputs) -> ResourceDescriptor | NotFound
    create(provider, inputs) -> ResourceDescriptor, None for deploy-owned kinds
    delete(provider, descriptor) -> None
    """

    lookup: Callable[..., LookupResult]
    create: Optional[Callable[..., ResourceDescriptor]]
    delete: Callable[..., None]


def looks_like_image_propagation(message: str) -> bool:
    """
    Fallback check for backend errors that do not carry a typed code.

    Matches messages that mention the image together with a pull,
    manifest or not-found failure.
    """
    text = message.lower()
    return "image" in text and any(marker in text for marker in _IMAGE_ERROR_MARKERS)


def as_image_error(error: DeploymentError) -> DeploymentError:
    """Reclassify a translated service-update failure by its message."""
    if isinstance(error, ImagePropagationError) or not looks_like_image_propagation(str(error)):
        return error
    return ImagePropagationError(error.message, provider=error.provider, step=error.step)


class BaseProvider:
    """
    Base class for backend bindings.

    Attributes:
        name: Backend id used by the registry
        display_name: Short prefix for log lines ("AWS", "GCP", "Azure")
        STEPS: Declared provisioning steps
        HANDLERS: Per-kind handler functions
        log_poll_interval: Seconds between log fetches
        stability_max_iterations: Optional cap on stability checks after a rollout
    """

    name: str = ""
    display_name: str = ""
    STEPS: Sequence[ProvisioningStep] = ()
    HANDLERS: Dict[ResourceKind, ResourceHandler] = {}
    log_poll_interval: float = 10
    stability_max_iterations: Optional[int] = None

    def __init__(self):
        """Initialize base provider state."""
        self._spec: Optional[DeploymentSpec] = None
        self._clients: Dict[str, Any] = {}
        self._initialized: bool = False
        self._naming = None

    @property
    def spec(self) -> DeploymentSpec:
        """Get the deployment spec this provider was initialized with."""
        if self._spec is None:
            raise RuntimeError(
                "Provider not initialized. Call initialize_clients() first."
            )
        return self._spec

    @property
    def clients(self) -> Dict[str, Any]:
        """Return initialized SDK clients."""
        if not self._initialized:
            raise RuntimeError(
                "Provider not initialized. Call initialize_clients() first."
            )
        return self._clients

    @property
    def naming(self):
        if self._naming is None:
            raise RuntimeError(
                "Provider not initialized. Call initialize_clients() first."
            )
        return self._naming

    @property
    def steps(self) -> Sequence[ProvisioningStep]:
        return self.STEPS

    def resource_name(self, kind: ResourceKind) -> str:
        return self.naming.for_kind(kind)

    def translate_error(self, error: Exception) -> DeploymentError:
        """Map a raw SDK exception to the error taxonomy. Backends override."""
        return DeploymentError(str(error), provider=self.name)

    def _translated(self, error: Exception) -> DeploymentError:
        if isinstance(error, DeploymentError):
            return error
        return self.translate_error(error)

    def _call(self, function: Callable[..., Any], *args) -> Any:
        """Invoke a backend function, translating raw SDK failures."""
        try:
            return function(self, *args)
        except DeploymentError:
            raise
        except Exception as e:
            raise self.translate_error(e) from e

    def _handler(self, kind: ResourceKind) -> ResourceHandler:
        try:
            return self.HANDLERS[kind]
        except KeyError:
            raise ConfigurationError(
                f"{self.name} does not manage resources of kind {kind.value}", provider=self.name
            ) from None

    # ==========================================
    # ResourceAdapter
    # ==========================================

    def lookup(self, kind: ResourceKind, inputs: Inputs) -> LookupResult:
        handler = self._handler(kind)
        try:
            return handler.lookup(self, inputs)
        except Exception as e:
            error = self._translated(e)
            if error.error_class == ErrorClass.NOT_FOUND:
                return NotFound(kind, self.resource_name(kind))
            if error is e:
                raise
            raise error from e

    def ensure(self, kind: ResourceKind, inputs: Inputs) -> ResourceDescriptor:
        found = self.lookup(kind, inputs)
        if isinstance(found, ResourceDescriptor) and found.complete:
            self._log_resource_exists(kind.label, found.name)
            return found

        handler = self._handler(kind)
        if handler.create is None:
            raise ConfigurationError(
                f"{kind.label} is created by deploy, not by setup", provider=self.name
            )

        if isinstance(found, ResourceDescriptor):
            logger.info(f"[{self.display_name}] {kind.label} partially exists, completing: {found.name}")
        else:
            self._log_resource_creation(kind.label, found.name)
        try:
            created = handler.create(self, inputs)
        except Exception as e:
            error = self._translated(e)
            if isinstance(error, ResourceExistsError):
                # Lost a create race; whoever won created the same resource
                again = self.lookup(kind, inputs)
                if isinstance(again, ResourceDescriptor):
                    self._log_resource_exists(kind.label, again.name)
                    return again
            if error is e:
                raise
            raise error from e

        logger.info(f"[{self.display_name}] ✓ Created {kind.label}: {created.name}")
        return created

    def remove(self, descriptor: ResourceDescriptor) -> None:
        handler = self._handler(descriptor.kind)
        self._log_resource_deletion(descriptor.kind.label, descriptor.name)
        try:
            handler.delete(self, descriptor)
        except Exception as e:
            error = self._translated(e)
            if error.error_class == ErrorClass.NOT_FOUND:
                self._log_resource_not_found(descriptor.kind.label, descriptor.name)
                return
            raise ResourceRemovalError(
                descriptor.kind.label, descriptor.name, provider=self.name, cause=error
            ) from e

    # ==========================================
    # Publishing
    # ==========================================

    def image_uri(self, tag: str, resources: Inputs) -> str:
        raise NotImplementedError

    def registry_login(self, resources: Inputs) -> None:
        raise NotImplementedError

    def publish(self, tag: str, resources: Inputs) -> str:
        """Log in to the registry, build for linux/amd64 and push."""
        from ..runner import build_image, push_image

        uri = self.image_uri(tag, resources)
        self.registry_login(resources)
        build_image(uri, self.spec.dockerfile_path, self.spec.build_context)
        push_image(uri)
        return uri

    def manual_check_hint(self) -> List[str]:
        return []

    # ==========================================
    # Logging helpers
    # ==========================================

    def _log_resource_creation(self, resource_type: str, resource_name: str) -> None:
        logger.info(f"[{self.display_name}] Creating {resource_type}: {resource_name}")

    def _log_resource_deletion(self, resource_type: str, resource_name: str) -> None:
        logger.info(f"[{self.display_name}] Deleting {resource_type}: {resource_name}")

    def _log_resource_exists(self, resource_type: str, resource_name: str) -> None:
        """Log that a resource already exists (for idempotent operations)."""
        logger.info(f"[{self.display_name}] {resource_type} already exists: {resource_name}")

    def _log_resource_not_found(self, resource_type: str, resource_name: str) -> None:
        """Log that a resource was not found (during deletion)."""
        logger.info(f"[{self.display_name}] {resource_type} not found (already deleted?): {resource_name}")
