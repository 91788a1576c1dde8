"""
GCP resource handlers.

Cloud Run needs very little standing infrastructure: the two APIs enabled
and an Artifact Registry docker repository. The service itself is created
by deploy and removed by teardown; its revisions go with it.
"""

import logging
from typing import TYPE_CHECKING

from google.cloud import artifactregistry_v1

from ... import constants as CONSTANTS
from ...core.exceptions import TransientError
from ...core.protocols import Inputs
from ...core.resources import NotFound, ResourceDescriptor, ResourceKind
from ...core.waiter import ReadinessWaiter
from ..base import ResourceHandler

if TYPE_CHECKING:
    from .provider import GCPCloudRunProvider

logger = logging.getLogger(__name__)

# serviceusage batchEnable is a long-running operation
API_ENABLE_POLL_SECONDS = 5
API_ENABLE_TIMEOUT_SECONDS = 300


# ==========================================
# Service APIs
# ==========================================

def _service_names(provider: 'GCPCloudRunProvider'):
    project = provider.naming.project_id
    return [f"projects/{project}/services/{service}" for service in CONSTANTS.GCP_REQUIRED_SERVICES]


def lookup_service_apis(provider: 'GCPCloudRunProvider', inputs: Inputs):
    project = provider.naming.project_id
    response = provider.clients["serviceusage"].services().batchGet(
        parent=f"projects/{project}",
        names=_service_names(provider)
    ).execute()

    disabled = [
        service["config"]["name"]
        for service in response.get("services", [])
        if service.get("state") != "ENABLED"
    ]
    if disabled or not response.get("services"):
        logger.info(f"[GCP] APIs not enabled: {', '.join(disabled) or provider.naming.service_apis()}")
        return NotFound(ResourceKind.SERVICE_APIS, provider.naming.service_apis())

    return ResourceDescriptor(ResourceKind.SERVICE_APIS, provider.naming.service_apis(), f"projects/{project}")


def create_service_apis(provider: 'GCPCloudRunProvider', inputs: Inputs) -> ResourceDescriptor:
    serviceusage = provider.clients["serviceusage"]
    project = provider.naming.project_id
    operation = serviceusage.services().batchEnable(
        parent=f"projects/{project}",
        body={"serviceIds": list(CONSTANTS.GCP_REQUIRED_SERVICES)}
    ).execute()

    def done() -> bool:
        nonlocal operation
        if operation.get("done"):
            return True
        operation = serviceusage.operations().get(name=operation["name"]).execute()
        return bool(operation.get("done"))

    waiter = ReadinessWaiter(API_ENABLE_POLL_SECONDS, API_ENABLE_TIMEOUT_SECONDS)
    if not waiter.wait(done, "API enablement"):
        raise TransientError("API enablement is still in progress", provider=provider.name)
    if "error" in operation:
        raise RuntimeError(f"API enablement failed: {operation['error'].get('message')}")

    found = lookup_service_apis(provider, inputs)
    if isinstance(found, NotFound):
        raise TransientError("APIs report enabled but are not visible yet", provider=provider.name)
    return found


def delete_service_apis(provider: 'GCPCloudRunProvider', descriptor: ResourceDescriptor) -> None:
    # API enablement is project-wide
    logger.info(f"[GCP] API enablement retained: {descriptor.name}")


# ==========================================
# Registry (Artifact Registry)
# ==========================================

def _registry_descriptor(provider: 'GCPCloudRunProvider', repository) -> ResourceDescriptor:
    naming = provider.naming
    return ResourceDescriptor(
        ResourceKind.REGISTRY,
        naming.repository(),
        repository.name,
        {"host": naming.registry_host()}
    )


def lookup_registry(provider: 'GCPCloudRunProvider', inputs: Inputs):
    repository = provider.clients["artifactregistry"].get_repository(name=provider.naming.repository_path())
    return _registry_descriptor(provider, repository)


def create_registry(provider: 'GCPCloudRunProvider', inputs: Inputs) -> ResourceDescriptor:
    naming = provider.naming
    operation = provider.clients["artifactregistry"].create_repository(
        parent=naming.location_path(),
        repository_id=naming.repository(),
        repository=artifactregistry_v1.Repository(
            format_=artifactregistry_v1.Repository.Format.DOCKER,
            description=f"Container images for {naming.service_name}",
        )
    )
    return _registry_descriptor(provider, operation.result())


def delete_registry(provider: 'GCPCloudRunProvider', descriptor: ResourceDescriptor) -> None:
    provider.clients["artifactregistry"].delete_repository(name=descriptor.identifier).result()


# ==========================================
# Service (Cloud Run, deploy-owned)
# ==========================================

def service_descriptor(service) -> ResourceDescriptor:
    return ResourceDescriptor(
        ResourceKind.SERVICE,
        service.name.rsplit("/", 1)[-1],
        service.name,
        {"uri": service.uri}
    )


def lookup_service(provider: 'GCPCloudRunProvider', inputs: Inputs):
    return service_descriptor(provider.clients["run"].get_service(name=provider.naming.service_path()))


def delete_service(provider: 'GCPCloudRunProvider', descriptor: ResourceDescriptor) -> None:
    provider.clients["run"].delete_service(name=descriptor.identifier).result()


HANDLERS = {
    ResourceKind.SERVICE_APIS: ResourceHandler(lookup_service_apis, create_service_apis, delete_service_apis),
    ResourceKind.REGISTRY: ResourceHandler(lookup_registry, create_registry, delete_registry),
    ResourceKind.SERVICE: ResourceHandler(lookup_service, None, delete_service),
}
