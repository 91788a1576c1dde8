"""
Azure resource handlers.

Everything lives in one resource group. The group is tagged
managed-by=cloudship when this tool creates it, and teardown only deletes
a group carrying that tag.
"""

import logging
from typing import TYPE_CHECKING

from azure.core.exceptions import HttpResponseError
from azure.core.exceptions import ResourceNotFoundError as AzureNotFound

from ... import constants as CONSTANTS
from ...core.exceptions import TransientError
from ...core.protocols import Inputs
from ...core.resources import ResourceDescriptor, ResourceKind
from ...core.waiter import ReadinessWaiter
from ..base import ResourceHandler

if TYPE_CHECKING:
    from .provider import AzureContainerAppsProvider

logger = logging.getLogger(__name__)

# A new identity's principal takes a while to reach the directory
ROLE_GRANT_POLL_SECONDS = 10
ROLE_GRANT_TIMEOUT_SECONDS = 180
PRINCIPAL_NOT_READY_CODES = {"PrincipalNotFound"}

WORKSPACE_SKU = "PerGB2018"
WORKSPACE_RETENTION_DAYS = 30


def _tags() -> dict:
    key, value = CONSTANTS.AZURE_MANAGED_BY_TAG
    return {key: value}


def _is_managed(tags) -> bool:
    key, value = CONSTANTS.AZURE_MANAGED_BY_TAG
    return (tags or {}).get(key) == value


# ==========================================
# Resource Group
# ==========================================

def lookup_resource_group(provider: 'AzureContainerAppsProvider', inputs: Inputs):
    group = provider.clients["resource"].resource_groups.get(provider.naming.resource_group())
    return ResourceDescriptor(
        ResourceKind.RESOURCE_GROUP,
        group.name,
        group.id,
        {"managed": _is_managed(group.tags), "location": group.location}
    )


def create_resource_group(provider: 'AzureContainerAppsProvider', inputs: Inputs) -> ResourceDescriptor:
    group = provider.clients["resource"].resource_groups.create_or_update(
        resource_group_name=provider.naming.resource_group(),
        parameters={"location": provider.location, "tags": _tags()}
    )
    return ResourceDescriptor(ResourceKind.RESOURCE_GROUP, group.name, group.id, {"managed": True, "location": group.location})


def delete_resource_group(provider: 'AzureContainerAppsProvider', descriptor: ResourceDescriptor) -> None:
    if not descriptor.get("managed"):
        key, value = CONSTANTS.AZURE_MANAGED_BY_TAG
        logger.info(f"[Azure] Resource Group retained (not tagged {key}={value}): {descriptor.name}")
        return
    provider.clients["resource"].resource_groups.begin_delete(descriptor.name).result()


# ==========================================
# Registry (Azure Container Registry)
# ==========================================

def lookup_registry(provider: 'AzureContainerAppsProvider', inputs: Inputs):
    registry = provider.clients["acr"].registries.get(
        resource_group_name=provider.naming.resource_group(),
        registry_name=provider.naming.registry()
    )
    return ResourceDescriptor(ResourceKind.REGISTRY, registry.name, registry.id, {"login_server": registry.login_server})


def create_registry(provider: 'AzureContainerAppsProvider', inputs: Inputs) -> ResourceDescriptor:
    naming = provider.naming
    registry = provider.clients["acr"].registries.begin_create(
        resource_group_name=naming.resource_group(),
        registry_name=naming.registry(),
        registry={
            "location": provider.location,
            "sku": {"name": "Basic"},
            "admin_user_enabled": False,
            "tags": _tags(),
        }
    ).result()
    return ResourceDescriptor(ResourceKind.REGISTRY, registry.name, registry.id, {"login_server": registry.login_server})


def delete_registry(provider: 'AzureContainerAppsProvider', descriptor: ResourceDescriptor) -> None:
    provider.clients["acr"].registries.begin_delete(
        resource_group_name=provider.naming.resource_group(),
        registry_name=descriptor.name
    ).result()


# ==========================================
# Identity (user-assigned identity + AcrPull)
# ==========================================

def _identity_descriptor(provider: 'AzureContainerAppsProvider', identity) -> ResourceDescriptor:
    return ResourceDescriptor(
        ResourceKind.IDENTITY,
        identity.name,
        identity.id,
        {
            "principal_id": identity.principal_id,
            "client_id": identity.client_id,
            "role_scope": provider.naming.registry_id(),
            "role_assignment": provider.naming.role_assignment(),
        }
    )


def lookup_identity(provider: 'AzureContainerAppsProvider', inputs: Inputs):
    identity = provider.clients["msi"].user_assigned_identities.get(
        resource_group_name=provider.naming.resource_group(),
        resource_name=provider.naming.identity()
    )
    return _identity_descriptor(provider, identity)


def _grant_acr_pull(provider: 'AzureContainerAppsProvider', descriptor: ResourceDescriptor, inputs: Inputs) -> None:
    naming = provider.naming
    registry = inputs.get(ResourceKind.REGISTRY)
    scope = registry.identifier if registry is not None else naming.registry_id()
    parameters = {
        "role_definition_id": naming.role_definition_id(CONSTANTS.AZURE_ACR_PULL_ROLE_ID),
        "principal_id": descriptor.get("principal_id"),
        "principal_type": "ServicePrincipal",
    }

    def granted() -> bool:
        try:
            provider.clients["authorization"].role_assignments.create(
                scope=scope,
                role_assignment_name=naming.role_assignment(),
                parameters=parameters
            )
        except HttpResponseError as e:
            code = getattr(e.error, "code", None) if e.error else None
            if code == "RoleAssignmentExists":
                return True
            if code in PRINCIPAL_NOT_READY_CODES:
                raise TransientError(f"Identity principal not yet visible: {code}", provider=provider.name) from e
            raise
        return True

    waiter = ReadinessWaiter(ROLE_GRANT_POLL_SECONDS, ROLE_GRANT_TIMEOUT_SECONDS)
    if not waiter.wait(granted, f"AcrPull grant for {descriptor.name}"):
        raise TransientError("AcrPull role assignment could not be created yet", provider=provider.name)
    logger.info(f"[Azure] ✓ AcrPull granted to {descriptor.name}")


def create_identity(provider: 'AzureContainerAppsProvider', inputs: Inputs) -> ResourceDescriptor:
    """
    Create the identity and grant it AcrPull on the registry.

    If the grant fails the identity is deleted again, so the next setup
    run starts from a clean slate for this step.
    """
    naming = provider.naming
    msi = provider.clients["msi"]
    identity = msi.user_assigned_identities.create_or_update(
        resource_group_name=naming.resource_group(),
        resource_name=naming.identity(),
        parameters={"location": provider.location, "tags": _tags()}
    )
    descriptor = _identity_descriptor(provider, identity)

    try:
        _grant_acr_pull(provider, descriptor, inputs)
    except Exception:
        logger.warning(f"[Azure] ✗ AcrPull grant failed, removing identity {descriptor.name}")
        msi.user_assigned_identities.delete(
            resource_group_name=naming.resource_group(),
            resource_name=descriptor.name
        )
        raise
    return descriptor


def delete_identity(provider: 'AzureContainerAppsProvider', descriptor: ResourceDescriptor) -> None:
    try:
        provider.clients["authorization"].role_assignments.delete(
            scope=descriptor.get("role_scope"),
            role_assignment_name=descriptor.get("role_assignment")
        )
        logger.info(f"[Azure] ✓ Role assignment deleted: {descriptor.get('role_assignment')}")
    except AzureNotFound:
        logger.info(f"[Azure] Role assignment not found (already deleted?): {descriptor.get('role_assignment')}")

    provider.clients["msi"].user_assigned_identities.delete(
        resource_group_name=provider.naming.resource_group(),
        resource_name=descriptor.name
    )


# ==========================================
# Log Sink (Log Analytics workspace)
# ==========================================

def _workspace_descriptor(workspace) -> ResourceDescriptor:
    return ResourceDescriptor(ResourceKind.LOG_SINK, workspace.name, workspace.id, {"customer_id": workspace.customer_id})


def lookup_log_sink(provider: 'AzureContainerAppsProvider', inputs: Inputs):
    workspace = provider.clients["loganalytics"].workspaces.get(
        resource_group_name=provider.naming.resource_group(),
        workspace_name=provider.naming.workspace()
    )
    return _workspace_descriptor(workspace)


def create_log_sink(provider: 'AzureContainerAppsProvider', inputs: Inputs) -> ResourceDescriptor:
    workspace = provider.clients["loganalytics"].workspaces.begin_create_or_update(
        resource_group_name=provider.naming.resource_group(),
        workspace_name=provider.naming.workspace(),
        parameters={
            "location": provider.location,
            "sku": {"name": WORKSPACE_SKU},
            "retention_in_days": WORKSPACE_RETENTION_DAYS,
            "tags": _tags(),
        }
    ).result()
    return _workspace_descriptor(workspace)


def delete_log_sink(provider: 'AzureContainerAppsProvider', descriptor: ResourceDescriptor) -> None:
    provider.clients["loganalytics"].workspaces.begin_delete(
        resource_group_name=provider.naming.resource_group(),
        workspace_name=descriptor.name,
        force=True
    ).result()


# ==========================================
# Cluster (Container Apps managed environment)
# ==========================================

def lookup_cluster(provider: 'AzureContainerAppsProvider', inputs: Inputs):
    environment = provider.clients["containerapps"].managed_environments.get(
        resource_group_name=provider.naming.resource_group(),
        environment_name=provider.naming.environment()
    )
    return ResourceDescriptor(
        ResourceKind.CLUSTER,
        environment.name,
        environment.id,
        {"default_domain": environment.default_domain}
    )


def create_cluster(provider: 'AzureContainerAppsProvider', inputs: Inputs) -> ResourceDescriptor:
    naming = provider.naming
    workspace = inputs[ResourceKind.LOG_SINK]
    keys = provider.clients["loganalytics"].shared_keys.get_shared_keys(
        resource_group_name=naming.resource_group(),
        workspace_name=workspace.name
    )
    environment = provider.clients["containerapps"].managed_environments.begin_create_or_update(
        resource_group_name=naming.resource_group(),
        environment_name=naming.environment(),
        environment_envelope={
            "location": provider.location,
            "tags": _tags(),
            "app_logs_configuration": {
                "destination": "log-analytics",
                "log_analytics_configuration": {
                    "customer_id": workspace.get("customer_id"),
                    "shared_key": keys.primary_shared_key,
                },
            },
        }
    ).result()
    return ResourceDescriptor(
        ResourceKind.CLUSTER,
        environment.name,
        environment.id,
        {"default_domain": environment.default_domain}
    )


def delete_cluster(provider: 'AzureContainerAppsProvider', descriptor: ResourceDescriptor) -> None:
    provider.clients["containerapps"].managed_environments.begin_delete(
        resource_group_name=provider.naming.resource_group(),
        environment_name=descriptor.name
    ).result()


# ==========================================
# Service (container app, deploy-owned)
# ==========================================

def service_descriptor(app) -> ResourceDescriptor:
    ingress = app.configuration.ingress if app.configuration else None
    return ResourceDescriptor(
        ResourceKind.SERVICE,
        app.name,
        app.id,
        {
            "fqdn": ingress.fqdn if ingress else None,
            "latest_revision": app.latest_revision_name,
        }
    )


def get_container_app(provider: 'AzureContainerAppsProvider'):
    return provider.clients["containerapps"].container_apps.get(
        resource_group_name=provider.naming.resource_group(),
        container_app_name=provider.naming.container_app()
    )


def lookup_service(provider: 'AzureContainerAppsProvider', inputs: Inputs):
    return service_descriptor(get_container_app(provider))


def delete_service(provider: 'AzureContainerAppsProvider', descriptor: ResourceDescriptor) -> None:
    provider.clients["containerapps"].container_apps.begin_delete(
        resource_group_name=provider.naming.resource_group(),
        container_app_name=descriptor.name
    ).result()


HANDLERS = {
    ResourceKind.RESOURCE_GROUP: ResourceHandler(lookup_resource_group, create_resource_group, delete_resource_group),
    ResourceKind.REGISTRY: ResourceHandler(lookup_registry, create_registry, delete_registry),
    ResourceKind.IDENTITY: ResourceHandler(lookup_identity, create_identity, delete_identity),
    ResourceKind.LOG_SINK: ResourceHandler(lookup_log_sink, create_log_sink, delete_log_sink),
    ResourceKind.CLUSTER: ResourceHandler(lookup_cluster, create_cluster, delete_cluster),
    ResourceKind.SERVICE: ResourceHandler(lookup_service, None, delete_service),
}
