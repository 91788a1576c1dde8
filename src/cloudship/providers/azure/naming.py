"""
Azure resource naming conventions.

Naming Convention:
    - Resource Group:        {service}-rg          (option resourceGroup)
    - Container Registry:    {service}acr          (option registryName; 5-50 chars, alphanumeric only)
    - Managed Identity:      {service}-identity    (option identityName)
    - Log Analytics:         {service}-logs        (option workspaceName)
    - Managed Environment:   {service}-env         (option environmentName)
    - Container App:         {service}             (2-32 chars, lowercase alphanumeric and hyphens)

Usage:
    naming = AzureNaming("orders-api", "0000-sub-id")
    naming.registry()  # "ordersapiacr"
"""

import re
import uuid
from typing import Any, Mapping, Optional

from ...core.resources import ResourceKind

REGISTRY_MIN_LENGTH = 5
REGISTRY_MAX_LENGTH = 50
CONTAINER_APP_MAX_LENGTH = 32
REVISION_SUFFIX_MAX_LENGTH = 40


class AzureNaming:
    """
    Generates consistent Azure resource names for a service.

    Attributes:
        service_name: The logical service name all names derive from
        subscription_id: Subscription resource ids are built under
    """

    def __init__(self, service_name: str, subscription_id: str, overrides: Optional[Mapping[str, Any]] = None):
        self._service_name = service_name
        self._subscription_id = subscription_id
        self._overrides = dict(overrides or {})

    @property
    def service_name(self) -> str:
        return self._service_name

    def _override(self, key: str, default: str) -> str:
        return str(self._overrides.get(key) or default)

    def resource_group(self) -> str:
        return self._override("resourceGroup", f"{self._service_name}-rg")

    def registry(self) -> str:
        """
        ACR name: alphanumeric only, globally unique, 5-50 characters.

        Short names are padded with "acr" until long enough.
        """
        override = self._overrides.get("registryName")
        base = re.sub(r"[^a-z0-9]", "", str(override or self._service_name).lower())
        name = base if override else f"{base}acr"
        while len(name) < REGISTRY_MIN_LENGTH:
            name += "acr"
        return name[:REGISTRY_MAX_LENGTH]

    def registry_id(self) -> str:
        return (
            f"/subscriptions/{self._subscription_id}/resourceGroups/{self.resource_group()}"
            f"/providers/Microsoft.ContainerRegistry/registries/{self.registry()}"
        )

    def identity(self) -> str:
        return self._override("identityName", f"{self._service_name}-identity")

    def workspace(self) -> str:
        return self._override("workspaceName", f"{self._service_name}-logs")

    def environment(self) -> str:
        return self._override("environmentName", f"{self._service_name}-env")

    def container_app(self) -> str:
        return self._service_name[:CONTAINER_APP_MAX_LENGTH].rstrip("-")

    def image_repository(self) -> str:
        return self._service_name

    def revision_suffix(self, tag: str) -> str:
        """
        Suffix appended to the app name as {app}--{suffix}.

        Must start with a letter and may not contain "--".
        """
        suffix = re.sub(r"-{2,}", "-", re.sub(r"[^a-z0-9-]", "-", tag.lower())).strip("-")
        if not suffix[:1].isalpha():
            suffix = f"v{suffix}"
        return suffix[:REVISION_SUFFIX_MAX_LENGTH].rstrip("-")

    def role_assignment(self) -> str:
        """Deterministic AcrPull assignment name, so re-runs target the same assignment."""
        return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{self.registry_id()}/{self.identity()}/acrpull"))

    def role_definition_id(self, role_id: str) -> str:
        return f"/subscriptions/{self._subscription_id}/providers/Microsoft.Authorization/roleDefinitions/{role_id}"

    def for_kind(self, kind: ResourceKind) -> str:
        return {
            ResourceKind.RESOURCE_GROUP: self.resource_group,
            ResourceKind.REGISTRY: self.registry,
            ResourceKind.IDENTITY: self.identity,
            ResourceKind.LOG_SINK: self.workspace,
            ResourceKind.CLUSTER: self.environment,
            ResourceKind.SERVICE: self.container_app,
        }[kind]()
