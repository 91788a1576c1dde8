"""
Azure Container Apps CloudProvider implementation.

Design Pattern: Abstract Factory (Provider Pattern)
    AzureContainerAppsProvider creates and manages a family of related Azure objects:
    - SDK clients (resource, ACR, MSI, authorization, Log Analytics, Container Apps, Logs Query)
    - Resource naming (via AzureNaming)
    - Resource handlers (resources.py), rollout hooks (rollout.py), logs (logs.py)

Usage:
    provider = AzureContainerAppsProvider()
    provider.initialize_clients(spec)

    apps = provider.clients["containerapps"]
    rg = provider.naming.resource_group()
"""

import logging
import os
from datetime import datetime
from typing import Any, List, Optional, TYPE_CHECKING

import requests
from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceNotFoundError as AzureNotFound,
    ServiceRequestError,
    ServiceResponseError,
)

from ... import constants as CONSTANTS
from ...core.exceptions import (
    ConfigurationError,
    DeploymentError,
    ImagePropagationError,
    ResourceExistsError,
    ResourceNotFoundError,
    TransientError,
)
from ...core.protocols import Inputs
from ...core.resources import ResourceDescriptor, ResourceKind
from ...core.sequencer import ProvisioningStep
from ..base import BaseProvider, as_image_error, looks_like_image_propagation
from . import logs, resources, rollout

if TYPE_CHECKING:
    from ...core.context import DeploymentSpec
    from ...core.log_stream import LogEntry

logger = logging.getLogger(__name__)

TRANSIENT_CODES = {"TooManyRequests", "ServiceUnavailable", "InternalServerError", "AnotherOperationInProgress"}


class AzureContainerAppsProvider(BaseProvider):
    """
    Azure implementation of the CloudProvider protocol.

    Runs the service as a container app in a managed environment, pulling
    from ACR through a user-assigned identity.
    """

    name: str = CONSTANTS.BACKEND_AZURE_CONTAINER_APPS
    display_name: str = "Azure"
    log_poll_interval: float = CONSTANTS.AZURE_LOG_POLL_INTERVAL_SECONDS

    STEPS = (
        ProvisioningStep(ResourceKind.RESOURCE_GROUP),
        ProvisioningStep(ResourceKind.REGISTRY, depends_on=(ResourceKind.RESOURCE_GROUP,)),
        ProvisioningStep(ResourceKind.IDENTITY, depends_on=(ResourceKind.RESOURCE_GROUP, ResourceKind.REGISTRY)),
        ProvisioningStep(ResourceKind.LOG_SINK, depends_on=(ResourceKind.RESOURCE_GROUP,)),
        ProvisioningStep(ResourceKind.CLUSTER, depends_on=(ResourceKind.RESOURCE_GROUP, ResourceKind.LOG_SINK)),
        ProvisioningStep(
            ResourceKind.SERVICE,
            depends_on=(ResourceKind.CLUSTER, ResourceKind.IDENTITY, ResourceKind.REGISTRY),
            provisioned_by_setup=False,
        ),
    )
    HANDLERS = resources.HANDLERS

    def __init__(self):
        """Initialize Azure provider with empty state."""
        super().__init__()
        self._credential: Any = None
        self._subscription_id: str = ""
        self._workspace_customer_id: Optional[str] = None

    @property
    def subscription_id(self) -> str:
        return self._subscription_id

    @property
    def location(self) -> str:
        return self.spec.region

    @property
    def credential(self) -> Any:
        if self._credential is None:
            raise RuntimeError("Provider not initialized. Call initialize_clients() first.")
        return self._credential

    def initialize_clients(self, spec: 'DeploymentSpec') -> None:
        """
        Resolve the credential and subscription and create the Azure clients.

        The subscription comes from the `subscriptionId` option or the
        AZURE_SUBSCRIPTION_ID environment variable.

        Raises:
            ConfigurationError: If the subscription is missing or the credential is unusable
        """
        from .clients import create_azure_clients, get_credential
        from .naming import AzureNaming

        self._spec = spec
        subscription_id = spec.option("subscriptionId") or os.environ.get("AZURE_SUBSCRIPTION_ID")
        if not subscription_id:
            raise ConfigurationError(
                "Missing Azure subscription. Set 'subscriptionId' in the config file or AZURE_SUBSCRIPTION_ID.",
                config_file=str(spec.config_path) if spec.config_path else None,
                provider=self.name
            )

        credential = get_credential(
            tenant_id=spec.option("tenantId"),
            client_id=spec.option("clientId"),
            client_secret=spec.option("clientSecret")
        )
        try:
            credential.get_token(CONSTANTS.AZURE_MANAGEMENT_SCOPE)
        except ClientAuthenticationError as e:
            raise ConfigurationError(f"Azure credentials could not be verified: {e.message}", provider=self.name) from e

        self._credential = credential
        self._subscription_id = subscription_id
        self._naming = AzureNaming(spec.service_name, subscription_id, spec.options)
        self._clients = create_azure_clients(credential, subscription_id)
        self._initialized = True
        logger.info(f"[Azure] Using subscription {subscription_id} in {spec.region}")

    def translate_error(self, error: Exception) -> DeploymentError:
        """
        Classify azure-core and requests exceptions.

        Example:
            ResourceNotFoundError          -> ResourceNotFoundError
            HttpResponseError(status=429)  -> TransientError
            requests.ConnectionError       -> TransientError
        """
        if isinstance(error, AzureNotFound):
            return ResourceNotFoundError(str(error), provider=self.name)
        if isinstance(error, ClientAuthenticationError):
            return ConfigurationError(f"Azure credentials error: {error.message}", provider=self.name)
        if isinstance(error, (ServiceRequestError, ServiceResponseError)):
            return TransientError(str(error), provider=self.name)
        if isinstance(error, HttpResponseError):
            code = getattr(error.error, "code", None) if error.error else None
            return self._classify_status(error.status_code, f"{code or error.status_code}: {error.message}", code)
        if isinstance(error, (requests.ConnectionError, requests.Timeout)):
            return TransientError(str(error), provider=self.name)
        if isinstance(error, requests.HTTPError) and error.response is not None:
            return self._classify_status(error.response.status_code, str(error))
        return DeploymentError(str(error), provider=self.name)

    def _classify_status(self, status: Optional[int], message: str, code: Optional[str] = None) -> DeploymentError:
        if status == 404:
            return ResourceNotFoundError(message, provider=self.name)
        if code in TRANSIENT_CODES or status == 429 or (status or 0) >= 500:
            return TransientError(message, provider=self.name)
        if status == 409:
            return ResourceExistsError(message, provider=self.name)
        if status in (401, 403):
            return ConfigurationError(message, provider=self.name)
        if looks_like_image_propagation(message):
            return ImagePropagationError(message, provider=self.name)
        return DeploymentError(message, provider=self.name)

    def workspace_customer_id(self) -> str:
        """Log Analytics workspace GUID used by KQL queries."""
        if self._workspace_customer_id is None:
            workspace = self.clients["loganalytics"].workspaces.get(
                resource_group_name=self.naming.resource_group(),
                workspace_name=self.naming.workspace()
            )
            self._workspace_customer_id = workspace.customer_id
        return self._workspace_customer_id

    # ==========================================
    # RolloutTarget
    # ==========================================

    def image_uri(self, tag: str, resources: Inputs) -> str:
        login_server = resources[ResourceKind.REGISTRY].get("login_server")
        return f"{login_server}/{self.naming.image_repository()}:{tag}"

    def registry_login(self, resources: Inputs) -> None:
        self._call(rollout.registry_login, resources)

    def probe_image(self, image_uri: str, resources: Inputs) -> bool:
        return self._call(rollout.probe_image, image_uri, resources)

    def register_revision(self, image_uri: str, resources: Inputs) -> ResourceDescriptor:
        return self._call(rollout.register_revision, image_uri, resources)

    def update_service(self, revision: ResourceDescriptor, resources: Inputs) -> ResourceDescriptor:
        try:
            return self._call(rollout.update_service, revision, resources)
        except DeploymentError as e:
            raise as_image_error(e) from e

    def is_service_stable(self, service: ResourceDescriptor) -> bool:
        return self._call(rollout.is_service_stable, service)

    def service_endpoint(self, service: ResourceDescriptor, resources: Inputs) -> Optional[str]:
        return self._call(rollout.service_endpoint, service)

    # ==========================================
    # LogSource
    # ==========================================

    def fetch_logs(self, since: datetime) -> List['LogEntry']:
        return self._call(logs.fetch_logs, since)

    def manual_check_hint(self) -> List[str]:
        naming = self.naming
        return [
            f"Resource Group: {naming.resource_group()}",
            f"Container App: {naming.container_app()}",
            f"Managed Environment: {naming.environment()}",
            f"Log Analytics Workspace: {naming.workspace()}",
            f"Managed Identity: {naming.identity()}",
            f"Container Registry: {naming.registry()}",
        ]
