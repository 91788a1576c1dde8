"""
Azure SDK client initialization.

A service principal is used when tenantId, clientId and clientSecret are
all configured; otherwise DefaultAzureCredential (environment, managed
identity, Azure CLI login) resolves the credential.

Client Keys:
    - resource: ResourceManagementClient (resource groups)
    - acr: ContainerRegistryManagementClient (registries)
    - msi: ManagedServiceIdentityClient (user-assigned identities)
    - authorization: AuthorizationManagementClient (role assignments)
    - loganalytics: LogAnalyticsManagementClient (workspaces, shared keys)
    - containerapps: ContainerAppsAPIClient (managed environments, container apps)
    - logs_query: LogsQueryClient (workspace KQL queries)
"""

from typing import Any, Dict, Optional

from azure.identity import ClientSecretCredential, DefaultAzureCredential
from azure.mgmt.appcontainers import ContainerAppsAPIClient
from azure.mgmt.authorization import AuthorizationManagementClient
from azure.mgmt.containerregistry import ContainerRegistryManagementClient
from azure.mgmt.loganalytics import LogAnalyticsManagementClient
from azure.mgmt.msi import ManagedServiceIdentityClient
from azure.mgmt.resource import ResourceManagementClient
from azure.monitor.query import LogsQueryClient


def get_credential(
    tenant_id: Optional[str] = None,
    client_id: Optional[str] = None,
    client_secret: Optional[str] = None
) -> Any:
    if tenant_id and client_id and client_secret:
        return ClientSecretCredential(
            tenant_id=tenant_id,
            client_id=client_id,
            client_secret=client_secret
        )
    return DefaultAzureCredential()


def create_azure_clients(credential: Any, subscription_id: str) -> Dict[str, Any]:
    """Create and return all Azure clients needed for a Container Apps deployment."""
    return {
        "resource": ResourceManagementClient(credential=credential, subscription_id=subscription_id),
        "acr": ContainerRegistryManagementClient(credential=credential, subscription_id=subscription_id),
        "msi": ManagedServiceIdentityClient(credential=credential, subscription_id=subscription_id),
        "authorization": AuthorizationManagementClient(credential=credential, subscription_id=subscription_id),
        "loganalytics": LogAnalyticsManagementClient(credential=credential, subscription_id=subscription_id),
        "containerapps": ContainerAppsAPIClient(credential=credential, subscription_id=subscription_id),
        "logs_query": LogsQueryClient(credential),
    }
