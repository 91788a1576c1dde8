"""
Azure Container Apps provider package.

Auto-Registration:
    Importing this package registers AzureContainerAppsProvider with the
    ProviderRegistry under "azure-container-apps".

Package Structure:
    azure/
    ├── __init__.py     # This file - registers provider
    ├── provider.py     # AzureContainerAppsProvider class, error translation
    ├── clients.py      # Credential and client initialization
    ├── naming.py       # Resource naming conventions
    ├── resources.py    # Resource group, ACR, identity, workspace, environment, app
    ├── rollout.py      # ACR token exchange, revision template, app update
    └── logs.py         # Log Analytics queries
"""

from ...core.registry import ProviderRegistry
from .provider import AzureContainerAppsProvider

ProviderRegistry.register("azure-container-apps", AzureContainerAppsProvider)

__all__ = ["AzureContainerAppsProvider"]
