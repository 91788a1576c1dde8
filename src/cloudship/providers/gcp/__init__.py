"""
GCP Cloud Run provider package.

Auto-Registration:
    Importing this package registers GCPCloudRunProvider with the
    ProviderRegistry under "gcp-cloudrun".

Package Structure:
    gcp/
    ├── __init__.py     # This file - registers provider
    ├── provider.py     # GCPCloudRunProvider class, error translation
    ├── clients.py      # Credentials and client initialization
    ├── naming.py       # Resource naming and paths
    ├── resources.py    # Service APIs, Artifact Registry, Cloud Run service
    ├── rollout.py      # Revision template and service update
    └── logs.py         # Cloud Logging fetching
"""

from ...core.registry import ProviderRegistry
from .provider import GCPCloudRunProvider

ProviderRegistry.register("gcp-cloudrun", GCPCloudRunProvider)

__all__ = ["GCPCloudRunProvider"]
