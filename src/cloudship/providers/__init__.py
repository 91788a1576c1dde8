"""
Backend bindings.

Auto-Registration:
    Importing this package registers every backend with the
    ProviderRegistry; each backend's __init__.py calls
    ProviderRegistry.register() when imported.

Package Structure:
    providers/
    ├── __init__.py     # This file - imports all backends
    ├── base.py         # BaseProvider: shared lookup/ensure/remove policy
    ├── aws/            # aws-fargate: ECS Fargate behind an ALB
    ├── gcp/            # gcp-cloudrun: Cloud Run + Artifact Registry
    └── azure/          # azure-container-apps: Container Apps + ACR

Usage:
    from cloudship import providers
    from cloudship.core import ProviderRegistry

    provider = ProviderRegistry.get("gcp-cloudrun")
"""

from . import aws
from . import azure
from . import gcp
