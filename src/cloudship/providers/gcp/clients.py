"""
GCP SDK client initialization.

Credentials come from a service account key file (`credentialsFile`
option) or, without one, from Application Default Credentials.

Client Keys:
    - run: Cloud Run Admin API v2 (services)
    - artifactregistry: Artifact Registry (repositories, tags)
    - serviceusage: Service Usage API discovery client (API enablement)
    - logging: Cloud Logging (log entries)
"""

from typing import Any, Dict, Optional, Tuple

import google.auth
from google.cloud import artifactregistry_v1, run_v2
from google.cloud import logging as cloud_logging
from google.oauth2 import service_account
from googleapiclient import discovery

from ... import constants as CONSTANTS


def load_credentials(credentials_file: Optional[str] = None) -> Tuple[Any, Optional[str]]:
    """
    Resolve Google credentials.

    Returns:
        (credentials, project id found alongside them or None)

    Raises:
        google.auth.exceptions.DefaultCredentialsError: If nothing is configured
    """
    if credentials_file:
        credentials = service_account.Credentials.from_service_account_file(
            credentials_file, scopes=CONSTANTS.GCP_SCOPES
        )
        return credentials, credentials.project_id
    return google.auth.default(scopes=CONSTANTS.GCP_SCOPES)


def create_gcp_clients(credentials: Any, project_id: str) -> Dict[str, Any]:
    """Create and return all GCP clients needed for a Cloud Run deployment."""
    return {
        "run": run_v2.ServicesClient(credentials=credentials),
        "artifactregistry": artifactregistry_v1.ArtifactRegistryClient(credentials=credentials),
        "serviceusage": discovery.build(
            "serviceusage", "v1", credentials=credentials, cache_discovery=False
        ),
        "logging": cloud_logging.Client(project=project_id, credentials=credentials),
    }
