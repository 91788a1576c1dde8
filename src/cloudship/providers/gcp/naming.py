"""
GCP resource naming conventions.

Naming Convention:
    - Artifact Registry repo:  {service}            (option artifactRegistryRepository)
    - Cloud Run service:       {service}
    - Revision:                {service}-{tag}

Fully qualified resource paths are built from the project and region:

    projects/{project}/locations/{region}/repositories/{repo}
    projects/{project}/locations/{region}/services/{service}

Usage:
    naming = GCPNaming("orders-api", "my-project", "europe-west1")
    naming.image("abc1234-1700000000")
    # "europe-west1-docker.pkg.dev/my-project/orders-api/orders-api:abc1234-1700000000"
"""

import hashlib
import re
from typing import Any, Mapping, Optional

from ... import constants as CONSTANTS
from ...core.resources import ResourceKind

REVISION_NAME_MAX_LENGTH = 63
REVISION_HASH_LENGTH = 12


class GCPNaming:
    """
    Generates consistent GCP resource names and paths for a service.

    Attributes:
        service_name: The logical service name all names derive from
        project_id: Target GCP project
        region: Cloud Run / Artifact Registry location
    """

    def __init__(
        self,
        service_name: str,
        project_id: str,
        region: str,
        overrides: Optional[Mapping[str, Any]] = None
    ):
        self._service_name = service_name
        self._project_id = project_id
        self._region = region
        self._overrides = dict(overrides or {})

    @property
    def service_name(self) -> str:
        return self._service_name

    @property
    def project_id(self) -> str:
        return self._project_id

    def location_path(self) -> str:
        return f"projects/{self._project_id}/locations/{self._region}"

    def service_apis(self) -> str:
        return ",".join(CONSTANTS.GCP_REQUIRED_SERVICES)

    def repository(self) -> str:
        return str(self._overrides.get("artifactRegistryRepository") or self._service_name)

    def repository_path(self) -> str:
        return f"{self.location_path()}/repositories/{self.repository()}"

    def registry_host(self) -> str:
        return f"{self._region}-docker.pkg.dev"

    def image(self, tag: str) -> str:
        return f"{self.registry_host()}/{self._project_id}/{self.repository()}/{self._service_name}:{tag}"

    def image_tag_path(self, tag: str) -> str:
        """Artifact Registry tag resource for an image of this service."""
        return f"{self.repository_path()}/packages/{self._service_name}/tags/{tag}"

    def service(self) -> str:
        return self._service_name

    def service_path(self) -> str:
        return f"{self.location_path()}/services/{self._service_name}"

    def revision(self, tag: str) -> str:
        """
        Revision names must be lowercase and prefixed with the service name.

        When the tag does not fit after the prefix it is replaced by a digest
        of the whole tag, so distinct tags still give distinct names.
        """
        suffix = re.sub(r"[^a-z0-9-]", "-", tag.lower()).strip("-")
        room = REVISION_NAME_MAX_LENGTH - len(self._service_name) - 1
        if len(suffix) > room:
            suffix = hashlib.sha256(tag.encode()).hexdigest()[:max(room, REVISION_HASH_LENGTH)]
        return f"{self._service_name}-{suffix}"

    def for_kind(self, kind: ResourceKind) -> str:
        return {
            ResourceKind.SERVICE_APIS: self.service_apis,
            ResourceKind.REGISTRY: self.repository,
            ResourceKind.SERVICE: self.service,
        }[kind]()
