"""
GCP Cloud Run CloudProvider implementation.

Design Pattern: Abstract Factory (Provider Pattern)
    GCPCloudRunProvider creates and manages a family of related GCP objects:
    - SDK clients (run_v2, Artifact Registry, Service Usage, Cloud Logging)
    - Resource naming (via GCPNaming)
    - Resource handlers (resources.py), rollout hooks (rollout.py), logs (logs.py)

Usage:
    provider = GCPCloudRunProvider()
    provider.initialize_clients(spec)

    run = provider.clients["run"]
    path = provider.naming.service_path()
"""

import logging
from datetime import datetime
from typing import Any, List, Optional, TYPE_CHECKING

from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from googleapiclient.errors import HttpError

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

TRANSIENT_ERRORS = (
    google_exceptions.TooManyRequests,
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.Aborted,
)

CREDENTIAL_ERRORS = (
    google_exceptions.PermissionDenied,
    google_exceptions.Unauthenticated,
    google_exceptions.Forbidden,
)


class GCPCloudRunProvider(BaseProvider):
    """
    GCP implementation of the CloudProvider protocol.

    Runs the service on Cloud Run with images in Artifact Registry.
    """

    name: str = CONSTANTS.BACKEND_GCP_CLOUDRUN
    display_name: str = "GCP"
    log_poll_interval: float = CONSTANTS.GCP_LOG_POLL_INTERVAL_SECONDS

    STEPS = (
        ProvisioningStep(ResourceKind.SERVICE_APIS),
        ProvisioningStep(ResourceKind.REGISTRY, depends_on=(ResourceKind.SERVICE_APIS,)),
        ProvisioningStep(
            ResourceKind.SERVICE,
            depends_on=(ResourceKind.REGISTRY,),
            provisioned_by_setup=False,
        ),
    )
    HANDLERS = resources.HANDLERS

    def __init__(self):
        """Initialize GCP provider with empty state."""
        super().__init__()
        self._credentials: Any = None
        self._project_id: str = ""

    @property
    def credentials(self) -> Any:
        if self._credentials is None:
            raise RuntimeError("Provider not initialized. Call initialize_clients() first.")
        return self._credentials

    @property
    def project_id(self) -> str:
        return self._project_id

    def initialize_clients(self, spec: 'DeploymentSpec') -> None:
        """
        Load credentials and create the GCP clients.

        The project comes from the `projectId` option, falling back to the
        project the credentials belong to.

        Raises:
            ConfigurationError: If credentials or the project cannot be resolved
        """
        from .clients import create_gcp_clients, load_credentials
        from .naming import GCPNaming

        self._spec = spec
        try:
            credentials, detected_project = load_credentials(spec.option("credentialsFile"))
        except (auth_exceptions.DefaultCredentialsError, auth_exceptions.RefreshError, OSError, ValueError) as e:
            raise ConfigurationError(f"GCP credentials could not be loaded: {e}", provider=self.name) from e

        project_id = spec.option("projectId") or detected_project
        if not project_id:
            raise ConfigurationError(
                "GCP project could not be determined. Set 'projectId' in the config file.",
                provider=self.name,
                config_file=str(spec.config_path) if spec.config_path else None
            )

        self._credentials = credentials
        self._project_id = project_id
        self._naming = GCPNaming(spec.service_name, project_id, spec.region, spec.options)
        self._clients = create_gcp_clients(credentials, project_id)
        self._initialized = True
        logger.info(f"[GCP] Using project {project_id} in {spec.region}")

    def translate_error(self, error: Exception) -> DeploymentError:
        """
        Classify google-api-core, googleapiclient and google-auth exceptions.

        Example:
            NotFound           -> ResourceNotFoundError
            Conflict           -> ResourceExistsError
            ServiceUnavailable -> TransientError
        """
        message = str(error)
        if isinstance(error, google_exceptions.NotFound):
            return ResourceNotFoundError(message, provider=self.name)
        if isinstance(error, (google_exceptions.Conflict, google_exceptions.AlreadyExists)):
            return ResourceExistsError(message, provider=self.name)
        if isinstance(error, TRANSIENT_ERRORS):
            return TransientError(message, provider=self.name)
        if isinstance(error, CREDENTIAL_ERRORS):
            return ConfigurationError(message, provider=self.name)
        if isinstance(error, (google_exceptions.FailedPrecondition, google_exceptions.InvalidArgument)):
            if looks_like_image_propagation(message):
                return ImagePropagationError(message, provider=self.name)
            return DeploymentError(message, provider=self.name)
        if isinstance(error, HttpError):
            return self._translate_http_error(error)
        if isinstance(error, auth_exceptions.GoogleAuthError):
            return ConfigurationError(f"GCP credentials error: {message}", provider=self.name)
        return DeploymentError(message, provider=self.name)

    def _translate_http_error(self, error: HttpError) -> DeploymentError:
        status = error.resp.status
        message = f"HTTP {status}: {error}"
        if status == 404:
            return ResourceNotFoundError(message, provider=self.name)
        if status == 409:
            return ResourceExistsError(message, provider=self.name)
        if status == 429 or status >= 500:
            return TransientError(message, provider=self.name)
        if status in (401, 403):
            return ConfigurationError(message, provider=self.name)
        return DeploymentError(message, provider=self.name)

    # ==========================================
    # RolloutTarget
    # ==========================================

    def image_uri(self, tag: str, resources: Inputs) -> str:
        return self.naming.image(tag)

    def registry_login(self, resources: Inputs) -> None:
        self._call(rollout.registry_login)

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
            f"Project: {naming.project_id}",
            f"Cloud Run Service: {naming.service_path()}",
            f"Artifact Registry: {naming.repository_path()}",
        ]
