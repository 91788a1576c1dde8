"""
AWS Fargate CloudProvider implementation.

Design Pattern: Abstract Factory (Provider Pattern)
    AWSFargateProvider creates and manages a family of related AWS objects:
    - SDK clients (boto3 clients for ECR, EC2, IAM, ECS, ELBv2, Logs, STS)
    - Resource naming (via AWSNaming)
    - Resource handlers (resources.py), rollout hooks (rollout.py), logs (logs.py)

Usage:
    provider = AWSFargateProvider()
    provider.initialize_clients(spec)

    ecs = provider.clients["ecs"]
    cluster = provider.naming.cluster()
"""

import logging
from datetime import datetime
from typing import List, Optional, TYPE_CHECKING

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
    ProfileNotFound,
)

from ... import constants as CONSTANTS
from ...core.exceptions import (
    ConfigurationError,
    DeploymentError,
    ResourceExistsError,
    ResourceNotFoundError,
    TransientError,
)
from ...core.protocols import Inputs
from ...core.resources import ResourceDescriptor, ResourceKind
from ...core.sequencer import ProvisioningStep
from ..base import BaseProvider, as_image_error
from . import logs, resources, rollout

if TYPE_CHECKING:
    from ...core.context import DeploymentSpec
    from ...core.log_stream import LogEntry

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {
    "ResourceNotFoundException",
    "RepositoryNotFoundException",
    "ImageNotFoundException",
    "NoSuchEntity",
    "ClusterNotFoundException",
    "ServiceNotFoundException",
    "LoadBalancerNotFound",
    "TargetGroupNotFound",
    "ListenerNotFound",
    "InvalidGroup.NotFound",
    "InvalidNetworkInterfaceID.NotFound",
    "InvalidVpcID.NotFound",
}

ALREADY_EXISTS_CODES = {
    "ResourceAlreadyExistsException",
    "RepositoryAlreadyExistsException",
    "EntityAlreadyExists",
    "InvalidGroup.Duplicate",
    "DuplicateLoadBalancerName",
    "DuplicateTargetGroupName",
    "DefaultVpcAlreadyExists",
}

TRANSIENT_CODES = {
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "TooManyRequestsException",
    "ServiceUnavailable",
    "ServiceUnavailableException",
    "InternalFailure",
    "ServerException",
    "DependencyViolation",
    "ResourceInUse",
    "ResourceInUseException",
}

CREDENTIAL_CODES = {
    "AccessDenied",
    "AccessDeniedException",
    "UnrecognizedClientException",
    "InvalidClientTokenId",
    "ExpiredToken",
    "ExpiredTokenException",
    "AuthFailure",
    "SignatureDoesNotMatch",
}

QUOTA_CODES = {
    "LimitExceeded",
    "LimitExceededException",
    "ServiceQuotaExceededException",
}


class AWSFargateProvider(BaseProvider):
    """
    AWS implementation of the CloudProvider protocol.

    Runs the service as an ECS Fargate service behind an internet-facing
    application load balancer in the account's default VPC.
    """

    name: str = CONSTANTS.BACKEND_AWS_FARGATE
    display_name: str = "AWS"
    log_poll_interval: float = CONSTANTS.AWS_LOG_POLL_INTERVAL_SECONDS
    stability_max_iterations: Optional[int] = 20

    STEPS = (
        ProvisioningStep(ResourceKind.REGISTRY),
        ProvisioningStep(ResourceKind.NETWORK),
        ProvisioningStep(ResourceKind.IDENTITY),
        ProvisioningStep(ResourceKind.CLUSTER, depends_on=(ResourceKind.IDENTITY,)),
        ProvisioningStep(ResourceKind.LOAD_BALANCER, depends_on=(ResourceKind.NETWORK,)),
        ProvisioningStep(ResourceKind.LOG_SINK),
        ProvisioningStep(
            ResourceKind.REVISION,
            depends_on=(ResourceKind.IDENTITY, ResourceKind.LOG_SINK, ResourceKind.REGISTRY),
            provisioned_by_setup=False,
        ),
        ProvisioningStep(
            ResourceKind.SERVICE,
            depends_on=(ResourceKind.CLUSTER, ResourceKind.LOAD_BALANCER, ResourceKind.NETWORK, ResourceKind.REVISION),
            provisioned_by_setup=False,
        ),
    )
    HANDLERS = resources.HANDLERS

    def __init__(self):
        """Initialize AWS provider with empty state."""
        super().__init__()
        self._account_id: str = ""

    @property
    def region(self) -> str:
        return self.spec.region

    @property
    def account_id(self) -> str:
        return self._account_id

    def initialize_clients(self, spec: 'DeploymentSpec') -> None:
        """
        Create boto3 clients and verify the credentials with STS.

        Raises:
            ConfigurationError: If no usable credentials are found
        """
        from .clients import create_aws_clients
        from .naming import AWSNaming

        self._spec = spec
        self._naming = AWSNaming(spec.service_name, spec.options)

        try:
            self._clients = create_aws_clients(region=spec.region, profile=spec.option("profile"))
            identity = self._clients["sts"].get_caller_identity()
        except (BotoCoreError, ClientError) as e:
            raise ConfigurationError(f"AWS credentials could not be verified: {e}", provider=self.name) from e

        self._account_id = identity["Account"]
        self._initialized = True
        logger.info(f"[AWS] Authenticated as {identity['Arn']} in {spec.region}")

    def translate_error(self, error: Exception) -> DeploymentError:
        """
        Classify a botocore exception by its error code.

        Example:
            ClientError(RepositoryNotFoundException) -> ResourceNotFoundError
            ClientError(ThrottlingException)         -> TransientError
        """
        if isinstance(error, (NoCredentialsError, PartialCredentialsError, ProfileNotFound)):
            return ConfigurationError(f"AWS credentials error: {error}", provider=self.name)
        if isinstance(error, EndpointConnectionError):
            return TransientError(str(error), provider=self.name)
        if isinstance(error, ClientError):
            code = error.response["Error"]["Code"]
            message = f"{code}: {error.response['Error'].get('Message', error)}"
            if code in NOT_FOUND_CODES:
                return ResourceNotFoundError(message, provider=self.name)
            if code in ALREADY_EXISTS_CODES:
                return ResourceExistsError(message, provider=self.name)
            if code in TRANSIENT_CODES:
                return TransientError(message, provider=self.name)
            if code in CREDENTIAL_CODES:
                return ConfigurationError(message, provider=self.name)
            return DeploymentError(message, provider=self.name)
        return DeploymentError(str(error), provider=self.name)

    # ==========================================
    # RolloutTarget
    # ==========================================

    def image_uri(self, tag: str, resources: Inputs) -> str:
        return f"{resources[ResourceKind.REGISTRY].identifier}:{tag}"

    def registry_login(self, resources: Inputs) -> None:
        self._call(rollout.ecr_login)

    def probe_image(self, image_uri: str, resources: Inputs) -> bool:
        return self._call(rollout.probe_image, image_uri, resources)

    def register_revision(self, image_uri: str, resources: Inputs) -> ResourceDescriptor:
        return self._call(rollout.register_task_definition, image_uri, resources)

    def update_service(self, revision: ResourceDescriptor, resources: Inputs) -> ResourceDescriptor:
        try:
            return self._call(rollout.update_service, revision, resources)
        except DeploymentError as e:
            error = as_image_error(e)
            cause = e.__cause__
            # ECS rejects updates while fresh roles and target groups propagate
            if type(error) is DeploymentError and isinstance(cause, ClientError):
                if cause.response["Error"]["Code"] not in QUOTA_CODES:
                    error = TransientError(error.message, provider=self.name, step=error.step)
            if error is e:
                raise
            raise error from e

    def is_service_stable(self, service: ResourceDescriptor) -> bool:
        return self._call(rollout.is_service_stable, service)

    def service_endpoint(self, service: ResourceDescriptor, resources: Inputs) -> Optional[str]:
        return rollout.service_endpoint(self, resources)

    # ==========================================
    # LogSource
    # ==========================================

    def fetch_logs(self, since: datetime) -> List['LogEntry']:
        return self._call(logs.fetch_logs, since)

    def manual_check_hint(self) -> List[str]:
        naming = self.naming
        return [
            f"ECS Cluster: {naming.cluster()}",
            f"ECS Service: {naming.ecs_service()}",
            f"Load Balancer: {naming.load_balancer()}",
            f"Target Group: {naming.target_group()}",
            f"IAM Roles: {naming.execution_role()}, {naming.task_role()}",
            f"Log Group: {naming.log_group()}",
            f"ECR Repository: {naming.ecr_repository()}",
            f"Security Groups: {naming.service_security_group()}, {naming.load_balancer_security_group()}",
        ]
