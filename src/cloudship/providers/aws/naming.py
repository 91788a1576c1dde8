"""
AWS resource naming conventions.

Every resource name derives from the service name unless the config
overrides it through an option of the same name (e.g. `clusterName`).

Naming Convention:
    - ECR repository:       {service}
    - ECS cluster:          {service}-cluster
    - ECS service:          {service}-service
    - Task definition:      {service}
    - Load balancer:        {service}-alb     (max 32 chars)
    - Target group:         {service}-tg      (max 32 chars)
    - Execution role:       {service}-execution-role
    - Task role:            {service}-task-role
    - Log group:            /ecs/{service}
    - Service SG:           {service}-ecs-sg
    - Load balancer SG:     {service}-alb-sg

Usage:
    naming = AWSNaming("orders-api")
    naming.load_balancer()  # "orders-api-alb"
"""

from typing import Any, Mapping, Optional

from ... import constants as CONSTANTS
from ...core.resources import ResourceKind


def _truncate(name: str, limit: int = CONSTANTS.AWS_NAME_MAX_LENGTH) -> str:
    """ELBv2 names are limited to 32 chars and may not end with a hyphen."""
    return name[:limit].rstrip("-")


class AWSNaming:
    """
    Generates consistent AWS resource names for a service.

    Attributes:
        service_name: The logical service name all names derive from
    """

    def __init__(self, service_name: str, overrides: Optional[Mapping[str, Any]] = None):
        self._service_name = service_name
        self._overrides = dict(overrides or {})

    @property
    def service_name(self) -> str:
        return self._service_name

    def _name(self, option: str, default: str) -> str:
        value = self._overrides.get(option)
        return str(value) if value else default

    def ecr_repository(self) -> str:
        return self._name("ecrRepository", self._service_name)

    def vpc(self) -> str:
        """The default VPC is shared, so this is a label rather than a name."""
        return "default-vpc"

    def cluster(self) -> str:
        return self._name("clusterName", f"{self._service_name}-cluster")

    def ecs_service(self) -> str:
        return self._name("ecsServiceName", f"{self._service_name}-service")

    def task_definition_family(self) -> str:
        return self._name("taskDefinitionFamily", self._service_name)

    def container(self) -> str:
        return self._service_name

    def load_balancer(self) -> str:
        return _truncate(self._name("loadBalancerName", f"{self._service_name}-alb"))

    def target_group(self) -> str:
        return _truncate(self._name("targetGroupName", f"{self._service_name}-tg"))

    def execution_role(self) -> str:
        return self._name("executionRoleName", f"{self._service_name}-execution-role")

    def task_role(self) -> str:
        return self._name("taskRoleName", f"{self._service_name}-task-role")

    def log_group(self) -> str:
        return self._name("logGroupName", f"/ecs/{self._service_name}")

    def service_security_group(self) -> str:
        return self._name("securityGroupName", f"{self._service_name}-ecs-sg")

    def load_balancer_security_group(self) -> str:
        return self._name("loadBalancerSecurityGroupName", f"{self._service_name}-alb-sg")

    def for_kind(self, kind: ResourceKind) -> str:
        """Name a resource of the given kind is managed under."""
        return {
            ResourceKind.REGISTRY: self.ecr_repository,
            ResourceKind.NETWORK: self.vpc,
            ResourceKind.IDENTITY: self.execution_role,
            ResourceKind.CLUSTER: self.cluster,
            ResourceKind.LOAD_BALANCER: self.load_balancer,
            ResourceKind.LOG_SINK: self.log_group,
            ResourceKind.REVISION: self.task_definition_family,
            ResourceKind.SERVICE: self.ecs_service,
        }[kind]()
