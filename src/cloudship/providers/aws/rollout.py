"""
AWS rollout hooks: ECR login and probe, task definition, ECS service.
"""

import base64
import logging
from typing import TYPE_CHECKING, Optional
from urllib.parse import urlparse

from botocore.exceptions import ClientError

from ... import constants as CONSTANTS
from ...core.protocols import Inputs
from ...core.resources import ResourceDescriptor, ResourceKind
from ...runner import docker_login
from .resources import describe_service, ensure_security_group, service_descriptor

if TYPE_CHECKING:
    from .provider import AWSFargateProvider

logger = logging.getLogger(__name__)


def ecr_login(provider: 'AWSFargateProvider') -> None:
    auth = provider.clients["ecr"].get_authorization_token()["authorizationData"][0]
    username, password = base64.b64decode(auth["authorizationToken"]).decode("utf-8").split(":", 1)
    registry = urlparse(auth["proxyEndpoint"]).netloc or auth["proxyEndpoint"]
    docker_login(registry, username, password)


def probe_image(provider: 'AWSFargateProvider', image_uri: str, resources: Inputs) -> bool:
    repository = resources[ResourceKind.REGISTRY].name
    tag = image_uri.rsplit(":", 1)[-1]
    try:
        details = provider.clients["ecr"].describe_images(
            repositoryName=repository,
            imageIds=[{"imageTag": tag}]
        )["imageDetails"]
    except ClientError as e:
        if e.response["Error"]["Code"] == "ImageNotFoundException":
            return False
        raise
    if details:
        logger.info(f"[AWS] Image digest: {details[0].get('imageDigest')}")
    return bool(details)


def register_task_definition(provider: 'AWSFargateProvider', image_uri: str, resources: Inputs) -> ResourceDescriptor:
    spec = provider.spec
    identity = resources[ResourceKind.IDENTITY]
    log_group = resources[ResourceKind.LOG_SINK].name
    family = provider.naming.task_definition_family()

    container = {
        "name": provider.naming.container(),
        "image": image_uri,
        "essential": True,
        "portMappings": [{"containerPort": spec.container_port, "protocol": "tcp"}],
        "environment": [{"name": key, "value": value} for key, value in spec.environment.items()],
        "logConfiguration": {
            "logDriver": "awslogs",
            "options": {
                "awslogs-group": log_group,
                "awslogs-region": spec.region,
                "awslogs-stream-prefix": CONSTANTS.AWS_LOG_STREAM_PREFIX,
            }
        },
    }

    task_definition = provider.clients["ecs"].register_task_definition(
        family=family,
        requiresCompatibilities=["FARGATE"],
        networkMode="awsvpc",
        cpu=spec.cpu or CONSTANTS.AWS_DEFAULT_CPU,
        memory=spec.memory or CONSTANTS.AWS_DEFAULT_MEMORY,
        executionRoleArn=identity.identifier,
        taskRoleArn=identity.get("task_role_arn"),
        containerDefinitions=[container]
    )["taskDefinition"]

    return ResourceDescriptor(
        ResourceKind.REVISION,
        f"{family}:{task_definition['revision']}",
        task_definition["taskDefinitionArn"],
        {"image": image_uri}
    )


def _ensure_service_security_group(provider: 'AWSFargateProvider', resources: Inputs) -> str:
    load_balancer = resources[ResourceKind.LOAD_BALANCER]
    alb_groups = list(load_balancer.get("security_group_ids", []))
    port = provider.spec.container_port
    return ensure_security_group(
        provider,
        provider.naming.service_security_group(),
        resources[ResourceKind.NETWORK].identifier,
        f"Security group for {provider.spec.service_name} ECS service",
        [{
            "IpProtocol": "tcp",
            "FromPort": port,
            "ToPort": port,
            "UserIdGroupPairs": [{"GroupId": group_id} for group_id in alb_groups],
        }]
    )


def update_service(provider: 'AWSFargateProvider', revision: ResourceDescriptor, resources: Inputs) -> ResourceDescriptor:
    spec = provider.spec
    ecs = provider.clients["ecs"]
    cluster = provider.naming.cluster()
    service_name = provider.naming.ecs_service()

    security_group_id = _ensure_service_security_group(provider, resources)

    if describe_service(provider) is not None:
        logger.info(f"[AWS] Service exists, updating {service_name}...")
        service = ecs.update_service(
            cluster=cluster,
            service=service_name,
            taskDefinition=revision.identifier,
            desiredCount=spec.desired_count
        )["service"]
    else:
        logger.info(f"[AWS] Service doesn't exist, creating {service_name}...")
        service = ecs.create_service(
            cluster=cluster,
            serviceName=service_name,
            taskDefinition=revision.identifier,
            desiredCount=spec.desired_count,
            launchType="FARGATE",
            networkConfiguration={
                "awsvpcConfiguration": {
                    "subnets": list(resources[ResourceKind.NETWORK].get("subnet_ids", [])),
                    "securityGroups": [security_group_id],
                    "assignPublicIp": "ENABLED",
                }
            },
            loadBalancers=[{
                "targetGroupArn": resources[ResourceKind.LOAD_BALANCER].get("target_group_arn"),
                "containerName": provider.naming.container(),
                "containerPort": spec.container_port,
            }]
        )["service"]

    return service_descriptor(provider, service)


def is_service_stable(provider: 'AWSFargateProvider', service: ResourceDescriptor) -> bool:
    current = describe_service(provider)
    if current is None:
        return False
    deployments = current.get("deployments", [])
    running, desired = current.get("runningCount", 0), current.get("desiredCount", 0)
    logger.debug(f"[AWS] {service.name}: {len(deployments)} deployment(s), {running}/{desired} running")
    return len(deployments) == 1 and running == desired


def service_endpoint(provider: 'AWSFargateProvider', resources: Inputs) -> Optional[str]:
    load_balancer = resources.get(ResourceKind.LOAD_BALANCER)
    if load_balancer is None or not load_balancer.get("dns_name"):
        return None
    scheme = "https" if load_balancer.get("https") else "http"
    return f"{scheme}://{load_balancer.get('dns_name')}"
