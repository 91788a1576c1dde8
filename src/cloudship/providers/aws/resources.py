"""
AWS resource handlers.

One lookup/create/delete triple per ResourceKind, registered in HANDLERS.
Handlers receive the AWSFargateProvider and either the resolved
dependency descriptors (lookup/create) or the descriptor to delete.

Raw botocore ClientErrors are left to propagate; the provider translates
them. Handlers only catch the specific codes they answer locally.
"""

import json
import logging
from typing import TYPE_CHECKING, List, Optional

from botocore.exceptions import ClientError

from ... import constants as CONSTANTS
from ...core.protocols import Inputs
from ...core.resources import NotFound, ResourceDescriptor, ResourceKind
from ...core.retry import interruptible_sleep
from ...core.waiter import drain_waiter
from ..base import ResourceHandler

if TYPE_CHECKING:
    from .provider import AWSFargateProvider

logger = logging.getLogger(__name__)


def _error_code(error: ClientError) -> str:
    return error.response["Error"]["Code"]


def _assume_role_policy(principal: str) -> str:
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Effect": "Allow",
            "Principal": {"Service": principal},
            "Action": "sts:AssumeRole"
        }]
    })


# ==========================================
# Security Groups (shared by load balancer and service)
# ==========================================

def find_security_group(provider: 'AWSFargateProvider', name: str, vpc_id: Optional[str] = None) -> Optional[str]:
    filters = [{"Name": "group-name", "Values": [name]}]
    if vpc_id:
        filters.append({"Name": "vpc-id", "Values": [vpc_id]})
    groups = provider.clients["ec2"].describe_security_groups(Filters=filters)["SecurityGroups"]
    return groups[0]["GroupId"] if groups else None


def ensure_security_group(
    provider: 'AWSFargateProvider',
    name: str,
    vpc_id: str,
    description: str,
    ip_permissions: List[dict]
) -> str:
    """Return the id of the named group, creating it with the given ingress when missing."""
    ec2 = provider.clients["ec2"]
    group_id = find_security_group(provider, name, vpc_id)
    if group_id:
        logger.info(f"[AWS] Security group already exists: {name} ({group_id})")
        return group_id

    try:
        group_id = ec2.create_security_group(GroupName=name, Description=description, VpcId=vpc_id)["GroupId"]
    except ClientError as e:
        if _error_code(e) != "InvalidGroup.Duplicate":
            raise
        return find_security_group(provider, name, vpc_id)
    logger.info(f"[AWS] Created security group: {name} ({group_id})")

    try:
        ec2.authorize_security_group_ingress(GroupId=group_id, IpPermissions=ip_permissions)
    except ClientError as e:
        if _error_code(e) != "InvalidPermission.Duplicate":
            raise
    return group_id


def _delete_security_group(provider: 'AWSFargateProvider', name: str) -> None:
    """Delete a group, retrying while ENIs still reference it."""
    ec2 = provider.clients["ec2"]
    group_id = find_security_group(provider, name)
    if not group_id:
        logger.info(f"[AWS] Security group not found (already deleted?): {name}")
        return

    for attempt in range(1, CONSTANTS.AWS_SG_DELETE_ATTEMPTS + 1):
        try:
            ec2.delete_security_group(GroupId=group_id)
            logger.info(f"[AWS] ✓ Deleted security group: {name}")
            return
        except ClientError as e:
            code = _error_code(e)
            if code == "InvalidGroup.NotFound":
                return
            if code != "DependencyViolation" or attempt == CONSTANTS.AWS_SG_DELETE_ATTEMPTS:
                raise
            delay = CONSTANTS.AWS_SG_DELETE_BACKOFF_SECONDS * attempt
            logger.info(f"[AWS] Security group {name} still in use, retrying in {delay}s...")
            interruptible_sleep(delay)


def _delete_available_network_interfaces(provider: 'AWSFargateProvider', group_ids: List[str]) -> None:
    """Release detached ENIs left behind by Fargate tasks."""
    if not group_ids:
        return
    ec2 = provider.clients["ec2"]
    interfaces = ec2.describe_network_interfaces(
        Filters=[
            {"Name": "group-id", "Values": group_ids},
            {"Name": "status", "Values": ["available"]},
        ]
    )["NetworkInterfaces"]
    for interface in interfaces:
        try:
            ec2.delete_network_interface(NetworkInterfaceId=interface["NetworkInterfaceId"])
            logger.info(f"[AWS] ✓ Deleted network interface: {interface['NetworkInterfaceId']}")
        except ClientError as e:
            logger.warning(f"[AWS] ✗ Could not delete network interface {interface['NetworkInterfaceId']}: {e}")


# ==========================================
# Registry (ECR)
# ==========================================

def lookup_registry(provider: 'AWSFargateProvider', inputs: Inputs):
    name = provider.naming.ecr_repository()
    repository = provider.clients["ecr"].describe_repositories(repositoryNames=[name])["repositories"][0]
    return ResourceDescriptor(
        ResourceKind.REGISTRY,
        name,
        repository["repositoryUri"],
        {"registry_id": repository["registryId"], "arn": repository["repositoryArn"]}
    )


def create_registry(provider: 'AWSFargateProvider', inputs: Inputs) -> ResourceDescriptor:
    name = provider.naming.ecr_repository()
    provider.clients["ecr"].create_repository(
        repositoryName=name,
        imageScanningConfiguration={"scanOnPush": True}
    )
    return lookup_registry(provider, inputs)


def delete_registry(provider: 'AWSFargateProvider', descriptor: ResourceDescriptor) -> None:
    provider.clients["ecr"].delete_repository(repositoryName=descriptor.name, force=True)


# ==========================================
# Network (default VPC)
# ==========================================

def lookup_network(provider: 'AWSFargateProvider', inputs: Inputs):
    ec2 = provider.clients["ec2"]
    vpcs = ec2.describe_vpcs(Filters=[{"Name": "isDefault", "Values": ["true"]}])["Vpcs"]
    if not vpcs:
        return NotFound(ResourceKind.NETWORK, provider.naming.vpc())

    vpc_id = vpcs[0]["VpcId"]
    subnets = ec2.describe_subnets(Filters=[{"Name": "vpc-id", "Values": [vpc_id]}])["Subnets"]
    return ResourceDescriptor(
        ResourceKind.NETWORK,
        provider.naming.vpc(),
        vpc_id,
        {"subnet_ids": [subnet["SubnetId"] for subnet in subnets]}
    )


def create_network(provider: 'AWSFargateProvider', inputs: Inputs) -> ResourceDescriptor:
    provider.clients["ec2"].create_default_vpc()
    found = lookup_network(provider, inputs)
    if isinstance(found, NotFound):
        raise RuntimeError("Default VPC was created but cannot be described yet")
    return found


def delete_network(provider: 'AWSFargateProvider', descriptor: ResourceDescriptor) -> None:
    # The default VPC is account-wide infrastructure
    logger.info(f"[AWS] Default VPC retained: {descriptor.identifier}")


# ==========================================
# Identity (IAM roles)
# ==========================================

def _find_role(provider: 'AWSFargateProvider', role_name: str) -> Optional[dict]:
    try:
        return provider.clients["iam"].get_role(RoleName=role_name)["Role"]
    except ClientError as e:
        if _error_code(e) != "NoSuchEntity":
            raise
        return None


def lookup_identity(provider: 'AWSFargateProvider', inputs: Inputs):
    name = provider.naming.execution_role()
    execution_role = _find_role(provider, name)
    task_role = _find_role(provider, provider.naming.task_role())
    if execution_role is None and task_role is None:
        return NotFound(ResourceKind.IDENTITY, name)

    return ResourceDescriptor(
        ResourceKind.IDENTITY,
        name,
        execution_role["Arn"] if execution_role else "",
        {
            "task_role_arn": task_role["Arn"] if task_role else None,
            "task_role_name": provider.naming.task_role(),
            "complete": execution_role is not None and task_role is not None,
        }
    )


def _ensure_role(provider: 'AWSFargateProvider', role_name: str, description: str, policy_arns: List[str]) -> None:
    iam = provider.clients["iam"]
    try:
        iam.create_role(
            RoleName=role_name,
            AssumeRolePolicyDocument=_assume_role_policy(CONSTANTS.AWS_ECS_TASKS_PRINCIPAL),
            Description=description
        )
        logger.info(f"[AWS] Created IAM role: {role_name}")
    except ClientError as e:
        if _error_code(e) != "EntityAlreadyExists":
            raise
        logger.info(f"[AWS] IAM role already exists: {role_name}")

    for policy_arn in policy_arns:
        iam.attach_role_policy(RoleName=role_name, PolicyArn=policy_arn)
        logger.info(f"[AWS] Attached IAM policy ARN: {policy_arn}")


def _ensure_service_linked_role(provider: 'AWSFargateProvider') -> None:
    try:
        provider.clients["iam"].create_service_linked_role(AWSServiceName=CONSTANTS.AWS_ECS_SERVICE_PRINCIPAL)
        logger.info("[AWS] Created ECS service-linked role")
    except ClientError as e:
        # IAM answers InvalidInput "has been taken" when the role already exists
        if _error_code(e) not in ("InvalidInput", "EntityAlreadyExists"):
            raise
        logger.info("[AWS] ECS service-linked role already exists")


def create_identity(provider: 'AWSFargateProvider', inputs: Inputs) -> ResourceDescriptor:
    service = provider.spec.service_name
    _ensure_role(
        provider,
        provider.naming.execution_role(),
        f"IAM execution role for ECS Fargate task {service}",
        [CONSTANTS.AWS_POLICY_ECS_TASK_EXECUTION]
    )
    _ensure_role(
        provider,
        provider.naming.task_role(),
        f"IAM task role for ECS Fargate task {service}",
        []
    )
    _ensure_service_linked_role(provider)
    return lookup_identity(provider, inputs)


def _delete_role(provider: 'AWSFargateProvider', role_name: str) -> None:
    iam = provider.clients["iam"]
    try:
        for policy in iam.list_attached_role_policies(RoleName=role_name)["AttachedPolicies"]:
            iam.detach_role_policy(RoleName=role_name, PolicyArn=policy["PolicyArn"])
        for policy_name in iam.list_role_policies(RoleName=role_name)["PolicyNames"]:
            iam.delete_role_policy(RoleName=role_name, PolicyName=policy_name)
        iam.delete_role(RoleName=role_name)
        logger.info(f"[AWS] ✓ Deleted IAM role: {role_name}")
    except ClientError as e:
        if _error_code(e) != "NoSuchEntity":
            raise
        logger.info(f"[AWS] IAM role not found (already deleted?): {role_name}")


def delete_identity(provider: 'AWSFargateProvider', descriptor: ResourceDescriptor) -> None:
    _delete_role(provider, provider.naming.task_role())
    _delete_role(provider, provider.naming.execution_role())
    logger.info("[AWS] ECS service-linked role retained")


# ==========================================
# Cluster (ECS)
# ==========================================

def _describe_cluster(provider: 'AWSFargateProvider', name: str) -> Optional[dict]:
    clusters = provider.clients["ecs"].describe_clusters(clusters=[name])["clusters"]
    active = [cluster for cluster in clusters if cluster.get("status") == "ACTIVE"]
    return active[0] if active else None


def lookup_cluster(provider: 'AWSFargateProvider', inputs: Inputs):
    name = provider.naming.cluster()
    cluster = _describe_cluster(provider, name)
    if cluster is None:
        return NotFound(ResourceKind.CLUSTER, name)
    return ResourceDescriptor(ResourceKind.CLUSTER, name, cluster["clusterArn"])


def create_cluster(provider: 'AWSFargateProvider', inputs: Inputs) -> ResourceDescriptor:
    name = provider.naming.cluster()
    cluster = provider.clients["ecs"].create_cluster(
        clusterName=name,
        capacityProviders=["FARGATE"],
        defaultCapacityProviderStrategy=[{"capacityProvider": "FARGATE", "weight": 1}]
    )["cluster"]
    return ResourceDescriptor(ResourceKind.CLUSTER, name, cluster["clusterArn"])


def delete_cluster(provider: 'AWSFargateProvider', descriptor: ResourceDescriptor) -> None:
    def drained() -> bool:
        cluster = _describe_cluster(provider, descriptor.name)
        return cluster is None or cluster.get("runningTasksCount", 0) == 0

    drain_waiter().wait(drained, f"tasks in cluster {descriptor.name} to stop")
    provider.clients["ecs"].delete_cluster(cluster=descriptor.name)


# ==========================================
# Load Balancer (ALB + target group + listeners)
# ==========================================

def lookup_load_balancer(provider: 'AWSFargateProvider', inputs: Inputs):
    name = provider.naming.load_balancer()
    load_balancer = _find_load_balancer(provider, name)
    target_group = _find_target_group(provider, provider.naming.target_group())
    group_ids = [
        group_id for group_id in (
            find_security_group(provider, group_name)
            for group_name in (provider.naming.load_balancer_security_group(), provider.naming.service_security_group())
        ) if group_id
    ]
    if load_balancer is None and target_group is None and not group_ids:
        return NotFound(ResourceKind.LOAD_BALANCER, name)

    listeners = []
    if load_balancer is not None:
        listeners = provider.clients["elbv2"].describe_listeners(
            LoadBalancerArn=load_balancer["LoadBalancerArn"]
        )["Listeners"]

    # Any leftover part makes the descriptor; only a full set is complete
    return ResourceDescriptor(
        ResourceKind.LOAD_BALANCER,
        name,
        load_balancer["LoadBalancerArn"] if load_balancer else "",
        {
            "dns_name": load_balancer["DNSName"] if load_balancer else None,
            "vpc_id": load_balancer.get("VpcId") if load_balancer else None,
            "security_group_ids": list(load_balancer.get("SecurityGroups", [])) if load_balancer else [],
            "target_group_arn": target_group["TargetGroupArn"] if target_group else None,
            "listener_arns": [listener["ListenerArn"] for listener in listeners],
            "https": any(listener.get("Protocol") == "HTTPS" for listener in listeners),
            "complete": bool(load_balancer and target_group and listeners),
        }
    )


def _find_load_balancer(provider: 'AWSFargateProvider', name: str) -> Optional[dict]:
    try:
        return provider.clients["elbv2"].describe_load_balancers(Names=[name])["LoadBalancers"][0]
    except ClientError as e:
        if _error_code(e) != "LoadBalancerNotFound":
            raise
        return None


def _find_target_group(provider: 'AWSFargateProvider', name: str) -> Optional[dict]:
    try:
        return provider.clients["elbv2"].describe_target_groups(Names=[name])["TargetGroups"][0]
    except ClientError as e:
        if _error_code(e) != "TargetGroupNotFound":
            raise
        return None


def _forward(target_group_arn: str) -> List[dict]:
    return [{"Type": "forward", "TargetGroupArn": target_group_arn}]


def create_load_balancer(provider: 'AWSFargateProvider', inputs: Inputs) -> ResourceDescriptor:
    spec = provider.spec
    elbv2 = provider.clients["elbv2"]
    network = inputs[ResourceKind.NETWORK]
    vpc_id = network.identifier

    ingress = [{"IpProtocol": "tcp", "FromPort": 80, "ToPort": 80, "IpRanges": [{"CidrIp": "0.0.0.0/0"}]}]
    if spec.enable_https:
        ingress.append({"IpProtocol": "tcp", "FromPort": 443, "ToPort": 443, "IpRanges": [{"CidrIp": "0.0.0.0/0"}]})
    security_group_id = ensure_security_group(
        provider,
        provider.naming.load_balancer_security_group(),
        vpc_id,
        f"Security group for {spec.service_name} ALB",
        ingress
    )

    name = provider.naming.load_balancer()
    load_balancer = _find_load_balancer(provider, name)
    if load_balancer is None:
        load_balancer = elbv2.create_load_balancer(
            Name=name,
            Subnets=list(network.get("subnet_ids", [])),
            SecurityGroups=[security_group_id],
            Scheme="internet-facing",
            Type="application"
        )["LoadBalancers"][0]
        logger.info(f"[AWS] Created load balancer: {load_balancer['DNSName']}")

    target_group_name = provider.naming.target_group()
    target_group = _find_target_group(provider, target_group_name)
    if target_group is None:
        target_group = elbv2.create_target_group(
            Name=target_group_name,
            Protocol="HTTP",
            Port=spec.container_port,
            VpcId=vpc_id,
            TargetType="ip",
            HealthCheckPath=spec.health_check_path,
            HealthCheckIntervalSeconds=spec.health_check_interval_seconds
        )["TargetGroups"][0]
        logger.info(f"[AWS] Created target group: {target_group_name}")

    load_balancer_arn = load_balancer["LoadBalancerArn"]
    target_group_arn = target_group["TargetGroupArn"]
    listeners = elbv2.describe_listeners(LoadBalancerArn=load_balancer_arn)["Listeners"]
    if not listeners:
        elbv2.create_listener(
            LoadBalancerArn=load_balancer_arn,
            Protocol="HTTP",
            Port=80,
            DefaultActions=_forward(target_group_arn)
        )
        logger.info("[AWS] Created HTTP listener on port 80")

        certificate_arn = spec.option("certificateArn")
        if spec.enable_https and certificate_arn:
            elbv2.create_listener(
                LoadBalancerArn=load_balancer_arn,
                Protocol="HTTPS",
                Port=443,
                Certificates=[{"CertificateArn": certificate_arn}],
                DefaultActions=_forward(target_group_arn)
            )
            logger.info("[AWS] Created HTTPS listener on port 443")
        elif spec.enable_https:
            logger.info("[AWS] enableHttps set without certificateArn; only HTTP is served")

    return lookup_load_balancer(provider, inputs)


def delete_load_balancer(provider: 'AWSFargateProvider', descriptor: ResourceDescriptor) -> None:
    elbv2 = provider.clients["elbv2"]

    if descriptor.identifier:
        for listener in elbv2.describe_listeners(LoadBalancerArn=descriptor.identifier)["Listeners"]:
            elbv2.delete_listener(ListenerArn=listener["ListenerArn"])

        elbv2.delete_load_balancer(LoadBalancerArn=descriptor.identifier)
        logger.info(f"[AWS] Waiting for load balancer {descriptor.name} to be deleted...")
        elbv2.get_waiter("load_balancers_deleted").wait(LoadBalancerArns=[descriptor.identifier])
    else:
        logger.info(f"[AWS] Load balancer not found (already deleted?): {descriptor.name}")

    target_group_arn = descriptor.get("target_group_arn")
    if target_group_arn:
        try:
            elbv2.delete_target_group(TargetGroupArn=target_group_arn)
            logger.info(f"[AWS] ✓ Deleted target group: {provider.naming.target_group()}")
        except ClientError as e:
            if _error_code(e) != "TargetGroupNotFound":
                raise

    group_names = [provider.naming.service_security_group(), provider.naming.load_balancer_security_group()]
    group_ids = [group_id for group_id in (find_security_group(provider, name) for name in group_names) if group_id]
    _delete_available_network_interfaces(provider, group_ids)
    for group_name in group_names:
        _delete_security_group(provider, group_name)


# ==========================================
# Log Sink (CloudWatch)
# ==========================================

def lookup_log_sink(provider: 'AWSFargateProvider', inputs: Inputs):
    name = provider.naming.log_group()
    groups = provider.clients["logs"].describe_log_groups(logGroupNamePrefix=name)["logGroups"]
    for group in groups:
        if group["logGroupName"] == name:
            return ResourceDescriptor(ResourceKind.LOG_SINK, name, group.get("arn", name))
    return NotFound(ResourceKind.LOG_SINK, name)


def create_log_sink(provider: 'AWSFargateProvider', inputs: Inputs) -> ResourceDescriptor:
    logs = provider.clients["logs"]
    name = provider.naming.log_group()
    logs.create_log_group(logGroupName=name)
    logs.put_retention_policy(logGroupName=name, retentionInDays=CONSTANTS.AWS_LOG_RETENTION_DAYS)
    return lookup_log_sink(provider, inputs)


def delete_log_sink(provider: 'AWSFargateProvider', descriptor: ResourceDescriptor) -> None:
    provider.clients["logs"].delete_log_group(logGroupName=descriptor.name)


# ==========================================
# Revision (task definitions, deploy-owned)
# ==========================================

def lookup_revision(provider: 'AWSFargateProvider', inputs: Inputs):
    family = provider.naming.task_definition_family()
    paginator = provider.clients["ecs"].get_paginator("list_task_definitions")
    arns: List[str] = []
    for page in paginator.paginate(familyPrefix=family, status="ACTIVE"):
        arns.extend(page["taskDefinitionArns"])
    if not arns:
        return NotFound(ResourceKind.REVISION, family)
    return ResourceDescriptor(ResourceKind.REVISION, family, arns[-1], {"arns": arns})


def delete_revision(provider: 'AWSFargateProvider', descriptor: ResourceDescriptor) -> None:
    ecs = provider.clients["ecs"]
    arns = descriptor.get("arns") or [descriptor.identifier]
    for arn in arns:
        ecs.deregister_task_definition(taskDefinition=arn)
    logger.info(f"[AWS] ✓ Deregistered {len(arns)} task definition revision(s) of {descriptor.name}")


# ==========================================
# Service (ECS, deploy-owned)
# ==========================================

def describe_service(provider: 'AWSFargateProvider') -> Optional[dict]:
    """The ACTIVE service, or None."""
    services = provider.clients["ecs"].describe_services(
        cluster=provider.naming.cluster(),
        services=[provider.naming.ecs_service()]
    )["services"]
    active = [service for service in services if service.get("status") == "ACTIVE"]
    return active[0] if active else None


def service_descriptor(provider: 'AWSFargateProvider', service: dict) -> ResourceDescriptor:
    return ResourceDescriptor(
        ResourceKind.SERVICE,
        service["serviceName"],
        service["serviceArn"],
        {"cluster": provider.naming.cluster(), "task_definition": service.get("taskDefinition")}
    )


def lookup_service(provider: 'AWSFargateProvider', inputs: Inputs):
    service = describe_service(provider)
    if service is None:
        return NotFound(ResourceKind.SERVICE, provider.naming.ecs_service())
    return service_descriptor(provider, service)


def delete_service(provider: 'AWSFargateProvider', descriptor: ResourceDescriptor) -> None:
    ecs = provider.clients["ecs"]
    cluster = provider.naming.cluster()

    ecs.update_service(cluster=cluster, service=descriptor.name, desiredCount=0)
    ecs.delete_service(cluster=cluster, service=descriptor.name, force=True)

    def drained() -> bool:
        try:
            return not ecs.list_tasks(cluster=cluster, serviceName=descriptor.name)["taskArns"]
        except ClientError as e:
            if _error_code(e) in ("ServiceNotFoundException", "ClusterNotFoundException"):
                return True
            raise

    drain_waiter().wait(drained, f"tasks of service {descriptor.name} to stop")


HANDLERS = {
    ResourceKind.REGISTRY: ResourceHandler(lookup_registry, create_registry, delete_registry),
    ResourceKind.NETWORK: ResourceHandler(lookup_network, create_network, delete_network),
    ResourceKind.IDENTITY: ResourceHandler(lookup_identity, create_identity, delete_identity),
    ResourceKind.CLUSTER: ResourceHandler(lookup_cluster, create_cluster, delete_cluster),
    ResourceKind.LOAD_BALANCER: ResourceHandler(lookup_load_balancer, create_load_balancer, delete_load_balancer),
    ResourceKind.LOG_SINK: ResourceHandler(lookup_log_sink, create_log_sink, delete_log_sink),
    ResourceKind.REVISION: ResourceHandler(lookup_revision, None, delete_revision),
    ResourceKind.SERVICE: ResourceHandler(lookup_service, None, delete_service),
}
