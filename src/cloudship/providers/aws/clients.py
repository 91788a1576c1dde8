"""
AWS SDK client initialization.

Credentials come from the standard boto3 chain (environment, shared
config, instance role); the optional `profile` option selects a named
profile. We return a dictionary of clients so the provider owns their
lifecycle and tests can swap them out.

Usage:
    clients = create_aws_clients(region="us-east-1")
    clients["ecs"].describe_clusters(clusters=["orders-api-cluster"])
"""

from typing import Any, Dict, Optional

import boto3


def create_aws_clients(region: str, profile: Optional[str] = None) -> Dict[str, Any]:
    """
    Create and return all boto3 clients needed for a Fargate deployment.

    Args:
        region: AWS region (e.g., "us-east-1")
        profile: Optional named profile from the shared AWS config

    Returns:
        Dictionary mapping service names to boto3 client instances.

    Client Keys:
        - ecr: Container registry
        - ec2: VPC, subnets, security groups, ENIs
        - iam: Execution and task roles
        - ecs: Cluster, task definitions, service
        - elbv2: Application load balancer, target group, listeners
        - logs: CloudWatch Logs
        - sts: Caller identity (credential check, account id)
    """
    session = boto3.Session(profile_name=profile, region_name=region)

    return {
        "ecr": session.client("ecr"),
        "ec2": session.client("ec2"),
        "iam": session.client("iam"),
        "ecs": session.client("ecs"),
        "elbv2": session.client("elbv2"),
        "logs": session.client("logs"),
        "sts": session.client("sts"),
    }
