import boto3
import pytest
from moto import mock_aws

REGION = "us-east-1"


@pytest.fixture(scope="function")
def mock_provider(make_spec):
    """
    Create an AWSFargateProvider with moto-backed boto3 clients.
    """
    from cloudship.providers.aws.naming import AWSNaming
    from cloudship.providers.aws.provider import AWSFargateProvider

    with mock_aws():
        provider = AWSFargateProvider()
        provider._spec = make_spec(backend="aws-fargate", environment={"LOG_LEVEL": "info"})
        provider._naming = AWSNaming("orders-api")
        provider._account_id = "123456789012"
        provider._initialized = True  # Mark as initialized to bypass property check

        iam_client = boto3.client("iam", region_name=REGION)

        # Wrap attach_role_policy to succeed even with AWS managed policies
        original_attach = iam_client.attach_role_policy

        def mock_attach_role_policy(**kwargs):
            try:
                return original_attach(**kwargs)
            except iam_client.exceptions.NoSuchEntityException:
                return {}
        iam_client.attach_role_policy = mock_attach_role_policy

        provider._clients = {
            "ecr": boto3.client("ecr", region_name=REGION),
            "ec2": boto3.client("ec2", region_name=REGION),
            "iam": iam_client,
            "ecs": boto3.client("ecs", region_name=REGION),
            "elbv2": boto3.client("elbv2", region_name=REGION),
            "logs": boto3.client("logs", region_name=REGION),
            "sts": boto3.client("sts", region_name=REGION),
        }
        yield provider
