"""
AWS Fargate provider package.

Auto-Registration:
    Importing this package registers AWSFargateProvider with the
    ProviderRegistry under "aws-fargate".

Package Structure:
    aws/
    ├── __init__.py     # This file - registers provider
    ├── provider.py     # AWSFargateProvider class, error translation
    ├── clients.py      # boto3 client initialization
    ├── naming.py       # Resource naming conventions
    ├── resources.py    # lookup/create/delete per resource kind
    ├── rollout.py      # ECR publish, task definition, ECS service
    └── logs.py         # CloudWatch log fetching
"""

from ...core.registry import ProviderRegistry
from .provider import AWSFargateProvider

# Auto-register this provider when the module is imported
ProviderRegistry.register("aws-fargate", AWSFargateProvider)

__all__ = ["AWSFargateProvider"]
