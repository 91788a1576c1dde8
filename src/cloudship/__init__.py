"""
cloudship - build a container image and run it on AWS Fargate, GCP Cloud
Run or Azure Container Apps.

    cloudship aws-fargate setup deploy.yaml
    cloudship aws-fargate deploy deploy.yaml
    cloudship aws-fargate logs deploy.yaml
    cloudship aws-fargate destroy deploy.yaml
"""

__version__ = "0.1.0"
