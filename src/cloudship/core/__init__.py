"""
Core abstractions for the container deployer.

This package holds everything that does not depend on a particular cloud:
the adapter protocols, the provisioning sequencer, the retry and readiness
policies, the rollout state machine and the Deployer façade.

Modules:
    protocols: Interface definitions (ResourceAdapter, RolloutTarget, CloudProvider)
    resources: ResourceKind, ResourceDescriptor, NotFound
    registry: ProviderRegistry for backend lookup by name
    context / config_loader: DeploymentSpec and YAML/.env loading
    sequencer / retry / waiter / rollout: the deployment engine
    deployer: Deployer façade used by the CLI
    exceptions: Error taxonomy

Usage:
    from cloudship.core import Deployer

    Deployer().init("deploy.yaml", backend="aws-fargate").deploy()
"""

from .protocols import CloudProvider, LogSource, ResourceAdapter, RolloutTarget
from .resources import NotFound, ResourceDescriptor, ResourceKind, is_found
from .context import DeploymentSpec
from .registry import ProviderRegistry
from .sequencer import ProvisioningSequencer, ProvisioningStep, TeardownReport
from .retry import RetryEngine, RetryPolicy
from .waiter import ReadinessWaiter
from .rollout import RolloutController, RolloutResult, RolloutState
from .deployer import Deployer
from .exceptions import (
    ConfigurationError,
    DeploymentError,
    ErrorClass,
    OperationInterruptedError,
    ProviderNotFoundError,
)

__all__ = [
    # Protocols
    "CloudProvider",
    "LogSource",
    "ResourceAdapter",
    "RolloutTarget",
    # Data model
    "DeploymentSpec",
    "NotFound",
    "ResourceDescriptor",
    "ResourceKind",
    "is_found",
    # Engine
    "Deployer",
    "ProviderRegistry",
    "ProvisioningSequencer",
    "ProvisioningStep",
    "ReadinessWaiter",
    "RetryEngine",
    "RetryPolicy",
    "RolloutController",
    "RolloutResult",
    "RolloutState",
    "TeardownReport",
    # Exceptions
    "ConfigurationError",
    "DeploymentError",
    "ErrorClass",
    "OperationInterruptedError",
    "ProviderNotFoundError",
]
