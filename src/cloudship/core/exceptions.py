"""
Custom exceptions for the container deployer.

This module defines a hierarchy of exceptions used throughout the deployment
system to provide clear, actionable error messages. Every exception carries
an ErrorClass tag so callers can decide whether to create, retry, abort or
keep going without inspecting message text.

Exception Hierarchy:
    DeploymentError (base, FATAL)
    ├── ConfigurationError - Invalid or missing configuration / credentials
    ├── ProviderNotFoundError - Unknown backend name requested
    ├── BuildError - Container image build or push failed
    ├── ProvisioningError - A setup step failed
    ├── PreconditionError - Deploy found setup incomplete
    ├── RolloutError - A rollout state failed with a foreign exception
    ├── RetryExhaustedError - Retry bound reached
    ├── OperationInterruptedError - Interrupted while waiting
    ├── ResourceRemovalError - Teardown of one resource failed (PARTIAL_TEARDOWN_FAILURE)
    ├── ResourceNotFoundError - Backend reported the resource missing (NOT_FOUND)
    ├── ResourceExistsError - Create raced with an existing resource
    └── TransientError - Backend propagation delay, safe to retry (TRANSIENT)
        └── ImagePropagationError - Pushed image not yet visible to the backend
"""

from enum import Enum
from typing import Optional


class ErrorClass(str, Enum):
    """Classification tag attached to every deployment failure."""

    NOT_FOUND = "NotFound"
    TRANSIENT = "Transient"
    FATAL = "Fatal"
    PARTIAL_TEARDOWN_FAILURE = "PartialTeardownFailure"


class DeploymentError(Exception):
    """
    Base exception for all deployment-related errors.

    All custom exceptions in the deployer inherit from this class,
    allowing broad exception handling when needed.

    Attributes:
        message: Human-readable error description
        provider: Optional backend name where error occurred
        step: Optional step or rollout state where error occurred
        error_class: Classification used by retry and teardown logic
    """

    error_class: ErrorClass = ErrorClass.FATAL

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        step: Optional[str] = None
    ):
        self.message = message
        self.provider = provider
        self.step = step
        super().__init__(message)

    def __str__(self) -> str:
        details = []
        if self.provider:
            details.append(f"provider={self.provider}")
        if self.step:
            details.append(f"step={self.step}")
        if details:
            return f"{self.message} [{', '.join(details)}]"
        return self.message


class ConfigurationError(DeploymentError):
    """
    Raised when configuration is invalid or missing required fields.

    This typically occurs when:
    - The YAML config file is missing or not a mapping
    - A required field (serviceName, region) is missing
    - A field value fails validation
    - Backend credentials cannot be resolved

    Example:
        >>> load_deployment_spec(Path("nonexistent.yaml"))
        ConfigurationError: Config file not found (file: nonexistent.yaml)
    """

    def __init__(
        self,
        message: str,
        config_file: Optional[str] = None,
        provider: Optional[str] = None
    ):
        self.config_file = config_file
        if config_file:
            message = f"{message} (file: {config_file})"
        super().__init__(message, provider=provider)


class ProviderNotFoundError(DeploymentError):
    """
    Raised when an unknown backend name is requested.

    Example:
        >>> ProviderRegistry.get("unknown")
        ProviderNotFoundError: Provider 'unknown' not found. Available: ['aws-fargate', ...]
    """

    def __init__(self, provider_name: str, available_providers: list[str]):
        self.provider_name = provider_name
        self.available_providers = available_providers
        message = (
            f"Provider '{provider_name}' not found. "
            f"Available: {available_providers}"
        )
        super().__init__(message, provider=provider_name)


class BuildError(DeploymentError):
    """Raised when the container image cannot be built, tagged or pushed."""


class ProvisioningError(DeploymentError):
    """
    Raised when a setup step fails.

    Attributes:
        resource_name: Name of the resource the step was ensuring
        cause_class: ErrorClass of the underlying failure
    """

    def __init__(
        self,
        step: str,
        resource_name: str,
        provider: Optional[str] = None,
        cause: Optional[BaseException] = None
    ):
        self.resource_name = resource_name
        self.cause_class = getattr(cause, "error_class", ErrorClass.FATAL)
        message = f"Failed to provision {step} '{resource_name}'"
        if cause:
            message += f": {cause}"
        if self.cause_class == ErrorClass.TRANSIENT:
            message += " (transient backend condition, setup is safe to re-run)"
        super().__init__(message, provider=provider, step=step)


class PreconditionError(DeploymentError):
    """
    Raised by the rollout gate when a resource owned by setup is missing.

    The message always names the missing resource and the command that
    provisions it, so the user knows what to run next.
    """

    def __init__(
        self,
        kind: str,
        resource_name: str,
        remediation: str,
        provider: Optional[str] = None
    ):
        self.kind = kind
        self.resource_name = resource_name
        self.remediation = remediation
        message = (
            f"Required {kind} '{resource_name}' does not exist. "
            f"Infrastructure setup is incomplete, run: {remediation}"
        )
        super().__init__(message, provider=provider, step="ValidatingPreconditions")


class RolloutError(DeploymentError):
    """Raised when a rollout state fails with an unclassified exception."""

    def __init__(self, state: str, cause: BaseException, provider: Optional[str] = None):
        self.cause = cause
        super().__init__(f"Rollout failed in {state}: {cause}", provider=provider, step=state)


class RetryExhaustedError(DeploymentError):
    """
    Raised when the retry bound is reached without success.

    Attributes:
        attempts: The RolloutAttempt records of every try
        last_error: The failure of the final attempt
    """

    def __init__(self, description: str, attempts: list, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Failed to complete {description} after {len(attempts)} attempts. "
            f"Last error: {last_error}"
        )


class OperationInterruptedError(DeploymentError):
    """Raised when a wait between attempts or polls is interrupted."""


class ResourceRemovalError(DeploymentError):
    """
    Raised when a resource cannot be removed during teardown.

    Teardown collects these instead of aborting.
    """

    error_class = ErrorClass.PARTIAL_TEARDOWN_FAILURE

    def __init__(
        self,
        kind: str,
        resource_name: str,
        provider: Optional[str] = None,
        cause: Optional[BaseException] = None
    ):
        self.kind = kind
        self.resource_name = resource_name
        message = f"Failed to remove {kind} '{resource_name}'"
        if cause:
            message += f": {cause}"
        super().__init__(message, provider=provider, step=kind)


class TransientError(DeploymentError):
    """Raised for backend conditions that are expected to clear on retry."""

    error_class = ErrorClass.TRANSIENT


class ImagePropagationError(TransientError):
    """Raised when the backend cannot yet see a freshly pushed image."""


class ResourceNotFoundError(DeploymentError):
    """
    Raised by a backend call for a resource that does not exist.

    The adapter turns this into a NotFound lookup result, or into success
    when removing.
    """

    error_class = ErrorClass.NOT_FOUND


class ResourceExistsError(DeploymentError):
    """
    Raised when a create call reports that the resource already exists.

    ensure() answers it by looking the resource up again.
    """
