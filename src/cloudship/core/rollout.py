"""
Rollout controller.

The deploy-time state machine:

    ValidatingPreconditions -> Publishing -> Registering -> UpdatingService
        -> AwaitingStability -> Done

with Failed reachable from every state before AwaitingStability.

Deploy never creates infrastructure: the precondition gate only looks
resources up and fails with a remediation message pointing at setup.
AwaitingStability always ends in Done; a timeout only changes the log line.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from .. import constants as CONSTANTS
from .exceptions import (
    DeploymentError,
    OperationInterruptedError,
    PreconditionError,
    RolloutError,
)
from .protocols import RolloutTarget
from .resources import NotFound, ResourceDescriptor, ResourceKind
from .retry import RetryEngine, RolloutAttempt, interruptible_sleep
from .sequencer import ProvisioningSequencer
from .waiter import ReadinessWaiter, stability_waiter

logger = logging.getLogger(__name__)


class RolloutState(str, Enum):
    VALIDATING_PRECONDITIONS = "ValidatingPreconditions"
    PUBLISHING = "Publishing"
    REGISTERING = "Registering"
    UPDATING_SERVICE = "UpdatingService"
    AWAITING_STABILITY = "AwaitingStability"
    DONE = "Done"
    FAILED = "Failed"


@dataclass
class RolloutResult:
    image_uri: str
    revision: ResourceDescriptor
    service: ResourceDescriptor
    endpoint: Optional[str] = None
    stable: bool = False
    attempts: List[RolloutAttempt] = field(default_factory=list)
    history: List[RolloutState] = field(default_factory=list)


class RolloutController:
    """
    Runs one deploy against a backend.

    Args:
        target: Backend rollout hooks
        sequencer: Sequencer over the same backend, used for the lookup-only gate
        tag_factory: Produces a unique image tag per deploy
        retry_engine: Wraps the service update
        waiter: Soft-timeout stability waiter
        setup_command: Remediation command named in precondition failures
    """

    def __init__(
        self,
        target: RolloutTarget,
        sequencer: ProvisioningSequencer,
        tag_factory: Callable[[], str],
        retry_engine: Optional[RetryEngine] = None,
        waiter: Optional[ReadinessWaiter] = None,
        setup_command: str = "cloudship <backend> setup <config-path>",
        probe_delay_seconds: float = CONSTANTS.IMAGE_PROBE_RETRY_DELAY_SECONDS,
        sleep: Optional[Callable[[float], None]] = None
    ):
        self.target = target
        self.sequencer = sequencer
        self.tag_factory = tag_factory
        self.retry_engine = retry_engine or RetryEngine(sleep=sleep)
        self.waiter = waiter or stability_waiter(sleep=sleep)
        self.setup_command = setup_command
        self.probe_delay_seconds = probe_delay_seconds
        self._sleep = sleep
        self.state: RolloutState = RolloutState.VALIDATING_PRECONDITIONS
        self.history: List[RolloutState] = []

    def _transition(self, state: RolloutState) -> None:
        self.state = state
        self.history.append(state)
        logger.info(f"==> {state.value}")

    # ==========================================
    # States
    # ==========================================

    def _validate_preconditions(self) -> Dict[ResourceKind, ResourceDescriptor]:
        found = self.sequencer.discover()
        resources: Dict[ResourceKind, ResourceDescriptor] = {}
        for kind, result in found.items():
            if isinstance(result, NotFound) or not result.complete:
                state = "not found" if isinstance(result, NotFound) else "incomplete"
                logger.error(f"✗ {kind.label} {state}: {result.name}")
                raise PreconditionError(
                    kind.label,
                    result.name,
                    self.setup_command,
                    provider=getattr(self.sequencer.adapter, "name", None)
                )
            logger.info(f"✓ {kind.label} exists: {result.name}")
            resources[kind] = result
        return resources

    def _publish(self, resources: Dict[ResourceKind, ResourceDescriptor]) -> str:
        tag = self.tag_factory()
        logger.info(f"Publishing image with tag: {tag}")
        image_uri = self.target.publish(tag, resources)
        logger.info(f"✓ Image pushed: {image_uri}")

        # Probe failures are logged, never raised
        for probe in range(2):
            try:
                if self.target.probe_image(image_uri, resources):
                    logger.info("✓ Image verified in registry")
                    return image_uri
            except DeploymentError as e:
                logger.warning(f"Image probe failed: {e}")
            if probe == 0:
                logger.info(f"Image not visible yet, checking again in {self.probe_delay_seconds:g}s...")
                interruptible_sleep(self.probe_delay_seconds, self._sleep)

        logger.warning("Image not yet visible in registry, proceeding anyway")
        return image_uri

    def _await_stability(self, service: ResourceDescriptor) -> bool:
        try:
            stable = self.waiter.wait(
                lambda: self.target.is_service_stable(service),
                f"service {service.name} to become stable"
            )
        except OperationInterruptedError:
            raise
        except Exception as e:
            logger.warning(f"Could not confirm service stability: {e}")
            return False
        if not stable:
            logger.warning(
                f"Service {service.name} is not stable yet; the rollout continues in the background"
            )
        return stable

    # ==========================================
    # Driver
    # ==========================================

    def run(self) -> RolloutResult:
        """
        Execute the rollout.

        Returns:
            RolloutResult describing the new revision

        Raises:
            PreconditionError: If setup has not provisioned everything
            RetryExhaustedError: If the service update kept failing
            OperationInterruptedError: If interrupted while waiting
            DeploymentError: Any other failure, tagged with the failed state
        """
        self.history = []
        try:
            self._transition(RolloutState.VALIDATING_PRECONDITIONS)
            resources = self._validate_preconditions()

            self._transition(RolloutState.PUBLISHING)
            image_uri = self._publish(resources)

            self._transition(RolloutState.REGISTERING)
            revision = self.target.register_revision(image_uri, resources)
            logger.info(f"✓ Registered revision: {revision.identifier}")

            self._transition(RolloutState.UPDATING_SERVICE)
            service = self.retry_engine.run(
                lambda: self.target.update_service(revision, resources),
                "service deployment"
            )
        except DeploymentError as e:
            failed_state = self.state
            self._transition(RolloutState.FAILED)
            if e.step is None:
                e.step = failed_state.value
            raise
        except Exception as e:
            failed_state = self.state
            self._transition(RolloutState.FAILED)
            raise RolloutError(failed_state.value, e) from e

        self._transition(RolloutState.AWAITING_STABILITY)
        stable = self._await_stability(service)

        self._transition(RolloutState.DONE)
        return RolloutResult(
            image_uri=image_uri,
            revision=revision,
            service=service,
            endpoint=self._endpoint(service, resources),
            stable=stable,
            attempts=list(self.retry_engine.attempts),
            history=list(self.history),
        )

    def _endpoint(self, service: ResourceDescriptor, resources) -> Optional[str]:
        try:
            return self.target.service_endpoint(service, resources)
        except DeploymentError as e:
            logger.warning(f"Could not resolve service endpoint: {e}")
            return None
